# Ready-made request instruments bound to a metric pipeline.
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Mapping, Optional

from .pipelines import MetricPipeline

REQUESTS_TOTAL = "requests_total"
REQUEST_DURATION = "request_duration_seconds"
REQUESTS_OK_TOTAL = "requests_ok_total"
REQUESTS_ERROR_TOTAL = "requests_error_total"


class Metrics:
    """Request counter, duration histogram and ok/error counters.

    Attributes given at each call are merged over the bound set and never
    validated: keep their cardinality bounded at the call site.
    """

    def __init__(
        self,
        pipeline: MetricPipeline,
        app_name: str,
        attributes: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._pipeline = pipeline
        self.attributes: Dict[str, Any] = dict(attributes or {})
        meter = pipeline.get_meter(app_name)

        self.request_counter = meter.create_counter(
            REQUESTS_TOTAL, unit="1", description="Total number of requests"
        )
        self.request_duration = meter.create_histogram(
            REQUEST_DURATION, unit="s", description="Request duration in seconds"
        )
        self.request_ok_counter = meter.create_counter(
            REQUESTS_OK_TOTAL, unit="1", description="Total number of successful requests"
        )
        self.request_error_counter = meter.create_counter(
            REQUESTS_ERROR_TOTAL, unit="1", description="Total number of failed requests"
        )

    def _attrs(self, extra: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        if not extra:
            return self.attributes
        merged = dict(self.attributes)
        merged.update(extra)
        return merged

    def increment_request_counter(self, weight: int = 1, attributes: Optional[Mapping[str, Any]] = None) -> None:
        if self._pipeline.ensure_open():
            self.request_counter.add(weight, self._attrs(attributes))

    def increment_ok_counter(self, weight: int = 1, attributes: Optional[Mapping[str, Any]] = None) -> None:
        if self._pipeline.ensure_open():
            self.request_ok_counter.add(weight, self._attrs(attributes))

    def increment_error_counter(self, weight: int = 1, attributes: Optional[Mapping[str, Any]] = None) -> None:
        if self._pipeline.ensure_open():
            self.request_error_counter.add(weight, self._attrs(attributes))

    def record_request_duration(self, seconds: float, attributes: Optional[Mapping[str, Any]] = None) -> None:
        if self._pipeline.ensure_open():
            self.request_duration.record(seconds, self._attrs(attributes))

    @contextmanager
    def track_request(self, attributes: Optional[Mapping[str, Any]] = None) -> Iterator[None]:
        """Count the request, time it, and count it as ok or error depending on the outcome."""
        self.increment_request_counter(attributes=attributes)
        start = time.perf_counter()
        try:
            yield
        except BaseException:
            self.increment_error_counter(attributes=attributes)
            raise
        else:
            self.increment_ok_counter(attributes=attributes)
        finally:
            self.record_request_duration(time.perf_counter() - start, attributes)
