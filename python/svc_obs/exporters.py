# Exporter construction per signal and wire protocol. Pure construction:
# channels/sessions are created but nothing is sent until the first export.
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional, Union
from urllib.parse import urlsplit, urlunsplit

from .config import Temporality, WireProtocol
from opentelemetry.sdk.metrics.export import MetricExporter

from .errors import ConstructionError, ExportError

logger = logging.getLogger(__name__)


class SignalKind(str, Enum):
    TRACE = "trace"
    LOG = "log"
    METRIC = "metric"


_HTTP_PATHS = {
    SignalKind.TRACE: "/v1/traces",
    SignalKind.LOG: "/v1/logs",
    SignalKind.METRIC: "/v1/metrics",
}


def _check_url(kind: SignalKind, url: str, protocol: WireProtocol) -> str:
    if not url or not isinstance(url, str):
        raise ConstructionError("exporter URL is empty", kind.value)
    has_scheme = "://" in url
    if not has_scheme and protocol is WireProtocol.HTTP_JSON:
        raise ConstructionError(f"invalid URL {url!r}: HTTP exporters need an http(s) scheme", kind.value)
    try:
        parts = urlsplit(url if has_scheme else f"//{url}")
        parts.port  # raises ValueError on a malformed port
    except ValueError as exc:
        raise ConstructionError(f"invalid URL {url!r}: {exc}", kind.value) from exc
    if has_scheme and parts.scheme not in ("http", "https"):
        raise ConstructionError(f"invalid URL {url!r}: unsupported scheme {parts.scheme!r}", kind.value)
    if not parts.hostname:
        raise ConstructionError(f"invalid URL {url!r}: missing host", kind.value)
    if protocol is WireProtocol.HTTP_JSON and parts.path in ("", "/"):
        return urlunsplit(parts._replace(path=_HTTP_PATHS[kind]))
    return url


def _temporality_map(temporality: Temporality) -> dict:
    from opentelemetry.sdk.metrics import (
        Counter,
        Histogram,
        ObservableCounter,
        ObservableGauge,
        ObservableUpDownCounter,
        UpDownCounter,
    )
    from opentelemetry.sdk.metrics.export import AggregationTemporality

    if temporality is Temporality.DELTA:
        # Up-down instruments stay cumulative; delta only makes sense for monotonic sums.
        return {
            Counter: AggregationTemporality.DELTA,
            UpDownCounter: AggregationTemporality.CUMULATIVE,
            Histogram: AggregationTemporality.DELTA,
            ObservableCounter: AggregationTemporality.DELTA,
            ObservableUpDownCounter: AggregationTemporality.CUMULATIVE,
            ObservableGauge: AggregationTemporality.CUMULATIVE,
        }
    return {
        instrument: AggregationTemporality.CUMULATIVE
        for instrument in (
            Counter,
            UpDownCounter,
            Histogram,
            ObservableCounter,
            ObservableUpDownCounter,
            ObservableGauge,
        )
    }


def _grpc_exporter(kind: SignalKind, url: str, timeout: float, temporality: Temporality) -> Any:
    try:
        if kind is SignalKind.TRACE:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter as exporter_cls
        elif kind is SignalKind.LOG:
            from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter as exporter_cls
        else:
            from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter as exporter_cls
    except ImportError as exc:
        raise ConstructionError(
            "gRPC OTLP exporter imports failed; install opentelemetry-exporter-otlp-proto-grpc",
            kind.value,
        ) from exc

    kwargs: dict = {"endpoint": url, "insecure": not url.startswith("https://"), "timeout": timeout}
    if kind is SignalKind.METRIC:
        kwargs["preferred_temporality"] = _temporality_map(temporality)
    return exporter_cls(**kwargs)


def _http_exporter(kind: SignalKind, url: str, timeout: float, temporality: Temporality) -> Any:
    try:
        if kind is SignalKind.TRACE:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter as exporter_cls
        elif kind is SignalKind.LOG:
            from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter as exporter_cls
        else:
            from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter as exporter_cls
    except ImportError as exc:
        raise ConstructionError(
            "HTTP OTLP exporter imports failed; install opentelemetry-exporter-otlp-proto-http",
            kind.value,
        ) from exc

    kwargs: dict = {"endpoint": url, "timeout": timeout}
    if kind is SignalKind.METRIC:
        kwargs["preferred_temporality"] = _temporality_map(temporality)
    return exporter_cls(**kwargs)


def build_exporter(
    kind: Union[SignalKind, str],
    url: str,
    protocol: Union[WireProtocol, str],
    timeout: float,
    temporality: Optional[Temporality] = None,
) -> Any:
    """Build the OTLP exporter for ``kind`` bound to ``url``.

    Raises ConstructionError for an unknown protocol, a malformed URL or a
    failing exporter constructor; nothing is retried.
    """
    kind = SignalKind(kind)
    protocol = WireProtocol.parse(protocol)
    temporality = Temporality(temporality or Temporality.CUMULATIVE)
    if timeout <= 0:
        raise ConstructionError("exporter timeout must be positive", kind.value)
    url = _check_url(kind, url, protocol)

    build = _grpc_exporter if protocol is WireProtocol.GRPC else _http_exporter
    try:
        exporter = build(kind, url, timeout, temporality)
    except ConstructionError:
        raise
    except Exception as exc:
        raise ConstructionError(f"failed to create OTLP {protocol.value} exporter for {url}: {exc}", kind.value) from exc
    logger.debug("built %s exporter (%s) -> %s", kind.value, protocol.value, url)
    return exporter


class ExportTracker:
    """Delegates to ``exporter`` and remembers whether its last export went through.

    The SDK processors swallow export failures (they only log them), so the
    pipeline asks the tracker after its final drain.
    """

    def __init__(self, exporter: Any, kind: SignalKind, url: str) -> None:
        self.exporter = exporter
        self.kind = kind
        self.url = url
        self.last_failure: Optional[str] = None

    def export(self, batch, *args, **kwargs):
        try:
            result = self.exporter.export(batch, *args, **kwargs)
        except Exception as exc:
            self.last_failure = f"{type(exc).__name__}: {exc}"
            raise
        if getattr(result, "name", None) == "SUCCESS":
            self.last_failure = None
        else:
            self.last_failure = f"exporter returned {getattr(result, 'name', result)}"
        return result

    def force_flush(self, *args, **kwargs):
        return self.exporter.force_flush(*args, **kwargs)

    def shutdown(self, *args, **kwargs):
        return self.exporter.shutdown(*args, **kwargs)

    def failure(self) -> Optional[ExportError]:
        if self.last_failure is None:
            return None
        return ExportError(f"{self.kind.value} export to {self.url} failed: {self.last_failure}")


class MetricExportTracker(ExportTracker, MetricExporter):
    """Metric readers take temporality and aggregation preferences from their exporter."""

    def __init__(self, exporter: Any, kind: SignalKind, url: str) -> None:
        ExportTracker.__init__(self, exporter, kind, url)
        MetricExporter.__init__(
            self,
            preferred_temporality=getattr(exporter, "_preferred_temporality", None),
            preferred_aggregation=getattr(exporter, "_preferred_aggregation", None),
        )


def track(exporter: Any, kind: Union[SignalKind, str], url: str) -> ExportTracker:
    kind = SignalKind(kind)
    if kind is SignalKind.METRIC:
        return MetricExportTracker(exporter, kind, url)
    return ExportTracker(exporter, kind, url)
