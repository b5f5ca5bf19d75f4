# Construction-time configuration: wire protocol, batching policies, endpoints.
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from enum import Enum
from typing import Mapping, Optional, Tuple, Union

from .errors import ConstructionError

DEFAULT_ENDPOINT = "http://localhost:4317"


class WireProtocol(str, Enum):
    GRPC = "grpc"
    HTTP_JSON = "http_json"

    @classmethod
    def parse(cls, value: Union[str, "WireProtocol"]) -> "WireProtocol":
        """Map a selector to a protocol. Unknown selectors are fatal."""
        if isinstance(value, cls):
            return value
        raw = str(value).strip().strip("'\"").lower()
        if raw == "http":
            return cls.HTTP_JSON
        for member in cls:
            if member.value == raw:
                return member
        raise ConstructionError(
            f"invalid telemetry protocol {value!r} (expected 'grpc' or 'http_json')"
        )


class Temporality(str, Enum):
    CUMULATIVE = "cumulative"
    DELTA = "delta"


class ClosedPolicy(str, Enum):
    """What an emit does once its pipeline is closed."""

    DROP = "drop"
    RAISE = "raise"


@dataclass(frozen=True)
class BatchingPolicy:
    """Buffering/flush parameters for one pipeline. Durations are in seconds.

    ``periodic_interval`` only applies to metrics, where export is driven by
    the clock instead of batch size.
    """

    max_queue_size: int = 2048
    max_export_batch_size: int = 512
    scheduled_delay: float = 5.0
    export_timeout: float = 30.0
    periodic_interval: Optional[float] = None

    def __post_init__(self) -> None:
        for name in ("max_queue_size", "max_export_batch_size"):
            if getattr(self, name) <= 0:
                raise ConstructionError(f"{name} must be positive")
        for name in ("scheduled_delay", "export_timeout"):
            if getattr(self, name) <= 0:
                raise ConstructionError(f"{name} must be positive")
        if self.max_export_batch_size > self.max_queue_size:
            raise ConstructionError("max_export_batch_size must not exceed max_queue_size")
        if self.periodic_interval is not None and self.periodic_interval <= 0:
            raise ConstructionError("periodic_interval must be positive")

    @property
    def scheduled_delay_millis(self) -> int:
        return int(self.scheduled_delay * 1000)

    @property
    def export_timeout_millis(self) -> int:
        return int(self.export_timeout * 1000)

    @property
    def periodic_interval_millis(self) -> Optional[int]:
        if self.periodic_interval is None:
            return None
        return int(self.periodic_interval * 1000)


TRACE_POLICY = BatchingPolicy(max_queue_size=2048, max_export_batch_size=512, scheduled_delay=5.0)
LOG_POLICY = BatchingPolicy(max_queue_size=2048, max_export_batch_size=512, scheduled_delay=1.0)
METRIC_POLICY = BatchingPolicy(periodic_interval=30.0)

TRACE_EXPORT_TIMEOUT = 3.0
LOG_EXPORT_TIMEOUT = 5.0
METRIC_EXPORT_TIMEOUT = 5.0


@dataclass
class TelemetryConfig:
    """Per-signal destinations plus the protocol shared by all three signals."""

    trace_url: str = DEFAULT_ENDPOINT
    log_url: str = DEFAULT_ENDPOINT
    metric_url: str = DEFAULT_ENDPOINT
    protocol: WireProtocol = WireProtocol.GRPC
    trace_policy: BatchingPolicy = TRACE_POLICY
    log_policy: BatchingPolicy = LOG_POLICY
    metric_policy: BatchingPolicy = METRIC_POLICY
    trace_timeout: float = TRACE_EXPORT_TIMEOUT
    log_timeout: float = LOG_EXPORT_TIMEOUT
    metric_timeout: float = METRIC_EXPORT_TIMEOUT
    temporality: Temporality = Temporality.CUMULATIVE
    log_level: str = "info"
    console_metrics: bool = False
    closed_policy: ClosedPolicy = ClosedPolicy.DROP
    required_attributes: Tuple[str, ...] = ("service.name",)

    def __post_init__(self) -> None:
        self.protocol = WireProtocol.parse(self.protocol)
        try:
            self.temporality = Temporality(self.temporality)
            self.closed_policy = ClosedPolicy(self.closed_policy)
        except ValueError as exc:
            raise ConstructionError(str(exc)) from exc
        if self.metric_policy.periodic_interval is None:
            self.metric_policy = replace(
                self.metric_policy, periodic_interval=METRIC_POLICY.periodic_interval
            )

    @classmethod
    def for_endpoint(
        cls, url: str = DEFAULT_ENDPOINT, protocol: Union[str, WireProtocol] = "grpc", **kwargs
    ) -> "TelemetryConfig":
        """Route all three signals to one collector."""
        return cls(trace_url=url, log_url=url, metric_url=url, protocol=protocol, **kwargs)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **kwargs) -> "TelemetryConfig":
        env = os.environ if environ is None else environ
        url = env.get("TELEMETRY_URL") or DEFAULT_ENDPOINT
        return cls(
            trace_url=env.get("TELEMETRY_TRACE_URL") or url,
            log_url=env.get("TELEMETRY_LOG_URL") or url,
            metric_url=env.get("TELEMETRY_METRIC_URL") or url,
            protocol=env.get("TELEMETRY_PROTOCOL") or "grpc",
            log_level=env.get("LOG_LEVEL") or "info",
            **kwargs,
        )
