# One pipeline per signal: exporter + batching/periodic export + provider handle.
from __future__ import annotations

import logging
import sys
import threading
from enum import Enum
from typing import Any, Callable, Optional, TextIO

from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.trace import SpanLimits, TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.id_generator import RandomIdGenerator
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from .config import (
    LOG_EXPORT_TIMEOUT,
    LOG_POLICY,
    METRIC_EXPORT_TIMEOUT,
    METRIC_POLICY,
    TRACE_EXPORT_TIMEOUT,
    TRACE_POLICY,
    BatchingPolicy,
    ClosedPolicy,
    Temporality,
    WireProtocol,
)
from .errors import PipelineClosedError
from .exporters import ExportTracker, SignalKind, build_exporter, track
from .resource import ResourceDescriptor

logger = logging.getLogger(__name__)

ExporterFactory = Callable[..., Any]

# Per-span ceilings on attributes/events/links.
SPAN_ATTRIBUTE_LIMIT = 16
SPAN_EVENT_LIMIT = 16
SPAN_LINK_LIMIT = 16


class PipelineState(str, Enum):
    CONSTRUCTED = "constructed"
    ACTIVE = "active"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


class SignalPipeline:
    """Owns one exporter, its export scheduler and the provider handle.

    State only moves forward: constructed -> active -> shutting_down -> closed.
    """

    kind: SignalKind

    def __init__(
        self,
        exporter: Any,
        provider: Any,
        policy: BatchingPolicy,
        closed_policy: ClosedPolicy = ClosedPolicy.DROP,
        tracker: Optional[ExportTracker] = None,
    ) -> None:
        self.exporter = exporter
        self.tracker = tracker
        self.provider = provider
        self.policy = policy
        self.closed_policy = ClosedPolicy(closed_policy)
        self._state = PipelineState.CONSTRUCTED
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} state={self._state.value}>"

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state in (PipelineState.SHUTTING_DOWN, PipelineState.CLOSED)

    def activate(self) -> None:
        with self._lock:
            if self._state is PipelineState.CONSTRUCTED:
                self._state = PipelineState.ACTIVE

    def ensure_open(self) -> bool:
        """True if emits should proceed. Once closed: False, or raise under ClosedPolicy.RAISE."""
        if not self.closed:
            return True
        if self.closed_policy is ClosedPolicy.RAISE:
            raise PipelineClosedError(f"{self.kind.value} pipeline is closed")
        return False

    def force_flush(self, timeout_millis: int = 30_000) -> bool:
        if self.closed:
            return False
        return bool(self.provider.force_flush(timeout_millis))

    def shutdown(self) -> None:
        """Drain and close. Only callable once.

        Errors from the drain propagate; a final export the collector did not
        accept raises ExportError.
        """
        logger.debug("closing %s pipeline", self.kind.value)
        with self._lock:
            if self.closed:
                raise PipelineClosedError(f"{self.kind.value} pipeline already shut down")
            self._state = PipelineState.SHUTTING_DOWN
        try:
            self.provider.shutdown()
        finally:
            self._state = PipelineState.CLOSED
        failure = self.tracker.failure() if self.tracker is not None else None
        if failure is not None:
            raise failure


class TracePipeline(SignalPipeline):
    kind = SignalKind.TRACE

    def __init__(
        self,
        exporter: Any,
        provider: TracerProvider,
        policy: BatchingPolicy,
        closed_policy=ClosedPolicy.DROP,
        tracker: Optional[ExportTracker] = None,
    ) -> None:
        super().__init__(exporter, provider, policy, closed_policy, tracker)
        self.propagator = TraceContextTextMapPropagator()

    def get_tracer(self, name: str, version: Optional[str] = None):
        if not self.ensure_open():
            from opentelemetry.trace import NoOpTracer

            return NoOpTracer()
        return self.provider.get_tracer(name, version)

    def install_global(self) -> None:
        """Register the propagator and tracer provider process-wide. Last writer wins."""
        from opentelemetry import propagate, trace

        propagate.set_global_textmap(self.propagator)
        trace.set_tracer_provider(self.provider)


class LogPipeline(SignalPipeline):
    kind = SignalKind.LOG

    def get_logger(self, name: str):
        if not self.ensure_open():
            from opentelemetry._logs import NoOpLogger

            return NoOpLogger(name)
        return self.provider.get_logger(name)


class MetricPipeline(SignalPipeline):
    kind = SignalKind.METRIC

    def get_meter(self, name: str, version: Optional[str] = None):
        if not self.ensure_open():
            from opentelemetry.metrics import NoOpMeter

            return NoOpMeter(name)
        return self.provider.get_meter(name, version)

    def install_global(self) -> None:
        from opentelemetry import metrics

        metrics.set_meter_provider(self.provider)


def build_trace_pipeline(
    url: str,
    protocol: WireProtocol,
    resource: ResourceDescriptor,
    *,
    policy: BatchingPolicy = TRACE_POLICY,
    timeout: float = TRACE_EXPORT_TIMEOUT,
    closed_policy: ClosedPolicy = ClosedPolicy.DROP,
    exporter_factory: ExporterFactory = build_exporter,
) -> TracePipeline:
    exporter = exporter_factory(SignalKind.TRACE, url, protocol, timeout)
    tracker = track(exporter, SignalKind.TRACE, url)
    provider = TracerProvider(
        resource=resource.to_otel(),
        id_generator=RandomIdGenerator(),
        span_limits=SpanLimits(
            max_span_attributes=SPAN_ATTRIBUTE_LIMIT,
            max_events=SPAN_EVENT_LIMIT,
            max_links=SPAN_LINK_LIMIT,
        ),
        shutdown_on_exit=False,
    )
    provider.add_span_processor(
        BatchSpanProcessor(
            tracker,
            max_queue_size=policy.max_queue_size,
            schedule_delay_millis=policy.scheduled_delay_millis,
            max_export_batch_size=policy.max_export_batch_size,
            export_timeout_millis=policy.export_timeout_millis,
        )
    )
    return TracePipeline(exporter, provider, policy, closed_policy, tracker)


def build_log_pipeline(
    url: str,
    protocol: WireProtocol,
    resource: ResourceDescriptor,
    *,
    policy: BatchingPolicy = LOG_POLICY,
    timeout: float = LOG_EXPORT_TIMEOUT,
    closed_policy: ClosedPolicy = ClosedPolicy.DROP,
    exporter_factory: ExporterFactory = build_exporter,
) -> LogPipeline:
    exporter = exporter_factory(SignalKind.LOG, url, protocol, timeout)
    tracker = track(exporter, SignalKind.LOG, url)
    provider = LoggerProvider(resource=resource.to_otel(), shutdown_on_exit=False)
    provider.add_log_record_processor(
        BatchLogRecordProcessor(
            tracker,
            schedule_delay_millis=policy.scheduled_delay_millis,
            max_export_batch_size=policy.max_export_batch_size,
            export_timeout_millis=policy.export_timeout_millis,
            max_queue_size=policy.max_queue_size,
        )
    )
    return LogPipeline(exporter, provider, policy, closed_policy, tracker)


def build_metric_pipeline(
    url: str,
    protocol: WireProtocol,
    resource: ResourceDescriptor,
    *,
    policy: BatchingPolicy = METRIC_POLICY,
    timeout: float = METRIC_EXPORT_TIMEOUT,
    temporality: Temporality = Temporality.CUMULATIVE,
    console: bool = False,
    console_stream: Optional[TextIO] = None,
    closed_policy: ClosedPolicy = ClosedPolicy.DROP,
    exporter_factory: ExporterFactory = build_exporter,
) -> MetricPipeline:
    exporter = exporter_factory(SignalKind.METRIC, url, protocol, timeout, temporality)
    tracker = track(exporter, SignalKind.METRIC, url)
    interval = policy.periodic_interval_millis or METRIC_POLICY.periodic_interval_millis
    readers = [
        PeriodicExportingMetricReader(
            tracker,
            export_interval_millis=interval,
            export_timeout_millis=policy.export_timeout_millis,
        )
    ]
    if console:
        # Development mirror: same instruments, printed locally.
        readers.append(
            PeriodicExportingMetricReader(
                ConsoleMetricExporter(out=console_stream or sys.stdout),
                export_interval_millis=interval,
            )
        )
    provider = MeterProvider(resource=resource.to_otel(), metric_readers=readers, shutdown_on_exit=False)
    return MetricPipeline(exporter, provider, policy, closed_policy, tracker)
