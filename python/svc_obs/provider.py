# Root object: owns the three signal pipelines and the instrumentation bridge.
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, TextIO

from opentelemetry.propagators.textmap import TextMapPropagator

from .bridge import InstrumentationBridge
from .config import TelemetryConfig
from .errors import PipelineClosedError, ShutdownError
from .exporters import SignalKind, build_exporter
from .metrics import Metrics
from .pipelines import (
    ExporterFactory,
    LogPipeline,
    MetricPipeline,
    TracePipeline,
    build_log_pipeline,
    build_metric_pipeline,
    build_trace_pipeline,
)
from .resource import AttributeSource, ResourceDescriptor, default_resource_attributes

log = logging.getLogger(__name__)


@dataclass
class ShutdownReport:
    """Outcome of ``TelemetryProvider.shutdown``. Falsy when any pipeline failed."""

    attempted: list = field(default_factory=list)
    failures: Dict[str, BaseException] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def __bool__(self) -> bool:
        return self.ok

    def raise_for_failures(self) -> None:
        if self.failures:
            raise ShutdownError(self.failures)


class TelemetryProvider:
    """Builds trace, log and metric pipelines for one service and shuts them down together.

    Nothing process-wide is touched unless ``install_globals`` is set: handles are
    reached through ``get_tracer``/``get_meter``/``propagator``. The bridge is
    attached to ``logger`` (the root logger by default).

    Construction either fully succeeds or raises ConstructionError, with any
    pipeline already built shut down again.
    """

    def __init__(
        self,
        config: TelemetryConfig,
        resource_attributes: AttributeSource,
        *,
        logger: Optional[logging.Logger] = None,
        stream: Optional[TextIO] = None,
        install_globals: bool = False,
        exporter_factory: ExporterFactory = build_exporter,
    ) -> None:
        self.config = config
        self.resource = ResourceDescriptor(resource_attributes, required=config.required_attributes)
        self.app_name = self.resource.app_name
        self.app_version = self.resource.app_version
        self.environment = self.resource.environment
        self._closed = False

        built: list = []
        try:
            self.log_pipeline: LogPipeline = build_log_pipeline(
                config.log_url,
                config.protocol,
                self.resource,
                policy=config.log_policy,
                timeout=config.log_timeout,
                closed_policy=config.closed_policy,
                exporter_factory=exporter_factory,
            )
            built.append(self.log_pipeline)
            self.trace_pipeline: TracePipeline = build_trace_pipeline(
                config.trace_url,
                config.protocol,
                self.resource,
                policy=config.trace_policy,
                timeout=config.trace_timeout,
                closed_policy=config.closed_policy,
                exporter_factory=exporter_factory,
            )
            built.append(self.trace_pipeline)
            self.metric_pipeline: MetricPipeline = build_metric_pipeline(
                config.metric_url,
                config.protocol,
                self.resource,
                policy=config.metric_policy,
                timeout=config.metric_timeout,
                temporality=config.temporality,
                console=config.console_metrics,
                console_stream=stream,
                closed_policy=config.closed_policy,
                exporter_factory=exporter_factory,
            )
            built.append(self.metric_pipeline)

            self.bridge = InstrumentationBridge(
                self.log_pipeline,
                self.trace_pipeline,
                level=config.log_level,
                service_name=self.app_name,
                stream=stream,
            )
            # Must happen before anything else logs, records before this are not buffered.
            self.bridge.install(logger)
        except Exception:
            for pipeline in reversed(built):
                try:
                    pipeline.shutdown()
                except Exception:
                    log.debug("cleanup of %s pipeline failed", pipeline.kind.value, exc_info=True)
            raise

        if install_globals:
            self.trace_pipeline.install_global()
            self.metric_pipeline.install_global()

        for pipeline in self.pipelines:
            pipeline.activate()

        self.metrics = Metrics(self.metric_pipeline, self.app_name, attributes={"service.name": self.app_name})
        log.debug(
            "telemetry initialized for %s (%s) via %s", self.app_name, self.environment, config.protocol.value
        )

    @classmethod
    def from_env(cls, environ=None, **kwargs: Any) -> "TelemetryProvider":
        """Default construction: endpoints, protocol and identity from the environment."""
        return cls(TelemetryConfig.from_env(environ), default_resource_attributes(environ), **kwargs)

    @property
    def pipelines(self) -> tuple:
        return (self.trace_pipeline, self.log_pipeline, self.metric_pipeline)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def propagator(self) -> TextMapPropagator:
        return self.trace_pipeline.propagator

    def get_tracer(self, name: Optional[str] = None, version: Optional[str] = None):
        return self.trace_pipeline.get_tracer(name or self.app_name, version or self.app_version or None)

    def get_meter(self, name: Optional[str] = None, version: Optional[str] = None):
        return self.metric_pipeline.get_meter(name or self.app_name, version or self.app_version or None)

    def force_flush(self, timeout_millis: int = 30_000) -> bool:
        results = [pipeline.force_flush(timeout_millis) for pipeline in self.pipelines]
        return all(results)

    def shutdown(self, strict: bool = False) -> ShutdownReport:
        """Drain and close every pipeline, best effort.

        A failing pipeline is logged and recorded but never stops the others.
        The log pipeline goes last so those warnings are still exported.
        With ``strict`` the aggregated failures are raised as ShutdownError.
        """
        if self._closed:
            raise PipelineClosedError("telemetry provider already shut down")
        self._closed = True

        report = ShutdownReport()
        ordered = (self.trace_pipeline, self.metric_pipeline, self.log_pipeline)
        for pipeline in ordered:
            report.attempted.append(pipeline.kind.value)
            if pipeline is self.log_pipeline:
                for kind, err in report.failures.items():
                    self.bridge.report(logging.WARNING, "Failed to shutdown %s provider: %s", kind, err)
            try:
                pipeline.shutdown()
            except Exception as exc:
                report.failures[pipeline.kind.value] = exc
        if SignalKind.LOG.value in report.failures:
            # Log export is gone; this one only reaches the console.
            self.bridge.report(
                logging.WARNING,
                "Failed to shutdown log provider: %s",
                report.failures[SignalKind.LOG.value],
                console_only=True,
            )

        if strict:
            report.raise_for_failures()
        return report

    def detach(self) -> None:
        """Remove the bridge from its logger, freeing the slot for another provider.

        The bridge stays attached after ``shutdown`` so late records still reach the
        console and the closed-pipeline policy.
        """
        self.bridge.uninstall()

    def __enter__(self) -> "TelemetryProvider":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        try:
            if not self._closed:
                self.shutdown()
        finally:
            self.detach()

