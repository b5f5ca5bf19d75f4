"""Shared fixtures: in-memory exporters injected through the exporter-factory seam."""

from __future__ import annotations

import io
import logging
from typing import Any, List

import pytest
from opentelemetry.sdk._logs.export import InMemoryLogExporter
from opentelemetry.sdk.metrics.export import MetricExporter, MetricExportResult
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from svc_obs import BatchingPolicy, TelemetryConfig, TelemetryProvider
from svc_obs.exporters import SignalKind


class RecordingMetricExporter(MetricExporter):
    def __init__(self) -> None:
        super().__init__()
        self.exported: List[Any] = []
        self.shut_down = False
        # Set to FAILURE to play a collector that rejects everything.
        self.result = MetricExportResult.SUCCESS

    def export(self, metrics_data, timeout_millis: float = 10_000, **kwargs) -> MetricExportResult:
        self.exported.append(metrics_data)
        return self.result

    def force_flush(self, timeout_millis: float = 10_000) -> bool:
        return True

    def shutdown(self, timeout_millis: float = 30_000, **kwargs) -> None:
        self.shut_down = True

    def data_points(self, name: str) -> list:
        points = []
        for metrics_data in self.exported:
            for resource_metrics in metrics_data.resource_metrics:
                for scope_metrics in resource_metrics.scope_metrics:
                    for metric in scope_metrics.metrics:
                        if metric.name == name:
                            points.extend(metric.data.data_points)
        return points


class RecordingExporterFactory:
    """Stands in for ``build_exporter``; records every call."""

    def __init__(self) -> None:
        self.spans = InMemorySpanExporter()
        self.logs = InMemoryLogExporter()
        self.metrics = RecordingMetricExporter()
        self.calls: List[tuple] = []

    def __call__(self, kind, url, protocol, timeout, temporality=None):
        kind = SignalKind(kind)
        self.calls.append((kind, url, protocol, timeout))
        return {SignalKind.TRACE: self.spans, SignalKind.LOG: self.logs, SignalKind.METRIC: self.metrics}[kind]

    def log_bodies(self) -> list:
        return [str(item.log_record.body) for item in self.logs.get_finished_logs()]


def _make_config(**kwargs: Any) -> TelemetryConfig:
    # Long delays: nothing is exported unless a test flushes or shuts down.
    kwargs.setdefault("trace_policy", BatchingPolicy(max_queue_size=64, max_export_batch_size=16, scheduled_delay=60.0))
    kwargs.setdefault("log_policy", BatchingPolicy(max_queue_size=64, max_export_batch_size=16, scheduled_delay=60.0))
    kwargs.setdefault("metric_policy", BatchingPolicy(periodic_interval=60.0))
    return TelemetryConfig.for_endpoint("http://localhost:4317", "grpc", **kwargs)


@pytest.fixture
def make_config():
    return _make_config


@pytest.fixture
def exporters() -> RecordingExporterFactory:
    return RecordingExporterFactory()


@pytest.fixture
def console() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def app_logger(request: pytest.FixtureRequest) -> logging.Logger:
    return logging.getLogger(f"tests.{request.node.name}")


@pytest.fixture
def build(exporters, console, app_logger):
    """Factory for providers wired to the in-memory exporters; cleaned up after the test."""
    created: List[TelemetryProvider] = []

    def _build(attributes=None, **config_kwargs: Any) -> TelemetryProvider:
        provider = TelemetryProvider(
            _make_config(**config_kwargs),
            attributes or {"service.name": "svc", "service.version": "1.2.3", "service.environment": "test"},
            logger=app_logger,
            stream=console,
            exporter_factory=exporters,
        )
        created.append(provider)
        return provider

    yield _build

    for provider in created:
        if not provider.closed:
            provider.shutdown()
        provider.detach()


@pytest.fixture
def telemetry(build) -> TelemetryProvider:
    return build()
