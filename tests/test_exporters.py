"""Tests for exporter construction."""

from __future__ import annotations

import pytest
from opentelemetry.sdk.metrics import Counter, Histogram, UpDownCounter
from opentelemetry.sdk.metrics.export import AggregationTemporality, MetricExporter
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from svc_obs import ConstructionError, ExportError, Temporality, WireProtocol
from svc_obs import exporters
from svc_obs.exporters import SignalKind, build_exporter, track


class TestGrpcExporters:
    def test_trace(self) -> None:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        exporter = build_exporter(SignalKind.TRACE, "http://localhost:4317", WireProtocol.GRPC, 3.0)
        assert isinstance(exporter, OTLPSpanExporter)
        exporter.shutdown()

    def test_log_without_scheme(self) -> None:
        from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter

        exporter = build_exporter("log", "localhost:4317", "grpc", 5.0)
        assert isinstance(exporter, OTLPLogExporter)
        exporter.shutdown()

    def test_metric(self) -> None:
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter

        exporter = build_exporter(SignalKind.METRIC, "http://localhost:4317", "grpc", 5.0, Temporality.DELTA)
        assert isinstance(exporter, OTLPMetricExporter)
        exporter.shutdown()


class TestHttpExporters:
    def test_trace(self) -> None:
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

        exporter = build_exporter(SignalKind.TRACE, "http://localhost:4318", "http_json", 3.0)
        assert isinstance(exporter, OTLPSpanExporter)

    def test_log(self) -> None:
        from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter

        assert isinstance(build_exporter(SignalKind.LOG, "http://localhost:4318", "http", 5.0), OTLPLogExporter)

    def test_metric(self) -> None:
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter

        assert isinstance(build_exporter(SignalKind.METRIC, "http://localhost:4318", "http", 5.0), OTLPMetricExporter)


class TestUrlValidation:
    @pytest.mark.parametrize(
        ("kind", "expected"),
        [
            (SignalKind.TRACE, "http://collector:4318/v1/traces"),
            (SignalKind.LOG, "http://collector:4318/v1/logs"),
            (SignalKind.METRIC, "http://collector:4318/v1/metrics"),
        ],
    )
    def test_http_gets_signal_path(self, kind, expected) -> None:
        assert exporters._check_url(kind, "http://collector:4318", WireProtocol.HTTP_JSON) == expected

    def test_http_keeps_explicit_path(self) -> None:
        url = "https://collector/otlp/v1/traces"
        assert exporters._check_url(SignalKind.TRACE, url, WireProtocol.HTTP_JSON) == url

    def test_grpc_url_untouched(self) -> None:
        assert exporters._check_url(SignalKind.TRACE, "localhost:4317", WireProtocol.GRPC) == "localhost:4317"

    @pytest.mark.parametrize(
        ("url", "protocol"),
        [
            ("", WireProtocol.GRPC),
            ("ftp://collector:4317", WireProtocol.GRPC),
            ("http://", WireProtocol.GRPC),
            ("http://collector:notaport", WireProtocol.GRPC),
            ("collector:4318", WireProtocol.HTTP_JSON),
        ],
    )
    def test_invalid_urls(self, url, protocol) -> None:
        with pytest.raises(ConstructionError, match="^trace:"):
            build_exporter(SignalKind.TRACE, url, protocol, 3.0)


class TestFailures:
    def test_unknown_protocol_never_constructs(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def _fail(*args, **kwargs):
            raise AssertionError("exporter constructor must not run")

        monkeypatch.setattr(exporters, "_grpc_exporter", _fail)
        monkeypatch.setattr(exporters, "_http_exporter", _fail)
        with pytest.raises(ConstructionError):
            build_exporter(SignalKind.TRACE, "http://localhost:4317", "quic", 3.0)

    def test_constructor_failure_is_wrapped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def _boom(*args, **kwargs):
            raise RuntimeError("no channel")

        monkeypatch.setattr(exporters, "_grpc_exporter", _boom)
        with pytest.raises(ConstructionError, match="metric: failed to create OTLP grpc exporter") as info:
            build_exporter(SignalKind.METRIC, "http://localhost:4317", "grpc", 5.0)
        assert isinstance(info.value.__cause__, RuntimeError)
        assert info.value.signal == "metric"

    def test_non_positive_timeout(self) -> None:
        with pytest.raises(ConstructionError, match="timeout"):
            build_exporter(SignalKind.LOG, "http://localhost:4317", "grpc", 0)


class TestTemporality:
    def test_cumulative(self) -> None:
        mapping = exporters._temporality_map(Temporality.CUMULATIVE)
        assert set(mapping.values()) == {AggregationTemporality.CUMULATIVE}

    def test_delta_keeps_up_down_counters_cumulative(self) -> None:
        mapping = exporters._temporality_map(Temporality.DELTA)
        assert mapping[Counter] is AggregationTemporality.DELTA
        assert mapping[Histogram] is AggregationTemporality.DELTA
        assert mapping[UpDownCounter] is AggregationTemporality.CUMULATIVE


class TestExportTracker:
    def test_remembers_last_result(self) -> None:
        inner = InMemorySpanExporter()
        tracker = track(inner, "trace", "http://collector:4317")
        assert tracker.failure() is None

        inner.shutdown()
        tracker.export([])
        error = tracker.failure()
        assert isinstance(error, ExportError)
        assert str(error) == "trace export to http://collector:4317 failed: exporter returned FAILURE"

    def test_exception_counts_as_failure(self) -> None:
        class _Broken:
            def export(self, batch):
                raise ConnectionError("refused")

        tracker = track(_Broken(), SignalKind.LOG, "http://collector:4317")
        with pytest.raises(ConnectionError):
            tracker.export([])
        assert "ConnectionError: refused" in str(tracker.failure())

    def test_metric_tracker_keeps_temporality(self) -> None:
        inner = build_exporter(SignalKind.METRIC, "http://localhost:4317", "grpc", 1.0, Temporality.DELTA)
        tracker = track(inner, SignalKind.METRIC, "http://localhost:4317")
        try:
            assert isinstance(tracker, MetricExporter)
            assert tracker._preferred_temporality[Counter] is AggregationTemporality.DELTA
            assert tracker._preferred_temporality[UpDownCounter] is AggregationTemporality.CUMULATIVE
        finally:
            tracker.shutdown()
