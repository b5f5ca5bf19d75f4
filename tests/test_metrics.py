"""Tests for the ready-made request instruments."""

from __future__ import annotations

import pytest

from svc_obs import PipelineClosedError
from svc_obs.metrics import REQUEST_DURATION, REQUESTS_ERROR_TOTAL, REQUESTS_OK_TOTAL, REQUESTS_TOTAL


def _points(exporters, name, **attrs):
    return [p for p in exporters.metrics.data_points(name) if all(p.attributes.get(k) == v for k, v in attrs.items())]


class TestMetrics:
    def test_counter_sum_keeps_attributes(self, telemetry, exporters) -> None:
        for value in range(0, 100, 10):
            telemetry.metrics.increment_request_counter(value, {"test": "true"})
        telemetry.force_flush()

        (point,) = _points(exporters, REQUESTS_TOTAL, test="true")
        assert point.value == 450
        assert point.attributes["service.name"] == "svc"

    def test_default_weight(self, telemetry, exporters) -> None:
        telemetry.metrics.increment_request_counter()
        telemetry.metrics.increment_request_counter()
        telemetry.force_flush()
        assert [p.value for p in _points(exporters, REQUESTS_TOTAL)] == [2]

    def test_any_attributes_accepted(self, telemetry, exporters) -> None:
        for i in range(3):
            telemetry.metrics.increment_error_counter(attributes={"request_id": f"r-{i}", "retry": bool(i)})
        telemetry.force_flush()
        assert len(_points(exporters, REQUESTS_ERROR_TOTAL)) == 3

    def test_track_request_ok(self, telemetry, exporters) -> None:
        with telemetry.metrics.track_request({"route": "/orders"}):
            pass
        telemetry.force_flush()
        assert [p.value for p in _points(exporters, REQUESTS_TOTAL, route="/orders")] == [1]
        assert [p.value for p in _points(exporters, REQUESTS_OK_TOTAL, route="/orders")] == [1]
        assert _points(exporters, REQUESTS_ERROR_TOTAL) == []
        (duration,) = _points(exporters, REQUEST_DURATION, route="/orders")
        assert duration.count == 1

    def test_track_request_error(self, telemetry, exporters) -> None:
        with pytest.raises(KeyError):
            with telemetry.metrics.track_request():
                raise KeyError("missing")
        telemetry.force_flush()
        assert [p.value for p in _points(exporters, REQUESTS_ERROR_TOTAL)] == [1]
        assert _points(exporters, REQUESTS_OK_TOTAL) == []

    def test_duration_histogram(self, telemetry, exporters) -> None:
        for seconds in (0.1, 0.2, 0.3):
            telemetry.metrics.record_request_duration(seconds)
        telemetry.force_flush()
        (point,) = _points(exporters, REQUEST_DURATION)
        assert point.count == 3
        assert point.sum == pytest.approx(0.6)

    def test_after_close_dropped(self, telemetry) -> None:
        telemetry.shutdown()
        telemetry.metrics.increment_request_counter()
        telemetry.metrics.record_request_duration(1.0)

    def test_after_close_raises(self, build) -> None:
        provider = build(closed_policy="raise")
        provider.shutdown()
        with pytest.raises(PipelineClosedError):
            provider.metrics.increment_request_counter()
