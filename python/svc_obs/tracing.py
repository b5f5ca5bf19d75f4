# Span helpers. Pass the provider's tracer explicitly, or fall back to the global one.
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional

from opentelemetry import trace
from opentelemetry.trace import Span, Tracer


def _coerce(value: Any) -> Any:
    if isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, (list, tuple)):
        # OTLP arrays must be homogeneous.
        if len({type(item) for item in value}) <= 1 and all(isinstance(item, (str, bool, int, float)) for item in value):
            return list(value)
        return [str(item) for item in value]
    return str(value)


@contextmanager
def start_span(
    name: str,
    attributes: Optional[Mapping[str, Any]] = None,
    tracer: Optional[Tracer] = None,
) -> Iterator[Span]:
    """``with start_span("op", {"k": "v"}) as span:``; exceptions mark the span as errored."""
    tracer = tracer or trace.get_tracer("svc_obs")
    with tracer.start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, _coerce(value))
        yield span
