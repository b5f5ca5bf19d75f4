# W3C trace-context propagation over plain dict carriers (bus headers, HTTP headers).
from __future__ import annotations

from typing import Dict, MutableMapping, Optional

from opentelemetry import propagate
from opentelemetry.context import Context
from opentelemetry.propagators.textmap import TextMapPropagator


def inject_trace(
    carrier: MutableMapping[str, str],
    context: Optional[Context] = None,
    propagator: Optional[TextMapPropagator] = None,
) -> MutableMapping[str, str]:
    """Write ``traceparent``/``tracestate`` for ``context`` (default: current) into ``carrier``."""
    if propagator is None:
        propagate.inject(carrier, context=context)
    else:
        propagator.inject(carrier, context=context)
    return carrier


def extract_trace(
    carrier: Dict[str, str],
    context: Optional[Context] = None,
    propagator: Optional[TextMapPropagator] = None,
) -> Context:
    if propagator is None:
        return propagate.extract(carrier, context=context)
    return propagator.extract(carrier, context=context)
