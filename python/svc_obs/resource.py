# Service identity shared (read-only) by the trace, log and metric pipelines.
from __future__ import annotations

import os
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Optional, Tuple, Union

from opentelemetry.sdk.resources import Resource

from .errors import ConstructionError

SERVICE_NAME = "service.name"
SERVICE_VERSION = "service.version"
SERVICE_ENVIRONMENT = "service.environment"

AttributeSource = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


class ResourceDescriptor(Mapping[str, Any]):
    """Immutable attribute set identifying the emitting service."""

    def __init__(self, attributes: AttributeSource, required: Iterable[str] = (SERVICE_NAME,)) -> None:
        attrs = dict(attributes.items() if isinstance(attributes, Mapping) else attributes)
        missing = [key for key in required if attrs.get(key) in (None, "")]
        if missing:
            raise ConstructionError(f"missing required resource attribute(s): {', '.join(missing)}", "resource")
        self._attributes = MappingProxyType(attrs)
        self._otel: Optional[Resource] = None

    def __getitem__(self, key: str) -> Any:
        return self._attributes[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._attributes)

    def __len__(self) -> int:
        return len(self._attributes)

    def __repr__(self) -> str:
        return f"ResourceDescriptor({dict(self._attributes)!r})"

    @property
    def app_name(self) -> str:
        return str(self._attributes.get(SERVICE_NAME, ""))

    @property
    def app_version(self) -> str:
        return str(self._attributes.get(SERVICE_VERSION, ""))

    @property
    def environment(self) -> str:
        return str(self._attributes.get(SERVICE_ENVIRONMENT, ""))

    def to_otel(self) -> Resource:
        # Built once; every pipeline shares the same Resource object.
        if self._otel is None:
            self._otel = Resource.create(dict(self._attributes))
        return self._otel


def default_resource_attributes(environ: Optional[Mapping[str, str]] = None) -> dict:
    """Identity attributes from APP_NAME / APP_VERSION / ENVIRONMENT."""
    from . import __version__

    env = os.environ if environ is None else environ
    return {
        SERVICE_NAME: env.get("APP_NAME") or "application",
        SERVICE_VERSION: env.get("APP_VERSION") or __version__,
        SERVICE_ENVIRONMENT: env.get("ENVIRONMENT") or "development",
        "job": "svc-observability",
    }
