# Process-wide convenience wrapper: one TelemetryProvider, globals installed,
# bridge on the root logger. Call init() once at startup and shutdown() at exit.
from __future__ import annotations

import threading
from dataclasses import replace
from typing import Any, Dict, Optional

from .config import TelemetryConfig
from .errors import DuplicateInstallationError, PipelineClosedError
from .provider import ShutdownReport, TelemetryProvider
from .resource import SERVICE_ENVIRONMENT, SERVICE_NAME, SERVICE_VERSION, default_resource_attributes

_lock = threading.Lock()
_global_provider: Optional[TelemetryProvider] = None


def init(
    service_name: Optional[str] = None,
    service_version: Optional[str] = None,
    environment: Optional[str] = None,
    collector_endpoint: Optional[str] = None,
    protocol: Optional[str] = None,
    extra_attributes: Optional[Dict[str, Any]] = None,
    config: Optional[TelemetryConfig] = None,
    **provider_kwargs: Any,
) -> TelemetryProvider:
    """Initialize global observability.

    Unset identity values come from APP_NAME / APP_VERSION / ENVIRONMENT, unset
    endpoint and protocol from TELEMETRY_URL / TELEMETRY_PROTOCOL.
    """
    global _global_provider
    attributes = default_resource_attributes()
    for key, value in ((SERVICE_NAME, service_name), (SERVICE_VERSION, service_version), (SERVICE_ENVIRONMENT, environment)):
        if value:
            attributes[key] = value
    attributes.update(extra_attributes or {})

    if config is None:
        config = TelemetryConfig.from_env()
        if collector_endpoint:
            config = replace(config, trace_url=collector_endpoint, log_url=collector_endpoint, metric_url=collector_endpoint)
        if protocol:
            config = replace(config, protocol=protocol)

    with _lock:
        if _global_provider is not None:
            raise DuplicateInstallationError("observability already initialized; call shutdown() first")
        provider_kwargs.setdefault("install_globals", True)
        _global_provider = TelemetryProvider(config, attributes, **provider_kwargs)
        return _global_provider


def get_provider() -> TelemetryProvider:
    if _global_provider is None:
        raise PipelineClosedError("observability is not initialized")
    return _global_provider


def shutdown(strict: bool = False) -> Optional[ShutdownReport]:
    """Flush and close the global provider. No-op when nothing was initialized."""
    global _global_provider
    with _lock:
        provider, _global_provider = _global_provider, None
    if provider is None:
        return None
    try:
        return provider.shutdown(strict=strict)
    finally:
        provider.detach()
