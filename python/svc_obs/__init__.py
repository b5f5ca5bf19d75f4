__all__ = [
    "init", "shutdown", "get_provider", "get_logger",
    "TelemetryProvider", "TelemetryConfig", "ShutdownReport", "ResourceDescriptor", "Metrics",
    "WireProtocol", "Temporality", "ClosedPolicy", "BatchingPolicy",
    "TelemetryError", "ConstructionError", "ExportError", "ShutdownError",
    "DuplicateInstallationError", "PipelineClosedError",
]
__version__ = "0.1.0"

from .logging import get_logger
from .config import BatchingPolicy, ClosedPolicy, TelemetryConfig, Temporality, WireProtocol
from .errors import (
    ConstructionError, DuplicateInstallationError, ExportError, PipelineClosedError,
    ShutdownError, TelemetryError,
)
from .metrics import Metrics
from .resource import ResourceDescriptor
from .provider import ShutdownReport, TelemetryProvider
from .bootstrap import init, shutdown, get_provider
