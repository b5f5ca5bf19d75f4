# Error taxonomy for the telemetry core. Everything derives from TelemetryError.
from __future__ import annotations

from typing import Dict, Optional


class TelemetryError(Exception):
    """Base class for every error raised by svc_obs."""


class ConstructionError(TelemetryError):
    """Fatal: telemetry could not be built (bad protocol, bad URL, missing attribute...)."""

    def __init__(self, message: str, signal: Optional[str] = None) -> None:
        if signal:
            message = f"{signal}: {message}"
        super().__init__(message)
        self.signal = signal


class ExportError(TelemetryError):
    """A pipeline's final drain did not reach its collector. Raised from shutdown, never at emit sites."""


class ShutdownError(TelemetryError):
    """One or more pipelines failed to shut down cleanly."""

    def __init__(self, failures: Dict[str, BaseException]) -> None:
        detail = "; ".join(f"{kind}: {err!r}" for kind, err in failures.items())
        super().__init__(f"telemetry shutdown failed ({detail})")
        self.failures = dict(failures)


class DuplicateInstallationError(TelemetryError):
    """A second instrumentation bridge was installed on the same logger."""


class PipelineClosedError(TelemetryError):
    """Operation on a pipeline (or provider) that has already been shut down."""
