# Fans every stdlib log record out to: log export, trace export (span events),
# and a local human-readable console. One shared verbosity filter in front of all three.
from __future__ import annotations

import logging
import sys
import threading
from datetime import datetime
from typing import Dict, List, Optional, Sequence, TextIO, Tuple

from opentelemetry import trace
from opentelemetry.sdk._logs import LoggingHandler
from opentelemetry.sdk.trace import ReadableSpan, SpanProcessor

from .errors import ConstructionError, DuplicateInstallationError
from .pipelines import LogPipeline, TracePipeline

# Transport/exporter libraries whose own records would feed back into export.
DEFAULT_DENYLIST = ("opentelemetry", "grpc", "urllib3", "requests", "h2", "hpack", "charset_normalizer")

_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "off": logging.CRITICAL + 10,
}

# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_FIELDS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

_install_lock = threading.Lock()
_installed: Dict[str, "InstrumentationBridge"] = {}
# The "opentelemetry" logger is process-wide: one installed bridge prints its diagnostics.
_diagnostics_owner: Optional["InstrumentationBridge"] = None


def _parse_level(value: str) -> int:
    try:
        return _LEVELS[value.strip().strip("'\"").lower()]
    except KeyError:
        raise ConstructionError(f"unknown log level {value!r}", "log") from None


def _matches(name: str, prefix: str) -> bool:
    return name == prefix or name.startswith(prefix + ".")


def _internal(record: logging.LogRecord) -> bool:
    return _matches(record.name, "svc_obs")


class VerbosityFilter(logging.Filter):
    """``info,svc_obs=debug`` style verbosity plus a hard denylist of component names."""

    def __init__(self, directive: str = "info", denylist: Sequence[str] = DEFAULT_DENYLIST) -> None:
        super().__init__()
        self.default_level = logging.INFO
        self.directives: List[Tuple[str, int]] = []
        self.denylist = tuple(denylist)
        for part in (directive or "info").split(","):
            part = part.strip()
            if not part:
                continue
            if "=" in part:
                name, level = part.split("=", 1)
                self.directives.append((name.strip(), _parse_level(level)))
            else:
                self.default_level = _parse_level(part)
        # longest prefix first
        self.directives.sort(key=lambda item: len(item[0]), reverse=True)

    @property
    def min_level(self) -> int:
        return min([self.default_level] + [level for _, level in self.directives])

    def level_for(self, name: str) -> int:
        for prefix, level in self.directives:
            if _matches(name, prefix):
                return level
        return self.default_level

    def filter(self, record: logging.LogRecord) -> bool:
        if any(_matches(record.name, denied) for denied in self.denylist):
            return False
        return record.levelno >= self.level_for(record.name)


class ConsoleFormatter(logging.Formatter):
    """``12:34:56.123456  INFO [svc] MainThread(140...) target:42: message k=v``"""

    def __init__(self, service_name: str = "") -> None:
        super().__init__()
        self.service_name = service_name

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        return datetime.fromtimestamp(record.created).strftime(datefmt or "%H:%M:%S.%f")

    def format(self, record: logging.LogRecord) -> str:
        extras = " ".join(
            f"{key}={value}" for key, value in vars(record).items() if key not in _RECORD_FIELDS
        )
        line = (
            f"{self.formatTime(record)} {record.levelname:>5} [{self.service_name}] "
            f"{record.threadName}({record.thread}) {record.name}:{record.lineno}: {record.getMessage()}"
        )
        if extras:
            line = f"{line} {extras}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class _LogExportHandler(LoggingHandler):
    def __init__(self, pipeline: LogPipeline) -> None:
        super().__init__(logger_provider=pipeline.provider)
        self._pipeline = pipeline

    def emit(self, record: logging.LogRecord) -> None:
        if not self._pipeline.closed:
            super().emit(record)

    def flush(self) -> None:
        # The provider is flushed/shut down by its pipeline.
        pass


class _SpanEventHandler(logging.Handler):
    """Attaches each record as an event on the active span."""

    def __init__(self, pipeline: TracePipeline) -> None:
        super().__init__()
        self._pipeline = pipeline

    def emit(self, record: logging.LogRecord) -> None:
        if self._pipeline.closed:
            return
        span = trace.get_current_span()
        if not span.is_recording():
            return
        span.add_event(
            record.getMessage(),
            attributes={
                "log.severity": record.levelname,
                "log.target": record.name,
                "code.lineno": record.lineno,
            },
        )


class _ClosedPipelineGuard(logging.Handler):
    """Runs after every consumer: applies the closed policy once the record has been printed."""

    def __init__(self, *pipelines) -> None:
        super().__init__()
        self._pipelines = pipelines

    def emit(self, record: logging.LogRecord) -> None:
        if _internal(record):
            return
        for pipeline in self._pipelines:
            pipeline.ensure_open()


class _SpanCloseProcessor(SpanProcessor):
    """Prints span-close lifecycle events through the console consumer only."""

    def __init__(self, handler: logging.Handler) -> None:
        self._handler = handler

    def on_end(self, span: ReadableSpan) -> None:
        duration_ms = 0.0
        if span.end_time is not None and span.start_time is not None:
            duration_ms = (span.end_time - span.start_time) / 1e6
        scope = span.instrumentation_scope.name if span.instrumentation_scope else "span"
        record = logging.LogRecord(scope, logging.INFO, "", 0, "close %s", (span.name,), None)
        record.duration_ms = round(duration_ms, 3)
        self._handler.handle(record)


def _claim_diagnostics(bridge: Optional["InstrumentationBridge"]) -> None:
    # Caller holds _install_lock.
    global _diagnostics_owner
    otel_logger = logging.getLogger("opentelemetry")
    if _diagnostics_owner is not None:
        otel_logger.removeHandler(_diagnostics_owner.diagnostics_handler)
    _diagnostics_owner = bridge
    if bridge is not None:
        otel_logger.addHandler(bridge.diagnostics_handler)


class InstrumentationBridge:
    """Composes the log-export, trace-export and console consumers, in that order."""

    def __init__(
        self,
        log_pipeline: LogPipeline,
        trace_pipeline: TracePipeline,
        *,
        level: str = "info",
        service_name: str = "",
        stream: Optional[TextIO] = None,
        denylist: Sequence[str] = DEFAULT_DENYLIST,
    ) -> None:
        self.filter = VerbosityFilter(level, denylist)
        self.formatter = ConsoleFormatter(service_name)

        self.console_handler = logging.StreamHandler(stream or sys.stdout)
        self.console_handler.setFormatter(self.formatter)
        self.handlers: List[logging.Handler] = [
            _LogExportHandler(log_pipeline),
            _SpanEventHandler(trace_pipeline),
            self.console_handler,
        ]
        for handler in self.handlers:
            handler.addFilter(self.filter)
        self.guard = _ClosedPipelineGuard(log_pipeline, trace_pipeline)
        self.guard.addFilter(self.filter)

        # Export failures are reported by the SDK on its own loggers; show them
        # locally without routing them back into the log pipeline.
        self.diagnostics_handler = logging.StreamHandler(self.console_handler.stream)
        self.diagnostics_handler.setFormatter(self.formatter)
        self.diagnostics_handler.setLevel(logging.WARNING)

        trace_pipeline.provider.add_span_processor(_SpanCloseProcessor(self.console_handler))

        self.logger: Optional[logging.Logger] = None
        self._previous_level = logging.NOTSET

    def report(self, level: int, msg: str, *args, console_only: bool = False) -> None:
        """Emit the bridge's own record straight to its consumers, whatever logger it sits on."""
        record = logging.LogRecord("svc_obs", level, __file__, 0, msg, args, None)
        for handler in [self.console_handler] if console_only else self.handlers:
            handler.handle(record)

    @property
    def installed(self) -> bool:
        return self.logger is not None

    def install(self, logger: Optional[logging.Logger] = None) -> None:
        """Attach to ``logger`` (root by default). One bridge per logger per process."""
        target = logger or logging.getLogger()
        with _install_lock:
            if self.installed or target.name in _installed:
                raise DuplicateInstallationError(
                    f"an instrumentation bridge is already installed on logger {target.name!r}"
                )
            _installed[target.name] = self
            self.logger = target
            if _diagnostics_owner is None:
                _claim_diagnostics(self)
        self._previous_level = target.level
        target.setLevel(self.filter.min_level)
        for handler in self.handlers + [self.guard]:
            target.addHandler(handler)

    def uninstall(self) -> None:
        target = self.logger
        if target is None:
            return
        for handler in self.handlers + [self.guard]:
            target.removeHandler(handler)
        target.setLevel(self._previous_level)
        self.console_handler.flush()
        with _install_lock:
            if _installed.get(target.name) is self:
                del _installed[target.name]
            self.logger = None
            if _diagnostics_owner is self:
                _claim_diagnostics(_installed.get("root") or next(iter(_installed.values()), None))
