# Structured logging facade: ``log.info("msg", key=value)``.
# Records go through stdlib logging, so whatever bridge is installed receives them.

from __future__ import annotations
import logging
from typing import Any, Protocol

_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

class _GlobalLogger(Protocol):
    def debug(self, msg: str, **kv: Any) -> None: ...
    def info(self, msg: str, **kv: Any) -> None: ...
    def warn(self, msg: str, **kv: Any) -> None: ...
    def error(self, msg: str, **kv: Any) -> None: ...

def _extra(kv: dict[str, Any]) -> dict[str, Any]:
    # LogRecord refuses to overwrite its own attributes.
    return {(f"attr.{k}" if k in _RESERVED else k): v for k, v in kv.items()}

class _StructuredLogger:
    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _emit(self, level: int, msg: str, kv: dict[str, Any]) -> None:
        # stacklevel=3 so the record points at the caller, not this facade
        self._logger.log(level, msg, extra=_extra(kv), stacklevel=3)

    def debug(self, msg: str, **kv: Any) -> None: self._emit(logging.DEBUG, msg, kv)
    def info(self, msg: str, **kv: Any) -> None: self._emit(logging.INFO, msg, kv)
    def warn(self, msg: str, **kv: Any) -> None: self._emit(logging.WARNING, msg, kv)
    def error(self, msg: str, **kv: Any) -> None: self._emit(logging.ERROR, msg, kv)

def get_logger(name: str = "app") -> _GlobalLogger:
    return _StructuredLogger(logging.getLogger(name))
