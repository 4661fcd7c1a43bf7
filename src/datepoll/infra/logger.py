from __future__ import annotations

from typing import Optional

from ..scheduling.ports import LoggerPort
from .config import LOG_LEVEL

_LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "WARNING": 30, "ERROR": 40}


def _format_fields(fields: dict) -> str:
    return " ".join(f"{k}={v}" for k, v in fields.items() if v is not None)


class PrintLogger(LoggerPort):
    """
    Line-oriented logger: ``[scope] message key=value ...`` on stdout,
    which CloudWatch picks up as-is from Lambda.
    """

    def __init__(self, scope: str, level: str = LOG_LEVEL) -> None:
        self.scope = scope
        self.threshold = _LEVELS.get((level or "INFO").upper(), 20)

    def _emit(self, level: str, message: str, fields: dict) -> None:
        if _LEVELS[level] < self.threshold:
            return
        tail = _format_fields(fields)
        prefix = f"[{self.scope}]" if level == "INFO" else f"[{self.scope}] {level}"
        print(f"{prefix} {message}" + (f" {tail}" if tail else ""))

    def debug(self, message: str, **fields) -> None:
        self._emit("DEBUG", message, fields)

    def info(self, message: str, **fields) -> None:
        self._emit("INFO", message, fields)

    def warn(self, message: str, **fields) -> None:
        self._emit("WARN", message, fields)

    def error(self, message: str, error: Optional[BaseException] = None, **fields) -> None:
        if error is not None:
            fields = {**fields, "err": repr(error)}
        self._emit("ERROR", message, fields)
