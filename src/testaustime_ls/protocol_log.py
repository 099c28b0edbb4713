"""Log sites that report to the editor through ``window/logMessage``."""

from __future__ import annotations

from typing import Callable, Protocol

from lsprotocol.types import LogMessageParams, MessageType

LogFn = Callable[[MessageType, str], None]

DEBUG_PREFIX = "DEBUG: "


class _LogMessageSink(Protocol):
    def window_log_message(self, params: LogMessageParams) -> None: ...


def log_message(ls: _LogMessageSink, kind: MessageType, message: str) -> None:
    ls.window_log_message(LogMessageParams(type=kind, message=message))


def logger_for(ls: _LogMessageSink) -> LogFn:
    def _log(kind: MessageType, message: str) -> None:
        log_message(ls, kind, message)

    return _log


def debug_log(log: LogFn, enabled: bool, message: str) -> None:
    if enabled:
        log(MessageType.Info, f"{DEBUG_PREFIX}{message}")
