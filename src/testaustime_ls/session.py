from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Generic, TypeVar

from testaustime_ls.api import APIClient
from testaustime_ls.config import Settings

T = TypeVar("T")

UNKNOWN_LANGUAGE = "Unknown"
HEARTBEAT_INTERVAL_SECONDS = 30.0

Clock = Callable[[], float]


class SwapCell(Generic[T]):
    """Holds a value that is only ever replaced whole.

    Readers get either the old or the new value. Writers serialize on a lock
    and never block readers.
    """

    def __init__(self, value: T) -> None:
        self._value = value
        self._write_lock = threading.Lock()

    def load(self) -> T:
        return self._value

    def swap(self, value: T) -> T:
        with self._write_lock:
            previous = self._value
            self._value = value
            return previous


def _initial_heartbeat(clock: Clock) -> float:
    return clock() - (HEARTBEAT_INTERVAL_SECONDS + 1.0)


@dataclass
class Session:
    """Process-lifetime state shared by every protocol handler."""

    clock: Clock = time.monotonic
    settings: SwapCell[Settings] = field(default_factory=lambda: SwapCell(Settings()))
    workspace_name: SwapCell[str | None] = field(default_factory=lambda: SwapCell(None))
    last_language: SwapCell[str] = field(
        default_factory=lambda: SwapCell(UNKNOWN_LANGUAGE)
    )
    api_client: APIClient | None = None
    heartbeat_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    api_client_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_heartbeat: float = field(init=False)

    def __post_init__(self) -> None:
        self.last_heartbeat = _initial_heartbeat(self.clock)

    def remember_language(self, language: str) -> None:
        if language:
            self.last_language.swap(language)

    def debug_enabled(self) -> bool:
        return self.settings.load().debug_enabled
