from __future__ import annotations

import socket
from dataclasses import dataclass
from typing import Callable

from lsprotocol.types import MessageType

from testaustime_ls.api import ActivityUpdate
from testaustime_ls.exceptions import NetworkError, PreconditionMissing
from testaustime_ls.protocol_log import LogFn, debug_log
from testaustime_ls.session import HEARTBEAT_INTERVAL_SECONDS, Session

UNKNOWN_HOSTNAME = "unknown"


@dataclass(frozen=True)
class HeartbeatEvent:
    is_write: bool = False
    language: str | None = None


def local_hostname() -> str:
    try:
        name = socket.gethostname()
    except OSError:
        return UNKNOWN_HOSTNAME
    return name or UNKNOWN_HOSTNAME


class HeartbeatDispatcher:
    """Turns editing events into debounced heartbeats.

    The heartbeat lock is held for the whole of ``dispatch``, network call
    included, so at most one heartbeat is in flight and every debounce
    decision sees the timestamp written by the previous one.
    """

    def __init__(
        self,
        session: Session,
        log: LogFn,
        *,
        hostname_fn: Callable[[], str] = local_hostname,
        interval_seconds: float = HEARTBEAT_INTERVAL_SECONDS,
    ) -> None:
        self._session = session
        self._log = log
        self._hostname_fn = hostname_fn
        self._interval = interval_seconds

    async def dispatch(self, event: HeartbeatEvent) -> bool:
        """Returns True when a heartbeat request was issued."""
        session = self._session
        async with session.heartbeat_lock:
            now = session.clock()
            if now - session.last_heartbeat < self._interval and not event.is_write:
                return False
            session.last_heartbeat = max(session.last_heartbeat, now)
            try:
                return await self._send(event)
            except PreconditionMissing as exc:
                self._log(MessageType.Error, exc.message)
                return False

    async def _send(self, event: HeartbeatEvent) -> bool:
        session = self._session
        async with session.api_client_lock:
            client = session.api_client
            if client is None:
                raise PreconditionMissing("API client not initialized")

            if event.language:
                session.remember_language(event.language)
                language = event.language
            else:
                language = session.last_language.load()

            project_name = session.workspace_name.load()
            if project_name is None:
                raise PreconditionMissing("Workspace name not set")

            activity = ActivityUpdate(
                project_name=project_name,
                language=language,
                hostname=self._hostname_fn(),
            )
            debug_log(
                self._log,
                session.debug_enabled(),
                f"Heartbeat data: {activity.model_dump()}",
            )
            try:
                await client.heartbeat(activity)
            except NetworkError as exc:
                self._log(MessageType.Error, f"Heartbeat failed: {exc.cause}")
            else:
                self._log(MessageType.Log, "Heartbeat sent successfully")
            return True
