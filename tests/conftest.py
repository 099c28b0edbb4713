from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

ROOT = Path(__file__).resolve().parents[1]
for entry in (ROOT, ROOT / "src"):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))


import httpx
import pytest

from testaustime_ls.api import APIClient
from testaustime_ls.config import Settings
from testaustime_ls.dispatcher import HeartbeatDispatcher
from testaustime_ls.protocol_log import logger_for
from testaustime_ls.session import Session


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class LogRecorder:
    def __init__(self) -> None:
        self.entries: list[tuple[int, str]] = []

    def window_log_message(self, params) -> None:
        self.entries.append((int(params.type), params.message))

    def messages(self, kind: int | None = None) -> list[str]:
        return [message for level, message in self.entries if kind is None or level == kind]


class FakeApi:
    """Records requests and answers them from a per-path status table."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status: dict[str, int] = {}
        self.bodies: dict[str, object] = {"/users/@me": {"username": "alice"}}
        self.error: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        path = request.url.path
        return httpx.Response(self.status.get(path, 200), json=self.bodies.get(path))

    def http_client_factory(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def client(self, api_key: str, base_url: str | None = None) -> APIClient:
        return APIClient(api_key, base_url, http_client_factory=self.http_client_factory)

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def make_ls(clock: FakeClock, fake_api: FakeApi):
    def _make(*, fallback_settings: Settings | None = None, hostname: str = "devbox"):
        recorder = LogRecorder()
        session = Session(clock=clock)
        ls = SimpleNamespace(
            session=session,
            fallback_settings=fallback_settings or Settings(),
            api_client_factory=fake_api.client,
            window_log_message=recorder.window_log_message,
            recorder=recorder,
        )
        ls.dispatcher = HeartbeatDispatcher(
            session, logger_for(ls), hostname_fn=lambda: hostname
        )
        return ls

    return _make
