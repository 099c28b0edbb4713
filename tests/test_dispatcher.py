from __future__ import annotations

import asyncio
import json
import socket

import httpx
from lsprotocol.types import MessageType

from testaustime_ls import dispatcher as dispatcher_module
from testaustime_ls.dispatcher import HeartbeatEvent, local_hostname


def _ready_ls(make_ls, fake_api, *, workspace: str | None = "myproj"):
    ls = make_ls()
    ls.session.api_client = fake_api.client("abc", "https://example.test")
    ls.session.workspace_name.swap(workspace)
    return ls


def _sent_bodies(fake_api) -> list[dict]:
    return [
        json.loads(request.content)
        for request in fake_api.requests
        if request.url.path == "/activity/update"
    ]


def test_change_burst_sends_once_until_window_elapses(make_ls, fake_api, clock) -> None:
    ls = _ready_ls(make_ls, fake_api)

    async def _burst() -> list[bool]:
        results = []
        for _ in range(5):
            results.append(await ls.dispatcher.dispatch(HeartbeatEvent()))
            clock.advance(5)
        return results

    assert asyncio.run(_burst()) == [True, False, False, False, False]
    assert len(_sent_bodies(fake_api)) == 1

    clock.advance(10)
    assert asyncio.run(ls.dispatcher.dispatch(HeartbeatEvent())) is True
    assert len(_sent_bodies(fake_api)) == 2


def test_skipped_event_leaves_state_untouched(make_ls, fake_api, clock) -> None:
    ls = _ready_ls(make_ls, fake_api)
    asyncio.run(ls.dispatcher.dispatch(HeartbeatEvent()))
    stamp = ls.session.last_heartbeat
    clock.advance(1)

    assert asyncio.run(ls.dispatcher.dispatch(HeartbeatEvent(language="rust"))) is False
    assert ls.session.last_heartbeat == stamp
    assert ls.session.last_language.load() == "Unknown"


def test_save_always_sends_and_resets_window(make_ls, fake_api, clock) -> None:
    ls = _ready_ls(make_ls, fake_api)

    async def _run() -> list[bool]:
        first = await ls.dispatcher.dispatch(HeartbeatEvent())
        clock.advance(20)
        save = await ls.dispatcher.dispatch(HeartbeatEvent(is_write=True))
        clock.advance(20)
        change = await ls.dispatcher.dispatch(HeartbeatEvent())
        clock.advance(10)
        later = await ls.dispatcher.dispatch(HeartbeatEvent())
        return [first, save, change, later]

    assert asyncio.run(_run()) == [True, True, False, True]
    assert ls.session.last_heartbeat == clock()


def test_exact_interval_boundary_sends(make_ls, fake_api, clock) -> None:
    ls = _ready_ls(make_ls, fake_api)

    async def _run() -> list[bool]:
        first = await ls.dispatcher.dispatch(HeartbeatEvent())
        clock.advance(29.5)
        early = await ls.dispatcher.dispatch(HeartbeatEvent())
        clock.advance(0.5)
        boundary = await ls.dispatcher.dispatch(HeartbeatEvent())
        return [first, early, boundary]

    clock.now = 0.0
    ls.session.last_heartbeat = -31.0
    assert asyncio.run(_run()) == [True, False, True]


def test_language_is_remembered_for_later_events(make_ls, fake_api, clock) -> None:
    ls = _ready_ls(make_ls, fake_api)

    asyncio.run(ls.dispatcher.dispatch(HeartbeatEvent(language="rust")))
    assert ls.session.last_language.load() == "rust"
    clock.advance(31)
    asyncio.run(ls.dispatcher.dispatch(HeartbeatEvent()))

    assert [body["language"] for body in _sent_bodies(fake_api)] == ["rust", "rust"]


def test_payload_carries_project_editor_and_host(make_ls, fake_api) -> None:
    ls = _ready_ls(make_ls, fake_api)
    asyncio.run(ls.dispatcher.dispatch(HeartbeatEvent(language="go")))
    assert _sent_bodies(fake_api) == [
        {
            "project_name": "myproj",
            "language": "go",
            "editor_name": "Zed",
            "hostname": "devbox",
        }
    ]
    assert "Heartbeat sent successfully" in ls.recorder.messages(MessageType.Log)


def test_missing_client_logs_and_consumes_window(make_ls, fake_api, clock) -> None:
    ls = make_ls()
    ls.session.workspace_name.swap("myproj")

    assert asyncio.run(ls.dispatcher.dispatch(HeartbeatEvent(language="go"))) is False

    assert fake_api.requests == []
    assert ls.session.last_heartbeat == clock()
    assert ls.recorder.messages(MessageType.Error) == ["API client not initialized"]
    clock.advance(1)
    assert asyncio.run(ls.dispatcher.dispatch(HeartbeatEvent())) is False
    assert len(ls.recorder.messages(MessageType.Error)) == 1


def test_missing_workspace_logs_and_consumes_window(make_ls, fake_api, clock) -> None:
    ls = _ready_ls(make_ls, fake_api, workspace=None)

    assert asyncio.run(ls.dispatcher.dispatch(HeartbeatEvent(language="go"))) is False

    assert fake_api.requests == []
    assert ls.session.last_heartbeat == clock()
    assert ls.session.last_language.load() == "go"
    assert ls.recorder.messages(MessageType.Error) == ["Workspace name not set"]


def test_send_failure_is_logged_not_raised(make_ls, fake_api) -> None:
    ls = _ready_ls(make_ls, fake_api)
    fake_api.status["/activity/update"] = 503

    assert asyncio.run(ls.dispatcher.dispatch(HeartbeatEvent(is_write=True))) is True

    errors = ls.recorder.messages(MessageType.Error)
    assert len(errors) == 1
    assert errors[0].startswith("Heartbeat failed: ")


def test_debug_logs_include_payload_when_enabled(make_ls, fake_api) -> None:
    from testaustime_ls.config import Settings

    ls = _ready_ls(make_ls, fake_api)
    ls.session.settings.swap(Settings(debug_logs=True))
    asyncio.run(ls.dispatcher.dispatch(HeartbeatEvent(language="go")))

    debug = [m for m in ls.recorder.messages(MessageType.Info) if m.startswith("DEBUG: ")]
    assert len(debug) == 1
    assert "'language': 'go'" in debug[0]


def test_concurrent_dispatches_never_overlap(make_ls, clock) -> None:
    ls = make_ls()
    ls.session.workspace_name.swap("myproj")
    state = {"in_flight": 0, "max_in_flight": 0, "sent": 0}

    async def _slow_handler(request: httpx.Request) -> httpx.Response:
        state["in_flight"] += 1
        state["max_in_flight"] = max(state["max_in_flight"], state["in_flight"])
        await asyncio.sleep(0.01)
        state["in_flight"] -= 1
        state["sent"] += 1
        return httpx.Response(200)

    from testaustime_ls.api import APIClient

    ls.session.api_client = APIClient(
        "abc",
        "https://example.test",
        http_client_factory=lambda: httpx.AsyncClient(
            transport=httpx.MockTransport(_slow_handler)
        ),
    )

    async def _run() -> list[bool]:
        events = [HeartbeatEvent(), HeartbeatEvent(), HeartbeatEvent(is_write=True)]
        return list(await asyncio.gather(*(ls.dispatcher.dispatch(e) for e in events)))

    assert asyncio.run(_run()) == [True, False, True]
    assert state["sent"] == 2
    assert state["max_in_flight"] == 1


def test_local_hostname_falls_back_to_unknown(monkeypatch) -> None:
    def _boom() -> str:
        raise OSError("no host")

    monkeypatch.setattr(dispatcher_module.socket, "gethostname", _boom)
    assert local_hostname() == "unknown"
    monkeypatch.setattr(dispatcher_module.socket, "gethostname", lambda: "")
    assert local_hostname() == "unknown"


def test_local_hostname_reads_os_name(monkeypatch) -> None:
    monkeypatch.setattr(socket, "gethostname", lambda: "devbox")
    assert local_hostname() == "devbox"
