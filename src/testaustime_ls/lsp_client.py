"""Blocking stdio client that drives the server through one editing session."""

from __future__ import annotations

import json
import select
import subprocess
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from testaustime_ls.config import JSONObject

_DEFAULT_TIMEOUT_NS = 10_000_000_000
_LOG_MESSAGE_METHOD = "window/logMessage"


class LspClientError(RuntimeError):
    pass


@dataclass(frozen=True)
class DocumentNotification:
    method: str
    params: JSONObject


@dataclass
class SessionTranscript:
    initialize_result: JSONObject = field(default_factory=dict)
    shutdown_response: JSONObject = field(default_factory=dict)
    notifications: list[JSONObject] = field(default_factory=list)

    def log_messages(self) -> list[tuple[int, str]]:
        messages: list[tuple[int, str]] = []
        for message in self.notifications:
            if message.get("method") != _LOG_MESSAGE_METHOD:
                continue
            params = message.get("params")
            if isinstance(params, dict):
                messages.append((int(params.get("type", 0)), str(params.get("message", ""))))
        return messages


def did_open(uri: str, language_id: str, text: str = "") -> DocumentNotification:
    return DocumentNotification(
        "textDocument/didOpen",
        {
            "textDocument": {
                "uri": uri,
                "languageId": language_id,
                "version": 1,
                "text": text,
            }
        },
    )


def did_change(uri: str, version: int, text: str) -> DocumentNotification:
    return DocumentNotification(
        "textDocument/didChange",
        {
            "textDocument": {"uri": uri, "version": version},
            "contentChanges": [{"text": text}],
        },
    )


def did_save(uri: str) -> DocumentNotification:
    return DocumentNotification("textDocument/didSave", {"textDocument": {"uri": uri}})


def _wait_readable(stream, deadline_ns: int) -> None:
    try:
        fd = stream.fileno()
    except (AttributeError, OSError, ValueError) as exc:
        raise LspClientError("LSP stream does not expose fileno") from exc
    remaining_ns = deadline_ns - time.monotonic_ns()
    timeout = max(0.0, remaining_ns / 1_000_000_000)
    ready, _, _ = select.select([fd], [], [], timeout)
    if not ready:
        raise LspClientError("LSP response timed out")


def _read_exact(stream, length: int, deadline_ns: int) -> bytes:
    body = bytearray()
    while len(body) < length:
        _wait_readable(stream, deadline_ns)
        chunk = stream.read(length - len(body))
        if not chunk:
            raise LspClientError("LSP stream closed")
        body.extend(chunk)
    return bytes(body)


def _content_length(head: bytes) -> int:
    for line in head.split(b"\r\n"):
        if line.lower().startswith(b"content-length:"):
            return int(line.split(b":", 1)[1].strip())
    raise LspClientError("Invalid LSP Content-Length")


def _decode_body(body: bytes) -> JSONObject:
    message = json.loads(body.decode("utf-8"))
    if not isinstance(message, dict):
        raise LspClientError("Invalid LSP message payload")
    return message


def _read_rpc(stream, deadline_ns: int) -> JSONObject:
    header = b""
    while b"\r\n\r\n" not in header:
        _wait_readable(stream, deadline_ns)
        chunk = stream.read(1)
        if not chunk:
            raise LspClientError("LSP stream closed")
        header += chunk
    head, _, rest = header.partition(b"\r\n\r\n")
    length = _content_length(head)
    body = rest
    if len(body) < length:
        body += _read_exact(stream, length - len(body), deadline_ns)
    return _decode_body(body[:length])


def parse_frames(data: bytes) -> list[JSONObject]:
    """Split already-buffered output into JSON-RPC messages.

    A truncated trailing frame is dropped.
    """
    messages: list[JSONObject] = []
    while data:
        head, sep, rest = data.partition(b"\r\n\r\n")
        if not sep:
            break
        length = _content_length(head)
        if len(rest) < length:
            break
        messages.append(_decode_body(rest[:length]))
        data = rest[length:]
    return messages


def _write_rpc(stream, message: JSONObject) -> None:
    payload = json.dumps(message).encode("utf-8")
    header = f"Content-Length: {len(payload)}\r\n\r\n".encode("utf-8")
    stream.write(header + payload)
    stream.flush()


def _read_response(
    stream,
    request_id: int,
    deadline_ns: int,
    *,
    notification_callback: Callable[[JSONObject], None],
) -> JSONObject:
    while True:
        message = _read_rpc(stream, deadline_ns)
        if "id" not in message:
            notification_callback(message)
            continue
        if message.get("id") == request_id:
            return message


def run_session(
    notifications: list[DocumentNotification],
    *,
    root: Path | None = None,
    initialization_options: JSONObject | None = None,
    timeout_ns: int = _DEFAULT_TIMEOUT_NS,
    process_factory: Callable[..., subprocess.Popen] = subprocess.Popen,
) -> SessionTranscript:
    """Launch the server, replay ``notifications`` and shut it down cleanly."""
    deadline_ns = time.monotonic_ns() + timeout_ns
    proc = process_factory(
        [sys.executable, "-m", "testaustime_ls.server"],
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        bufsize=0,
    )
    assert proc.stdin is not None
    assert proc.stdout is not None

    transcript = SessionTranscript()
    workspace = (root or Path.cwd()).resolve()
    params: JSONObject = {
        "processId": None,
        "rootUri": workspace.as_uri(),
        "capabilities": {},
        "workspaceFolders": [{"uri": workspace.as_uri(), "name": workspace.name}],
    }
    if initialization_options is not None:
        params["initializationOptions"] = initialization_options

    initialize_id = 1
    _write_rpc(
        proc.stdin,
        {"jsonrpc": "2.0", "id": initialize_id, "method": "initialize", "params": params},
    )
    response = _read_response(
        proc.stdout,
        initialize_id,
        deadline_ns,
        notification_callback=transcript.notifications.append,
    )
    if response.get("error"):
        proc.kill()
        raise LspClientError(f"LSP error: {response['error']}")
    result = response.get("result", {})
    transcript.initialize_result = result if isinstance(result, dict) else {}
    _write_rpc(proc.stdin, {"jsonrpc": "2.0", "method": "initialized", "params": {}})

    for notification in notifications:
        _write_rpc(
            proc.stdin,
            {"jsonrpc": "2.0", "method": notification.method, "params": notification.params},
        )

    shutdown_id = 2
    _write_rpc(proc.stdin, {"jsonrpc": "2.0", "id": shutdown_id, "method": "shutdown"})
    transcript.shutdown_response = _read_response(
        proc.stdout,
        shutdown_id,
        deadline_ns,
        notification_callback=transcript.notifications.append,
    )
    _write_rpc(proc.stdin, {"jsonrpc": "2.0", "method": "exit"})
    remaining = max(1.0, (deadline_ns - time.monotonic_ns()) / 1_000_000_000)
    try:
        out, _err = proc.communicate(timeout=remaining)
    except subprocess.TimeoutExpired:
        proc.kill()
        out, _err = proc.communicate(timeout=1.0)
    transcript.notifications.extend(
        message for message in parse_frames(out or b"") if "id" not in message
    )
    return transcript
