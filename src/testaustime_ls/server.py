from __future__ import annotations

from typing import Callable, Sequence
from urllib.parse import unquote, urlparse

from lsprotocol.types import (
    INITIALIZE,
    INITIALIZED,
    SHUTDOWN,
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_OPEN,
    TEXT_DOCUMENT_DID_SAVE,
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    DidSaveTextDocumentParams,
    InitializedParams,
    InitializeParams,
    MessageType,
    TextDocumentSyncKind,
    WorkspaceFolder,
)
from pygls.lsp.server import LanguageServer
from pygls.protocol.language_server import LanguageServerProtocol, lsp_method

from testaustime_ls import __version__
from testaustime_ls.api import APIClient
from testaustime_ls.config import Settings
from testaustime_ls.dispatcher import HeartbeatDispatcher, HeartbeatEvent
from testaustime_ls.exceptions import AuthError, NetworkError
from testaustime_ls.protocol_log import debug_log, logger_for
from testaustime_ls.session import Session

SERVER_NAME = "testaustime-ls"

ApiClientFactory = Callable[[str, str | None], APIClient]


class TestaustimeProtocol(LanguageServerProtocol):
    """Advertises incremental text document sync and nothing else."""

    @lsp_method(INITIALIZE)
    def lsp_initialize(self, params: InitializeParams):
        result = yield from super().lsp_initialize(params)
        result.capabilities.execute_command_provider = None
        result.capabilities.workspace = None
        return result


class TestaustimeLanguageServer(LanguageServer):
    def __init__(
        self,
        session: Session | None = None,
        *,
        fallback_settings: Settings | None = None,
        api_client_factory: ApiClientFactory = APIClient,
    ) -> None:
        super().__init__(
            SERVER_NAME,
            __version__,
            text_document_sync_kind=TextDocumentSyncKind.Incremental,
            protocol_cls=TestaustimeProtocol,
        )
        self.session = session if session is not None else Session()
        self.fallback_settings = fallback_settings or Settings()
        self.api_client_factory = api_client_factory
        self.dispatcher = HeartbeatDispatcher(self.session, logger_for(self))


def _workspace_name(folders: Sequence[WorkspaceFolder] | None) -> str | None:
    if not folders:
        return None
    folder = folders[0]
    if folder.name:
        return folder.name
    path = unquote(urlparse(folder.uri).path)
    segments = [segment for segment in path.split("/") if segment]
    if not segments:
        return None
    return segments[-1]


async def initialize(ls: TestaustimeLanguageServer, params: InitializeParams) -> None:
    session = ls.session
    log = logger_for(ls)
    settings = Settings.from_init_options(params.initialization_options).merged_over(
        ls.fallback_settings
    )
    debug_log(
        log,
        settings.debug_enabled,
        f"Workspace folders: {params.workspace_folders!r}",
    )
    session.workspace_name.swap(_workspace_name(params.workspace_folders))

    if settings.api_key is not None:
        client = ls.api_client_factory(settings.api_key, settings.api_base_url)
        try:
            me = await client.validate_api_key(settings.api_key)
        except AuthError as exc:
            log(MessageType.Error, f"Invalid API key: {exc.cause}")
        else:
            log(MessageType.Info, f"Testaustime authenticated as: {me.username}")
            async with session.api_client_lock:
                session.api_client = client
    else:
        log(MessageType.Warning, "No API key provided")

    session.settings.swap(settings)


def initialized(ls: TestaustimeLanguageServer, params: InitializedParams) -> None:
    logger_for(ls)(MessageType.Info, "Testaustime language server initialized")


async def shutdown(ls: TestaustimeLanguageServer, params: None = None) -> None:
    session = ls.session
    log = logger_for(ls)
    async with session.api_client_lock:
        client = session.api_client
        if client is None:
            log(MessageType.Error, "API client not initialized during shutdown")
            return None
        try:
            await client.flush()
        except NetworkError as exc:
            debug_log(log, session.debug_enabled(), f"Flush failed: {exc.cause}")
    return None


async def did_open(ls: TestaustimeLanguageServer, params: DidOpenTextDocumentParams) -> None:
    await ls.dispatcher.dispatch(
        HeartbeatEvent(is_write=False, language=params.text_document.language_id)
    )


async def did_change(
    ls: TestaustimeLanguageServer, params: DidChangeTextDocumentParams
) -> None:
    await ls.dispatcher.dispatch(HeartbeatEvent(is_write=False))


async def did_save(ls: TestaustimeLanguageServer, params: DidSaveTextDocumentParams) -> None:
    await ls.dispatcher.dispatch(HeartbeatEvent(is_write=True))


def create_server(
    session: Session | None = None,
    *,
    fallback_settings: Settings | None = None,
    api_client_factory: ApiClientFactory = APIClient,
) -> TestaustimeLanguageServer:
    server = TestaustimeLanguageServer(
        session,
        fallback_settings=fallback_settings,
        api_client_factory=api_client_factory,
    )
    server.feature(INITIALIZE)(initialize)
    server.feature(INITIALIZED)(initialized)
    server.feature(SHUTDOWN)(shutdown)
    server.feature(TEXT_DOCUMENT_DID_OPEN)(did_open)
    server.feature(TEXT_DOCUMENT_DID_CHANGE)(did_change)
    server.feature(TEXT_DOCUMENT_DID_SAVE)(did_save)
    return server


def start(
    start_fn: Callable[[TestaustimeLanguageServer], None] | None = None,
    *,
    fallback_settings: Settings | None = None,
) -> None:
    """Start the language server on stdio unless another starter is given."""
    server = create_server(fallback_settings=fallback_settings)
    if start_fn is None:
        server.start_io()
    else:
        start_fn(server)


if __name__ == "__main__":  # pragma: no cover
    start()  # pragma: no cover
