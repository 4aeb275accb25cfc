from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar
from urllib.parse import unquote, urlparse

import httpx
from pygls.lsp.server import LanguageServer
from pygls.workspace import TextDocument
from lsprotocol.types import (
    COMPLETION_ITEM_RESOLVE,
    INITIALIZE,
    SHUTDOWN,
    TEXT_DOCUMENT_CODE_ACTION,
    TEXT_DOCUMENT_COMPLETION,
    TEXT_DOCUMENT_DEFINITION,
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_CLOSE,
    TEXT_DOCUMENT_DID_OPEN,
    TEXT_DOCUMENT_HOVER,
    TEXT_DOCUMENT_SIGNATURE_HELP,
    WORKSPACE_DID_CHANGE_CONFIGURATION,
    CodeAction,
    CodeActionKind,
    CodeActionOptions,
    CodeActionParams,
    CompletionItem,
    CompletionList,
    CompletionOptions,
    CompletionParams,
    DefinitionParams,
    DidChangeConfigurationParams,
    DidChangeTextDocumentParams,
    DidCloseTextDocumentParams,
    DidOpenTextDocumentParams,
    Hover,
    HoverParams,
    InitializeParams,
    Location,
    MessageType,
    PublishDiagnosticsParams,
    ShowMessageParams,
    SignatureHelp,
    SignatureHelpOptions,
    SignatureHelpParams,
    TextDocumentSyncKind,
)

from ycmls import __version__, translate
from ycmls.exceptions import BackendError
from ycmls.outcome import Outcome, Recoverable, Success, value_or
from ycmls.session import SessionCoordinator
from ycmls.signature_help import signature_help as compute_signature_help
from ycmls.ycmd import YcmdSession

logger = logging.getLogger(__name__)

LINT_NOTIFICATION = "lint"
COMPLETION_TRIGGER_CHARACTERS = [".", ">", ":"]
SIGNATURE_TRIGGER_CHARACTERS = ["("]

T = TypeVar("T")


class YcmLanguageServer(LanguageServer):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.coordinator: SessionCoordinator[YcmdSession] = SessionCoordinator(
            report_error=self.show_error
        )

    def show_error(self, message: str) -> None:
        self.window_show_message(ShowMessageParams(type=MessageType.Error, message=message))


server = YcmLanguageServer(
    "ycmls", __version__, text_document_sync_kind=TextDocumentSyncKind.Full
)


def _uri_to_path(uri: str) -> Path:
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(uri)


def _workspace_root(params: InitializeParams) -> Path:
    if params.root_uri:
        return _uri_to_path(params.root_uri)
    if params.root_path:
        return Path(params.root_path)
    if params.workspace_folders:
        return _uri_to_path(params.workspace_folders[0].uri)
    return Path(os.getcwd())


def _params_uri(params: object) -> Optional[str]:
    if isinstance(params, (list, tuple)) and params:
        params = params[0]
    if isinstance(params, str):
        return params
    if isinstance(params, dict):
        document = params.get("textDocument") or params.get("text_document")
        uri = params.get("uri")
        if uri is None and isinstance(document, dict):
            uri = document.get("uri")
        return uri if isinstance(uri, str) else None
    uri = getattr(params, "uri", None)
    if uri is None:
        document = getattr(params, "textDocument", None) or getattr(params, "text_document", None)
        uri = getattr(document, "uri", None)
    return uri if isinstance(uri, str) else None


async def _backend_call(
    ls: YcmLanguageServer,
    label: str,
    call: Callable[[YcmdSession], Awaitable[T]],
) -> Outcome[T]:
    outcome = await ls.coordinator.get_session()
    if not isinstance(outcome, Success):
        return outcome
    try:
        return Success(await call(outcome.value))
    except (BackendError, httpx.HTTPError) as exc:
        logger.warning("%s failed: %s", label, exc)
        return Recoverable(str(exc))


async def refresh_diagnostics(ls: YcmLanguageServer, uri: str) -> None:
    """Parse ``uri`` in ycmd and publish its diagnostics.

    Publishes exactly once, with an empty list when ycmd is unavailable.
    """
    document = ls.workspace.get_text_document(uri)
    outcome = await _backend_call(
        ls, "FileReadyToParse", lambda session: session.ready_to_parse(document)
    )
    diagnostics = translate.diagnostics(document, value_or(outcome, []))
    ls.text_document_publish_diagnostics(
        PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics, version=document.version)
    )


@server.feature(INITIALIZE)
def initialize(ls: YcmLanguageServer, params: InitializeParams) -> None:
    root = _workspace_root(params)
    logger.info("Workspace root: %s", root)
    ls.coordinator.set_root(root)


@server.feature(WORKSPACE_DID_CHANGE_CONFIGURATION)
async def did_change_configuration(
    ls: YcmLanguageServer, params: DidChangeConfigurationParams
) -> None:
    outcome = ls.coordinator.update_settings(params.settings)
    if isinstance(outcome, Success):
        logger.info("ycmd path: %s", outcome.value.ycmd.path)
        await ls.coordinator.get_session()


@server.feature(TEXT_DOCUMENT_DID_OPEN)
async def did_open(ls: YcmLanguageServer, params: DidOpenTextDocumentParams) -> None:
    uri = params.text_document.uri
    document = ls.workspace.get_text_document(uri)
    await _backend_call(
        ls, "BufferVisit", lambda session: session.event_notification(document, "BufferVisit")
    )
    await refresh_diagnostics(ls, uri)


@server.feature(TEXT_DOCUMENT_DID_CHANGE)
async def did_change(ls: YcmLanguageServer, params: DidChangeTextDocumentParams) -> None:
    await refresh_diagnostics(ls, params.text_document.uri)


@server.feature(TEXT_DOCUMENT_DID_CLOSE)
async def did_close(ls: YcmLanguageServer, params: DidCloseTextDocumentParams) -> None:
    uri = params.text_document.uri
    # The store has already dropped the document; ycmd only needs the path.
    document = TextDocument(uri, source="")
    await _backend_call(
        ls, "BufferUnload", lambda session: session.event_notification(document, "BufferUnload")
    )
    ls.text_document_publish_diagnostics(PublishDiagnosticsParams(uri=uri, diagnostics=[]))


@server.feature(LINT_NOTIFICATION)
async def lint(ls: YcmLanguageServer, params: object) -> None:
    uri = _params_uri(params)
    if uri is None:
        logger.warning("lint notification without a document uri: %r", params)
        return
    await refresh_diagnostics(ls, uri)


@server.feature(
    TEXT_DOCUMENT_COMPLETION,
    CompletionOptions(trigger_characters=COMPLETION_TRIGGER_CHARACTERS, resolve_provider=True),
)
async def completion(ls: YcmLanguageServer, params: CompletionParams) -> CompletionList:
    document = ls.workspace.get_text_document(params.text_document.uri)
    outcome = await _backend_call(
        ls, "completion", lambda session: session.completions(document, params.position)
    )
    items = [translate.completion_item(candidate) for candidate in value_or(outcome, [])]
    return CompletionList(is_incomplete=False, items=items)


@server.feature(COMPLETION_ITEM_RESOLVE)
def completion_item_resolve(ls: YcmLanguageServer, item: CompletionItem) -> CompletionItem:
    return item


@server.feature(TEXT_DOCUMENT_HOVER)
async def hover(ls: YcmLanguageServer, params: HoverParams) -> Optional[Hover]:
    document = ls.workspace.get_text_document(params.text_document.uri)

    async def _type_info(session: YcmdSession) -> str:
        imprecise = session.settings.use_imprecise_get_type
        result = await session.get_type(document, params.position, imprecise=imprecise)
        return result.message

    outcome = await _backend_call(ls, "hover", _type_info)
    return translate.hover(value_or(outcome, ""))


@server.feature(TEXT_DOCUMENT_DEFINITION)
async def definition(ls: YcmLanguageServer, params: DefinitionParams) -> Optional[List[Location]]:
    document = ls.workspace.get_text_document(params.text_document.uri)
    outcome = await _backend_call(
        ls, "definition", lambda session: session.goto(document, params.position)
    )
    locations = translate.locations(document, value_or(outcome, []))
    return locations or None


@server.feature(
    TEXT_DOCUMENT_SIGNATURE_HELP,
    SignatureHelpOptions(trigger_characters=SIGNATURE_TRIGGER_CHARACTERS),
)
async def signature_help(
    ls: YcmLanguageServer, params: SignatureHelpParams
) -> Optional[SignatureHelp]:
    document = ls.workspace.get_text_document(params.text_document.uri)
    outcome = await _backend_call(
        ls,
        "signature help",
        lambda session: compute_signature_help(document, params.position, session),
    )
    result = value_or(outcome, None)
    if result is None:
        return None
    return translate.signature_help(result)


@server.feature(
    TEXT_DOCUMENT_CODE_ACTION,
    CodeActionOptions(code_action_kinds=[CodeActionKind.QuickFix]),
)
async def code_action(ls: YcmLanguageServer, params: CodeActionParams) -> List[CodeAction]:
    document = ls.workspace.get_text_document(params.text_document.uri)
    outcome = await _backend_call(
        ls, "FixIt", lambda session: session.fixit(document, params.range.start)
    )
    return translate.code_actions(document, value_or(outcome, []))


@server.feature(SHUTDOWN)
async def shutdown(ls: YcmLanguageServer, params: None = None) -> None:
    logger.info("Shutting down ycmd session")
    await ls.coordinator.reset()


def start(start_fn: Callable[[], None] | None = None) -> None:
    """Start the language server on stdio unless another starter is given."""
    (start_fn or server.start_io)()


if __name__ == "__main__":  # pragma: no cover
    start()  # pragma: no cover
