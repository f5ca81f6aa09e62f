"""Message catalogue exchanged with the analysis process.

The set of method names is closed: adding one is a protocol change.
Standard LSP methods come from ``lsprotocol``; extension methods live
under the ``cpptools/`` namespace.
"""
from __future__ import annotations

from enum import Enum
from typing import Any

from lsprotocol import types

from .models import TextDocument, WorkspaceFolder


class Request(str, Enum):
    """Outbound extension requests."""
    QUERY_DEFAULT_PATHS = "cpptools/queryDefaultPaths"
    SWITCH_HEADER_SOURCE = "cpptools/didSwitchHeaderSource"
    NAVIGATION_LIST = "cpptools/requestNavigationList"
    GO_TO_DECLARATION = "cpptools/goToDeclaration"


class Notification(str, Enum):
    """Outbound notifications."""
    DID_OPEN = types.TEXT_DOCUMENT_DID_OPEN
    DID_CLOSE = types.TEXT_DOCUMENT_DID_CLOSE
    FILE_CREATED = "cpptools/fileCreated"
    FILE_DELETED = "cpptools/fileDeleted"
    RESET_DATABASE = "cpptools/resetDatabase"
    PAUSE_PARSING = "cpptools/pauseParsing"
    RESUME_PARSING = "cpptools/resumeParsing"
    ACTIVE_DOCUMENT_CHANGE = "cpptools/activeDocumentChange"
    SELECTION_CHANGE = "cpptools/textEditorSelectionChange"
    FOLDER_SETTINGS_CHANGED = "cpptools/didChangeFolderSettings"
    COMPILE_COMMANDS_CHANGED = "cpptools/didChangeCompileCommands"
    SELECTED_SETTING_CHANGED = "cpptools/didChangeSelectedSetting"
    INTERVAL_TIMER = "cpptools/onIntervalTimer"


class ServerNotification(str, Enum):
    """Inbound notifications sent by the analysis process."""
    RELOAD_WINDOW = "cpptools/reloadWindow"
    LOG_TELEMETRY = "cpptools/logTelemetry"
    REPORT_NAVIGATION = "cpptools/reportNavigation"
    REPORT_TAG_PARSE_STATUS = "cpptools/reportTagParseStatus"
    REPORT_STATUS = "cpptools/reportStatus"
    DEBUG_PROTOCOL = "cpptools/debugProtocol"
    DEBUG_LOG = "cpptools/debugLog"


# Editor queries answered only by the active session.
FORWARDED_METHODS: frozenset[str] = frozenset({
    types.TEXT_DOCUMENT_COMPLETION,
    types.COMPLETION_ITEM_RESOLVE,
    types.TEXT_DOCUMENT_HOVER,
    types.TEXT_DOCUMENT_SIGNATURE_HELP,
    types.TEXT_DOCUMENT_DEFINITION,
    types.TEXT_DOCUMENT_REFERENCES,
    types.TEXT_DOCUMENT_DOCUMENT_HIGHLIGHT,
    types.TEXT_DOCUMENT_DOCUMENT_SYMBOL,
    types.WORKSPACE_SYMBOL,
    types.TEXT_DOCUMENT_CODE_ACTION,
    types.TEXT_DOCUMENT_CODE_LENS,
    types.CODE_LENS_RESOLVE,
    types.TEXT_DOCUMENT_FORMATTING,
    types.TEXT_DOCUMENT_RANGE_FORMATTING,
    types.TEXT_DOCUMENT_ON_TYPE_FORMATTING,
    types.TEXT_DOCUMENT_RENAME,
    types.TEXT_DOCUMENT_DOCUMENT_LINK,
    types.DOCUMENT_LINK_RESOLVE,
})

# Text synchronisation sent only by the active session.
SYNC_METHODS: frozenset[str] = frozenset({
    types.TEXT_DOCUMENT_DID_CHANGE,
    types.TEXT_DOCUMENT_WILL_SAVE,
    types.TEXT_DOCUMENT_DID_SAVE,
})


def did_open_params(document: TextDocument) -> types.DidOpenTextDocumentParams:
    return types.DidOpenTextDocumentParams(
        text_document=types.TextDocumentItem(
            uri=document.uri,
            language_id=document.language_id,
            version=document.version,
            text=document.text,
        )
    )


def did_close_params(document: TextDocument) -> types.DidCloseTextDocumentParams:
    return types.DidCloseTextDocumentParams(
        text_document=types.TextDocumentIdentifier(uri=document.uri)
    )


def did_change_params(
    document: TextDocument,
) -> types.DidChangeTextDocumentParams:
    """Full-text change event for *document* at its current version."""
    return types.DidChangeTextDocumentParams(
        text_document=types.VersionedTextDocumentIdentifier(
            uri=document.uri, version=document.version,
        ),
        content_changes=[
            types.TextDocumentContentChangeWholeDocument(text=document.text)
        ],
    )


def will_save_params(document: TextDocument) -> types.WillSaveTextDocumentParams:
    return types.WillSaveTextDocumentParams(
        text_document=types.TextDocumentIdentifier(uri=document.uri),
        reason=types.TextDocumentSaveReason.Manual,
    )


def did_save_params(document: TextDocument) -> types.DidSaveTextDocumentParams:
    return types.DidSaveTextDocumentParams(
        text_document=types.TextDocumentIdentifier(uri=document.uri),
        text=document.text,
    )


def document_params(document: TextDocument) -> types.TextDocumentIdentifier:
    return types.TextDocumentIdentifier(uri=document.uri)


def position_params(
    document: TextDocument, line: int, character: int,
) -> types.TextDocumentPositionParams:
    return types.TextDocumentPositionParams(
        text_document=types.TextDocumentIdentifier(uri=document.uri),
        position=types.Position(line=line, character=character),
    )


def uri_params(uri: str) -> dict[str, Any]:
    return {"uri": uri}


def query_default_paths_params(folder: WorkspaceFolder | None) -> dict[str, Any]:
    return {"rootPath": folder.path if folder is not None else ""}


def switch_header_source_params(
    folder: WorkspaceFolder | None, file_name: str,
) -> dict[str, Any]:
    return {
        "rootPath": folder.path if folder is not None else "",
        "switchHeaderSourceFileName": file_name,
    }


def folder_settings_params(
    configurations: list[dict[str, Any]], current: int,
) -> dict[str, Any]:
    return {"configurations": configurations, "currentConfiguration": current}


def selected_setting_params(current: int) -> dict[str, Any]:
    return {"currentConfiguration": current}
