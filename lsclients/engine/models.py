"""Core data models for the language client engine.

All dataclasses and enums shared by sessions, the registry and the
UI adapters. Single source of truth to avoid circular imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePath
from typing import Any
from urllib.parse import unquote, urlparse


class SessionState(str, Enum):
    """Session lifecycle states. See lifecycle.py for transition rules."""
    NOT_STARTED = "not_started"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"
    DISPOSED = "disposed"


class GateState(str, Enum):
    """Readiness gate states. Both READY and FAILED are terminal."""
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class ModelField(str, Enum):
    """Observable fields exposed by a session to the UI."""
    IS_INDEXING = "is_indexing"
    IS_ANALYZING = "is_analyzing"
    NAVIGATION_TEXT = "navigation_text"
    PARSER_STATUS_TEXT = "parser_status_text"
    ACTIVE_CONFIG_NAME = "active_config_name"


class CrashAction(str, Enum):
    """Outcome of evaluating a crash against the crash record."""
    REPLACE = "replace"
    STOP = "stop"


def uri_to_path(uri: str) -> PurePath:
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(uri)


@dataclass(frozen=True)
class WorkspaceFolder:
    """A root folder opened in the editor window."""
    path: str
    name: str = ""
    index: int = 0

    @property
    def uri(self) -> str:
        return Path(self.path).absolute().as_uri()

    @property
    def display_name(self) -> str:
        return self.name or Path(self.path).name or self.path

    @property
    def key(self) -> str:
        return str(PurePath(self.path))


@dataclass(frozen=True)
class TextDocument:
    """An editor document, identified by its URI.

    Only the URI takes part in equality so that edits (new version,
    new text) do not change a document's identity in tracked sets.
    """
    uri: str
    language_id: str = field(default="cpp", compare=False)
    version: int = field(default=0, compare=False)
    text: str = field(default="", compare=False)

    @classmethod
    def from_path(
        cls,
        path: str | Path,
        language_id: str = "cpp",
        version: int = 0,
        text: str | None = None,
    ) -> TextDocument:
        resolved = Path(path).absolute()
        if text is None:
            text = resolved.read_text(encoding="utf-8") if resolved.is_file() else ""
        return cls(
            uri=resolved.as_uri(),
            language_id=language_id,
            version=version,
            text=text,
        )

    @property
    def path(self) -> PurePath:
        return uri_to_path(self.uri)


@dataclass
class DefaultPaths:
    """Compiler defaults reported by the analysis process."""
    include_paths: list[str] = field(default_factory=list)
    frameworks: list[str] = field(default_factory=list)
    compiler_path: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> DefaultPaths:
        if not isinstance(payload, dict):
            return cls()
        return cls(
            include_paths=list(payload.get("includes") or []),
            frameworks=list(payload.get("frameworks") or []),
            compiler_path=str(payload.get("compilerPath") or ""),
        )


@dataclass
class FolderSettings:
    """Editor settings visible to one workspace folder.

    ``values`` holds explicitly configured settings, ``defaults`` the
    documented default for every known key. Keys missing from both are
    unknown settings and are ignored by telemetry.
    """
    values: dict[str, Any] = field(default_factory=dict)
    defaults: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        if key in self.values:
            return self.values[key]
        return self.defaults.get(key, default)

    def effective(self) -> dict[str, Any]:
        merged = dict(self.defaults)
        merged.update(self.values)
        return merged

    @property
    def navigation_length(self) -> int:
        return int(self.get("navigation_length", 60))

    @property
    def files_associations(self) -> dict[str, str]:
        return dict(self.get("files_associations") or {})

    @files_associations.setter
    def files_associations(self, value: dict[str, str]) -> None:
        self.values["files_associations"] = dict(value)


DEFAULT_SETTINGS: dict[str, Any] = {
    "intellisense_engine": "Default",
    "intellisense_engine_fallback": "Disabled",
    "autocomplete": "Default",
    "error_squiggles": "Enabled",
    "clang_format_path": "",
    "clang_format_style": "file",
    "clang_format_fallback_style": "Visual Studio",
    "clang_format_sort_includes": None,
    "formatting": "Default",
    "navigation_length": 60,
    "logging_level": "None",
    "tab_size": 4,
    "files_exclude": {},
    "search_exclude": {},
    "files_associations": {},
}
