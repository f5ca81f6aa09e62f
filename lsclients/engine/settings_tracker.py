"""Per-session snapshot of editor settings for telemetry diffs."""
from __future__ import annotations

import logging
from typing import Any

from .models import FolderSettings

logger = logging.getLogger(__name__)

MAX_SETTING_LENGTH = 50
REDACTED_SETTINGS = frozenset({"clang_format_path"})


def _telemetry_value(key: str, value: Any) -> str | None:
    """Render *value* for telemetry, or None when it should be skipped."""
    if isinstance(value, (dict, list, tuple, set)):
        return None
    if key in REDACTED_SETTINGS:
        return "..."
    text = "" if value is None else str(value)
    if len(text) > MAX_SETTING_LENGTH:
        text = text[:MAX_SETTING_LENGTH] + "..."
    return text


class SettingsSnapshot:
    """Last known settings of one folder.

    ``initialize`` reports the settings that differ from their defaults;
    ``diff`` reports what changed since the previous call and becomes the
    new baseline.
    """

    def __init__(self, settings: FolderSettings) -> None:
        self._settings = settings
        self._previous: dict[str, Any] = {}

    def initialize(self) -> dict[str, str]:
        current = self._settings.effective()
        self._previous = dict(current)
        changed: dict[str, str] = {}
        for key, value in current.items():
            if key not in self._settings.defaults:
                continue
            if value == self._settings.defaults[key]:
                continue
            rendered = _telemetry_value(key, value)
            if rendered is not None:
                changed[key] = rendered
        return changed

    def diff(self, settings: FolderSettings | None = None) -> dict[str, str]:
        if settings is not None:
            self._settings = settings
        current = self._settings.effective()
        changed: dict[str, str] = {}
        for key, value in current.items():
            if key in self._previous and self._previous[key] == value:
                continue
            if key not in self._settings.defaults:
                continue
            rendered = _telemetry_value(key, value)
            if rendered is not None:
                changed[key] = rendered
        self._previous = dict(current)
        if changed:
            logger.debug("Changed settings: %s", ", ".join(sorted(changed)))
        return changed
