"""Client preferences: persistent settings stored in ~/.lsclients/preferences.json.

Remembers one-time prompts the user has muted. Settings are global
(not per-folder) since they reflect user choices rather than project
configuration.
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

PREFS_PATH = Path.home() / ".lsclients" / "preferences.json"


@dataclass
class ClientPreferences:
    """User preference settings.

    Attributes:
        show_include_path_hint: Show the "configure includePath" hint
            when the analysis process falls back to fuzzy results.
        show_reload_prompt: Show the reload notice when the analysis
            process asks for one.
    """

    show_include_path_hint: bool = True
    show_reload_prompt: bool = True

    def validate(self) -> None:
        """Ensure all values are within allowed ranges."""
        if not isinstance(self.show_include_path_hint, bool):
            self.show_include_path_hint = True
        if not isinstance(self.show_reload_prompt, bool):
            self.show_reload_prompt = True

    def save(self, path: Path | None = None) -> None:
        """Persist preferences to disk."""
        target = path or PREFS_PATH
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            target.write_text(json.dumps(asdict(self), indent=2))
        except OSError:
            logger.warning("Failed to save preferences to %s", target)

    @classmethod
    def load(cls, path: Path | None = None) -> ClientPreferences:
        """Load preferences from disk, returning defaults if missing/corrupt."""
        target = path or PREFS_PATH
        try:
            if target.exists():
                data = json.loads(target.read_text())
                prefs = cls(**{
                    k: v for k, v in data.items()
                    if k in cls.__dataclass_fields__
                })
                prefs.validate()
                logger.debug("Loaded preferences from %s", target)
                return prefs
            logger.debug("Preferences file not found at %s; using defaults", target)
        except (OSError, ValueError, TypeError, AttributeError):
            logger.warning("Failed to load preferences from %s; using defaults", target)
        return cls()
