"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via LSC_* env vars.
"""
from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .models import DEFAULT_SETTINGS, FolderSettings

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_PATH = str(Path.home() / ".lsclients")


@dataclass
class ClientConfig:
    """Language client orchestration configuration."""

    # Analysis process. Empty command means "not installed".
    server_command: list[str] = field(default_factory=list)
    server_env: dict[str, str] = field(default_factory=dict)
    # Platforms the analysis process ships binaries for.
    supported_platforms: tuple[str, ...] = ("linux", "darwin", "win32")
    # Seconds to wait for shutdown before the process is killed.
    shutdown_timeout_seconds: float = 5.0

    # Crash policy
    crash_limit: int = 5
    crash_window_seconds: float = 180.0

    # Heartbeat sent to every ready session.
    interval_seconds: float = 2.5

    # Storage for preferences, telemetry and logs.
    storage_path: str = DEFAULT_STORAGE_PATH
    telemetry_db_path: str | None = None

    # Logging
    log_level: str = "INFO"

    # Editor settings visible to every folder, and per-folder overrides
    # keyed by folder path.
    settings: dict[str, Any] = field(default_factory=dict)
    folder_settings: dict[str, dict[str, Any]] = field(default_factory=dict)

    def settings_for(self, folder_path: str | None) -> FolderSettings:
        """Merge global and per-folder settings on top of the defaults."""
        values = dict(self.settings)
        if folder_path is not None:
            key = str(Path(folder_path))
            values.update(self.folder_settings.get(key, {}))
        return FolderSettings(values=values, defaults=dict(DEFAULT_SETTINGS))

    @property
    def resolved_telemetry_db_path(self) -> Path:
        if self.telemetry_db_path:
            return Path(self.telemetry_db_path).expanduser()
        return Path(self.storage_path).expanduser() / "telemetry.db"

    @property
    def log_dir(self) -> Path:
        return Path(self.storage_path).expanduser() / "logs"

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Load configuration from LSC_* environment variables."""
        lsc_vars = {
            k: v for k, v in os.environ.items() if k.startswith("LSC_")
        }
        if lsc_vars:
            logger.info(
                "ClientConfig.from_env: LSC_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(lsc_vars.items())),
            )
        else:
            logger.debug("ClientConfig.from_env: no LSC_* env vars set, using defaults")

        settings: dict[str, Any] = {}
        navigation_length = os.getenv("LSC_NAVIGATION_LENGTH")
        if navigation_length:
            settings["navigation_length"] = int(navigation_length)

        config = cls(
            server_command=shlex.split(os.getenv("LSC_SERVER_COMMAND", "")),
            crash_limit=int(os.getenv(
                "LSC_CRASH_LIMIT", str(cls.crash_limit)
            )),
            crash_window_seconds=float(os.getenv(
                "LSC_CRASH_WINDOW", str(cls.crash_window_seconds)
            )),
            interval_seconds=float(os.getenv(
                "LSC_INTERVAL", str(cls.interval_seconds)
            )),
            storage_path=os.getenv("LSC_STORAGE_PATH", DEFAULT_STORAGE_PATH),
            telemetry_db_path=os.getenv("LSC_TELEMETRY_DB_PATH") or None,
            log_level=os.getenv("LSC_LOG_LEVEL", cls.log_level),
            settings=settings,
        )
        logger.info(
            "ClientConfig.from_env: server=%s crash_limit=%d window=%.0fs log_level=%s",
            " ".join(config.server_command) or "<none>",
            config.crash_limit, config.crash_window_seconds, config.log_level,
        )
        return config
