"""YAML configuration loader.

Loads a single YAML file on top of the LSC_* environment config.
Sections that are missing keep the environment (or default) values.

Example YAML:
    server:
      command: [cpptools-srv]
      env:
        LD_LIBRARY_PATH: /opt/cpptools/lib
      shutdown_timeout_seconds: 5

    crash_policy:
      max_crashes: 5
      window_seconds: 180

    client:
      interval_seconds: 2.5
      storage_path: ~/.lsclients
      log_level: INFO

    settings:
      navigation_length: 80
      intellisense_engine: Default

    folders:
      - path: /src/engine
        name: engine
        settings:
          tab_size: 2
      - path: /src/tools
"""
from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .config import ClientConfig
from .errors import ConfigurationError
from .models import WorkspaceFolder

logger = logging.getLogger(__name__)


@dataclass
class ClientsConfig:
    """Complete parsed YAML configuration."""
    client: ClientConfig
    folders: list[WorkspaceFolder] = field(default_factory=list)


def _section(raw: dict[str, Any], name: str, path: Path) -> dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(str(path), f"section '{name}' must be a mapping")
    return value


def _command(value: Any) -> list[str]:
    if isinstance(value, str):
        return shlex.split(value)
    return [str(part) for part in value or []]


def load_yaml_config(
    path: str | Path,
    base: ClientConfig | None = None,
) -> ClientsConfig:
    """Load and parse a YAML config file.

    *base* supplies the values the file does not set; by default the
    LSC_* environment config.
    """
    path = Path(path)
    logger.info(
        "load_yaml_config: attempting to load config from %s (exists=%s)",
        path, path.exists()
    )
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error(
            "load_yaml_config: config file not found at %s (absolute path: %s)",
            path, path.absolute()
        )
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise ConfigurationError(str(path), str(exc)) from exc
    if not isinstance(raw, dict):
        raise ConfigurationError(str(path), "expected a mapping at top level")

    top_sections = sorted(raw.keys())
    logger.info(
        "Parsed YAML config %s: sections: %s",
        path.name, ", ".join(top_sections) if top_sections else "(empty)",
    )

    base = base or ClientConfig.from_env()
    server_raw = _section(raw, "server", path)
    crash_raw = _section(raw, "crash_policy", path)
    client_raw = _section(raw, "client", path)
    settings_raw = _section(raw, "settings", path)

    try:
        client = ClientConfig(
            server_command=(
                _command(server_raw["command"])
                if "command" in server_raw else list(base.server_command)
            ),
            server_env={
                str(k): str(v)
                for k, v in (server_raw.get("env") or base.server_env).items()
            },
            supported_platforms=tuple(
                server_raw.get("platforms") or base.supported_platforms
            ),
            shutdown_timeout_seconds=float(server_raw.get(
                "shutdown_timeout_seconds", base.shutdown_timeout_seconds
            )),
            crash_limit=int(crash_raw.get("max_crashes", base.crash_limit)),
            crash_window_seconds=float(crash_raw.get(
                "window_seconds", base.crash_window_seconds
            )),
            interval_seconds=float(client_raw.get(
                "interval_seconds", base.interval_seconds
            )),
            storage_path=str(client_raw.get("storage_path", base.storage_path)),
            telemetry_db_path=client_raw.get(
                "telemetry_db_path", base.telemetry_db_path
            ),
            log_level=str(client_raw.get("log_level", base.log_level)),
            settings={**base.settings, **settings_raw},
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(str(path), str(exc)) from exc

    folders: list[WorkspaceFolder] = []
    for index, entry in enumerate(raw.get("folders") or []):
        if isinstance(entry, str):
            entry = {"path": entry}
        if not isinstance(entry, dict) or not entry.get("path"):
            raise ConfigurationError(str(path), f"folder #{index} needs a path")
        folder_path = Path(str(entry["path"])).expanduser()
        if not folder_path.is_absolute():
            folder_path = (path.parent / folder_path).resolve()
        folder = WorkspaceFolder(
            path=str(folder_path),
            name=str(entry.get("name") or ""),
            index=index,
        )
        folders.append(folder)
        overrides = entry.get("settings") or {}
        if overrides:
            client.folder_settings[folder.key] = dict(overrides)

    logger.info(
        "load_yaml_config: %d folder(s), server=%s",
        len(folders), " ".join(client.server_command) or "<none>",
    )
    return ClientsConfig(client=client, folders=folders)
