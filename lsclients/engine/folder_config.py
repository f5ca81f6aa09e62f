"""Per-folder build configurations read from ``.lsclients/configurations.yaml``.

Example file::

    configurations:
      - name: Linux
        includePath: [include, third_party]
        defines: [DEBUG]
        compilerPath: /usr/bin/g++
        compileCommands: build/compile_commands.json
    current: 0

Configurations are not published until the analysis process has
reported its default paths, so subscribers never see a configuration
list with unresolved includes.
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import yaml

from .channel import Channel
from .errors import ConfigurationError
from .models import DefaultPaths

logger = logging.getLogger(__name__)

CONFIG_DIR = ".lsclients"
CONFIG_FILE = "configurations.yaml"


def default_configuration_name() -> str:
    if sys.platform == "darwin":
        return "Mac"
    if sys.platform == "win32":
        return "Win32"
    return "Linux"


def _mtime(path: Path | None) -> float | None:
    if path is None:
        return None
    try:
        return path.stat().st_mtime
    except OSError:
        return None


class FolderConfiguration:
    """Build configurations of one workspace folder."""

    def __init__(self, root: str | None) -> None:
        self._root = Path(root) if root else None
        self._raw: list[dict[str, Any]] = []
        self._current = 0
        self._default_paths: DefaultPaths | None = None
        self._config_mtime: float | None = None
        self._compile_commands_mtime: float | None = None
        self.configurations_changed: Channel[list[dict[str, Any]]] = Channel("configurations")
        self.selection_changed: Channel[int] = Channel("selection")
        self.compile_commands_changed: Channel[str] = Channel("compile_commands")
        self._load()

    @property
    def path(self) -> Path | None:
        if self._root is None:
            return None
        return self._root / CONFIG_DIR / CONFIG_FILE

    @property
    def current_index(self) -> int:
        return self._current

    @property
    def names(self) -> list[str]:
        return [str(c.get("name", "")) for c in self._raw]

    @property
    def current_name(self) -> str:
        names = self.names
        return names[self._current] if 0 <= self._current < len(names) else ""

    @property
    def compile_commands_path(self) -> Path | None:
        if not self._raw:
            return None
        value = self._raw[self._current].get("compileCommands")
        if not value:
            return None
        path = Path(value)
        if not path.is_absolute() and self._root is not None:
            path = self._root / path
        return path

    @property
    def default_paths(self) -> DefaultPaths | None:
        return self._default_paths

    @default_paths.setter
    def default_paths(self, paths: DefaultPaths) -> None:
        self._default_paths = paths
        self._publish_configurations()

    def resolved(self) -> list[dict[str, Any]]:
        """Configurations with default includes filled in where missing."""
        defaults = self._default_paths or DefaultPaths()
        result = []
        for raw in self._raw:
            item = dict(raw)
            if not item.get("includePath"):
                item["includePath"] = list(defaults.include_paths)
            if sys.platform == "darwin" and not item.get("macFrameworkPath"):
                item["macFrameworkPath"] = list(defaults.frameworks)
            if not item.get("compilerPath") and defaults.compiler_path:
                item["compilerPath"] = defaults.compiler_path
            result.append(item)
        return result

    def select(self, index: int) -> None:
        if not 0 <= index < len(self._raw):
            logger.debug("Ignoring out of range configuration index %d", index)
            return
        if index == self._current:
            return
        self._current = index
        self.selection_changed.publish(index)
        self._check_compile_commands(force=True)

    def add_include_path(self, include: str) -> None:
        """Append *include* to the current configuration and save the file."""
        if not self._raw:
            return
        current = self._raw[self._current]
        paths = list(current.get("includePath") or [])
        if include in paths:
            return
        paths.append(include)
        current["includePath"] = paths
        self._save()
        self._publish_configurations()

    def check_for_changes(self) -> None:
        """Reload when the file or the compile commands changed on disk."""
        mtime = _mtime(self.path)
        if mtime != self._config_mtime:
            logger.debug("Configuration file changed: %s", self.path)
            self._load()
            self._publish_configurations()
        self._check_compile_commands()

    def dispose(self) -> None:
        self.configurations_changed.close()
        self.selection_changed.close()
        self.compile_commands_changed.close()

    def _publish_configurations(self) -> None:
        if self._default_paths is None:
            return
        self.configurations_changed.publish(self.resolved())

    def _check_compile_commands(self, force: bool = False) -> None:
        path = self.compile_commands_path
        mtime = _mtime(path)
        if path is None or mtime is None:
            self._compile_commands_mtime = None
            return
        if force or mtime != self._compile_commands_mtime:
            self._compile_commands_mtime = mtime
            self.compile_commands_changed.publish(str(path))

    def _load(self) -> None:
        path = self.path
        self._config_mtime = _mtime(path)
        if path is None or self._config_mtime is None:
            self._raw = [{"name": default_configuration_name()}]
            self._current = 0
            return
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(str(path), str(exc)) from exc
        if not isinstance(data, dict):
            raise ConfigurationError(str(path), "expected a mapping at top level")
        configurations = data.get("configurations") or []
        if not isinstance(configurations, list) or not all(
            isinstance(c, dict) for c in configurations
        ):
            raise ConfigurationError(str(path), "configurations must be a list of mappings")
        for index, c in enumerate(configurations):
            commands = c.get("compileCommands")
            if commands is not None and not isinstance(commands, str):
                raise ConfigurationError(
                    str(path), f"configuration #{index}: compileCommands must be a path"
                )
        try:
            current = int(data.get("current", self._current) or 0)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(str(path), f"current must be an index: {exc}") from exc
        self._raw = [dict(c) for c in configurations] or [
            {"name": default_configuration_name()}
        ]
        self._current = current if 0 <= current < len(self._raw) else 0
        logger.info(
            "Loaded %d configuration(s) from %s (current=%s)",
            len(self._raw), path, self.current_name,
        )

    def _save(self) -> None:
        path = self.path
        if path is None:
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(
                {"configurations": self._raw, "current": self._current},
                f, sort_keys=False,
            )
        self._config_mtime = _mtime(path)
