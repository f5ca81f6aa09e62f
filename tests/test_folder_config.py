"""Per-folder build configurations and their effect on a session."""

from __future__ import annotations

import asyncio
import os

import pytest
import yaml
from conftest import FakeTransportFactory, build_registry, settle

from lsclients.engine.errors import ConfigurationError
from lsclients.engine.folder_config import FolderConfiguration, default_configuration_name
from lsclients.engine.models import DefaultPaths, ModelField
from lsclients.engine.protocol import Notification, Request


def _write_config(root, data):
    path = root / ".lsclients" / "configurations.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data))
    return path


def test_missing_file_yields_the_platform_default(tmp_path):
    config = FolderConfiguration(str(tmp_path))
    assert config.names == [default_configuration_name()]
    assert config.current_index == 0
    assert config.compile_commands_path is None


def test_configurations_are_held_until_default_paths_arrive(tmp_path):
    _write_config(tmp_path, {
        "configurations": [
            {"name": "Debug"},
            {"name": "Release", "includePath": ["include"], "compilerPath": "/usr/bin/clang++"},
        ],
        "current": 1,
    })
    config = FolderConfiguration(str(tmp_path))
    published = []
    config.configurations_changed.subscribe(published.append)
    assert config.current_name == "Release"

    config.check_for_changes()
    assert published == []

    config.default_paths = DefaultPaths(include_paths=["/usr/include"], compiler_path="/usr/bin/g++")
    resolved = published[-1]
    assert resolved[0]["includePath"] == ["/usr/include"]
    assert resolved[0]["compilerPath"] == "/usr/bin/g++"
    assert resolved[1]["includePath"] == ["include"]
    assert resolved[1]["compilerPath"] == "/usr/bin/clang++"


def test_select_publishes_and_ignores_out_of_range(tmp_path):
    _write_config(tmp_path, {"configurations": [{"name": "A"}, {"name": "B"}]})
    config = FolderConfiguration(str(tmp_path))
    selected = []
    config.selection_changed.subscribe(selected.append)
    config.select(1)
    config.select(1)
    config.select(7)
    assert selected == [1]
    assert config.current_name == "B"


def test_add_include_path_saves_the_file(tmp_path):
    path = _write_config(tmp_path, {"configurations": [{"name": "A", "includePath": ["inc"]}]})
    config = FolderConfiguration(str(tmp_path))
    config.add_include_path("third_party")
    config.add_include_path("third_party")
    saved = yaml.safe_load(path.read_text())
    assert saved["configurations"][0]["includePath"] == ["inc", "third_party"]


def test_changes_on_disk_are_reloaded(tmp_path):
    path = _write_config(tmp_path, {"configurations": [{"name": "A"}]})
    config = FolderConfiguration(str(tmp_path))
    config.default_paths = DefaultPaths()
    published = []
    config.configurations_changed.subscribe(published.append)

    _write_config(tmp_path, {"configurations": [{"name": "A"}, {"name": "B"}]})
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 10))
    config.check_for_changes()

    assert [c["name"] for c in published[-1]] == ["A", "B"]


def test_compile_commands_change_is_detected(tmp_path):
    commands = tmp_path / "build" / "compile_commands.json"
    commands.parent.mkdir()
    commands.write_text("[]")
    _write_config(tmp_path, {
        "configurations": [{"name": "A", "compileCommands": "build/compile_commands.json"}],
    })
    config = FolderConfiguration(str(tmp_path))
    changed = []
    config.compile_commands_changed.subscribe(changed.append)

    config.check_for_changes()
    config.check_for_changes()
    assert changed == [str(commands)]

    stat = commands.stat()
    os.utime(commands, (stat.st_atime, stat.st_mtime + 10))
    config.check_for_changes()
    assert len(changed) == 2


def test_malformed_file_raises_configuration_error(tmp_path):
    path = tmp_path / ".lsclients" / "configurations.yaml"
    path.parent.mkdir()
    path.write_text("configurations: [unclosed")
    with pytest.raises(ConfigurationError):
        FolderConfiguration(str(tmp_path))

    path.write_text("configurations: just-a-string")
    with pytest.raises(ConfigurationError, match="list of mappings"):
        FolderConfiguration(str(tmp_path))


@pytest.mark.asyncio
async def test_session_sends_configurations_after_default_paths(tmp_path, workspace):
    alpha, _ = workspace
    root = tmp_path / "alpha"
    _write_config(root, {"configurations": [{"name": "Debug"}, {"name": "Release"}]})
    factory = FakeTransportFactory(responses={
        Request.QUERY_DEFAULT_PATHS.value: {"includes": ["/usr/include"], "frameworks": []},
    })
    registry = build_registry(tmp_path, factory)
    session = registry.create_session(alpha)
    await settle(registry)
    transport = factory.last

    method, params = transport.notifications[-1]
    assert method == Notification.FOLDER_SETTINGS_CHANGED
    assert params["currentConfiguration"] == 0
    assert params["configurations"][0]["includePath"] == ["/usr/include"]
    assert session.model.get(ModelField.ACTIVE_CONFIG_NAME) == "Debug"

    session.select_configuration(1)
    assert transport.notifications[-1] == (
        Notification.SELECTED_SETTING_CHANGED, {"currentConfiguration": 1},
    )
    assert session.model.get(ModelField.ACTIVE_CONFIG_NAME) == "Release"

    session.add_to_include_path("vendor")
    saved = yaml.safe_load((root / ".lsclients" / "configurations.yaml").read_text())
    assert saved["configurations"][1]["includePath"] == ["vendor"]
    await registry.dispose()


@pytest.mark.asyncio
async def test_malformed_folder_config_falls_back_to_defaults(tmp_path, workspace):
    alpha, _ = workspace
    bad = tmp_path / "alpha" / ".lsclients" / "configurations.yaml"
    bad.parent.mkdir()
    bad.write_text("configurations: [unclosed")
    registry = build_registry(tmp_path, FakeTransportFactory())
    session = registry.create_session(alpha)
    await settle(registry)
    assert session.is_ready
    assert session.configuration.names == [default_configuration_name()]
    await registry.dispose()


@pytest.mark.parametrize("data, message", [
    ({"configurations": [{"name": "A"}], "current": "abc"}, "current must be an index"),
    ({"configurations": [{"name": "A"}], "current": [1]}, "current must be an index"),
    ({"configurations": [{"name": "A", "compileCommands": 5}]}, "compileCommands must be a path"),
])
def test_invalid_values_raise_configuration_error(tmp_path, data, message):
    _write_config(tmp_path, data)
    with pytest.raises(ConfigurationError, match=message):
        FolderConfiguration(str(tmp_path))


def test_broken_reload_keeps_the_previous_configurations(tmp_path):
    path = _write_config(tmp_path, {"configurations": [{"name": "A"}, {"name": "B"}], "current": 1})
    config = FolderConfiguration(str(tmp_path))

    _write_config(tmp_path, {"configurations": [{"name": "C"}], "current": "abc"})
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 10))
    with pytest.raises(ConfigurationError):
        config.check_for_changes()
    assert config.names == ["A", "B"]
    assert config.current_name == "B"


@pytest.mark.asyncio
async def test_non_integer_current_does_not_block_the_session(tmp_path, workspace):
    alpha, _ = workspace
    _write_config(tmp_path / "alpha", {"configurations": [{"name": "Debug"}], "current": "abc"})
    registry = build_registry(tmp_path, FakeTransportFactory())
    session = registry.create_session(alpha)
    await settle(registry)

    assert session.is_ready
    assert session.configuration.names == [default_configuration_name()]
    assert await asyncio.wait_for(session.request_go_to_declaration(), timeout=1.0) is None
    await registry.dispose()


@pytest.mark.asyncio
async def test_broken_edit_is_logged_by_the_heartbeat(tmp_path, workspace, caplog):
    alpha, _ = workspace
    path = _write_config(tmp_path / "alpha", {"configurations": [{"name": "Debug"}]})
    registry = build_registry(tmp_path, FakeTransportFactory())
    session = registry.create_session(alpha)
    await settle(registry)

    path.write_text("configurations:\n  - name: Debug\n    compileCommands: 5\n")
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 10))
    session.on_interval()

    assert session.is_ready
    assert "compileCommands must be a path" in caplog.text
    assert session.configuration.names == ["Debug"]
    await registry.dispose()
