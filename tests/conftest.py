"""Shared fixtures: an in-memory transport and registry builders."""

from __future__ import annotations

import asyncio
from enum import Enum
from pathlib import Path
from typing import Any

import pytest

from lsclients.adapters.events import ClientEvent
from lsclients.engine.config import ClientConfig
from lsclients.engine.crash_policy import CrashPolicy
from lsclients.engine.errors import TransportError
from lsclients.engine.models import TextDocument, WorkspaceFolder
from lsclients.engine.registry import SessionRegistry
from lsclients.engine.session import make_session_factory
from lsclients.engine.transport import Transport
from lsclients.shared.services.preferences import ClientPreferences


class FakeTransport(Transport):
    """Transport that records traffic instead of spawning a process."""

    def __init__(
        self,
        folder: WorkspaceFolder | None,
        config: ClientConfig,
        *,
        hold_start: bool = False,
        fail_start: BaseException | None = None,
        auto_respond: bool = True,
        responses: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(folder.display_name if folder is not None else "untitled")
        self.folder = folder
        self.initialization_options: dict[str, Any] | None = None
        self.notifications: list[tuple[str, Any]] = []
        self.requests: list[tuple[str, Any]] = []
        self.stop_count = 0
        self._release = asyncio.Event()
        if not hold_start:
            self._release.set()
        self._fail_start = fail_start
        self._auto_respond = auto_respond
        self._responses = dict(responses or {})
        self.pending: list[asyncio.Future[Any]] = []

    @property
    def notified_methods(self) -> list[str]:
        return [method for method, _ in self.notifications]

    @property
    def requested_methods(self) -> list[str]:
        return [method for method, _ in self.requests]

    def release(self) -> None:
        self._release.set()

    async def start(self, initialization_options: dict[str, Any]) -> None:
        self.initialization_options = initialization_options
        await self._release.wait()
        if self._fail_start is not None:
            raise self._fail_start

    def send_request(self, method: str, params: Any) -> asyncio.Future[Any]:
        self.requests.append((method, params))
        future = asyncio.get_running_loop().create_future()
        if self._auto_respond:
            future.set_result(self._responses.get(method))
        else:
            self.pending.append(future)
        return future

    def send_notification(self, method: str, params: Any) -> None:
        if self.closed:
            raise TransportError(self.name, "not connected")
        self.notifications.append((method, params))

    async def stop(self) -> None:
        self.stop_count += 1
        self._closed = True

    def crash(self) -> None:
        self._report_closed()

    def emit(self, method: str, params: Any) -> None:
        self.dispatch(method.value if isinstance(method, Enum) else method, params)


class FakeTransportFactory:
    """Builds FakeTransports and remembers them in creation order."""

    def __init__(self, fail_with: BaseException | None = None, **options: Any) -> None:
        self.created: list[FakeTransport] = []
        self._fail_with = fail_with
        self._options = options

    def __call__(self, folder: WorkspaceFolder | None, config: ClientConfig) -> FakeTransport:
        if self._fail_with is not None:
            raise self._fail_with
        transport = FakeTransport(folder, config, **self._options)
        self.created.append(transport)
        return transport

    def for_folder(self, folder: WorkspaceFolder | None) -> list[FakeTransport]:
        return [t for t in self.created if t.folder == folder]

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


class NoticeRecorder:
    def __init__(self) -> None:
        self.events: list[ClientEvent] = []

    def __call__(self, event: ClientEvent) -> None:
        self.events.append(event)

    def of_type(self, cls: type) -> list[Any]:
        return [e for e in self.events if isinstance(e, cls)]


def build_registry(
    tmp_path: Path,
    factory: FakeTransportFactory,
    *,
    config: ClientConfig | None = None,
    notices: NoticeRecorder | None = None,
    telemetry=None,
    preferences: ClientPreferences | None = None,
    crash_policy: CrashPolicy | None = None,
) -> SessionRegistry:
    config = config or ClientConfig(
        server_command=["fake-server"],
        storage_path=str(tmp_path / "storage"),
    )
    session_factory = make_session_factory(
        config,
        factory,
        notices=notices,
        telemetry=telemetry,
        preferences=preferences or ClientPreferences(),
        preferences_path=tmp_path / "preferences.json",
        crash_policy=crash_policy,
    )
    return SessionRegistry(session_factory, notices=notices)


async def settle(registry: SessionRegistry) -> None:
    """Wait until every session finished its handshake and callbacks ran."""
    for session in registry.sessions:
        waiter = getattr(session, "wait_until_settled", None)
        if waiter is not None:
            await waiter()
    for _ in range(5):
        await asyncio.sleep(0)


def document(folder: Path, name: str, text: str = "") -> TextDocument:
    return TextDocument.from_path(folder / name, text=text)


@pytest.fixture
def workspace(tmp_path):
    """Two sibling workspace folders on disk."""
    a = tmp_path / "alpha"
    b = tmp_path / "beta"
    a.mkdir()
    b.mkdir()
    return (
        WorkspaceFolder(path=str(a), name="alpha", index=0),
        WorkspaceFolder(path=str(b), name="beta", index=1),
    )


@pytest.fixture
def notices():
    return NoticeRecorder()
