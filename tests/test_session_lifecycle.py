"""Session startup, deferred calls, failure and disposal."""

from __future__ import annotations

import asyncio

import pytest
from conftest import FakeTransportFactory, build_registry, document, settle

from lsclients.adapters.events import ClientNotice, SessionReplaced
from lsclients.engine.config import ClientConfig
from lsclients.engine.errors import (
    ClientDisposedError,
    TransportError,
    UnsupportedClientError,
    UnsupportedPlatformError,
)
from lsclients.engine.models import GateState, SessionState
from lsclients.engine.protocol import Notification, Request


@pytest.mark.asyncio
async def test_calls_before_ready_are_replayed_in_order(tmp_path, workspace):
    alpha, _ = workspace
    factory = FakeTransportFactory(hold_start=True)
    registry = build_registry(tmp_path, factory)
    session = registry.create_session(alpha)
    doc = document(tmp_path / "alpha", "main.cpp")

    registry.did_open(doc)
    session.reset_database()
    pending = session.request_go_to_declaration()
    await asyncio.sleep(0)

    transport = factory.last
    assert session.state is SessionState.INITIALIZING
    assert transport.notifications == []
    assert session.gate.queued_count == 3
    # Tracked immediately, sent later.
    assert doc in session.tracked_documents

    transport.release()
    await settle(registry)

    assert session.state is SessionState.READY
    assert transport.notified_methods[:2] == [
        Notification.DID_OPEN,
        Notification.RESET_DATABASE,
    ]
    assert transport.requested_methods == [
        Request.QUERY_DEFAULT_PATHS,
        Request.GO_TO_DECLARATION,
    ]
    assert await pending is None
    await registry.dispose()


@pytest.mark.asyncio
async def test_initialization_options_carry_settings(tmp_path, workspace):
    alpha, beta = workspace
    config = ClientConfig(
        server_command=["fake-server"],
        storage_path=str(tmp_path / "storage"),
        settings={"tab_size": 2, "intellisense_engine": "Tag Parser"},
    )
    factory = FakeTransportFactory()
    registry = build_registry(tmp_path, factory, config=config)
    registry.create_session(alpha)
    registry.create_session(beta)
    await settle(registry)

    options = factory.created[1].initialization_options
    assert options["tab_size"] == 2
    assert options["intelliSenseEngine"] == "Tag Parser"
    assert options["clang_format_style"] == "file"
    # Multi-root sessions get their own storage directory.
    assert options["storage_path"] == str(tmp_path / "storage" / "beta")
    await registry.dispose()


@pytest.mark.asyncio
async def test_handshake_failure_marks_the_session_unsupported(tmp_path, workspace, notices):
    alpha, _ = workspace
    factory = FakeTransportFactory(
        hold_start=True, fail_start=TransportError("alpha", "spawn failed"),
    )
    registry = build_registry(tmp_path, factory, notices=notices)
    session = registry.create_session(alpha)
    queued = session.request_go_to_declaration()
    session.reset_database()

    factory.last.release()
    await settle(registry)

    assert session.state is SessionState.FAILED
    assert not session.is_supported
    assert session.gate.state is GateState.FAILED
    with pytest.raises(UnsupportedClientError):
        await queued
    with pytest.raises(UnsupportedClientError):
        await session.request_navigation_list(document(tmp_path / "alpha", "a.cpp"))
    assert factory.last.notifications == []

    unsupported = [n for n in notices.of_type(ClientNotice) if n.notice_id == "unsupported"]
    assert len(unsupported) == 1
    assert unsupported[0].level == "error"
    await registry.dispose()


@pytest.mark.asyncio
async def test_unsupported_platform_fails_at_construction(tmp_path, workspace, notices):
    alpha, _ = workspace
    factory = FakeTransportFactory(fail_with=UnsupportedPlatformError("sunos5"))
    registry = build_registry(tmp_path, factory, notices=notices)
    session = registry.create_session(alpha)

    assert session.state is SessionState.FAILED
    assert factory.created == []
    with pytest.raises(UnsupportedClientError):
        await session.request_go_to_declaration()
    assert len(notices.of_type(ClientNotice)) == 1
    await registry.dispose()
    assert session.state is SessionState.DISPOSED


@pytest.mark.asyncio
async def test_dispose_before_ready_rejects_queued_requests(tmp_path, workspace):
    alpha, _ = workspace
    factory = FakeTransportFactory(hold_start=True)
    registry = build_registry(tmp_path, factory)
    session = registry.create_session(alpha)
    queued = session.request_go_to_declaration()

    await registry.dispose()

    with pytest.raises(ClientDisposedError):
        await queued
    assert session.state is SessionState.DISPOSED
    assert factory.last.stop_count == 1
    with pytest.raises(ClientDisposedError):
        await session.request_go_to_declaration()


@pytest.mark.asyncio
async def test_dispose_rejects_requests_in_transit(tmp_path, workspace):
    alpha, _ = workspace
    factory = FakeTransportFactory(auto_respond=False)
    registry = build_registry(tmp_path, factory)
    session = registry.create_session(alpha)
    await settle(registry)

    in_transit = session.request_go_to_declaration()
    await asyncio.sleep(0)
    assert session.gate.inflight_count == 1

    dispose = session.begin_dispose()
    assert in_transit.done()
    with pytest.raises(ClientDisposedError):
        await in_transit
    await dispose
    assert factory.last.stop_count == 1
    # Idempotent.
    assert session.begin_dispose() is dispose
    await registry.dispose()
    assert factory.last.stop_count == 1


@pytest.mark.asyncio
async def test_disposed_session_sends_nothing(tmp_path, workspace):
    alpha, _ = workspace
    factory = FakeTransportFactory()
    registry = build_registry(tmp_path, factory)
    session = registry.create_session(alpha)
    await settle(registry)
    sent = len(factory.last.notifications)

    await session.dispose()
    session.reset_database()
    session.file_created("file:///tmp/new.cpp")
    session.on_interval()
    session.pause()

    assert len(factory.last.notifications) == sent
    assert not session.model.active


@pytest.mark.asyncio
async def test_heartbeat_is_dropped_until_ready(tmp_path, workspace):
    alpha, _ = workspace
    factory = FakeTransportFactory(hold_start=True)
    registry = build_registry(tmp_path, factory)
    session = registry.create_session(alpha)

    registry.on_interval()
    assert session.gate.queued_count == 0

    factory.last.release()
    await settle(registry)
    registry.on_interval()
    assert factory.last.notified_methods.count(Notification.INTERVAL_TIMER) == 1
    await registry.dispose()


@pytest.mark.asyncio
async def test_commands_are_sent_with_their_params(tmp_path, workspace):
    alpha, _ = workspace
    factory = FakeTransportFactory()
    registry = build_registry(tmp_path, factory)
    session = registry.create_session(alpha)
    await settle(registry)
    transport = factory.last

    session.file_created("file:///src/new.cpp")
    session.file_deleted("file:///src/old.cpp")
    session.selection_changed(3, 7)
    session.request_switch_header_source("main.cpp")
    await settle(registry)

    assert transport.notifications[-3] == (
        Notification.FILE_CREATED, {"uri": "file:///src/new.cpp"},
    )
    assert transport.notifications[-2] == (
        Notification.FILE_DELETED, {"uri": "file:///src/old.cpp"},
    )
    method, position = transport.notifications[-1]
    assert method == Notification.SELECTION_CHANGE
    assert (position.line, position.character) == (3, 7)
    assert transport.requests[-1] == (
        Request.SWITCH_HEADER_SOURCE,
        {"rootPath": alpha.path, "switchHeaderSourceFileName": "main.cpp"},
    )
    await registry.dispose()


@pytest.mark.asyncio
async def test_failed_session_stays_failed_when_its_process_exits(tmp_path, workspace, notices):
    alpha, _ = workspace
    factory = FakeTransportFactory(fail_start=TransportError("alpha", "handshake refused"))
    registry = build_registry(tmp_path, factory, notices=notices)
    session = registry.create_session(alpha)
    await settle(registry)

    assert session.state is SessionState.FAILED
    # The spawned process is shut down as soon as the handshake fails.
    assert factory.last.stop_count == 1

    # The exit is reported even though the stop already went out.
    factory.last._closed = False
    factory.last.crash()
    await settle(registry)

    assert len(factory.created) == 1
    assert registry.get(alpha) is session
    assert session.state is SessionState.FAILED
    assert len(session.crash_record) == 0
    assert notices.of_type(SessionReplaced) == []

    await registry.dispose()
    assert factory.last.stop_count == 1
