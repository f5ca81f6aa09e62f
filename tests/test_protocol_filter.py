"""Protocol filter: only the active session answers and synchronises."""

from __future__ import annotations

import asyncio

import pytest
from conftest import FakeTransportFactory, build_registry, document, settle
from lsprotocol import types

from lsclients.engine.protocol import FORWARDED_METHODS, SYNC_METHODS
from lsclients.engine.protocol_filter import require_forwarded


async def _two_sessions(tmp_path, workspace, **options):
    alpha, beta = workspace
    factory = FakeTransportFactory(**options)
    registry = build_registry(tmp_path, factory)
    a = registry.create_session(alpha)
    b = registry.create_session(beta)
    await settle(registry)
    return registry, factory, a, b


@pytest.mark.asyncio
async def test_text_sync_goes_to_the_active_session_only(tmp_path, workspace):
    registry, factory, a, b = await _two_sessions(tmp_path, workspace)
    ta, tb = factory.created
    doc = document(tmp_path / "beta", "util.cpp", text="int x;")
    registry.did_open(doc)

    registry.did_change(doc)
    registry.will_save(doc)
    registry.did_save(doc)

    sync_a = [m for m in ta.notified_methods if m in SYNC_METHODS]
    sync_b = [m for m in tb.notified_methods if m in SYNC_METHODS]
    assert sync_a == [
        types.TEXT_DOCUMENT_DID_CHANGE,
        types.TEXT_DOCUMENT_WILL_SAVE,
        types.TEXT_DOCUMENT_DID_SAVE,
    ]
    assert sync_b == []

    registry.set_active_document(doc)
    registry.did_change(doc)
    assert [m for m in tb.notified_methods if m in SYNC_METHODS] == [
        types.TEXT_DOCUMENT_DID_CHANGE,
    ]
    await registry.dispose()


@pytest.mark.asyncio
async def test_did_change_sends_the_whole_document(tmp_path, workspace):
    registry, factory, a, _ = await _two_sessions(tmp_path, workspace)
    doc = document(tmp_path / "alpha", "main.cpp", text="int main() {}")
    registry.did_open(doc)
    registry.did_change(doc)
    method, params = factory.created[0].notifications[-1]
    assert method == types.TEXT_DOCUMENT_DID_CHANGE
    assert params.content_changes[0].text == "int main() {}"
    await registry.dispose()


@pytest.mark.asyncio
async def test_provide_returns_the_active_answer(tmp_path, workspace):
    hover = {"contents": "int x"}
    registry, factory, a, b = await _two_sessions(
        tmp_path, workspace, responses={types.TEXT_DOCUMENT_HOVER: hover},
    )
    params = {"textDocument": {"uri": "file:///x.cpp"}, "position": {"line": 0, "character": 0}}

    assert await registry.provide(types.TEXT_DOCUMENT_HOVER, params) == hover
    ta, tb = factory.created
    assert types.TEXT_DOCUMENT_HOVER in ta.requested_methods
    assert types.TEXT_DOCUMENT_HOVER not in tb.requested_methods

    # A background session answers with nothing.
    assert await b.forward(types.TEXT_DOCUMENT_HOVER, params) is None
    await registry.dispose()


@pytest.mark.asyncio
async def test_provide_rejects_unknown_methods(tmp_path, workspace):
    registry, _, _, _ = await _two_sessions(tmp_path, workspace)
    with pytest.raises(ValueError, match="Unknown editor method"):
        await registry.provide("textDocument/madeUp", {})
    await registry.dispose()


@pytest.mark.asyncio
async def test_will_save_wait_until_collects_active_edits(tmp_path, workspace):
    edit = {"range": {}, "newText": "x"}
    registry, factory, a, b = await _two_sessions(
        tmp_path, workspace,
        responses={types.TEXT_DOCUMENT_WILL_SAVE_WAIT_UNTIL: [edit]},
    )
    doc = document(tmp_path / "alpha", "main.cpp")
    registry.did_open(doc)

    assert await registry.will_save_wait_until(doc) == [edit]
    assert await b.will_save_wait_until(doc) == []
    await registry.dispose()


def test_forwarded_method_set_is_closed():
    require_forwarded(types.TEXT_DOCUMENT_COMPLETION)
    assert types.TEXT_DOCUMENT_DID_CHANGE not in FORWARDED_METHODS
    with pytest.raises(ValueError):
        require_forwarded(types.TEXT_DOCUMENT_DID_CHANGE)


@pytest.mark.asyncio
async def test_focus_change_keeps_the_request_already_forwarded(tmp_path, workspace):
    registry, factory, a, b = await _two_sessions(tmp_path, workspace, auto_respond=False)
    ta, tb = factory.created
    params = {"textDocument": {"uri": "file:///x.cpp"}, "position": {"line": 0, "character": 0}}

    first = asyncio.ensure_future(registry.provide(types.TEXT_DOCUMENT_HOVER, params))
    for _ in range(3):
        await asyncio.sleep(0)
    assert ta.requested_methods.count(types.TEXT_DOCUMENT_HOVER) == 1

    registry.set_active(b)
    assert not first.done()
    ta.pending[-1].set_result({"contents": "from alpha"})
    assert await first == {"contents": "from alpha"}

    second = asyncio.ensure_future(registry.provide(types.TEXT_DOCUMENT_HOVER, params))
    for _ in range(3):
        await asyncio.sleep(0)
    assert ta.requested_methods.count(types.TEXT_DOCUMENT_HOVER) == 1
    assert tb.requested_methods.count(types.TEXT_DOCUMENT_HOVER) == 1
    tb.pending[-1].set_result({"contents": "from beta"})
    assert await second == {"contents": "from beta"}
    await registry.dispose()
