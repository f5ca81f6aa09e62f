"""Session registry: ownership, focus and replacement of sessions.

One slot per workspace folder (the ownerless session uses the empty
key). The first registered session is the fallback owner for documents
outside every folder and the initial active session. Every mutation
happens in one synchronous step so readers never see a half-updated
registry.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator
from pathlib import PurePath
from typing import Any, Union

from lsclients.adapters.events import ActiveSessionChanged, SessionReplaced

from .channel import Channel
from .crash_policy import CrashRecord
from .models import FolderSettings, TextDocument, WorkspaceFolder
from .protocol_filter import require_forwarded
from .session import NoticeSink, NullSession, Session, SessionFactory

logger = logging.getLogger(__name__)

AnySession = Union[Session, NullSession]


class SessionRegistry:
    """Owns every session of an editor window."""

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        *,
        notices: NoticeSink | None = None,
    ) -> None:
        self._factory = session_factory
        self._notices = notices
        self._slots: dict[str, AnySession] = {}
        self._fallback_key: str | None = None
        self._active_key: str | None = None
        self._active_document: TextDocument | None = None
        self._pending_disposals: set[asyncio.Future[None]] = set()
        self._disposed = False
        self.active_changed: Channel[AnySession] = Channel("active_session")
        self.session_added: Channel[AnySession] = Channel("session_added")

    # ── Lookup ──

    def __len__(self) -> int:
        return len(self._slots)

    def __iter__(self) -> Iterator[AnySession]:
        return iter(list(self._slots.values()))

    @property
    def sessions(self) -> list[AnySession]:
        return list(self._slots.values())

    @property
    def fallback(self) -> AnySession | None:
        if self._fallback_key is None:
            return None
        return self._slots.get(self._fallback_key)

    @property
    def active_session(self) -> AnySession | None:
        if self._active_key is None:
            return None
        return self._slots.get(self._active_key)

    @property
    def active_document(self) -> TextDocument | None:
        return self._active_document

    @property
    def is_multi_root(self) -> bool:
        return sum(1 for s in self._slots.values() if s.folder is not None) > 1

    def get(self, folder: WorkspaceFolder | None) -> AnySession | None:
        return self._slots.get(folder.key if folder is not None else "")

    def owner_of(self, document: TextDocument) -> AnySession | None:
        """Session whose folder is the longest ancestor of *document*."""
        path = PurePath(document.path)
        best: AnySession | None = None
        best_depth = -1
        for session in self._slots.values():
            if session.folder is None:
                continue
            root = PurePath(session.folder.path)
            if root != path and root not in path.parents:
                continue
            depth = len(root.parts)
            if depth > best_depth:
                best, best_depth = session, depth
        return best if best is not None else self.fallback

    def check_ownership(self, session: AnySession, document: TextDocument) -> bool:
        return self.owner_of(document) is session

    # ── Membership ──

    def register(self, session: AnySession) -> None:
        key = session.key
        if key in self._slots:
            raise ValueError(f"A session is already registered for {key or '<no folder>'}")
        self._slots[key] = session
        logger.info("Registered session %s", session.name)
        if self._fallback_key is None:
            self._fallback_key = key
        if self._active_key is None:
            self._active_key = key
            session.activate()
        self.session_added.publish(session)

    def create_session(self, folder: WorkspaceFolder | None = None) -> AnySession:
        """Build a session for *folder*, register it and start it."""
        session = self._build(folder, None)
        self.register(session)
        session.start()
        return session

    def _build(self, folder: WorkspaceFolder | None, record: CrashRecord | None) -> Session:
        if self._factory is None:
            raise RuntimeError("SessionRegistry has no session factory")
        return self._factory(self, folder, record)

    def add_folder(self, folder: WorkspaceFolder) -> AnySession:
        """Start a session for a folder added at runtime.

        Documents inside the new folder move to the new session.
        """
        existing = self._slots.get(folder.key)
        if existing is not None:
            return existing
        session = self._build(folder, None)
        self.register(session)
        for other in self.sessions:
            if other is session:
                continue
            for document in list(other.tracked_documents):
                if self.owner_of(document) is session:
                    other.release(document)
                    session.take_ownership(document)
        session.start()
        return session

    def remove_folder(self, folder: WorkspaceFolder) -> None:
        """Dispose the folder's session and re-home its documents."""
        session = self._slots.pop(folder.key, None)
        if session is None:
            return
        documents = list(session.tracked_documents)
        was_active = self._active_key == folder.key
        if self._fallback_key == folder.key:
            self._fallback_key = next(iter(self._slots), None)
        if was_active:
            self._active_key = None
        self._track_disposal(session.begin_dispose())
        logger.info("Removed session %s", session.name)
        for document in documents:
            owner = self.owner_of(document)
            if owner is not None:
                owner.take_ownership(document)
        if was_active:
            successor = self._focus_candidate()
            if successor is not None:
                self._active_key = successor.key
                successor.activate()
                self._announce_active(successor, session)

    def _focus_candidate(self) -> AnySession | None:
        if self._active_document is not None:
            owner = self.owner_of(self._active_document)
            if owner is not None:
                return owner
        return self.fallback

    # ── Focus ──

    def set_active(self, session: AnySession) -> None:
        """Make *session* the foreground session.

        The previous session's model is disabled and the new one enabled
        in the same step.
        """
        if self._slots.get(session.key) is not session:
            raise ValueError(f"{session.name} is not registered")
        previous = self.active_session
        if previous is session:
            return
        if previous is not None:
            previous.deactivate()
        self._active_key = session.key
        session.activate()
        self._announce_active(session, previous)

    def _announce_active(self, session: AnySession, previous: AnySession | None) -> None:
        logger.debug(
            "Active session: %s -> %s",
            previous.name if previous is not None else None, session.name,
        )
        self.active_changed.publish(session)
        if self._notices is not None:
            self._notices(ActiveSessionChanged(
                session=session.name,
                previous=previous.name if previous is not None else None,
            ))

    def set_active_document(self, document: TextDocument) -> None:
        """Focus moved to *document*: activate its owner and tell it."""
        self._active_document = document
        owner = self.owner_of(document)
        if owner is None:
            return
        self.set_active(owner)
        owner.active_document_changed(document)

    # ── Crash handling ──

    def replace(self, session: Session, transfer_crash_record: bool = True) -> Session:
        """Swap a crashed session for a fresh one in the same slot.

        The old session is disposed, its documents are re-opened in the
        new one and, if it was active, so is the replacement.
        """
        key = session.key
        if self._slots.get(key) is not session:
            raise ValueError(f"{session.name} is not registered")
        record = session.take_crash_record() if transfer_crash_record else None
        documents = list(session.tracked_documents)
        was_active = self._active_key == key
        self._track_disposal(session.begin_dispose())

        replacement = self._build(session.folder, record)
        replacement.inherit_file_associations(session.learned_file_associations)
        self._slots[key] = replacement
        for document in documents:
            replacement.take_ownership(document)
        if was_active:
            replacement.activate()
            if (
                self._active_document is not None
                and self.owner_of(self._active_document) is replacement
            ):
                replacement.active_document_changed(self._active_document)
        logger.info(
            "Replaced session %s (%d crash(es) on record)",
            session.name, len(replacement.crash_record),
        )
        self.session_added.publish(replacement)
        if was_active:
            self.active_changed.publish(replacement)
        if self._notices is not None:
            self._notices(SessionReplaced(
                session=replacement.name,
                crash_count=len(replacement.crash_record),
            ))
        replacement.start()
        return replacement

    def stop(self, session: Session) -> NullSession:
        """Retire a session for good; a NullSession keeps its documents."""
        key = session.key
        if self._slots.get(key) is not session:
            raise ValueError(f"{session.name} is not registered")
        documents = set(session.tracked_documents)
        was_active = self._active_key == key
        crash_count = len(session.crash_record)
        self._track_disposal(session.begin_dispose())

        placeholder = NullSession(session.folder, documents, registry=self)
        self._slots[key] = placeholder
        if was_active:
            placeholder.activate()
        logger.warning("Stopped session %s permanently", session.name)
        self.session_added.publish(placeholder)
        if was_active:
            self.active_changed.publish(placeholder)
        if self._notices is not None:
            self._notices(SessionReplaced(
                session=placeholder.name, stopped=True, crash_count=crash_count,
            ))
        return placeholder

    def _track_disposal(self, pending: asyncio.Future[None]) -> None:
        if pending.done():
            return
        self._pending_disposals.add(pending)
        pending.add_done_callback(self._pending_disposals.discard)

    # ── Editor fan-out ──

    def did_open(self, document: TextDocument) -> None:
        for session in self.sessions:
            session.open(document)

    def did_close(self, document: TextDocument) -> None:
        for session in self.sessions:
            session.close(document)
        if self._active_document == document:
            self._active_document = None

    def did_change(self, document: TextDocument) -> None:
        for session in self.sessions:
            session.did_change(document)

    def will_save(self, document: TextDocument) -> None:
        for session in self.sessions:
            session.will_save(document)

    def did_save(self, document: TextDocument) -> None:
        for session in self.sessions:
            session.did_save(document)

    async def will_save_wait_until(self, document: TextDocument) -> list[Any]:
        results = await asyncio.gather(
            *(s.will_save_wait_until(document) for s in self.sessions)
        )
        return [edit for edits in results for edit in edits]

    async def provide(self, method: str, params: Any) -> Any:
        """Ask every session; only the active one answers."""
        require_forwarded(method)
        results = await asyncio.gather(
            *(s.forward(method, params) for s in self.sessions)
        )
        return next((r for r in results if r is not None), None)

    def on_interval(self) -> None:
        for session in self.sessions:
            session.on_interval()

    def on_did_change_settings(
        self, settings_for: Callable[[str | None], FolderSettings] | None = None,
    ) -> None:
        """Re-diff settings; *settings_for(folder_path)* supplies new values."""
        for session in self.sessions:
            settings: FolderSettings | None = None
            if settings_for is not None:
                settings = settings_for(session.folder.path if session.folder else None)
            session.on_did_change_settings(settings)

    # ── Shutdown ──

    async def dispose(self) -> None:
        """Dispose every session and wait for all pending shutdowns."""
        if self._disposed:
            return
        self._disposed = True
        sessions = self.sessions
        self._slots.clear()
        self._active_key = None
        self._fallback_key = None
        pending = [s.begin_dispose() for s in sessions]
        pending.extend(self._pending_disposals)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._pending_disposals.clear()
        self.active_changed.close()
        self.session_added.close()
        logger.info("Disposed %d session(s)", len(sessions))
