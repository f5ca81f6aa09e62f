"""Routes editor calls to the one session that should see them.

Document lifecycle (open/close) is gated by ownership: only the session
whose folder contains the document may track it. Everything else goes
through iff the session is the active one; background sessions answer
with a neutral value so their results never leak into the foreground.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from .models import TextDocument
from .protocol import FORWARDED_METHODS

if TYPE_CHECKING:
    from .registry import SessionRegistry
    from .session import Session

logger = logging.getLogger(__name__)


def require_forwarded(method: str) -> None:
    if method not in FORWARDED_METHODS:
        raise ValueError(f"Unknown editor method: {method}")


class ProtocolFilter:
    """Per-session middleware between editor events and the transport."""

    def __init__(self, session: Session, registry: SessionRegistry) -> None:
        self._session = session
        self._registry = registry

    @property
    def is_active(self) -> bool:
        return self._registry.active_session is self._session

    def did_open(self, document: TextDocument, send: Callable[[TextDocument], None]) -> bool:
        if not self._registry.check_ownership(self._session, document):
            logger.debug("%s does not own %s", self._session.name, document.uri)
            return False
        # Tracked before the transport sees it.
        self._session.tracked_documents.add(document)
        send(document)
        return True

    def did_close(self, document: TextDocument, send: Callable[[TextDocument], None]) -> bool:
        if not self._registry.check_ownership(self._session, document):
            logger.debug("%s does not own %s", self._session.name, document.uri)
            return False
        tracked = self._session.tracked_documents
        assert document in tracked, f"{document.uri} is not tracked by {self._session.name}"
        tracked.discard(document)
        send(document)
        return True

    def _when_active(self, document: TextDocument, send: Callable[[TextDocument], None]) -> bool:
        if not self.is_active:
            return False
        send(document)
        return True

    did_change = _when_active
    will_save = _when_active
    did_save = _when_active

    async def will_save_wait_until(
        self,
        document: TextDocument,
        send: Callable[[TextDocument], Awaitable[list[Any] | None]],
    ) -> list[Any]:
        if not self.is_active:
            return []
        return list(await send(document) or [])

    def forward(
        self,
        method: str,
        send: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> Awaitable[Any] | None:
        """Invoke *send* for the active session; None means suppressed."""
        require_forwarded(method)
        if not self.is_active:
            return None
        return send(*args)
