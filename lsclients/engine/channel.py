"""Synchronous publish/subscribe channels with disposable subscriptions."""
from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription:
    """Handle returned by ``subscribe``; disposing it detaches one handler."""

    def __init__(self, release: Callable[[], None] | None = None) -> None:
        self._release = release
        self._disposed = release is None

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        release, self._release = self._release, None
        if release is not None:
            release()


class Channel(Generic[T]):
    """Ordered fan-out of typed payloads to subscribed handlers.

    Handlers run synchronously in subscription order. A failing
    handler is logged and does not prevent later handlers from
    running, so ``publish`` never raises.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: dict[int, Callable[[T], None]] = {}
        self._ids = itertools.count()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._handlers)

    def subscribe(self, handler: Callable[[T], None]) -> Subscription:
        if self._closed:
            return Subscription()
        handler_id = next(self._ids)
        self._handlers[handler_id] = handler
        return Subscription(lambda: self._handlers.pop(handler_id, None))

    def publish(self, payload: T) -> None:
        if self._closed:
            return
        for handler in list(self._handlers.values()):
            try:
                handler(payload)
            except Exception:
                logger.exception("Subscriber of %s failed", self.name)

    def close(self) -> None:
        """Release every subscription. Later publishes are ignored."""
        self._closed = True
        self._handlers.clear()
