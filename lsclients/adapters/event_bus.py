"""Async event bus bridging session callbacks to UI consumers.

Sessions publish from synchronous handlers that must never block the
inbound message stream, so ``publish`` only enqueues. Consumers read
with ``consume`` from their own task.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from lsclients.adapters.events import ClientEvent

logger = logging.getLogger(__name__)


class EventBus:
    """Async queue bridging session events to UI consumers."""

    def __init__(self, maxsize: int = 5000) -> None:
        self._queue: asyncio.Queue[ClientEvent] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def publish(self, event: ClientEvent) -> None:
        """Enqueue *event* without waiting. Drops it when the queue is full."""
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.error(
                "EventBus queue full, dropping: %s (queue size: %d)",
                event.event_type,
                self._queue.qsize(),
            )

    async def consume(self) -> AsyncIterator[ClientEvent]:
        """Yield events as they arrive. Stops on close()."""
        while not self._closed:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=0.5)
                yield event
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

    def drain(self) -> list[ClientEvent]:
        """Remove and return every queued event."""
        events: list[ClientEvent] = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def close(self) -> None:
        """Stop the consumer loop permanently."""
        self._closed = True

