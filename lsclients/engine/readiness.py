"""Readiness gate: defers outbound calls until a session is initialized.

Editor activity starts the moment a window loads, long before the
analysis process finishes its handshake. Every call made in that
window is queued here and replayed in submission order once the gate
opens, or rejected (requests) / dropped (notifications) if it fails.

    PENDING ──┬──> READY    queued calls run FIFO, later calls run now
              └──> FAILED   queued requests reject, later calls reject
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import partial
from typing import Any, TypeVar

from .errors import ClientError, TransportError, UnsupportedClientError
from .models import GateState

logger = logging.getLogger(__name__)

T = TypeVar("T")


def rejected(error: BaseException) -> asyncio.Future[Any]:
    """Return an already-failed future on the running loop."""
    future = asyncio.get_running_loop().create_future()
    future.set_exception(error)
    return future


def resolved(value: T) -> asyncio.Future[T]:
    """Return an already-completed future on the running loop."""
    future = asyncio.get_running_loop().create_future()
    future.set_result(value)
    return future


def _settle(outer: asyncio.Future[Any], inner: asyncio.Future[Any]) -> None:
    if inner.cancelled():
        if not outer.done():
            outer.cancel()
        return
    error = inner.exception()
    if outer.done():
        return
    if error is not None:
        outer.set_exception(error)
    else:
        outer.set_result(inner.result())


@dataclass
class _Deferred:
    """A queued continuation; ``reject`` is None for notifications."""
    run: Callable[[], None]
    reject: Callable[[BaseException], None] | None = None


class ReadinessGate:
    """Per-session barrier in front of the transport."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._state = GateState.PENDING
        self._deferred: deque[_Deferred] = deque()
        self._inflight: set[asyncio.Future[Any]] = set()
        self._failure: ClientError | None = None

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is GateState.READY

    @property
    def is_pending(self) -> bool:
        return self._state is GateState.PENDING

    @property
    def queued_count(self) -> int:
        return len(self._deferred)

    @property
    def inflight_count(self) -> int:
        return sum(1 for future in self._inflight if not future.done())

    def open(self) -> None:
        """PENDING -> READY. Replays every queued call in FIFO order."""
        self._require_pending(GateState.READY)
        self._state = GateState.READY
        deferred, self._deferred = self._deferred, deque()
        logger.debug(
            "Gate for %s ready; replaying %d deferred call(s)",
            self._name, len(deferred),
        )
        for item in deferred:
            try:
                item.run()
            except Exception:
                logger.exception("Deferred call for %s failed", self._name)

    def fail(self, error: ClientError | None = None) -> None:
        """PENDING -> FAILED. Rejects queued requests, drops notifications."""
        self._require_pending(GateState.FAILED)
        self._state = GateState.FAILED
        self._failure = error or UnsupportedClientError(self._name)
        deferred, self._deferred = self._deferred, deque()
        dropped = 0
        for item in deferred:
            if item.reject is None:
                dropped += 1
                continue
            item.reject(self._failure)
        if dropped:
            logger.debug(
                "Gate for %s failed; dropped %d queued notification(s)",
                self._name, dropped,
            )

    def abort(self, error: ClientError) -> None:
        """Settle every queued and in-transit request with *error*.

        Called when the owning session is disposed. A pending gate is
        failed with the same error so nothing is queued afterwards.
        """
        if self._state is GateState.PENDING:
            self.fail(error)
        for future in list(self._inflight):
            if not future.done():
                future.set_exception(error)
        self._inflight.clear()

    def notify(self, call: Callable[[], None]) -> None:
        """Run a fire-and-forget call now, later, or never."""
        if self._state is GateState.READY:
            self._invoke_notification(call)
        elif self._state is GateState.PENDING:
            self._deferred.append(
                _Deferred(run=partial(self._invoke_notification, call))
            )
        else:
            logger.debug("Dropping notification for unsupported client %s", self._name)

    def request(self, call: Callable[[], Awaitable[T]]) -> asyncio.Future[T]:
        """Run a request now or once ready; the future tracks its outcome."""
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        if self._state is GateState.FAILED:
            assert self._failure is not None
            future.set_exception(self._failure)
            return future
        self._track(future)
        if self._state is GateState.READY:
            self._start(call, future)
        else:
            self._deferred.append(
                _Deferred(
                    run=partial(self._start, call, future),
                    reject=partial(self._reject, future),
                )
            )
        return future

    def _track(self, future: asyncio.Future[Any]) -> None:
        self._inflight.add(future)
        future.add_done_callback(self._inflight.discard)

    def _start(self, call: Callable[[], Awaitable[Any]], future: asyncio.Future[Any]) -> None:
        if future.done():
            return
        try:
            pending = asyncio.ensure_future(call())
        except Exception as exc:
            future.set_exception(exc)
            return
        pending.add_done_callback(partial(_settle, future))

    @staticmethod
    def _reject(future: asyncio.Future[Any], error: BaseException) -> None:
        if not future.done():
            future.set_exception(error)

    def _invoke_notification(self, call: Callable[[], None]) -> None:
        try:
            call()
        except TransportError as exc:
            logger.warning("Notification for %s not sent: %s", self._name, exc)

    def _require_pending(self, target: GateState) -> None:
        if self._state is not GateState.PENDING:
            raise ValueError(
                f"Invalid gate transition for {self._name}: "
                f"{self._state.value} -> {target.value}"
            )
