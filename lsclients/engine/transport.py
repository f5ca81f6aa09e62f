"""Transport abstraction between a session and its analysis process.

A transport is created exactly once per session and never swapped.
Inbound notifications and the closed signal are delivered through
callbacks registered before ``start``.
"""
from __future__ import annotations

import logging
import sys
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from .config import ClientConfig
from .errors import TransportError, UnsupportedPlatformError
from .models import WorkspaceFolder

logger = logging.getLogger(__name__)

NotificationHandler = Callable[[Any], None]
ClosedHandler = Callable[[], None]


class Transport(ABC):
    """Connection to one analysis process."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: dict[str, NotificationHandler] = {}
        self._closed_handler: ClosedHandler | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    async def start(self, initialization_options: dict[str, Any]) -> None:
        """Spawn the process and complete the protocol handshake."""

    @abstractmethod
    def send_request(self, method: str, params: Any) -> Awaitable[Any]:
        """Send a request; the awaitable settles with the response."""

    @abstractmethod
    def send_notification(self, method: str, params: Any) -> None:
        """Send a notification. Raises TransportError if not connected."""

    @abstractmethod
    async def stop(self) -> None:
        """Shut the process down gracefully. A deliberate stop is not a crash."""

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        self._handlers[method] = handler

    def on_closed(self, handler: ClosedHandler) -> None:
        self._closed_handler = handler

    def dispatch(self, method: str, params: Any) -> None:
        handler = self._handlers.get(method)
        if handler is None:
            logger.debug("%s: no handler for %s", self.name, method)
            return
        try:
            handler(params)
        except Exception:
            logger.exception("%s: handler for %s failed", self.name, method)

    def _report_closed(self) -> None:
        """Signal an unexpected exit. Fires at most once."""
        if self._closed:
            return
        self._closed = True
        handler, self._closed_handler = self._closed_handler, None
        if handler is not None:
            handler()


TransportFactory = Callable[[WorkspaceFolder | None, ClientConfig], Transport]


def resolve_server_command(config: ClientConfig) -> list[str]:
    """Return the analysis process command line for this host.

    Raises UnsupportedPlatformError for hosts without a binary and
    TransportError when no command is configured.
    """
    platform = sys.platform
    if platform not in config.supported_platforms:
        raise UnsupportedPlatformError(platform)
    if not config.server_command:
        raise TransportError("server", "no server command configured")
    return list(config.server_command)
