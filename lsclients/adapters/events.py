"""Event types emitted by sessions and the session registry.

Each event is a typed dataclass that UI consumers read from the
EventBus.
"""
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ClientEvent:
    """Base event from the language client layer."""
    event_type: str = ""
    session: str = ""


@dataclass
class ClientNotice(ClientEvent):
    """A non-blocking message for the user."""
    event_type: str = "client_notice"
    level: str = "info"  # "info", "warning", "error"
    message: str = ""
    notice_id: str = ""
    actions: list[str] = field(default_factory=list)


@dataclass
class ReloadRequested(ClientEvent):
    """The analysis process asked for the window to be reloaded."""
    event_type: str = "reload_requested"
    message: str = "Reload the workspace for the settings change to take effect."


@dataclass
class ActiveSessionChanged(ClientEvent):
    event_type: str = "active_session_changed"
    previous: str | None = None


@dataclass
class SessionReplaced(ClientEvent):
    """A crashed session was replaced, or stopped for good."""
    event_type: str = "session_replaced"
    stopped: bool = False
    crash_count: int = 0

