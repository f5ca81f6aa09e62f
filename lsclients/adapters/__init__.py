"""Adapters package - Bridge between the engine and UI frontends.

This package contains the event types and the event bus that carry
session notices to the TUI and the headless console.
"""
from __future__ import annotations

__all__ = [
    "EventBus",
    "ClientEvent",
    "ClientNotice",
    "ReloadRequested",
    "ActiveSessionChanged",
    "SessionReplaced",
]

from lsclients.adapters.event_bus import EventBus
from lsclients.adapters.events import (
    ActiveSessionChanged,
    ClientEvent,
    ClientNotice,
    ReloadRequested,
    SessionReplaced,
)
