"""Crash-loop policy for analysis process restarts.

A crashed process is replaced transparently until it has crashed
``max_crashes`` times within ``window_seconds``; then it stays down.
When the newest crash falls outside the window, the oldest entry is
dropped so the record keeps a rolling window of the last
``max_crashes - 1`` crashes.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from .models import CrashAction

logger = logging.getLogger(__name__)

DEFAULT_MAX_CRASHES = 5
DEFAULT_WINDOW_SECONDS = 180.0


@dataclass
class CrashRecord:
    """Crash timestamps for one workspace folder, oldest first."""
    timestamps: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.timestamps)

    def append(self, when: float) -> None:
        self.timestamps.append(when)

    def drop_oldest(self) -> None:
        if self.timestamps:
            self.timestamps.pop(0)

    @property
    def span(self) -> float:
        if len(self.timestamps) < 2:
            return 0.0
        return self.timestamps[-1] - self.timestamps[0]


class CrashPolicy:
    """Decides whether a crashed session is replaced or stopped."""

    def __init__(
        self,
        max_crashes: int = DEFAULT_MAX_CRASHES,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_crashes < 1:
            raise ValueError(f"max_crashes must be positive, got {max_crashes}")
        self.max_crashes = max_crashes
        self.window_seconds = window_seconds
        self._clock = clock

    def evaluate(self, record: CrashRecord) -> CrashAction:
        """Record a crash happening now and decide what to do about it."""
        record.append(self._clock())
        if len(record) < self.max_crashes:
            logger.info(
                "Crash %d/%d recorded; restarting",
                len(record), self.max_crashes,
            )
            return CrashAction.REPLACE
        if record.span <= self.window_seconds:
            logger.warning(
                "%d crashes within %.0fs; not restarting",
                len(record), record.span,
            )
            return CrashAction.STOP
        record.drop_oldest()
        logger.info(
            "Crash threshold reached outside the %.0fs window; restarting",
            self.window_seconds,
        )
        return CrashAction.REPLACE


def _describe_window(window_seconds: float) -> str:
    minutes = window_seconds / 60
    if minutes >= 1 and minutes == int(minutes):
        count = int(minutes)
        return f"{count} minute" if count == 1 else f"{count} minutes"
    return f"{int(window_seconds)} seconds"


def crash_loop_message(
    name: str,
    multi_root: bool,
    max_crashes: int = DEFAULT_MAX_CRASHES,
    window_seconds: float = DEFAULT_WINDOW_SECONDS,
) -> str:
    """User-facing notice for a session the policy stopped."""
    window = _describe_window(window_seconds)
    if multi_root:
        return (
            f"The language server for '{name}' crashed {max_crashes} times "
            f"in the last {window}. It will not be restarted."
        )
    return (
        f"The language server crashed {max_crashes} times in the last "
        f"{window}. It will not be restarted."
    )
