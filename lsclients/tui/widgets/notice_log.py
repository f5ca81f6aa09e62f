"""Notice log: RichLog panel for session notices and focus changes."""

from __future__ import annotations

from rich.text import Text
from textual.widgets import RichLog

from lsclients.adapters.events import ClientEvent
from lsclients.app import format_event


class NoticeLog(RichLog):
    """Scrolling log of events published by the sessions."""

    def __init__(self, **kwargs) -> None:
        super().__init__(
            auto_scroll=True,
            wrap=True,
            markup=False,
            highlight=False,
            max_lines=5000,
            **kwargs,
        )

    def log_event(self, event: ClientEvent) -> None:
        text, style = format_event(event)
        self.write(Text(text, style=style))
