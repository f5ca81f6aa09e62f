"""lsclients TUI: Textual application class."""

from __future__ import annotations

from pathlib import Path

from textual import work
from textual.app import App, ComposeResult
from textual.widgets import Footer, Header

from lsclients.adapters.event_bus import EventBus
from lsclients.adapters.events import ClientNotice
from lsclients.engine.config import ClientConfig
from lsclients.engine.models import WorkspaceFolder
from lsclients.engine.session import Session
from lsclients.tui.widgets.notice_log import NoticeLog
from lsclients.tui.widgets.status_bar import StatusBar


class ClientsApp(App):
    """Terminal UI showing the active folder's language server state."""

    TITLE = "lsclients"
    SUB_TITLE = "Language Clients"

    CSS = """
    #notice-log {
        height: 1fr;
    }
    #status-bar {
        dock: bottom;
        height: 1;
        background: $panel;
    }
    """

    BINDINGS = [
        ("ctrl+q", "quit", "Quit"),
        ("f2", "mute_hint", "Mute Hint"),
        ("f5", "reset_database", "Reset DB"),
        ("f6", "next_folder", "Next Folder"),
    ]

    def __init__(
        self,
        config: ClientConfig,
        folders: list[WorkspaceFolder] | None = None,
        open_files: list[str] | None = None,
        transport_factory=None,
        preferences_path: Path | None = None,
    ) -> None:
        super().__init__()
        from lsclients.engine.host import ClientHost
        from lsclients.engine.stdio_transport import create_stdio_transport
        from lsclients.engine.telemetry import TelemetryCollector

        self.bus = EventBus()
        self.host = ClientHost(
            config,
            transport_factory or create_stdio_transport,
            notices=self.bus.publish,
            telemetry=TelemetryCollector(config.resolved_telemetry_db_path),
            preferences_path=preferences_path,
        )
        self._folders = list(folders or [])
        self._open_files = list(open_files or [])
        self._hint_session: str | None = None
        self._host_stopped = False

    def compose(self) -> ComposeResult:
        yield Header()
        yield NoticeLog(id="notice-log")
        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        log = self.query_one(NoticeLog)
        self.query_one(StatusBar).bind(self.host.registry)
        self.host.start(self._folders)
        for path in self._open_files:
            try:
                self.host.open_document(path)
            except OSError as exc:
                log.write(f"Could not open {path}: {exc}")
        self._consume_events()

    @work(name="notice-consumer")
    async def _consume_events(self) -> None:
        log = self.query_one(NoticeLog)
        async for event in self.bus.consume():
            if isinstance(event, ClientNotice) and event.notice_id == "include_path_hint":
                self._hint_session = event.session
            log.log_event(event)

    async def stop_host(self) -> None:
        """Dispose every session and stop the notice consumer."""
        if self._host_stopped:
            return
        self._host_stopped = True
        await self.host.shutdown()
        self.bus.close()

    async def action_quit(self) -> None:
        """Shut the language servers down before quitting."""
        await self.stop_host()
        await super().action_quit()

    def action_mute_hint(self) -> None:
        """Answer "don't show again" to the last include path hint."""
        if self._hint_session is None:
            return
        for session in self.host.registry:
            if session.name == self._hint_session and isinstance(session, Session):
                session.mute_include_path_hint()
                self.query_one(NoticeLog).write("Include path hint muted.")
                break
        self._hint_session = None

    def action_reset_database(self) -> None:
        session = self.host.registry.active_session
        if session is not None:
            session.reset_database()
            self.query_one(NoticeLog).write(f"Reset database for {session.name}.")

    def action_next_folder(self) -> None:
        sessions = self.host.registry.sessions
        active = self.host.registry.active_session
        if len(sessions) < 2 or active is None:
            return
        index = sessions.index(active)
        self.host.registry.set_active(sessions[(index + 1) % len(sessions)])
