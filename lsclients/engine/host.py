"""Wires configuration, sessions and the heartbeat together."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from lsclients.shared.services.preferences import PREFS_PATH, ClientPreferences

from .config import ClientConfig
from .crash_policy import CrashPolicy
from .folder_config import FolderConfiguration
from .models import TextDocument, WorkspaceFolder
from .registry import SessionRegistry
from .session import NoticeSink, make_session_factory
from .telemetry import TelemetryCollector
from .transport import TransportFactory

if TYPE_CHECKING:
    from .registry import AnySession

logger = logging.getLogger(__name__)


async def run_interval_timer(
    registry: SessionRegistry,
    interval: float = 2.5,
) -> None:
    """Background task that sends the heartbeat to every session."""
    while True:
        try:
            await asyncio.sleep(interval)
            registry.on_interval()
        except asyncio.CancelledError:
            logger.info("Interval timer stopped")
            return
        except Exception:
            logger.exception("Interval timer error")


class ClientHost:
    """Runs one registry for a set of workspace folders.

    With no folders a single ownerless session is created; otherwise
    one session per folder, the first being the fallback owner.
    """

    def __init__(
        self,
        config: ClientConfig,
        transport_factory: TransportFactory,
        *,
        notices: NoticeSink | None = None,
        telemetry: TelemetryCollector | None = None,
        preferences: ClientPreferences | None = None,
        preferences_path: Path | None = None,
        crash_policy: CrashPolicy | None = None,
    ) -> None:
        self.config = config
        self._preferences_path = preferences_path or PREFS_PATH
        self.preferences = preferences or ClientPreferences.load(self._preferences_path)
        factory = make_session_factory(
            config,
            transport_factory,
            notices=notices,
            telemetry=telemetry,
            preferences=self.preferences,
            preferences_path=self._preferences_path,
            crash_policy=crash_policy,
            configuration_factory=FolderConfiguration,
        )
        self.registry = SessionRegistry(factory, notices=notices)
        self._timer: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def start(self, folders: list[WorkspaceFolder] | None = None) -> list[AnySession]:
        """Create and start sessions, then begin the heartbeat."""
        created: list[AnySession] = []
        if folders:
            for folder in folders:
                created.append(self.registry.create_session(folder))
        else:
            created.append(self.registry.create_session(None))
        if self.config.interval_seconds > 0:
            self._timer = asyncio.ensure_future(
                run_interval_timer(self.registry, self.config.interval_seconds)
            )
        logger.info("Started %d session(s)", len(created))
        return created

    def open_document(self, path: str | Path, language_id: str = "cpp") -> TextDocument:
        document = TextDocument.from_path(path, language_id=language_id)
        self.registry.did_open(document)
        self.registry.set_active_document(document)
        return document

    def reload_settings(self, config: ClientConfig) -> None:
        """Apply new editor settings and record what changed."""
        self.config = config
        self.registry.on_did_change_settings(config.settings_for)

    async def shutdown(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            await asyncio.wait({self._timer})
            self._timer = None
        await self.registry.dispose()
        logger.info("Host shut down")
