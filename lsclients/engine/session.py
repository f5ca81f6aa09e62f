"""A language client session bound to one workspace folder.

A session owns exactly one transport, created in the constructor and
never replaced. Everything the editor asks of the session goes through
the readiness gate, so calls made before the handshake completes are
replayed in order once it does. When the transport dies the crash
policy decides whether the registry replaces the session or stops it.
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from lsprotocol import types

from lsclients.adapters.events import ClientEvent, ClientNotice, ReloadRequested
from lsclients.shared.services.preferences import ClientPreferences

from .config import ClientConfig
from .crash_policy import CrashPolicy, CrashRecord, crash_loop_message
from .errors import (
    ClientDisposedError,
    ConfigurationError,
    TransportError,
    UnsupportedClientError,
    UnsupportedPlatformError,
)
from .folder_config import FolderConfiguration
from .lifecycle import validate_transition
from .models import (
    CrashAction,
    DefaultPaths,
    FolderSettings,
    ModelField,
    SessionState,
    TextDocument,
    WorkspaceFolder,
)
from .protocol import (
    Notification,
    Request,
    ServerNotification,
    did_change_params,
    did_close_params,
    did_open_params,
    did_save_params,
    document_params,
    folder_settings_params,
    query_default_paths_params,
    selected_setting_params,
    switch_header_source_params,
    uri_params,
    will_save_params,
)
from .protocol_filter import ProtocolFilter
from .readiness import ReadinessGate, rejected, resolved
from .session_model import SessionModel
from .settings_tracker import SettingsSnapshot
from .telemetry import TelemetryCollector
from .transport import Transport, TransportFactory

if TYPE_CHECKING:
    from .registry import SessionRegistry

logger = logging.getLogger(__name__)

NoticeSink = Callable[[ClientEvent], None]
SessionFactory = Callable[
    ["SessionRegistry", WorkspaceFolder | None, CrashRecord | None], "Session"
]

UNTITLED = "untitled"
INCLUDE_PATH_HINT = "Configure includePath for better IntelliSense results."
DONT_SHOW_AGAIN = "Don't Show Again"


def truncate_navigation(text: str, max_length: int) -> str:
    """Shorten a breadcrumb that would not fit the status bar."""
    if len(text) > max_length:
        return text[: max(max_length - 3, 0)] + "..."
    return text


def merge_file_associations(
    existing: dict[str, str], payload: str,
) -> dict[str, str] | None:
    """Merge a ``<def`` navigation payload into file associations.

    *payload* is the text after ``<def``: a ``c>;`` or ``>;`` header
    followed by ``;``-terminated file names. Returns the merged mapping,
    or None when nothing new was learned. Names already covered by an
    extension-wide pattern are left alone.
    """
    is_c = payload.startswith("c")
    names = payload[3 if is_c else 2:].split(";")[:-1]
    merged = dict(existing)
    found = False
    for name in names:
        if name in merged or f"**/{name}" in merged:
            continue
        dot = name.rfind(".")
        if dot != -1:
            ext = name[dot:]
            if f"*{ext}" in merged or f"**/*{ext}" in merged:
                continue
        merged[name] = "c" if is_c else "cpp"
        found = True
    return merged if found else None


def _payload_text(payload: Any, key: str) -> str:
    if isinstance(payload, dict):
        return str(payload.get(key) or "")
    return "" if payload is None else str(payload)


class Session:
    """One analysis process and everything the editor knows about it."""

    def __init__(
        self,
        registry: SessionRegistry,
        folder: WorkspaceFolder | None = None,
        *,
        config: ClientConfig,
        transport_factory: TransportFactory,
        settings: FolderSettings | None = None,
        notices: NoticeSink | None = None,
        telemetry: TelemetryCollector | None = None,
        preferences: ClientPreferences | None = None,
        preferences_path: Path | None = None,
        crash_record: CrashRecord | None = None,
        crash_policy: CrashPolicy | None = None,
        configuration_factory: Callable[[str | None], FolderConfiguration] = FolderConfiguration,
    ) -> None:
        self._registry = registry
        self.folder = folder
        self.name = folder.display_name if folder is not None else UNTITLED
        self._config = config
        self._settings = settings or config.settings_for(folder.path if folder else None)
        self._notices = notices
        self._telemetry = telemetry
        self._preferences = preferences or ClientPreferences()
        self._preferences_path = preferences_path
        self._crash_record = crash_record if crash_record is not None else CrashRecord()
        self._crash_policy = crash_policy or CrashPolicy(
            config.crash_limit, config.crash_window_seconds,
        )
        self._configuration_factory = configuration_factory

        self._state = SessionState.NOT_STARTED
        self._supported = True
        self._failure_notice_shown = False
        self._include_hint_shown = False
        self._parsing_paused = False
        # File associations learned from the server, kept across settings reloads.
        self._learned_associations: dict[str, str] = {}

        self._gate = ReadinessGate(self.name)
        self.model = SessionModel()
        self.tracked_documents: set[TextDocument] = set()
        self._filter = ProtocolFilter(self, registry)
        self._snapshot = SettingsSnapshot(self._settings)
        self._configuration: FolderConfiguration | None = None
        self._subscriptions: list[Any] = []
        self._init_task: asyncio.Task[None] | None = None
        self._default_paths_task: asyncio.Future[Any] | None = None
        self._dispose_task: asyncio.Future[None] | None = None
        self._transport_stop: asyncio.Future[None] | None = None
        self._server_log = logging.getLogger(f"lsclients.server.{self.name}")
        self._protocol_log = logging.getLogger(f"lsclients.server.{self.name}.protocol")

        self._transport: Transport | None = None
        try:
            self._transport = transport_factory(folder, config)
        except (UnsupportedPlatformError, TransportError, OSError) as exc:
            self._mark_unsupported(exc)

    def __repr__(self) -> str:
        return f"Session({self.name!r}, {self._state.value})"

    # ── Identity and state ──

    @property
    def key(self) -> str:
        return self.folder.key if self.folder is not None else ""

    @property
    def root_path(self) -> str:
        return self.folder.path if self.folder is not None else ""

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_supported(self) -> bool:
        return self._supported

    @property
    def is_ready(self) -> bool:
        return self._state is SessionState.READY

    @property
    def settings(self) -> FolderSettings:
        return self._settings

    @property
    def configuration(self) -> FolderConfiguration | None:
        return self._configuration

    @property
    def crash_record(self) -> CrashRecord:
        return self._crash_record

    @property
    def gate(self) -> ReadinessGate:
        return self._gate

    def _transition(self, target: SessionState) -> None:
        validate_transition(self._state, target)
        logger.debug("%s: %s -> %s", self.name, self._state.value, target.value)
        self._state = target

    def take_crash_record(self) -> CrashRecord:
        """Hand the crash history to a successor; this session gets a fresh one."""
        record, self._crash_record = self._crash_record, CrashRecord()
        return record

    # ── Startup ──

    def start(self) -> None:
        """Begin the handshake in the background. No-op unless NOT_STARTED."""
        if self._state is not SessionState.NOT_STARTED:
            return
        self._transition(SessionState.INITIALIZING)
        self._init_task = asyncio.ensure_future(self._initialize())

    async def wait_until_settled(self) -> None:
        """Wait for the handshake to finish, successfully or not."""
        if self._init_task is not None:
            await asyncio.wait({self._init_task})

    async def _initialize(self) -> None:
        transport = self._transport
        assert transport is not None
        for method, handler in self._inbound_handlers().items():
            transport.on_notification(method.value, handler)
        transport.on_closed(self._on_transport_closed)
        try:
            await transport.start(self._initialization_options())
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if self._state is SessionState.DISPOSED:
                return
            logger.error("%s: handshake failed: %s", self.name, exc)
            self._mark_unsupported(exc)
            # The process may have spawned; it is never used again.
            stop = self._stop_transport_once()
            if stop is not None:
                await asyncio.wait({stop})
            return
        if self._state is not SessionState.INITIALIZING:
            return

        self._configuration = self._load_configuration()
        self._subscriptions.extend([
            self._configuration.configurations_changed.subscribe(self._on_configurations_changed),
            self._configuration.selection_changed.subscribe(self._on_selection_changed),
            self._configuration.compile_commands_changed.subscribe(self._on_compile_commands_changed),
        ])
        # Configurations are held back until the default paths arrive;
        # the handlers above must exist before that happens.
        self._default_paths_task = asyncio.ensure_future(
            transport.send_request(
                Request.QUERY_DEFAULT_PATHS.value,
                query_default_paths_params(self.folder),
            )
        )
        self._default_paths_task.add_done_callback(self._on_default_paths)

        self._log_telemetry("NonDefaultInitialSettings", self._snapshot.initialize())
        self._transition(SessionState.READY)
        logger.info("%s: ready", self.name)
        self._gate.open()

    def _load_configuration(self) -> FolderConfiguration:
        try:
            return self._configuration_factory(self.root_path or None)
        except ConfigurationError as exc:
            logger.warning("%s: %s; using defaults", self.name, exc)
            return self._configuration_factory(None)

    def _initialization_options(self) -> dict[str, Any]:
        s = self._settings
        storage = Path(self._config.storage_path).expanduser()
        if self._registry.is_multi_root:
            storage = storage / self.name
        return {
            "clang_format_path": s.get("clang_format_path"),
            "clang_format_style": s.get("clang_format_style"),
            "clang_format_fallbackStyle": s.get("clang_format_fallback_style"),
            "clang_format_sortIncludes": s.get("clang_format_sort_includes"),
            "formatting": s.get("formatting"),
            "exclude_files": s.get("files_exclude"),
            "exclude_search": s.get("search_exclude"),
            "storage_path": str(storage),
            "tab_size": s.get("tab_size"),
            "intelliSenseEngine": s.get("intellisense_engine"),
            "intelliSenseEngineFallback": s.get("intellisense_engine_fallback"),
            "autocomplete": s.get("autocomplete"),
            "errorSquiggles": s.get("error_squiggles"),
            "loggingLevel": s.get("logging_level"),
        }

    def _on_default_paths(self, future: asyncio.Future[Any]) -> None:
        if future.cancelled() or self._configuration is None:
            return
        if self._state is SessionState.DISPOSED:
            return
        error = future.exception()
        if error is not None:
            logger.warning("%s: default path query failed: %s", self.name, error)
            paths = DefaultPaths()
        else:
            paths = DefaultPaths.from_payload(future.result())
        self._configuration.default_paths = paths

    def _mark_unsupported(self, error: BaseException) -> None:
        self._supported = False
        if self._state is not SessionState.FAILED:
            self._transition(SessionState.FAILED)
        if self._gate.is_pending:
            self._gate.fail(UnsupportedClientError(self.name, str(error)))
        logger.error("%s: language server unavailable: %s", self.name, error)
        if not self._failure_notice_shown:
            self._failure_notice_shown = True
            self._publish(ClientNotice(
                session=self.name,
                level="error",
                notice_id="unsupported",
                message=(
                    "Unable to start the language server. "
                    "Language features will be disabled."
                ),
            ))

    # ── Outbound plumbing ──

    def _send(self, method: str, params: Any) -> None:
        if self._state is SessionState.DISPOSED or self._transport is None:
            return
        self._transport.send_notification(method, params)

    def _notify(self, method: str, params: Any = None) -> None:
        if self._state is SessionState.DISPOSED:
            return
        name = method.value if isinstance(method, Enum) else method
        self._gate.notify(lambda: self._send(name, params))

    def _request(self, method: str, params: Any = None) -> asyncio.Future[Any]:
        if self._state is SessionState.DISPOSED:
            return rejected(ClientDisposedError(self.name))
        return self._gate.request(lambda: self._call(method, params))

    def _call(self, method: str, params: Any) -> Awaitable[Any]:
        if self._state is SessionState.DISPOSED or self._transport is None:
            return rejected(ClientDisposedError(self.name))
        return self._transport.send_request(method, params)

    def _publish(self, event: ClientEvent) -> None:
        if self._notices is None:
            logger.info("%s: %s", self.name, event)
            return
        self._notices(event)

    def _log_telemetry(
        self,
        event: str,
        properties: dict[str, Any] | None,
        metrics: dict[str, Any] | None = None,
    ) -> None:
        if self._telemetry is None or (not properties and not metrics):
            return
        try:
            self._telemetry.log_event(event, properties, metrics, source=self.name)
        except sqlite3.Error as exc:
            logger.warning("%s: could not record telemetry %s: %s", self.name, event, exc)

    # ── Documents ──

    def open(self, document: TextDocument) -> bool:
        """Start tracking *document* if this session owns it."""
        if document in self.tracked_documents:
            return True
        return self._filter.did_open(document, self._send_did_open)

    def close(self, document: TextDocument) -> bool:
        return self._filter.did_close(document, self._send_did_close)

    def take_ownership(self, document: TextDocument) -> None:
        """Adopt a document previously tracked by another session."""
        self.tracked_documents.add(document)
        self._send_did_open(document)

    def release(self, document: TextDocument) -> None:
        """Give up a document that now belongs to another session."""
        if document in self.tracked_documents:
            self.tracked_documents.discard(document)
            self._send_did_close(document)

    def _send_did_open(self, document: TextDocument) -> None:
        self._notify(Notification.DID_OPEN, did_open_params(document))

    def _send_did_close(self, document: TextDocument) -> None:
        self._notify(Notification.DID_CLOSE, did_close_params(document))

    def did_change(self, document: TextDocument) -> bool:
        return self._filter.did_change(
            document,
            lambda d: self._notify(types.TEXT_DOCUMENT_DID_CHANGE, did_change_params(d)),
        )

    def will_save(self, document: TextDocument) -> bool:
        return self._filter.will_save(
            document,
            lambda d: self._notify(types.TEXT_DOCUMENT_WILL_SAVE, will_save_params(d)),
        )

    def did_save(self, document: TextDocument) -> bool:
        return self._filter.did_save(
            document,
            lambda d: self._notify(types.TEXT_DOCUMENT_DID_SAVE, did_save_params(d)),
        )

    async def will_save_wait_until(self, document: TextDocument) -> list[Any]:
        return await self._filter.will_save_wait_until(
            document,
            lambda d: self._request(
                types.TEXT_DOCUMENT_WILL_SAVE_WAIT_UNTIL, will_save_params(d),
            ),
        )

    async def forward(self, method: str, params: Any) -> Any:
        """Ask the analysis process an editor question, if this session is active."""
        pending = self._filter.forward(method, self._request, method, params)
        if pending is None:
            return None
        return await pending

    # ── Requests ──

    def request_navigation_list(self, document: TextDocument) -> asyncio.Future[Any]:
        return self._request(Request.NAVIGATION_LIST.value, document_params(document))

    def request_go_to_declaration(self) -> asyncio.Future[Any]:
        return self._request(Request.GO_TO_DECLARATION.value, None)

    def request_switch_header_source(
        self, file_name: str, root_path: str | None = None,
    ) -> asyncio.Future[Any]:
        folder = self.folder
        if root_path is not None:
            folder = WorkspaceFolder(root_path)
        return self._request(
            Request.SWITCH_HEADER_SOURCE.value,
            switch_header_source_params(folder, file_name),
        )

    # ── Notifications ──

    def active_document_changed(self, document: TextDocument) -> None:
        self._notify(Notification.ACTIVE_DOCUMENT_CHANGE, document_params(document))

    def selection_changed(self, line: int, character: int) -> None:
        self._notify(
            Notification.SELECTION_CHANGE,
            types.Position(line=line, character=character),
        )

    def reset_database(self) -> None:
        self._notify(Notification.RESET_DATABASE)

    def file_created(self, uri: str) -> None:
        self._notify(Notification.FILE_CREATED, uri_params(uri))

    def file_deleted(self, uri: str) -> None:
        self._notify(Notification.FILE_DELETED, uri_params(uri))

    def pause_parsing(self) -> None:
        if self._parsing_paused or self._state is SessionState.DISPOSED:
            return
        self._parsing_paused = True
        self._notify(Notification.PAUSE_PARSING)

    def resume_parsing(self) -> None:
        if not self._parsing_paused or self._state is SessionState.DISPOSED:
            return
        self._parsing_paused = False
        self._notify(Notification.RESUME_PARSING)

    pause = pause_parsing
    resume = resume_parsing

    def activate(self) -> None:
        """Publish model changes to the UI and let the server parse."""
        if self._state is SessionState.DISPOSED:
            return
        self.model.activate()
        self.resume_parsing()

    def deactivate(self) -> None:
        if self._state is SessionState.DISPOSED:
            return
        self.model.deactivate()
        self.pause_parsing()

    def on_interval(self) -> None:
        # Ticks before readiness are dropped, never queued.
        if self._state is not SessionState.READY or self._configuration is None:
            return
        try:
            self._send(Notification.INTERVAL_TIMER.value, None)
        except TransportError as exc:
            logger.debug("%s: heartbeat not sent: %s", self.name, exc)
        try:
            self._configuration.check_for_changes()
        except ConfigurationError as exc:
            logger.warning("%s: %s", self.name, exc)

    def on_did_change_settings(self, settings: FolderSettings | None = None) -> None:
        if self._state is SessionState.DISPOSED:
            return
        if settings is not None:
            self._apply_learned_associations(settings)
            self._settings = settings
        changed = self._snapshot.diff(settings)
        self._log_telemetry("SettingsChange", changed)

    @property
    def learned_file_associations(self) -> dict[str, str]:
        return dict(self._learned_associations)

    def inherit_file_associations(self, associations: dict[str, str]) -> None:
        """Adopt associations a predecessor learned from the server."""
        self._learned_associations.update(associations)
        self._apply_learned_associations(self._settings)

    def _apply_learned_associations(self, settings: FolderSettings) -> None:
        if not self._learned_associations:
            return
        # Configured patterns win over learned ones.
        settings.files_associations = {
            **self._learned_associations, **settings.files_associations,
        }

    # ── Folder configuration ──

    def select_configuration(self, index: int) -> None:
        self._gate.notify(lambda: self._configure("select", index))

    def add_to_include_path(self, path: str) -> None:
        self._gate.notify(lambda: self._configure("add_include_path", path))

    def _configure(self, action: str, argument: Any) -> None:
        if self._configuration is None or self._state is SessionState.DISPOSED:
            return
        try:
            getattr(self._configuration, action)(argument)
        except OSError as exc:
            logger.warning("%s: could not update configuration: %s", self.name, exc)

    def _on_configurations_changed(self, configurations: list[dict[str, Any]]) -> None:
        assert self._configuration is not None
        current = self._configuration.current_index
        self._notify(
            Notification.FOLDER_SETTINGS_CHANGED,
            folder_settings_params(configurations, current),
        )
        if 0 <= current < len(configurations):
            self.model.set_field(
                ModelField.ACTIVE_CONFIG_NAME,
                str(configurations[current].get("name", "")),
            )

    def _on_selection_changed(self, index: int) -> None:
        assert self._configuration is not None
        self._notify(Notification.SELECTED_SETTING_CHANGED, selected_setting_params(index))
        names = self._configuration.names
        if 0 <= index < len(names):
            self.model.set_field(ModelField.ACTIVE_CONFIG_NAME, names[index])

    def _on_compile_commands_changed(self, path: str) -> None:
        self._notify(Notification.COMPILE_COMMANDS_CHANGED, uri_params(path))

    # ── Inbound notifications ──

    def _inbound_handlers(self) -> dict[ServerNotification, Callable[[Any], None]]:
        return {
            ServerNotification.RELOAD_WINDOW: self._on_reload_window,
            ServerNotification.LOG_TELEMETRY: self._on_log_telemetry,
            ServerNotification.REPORT_NAVIGATION: self._on_navigation,
            ServerNotification.REPORT_TAG_PARSE_STATUS: self._on_tag_parse_status,
            ServerNotification.REPORT_STATUS: self._on_status,
            ServerNotification.DEBUG_PROTOCOL: self._on_debug_protocol,
            ServerNotification.DEBUG_LOG: self._on_debug_log,
        }

    def _on_reload_window(self, payload: Any) -> None:
        if self._preferences.show_reload_prompt:
            self._publish(ReloadRequested(session=self.name))

    def _on_log_telemetry(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            return
        self._log_telemetry(
            str(payload.get("event") or "unknown"),
            payload.get("properties") or {},
            payload.get("metrics") or {},
        )

    def _on_navigation(self, payload: Any) -> None:
        navigation = _payload_text(payload, "navigation")
        if navigation.startswith("<def"):
            merged = merge_file_associations(
                self._settings.files_associations, navigation[4:],
            )
            if merged is not None:
                learned = {
                    name: language for name, language in merged.items()
                    if name not in self._settings.files_associations
                }
                self._learned_associations.update(learned)
                self._settings.files_associations = merged
                logger.info("%s: learned %d file association(s)", self.name, len(learned))
            return
        self.model.set_field(
            ModelField.NAVIGATION_TEXT,
            truncate_navigation(navigation, self._settings.navigation_length),
        )

    def _on_tag_parse_status(self, payload: Any) -> None:
        self.model.set_field(ModelField.PARSER_STATUS_TEXT, _payload_text(payload, "status"))

    def _on_status(self, payload: Any) -> None:
        message = _payload_text(payload, "status")
        # Order matters: "IntelliSense Ready" also ends with "Ready".
        if message.endswith("Indexing..."):
            self.model.set_field(ModelField.IS_INDEXING, True)
        elif message.endswith("Updating IntelliSense..."):
            self.model.set_field(ModelField.IS_ANALYZING, True)
        elif message.endswith("IntelliSense Ready"):
            self.model.set_field(ModelField.IS_ANALYZING, False)
        elif message.endswith("Ready"):
            self.model.set_field(ModelField.IS_INDEXING, False)
        elif message.endswith("No Squiggles"):
            logger.debug("%s: squiggles disabled", self.name)
        elif message.endswith("IntelliSense Fallback"):
            self._show_include_path_hint()

    def _show_include_path_hint(self) -> None:
        if self._include_hint_shown or not self._preferences.show_include_path_hint:
            return
        self._include_hint_shown = True
        self._publish(ClientNotice(
            session=self.name,
            level="info",
            notice_id="include_path_hint",
            message=INCLUDE_PATH_HINT,
            actions=[DONT_SHOW_AGAIN],
        ))

    def mute_include_path_hint(self) -> None:
        """Persist the "don't show again" answer to the include path hint."""
        self._preferences.show_include_path_hint = False
        self._preferences.save(self._preferences_path)

    def _on_debug_protocol(self, payload: Any) -> None:
        self._protocol_log.debug("%s", payload)

    def _on_debug_log(self, payload: Any) -> None:
        self._server_log.info("%s", payload)

    # ── Crashes ──

    def _on_transport_closed(self) -> None:
        # Only a running or starting session can crash; FAILED is terminal.
        if self._state not in (SessionState.READY, SessionState.INITIALIZING):
            return
        logger.warning("%s: language server connection closed", self.name)
        self._gate.abort(TransportError(self.name, "analysis process exited"))
        action = self._crash_policy.evaluate(self._crash_record)
        if action is CrashAction.REPLACE:
            self._registry.replace(self, transfer_crash_record=True)
            return
        self._publish(ClientNotice(
            session=self.name,
            level="error",
            notice_id="crash_loop",
            message=crash_loop_message(
                self.name,
                self._registry.is_multi_root,
                self._crash_policy.max_crashes,
                self._crash_policy.window_seconds,
            ),
        ))
        self._registry.stop(self)

    # ── Disposal ──

    def begin_dispose(self) -> asyncio.Future[None]:
        """Tear down synchronously; the returned future finishes the shutdown.

        Requests still queued or in transit are rejected before this
        returns. Idempotent.
        """
        if self._dispose_task is not None:
            return self._dispose_task
        if self._state is not SessionState.DISPOSED:
            self._transition(SessionState.DISPOSED)
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        if self._default_paths_task is not None and not self._default_paths_task.done():
            self._default_paths_task.cancel()
        self._gate.abort(ClientDisposedError(self.name))
        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions.clear()
        if self._configuration is not None:
            self._configuration.dispose()
        self.model.dispose()
        self.tracked_documents.clear()
        self._dispose_task = asyncio.ensure_future(self._stop_transport())
        return self._dispose_task

    async def dispose(self) -> None:
        await self.begin_dispose()

    async def _stop_transport(self) -> None:
        if self._init_task is not None:
            await asyncio.wait({self._init_task})
        stop = self._stop_transport_once()
        if stop is not None:
            await asyncio.wait({stop})

    def _stop_transport_once(self) -> asyncio.Future[None] | None:
        if self._transport is None:
            return None
        if self._transport_stop is None:
            self._transport_stop = asyncio.ensure_future(self._transport.stop())
            self._transport_stop.add_done_callback(self._on_transport_stopped)
        return self._transport_stop

    def _on_transport_stopped(self, future: asyncio.Future[None]) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.warning(
                "%s: transport did not stop cleanly: %s", self.name, error, exc_info=error,
            )


class NullSession:
    """Stand-in for a folder whose language server was stopped for good.

    Keeps owning the folder's documents so ownership stays exclusive,
    but never talks to a process and answers requests with neutral values.
    """

    def __init__(
        self,
        folder: WorkspaceFolder | None = None,
        documents: set[TextDocument] | None = None,
        registry: SessionRegistry | None = None,
    ) -> None:
        self.folder = folder
        self.name = folder.display_name if folder is not None else UNTITLED
        self.model = SessionModel()
        self.tracked_documents: set[TextDocument] = set(documents or ())
        self._registry = registry
        self._disposed = False

    def __repr__(self) -> str:
        return f"NullSession({self.name!r})"

    @property
    def key(self) -> str:
        return self.folder.key if self.folder is not None else ""

    @property
    def state(self) -> SessionState:
        return SessionState.DISPOSED if self._disposed else SessionState.FAILED

    @property
    def is_supported(self) -> bool:
        return False

    @property
    def is_ready(self) -> bool:
        return False

    @property
    def crash_record(self) -> CrashRecord:
        return CrashRecord()

    def take_crash_record(self) -> CrashRecord:
        return CrashRecord()

    def start(self) -> None:
        pass

    def _owns(self, document: TextDocument) -> bool:
        if self._registry is None:
            return True
        return self._registry.check_ownership(self, document)

    def open(self, document: TextDocument) -> bool:
        if self._disposed or not self._owns(document):
            return False
        self.tracked_documents.add(document)
        return True

    def close(self, document: TextDocument) -> bool:
        if not self._owns(document):
            return False
        self.tracked_documents.discard(document)
        return True

    def take_ownership(self, document: TextDocument) -> None:
        self.tracked_documents.add(document)

    def release(self, document: TextDocument) -> None:
        self.tracked_documents.discard(document)

    def did_change(self, document: TextDocument) -> bool:
        return False

    will_save = did_change
    did_save = did_change

    async def will_save_wait_until(self, document: TextDocument) -> list[Any]:
        return []

    async def forward(self, method: str, params: Any) -> Any:
        return None

    def request_navigation_list(self, document: TextDocument) -> asyncio.Future[Any]:
        return resolved("")

    def request_go_to_declaration(self) -> asyncio.Future[Any]:
        return resolved(None)

    def request_switch_header_source(
        self, file_name: str, root_path: str | None = None,
    ) -> asyncio.Future[Any]:
        return resolved("")

    def _ignore(self, *args: Any, **kwargs: Any) -> None:
        pass

    active_document_changed = _ignore
    selection_changed = _ignore
    reset_database = _ignore
    file_created = _ignore
    file_deleted = _ignore
    pause_parsing = _ignore
    resume_parsing = _ignore
    pause = _ignore
    resume = _ignore
    on_interval = _ignore
    on_did_change_settings = _ignore
    select_configuration = _ignore
    add_to_include_path = _ignore

    def activate(self) -> None:
        if not self._disposed:
            self.model.activate()

    def deactivate(self) -> None:
        self.model.deactivate()

    def begin_dispose(self) -> asyncio.Future[None]:
        self._disposed = True
        self.model.dispose()
        self.tracked_documents.clear()
        return resolved(None)

    async def dispose(self) -> None:
        await self.begin_dispose()


def make_session_factory(
    config: ClientConfig,
    transport_factory: TransportFactory,
    *,
    notices: NoticeSink | None = None,
    telemetry: TelemetryCollector | None = None,
    preferences: ClientPreferences | None = None,
    preferences_path: Path | None = None,
    crash_policy: CrashPolicy | None = None,
    configuration_factory: Callable[[str | None], FolderConfiguration] = FolderConfiguration,
) -> SessionFactory:
    """Bind the shared collaborators; the registry supplies folder and record."""
    policy = crash_policy or CrashPolicy(config.crash_limit, config.crash_window_seconds)

    def factory(
        registry: SessionRegistry,
        folder: WorkspaceFolder | None,
        crash_record: CrashRecord | None,
    ) -> Session:
        return Session(
            registry,
            folder,
            config=config,
            transport_factory=transport_factory,
            notices=notices,
            telemetry=telemetry,
            preferences=preferences,
            preferences_path=preferences_path,
            crash_record=crash_record,
            crash_policy=policy,
            configuration_factory=configuration_factory,
        )

    return factory
