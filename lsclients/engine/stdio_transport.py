"""Transport that runs the analysis process over stdio with pygls."""
from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Mapping
from importlib.metadata import PackageNotFoundError, version
from typing import Any

from lsprotocol import types
from pygls.lsp.client import LanguageClient

from .config import ClientConfig
from .errors import TransportError
from .models import WorkspaceFolder
from .protocol import ServerNotification
from .transport import Transport, resolve_server_command

logger = logging.getLogger(__name__)


def _client_version() -> str:
    try:
        return version("lsclients")
    except PackageNotFoundError:
        return "0.0.0"


def _plain(value: Any) -> Any:
    """Convert a deserialized params object into plain dicts and lists."""
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)) and not hasattr(value, "_asdict"):
        return [_plain(v) for v in value]
    if hasattr(value, "_asdict"):
        return {k: _plain(v) for k, v in value._asdict().items()}
    if hasattr(value, "__dict__") and not isinstance(value, type):
        return {k: _plain(v) for k, v in vars(value).items() if not k.startswith("_")}
    return value


class _ServerClient(LanguageClient):
    """pygls client that reports unexpected process exits."""

    def __init__(self, transport: StdioTransport) -> None:
        super().__init__("lsclients", _client_version())
        self._transport = transport

    async def server_exit(self, server: asyncio.subprocess.Process) -> None:
        self._transport._on_server_exit(server.returncode)


class StdioTransport(Transport):
    """Spawns ``config.server_command`` and speaks LSP over its stdio."""

    def __init__(self, folder: WorkspaceFolder | None, config: ClientConfig) -> None:
        super().__init__(folder.display_name if folder is not None else "untitled")
        self._folder = folder
        self._config = config
        # Resolved eagerly so an unsupported host fails at construction.
        self._command = resolve_server_command(config)
        self._client: _ServerClient | None = None
        self._started = False
        self._stopping = False

    async def start(self, initialization_options: dict[str, Any]) -> None:
        client = _ServerClient(self)
        for method in ServerNotification:
            client.feature(method.value)(self._make_handler(method.value))
        self._client = client

        cwd = self._folder.path if self._folder is not None else None
        env = None
        if self._config.server_env:
            env = {**os.environ, **self._config.server_env}
        logger.info("%s: starting %s", self.name, " ".join(self._command))
        try:
            await client.start_io(self._command[0], *self._command[1:], cwd=cwd, env=env)
        except OSError as exc:
            raise TransportError(self.name, f"could not spawn process: {exc}") from exc

        folders = None
        if self._folder is not None:
            folders = [types.WorkspaceFolder(uri=self._folder.uri, name=self._folder.display_name)]
        await client.initialize_async(
            types.InitializeParams(
                capabilities=types.ClientCapabilities(),
                process_id=None,
                root_uri=self._folder.uri if self._folder is not None else None,
                workspace_folders=folders,
                initialization_options=initialization_options,
            )
        )
        client.initialized(types.InitializedParams())
        self._started = True
        logger.info("%s: handshake complete", self.name)

    def _make_handler(self, method: str):
        def handler(params: Any) -> None:
            self.dispatch(method, _plain(params))
        return handler

    def _require_client(self) -> _ServerClient:
        if self._client is None or not self._started or self.closed:
            raise TransportError(self.name, "not connected")
        return self._client

    def send_request(self, method: str, params: Any) -> asyncio.Future[Any]:
        client = self._require_client()
        return asyncio.ensure_future(client.protocol.send_request_async(method, params))

    def send_notification(self, method: str, params: Any) -> None:
        client = self._require_client()
        client.protocol.notify(method, params)

    async def stop(self) -> None:
        self._stopping = True
        client = self._client
        if client is None:
            return
        if self._started and not self.closed:
            try:
                await asyncio.wait_for(
                    client.shutdown_async(None),
                    timeout=self._config.shutdown_timeout_seconds,
                )
                client.exit(None)
            except Exception as exc:
                logger.warning("%s: graceful shutdown failed: %s", self.name, exc)
        await client.stop()
        self._closed = True
        logger.info("%s: stopped", self.name)

    def _on_server_exit(self, returncode: int | None) -> None:
        if self._stopping:
            logger.debug("%s: exited with %s after stop", self.name, returncode)
            return
        logger.warning("%s: analysis process exited with %s", self.name, returncode)
        self._report_closed()


def create_stdio_transport(
    folder: WorkspaceFolder | None, config: ClientConfig,
) -> Transport:
    return StdioTransport(folder, config)
