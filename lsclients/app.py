"""lsclients CLI: main application entry point."""

from __future__ import annotations

import asyncio
import logging
import shlex
import signal
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.table import Table

from lsclients.adapters.event_bus import EventBus
from lsclients.adapters.events import (
    ActiveSessionChanged,
    ClientEvent,
    ClientNotice,
    ReloadRequested,
    SessionReplaced,
)
from lsclients.engine.config import ClientConfig
from lsclients.engine.models import WorkspaceFolder

CONFIG_CANDIDATES = (
    Path(".lsclients") / "clients.yaml",
    Path("lsclients.yaml"),
)

_NOTICE_STYLES = {
    "info": "cyan",
    "warning": "yellow",
    "error": "red bold",
}


def _configure_logging(
    config: ClientConfig, verbose: bool = False, to_stderr: bool = True,
) -> Path:
    """Send every record to a rotating file, and to stderr when headless."""
    log_level = "DEBUG" if verbose else config.log_level.upper()
    log_dir = config.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "lsclients.log"

    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level, logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    file_handler = RotatingFileHandler(
        log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    if to_stderr:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)
    return log_file


def _discover_config(explicit: str | None) -> Path | None:
    logger = logging.getLogger(__name__)
    if explicit:
        path = Path(explicit)
        logger.info("Using explicit config path: %s (exists=%s)", path, path.exists())
        return path
    for candidate in CONFIG_CANDIDATES:
        path = Path.cwd() / candidate
        if path.exists():
            logger.info("Auto-discovered config: %s", path)
            return path
    logger.info(
        "No config file found (tried %s); using environment",
        ", ".join(str(c) for c in CONFIG_CANDIDATES),
    )
    return None


def load_config(
    config_path: str | None,
    folder_args: list[str],
    server: str | None = None,
) -> tuple[ClientConfig, list[WorkspaceFolder]]:
    """Resolve the client config and the workspace folders to open.

    Folders named on the command line replace the ones in the file.
    """
    from lsclients.engine.yaml_config import load_yaml_config

    path = _discover_config(config_path)
    if path is not None:
        loaded = load_yaml_config(path)
        config, folders = loaded.client, loaded.folders
    else:
        config, folders = ClientConfig.from_env(), []
    if folder_args:
        folders = [
            WorkspaceFolder(path=str(Path(p).resolve()), index=i)
            for i, p in enumerate(folder_args)
        ]
    if server:
        config.server_command = shlex.split(server)
    return config, folders


def format_event(event: ClientEvent) -> tuple[str, str]:
    """Render an event as a (text, style) pair for console output."""
    prefix = f"[{event.session}] " if event.session else ""
    if isinstance(event, ClientNotice):
        actions = f" ({', '.join(event.actions)})" if event.actions else ""
        return (
            f"{prefix}{event.message}{actions}",
            _NOTICE_STYLES.get(event.level, "white"),
        )
    if isinstance(event, ReloadRequested):
        return f"{prefix}{event.message}", "yellow"
    if isinstance(event, ActiveSessionChanged):
        return f"Active folder: {event.session or 'untitled'}", "dim"
    if isinstance(event, SessionReplaced):
        if event.stopped:
            return f"{prefix}language server stopped", "red"
        return f"{prefix}language server restarted (crash #{event.crash_count})", "yellow"
    return f"{prefix}{event.event_type}", "white"


def _print_telemetry(config: ClientConfig, time_range: str) -> None:
    from lsclients.engine.telemetry import TelemetryCollector

    collector = TelemetryCollector(config.resolved_telemetry_db_path)
    counts = collector.event_counts(time_range)
    console = Console()
    if not counts:
        console.print(f"No telemetry in the last {time_range}.")
        return
    table = Table(title=f"Telemetry ({time_range})")
    table.add_column("Event")
    table.add_column("Count", justify="right")
    for event, count in sorted(counts.items(), key=lambda item: (-item[1], item[0])):
        table.add_row(event, str(count))
    console.print(table)


async def run_headless(
    config: ClientConfig,
    folders: list[WorkspaceFolder],
    open_files: list[str],
) -> None:
    """Run the sessions without a UI, printing notices until interrupted."""
    from lsclients.engine.host import ClientHost
    from lsclients.engine.stdio_transport import create_stdio_transport
    from lsclients.engine.telemetry import TelemetryCollector

    logger = logging.getLogger(__name__)
    console = Console(stderr=False)
    bus = EventBus()
    host = ClientHost(
        config,
        create_stdio_transport,
        notices=bus.publish,
        telemetry=TelemetryCollector(config.resolved_telemetry_db_path),
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handler for %s not supported", sig)

    async def _print_events() -> None:
        async for event in bus.consume():
            text, style = format_event(event)
            console.print(text, style=style)

    printer = asyncio.ensure_future(_print_events())
    host.start(folders)
    for path in open_files:
        try:
            host.open_document(path)
        except OSError as exc:
            logger.error("Could not open %s: %s", path, exc)
    try:
        await stop.wait()
    finally:
        await host.shutdown()
        for event in bus.drain():
            text, style = format_event(event)
            console.print(text, style=style)
        bus.close()
        printer.cancel()
        await asyncio.wait({printer})


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(
        prog="lsclients",
        description="Multi-root language client host for C/C++ analysis servers",
    )
    parser.add_argument(
        "folders", nargs="*", metavar="FOLDER",
        help="Workspace folders; one analysis process is started per folder",
    )
    parser.add_argument(
        "--config", metavar="PATH",
        help="YAML config file (default: .lsclients/clients.yaml)",
    )
    parser.add_argument(
        "--server", metavar="COMMAND",
        help="Analysis process command line, overriding the config",
    )
    parser.add_argument(
        "--open", metavar="FILE", action="append", default=[],
        help="Open a document once the sessions are started (repeatable)",
    )
    parser.add_argument(
        "--tui", action="store_true",
        help="Show the status bar and notices in a terminal UI",
    )
    parser.add_argument(
        "--telemetry", metavar="RANGE", nargs="?", const="24h",
        help="Print recorded telemetry counts (e.g. 1h, 24h, 7d) and exit",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Log at DEBUG level",
    )
    args = parser.parse_args()

    config, folders = load_config(args.config, args.folders, args.server)
    log_file = _configure_logging(config, args.verbose, to_stderr=not args.tui)
    logging.getLogger(__name__).info(
        "Starting lsclients cwd=%s folders=%d server=%s log=%s",
        Path.cwd(),
        len(folders),
        " ".join(config.server_command) or "<none>",
        log_file,
    )

    if args.telemetry:
        _print_telemetry(config, args.telemetry)
        sys.exit(0)

    if args.tui:
        from lsclients.tui.app import ClientsApp

        app = ClientsApp(config, folders, open_files=args.open)
        app.run()
        return

    try:
        asyncio.run(run_headless(config, folders, args.open))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
