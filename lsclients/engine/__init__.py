"""Language client engine: sessions, readiness, crash recovery and routing."""
from .models import (
    CrashAction,
    DefaultPaths,
    FolderSettings,
    GateState,
    ModelField,
    SessionState,
    TextDocument,
    WorkspaceFolder,
)
from .config import ClientConfig
from .crash_policy import CrashPolicy, CrashRecord
from .errors import (
    ClientDisposedError,
    ClientError,
    ConfigurationError,
    TransportError,
    UnsupportedClientError,
    UnsupportedPlatformError,
)

__all__ = [
    # Sessions (lazy import to avoid circular deps)
    "Session",
    "NullSession",
    "SessionRegistry",
    "ClientHost",
    # Models
    "CrashAction",
    "DefaultPaths",
    "FolderSettings",
    "GateState",
    "ModelField",
    "SessionState",
    "TextDocument",
    "WorkspaceFolder",
    # Config
    "ClientConfig",
    "CrashPolicy",
    "CrashRecord",
    "TelemetryCollector",
    # YAML config (lazy import)
    "ClientsConfig",
    "load_yaml_config",
    # Transports (lazy import)
    "Transport",
    "StdioTransport",
    # Errors
    "ClientDisposedError",
    "ClientError",
    "ConfigurationError",
    "TransportError",
    "UnsupportedClientError",
    "UnsupportedPlatformError",
]


def __getattr__(name: str):
    if name == "Session":
        from .session import Session
        return Session
    if name == "NullSession":
        from .session import NullSession
        return NullSession
    if name == "SessionRegistry":
        from .registry import SessionRegistry
        return SessionRegistry
    if name == "ClientHost":
        from .host import ClientHost
        return ClientHost
    if name == "ClientsConfig":
        from .yaml_config import ClientsConfig
        return ClientsConfig
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    if name == "Transport":
        from .transport import Transport
        return Transport
    if name == "StdioTransport":
        from .stdio_transport import StdioTransport
        return StdioTransport
    if name == "TelemetryCollector":
        from .telemetry import TelemetryCollector
        return TelemetryCollector
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
