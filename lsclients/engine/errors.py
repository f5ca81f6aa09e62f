"""Exception hierarchy for the language client engine.

Specific exceptions for each failure mode. Crash handling never raises
to callers; these surface only through rejected request futures and
construction failures.
"""
from __future__ import annotations


class ClientError(Exception):
    """Base exception for all language client errors."""


class UnsupportedClientError(ClientError):
    """The session can never reach the analysis process."""
    def __init__(self, name: str, reason: str = ""):
        self.name = name
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Unsupported client {name}{detail}")


class ClientDisposedError(ClientError):
    """The session was disposed before the call could complete."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Client {name} was disposed")


class TransportError(ClientError):
    """The connection to the analysis process failed."""
    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Transport for {name} failed: {reason}")


class UnsupportedPlatformError(ClientError):
    """No analysis process binary exists for the host platform."""
    def __init__(self, platform: str):
        self.platform = platform
        super().__init__(f"Invalid platform: {platform}")


class ConfigurationError(ClientError):
    """A configuration file could not be parsed."""
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid configuration in {path}: {reason}")
