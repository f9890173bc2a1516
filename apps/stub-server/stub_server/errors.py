"""Exceptions raised by the stub server."""

from __future__ import annotations


class StubServerError(Exception):
    """Base error type for stub server failures."""


class ConfigurationError(StubServerError):
    """Raised when a stub definition, stub file or setting is invalid."""


class BodyAlreadyConsumedError(StubServerError):
    """Raised when a read-once request body is read a second time."""


class PortBindError(StubServerError):
    """Raised when the server cannot bind its listening socket."""

    def __init__(self, host: str, port: int, reason: str) -> None:
        super().__init__(f"Cannot bind stub server to {host}:{port}: {reason}")
        self.host = host
        self.port = port
