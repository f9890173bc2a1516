"""Immutable per-request snapshot used by the matching engine."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol
from urllib.parse import parse_qsl

import structlog

from .errors import BodyAlreadyConsumedError

LOGGER = structlog.get_logger("stub_server")


class TransportRequest(Protocol):
    """What the server shell hands to the registry for each inbound request."""

    @property
    def method(self) -> str: ...

    @property
    def target(self) -> str: ...

    @property
    def headers(self) -> Mapping[str, str]: ...

    def read_body(self) -> bytes: ...


class ReadOnceBody:
    """Wraps a body reader so the underlying stream is consumed at most once."""

    def __init__(self, reader: Callable[[], bytes]) -> None:
        self._reader = reader
        self._lock = threading.Lock()
        self._consumed = False

    @property
    def consumed(self) -> bool:
        return self._consumed

    def read(self) -> bytes:
        with self._lock:
            if self._consumed:
                raise BodyAlreadyConsumedError("Request body has already been read")
            self._consumed = True
        return self._reader()


class BufferedRequest:
    """In-memory transport request."""

    def __init__(
        self,
        method: str,
        target: str,
        headers: Mapping[str, str] | None = None,
        body: bytes | str = b"",
    ) -> None:
        payload = body.encode("utf-8") if isinstance(body, str) else body
        self._method = method
        self._target = target
        self._headers = dict(headers or {})
        self._body = ReadOnceBody(lambda: payload)

    @property
    def method(self) -> str:
        return self._method

    @property
    def target(self) -> str:
        return self._target

    @property
    def headers(self) -> Mapping[str, str]:
        return self._headers

    @property
    def body_consumed(self) -> bool:
        return self._body.consumed

    def read_body(self) -> bytes:
        return self._body.read()


def split_target(target: str) -> tuple[str, dict[str, str]]:
    """Split a request target into its path and decoded query parameters.

    Repeated query keys keep their first value.
    """

    path, _, query = target.partition("?")
    params: dict[str, str] = {}
    for key, value in parse_qsl(query, keep_blank_values=True):
        params.setdefault(key, value)
    return path or "/", params


@dataclass(frozen=True)
class RequestSnapshot:
    method: str
    path: str
    query_params: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    raw_body: str | None = None
    parsed_body: Any = None

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    @classmethod
    def capture(cls, request: TransportRequest, needs_body: bool) -> "RequestSnapshot":
        """Build a snapshot, reading the body only when ``needs_body`` is set.

        Unreadable or non-JSON bodies are logged and leave ``raw_body`` or
        ``parsed_body`` empty; they never abort the request.
        """

        path, query_params = split_target(request.target)
        headers = {name.lower(): value for name, value in request.headers.items()}
        raw_body: str | None = None
        parsed_body: Any = None

        if needs_body:
            try:
                raw_body = request.read_body().decode("utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                LOGGER.debug("request_body_unreadable", method=request.method, path=path, error=str(exc))
                raw_body = None
            if raw_body:
                try:
                    parsed_body = json.loads(raw_body)
                except ValueError as exc:
                    LOGGER.debug("request_body_unparsable", method=request.method, path=path, error=str(exc))

        return cls(
            method=request.method,
            path=path,
            query_params=query_params,
            headers=headers,
            raw_body=raw_body,
            parsed_body=parsed_body,
        )
