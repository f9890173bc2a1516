"""Test bootstrap for stub-server."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from http.client import HTTPConnection
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest

APP_ROOT = Path(__file__).resolve().parents[1]

if str(APP_ROOT) not in sys.path:
    sys.path.insert(0, str(APP_ROOT))

from stub_server.server import StubServer  # noqa: E402


@dataclass
class HttpResult:
    status: int
    headers: dict[str, str]
    text: str

    def json(self) -> Any:
        return json.loads(self.text)


@pytest.fixture
def server() -> Iterator[StubServer]:
    runtime = StubServer()
    runtime.start()
    try:
        yield runtime
    finally:
        runtime.stop()


@pytest.fixture
def http(server: StubServer) -> Callable[..., HttpResult]:
    """Send one request to the running ``server`` fixture."""

    def send(
        method: str,
        target: str,
        *,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResult:
        payload: bytes | None
        if body is None:
            payload = None
        elif isinstance(body, (bytes, str)):
            payload = body.encode("utf-8") if isinstance(body, str) else body
        else:
            payload = json.dumps(body).encode("utf-8")
        connection = HTTPConnection("127.0.0.1", server.port, timeout=5)
        try:
            connection.request(method, target, body=payload, headers=headers or {})
            response = connection.getresponse()
            text = response.read().decode("utf-8")
            return HttpResult(
                status=response.status,
                headers={key.lower(): value for key, value in response.getheaders()},
                text=text,
            )
        finally:
            connection.close()

    return send
