"""HTTP runtime serving registered stubs."""

from __future__ import annotations

import json
import socketserver
import threading
import time
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from typing import Any, BinaryIO, Iterable, Mapping

import structlog

from .errors import PortBindError
from .loader import load_stubs_from_directory, load_stubs_from_file, parse_stub_document
from .models import StubDefinition, StubResponse
from .registry import StubRegistry
from .request import ReadOnceBody, split_target

LOGGER = structlog.get_logger("stub_server")

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
_MAX_LINE = 65536


class ThreadedHTTPServer(socketserver.ThreadingMixIn, HTTPServer):
    daemon_threads = True
    # Two servers must never share a port.
    allow_reuse_port = False


def _read_chunked(stream: BinaryIO) -> bytes:
    chunks: list[bytes] = []
    while True:
        size_line = stream.readline(_MAX_LINE + 1)
        if not size_line:
            raise OSError("Connection closed inside a chunked body")
        try:
            size = int(size_line.split(b";", 1)[0].strip(), 16)
        except ValueError as exc:
            raise OSError(f"Invalid chunk size line: {size_line!r}") from exc
        if size == 0:
            break
        chunk = stream.read(size)
        if len(chunk) < size:
            raise OSError("Connection closed inside a chunked body")
        chunks.append(chunk)
        stream.readline(_MAX_LINE + 1)
    # Trailer section ends with an empty line.
    while stream.readline(_MAX_LINE + 1) not in (b"\r\n", b"\n", b""):
        pass
    return b"".join(chunks)


class _HandlerRequest:
    """Transport request backed by a live ``BaseHTTPRequestHandler``."""

    def __init__(self, handler: BaseHTTPRequestHandler) -> None:
        self._handler = handler
        # Repeated headers keep their first value, like query parameters.
        self._headers = {key: handler.headers.get(key, "") for key in handler.headers.keys()}
        self._body = ReadOnceBody(self._read_stream)

    def _read_stream(self) -> bytes:
        headers = self._handler.headers
        if "chunked" in headers.get("Transfer-Encoding", "").lower():
            return _read_chunked(self._handler.rfile)
        raw_length = headers.get("Content-Length")
        if not raw_length:
            return b""
        try:
            length = int(raw_length)
        except ValueError as exc:
            raise OSError(f"Invalid Content-Length header: {raw_length!r}") from exc
        if length <= 0:
            return b""
        return self._handler.rfile.read(length)

    @property
    def method(self) -> str:
        return self._handler.command

    @property
    def target(self) -> str:
        return self._handler.path

    @property
    def headers(self) -> Mapping[str, str]:
        return self._headers

    def read_body(self) -> bytes:
        return self._body.read()

    def discard_unread_body(self) -> None:
        # An unread body left in the socket makes the close reset the connection.
        if self._body.consumed:
            return
        try:
            self._body.read()
        except OSError:
            self._handler.close_connection = True


class StubServer:
    """Fake HTTP server answering from a :class:`StubRegistry`.

    Stubs are tried in registration order and the first match answers. Stubs
    can be added, cleared and their counters reset while the server runs.
    ``port=0`` lets the OS pick a free port; :attr:`port` reports it once
    started.
    """

    def __init__(
        self,
        stubs: Iterable[StubDefinition] = (),
        *,
        host: str = "127.0.0.1",
        port: int = 0,
    ) -> None:
        self._host = host
        self._requested_port = port
        self._registry = StubRegistry(stubs)
        self._httpd: ThreadedHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()
        self._logger = LOGGER.bind(host=host)

    @property
    def registry(self) -> StubRegistry:
        return self._registry

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        if self._httpd is not None:
            return self._httpd.server_address[1]
        return self._requested_port

    @property
    def base_url(self) -> str:
        return f"http://{self._host}:{self.port}"

    @property
    def running(self) -> bool:
        return self._httpd is not None

    def start(self) -> None:
        if self._httpd is not None:
            return
        self._logger.info("server_starting", port=self._requested_port, stubs=len(self._registry))
        try:
            httpd = ThreadedHTTPServer((self._host, self._requested_port), self._build_handler_factory())
        except OSError as exc:
            raise PortBindError(self._host, self._requested_port, str(exc)) from exc
        self._httpd = httpd
        self._thread = threading.Thread(target=httpd.serve_forever, name="stub-server", daemon=True)
        self._thread.start()
        self._ready.set()
        self._logger = self._logger.bind(port=httpd.server_address[1])
        self._logger.info("server_started", base_url=self.base_url)

    def stop(self) -> None:
        if not self._httpd:
            return
        self._logger.info("server_stopping")
        try:
            self._httpd.shutdown()
            self._httpd.server_close()
        finally:
            if self._thread:
                self._thread.join(timeout=2)
            self._httpd = None
            self._thread = None
            self._ready.clear()
        self._logger.info("server_stopped")

    def wait_until_ready(self, timeout: float = 1.0) -> bool:
        return self._ready.wait(timeout=timeout)

    def __enter__(self) -> "StubServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def add_stub(self, stub: StubDefinition) -> None:
        self._registry.add(stub)

    def clear_stubs(self) -> None:
        """Remove every stub together with its call counter."""

        self._registry.clear()

    def reset(self) -> None:
        self._registry.reset()

    def get_call_count(self, method: str, path: str) -> int:
        return self._registry.get_call_count(method, path)

    def verify_call_count(self, method: str, path: str, expected_count: int) -> None:
        """Raise ``AssertionError`` unless ``method path`` was served ``expected_count`` times."""

        actual = self.get_call_count(method, path)
        if actual != expected_count:
            raise AssertionError(
                f"Expected {method} {path} to be called {expected_count} time(s) but was {actual} time(s)."
            )

    def console_summary(self) -> list[str]:
        header = f"[stub-server] listening on {self.base_url}"
        lines = [header, "    stubs:"]
        described = [entry.definition.describe() for entry in self._registry.entries()]
        if described:
            lines.extend(f"      - {description}" for description in described)
        else:
            lines.append("      (no stubs registered)")
        return lines

    def _build_handler_factory(self) -> type[BaseHTTPRequestHandler]:
        registry = self._registry
        server_logger = self._logger

        class Handler(BaseHTTPRequestHandler):
            def log_message(self, format: str, *args: Any) -> None:  # pragma: no cover - avoid stderr
                server_logger.debug(
                    "http_trace",
                    client_ip=self.client_address[0],
                    message=format % args,
                )

            def do_GET(self) -> None:  # noqa: N802 (BaseHTTPRequestHandler requirement)
                self._handle()

            def do_POST(self) -> None:  # noqa: N802
                self._handle()

            def do_PUT(self) -> None:  # noqa: N802
                self._handle()

            def do_DELETE(self) -> None:  # noqa: N802
                self._handle()

            def do_PATCH(self) -> None:  # noqa: N802
                self._handle()

            def do_HEAD(self) -> None:  # noqa: N802
                self._handle(head_only=True)

            def do_OPTIONS(self) -> None:  # noqa: N802
                self._handle()

            def _handle(self, *, head_only: bool = False) -> None:
                request = _HandlerRequest(self)
                path, _ = split_target(self.path)
                request_logger = server_logger.bind(method=self.command, path=path)
                request_logger.debug("request_received")
                try:
                    response = registry.match(request)
                    request.discard_unread_body()
                    if response is None:
                        request_logger.warning("request_unmatched")
                        self._respond_json(
                            HTTPStatus.NOT_FOUND,
                            {"error": f"No stub for {self.command} {path}"},
                            head_only=head_only,
                        )
                        return
                    self._respond_with_stub(response, head_only=head_only)
                    request_logger.info("request_served", status=response.status, delay_ms=response.delay_ms)
                except Exception:  # pragma: no cover - resilience path
                    request_logger.exception("request_failed")
                    self._respond_json(
                        HTTPStatus.INTERNAL_SERVER_ERROR,
                        {"error": "stub server failure"},
                        head_only=head_only,
                    )

            def _respond_with_stub(self, response: StubResponse, *, head_only: bool = False) -> None:
                if response.delay_ms:
                    time.sleep(response.delay_ms / 1000)
                body_bytes = response.render_body().encode("utf-8")
                self.send_response(response.status)
                for key, value in response.headers.items():
                    if key.lower() in ("content-type", "content-length"):
                        continue
                    self.send_header(key, value)
                content_type = response.content_type()
                if content_type:
                    self.send_header("Content-Type", content_type)
                self.send_header("Content-Length", str(len(body_bytes)))
                self.end_headers()
                if not head_only:
                    self.wfile.write(body_bytes)

            def _respond_json(self, status: HTTPStatus, payload: dict[str, Any], *, head_only: bool = False) -> None:
                body = json.dumps(payload).encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", JSON_CONTENT_TYPE)
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                if not head_only:
                    self.wfile.write(body)

        return Handler


def stub_server(stubs: Iterable[StubDefinition] = (), *, host: str = "127.0.0.1", port: int = 0) -> StubServer:
    """Create a server from already-built stubs."""

    return StubServer(stubs, host=host, port=port)


def stub_server_from_json(text: str, *, host: str = "127.0.0.1", port: int = 0) -> StubServer:
    """Create a server from JSON text holding one stub object or an array."""

    return StubServer(parse_stub_document(text), host=host, port=port)


def stub_server_from_file(path: Path, *, host: str = "127.0.0.1", port: int = 0) -> StubServer:
    return StubServer(load_stubs_from_file(path), host=host, port=port)


def stub_server_from_directory(directory: Path, *, host: str = "127.0.0.1", port: int = 0) -> StubServer:
    return StubServer(load_stubs_from_directory(directory), host=host, port=port)
