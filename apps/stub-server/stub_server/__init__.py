"""Programmable fake HTTP server for tests."""

from .errors import BodyAlreadyConsumedError, ConfigurationError, PortBindError, StubServerError
from .loader import (
    load_stubs_from_directory,
    load_stubs_from_file,
    parse_stub,
    parse_stub_document,
    parse_stubs,
)
from .models import SequenceReply, SingleReply, StubDefinition, StubRequest, StubResponse
from .registry import StubRegistry
from .request import BufferedRequest, RequestSnapshot
from .server import (
    StubServer,
    stub_server,
    stub_server_from_directory,
    stub_server_from_file,
    stub_server_from_json,
)

__all__ = [
    "BodyAlreadyConsumedError",
    "BufferedRequest",
    "ConfigurationError",
    "PortBindError",
    "RequestSnapshot",
    "SequenceReply",
    "SingleReply",
    "StubDefinition",
    "StubRegistry",
    "StubRequest",
    "StubResponse",
    "StubServer",
    "StubServerError",
    "load_stubs_from_directory",
    "load_stubs_from_file",
    "parse_stub",
    "parse_stub_document",
    "parse_stubs",
    "stub_server",
    "stub_server_from_directory",
    "stub_server_from_file",
    "stub_server_from_json",
]
