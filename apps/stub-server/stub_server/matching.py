"""Request matching: per-stub predicates and first-match-wins selection."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

from .models import StubRequest, StubResponse
from .request import RequestSnapshot

if TYPE_CHECKING:
    from .entry import StatefulEntry


def json_equal(expected: Any, actual: Any) -> bool:
    """Structural equality of two decoded JSON values.

    Booleans never equal numbers; ``1`` and ``1.0`` are the same JSON number.
    """

    if isinstance(expected, bool) or isinstance(actual, bool):
        return type(expected) is type(actual) and expected == actual
    if isinstance(expected, (int, float)) and isinstance(actual, (int, float)):
        return expected == actual
    if isinstance(expected, dict) and isinstance(actual, dict):
        if expected.keys() != actual.keys():
            return False
        return all(json_equal(value, actual[key]) for key, value in expected.items())
    if isinstance(expected, (list, tuple)) and isinstance(actual, (list, tuple)):
        if len(expected) != len(actual):
            return False
        return all(json_equal(left, right) for left, right in zip(expected, actual))
    if type(expected) is not type(actual):
        return False
    return expected == actual


def _path_matches(matcher: StubRequest, path: str) -> bool:
    regex = matcher.path_regex
    if regex is not None:
        return regex.fullmatch(path) is not None
    if matcher.path is not None:
        return matcher.path == path
    return True


def _headers_match(matcher: StubRequest, snapshot: RequestSnapshot) -> bool:
    return all(snapshot.header(name) == value for name, value in matcher.headers.items())


def _query_matches(matcher: StubRequest, snapshot: RequestSnapshot) -> bool:
    if matcher.query_params is None:
        return True
    return all(snapshot.query_params.get(key) == value for key, value in matcher.query_params.items())


def request_matches(matcher: StubRequest, snapshot: RequestSnapshot) -> bool:
    """Return True when every declared condition of ``matcher`` holds."""

    if matcher.method.upper() != snapshot.method.upper():
        return False
    if not _path_matches(matcher, snapshot.path):
        return False
    if not _headers_match(matcher, snapshot):
        return False
    if not _query_matches(matcher, snapshot):
        return False
    if matcher.body is not None:
        if snapshot.parsed_body is None or not json_equal(matcher.body, snapshot.parsed_body):
            return False
    if matcher.body_contains is not None:
        if snapshot.raw_body is None or matcher.body_contains not in snapshot.raw_body:
            return False
    return True


def match_stub(snapshot: RequestSnapshot, entries: Sequence["StatefulEntry"]) -> StubResponse | None:
    """Advance and answer with the first entry matching ``snapshot``.

    Entries are tried in registration order; an earlier, broader stub shadows
    any later one for the same request.
    """

    for entry in entries:
        if entry.matches(snapshot):
            return entry.next_response()
    return None
