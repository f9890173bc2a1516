"""Registered stub paired with its call counter."""

from __future__ import annotations

import threading

from .matching import request_matches
from .models import StubDefinition, StubResponse
from .request import RequestSnapshot


class AtomicCounter:
    """Integer counter whose read-and-increment is a single atomic step."""

    def __init__(self, initial: int = 0) -> None:
        self._value = initial
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def get_and_increment(self) -> int:
        with self._lock:
            current = self._value
            self._value = current + 1
            return current

    def reset(self) -> None:
        with self._lock:
            self._value = 0


class StatefulEntry:
    """One registered :class:`StubDefinition` and the number of times it matched.

    ``next_response`` is called once per matched request. Calls 1..N return the
    N configured responses in order; every later call repeats the last one.
    """

    def __init__(self, definition: StubDefinition) -> None:
        self.definition = definition
        self._responses = definition.resolved_responses
        self._calls = AtomicCounter()

    def __repr__(self) -> str:
        return f"StatefulEntry({self.definition.describe()!r}, calls={self.call_count})"

    @property
    def call_count(self) -> int:
        return self._calls.value

    def matches(self, snapshot: RequestSnapshot) -> bool:
        return request_matches(self.definition.request, snapshot)

    def next_response(self) -> StubResponse:
        index = min(self._calls.get_and_increment(), len(self._responses) - 1)
        return self._responses[index]

    def reset_counter(self) -> None:
        self._calls.reset()
