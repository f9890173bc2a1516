"""Concurrent, ordered container of registered stubs."""

from __future__ import annotations

import threading
from typing import Iterable

import structlog

from .entry import StatefulEntry
from .matching import match_stub
from .models import StubDefinition, StubResponse
from .request import RequestSnapshot, TransportRequest

LOGGER = structlog.get_logger("stub_server")


class StubRegistry:
    """Holds stubs in registration order together with their call counters.

    Thread safety:
    - Entries live in an immutable tuple. ``match`` and the inspection
      methods read the current tuple reference once and work on that
      point-in-time view without locking.
    - ``add``, ``add_all`` and ``clear`` build a new tuple while holding the
      writer lock and then publish it, so concurrent writers never drop each
      other's entries and readers never see a partial list.
    - Each entry's counter has its own lock; increments on different entries
      do not contend.
    """

    def __init__(self, stubs: Iterable[StubDefinition] = ()) -> None:
        self._write_lock = threading.Lock()
        self._entries: tuple[StatefulEntry, ...] = tuple(StatefulEntry(stub) for stub in stubs)

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> tuple[StatefulEntry, ...]:
        """Current entries in registration order."""

        return self._entries

    def add(self, stub: StubDefinition) -> None:
        """Append ``stub``; safe while requests are being matched."""

        entry = StatefulEntry(stub)
        with self._write_lock:
            self._entries = self._entries + (entry,)
        LOGGER.debug("stub_added", stub=stub.describe())

    def add_all(self, stubs: Iterable[StubDefinition]) -> None:
        new_entries = tuple(StatefulEntry(stub) for stub in stubs)
        if not new_entries:
            return
        with self._write_lock:
            self._entries = self._entries + new_entries
        LOGGER.debug("stubs_added", count=len(new_entries))

    def clear(self) -> None:
        """Remove every stub. Their call counters are discarded with them."""

        with self._write_lock:
            self._entries = ()
        LOGGER.debug("stubs_cleared")

    def reset(self) -> None:
        """Rewind every call counter to zero; stubs stay registered."""

        for entry in self._entries:
            entry.reset_counter()
        LOGGER.debug("counters_reset")

    def match(self, request: TransportRequest | RequestSnapshot) -> StubResponse | None:
        """Return the next response of the first matching stub, or None."""

        entries = self._entries
        if isinstance(request, RequestSnapshot):
            snapshot = request
        else:
            needs_body = any(entry.definition.request.needs_body for entry in entries)
            snapshot = RequestSnapshot.capture(request, needs_body)
        return match_stub(snapshot, entries)

    def get_call_count(self, method: str, path: str) -> int:
        """Calls served by the first stub registered for ``method`` and exact ``path``.

        Stubs declared with ``pathPattern`` are never considered. Returns 0 when
        nothing is registered for the pair.
        """

        for entry in self._entries:
            matcher = entry.definition.request
            if matcher.path == path and matcher.method.upper() == method.upper():
                return entry.call_count
        return 0
