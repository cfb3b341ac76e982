"""Per-delivery mutual exclusion."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class DeliveryLocks:
    """Hands out one lock per delivery id so transitions on the same delivery never race.

    An entry only lives while some thread holds or waits for it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def _acquire_entry(self, delivery_id: str) -> _Entry:
        with self._guard:
            entry = self._entries.get(delivery_id)
            if entry is None:
                entry = self._entries[delivery_id] = _Entry()
            entry.users += 1
            return entry

    def _release_entry(self, delivery_id: str, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[delivery_id]

    @contextmanager
    def hold(self, delivery_id: str) -> Iterator[None]:
        entry = self._acquire_entry(delivery_id)
        try:
            with entry.lock:
                yield
        finally:
            self._release_entry(delivery_id, entry)
