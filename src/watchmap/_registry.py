"""Watcher registry — per-key ordered lists of watcher records.

Each record carries a process-unique id so that cancellation removes exactly
one registration, even when the same callback was registered twice.
"""

from __future__ import annotations

import itertools
from typing import Callable, Hashable

# Shared across maps so ids never collide.
_id_counter = itertools.count(1)


def new_id() -> int:
    return next(_id_counter)


class WatcherRecord:
    """A single registration: id, callback, optional binding context."""

    __slots__ = ("id", "callback", "context", "active")

    def __init__(self, callback: Callable, context: object = None) -> None:
        self.id = new_id()
        self.callback = callback
        self.context = context
        self.active = True

    def __repr__(self) -> str:
        state = "active" if self.active else "retired"
        name = getattr(self.callback, "__name__", type(self.callback).__name__)
        return f"WatcherRecord({self.id}, {name}, {state})"


class WatcherRegistry:
    """Key -> records in registration order."""

    __slots__ = ("_watchers",)

    def __init__(self) -> None:
        self._watchers: dict[Hashable, list[WatcherRecord]] = {}

    def add(self, key: Hashable, record: WatcherRecord) -> None:
        self._watchers.setdefault(key, []).append(record)

    def remove(self, key: Hashable, record_id: int) -> None:
        """Retire and drop the record with record_id, if registered."""
        records = self._watchers.get(key)
        if not records:
            return
        for record in records:
            if record.id == record_id:
                record.active = False
        records[:] = [record for record in records if record.id != record_id]
        if not records:
            del self._watchers[key]

    def snapshot(self, key: Hashable) -> list[WatcherRecord]:
        return list(self._watchers.get(key, ()))

    def count(self, key: Hashable) -> int:
        return len(self._watchers.get(key, ()))
