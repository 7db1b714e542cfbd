"""WatchHandle — the cancellation token returned by watch() and once().

The handle is callable, so it can be used anywhere a plain ``unwatch()``
function is expected. dispose() is the explicit spelling.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Hashable

if TYPE_CHECKING:
    from watchmap._registry import WatcherRecord, WatcherRegistry


class WatchHandle:
    """Disposable handle for one watcher registration."""

    __slots__ = ("_registry", "_key", "_record")

    def __init__(self, registry: WatcherRegistry | None, key: Hashable, record: WatcherRecord) -> None:
        self._registry = registry
        self._key = key
        self._record = record

    @property
    def key(self) -> Hashable:
        return self._key

    @property
    def disposed(self) -> bool:
        return not self._record.active

    def dispose(self) -> None:
        """Remove the watcher. Safe to call more than once."""
        self._record.active = False
        if self._registry is not None:
            self._registry.remove(self._key, self._record.id)
            self._registry = None

    def __call__(self) -> None:
        self.dispose()

    def __repr__(self) -> str:
        state = "disposed" if self.disposed else "active"
        return f"WatchHandle({self._key!r}, {state})"
