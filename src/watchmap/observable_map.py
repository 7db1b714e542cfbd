"""ObservableMap — a key-value store whose keys can be watched.

Watchers register interest in one key and are called with ``(value, old)``
whenever that key is set to a different value or deleted. Firing happens
before the new value is committed, so a watcher that reads the map sees the
state as it was before the change.

Observation is shallow: mutating a stored object in place does not notify.
"""

from __future__ import annotations

import logging
from types import FunctionType, MethodType
from typing import Any, Callable, Generic, Hashable, Iterable, Iterator, Mapping, TypeVar

from watchmap._registry import WatcherRecord, WatcherRegistry
from watchmap.handle import WatchHandle

logger = logging.getLogger("watchmap")

KT = TypeVar("KT", bound=Hashable)
VT = TypeVar("VT")

Callback = Callable[[Any, Any], Any]
Equals = Callable[[Any, Any], bool]

# Key was absent. Delivered to callbacks as None.
_MISSING = object()


def default_equals(old: Any, new: Any) -> bool:
    """Same object, or equal by ``==``."""
    return old is new or bool(old == new)


def identity_equals(old: Any, new: Any) -> bool:
    """Same object only. Every set() of a fresh object fires."""
    return old is new


def _public(value: Any) -> Any:
    return None if value is _MISSING else value


def _check_callable(callback: object, name: str = "callback", context: object = None) -> None:
    if not callable(callback):
        raise TypeError(f"{name} must be callable, got {type(callback).__name__}")
    # Bound methods and partials would receive context as an extra argument.
    if context is not None and not isinstance(callback, FunctionType):
        raise TypeError(
            f"{name} must be a plain function to bind a context, got {type(callback).__name__}"
        )


def _bind(callback: Callable, context: object) -> Callable:
    if context is None:
        return callback
    return MethodType(callback, context)


class ObservableMap(Generic[KT, VT]):
    """A dict-like container that notifies per-key watchers on change.

    Usage:
        m = ObservableMap()
        unwatch = m.watch("x", lambda value, old: print(value, old))
        m.set("x", 5)   # prints: 5 None
        m.set("x", 5)   # equal value, nothing fires
        m.delete("x")   # prints: None 5
        unwatch()
    """

    __slots__ = ("_data", "_previous", "_watchers", "_equals", "_isolate_errors")

    def __init__(
        self,
        initial: Mapping[KT, VT] | Iterable[tuple[KT, VT]] | None = None,
        *,
        equals: Equals | None = None,
        isolate_errors: bool = True,
    ) -> None:
        if equals is not None:
            _check_callable(equals, "equals")
        self._data: dict[KT, VT] = dict(initial) if initial is not None else {}
        self._previous: dict[KT, object] = {}
        self._watchers = WatcherRegistry()
        self._equals: Equals = equals or default_equals
        self._isolate_errors = isolate_errors

    # --- Read operations ---

    def __getitem__(self, key: KT) -> VT:
        return self._data[key]

    def get(self, key: KT, default: VT | None = None) -> VT | None:
        return self._data.get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def has(self, key: KT) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    @property
    def size(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[KT]:
        return iter(self._data)

    def keys(self):
        return self._data.keys()

    def values(self):
        return self._data.values()

    def items(self):
        return self._data.items()

    def __bool__(self) -> bool:
        return bool(self._data)

    def previous(self, key: KT, default: Any = None) -> Any:
        """The value key held before its most recent set(), if still tracked."""
        value = self._previous.get(key, _MISSING)
        return default if value is _MISSING else value

    # --- Write operations (notify) ---

    def set(self, key: KT, value: VT) -> ObservableMap[KT, VT]:
        """Set key to value, firing its watchers first if the value changed.

        Returns the map, so calls can be chained.
        """
        old = self._data.get(key, _MISSING)
        if old is not _MISSING and self._equals(old, value):
            return self
        self._previous[key] = old
        self._fire(key, value, _public(old))
        self._data[key] = value
        return self

    def __setitem__(self, key: KT, value: VT) -> None:
        self.set(key, value)

    def delete(self, key: KT) -> bool:
        """Remove key, firing its watchers with ``(None, old)``.

        Returns False, without firing, if the key was not present.
        """
        if key not in self._data:
            return False
        old = self._data[key]
        self._previous.pop(key, None)
        self._fire(key, None, old)
        # A watcher may already have removed it.
        self._data.pop(key, None)
        return True

    def __delitem__(self, key: KT) -> None:
        if not self.delete(key):
            raise KeyError(key)

    def update(self, other=None, **kwargs) -> ObservableMap[KT, VT]:
        if other is not None:
            # Same protocol as dict.update: anything with keys() is a mapping.
            pairs = [(k, other[k]) for k in other.keys()] if hasattr(other, "keys") else other
            for key, value in pairs:
                self.set(key, value)
        for key, value in kwargs.items():
            self.set(key, value)
        return self

    def clear(self) -> None:
        """Delete every key. Watchers see each removal."""
        for key in list(self._data):
            self.delete(key)

    # --- Watchers ---

    def watch(
        self,
        key: KT,
        callback: Callback,
        *,
        always: bool = False,
        context: object = None,
    ) -> WatchHandle:
        """Call callback(value, old) every time key changes via set()/delete().

        If always is true and key already holds a value, callback runs
        immediately with the current value and the value before it, under
        the same error policy as any other firing. If context is given,
        callback must be a plain function; it is bound to context like a
        method.

        Returns a WatchHandle; call it (or its dispose()) to stop watching.
        """
        _check_callable(callback, context=context)
        record = WatcherRecord(callback, context)
        self._watchers.add(key, record)
        handle = WatchHandle(self._watchers, key, record)
        if always and key in self._data:
            try:
                self._call(record, key, self._data[key], self.previous(key))
            except Exception:
                handle.dispose()
                raise
        return handle

    def once(
        self,
        key: KT,
        callback: Callback,
        *,
        always: bool = False,
        context: object = None,
    ) -> WatchHandle:
        """Like watch(), but the callback fires at most once.

        With always=True and a value already present, the immediate call is
        the only call: the watcher is never installed and the returned handle
        is already disposed.
        """
        _check_callable(callback, context=context)
        if always and key in self._data:
            record = WatcherRecord(callback, context)
            record.active = False
            self._call(record, key, self._data[key], self.previous(key))
            return WatchHandle(None, key, record)

        fn = _bind(callback, context)
        handle: WatchHandle

        def _fire_once(value, old):
            # Retire first, so a reentrant change from fn cannot fire it again.
            handle.dispose()
            return fn(value, old)

        _fire_once.__name__ = getattr(callback, "__name__", "_fire_once")
        handle = self.watch(key, _fire_once)
        return handle

    def count_watchers(self, key: KT) -> int:
        """Number of active watchers on key. Zero for an unknown key."""
        return self._watchers.count(key)

    def _fire(self, key: KT, value: Any, old: Any) -> None:
        """Invoke key's watchers in registration order.

        Iterates a snapshot; a record cancelled mid-pass is skipped when its
        turn comes, and records added mid-pass wait for the next event.
        """
        for record in self._watchers.snapshot(key):
            if record.active:
                self._call(record, key, value, old)

    def _call(self, record: WatcherRecord, key: KT, value: Any, old: Any) -> None:
        """Run one watcher, logging its failure unless errors propagate."""
        try:
            _bind(record.callback, record.context)(value, old)
        except Exception:
            if not self._isolate_errors:
                raise
            logger.exception("Watcher %r failed for key %r", record, key)

    def __repr__(self) -> str:
        return f"ObservableMap({self._data!r})"
