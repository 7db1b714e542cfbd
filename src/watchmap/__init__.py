"""watchmap: a key-value map with per-key change watchers."""

from importlib.metadata import version as _version

__version__ = _version("watchmap")

from watchmap.handle import WatchHandle
from watchmap.observable_map import ObservableMap, default_equals, identity_equals

__all__ = [
    "ObservableMap",
    "WatchHandle",
    "default_equals",
    "identity_equals",
]
