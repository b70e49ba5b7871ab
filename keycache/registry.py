"""
keycache Observer Registry

Maps opaque keys to the cached entries registered under them, so that any
caller holding only a key can invalidate every entry derived from it.

    registry = ObserverRegistry()
    settings = registry.entry(config_source, load_settings)
    routes = registry.entry(config_source, lambda: build_routes(settings()))

    registry.refresh(config_source)    # both recompute on next access

The registry also tracks, per key, which thread is currently reloading an
entry under that key. A loader that reads another entry under the same key
is allowed to reload it inline instead of falling back to the stale value;
any other thread that finds the reload claimed reads stale and moves on.

Synchronization:
    _lock           guards the key -> entries map and the loading markers
    _key_locks      one reentrant lock per key; serializes refresh(key) and
                    the marker operations for that key

Entries are held by plain references and leave the registry only through
unregister(), remove_key() or clear().

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, Hashable, List, Optional, TypeVar

from keycache.concurrency import KeyedLocks
from keycache.config import get_config
from keycache.observability import Component, get_logger

if TYPE_CHECKING:
    from keycache.entry import CachedEntry

T = TypeVar("T")

logger = get_logger("registry", Component.REGISTRY)


class ObserverRegistry:
    """
    Key-indexed registry of cached entries.

    Construct one per application (or per test) and hand it to every
    CachedEntry that should be refreshed through it.
    """

    def __init__(self, name: str = "default"):
        self.name = name
        self._entries: Dict[Hashable, List["CachedEntry[Any]"]] = {}
        self._loading_threads: Dict[Hashable, int] = {}
        self._lock = threading.RLock()
        self._key_locks = KeyedLocks()

    def __repr__(self) -> str:
        return f"ObserverRegistry(name={self.name!r}, keys={len(self)})"

    # ────────────────────────────────────────────────────────────────────────
    # Registration
    # ────────────────────────────────────────────────────────────────────────

    def entry(
        self,
        key: Hashable,
        loader: Callable[[], T],
        name: Optional[str] = None,
    ) -> "CachedEntry[T]":
        """Create a CachedEntry registered in this registry under key."""
        from keycache.entry import CachedEntry

        return CachedEntry(self, key, loader, name=name)

    def register(self, key: Hashable, entry: "CachedEntry[Any]") -> None:
        """Add entry under key, creating the key's collection if needed."""
        with self._lock:
            self._entries.setdefault(key, []).append(entry)
            count = len(self._entries[key])
        logger.debug("Entry registered", operation="register", key=repr(key), entries=count)

    def unregister(self, key: Hashable, entry: "CachedEntry[Any]") -> bool:
        """
        Remove entry from key by identity.

        Returns True if the entry was present. Removing the last entry
        drops the key.
        """
        with self._lock:
            entries = self._entries.get(key)
            if not entries:
                return False
            for i, candidate in enumerate(entries):
                if candidate is entry:
                    del entries[i]
                    break
            else:
                return False
            if not entries:
                del self._entries[key]
        logger.debug("Entry unregistered", operation="unregister", key=repr(key))
        return True

    def remove_key(self, key: Hashable) -> int:
        """Drop every association for key. Returns how many entries were dropped."""
        with self._lock:
            entries = self._entries.pop(key, [])
        if entries:
            logger.debug("Key removed", operation="remove_key", key=repr(key), entries=len(entries))
        return len(entries)

    def clear(self) -> None:
        """
        Forget every key and entry association.

        Loading markers stay with the threads holding them; each is
        released when its load finishes.
        """
        with self._lock:
            self._entries.clear()

    # ────────────────────────────────────────────────────────────────────────
    # Invalidation
    # ────────────────────────────────────────────────────────────────────────

    def refresh(self, key: Hashable) -> int:
        """
        Mark every entry under key for reload.

        Only flips flags: never waits for a reload in flight and never
        runs a loader. Unknown keys are ignored. Returns the number of
        entries invalidated.
        """
        with self._key_locks.get(key):
            entries = self.entries(key)
            for entry in entries:
                entry.invalidate()

        if entries and get_config().registry.log_refresh.get():
            logger.debug("Key refreshed", operation="refresh", key=repr(key), entries=len(entries))
        return len(entries)

    def refresh_all(self) -> int:
        """Refresh every registered key. Returns the number of entries invalidated."""
        return sum(self.refresh(key) for key in self.keys())

    # ────────────────────────────────────────────────────────────────────────
    # Reloading-thread markers
    # ────────────────────────────────────────────────────────────────────────

    def try_set_thread_loading(self, key: Hashable) -> bool:
        """Claim the reloading role for key for the calling thread, if free."""
        with self._key_locks.get(key):
            with self._lock:
                if key in self._loading_threads:
                    return False
                self._loading_threads[key] = threading.get_ident()
                return True

    def unset_thread_loading(self, key: Hashable) -> None:
        """Release the reloading role for key if the calling thread holds it."""
        with self._key_locks.get(key):
            with self._lock:
                if self._loading_threads.get(key) == threading.get_ident():
                    del self._loading_threads[key]

    def is_loading_thread(self, key: Hashable) -> bool:
        """True iff the calling thread currently holds the reloading role for key."""
        with self._lock:
            return self._loading_threads.get(key) == threading.get_ident()

    def loading_thread(self, key: Hashable) -> Optional[int]:
        """Identity of the thread reloading key, if any."""
        with self._lock:
            return self._loading_threads.get(key)

    # ────────────────────────────────────────────────────────────────────────
    # Introspection
    # ────────────────────────────────────────────────────────────────────────

    def entries(self, key: Hashable) -> List["CachedEntry[Any]"]:
        """Snapshot of the entries registered under key."""
        with self._lock:
            return list(self._entries.get(key, ()))

    def keys(self) -> List[Hashable]:
        with self._lock:
            return list(self._entries.keys())

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def to_dict(self) -> Dict[str, Any]:
        """Summary suitable for CLI output."""
        with self._lock:
            return {
                "name": self.name,
                "keys": len(self._entries),
                "entries": sum(len(v) for v in self._entries.values()),
                "loading": len(self._loading_threads),
            }


__all__ = [
    "ObserverRegistry",
]
