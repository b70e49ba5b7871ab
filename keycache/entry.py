"""
keycache Cached Entry

A lazily computed, refreshable value holder. The loader runs on first access
and again on the first access after the entry's key is refreshed through its
ObserverRegistry.

Usage
─────

    registry = ObserverRegistry()
    applications = CachedEntry(registry, settings_source, load_applications)

    applications().start()    # load_applications() runs here
    applications().start()    # cached value

    registry.refresh(settings_source)
    applications().start()    # load_applications() runs again

Lifecycle
─────────

    UNLOADED ──get()──▶ LOADING ──ok──▶ LOADED ◀──────────────┐
        ▲                  │                │                  │
        └──── loader ──────┘          invalidate()          reload ok
              failed                        │                  │
                                            ▼                  │
                                  LOADED + RELOAD PENDING ─────┘

Concurrency
───────────

    First load      double-checked under the entry lock; concurrent first
                    readers block until one of them has loaded.
    Reload          exactly one thread claims load_in_progress and reloads;
                    the others return the previous value without waiting.
    Same-key reads  a loader may read other entries under the same key; the
                    thread holding the key's reloading marker reloads them
                    inline rather than reading stale.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
import time
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Generic,
    Hashable,
    Optional,
    TypeVar,
)

from keycache.concurrency import AtomicBoolean
from keycache.config import get_config
from keycache.observability import Component, get_logger

if TYPE_CHECKING:
    from keycache.registry import ObserverRegistry

T = TypeVar("T")

logger = get_logger("entry", Component.ENTRY)

_EMPTY: Any = object()


# ════════════════════════════════════════════════════════════════════════════
# ERRORS
# ════════════════════════════════════════════════════════════════════════════


class CacheEntryError(Exception):
    """Base class for errors raised by cached entries."""
    pass


class RecursiveLoadError(CacheEntryError):
    """A loader read its own entry before the entry had ever been loaded."""

    def __init__(self, entry: "CachedEntry[Any]"):
        super().__init__(
            f"Loader for {entry.name!r} (key={entry.key!r}) read its own entry during the first load"
        )
        self.entry = entry


# ════════════════════════════════════════════════════════════════════════════
# ENTRY METRICS
# ════════════════════════════════════════════════════════════════════════════


class EntryMetrics:
    """Per-entry counters with thread-safe updates."""

    def __init__(
        self,
        loads: int = 0,
        failures: int = 0,
        invalidations: int = 0,
        last_load_ms: Optional[float] = None,
    ):
        self._lock = threading.Lock()
        self.loads = loads
        self.failures = failures
        self.invalidations = invalidations
        self.last_load_ms = last_load_ms

    def record_load(self, duration_ms: float) -> None:
        with self._lock:
            self.loads += 1
            self.last_load_ms = duration_ms

    def record_failure(self) -> None:
        with self._lock:
            self.failures += 1

    def record_invalidation(self) -> None:
        with self._lock:
            self.invalidations += 1

    def snapshot(self) -> "EntryMetrics":
        """Independent copy of the current counters."""
        with self._lock:
            return EntryMetrics(
                loads=self.loads,
                failures=self.failures,
                invalidations=self.invalidations,
                last_load_ms=self.last_load_ms,
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        with self._lock:
            return {
                "loads": self.loads,
                "failures": self.failures,
                "invalidations": self.invalidations,
                "last_load_ms": None if self.last_load_ms is None else round(self.last_load_ms, 3),
            }


# ════════════════════════════════════════════════════════════════════════════
# CACHED ENTRY
# ════════════════════════════════════════════════════════════════════════════


class CachedEntry(Generic[T]):
    """
    Lazily loaded value refreshed by key.

    The entry registers itself with the registry under key on construction
    and stays registered until close(), registry.unregister() or
    registry.remove_key(). Construction never runs the loader.

    Reads may return a stale value while a reload claimed by another
    thread is in flight. Once loaded, the entry always has a value; a
    failed reload keeps the previous one and leaves the reload pending.
    """

    def __init__(
        self,
        registry: "ObserverRegistry",
        key: Hashable,
        loader: Callable[[], T],
        name: Optional[str] = None,
    ):
        if not callable(loader):
            raise TypeError(f"loader must be callable, got {type(loader).__name__}")

        self._registry = registry
        self._key = key
        self._loader = loader
        self.name = name or getattr(loader, "__qualname__", None) or repr(loader)

        self._value: Any = _EMPTY
        self._reload_needed = True
        self._generation = 0
        # Guards _generation and _reload_needed as a pair.
        self._state_lock = threading.Lock()
        self._loading = AtomicBoolean(False)
        self._lock = threading.RLock()
        self._loader_thread: Optional[int] = None
        self._metrics = EntryMetrics()

        registry.register(key, self)

    def __repr__(self) -> str:
        state = "loaded" if self.loaded else "unloaded"
        if self._reload_needed and self.loaded:
            state += ", reload pending"
        return f"CachedEntry(name={self.name!r}, key={self._key!r}, {state})"

    # ────────────────────────────────────────────────────────────────────────
    # Reads
    # ────────────────────────────────────────────────────────────────────────

    def get(self) -> T:
        """
        Return the cached value, loading or reloading it first if needed.

        Raises whatever the loader raises when this call performed the
        load. Never waits for a reload that another thread claimed.
        """
        if self._loader_thread == threading.get_ident():
            # The loader is reading its own entry.
            if self._value is _EMPTY:
                raise RecursiveLoadError(self)
            return self._value

        if self._value is _EMPTY:
            with self._lock:
                if self._value is _EMPTY:
                    self._load()

        if self._reload_needed:
            if self._loading.compare_and_set(False, True) or self._registry.is_loading_thread(self._key):
                self._load()

        return self._value

    __call__ = get

    def peek(self) -> Optional[T]:
        """Current value without triggering a load; None if never loaded."""
        value = self._value
        return None if value is _EMPTY else value

    # ────────────────────────────────────────────────────────────────────────
    # Loading
    # ────────────────────────────────────────────────────────────────────────

    def _load(self) -> None:
        with self._lock:
            try:
                if not self._reload_needed:
                    return

                threshold = self._slow_load_threshold()
                registered = self._registry.try_set_thread_loading(self._key)
                with self._state_lock:
                    generation = self._generation
                self._loader_thread = threading.get_ident()
                start = time.monotonic()
                try:
                    value = self._loader()
                except Exception:
                    self._metrics.record_failure()
                    logger.error(
                        f"Loader for {self.name} failed",
                        error_code="LOAD_FAILED",
                        exc_info=True,
                        key=repr(self._key),
                        first_load=self._value is _EMPTY,
                    )
                    raise
                finally:
                    self._loader_thread = None
                    if registered:
                        self._registry.unset_thread_loading(self._key)

                self._value = value
                with self._state_lock:
                    if self._generation == generation:
                        self._reload_needed = False

                duration_ms = (time.monotonic() - start) * 1000
                self._metrics.record_load(duration_ms)
                self._log_load(duration_ms, threshold)
            finally:
                self._loading.set(False)

    def _slow_load_threshold(self) -> float:
        setting = get_config().entry.slow_load_warning_ms
        try:
            return setting.get()
        except ValueError:
            logger.warning(
                "Ignoring invalid slow load threshold",
                error_code="INVALID_CONFIG",
                env_var=setting.env_var,
                default=setting.default,
            )
            return setting.default

    def _log_load(self, duration_ms: float, threshold: float) -> None:
        if duration_ms >= threshold:
            logger.warning(
                f"Slow load for {self.name}",
                operation="load",
                duration_ms=duration_ms,
                key=repr(self._key),
                threshold_ms=threshold,
            )
        else:
            logger.operation("load", duration_ms, entry=self.name, key=repr(self._key))

    def invalidate(self) -> None:
        """Mark the value for reload on next access. Called by the registry."""
        with self._state_lock:
            self._generation += 1
            self._reload_needed = True
        self._metrics.record_invalidation()

    # ────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ────────────────────────────────────────────────────────────────────────

    def close(self) -> bool:
        """Unregister from the registry. Returns False if already removed."""
        return self._registry.unregister(self._key, self)

    def __enter__(self) -> "CachedEntry[T]":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    # ────────────────────────────────────────────────────────────────────────
    # State
    # ────────────────────────────────────────────────────────────────────────

    @property
    def key(self) -> Hashable:
        return self._key

    @property
    def registry(self) -> "ObserverRegistry":
        return self._registry

    @property
    def loaded(self) -> bool:
        """True once a load has succeeded."""
        return self._value is not _EMPTY

    @property
    def reload_needed(self) -> bool:
        return self._reload_needed

    @property
    def load_in_progress(self) -> bool:
        return self._loading.get()

    @property
    def metrics(self) -> EntryMetrics:
        """Snapshot of this entry's counters."""
        return self._metrics.snapshot()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "key": repr(self._key),
            "loaded": self.loaded,
            "reload_needed": self._reload_needed,
            "load_in_progress": self.load_in_progress,
            "metrics": self._metrics.to_dict(),
        }


# ════════════════════════════════════════════════════════════════════════════
# DECORATOR
# ════════════════════════════════════════════════════════════════════════════


def cached_entry(
    registry: "ObserverRegistry",
    key: Hashable,
) -> Callable[[Callable[[], T]], CachedEntry[T]]:
    """
    Decorator turning a zero-argument function into a CachedEntry.

    Example:
        @cached_entry(registry, ROUTING_TABLE)
        def routes():
            return build_routes(load_settings())

        routes()                        # built once
        registry.refresh(ROUTING_TABLE)
        routes()                        # rebuilt
    """
    def decorator(func: Callable[[], T]) -> CachedEntry[T]:
        entry = CachedEntry(registry, key, func, name=func.__qualname__)
        entry.__doc__ = func.__doc__
        entry.__wrapped__ = func  # type: ignore[attr-defined]
        return entry
    return decorator


__all__ = [
    "CacheEntryError",
    "RecursiveLoadError",
    "EntryMetrics",
    "CachedEntry",
    "cached_entry",
]
