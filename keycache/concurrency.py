"""
keycache Thread-Safety Primitives

Small lock-backed building blocks shared by the entry and registry modules:

1. AtomicBoolean for claiming a one-at-a-time role (compare-and-set)
2. KeyedLocks for per-key critical sections created on demand

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import threading
from typing import Dict, Hashable, List


# =============================================================================
# ATOMIC VALUES
# =============================================================================

class AtomicBoolean:
    """Thread-safe boolean flag."""

    def __init__(self, initial: bool = False):
        self._value = initial
        self._lock = threading.Lock()

    def get(self) -> bool:
        """Get current value."""
        with self._lock:
            return self._value

    def set(self, value: bool) -> None:
        """Atomically set the flag."""
        with self._lock:
            self._value = value

    def compare_and_set(self, expected: bool, new_value: bool) -> bool:
        """Atomically set value if it equals expected."""
        with self._lock:
            if self._value == expected:
                self._value = new_value
                return True
            return False

    def __bool__(self) -> bool:
        return self.get()

    def __repr__(self) -> str:
        return f"AtomicBoolean({self.get()})"


# =============================================================================
# PER-KEY LOCKS
# =============================================================================

class KeyedLocks:
    """
    Lazily created lock per hashable key.

    The table itself is guarded by a global lock; the per-key locks are
    reentrant so a holder may call back into code that takes the same key.
    """

    def __init__(self):
        self._locks: Dict[Hashable, threading.RLock] = {}
        self._global_lock = threading.Lock()

    def get(self, key: Hashable) -> threading.RLock:
        """Get or create the lock for the given key."""
        with self._global_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    def clear(self) -> None:
        with self._global_lock:
            self._locks.clear()

    def keys(self) -> List[Hashable]:
        with self._global_lock:
            return list(self._locks.keys())

    def __len__(self) -> int:
        with self._global_lock:
            return len(self._locks)


__all__ = [
    "AtomicBoolean",
    "KeyedLocks",
]
