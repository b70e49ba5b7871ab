"""
keycache: key-refreshable lazy values

A small in-process caching primitive: values computed lazily on first access
and recomputed after any caller refreshes the key they were registered under.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                               KEYCACHE                                   │
    │                                                                          │
    │  CORE                                                                    │
    │    entry.py         CachedEntry: lazy load, non-blocking reload          │
    │    registry.py      ObserverRegistry: key → entries, refresh fan-out,    │
    │                     per-key reloading-thread markers                     │
    │    concurrency.py   AtomicBoolean, KeyedLocks                            │
    │                                                                          │
    │  AMBIENT                                                                 │
    │    config.py        YAML + KEYCACHE_* environment configuration          │
    │    observability.py Structured JSON / text logging                       │
    │    cli.py           keycache demo | config                               │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Core Concepts
─────────────

    Key: Any hashable object grouping entries that must be invalidated
    together, e.g. the settings object several cached values derive from.

    Entry: One lazily computed value. Reads never wait for a reload that
    another thread is performing; they return the previous value instead.

    Refresh: registry.refresh(key) flags every entry under key. The next
    read of each entry recomputes it.

Copyright © 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

__version__ = "0.2.0"


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import keycache modules on first access."""

    if name in ("CachedEntry", "EntryMetrics", "CacheEntryError",
                "RecursiveLoadError", "cached_entry"):
        from keycache import entry
        return getattr(entry, name)

    if name == "ObserverRegistry":
        from keycache import registry
        return getattr(registry, name)

    if name in ("AtomicBoolean", "KeyedLocks"):
        from keycache import concurrency
        return getattr(concurrency, name)

    if name in ("ConfigError", "ValidationError", "KeyCacheConfig",
                "ConfigManager", "get_config", "get_config_manager"):
        from keycache import config
        return getattr(config, name)

    if name in ("configure_logging", "get_logger", "Component"):
        from keycache import observability
        return getattr(observability, name)

    raise AttributeError(f"module 'keycache' has no attribute '{name}'")


__all__ = [
    # Version info
    "__version__",
    # Core
    "CachedEntry",
    "EntryMetrics",
    "CacheEntryError",
    "RecursiveLoadError",
    "cached_entry",
    "ObserverRegistry",
    # Concurrency
    "AtomicBoolean",
    "KeyedLocks",
    # Config
    "ConfigError",
    "ValidationError",
    "KeyCacheConfig",
    "ConfigManager",
    "get_config",
    "get_config_manager",
    # Logging
    "configure_logging",
    "get_logger",
    "Component",
]
