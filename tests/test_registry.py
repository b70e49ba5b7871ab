"""
Tests for ObserverRegistry

Registration by key, refresh fan-out, key independence and the per-key
reloading-thread markers.
"""

import threading

import pytest

from keycache.registry import ObserverRegistry


def _loader():
    return object()


class ConfigSource:
    """Stand-in for an application object used as a refresh key."""

    def __init__(self, name):
        self.name = name


class TestRegistration:
    """register / unregister / remove_key."""

    def test_entries_grouped_by_key(self, registry):
        a = registry.entry("settings", _loader)
        b = registry.entry("settings", _loader)
        c = registry.entry("routes", _loader)

        assert registry.entries("settings") == [a, b]
        assert registry.entries("routes") == [c]
        assert sorted(registry.keys()) == ["routes", "settings"]
        assert len(registry) == 2

    def test_object_keys_use_identity_semantics(self, registry):
        first, second = ConfigSource("db"), ConfigSource("db")
        a = registry.entry(first, _loader)
        registry.entry(second, _loader)

        assert registry.entries(first) == [a]
        assert len(registry) == 2

    def test_unregister_by_identity(self, registry):
        a = registry.entry("settings", _loader)
        b = registry.entry("settings", _loader)

        assert registry.unregister("settings", a)
        assert registry.entries("settings") == [b]

    def test_unregister_absent_entry_is_noop(self, registry):
        other = ObserverRegistry()
        stray = other.entry("settings", _loader)
        registry.entry("settings", _loader)

        assert not registry.unregister("settings", stray)
        assert not registry.unregister("missing", stray)
        assert len(registry.entries("settings")) == 1

    def test_unregister_last_entry_drops_key(self, registry):
        a = registry.entry("settings", _loader)

        registry.unregister("settings", a)

        assert "settings" not in registry

    def test_remove_key(self, registry):
        a = registry.entry("settings", _loader)
        registry.entry("settings", _loader)
        a.get()

        assert registry.remove_key("settings") == 2
        assert registry.remove_key("settings") == 0
        assert registry.entries("settings") == []

        registry.refresh("settings")
        assert not a.reload_needed

    def test_clear(self, registry):
        registry.entry("settings", _loader)
        registry.entry("routes", _loader)

        registry.clear()

        assert len(registry) == 0

    def test_concurrent_registration(self, registry):
        errors = []

        def worker(i):
            try:
                for j in range(50):
                    entry = registry.entry(f"key-{i % 4}", _loader)
                    if j % 2:
                        registry.unregister(entry.key, entry)
                    registry.refresh(f"key-{(i + 1) % 4}")
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert not errors, f"Concurrent register/refresh errors: {errors}"
        assert sum(len(registry.entries(k)) for k in registry.keys()) == 8 * 25


class TestRefresh:
    """refresh(key) only invalidates entries under key."""

    def test_refresh_marks_every_entry_under_key(self, registry):
        entries = [registry.entry("settings", _loader) for _ in range(3)]
        for e in entries:
            e.get()

        assert registry.refresh("settings") == 3
        assert all(e.reload_needed for e in entries)

    def test_unrelated_keys_are_independent(self, registry):
        settings = registry.entry("settings", _loader)
        routes = registry.entry("routes", _loader)
        settings.get()
        routes.get()

        registry.refresh("settings")

        assert settings.reload_needed
        assert not routes.reload_needed

    def test_refresh_unknown_key_is_noop(self, registry):
        assert registry.refresh("never-registered") == 0
        assert "never-registered" not in registry

    def test_unregister_stops_future_refresh(self, registry):
        entry = registry.entry("settings", _loader)
        entry.get()

        registry.unregister("settings", entry)
        registry.refresh("settings")

        assert not entry.reload_needed

    def test_refresh_does_not_run_loaders(self, registry):
        calls = []
        entry = registry.entry("settings", lambda: calls.append(1) or len(calls))
        entry.get()

        registry.refresh("settings")
        registry.refresh("settings")

        assert len(calls) == 1
        assert entry.get() == 2

    def test_refresh_does_not_wait_for_inflight_reload(self, registry):
        started = threading.Event()
        release = threading.Event()
        gated = {"on": False}

        def loader():
            if gated["on"]:
                started.set()
                release.wait(5)
            return object()

        entry = registry.entry("settings", loader)
        entry.get()
        gated["on"] = True
        registry.refresh("settings")

        reloader = threading.Thread(target=entry.get)
        reloader.start()
        assert started.wait(5)

        done = threading.Event()
        refresher = threading.Thread(target=lambda: (registry.refresh("settings"), done.set()))
        refresher.start()
        assert done.wait(2), "refresh blocked on an in-flight reload"

        release.set()
        reloader.join(timeout=5)
        refresher.join(timeout=5)

    def test_refresh_all(self, registry):
        settings = registry.entry("settings", _loader)
        routes = registry.entry("routes", _loader)
        settings.get()
        routes.get()

        assert registry.refresh_all() == 2
        assert settings.reload_needed and routes.reload_needed


class TestLoadingMarkers:
    """Per-key reloading-thread markers."""

    def test_first_claim_wins(self, registry):
        assert registry.try_set_thread_loading("settings")
        assert not registry.try_set_thread_loading("settings")
        assert registry.is_loading_thread("settings")
        assert registry.loading_thread("settings") == threading.get_ident()

    def test_unset_releases_marker(self, registry):
        registry.try_set_thread_loading("settings")
        registry.unset_thread_loading("settings")

        assert not registry.is_loading_thread("settings")
        assert registry.loading_thread("settings") is None
        assert registry.try_set_thread_loading("settings")

    def test_unset_leaves_marker_held_by_other_thread(self, registry):
        claimed = threading.Event()
        done = threading.Event()
        holder = {}

        def claim():
            holder["ident"] = threading.get_ident()
            registry.try_set_thread_loading("settings")
            claimed.set()
            done.wait(5)
            registry.unset_thread_loading("settings")

        t = threading.Thread(target=claim)
        t.start()
        assert claimed.wait(5)

        registry.unset_thread_loading("settings")
        assert registry.loading_thread("settings") == holder["ident"]

        done.set()
        t.join(timeout=5)
        assert registry.loading_thread("settings") is None

    def test_clear_keeps_inflight_marker(self, registry):
        """A load in flight across clear() keeps its marker and releases only its own."""
        observed = {}

        def loader():
            registry.clear()
            observed["holder"] = registry.loading_thread("settings")
            return 1

        entry = registry.entry("settings", loader)
        assert entry.get() == 1

        assert observed["holder"] == threading.get_ident()
        assert registry.loading_thread("settings") is None
        assert "settings" not in registry

    def test_markers_are_per_key(self, registry):
        assert registry.try_set_thread_loading("settings")
        assert registry.try_set_thread_loading("routes")
        assert not registry.is_loading_thread("other")

    def test_other_thread_is_not_loading_thread(self, registry):
        registry.try_set_thread_loading("settings")
        seen = {}

        def probe():
            seen["is_loading"] = registry.is_loading_thread("settings")
            seen["claimed"] = registry.try_set_thread_loading("settings")

        t = threading.Thread(target=probe)
        t.start()
        t.join(timeout=5)

        assert seen == {"is_loading": False, "claimed": False}

    def test_marker_held_only_during_load(self, registry):
        observed = {}

        def loader():
            observed["holder"] = registry.loading_thread("settings")
            return 1

        entry = registry.entry("settings", loader)
        entry.get()

        assert observed["holder"] == threading.get_ident()
        assert registry.loading_thread("settings") is None

    def test_marker_not_taken_over_by_nested_load(self, registry):
        """An inner load under a held key leaves the outer holder's marker in place."""
        holders = []
        inner = registry.entry("settings", lambda: holders.append(registry.loading_thread("settings")) or 1)
        outer = registry.entry("settings", lambda: inner.get() + 1)

        assert outer.get() == 2
        assert holders == [threading.get_ident()]
        assert registry.loading_thread("settings") is None


class TestIntrospection:

    def test_to_dict(self, registry):
        registry.entry("settings", _loader)
        registry.entry("settings", _loader)
        registry.entry("routes", _loader)

        assert registry.to_dict() == {"name": "test", "keys": 2, "entries": 3, "loading": 0}

    def test_entries_returns_snapshot(self, registry):
        registry.entry("settings", _loader)
        snapshot = registry.entries("settings")
        registry.entry("settings", _loader)

        assert len(snapshot) == 1

    def test_unhashable_key_rejected(self, registry):
        with pytest.raises(TypeError):
            registry.entry(["not", "hashable"], _loader)
