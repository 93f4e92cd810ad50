"""
Tests for the key-value substrates and the JSON storage adapter.
"""
import json
import sqlite3

import pytest

from taskboard.errors import StorageUnavailable
from taskboard.storage import MemoryBackend, SqliteBackend, StorageAdapter, StorageKeys


class _CountingSignal:
    def __init__(self):
        self.pulses = 0

    def pulse(self):
        self.pulses += 1


class _BrokenBackend:
    """Substrate whose every call fails, like disabled storage."""

    def get_item(self, key):
        raise sqlite3.OperationalError("disk I/O error")

    def set_item(self, key, value):
        raise sqlite3.OperationalError("database is locked")

    def remove_item(self, key):
        raise sqlite3.OperationalError("database is locked")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Adapter
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_read_missing_key_returns_default():
    adapter = StorageAdapter(MemoryBackend())
    assert adapter.read(StorageKeys.USERS, {}) == {}
    assert adapter.read(StorageKeys.SESSIONS, []) == []


def test_write_then_read_returns_value():
    adapter = StorageAdapter(MemoryBackend(), prefix="kanban_")
    adapter.write(StorageKeys.THEME, "dark")
    assert adapter.read(StorageKeys.THEME, "light") == "dark"
    assert adapter.backend.get_item("kanban_theme") == json.dumps("dark")


def test_write_overwrites_previous_value():
    adapter = StorageAdapter(MemoryBackend())
    adapter.write("boards", {"u1": {"columns": []}})
    adapter.write("boards", {"u2": {"columns": []}})
    assert adapter.read("boards", {}) == {"u2": {"columns": []}}


def test_corrupt_value_falls_back_to_default():
    backend = MemoryBackend({"users": "{not json"})
    adapter = StorageAdapter(backend)
    assert adapter.read("users", {"fallback": True}) == {"fallback": True}


def test_wrong_shape_falls_back_to_default():
    backend = MemoryBackend({"sessions": json.dumps({"not": "a list"})})
    adapter = StorageAdapter(backend)
    assert adapter.read("sessions", []) == []


def test_null_value_falls_back_to_default():
    backend = MemoryBackend({"theme": "null"})
    assert StorageAdapter(backend).read("theme", "light") == "light"


def test_write_pulses_signal():
    signal = _CountingSignal()
    adapter = StorageAdapter(MemoryBackend(), signal=signal)
    adapter.write("theme", "dark")
    adapter.write("theme", "light")
    assert signal.pulses == 2


def test_unreadable_substrate_returns_default():
    adapter = StorageAdapter(_BrokenBackend())
    assert adapter.read("users", {}) == {}


def test_unwritable_substrate_raises_storage_unavailable():
    signal = _CountingSignal()
    adapter = StorageAdapter(_BrokenBackend(), signal=signal)
    with pytest.raises(StorageUnavailable):
        adapter.write("users", {})
    assert signal.pulses == 0


def test_quota_exhaustion_raises_storage_unavailable():
    adapter = StorageAdapter(MemoryBackend(quota_bytes=32))
    adapter.write("theme", "dark")
    with pytest.raises(StorageUnavailable):
        adapter.write("boards", {"u": "x" * 100})
    assert adapter.read("boards", {}) == {}
    assert adapter.read("theme", "light") == "dark"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Memory backend events
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestMemoryBackend:
    def test_forks_share_data(self):
        tab1 = MemoryBackend(origin="tab-1")
        tab2 = tab1.fork("tab-2")
        tab1.set_item("k", "v")
        assert tab2.get_item("k") == "v"

    def test_events_reach_other_origins_only(self):
        tab1 = MemoryBackend(origin="tab-1")
        tab2 = tab1.fork("tab-2")
        seen1, seen2 = [], []
        tab1.add_listener(seen1.append)
        tab2.add_listener(seen2.append)

        tab1.set_item("k", "v")

        assert seen1 == []
        assert len(seen2) == 1
        assert seen2[0].key == "k"
        assert seen2[0].old_value is None
        assert seen2[0].new_value == "v"
        assert seen2[0].origin == "tab-1"

    def test_unchanged_value_fires_nothing(self):
        tab1 = MemoryBackend(origin="tab-1")
        tab2 = tab1.fork("tab-2")
        seen = []
        tab2.add_listener(seen.append)
        tab1.set_item("k", "v")
        tab1.set_item("k", "v")
        assert len(seen) == 1

    def test_remove_fires_with_none(self):
        tab1 = MemoryBackend({"k": "v"}, origin="tab-1")
        tab2 = tab1.fork("tab-2")
        seen = []
        tab2.add_listener(seen.append)
        tab1.remove_item("k")
        tab1.remove_item("k")  # already gone, no event
        assert [e.new_value for e in seen] == [None]

    def test_failing_listener_does_not_block_others(self):
        tab1 = MemoryBackend(origin="tab-1")
        tab2 = tab1.fork("tab-2")
        tab3 = tab1.fork("tab-3")
        seen = []

        def boom(event):
            raise RuntimeError("listener bug")

        tab2.add_listener(boom)
        tab3.add_listener(seen.append)
        tab1.set_item("k", "v")
        assert len(seen) == 1

    def test_remove_listener(self):
        tab1 = MemoryBackend(origin="tab-1")
        tab2 = tab1.fork("tab-2")
        seen = []
        tab2.add_listener(seen.append)
        tab2.remove_listener(seen.append)
        tab1.set_item("k", "v")
        assert seen == []


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SQLite backend
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_sqlite_backend_set_get_remove(db_path):
    backend = SqliteBackend(db_path)
    assert backend.get_item("k") is None
    backend.set_item("k", "v1")
    backend.set_item("k", "v2")
    assert backend.get_item("k") == "v2"
    assert backend.keys() == ["k"]
    backend.remove_item("k")
    assert backend.get_item("k") is None


def test_sqlite_backend_shared_between_handles(db_path):
    """Two handles on one file see each other's writes (separate processes in practice)."""
    first = SqliteBackend(db_path, origin="proc-1")
    second = SqliteBackend(db_path, origin="proc-2")
    StorageAdapter(first).write("theme", "dark")
    assert StorageAdapter(second).read("theme", "light") == "dark"


def test_sqlite_backend_creates_parent_dirs(tmp_path):
    path = tmp_path / "nested" / "dir" / "board.db"
    SqliteBackend(str(path))
    assert path.exists()
