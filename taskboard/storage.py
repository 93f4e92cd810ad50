"""
Key-value storage for the board (string keys, JSON values).

Two substrates share one small contract (get_item / set_item / remove_item /
keys):

  MemoryBackend  - dict-backed, can be forked into several origins that see
                   the same data; change events reach the *other* origins
  SqliteBackend  - a single kv_store table in a SQLite file, shared by every
                   process that opens the same path

StorageAdapter sits on top and does the JSON (de)serialization. Reads never
raise: a missing, unreadable or malformed value yields the caller's default.
Writes raise StorageUnavailable when the substrate refuses them, then pulse
the sync signal so sibling contexts re-read.
"""
import errno
import json
import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .errors import StorageUnavailable

logger = logging.getLogger(__name__)


class StorageKeys:
    """Logical key names. The adapter prepends its prefix to each."""
    USERS = "users"
    SESSIONS = "sessions"
    BOARDS = "boards"
    SYNC = "sync"
    THEME = "theme"

    ALL = (USERS, SESSIONS, BOARDS, SYNC, THEME)


@dataclass
class StorageEvent:
    """A change to one key, as seen by a context other than the writer."""
    key: str
    old_value: Optional[str]
    new_value: Optional[str]
    origin: str


# ── In-memory substrate ─────────────────────────────────────────────────────


class _MemoryArea:
    """Data and listeners shared by every fork of a MemoryBackend."""

    def __init__(self, data: Optional[Dict[str, str]] = None,
                 quota_bytes: Optional[int] = None):
        self.data: Dict[str, str] = dict(data or {})
        self.quota_bytes = quota_bytes
        self.listeners: List[tuple] = []  # (origin, callback)
        self.lock = threading.RLock()

    def size(self) -> int:
        return sum(len(k) + len(v) for k, v in self.data.items())


class MemoryBackend:
    """
    Dict-backed substrate.

    fork() returns another handle on the same data with a different origin,
    which is how tests stand up two "tabs" side by side. Listeners are only
    called for changes made through a handle with a different origin, and
    only when the stored value actually changes.
    """

    def __init__(self, data: Optional[Dict[str, str]] = None, origin: str = "main",
                 quota_bytes: Optional[int] = None, _area: Optional[_MemoryArea] = None):
        self.origin = origin
        self._area = _area or _MemoryArea(data, quota_bytes)

    def fork(self, origin: str) -> "MemoryBackend":
        return MemoryBackend(origin=origin, _area=self._area)

    def add_listener(self, callback: Callable[[StorageEvent], None]) -> None:
        with self._area.lock:
            self._area.listeners.append((self.origin, callback))

    def remove_listener(self, callback: Callable[[StorageEvent], None]) -> None:
        with self._area.lock:
            self._area.listeners = [
                (o, cb) for o, cb in self._area.listeners
                if not (o == self.origin and cb == callback)
            ]

    def get_item(self, key: str) -> Optional[str]:
        with self._area.lock:
            return self._area.data.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._area.lock:
            old = self._area.data.get(key)
            quota = self._area.quota_bytes
            if quota is not None:
                projected = self._area.size() - len(old or "") + len(value)
                if old is None:
                    projected += len(key)
                if projected > quota:
                    raise OSError(errno.ENOSPC, "storage quota exceeded", key)
            self._area.data[key] = value
        if old != value:
            self._fire(StorageEvent(key, old, value, self.origin))

    def remove_item(self, key: str) -> None:
        with self._area.lock:
            old = self._area.data.pop(key, None)
        if old is not None:
            self._fire(StorageEvent(key, old, None, self.origin))

    def keys(self) -> List[str]:
        with self._area.lock:
            return list(self._area.data)

    def _fire(self, event: StorageEvent) -> None:
        with self._area.lock:
            targets = [cb for o, cb in self._area.listeners if o != self.origin]
        for callback in targets:
            try:
                callback(event)
            except Exception:
                logger.exception("Storage listener failed for key %s", event.key)


# ── SQLite substrate ────────────────────────────────────────────────────────


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection in WAL mode so readers in other processes aren't blocked."""
    conn = sqlite3.connect(db_path, timeout=5.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class SqliteBackend:
    """Substrate backed by a kv_store table; shared across processes."""

    def __init__(self, db_path: str, origin: str = "main"):
        self.db_path = db_path
        self.origin = origin
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()

    def get_item(self, key: str) -> Optional[str]:
        with _connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else None

    def set_item(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with _connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value, now),
            )
            conn.commit()

    def remove_item(self, key: str) -> None:
        with _connect(self.db_path) as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()

    def keys(self) -> List[str]:
        with _connect(self.db_path) as conn:
            rows = conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [r["key"] for r in rows]


# ── JSON adapter ────────────────────────────────────────────────────────────


_SUBSTRATE_ERRORS = (sqlite3.Error, OSError)


class StorageAdapter:
    """JSON read/write over a substrate, with an optional sync signal."""

    def __init__(self, backend, signal=None, prefix: str = ""):
        self.backend = backend
        self.signal = signal
        self.prefix = prefix

    def key(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def read(self, name: str, default: Any) -> Any:
        """Stored value for `name`, or `default` if absent/unreadable/corrupt."""
        key = self.key(name)
        try:
            raw = self.backend.get_item(key)
        except _SUBSTRATE_ERRORS as e:
            logger.warning("Storage read failed for %s: %s", key, e)
            return default
        if not raw:
            return default
        try:
            value = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Ignoring corrupt value under %s", key)
            return default
        if value is None:
            return default
        if default is not None and not isinstance(value, type(default)):
            logger.warning(
                "Ignoring %s under %s (expected %s)",
                type(value).__name__, key, type(default).__name__,
            )
            return default
        return value

    def write(self, name: str, value: Any) -> None:
        """Persist `value` under `name`, overwriting, then pulse the sync signal."""
        key = self.key(name)
        payload = json.dumps(value)
        try:
            self.backend.set_item(key, payload)
        except _SUBSTRATE_ERRORS as e:
            raise StorageUnavailable(f"Cannot write {key}: {e}") from e
        if self.signal is not None:
            self.signal.pulse()

    def remove(self, name: str) -> None:
        key = self.key(name)
        try:
            self.backend.remove_item(key)
        except _SUBSTRATE_ERRORS as e:
            raise StorageUnavailable(f"Cannot remove {key}: {e}") from e
