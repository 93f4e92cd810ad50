"""
Sync signal: a payload-free "something changed, re-read everything" channel.

Every successful storage write pulses a dedicated key three times
(set, remove, set). The value is the write time in epoch ms tagged with
the writing context's id. Storage listeners only fire when a value
actually changes, so the remove in the middle guarantees sibling contexts
see at least two events even when the new timestamp equals the old one.

Delivery to subscribers is decoupled from storage:

  MemoryBackend   SyncSignal.attach() hooks the backend's change events
  SqliteBackend   StorageWatcher watches the database file with watchdog
                  and re-reads the sync key when another process writes

Subscribers receive a SyncEvent and are expected to reload sessions, the
current board and the theme. They should not rely on the event's value.
"""
import logging
import sqlite3
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .schema import now_ms
from .storage import StorageEvent

logger = logging.getLogger(__name__)


@dataclass
class SyncEvent:
    """Wake-up notification. `value` is informational only."""
    key: str
    value: Optional[str]
    origin: str


class SyncSignal:
    """Pulses the sync key and fans notifications out to subscribers."""

    def __init__(self, backend, key: str):
        self.backend = backend
        self.key = key
        self.subscribers: List[Callable[[SyncEvent], None]] = []
        # Tags every pulse this context writes: "<ms>:<context id>"
        self.context_id = uuid.uuid4().hex[:12]
        self.last_written: Optional[str] = None
        self._attached = False

    def _stamp(self) -> str:
        return f"{now_ms()}:{self.context_id}"

    def is_own_value(self, value: Optional[str]) -> bool:
        """True if `value` was written by this context, whatever its timestamp."""
        return value is not None and value.rpartition(":")[2] == self.context_id

    def pulse(self) -> None:
        """Touch the sync key: set, remove, set. Never raises."""
        try:
            self.last_written = self._stamp()
            self.backend.set_item(self.key, self.last_written)
            self.backend.remove_item(self.key)
            self.last_written = self._stamp()
            self.backend.set_item(self.key, self.last_written)
        except (sqlite3.Error, OSError) as e:
            logger.warning("Sync pulse failed on %s: %s", self.key, e)

    def subscribe(self, callback: Callable[[SyncEvent], None]) -> None:
        """Register a callback for sync notifications."""
        if callback not in self.subscribers:
            self.subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[SyncEvent], None]) -> None:
        if callback in self.subscribers:
            self.subscribers.remove(callback)

    def notify(self, event: SyncEvent) -> None:
        """Deliver an event to all subscribers. One failing callback doesn't stop the rest."""
        for callback in list(self.subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Error in sync callback %r", callback)

    def attach(self) -> bool:
        """Hook change events from a backend that publishes them (MemoryBackend)."""
        if self._attached:
            return True
        add_listener = getattr(self.backend, "add_listener", None)
        if add_listener is None:
            return False
        add_listener(self._on_storage_event)
        self._attached = True
        return True

    def detach(self) -> None:
        if not self._attached:
            return
        self.backend.remove_listener(self._on_storage_event)
        self._attached = False

    def _on_storage_event(self, event: StorageEvent) -> None:
        if event.key != self.key:
            return
        self.notify(SyncEvent(key=event.key, value=event.new_value, origin=event.origin))


# ── Cross-process watcher (SQLite substrate) ────────────────────────────────


class _DatabaseFileHandler(FileSystemEventHandler):
    """Forwards filesystem events on the database files to the watcher."""

    def __init__(self, watcher: "StorageWatcher"):
        self.watcher = watcher

    def on_any_event(self, fs_event):
        if fs_event.is_directory:
            return
        paths = [fs_event.src_path, getattr(fs_event, "dest_path", "")]
        if any(p and Path(p).name in self.watcher.file_names for p in paths):
            self.watcher.schedule_check()


class StorageWatcher:
    """
    Watches a SqliteBackend's file and turns foreign writes into SyncEvents.

    A check re-reads the sync key; it notifies only when the value moved and
    isn't one this context wrote itself. Filesystem bursts are collapsed with
    a trailing debounce so the check runs after the last sub-write lands.
    """

    def __init__(self, backend, signal: SyncSignal, debounce_ms: int = 150):
        self.backend = backend
        self.signal = signal
        self.debounce_ms = debounce_ms
        db = Path(backend.db_path).resolve()
        self.directory = db.parent
        self.file_names = {db.name, f"{db.name}-wal", f"{db.name}-journal"}
        self._last_seen = self._read_sync()
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._observer: Optional[Observer] = None

    def _read_sync(self) -> Optional[str]:
        try:
            return self.backend.get_item(self.signal.key)
        except sqlite3.Error as e:
            logger.debug("Sync key unreadable during check: %s", e)
            return None

    def schedule_check(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce_ms / 1000, self.check)
            self._timer.daemon = True
            self._timer.start()

    def check(self) -> bool:
        """Compare the sync key with the last value seen. Returns True if notified."""
        current = self._read_sync()
        if current is None or current == self._last_seen:
            return False
        self._last_seen = current
        if self.signal.is_own_value(current):
            return False
        logger.debug("Foreign write detected on %s (%s)", self.signal.key, current)
        self.signal.notify(SyncEvent(key=self.signal.key, value=current, origin="external"))
        return True

    def start(self) -> None:
        if self._observer is not None:
            return
        self._observer = Observer()
        self._observer.schedule(_DatabaseFileHandler(self), str(self.directory), recursive=False)
        self._observer.start()
        logger.info("Watching %s for changes", self.directory)

    def stop(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
