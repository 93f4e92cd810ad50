"""
One execution context on top of the stores (a browser tab, a CLI process).

ClientContext keeps what a view needs: the selected session, the cached
session list, the selected user's columns and tasks, and the theme. It
subscribes to the sync signal and, on any pulse from a sibling context,
re-reads all of it. If the selected session has disappeared meanwhile
(logged out elsewhere), the selection and the cached board are cleared;
that is not an error.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from .board import BoardStore, columns_sorted
from .config import Config
from .identity import IdentityStore
from .schema import Column, Session, Task, Theme, User
from .sessions import SessionStore
from .storage import MemoryBackend, SqliteBackend, StorageAdapter, StorageKeys
from .sync import StorageWatcher, SyncEvent, SyncSignal
from .theme import ThemeStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """All stores for one context, sharing one adapter and one signal."""
    config: Config
    backend: object
    signal: SyncSignal
    storage: StorageAdapter
    boards: BoardStore
    identity: IdentityStore
    sessions: SessionStore
    theme: ThemeStore

    def watcher(self) -> Optional[StorageWatcher]:
        """File watcher for cross-process sync. None for in-memory backends."""
        if not isinstance(self.backend, SqliteBackend):
            return None
        return StorageWatcher(self.backend, self.signal, self.config.watch_debounce_ms)


def open_services(config: Config, backend=None, origin: str = "main") -> Services:
    """Wire the stores over `backend` (defaults to SQLite at config.db_path)."""
    if backend is None:
        backend = SqliteBackend(config.db_path, origin=origin)
    signal = SyncSignal(backend, f"{config.key_prefix}{StorageKeys.SYNC}")
    signal.attach()
    storage = StorageAdapter(backend, signal=signal, prefix=config.key_prefix)
    boards = BoardStore(storage)
    return Services(
        config=config,
        backend=backend,
        signal=signal,
        storage=storage,
        boards=boards,
        identity=IdentityStore(storage, boards, salt=config.password_salt),
        sessions=SessionStore(
            storage,
            secret=config.token_secret,
            ttl_secs=config.token_ttl_secs,
            enforce_expiry=config.enforce_token_expiry,
        ),
        theme=ThemeStore(storage),
    )


def open_memory_services(config: Optional[Config] = None, backend: Optional[MemoryBackend] = None,
                         origin: str = "main") -> Services:
    """Services over a MemoryBackend (a fork of `backend` if given)."""
    config = config or Config()
    if backend is None:
        backend = MemoryBackend(origin=origin)
    elif backend.origin != origin:
        backend = backend.fork(origin)
    return open_services(config, backend=backend)


class ClientContext:
    """View state for one context, kept in step with storage."""

    def __init__(self, services: Services):
        self.services = services
        self.current_session_id: Optional[str] = None
        self.sessions: List[Session] = []
        self.columns: List[Column] = []
        self.tasks: List[Task] = []
        self.theme: Theme = Theme.LIGHT
        self.sync_count = 0
        services.signal.subscribe(self.on_sync)

    def close(self) -> None:
        self.services.signal.unsubscribe(self.on_sync)

    # ── lifecycle ───────────────────────────────────────────────────────────

    def startup(self) -> None:
        """Load theme and sessions; select the session if there is exactly one."""
        self.theme = self.services.theme.get()
        self.sessions = self.services.sessions.list_all()
        if len(self.sessions) == 1:
            self._select(self.sessions[0])

    def current_session(self) -> Optional[Session]:
        if self.current_session_id is None:
            return None
        return self.services.sessions.find_by_id(self.current_session_id)

    def _select(self, session: Session) -> None:
        self.current_session_id = session.id
        self._load_board(session.user_id)

    def _load_board(self, user_id: str) -> None:
        board = self.services.boards.get_or_create(user_id)
        self.columns = columns_sorted(board)
        self.tasks = list(board.tasks)

    def _clear_board(self) -> None:
        self.current_session_id = None
        self.columns = []
        self.tasks = []

    def _open_session(self, user: User) -> Session:
        session = self.services.sessions.create(user.id, user.username)
        self.sessions = self.services.sessions.list_all()
        self._select(session)
        return session

    # ── auth ────────────────────────────────────────────────────────────────

    def signup(self, username: str, email: str, password: str) -> Session:
        """Register and log straight in. DuplicateUser propagates to the caller."""
        if not username or not email or not password:
            raise ValueError("All fields are required")
        user = self.services.identity.register(username, email, password)
        return self._open_session(user)

    def login(self, username: str, password: str) -> Session:
        """Open a new session. InvalidCredentials propagates to the caller."""
        if not username or not password:
            raise ValueError("Username and password are required")
        user = self.services.identity.authenticate(username, password)
        return self._open_session(user)

    def logout(self) -> bool:
        """End the selected session only. Other sessions and the board survive."""
        if self.current_session_id is None:
            return False
        self.services.sessions.delete(self.current_session_id)
        self._clear_board()
        self.sessions = self.services.sessions.list_all()
        return True

    def logout_all(self) -> None:
        self.services.sessions.delete_all()
        self._clear_board()
        self.sessions = []

    def switch_session(self, session_id: str) -> bool:
        session = self.services.sessions.find_by_id(session_id)
        if session is None:
            logger.debug("switch_session: %s is gone", session_id)
            self.sessions = self.services.sessions.list_all()
            return False
        self._select(session)
        return True

    # ── board ───────────────────────────────────────────────────────────────

    def _user_id(self) -> Optional[str]:
        session = self.current_session()
        return session.user_id if session else None

    def add_column(self, title: str) -> Optional[Column]:
        user_id = self._user_id()
        if not title.strip() or user_id is None:
            return None
        column = self.services.boards.add_column(user_id, title)
        self._load_board(user_id)
        return column

    def rename_column(self, column_id: str, title: str) -> Optional[Column]:
        user_id = self._user_id()
        if not title.strip() or user_id is None:
            return None
        column = self.services.boards.rename_column(user_id, column_id, title)
        self._load_board(user_id)
        return column

    def delete_column(self, column_id: str) -> bool:
        user_id = self._user_id()
        if user_id is None:
            return False
        removed = self.services.boards.delete_column(user_id, column_id)
        self._load_board(user_id)
        return removed

    def add_task(self, column_id: str, title: str, description: str = "",
                 priority="medium") -> Optional[Task]:
        user_id = self._user_id()
        if not title.strip() or user_id is None:
            return None
        task = self.services.boards.add_task(user_id, column_id, title, description, priority, 0)
        self._load_board(user_id)
        return task

    def update_progress(self, task_id: str, progress: int) -> Optional[Task]:
        user_id = self._user_id()
        if user_id is None:
            return None
        task = self.services.boards.update_task(user_id, task_id, {"progress": progress})
        self._load_board(user_id)
        return task

    def move_task(self, task_id: str, column_id: str) -> Optional[Task]:
        """Drop handler: reassign a task to another column."""
        user_id = self._user_id()
        if user_id is None:
            return None
        task = self.services.boards.move_task(user_id, task_id, column_id)
        self._load_board(user_id)
        return task

    def delete_task(self, task_id: str) -> bool:
        user_id = self._user_id()
        if user_id is None:
            return False
        removed = self.services.boards.delete_task(user_id, task_id)
        self._load_board(user_id)
        return removed

    def toggle_theme(self) -> Theme:
        self.theme = self.services.theme.toggle()
        return self.theme

    # ── sync ────────────────────────────────────────────────────────────────

    def on_sync(self, event: SyncEvent) -> None:
        """Pull everything again after a sibling context wrote."""
        self.sync_count += 1
        self.sessions = self.services.sessions.list_all()
        if self.current_session_id is not None:
            current = next((s for s in self.sessions if s.id == self.current_session_id), None)
            if current is None:
                logger.info("Session %s ended elsewhere", self.current_session_id)
                self._clear_board()
            else:
                self._load_board(current.user_id)
        self.theme = self.services.theme.get()
