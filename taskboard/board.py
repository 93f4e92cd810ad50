"""
Per-user board store (columns + tasks).

Every mutator reads the whole boards map, changes one board in memory and
writes the whole map back. There is no field-level persistence, so a
reader never observes half of an operation.

Missing ids are tolerated: renaming, updating or deleting something that
isn't there is a silent no-op, which keeps the caller resilient to another
context having already removed it.
"""
import logging
from typing import Any, Dict, List, Optional

from .errors import RevisionConflict
from .schema import Board, Column, Task, Priority, clamp_progress, make_id, now_ms, to_int
from .storage import StorageAdapter, StorageKeys

logger = logging.getLogger(__name__)

# Partial-update keys accepted by update_task, in either spelling
_TASK_FIELDS = {
    "column_id": "column_id",
    "columnId": "column_id",
    "title": "title",
    "description": "description",
    "priority": "priority",
    "progress": "progress",
    "order": "order",
    "created_at": "created_at",
    "createdAt": "created_at",
}

_COLUMN_FIELDS = {"title", "order"}


def columns_sorted(board: Board) -> List[Column]:
    """Columns in display order. Orders can have gaps after deletions."""
    return sorted(board.columns, key=lambda c: c.order)


def tasks_in_column(board: Board, column_id: str) -> List[Task]:
    """Tasks of one column in insertion order."""
    return sorted(
        (t for t in board.tasks if t.column_id == column_id),
        key=lambda t: (t.order, t.created_at),
    )


class BoardStore:
    """Boards keyed by user id, auto-seeded on first access."""

    def __init__(self, storage: StorageAdapter):
        self.storage = storage

    def _load_all(self) -> Dict[str, Any]:
        return self.storage.read(StorageKeys.BOARDS, {})

    def get_or_create(self, user_id: str) -> Board:
        """Return the user's board, seeding the default columns if absent."""
        boards = self._load_all()
        raw = boards.get(user_id)
        if isinstance(raw, dict):
            return Board.from_dict(raw)
        board = Board.seeded()
        boards[user_id] = board.to_dict()
        self.storage.write(StorageKeys.BOARDS, boards)
        logger.debug("Seeded board for %s", user_id)
        return board

    def save(self, user_id: str, board: Board, expected_revision: Optional[int] = None) -> Board:
        """
        Replace the user's board.

        With expected_revision, refuse the write (RevisionConflict) if the
        stored board moved on since it was read. Without it, last write wins.
        """
        boards = self._load_all()
        current = boards.get(user_id)
        actual = to_int(current.get("revision")) if isinstance(current, dict) else 0
        if expected_revision is not None and actual != expected_revision:
            raise RevisionConflict(user_id, expected_revision, actual)
        board.revision = actual + 1
        boards[user_id] = board.to_dict()
        self.storage.write(StorageKeys.BOARDS, boards)
        return board

    # ── columns ─────────────────────────────────────────────────────────────

    def add_column(self, user_id: str, title: str) -> Column:
        board = self.get_or_create(user_id)
        column = Column(id=make_id("col"), title=title, order=len(board.columns))
        board.columns.append(column)
        self.save(user_id, board)
        return column

    def update_column(self, user_id: str, column_id: str, **updates) -> Optional[Column]:
        """Merge title/order into a column. Unknown columns and non-numeric orders are ignored."""
        board = self.get_or_create(user_id)
        column = board.find_column(column_id)
        if column is None:
            logger.debug("update_column: %s not on board of %s", column_id, user_id)
            return None
        for name, value in updates.items():
            if name not in _COLUMN_FIELDS:
                continue
            if name == "order":
                value = to_int(value, None)
                if value is None:
                    continue
            setattr(column, name, value)
        self.save(user_id, board)
        return column

    def rename_column(self, user_id: str, column_id: str, new_title: str) -> Optional[Column]:
        return self.update_column(user_id, column_id, title=new_title)

    def delete_column(self, user_id: str, column_id: str) -> bool:
        """Remove a column and every task in it."""
        board = self.get_or_create(user_id)
        if board.find_column(column_id) is None:
            logger.debug("delete_column: %s not on board of %s", column_id, user_id)
            return False
        board.columns = [c for c in board.columns if c.id != column_id]
        board.tasks = [t for t in board.tasks if t.column_id != column_id]
        self.save(user_id, board)
        return True

    # ── tasks ───────────────────────────────────────────────────────────────

    def add_task(
        self,
        user_id: str,
        column_id: str,
        title: str,
        description: str = "",
        priority: Any = Priority.MEDIUM,
        progress: int = 0,
    ) -> Task:
        """Append a task to a column. The column is not checked for existence."""
        board = self.get_or_create(user_id)
        task = Task(
            id=make_id("task"),
            column_id=column_id,
            title=title,
            description=description or "",
            priority=Priority.from_str(priority),
            progress=clamp_progress(progress),
            created_at=now_ms(),
            order=sum(1 for t in board.tasks if t.column_id == column_id),
        )
        board.tasks.append(task)
        self.save(user_id, board)
        return task

    def update_task(self, user_id: str, task_id: str, updates: Dict[str, Any]) -> Optional[Task]:
        """
        Merge the given fields into a task. The id itself never changes.

        Values are coerced like stored ones: unknown priorities become medium,
        progress is clamped, and a non-numeric order or createdAt is skipped.
        """
        board = self.get_or_create(user_id)
        task = board.find_task(task_id)
        if task is None:
            logger.debug("update_task: %s not on board of %s", task_id, user_id)
            return None
        for name, value in updates.items():
            attr = _TASK_FIELDS.get(name)
            if attr is None:
                continue
            if attr == "priority":
                value = Priority.from_str(value)
            elif attr == "progress":
                value = clamp_progress(value)
            elif attr in ("order", "created_at"):
                value = to_int(value, None)
                if value is None:
                    logger.debug("update_task: ignoring non-numeric %s=%r", name, updates[name])
                    continue
            setattr(task, attr, value)
        self.save(user_id, board)
        return task

    def move_task(self, user_id: str, task_id: str, column_id: str) -> Optional[Task]:
        """Drop a task onto another column. Dropping on its own column writes nothing."""
        board = self.get_or_create(user_id)
        task = board.find_task(task_id)
        if task is None:
            return None
        if task.column_id == column_id:
            return task
        return self.update_task(user_id, task_id, {"column_id": column_id})

    def delete_task(self, user_id: str, task_id: str) -> bool:
        board = self.get_or_create(user_id)
        if board.find_task(task_id) is None:
            logger.debug("delete_task: %s not on board of %s", task_id, user_id)
            return False
        board.tasks = [t for t in board.tasks if t.id != task_id]
        self.save(user_id, board)
        return True
