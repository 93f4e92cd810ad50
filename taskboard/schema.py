"""
Board data model.

Records are persisted as JSON objects with camelCase keys so the stored
layout stays readable by the web client that shares the same keys:

  users     map<username, User>
  sessions  list<Session>
  boards    map<userId, Board>
  theme     "light" | "dark"

Timestamps are integer milliseconds since the epoch, except token claims
which follow JWT and use seconds.
"""
import time
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def make_id(prefix: str) -> str:
    """Generate a sortable unique ID (ms-precision timestamp + random hex)."""
    return f"{prefix}-{now_ms()}-{uuid.uuid4().hex[:8]}"


class Priority(Enum):
    """Task priority."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_str(cls, value) -> "Priority":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.MEDIUM


class Theme(Enum):
    """Global colour scheme preference."""
    LIGHT = "light"
    DARK = "dark"

    @classmethod
    def from_str(cls, value) -> "Theme":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.LIGHT

    def toggled(self) -> "Theme":
        return Theme.DARK if self is Theme.LIGHT else Theme.LIGHT


def to_int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    """int(value), or `default` when the value is null or not a number."""
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def clamp_progress(value: Any) -> int:
    """Coerce a progress value into the 0-100 range."""
    return max(0, min(100, to_int(value)))


@dataclass
class User:
    """A registered account. Never mutated after registration."""
    id: str
    username: str
    email: str
    password_hash: str
    created_at: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "passwordHash": self.password_hash,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=data.get("id", ""),
            username=data.get("username", ""),
            email=data.get("email", ""),
            # Older records stored the derived value under "password"
            password_hash=data.get("passwordHash", data.get("password", "")),
            created_at=to_int(data.get("createdAt")),
        )


@dataclass
class AuthToken:
    """Claims carried by a session token."""
    sub: str
    username: str
    email: str
    iat: int
    exp: int

    def to_claims(self) -> Dict[str, Any]:
        return {
            "sub": self.sub,
            "username": self.username,
            "email": self.email,
            "iat": self.iat,
            "exp": self.exp,
        }

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "AuthToken":
        return cls(
            sub=str(claims.get("sub", "")),
            username=claims.get("username", ""),
            email=claims.get("email", ""),
            iat=to_int(claims.get("iat")),
            exp=to_int(claims.get("exp")),
        )


@dataclass
class Session:
    """One logged-in execution context bound to a user."""
    id: str
    user_id: str
    username: str
    token: str
    created_at: int = field(default_factory=now_ms)
    last_activity: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "username": self.username,
            "token": self.token,
            "createdAt": self.created_at,
            "lastActivity": self.last_activity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        created = to_int(data.get("createdAt"))
        return cls(
            id=data.get("id", ""),
            user_id=data.get("userId", ""),
            username=data.get("username", ""),
            token=data.get("token", ""),
            created_at=created,
            last_activity=to_int(data.get("lastActivity"), created),
        )


@dataclass
class Column:
    id: str
    title: str
    order: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "order": self.order}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Column":
        return cls(
            id=data.get("id", ""),
            title=data.get("title", ""),
            order=to_int(data.get("order")),
        )


@dataclass
class Task:
    """A card on the board. Moving between columns only changes column_id."""
    id: str
    column_id: str
    title: str
    description: str = ""
    priority: Priority = Priority.MEDIUM
    progress: int = 0              # 0-100
    created_at: int = field(default_factory=now_ms)
    order: int = 0                 # insertion index within the column

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "columnId": self.column_id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
            "progress": self.progress,
            "createdAt": self.created_at,
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=data.get("id", ""),
            column_id=data.get("columnId", ""),
            title=data.get("title", ""),
            description=data.get("description", ""),
            priority=Priority.from_str(data.get("priority", "medium")),
            progress=clamp_progress(data.get("progress", 0)),
            created_at=to_int(data.get("createdAt")),
            order=to_int(data.get("order")),
        )


# Seed set for every new board. IDs are fixed; they only need to be unique
# within one board.
DEFAULT_COLUMNS = (
    ("col-1", "To Do"),
    ("col-2", "In Progress"),
    ("col-3", "Done"),
)


@dataclass
class Board:
    """All columns and tasks owned by one user."""
    columns: List[Column] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)
    revision: int = 0

    @classmethod
    def seeded(cls) -> "Board":
        return cls(
            columns=[
                Column(id=cid, title=title, order=i)
                for i, (cid, title) in enumerate(DEFAULT_COLUMNS)
            ],
            tasks=[],
        )

    def find_column(self, column_id: str) -> Optional[Column]:
        return next((c for c in self.columns if c.id == column_id), None)

    def find_task(self, task_id: str) -> Optional[Task]:
        return next((t for t in self.tasks if t.id == task_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columns": [c.to_dict() for c in self.columns],
            "tasks": [t.to_dict() for t in self.tasks],
            "revision": self.revision,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Board":
        columns = data.get("columns")
        tasks = data.get("tasks")
        return cls(
            columns=[Column.from_dict(c) for c in columns if isinstance(c, dict)]
            if isinstance(columns, list) else [],
            tasks=[Task.from_dict(t) for t in tasks if isinstance(t, dict)]
            if isinstance(tasks, list) else [],
            revision=to_int(data.get("revision")),
        )
