"""
Error taxonomy for the board store.

Only DuplicateUser and InvalidCredentials are meant for end users (form
validation messages). Missing ids and corrupt stored values never raise;
they degrade to a no-op or a default.
"""


class TaskboardError(Exception):
    """Base class for all taskboard errors."""
    pass


class DuplicateUser(TaskboardError):
    """Raised when registering a username that already exists."""

    def __init__(self, username: str):
        super().__init__("Username already exists")
        self.username = username


class InvalidCredentials(TaskboardError):
    """Raised when the username is unknown or the password does not match."""

    def __init__(self):
        super().__init__("Invalid credentials")


class StorageUnavailable(TaskboardError):
    """Raised when the storage substrate rejects a write (disabled, full, locked)."""
    pass


class RevisionConflict(TaskboardError):
    """Raised by a guarded board save when another writer got there first."""

    def __init__(self, user_id: str, expected: int, actual: int):
        super().__init__(
            f"Board for {user_id} is at revision {actual}, expected {expected}"
        )
        self.user_id = user_id
        self.expected = expected
        self.actual = actual
