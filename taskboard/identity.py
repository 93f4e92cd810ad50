"""
User registration and credential checks.

The password scheme is a placeholder: a single SHA-256 over a fixed,
configuration-wide salt. It is one-way, but it is NOT cryptographically
sound (no per-user salt, no work factor). Do not reuse it for anything that
protects real accounts.
"""
import hashlib
import hmac
import logging
from typing import List, Optional

from .board import BoardStore
from .errors import DuplicateUser, InvalidCredentials
from .schema import User, make_id, now_ms
from .storage import StorageAdapter, StorageKeys

logger = logging.getLogger(__name__)


def hash_password(password: str, salt: str) -> str:
    """Derive the stored value for a password (placeholder scheme)."""
    return hashlib.sha256(f"{salt}${password}".encode("utf-8")).hexdigest()


class IdentityStore:
    """Users keyed by username."""

    def __init__(self, storage: StorageAdapter, boards: BoardStore, salt: str = "salt123"):
        self.storage = storage
        self.boards = boards
        self.salt = salt

    def _load_all(self) -> dict:
        return self.storage.read(StorageKeys.USERS, {})

    def register(self, username: str, email: str, password: str) -> User:
        """
        Create a user and seed their board.

        Raises DuplicateUser if the username is taken; the existing record
        is left untouched.
        """
        users = self._load_all()
        if username in users:
            raise DuplicateUser(username)

        user = User(
            id=make_id("user"),
            username=username,
            email=email,
            password_hash=hash_password(password, self.salt),
            created_at=now_ms(),
        )
        users[username] = user.to_dict()
        self.storage.write(StorageKeys.USERS, users)
        self.boards.get_or_create(user.id)
        logger.info("Registered user %s (%s)", username, user.id)
        return user

    def authenticate(self, username: str, password: str) -> User:
        """Return the user if the password matches, else raise InvalidCredentials."""
        raw = self._load_all().get(username)
        if not isinstance(raw, dict):
            raise InvalidCredentials()
        user = User.from_dict(raw)
        if not hmac.compare_digest(user.password_hash, hash_password(password, self.salt)):
            raise InvalidCredentials()
        return user

    def get(self, username: str) -> Optional[User]:
        raw = self._load_all().get(username)
        return User.from_dict(raw) if isinstance(raw, dict) else None

    def list_users(self) -> List[User]:
        return [User.from_dict(u) for u in self._load_all().values() if isinstance(u, dict)]
