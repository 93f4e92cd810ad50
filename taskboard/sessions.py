"""
Login sessions.

Several sessions can be live at once, for the same or different users;
each one stands for one logged-in execution context. The list keeps
insertion order.

Tokens are HS256 JWTs carrying sub/username/email/iat/exp. Expiry policy:
by default `exp` is informational and nothing checks it. With
enforce_expiry=True, expired (or unreadable) sessions are hidden from
list_all/find_by_id and removed by prune_expired().
"""
import logging
import time
from typing import List, Optional

import jwt

from .schema import AuthToken, Session, make_id, now_ms
from .storage import StorageAdapter, StorageKeys

logger = logging.getLogger(__name__)

TOKEN_ALG = "HS256"


def make_token(user_id: str, username: str, secret: str, ttl_secs: int = 3600,
               now: Optional[int] = None) -> str:
    """Issue a bearer token for a session."""
    issued = int(time.time()) if now is None else now
    claims = AuthToken(
        sub=user_id,
        username=username,
        email=f"{username}@example.com",
        iat=issued,
        exp=issued + ttl_secs,
    ).to_claims()
    return jwt.encode(claims, secret, algorithm=TOKEN_ALG)


def decode_token(token: str, secret: str) -> Optional[AuthToken]:
    """Read a token's claims without enforcing expiry. None if malformed or forged."""
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[TOKEN_ALG],
            options={"verify_exp": False, "verify_iat": False},
        )
    except jwt.InvalidTokenError:
        return None
    return AuthToken.from_claims(claims)


class SessionStore:
    """Ordered list of live sessions."""

    def __init__(self, storage: StorageAdapter, secret: str, ttl_secs: int = 3600,
                 enforce_expiry: bool = False):
        self.storage = storage
        self.secret = secret
        self.ttl_secs = ttl_secs
        self.enforce_expiry = enforce_expiry

    def _load_all(self) -> List[Session]:
        raw = self.storage.read(StorageKeys.SESSIONS, [])
        return [Session.from_dict(s) for s in raw if isinstance(s, dict)]

    def _save_all(self, sessions: List[Session]) -> None:
        self.storage.write(StorageKeys.SESSIONS, [s.to_dict() for s in sessions])

    def create(self, user_id: str, username: str) -> Session:
        """Start a new session for a user and append it to the list."""
        sessions = self._load_all()
        ts = now_ms()
        session = Session(
            id=make_id("session"),
            user_id=user_id,
            username=username,
            token=make_token(user_id, username, self.secret, self.ttl_secs),
            created_at=ts,
            last_activity=ts,
        )
        sessions.append(session)
        self._save_all(sessions)
        logger.info("Session %s opened for %s", session.id, username)
        return session

    def list_all(self) -> List[Session]:
        sessions = self._load_all()
        if self.enforce_expiry:
            now = int(time.time())
            sessions = [s for s in sessions if not self.is_expired(s, now)]
        return sessions

    def find_by_id(self, session_id: str) -> Optional[Session]:
        """The session, or None if it was logged out (or expired, when enforced)."""
        session = next((s for s in self._load_all() if s.id == session_id), None)
        if session is None:
            return None
        if self.enforce_expiry and self.is_expired(session):
            logger.debug("Session %s has expired", session_id)
            return None
        return session

    def delete(self, session_id: str) -> bool:
        sessions = self._load_all()
        remaining = [s for s in sessions if s.id != session_id]
        self._save_all(remaining)
        return len(remaining) != len(sessions)

    def delete_all(self) -> None:
        self._save_all([])

    def touch(self, session_id: str) -> Optional[Session]:
        """Refresh lastActivity on a session."""
        sessions = self._load_all()
        session = next((s for s in sessions if s.id == session_id), None)
        if session is None:
            return None
        session.last_activity = now_ms()
        self._save_all(sessions)
        return session

    def decode(self, session: Session) -> Optional[AuthToken]:
        return decode_token(session.token, self.secret)

    def is_expired(self, session: Session, now: Optional[int] = None) -> bool:
        """True if the token's exp has passed. Unreadable tokens count as expired."""
        claims = self.decode(session)
        if claims is None:
            return True
        current = int(time.time()) if now is None else now
        return claims.exp <= current

    def prune_expired(self, now: Optional[int] = None) -> int:
        """Delete expired sessions. Returns how many were removed."""
        sessions = self._load_all()
        current = int(time.time()) if now is None else now
        alive = [s for s in sessions if not self.is_expired(s, current)]
        removed = len(sessions) - len(alive)
        if removed:
            self._save_all(alive)
            logger.info("Pruned %d expired session(s)", removed)
        return removed
