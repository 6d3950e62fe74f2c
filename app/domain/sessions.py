"""Domain layer: short-lived authenticated sessions keyed by chat user id.

One SessionStore is constructed at startup and injected wherever sessions are
needed. The mapping is guarded by a lock so the background sweep and request
handlers can share it.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional

from utils.time import utc_now, seconds_between

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TIMEOUT = 3600
DEFAULT_CLEANUP_INTERVAL = 300


@dataclass(frozen=True)
class Session:
    user_id: str
    issued_at: datetime
    display_name: str = ""
    department: Optional[str] = None
    user_principal_name: Optional[str] = None
    mfa_verified: bool = False


@dataclass(frozen=True)
class AuthResult:
    authenticated: bool
    authorized: bool
    session: Optional[Session] = None


class SessionStore:
    def __init__(self, recognized_chats: Iterable[str] = (),
                 timeout_seconds: int = DEFAULT_SESSION_TIMEOUT,
                 clock: Callable[[], datetime] = utc_now):
        self.recognized_chats = frozenset(chat for chat in recognized_chats if chat)
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create_session(self, user_id: str, identity: Optional[dict] = None, mfa_verified: bool = True) -> Session:
        """Store a fresh session for `user_id`, replacing any previous one."""
        identity = identity or {}
        session = Session(
            user_id=user_id,
            issued_at=self._clock(),
            display_name=identity.get("display_name") or identity.get("displayName") or "",
            department=identity.get("department"),
            user_principal_name=identity.get("user_principal_name") or identity.get("userPrincipalName"),
            mfa_verified=mfa_verified,
        )
        with self._lock:
            self._sessions[user_id] = session
        logger.info(f"🔐 Session created for user {user_id} ({session.display_name or 'unknown'})")
        return session

    def get(self, user_id: str) -> Optional[Session]:
        """Return the live session for `user_id`, or None when absent or expired."""
        with self._lock:
            session = self._sessions.get(user_id)
        if session is None or not self.is_valid(session):
            return None
        return session

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            self._sessions.pop(user_id, None)
        logger.info(f"Session invalidated for user {user_id}")

    def is_valid(self, session: Session) -> bool:
        return seconds_between(session.issued_at, self._clock()) < self.timeout_seconds

    def is_recognized_chat(self, chat_id: Optional[str]) -> bool:
        return bool(chat_id) and chat_id in self.recognized_chats

    def authenticate(self, user_id: str, chat_id: str) -> AuthResult:
        session = self.get(user_id)
        if session is None:
            return AuthResult(authenticated=False, authorized=False)
        return AuthResult(
            authenticated=True,
            authorized=self.is_recognized_chat(chat_id),
            session=session,
        )

    def cleanup_expired(self) -> int:
        """Drop every expired session; returns how many were removed."""
        with self._lock:
            expired = [uid for uid, s in self._sessions.items() if not self.is_valid(s)]
            for uid in expired:
                del self._sessions[uid]
        for uid in expired:
            logger.info(f"🧹 Expired session cleaned up for user {uid}")
        return len(expired)

    async def run_cleanup(self, interval_seconds: int = DEFAULT_CLEANUP_INTERVAL) -> None:
        """Sweep expired sessions forever; cancel the task to stop it."""
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                self.cleanup_expired()
            except Exception as e:
                logger.error(f"Session cleanup failed: {e}", exc_info=True)

    def start_cleanup(self, interval_seconds: int = DEFAULT_CLEANUP_INTERVAL) -> "asyncio.Task[None]":
        return asyncio.create_task(self.run_cleanup(interval_seconds), name="session-cleanup")
