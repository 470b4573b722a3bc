"""
Server-side admin sessions (Redis when REDIS_URL is set, in-memory otherwise)
"""
import logging
import secrets
import time
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "admin_session:"


class AdminSessionStore:
    """
    Tracks which admin session ids are currently logged in.
    The cookie only carries the id; logout removes it here.
    """

    def __init__(self, max_age_seconds: int, redis_client=None, clock: Callable[[], float] = time.time):
        self.max_age_seconds = max_age_seconds
        self._redis = redis_client
        self._clock = clock
        # Fallback: in-memory storage (session_id -> expires_at)
        self._sessions: Dict[str, float] = {}

    @classmethod
    def from_redis_url(cls, max_age_seconds: int, redis_url: Optional[str]) -> "AdminSessionStore":
        if not redis_url:
            logger.info("REDIS_URL not set. Using in-memory admin sessions.")
            return cls(max_age_seconds)
        try:
            import redis
            client = redis.from_url(redis_url, decode_responses=True)
            client.ping()
            logger.info("Redis connected successfully for admin sessions")
            return cls(max_age_seconds, redis_client=client)
        except Exception as e:
            logger.warning(f"Redis connection failed: {e}. Falling back to in-memory admin sessions.")
            return cls(max_age_seconds)

    def create(self) -> str:
        session_id = secrets.token_urlsafe(32)
        if self._redis is not None:
            self._redis.setex(SESSION_KEY_PREFIX + session_id, self.max_age_seconds, "1")
        else:
            self._prune()
            self._sessions[session_id] = self._clock() + self.max_age_seconds
        return session_id

    def is_valid(self, session_id: Optional[str]) -> bool:
        if not session_id:
            return False
        if self._redis is not None:
            return bool(self._redis.exists(SESSION_KEY_PREFIX + session_id))
        expires_at = self._sessions.get(session_id)
        if expires_at is None:
            return False
        if expires_at <= self._clock():
            del self._sessions[session_id]
            return False
        return True

    def revoke(self, session_id: Optional[str]) -> None:
        if not session_id:
            return
        if self._redis is not None:
            self._redis.delete(SESSION_KEY_PREFIX + session_id)
        else:
            self._sessions.pop(session_id, None)

    def _prune(self) -> None:
        now = self._clock()
        for session_id in [sid for sid, expires_at in self._sessions.items() if expires_at <= now]:
            del self._sessions[session_id]
