"""
Authentication utilities: admin session tokens, credential checks and password hashing
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from passlib.context import CryptContext

from config.settings import settings, IS_PRODUCTION

logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto"
)

# JWT configuration
ALGORITHM = "HS256"
ADMIN_SESSION_COOKIE = "admin_session"

_ephemeral_secret: Optional[str] = None


def hash_password(password: str) -> str:
    """Hash a password using argon2"""
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash"""
    return pwd_context.verify(password, password_hash)


def get_session_secret() -> str:
    """
    SESSION_SECRET, or a random per-process secret outside production.
    Sessions signed with the random secret do not survive a restart.
    """
    global _ephemeral_secret
    if settings.session_secret:
        return settings.session_secret
    if IS_PRODUCTION:
        raise ValueError("SESSION_SECRET is not set. Cannot sign admin sessions.")
    if _ephemeral_secret is None:
        logger.warning("SESSION_SECRET is not set. Using a random secret for this process.")
        _ephemeral_secret = secrets.token_urlsafe(32)
    return _ephemeral_secret


def create_session_token(session_id: str, max_age_seconds: Optional[int] = None) -> str:
    """Signed cookie value carrying the server-side session id."""
    max_age_seconds = max_age_seconds or settings.session_max_age_seconds
    payload = {
        "sid": session_id,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=max_age_seconds),
    }
    return jwt.encode(payload, get_session_secret(), algorithm=ALGORITHM)


def decode_session_token(token: Optional[str]) -> Optional[str]:
    """Session id from a cookie value. Returns None if missing, invalid or expired."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, get_session_secret(), algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None
    return payload.get("sid")


def verify_admin_credentials(username: str, password: str) -> bool:
    """Constant-time comparison against ADMIN_USERNAME / ADMIN_PASSWORD."""
    if not settings.admin_username or not settings.admin_password:
        logger.warning("ADMIN_USERNAME or ADMIN_PASSWORD is not set. Admin login is unavailable.")
        return False
    username_ok = secrets.compare_digest(username.encode(), settings.admin_username.encode())
    password_ok = secrets.compare_digest(password.encode(), settings.admin_password.encode())
    return username_ok and password_ok
