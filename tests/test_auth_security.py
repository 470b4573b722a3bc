"""
Admin session and credential tests.

Tests cover:
- Session cookie signing and tampering
- Server-side session expiry and revocation
- Signup credential rules
"""
import pytest

from auth_utils import (
    create_session_token,
    decode_session_token,
    hash_password,
    verify_admin_credentials,
    verify_password,
)
from services.admin_sessions import AdminSessionStore
from utils.security_utils import validate_password_strength, validate_username


class Ticker:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_session_token_round_trip():
    token = create_session_token("abc123")
    assert decode_session_token(token) == "abc123"


def test_tampered_or_expired_token_is_rejected():
    token = create_session_token("abc123")
    assert decode_session_token(token[:-2] + "xx") is None
    assert decode_session_token("not-a-jwt") is None
    assert decode_session_token(None) is None
    assert decode_session_token(create_session_token("abc123", max_age_seconds=-10)) is None


def test_admin_credentials():
    assert verify_admin_credentials("admin", "admin-test-password")
    assert not verify_admin_credentials("admin", "wrong")
    assert not verify_admin_credentials("root", "admin-test-password")


def test_session_store_expiry_and_revocation():
    ticker = Ticker()
    store = AdminSessionStore(max_age_seconds=60, clock=ticker)

    session_id = store.create()
    assert store.is_valid(session_id)

    ticker.now = 61
    assert not store.is_valid(session_id)

    other = store.create()
    store.revoke(other)
    assert not store.is_valid(other)
    assert not store.is_valid(None)


def test_password_hashing():
    password_hash = hash_password("longenough1")
    assert password_hash != "longenough1"
    assert verify_password("longenough1", password_hash)
    assert not verify_password("wrongpass1", password_hash)


@pytest.mark.parametrize(
    "password, message",
    [
        ("", "Password cannot be empty"),
        ("short1", "Password must be at least 8 characters"),
        ("longenough", "Password must contain at least one number"),
    ],
)
def test_weak_passwords_rejected(password, message):
    with pytest.raises(ValueError, match=message):
        validate_password_strength(password)


def test_strong_password_accepted():
    validate_password_strength("longenough1")


def test_username_rules():
    assert validate_username("  alice ") == "alice"
    for bad in ("ab", "a/b/c", "x" * 65, "bad\nname"):
        with pytest.raises(ValueError):
            validate_username(bad)
