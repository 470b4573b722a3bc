"""
Repository contract tests, run against every storage backend.
"""
from datetime import timedelta

import pytest

from config.settings import Settings
from crud.memory_storage import MemoryStorage
from crud.storage import DuplicateRecordError, create_storage, resolve_backend
from database import normalize_database_url
from models.trial import (
    DEFAULT_TRIAL_DURATION_DAYS,
    ExpiryAction,
    TrialSettingsUpdate,
)
from tests.conftest import T0


async def _create(storage, username="alice", signup=T0, days=7):
    return await storage.create_trial_user(
        username=username,
        signup_date=signup,
        expiry_date=signup + timedelta(days=days),
        trial_duration_days=days,
    )


async def test_create_and_get_trial_user(storage):
    created = await _create(storage)

    fetched = await storage.get_trial_user("alice")
    assert fetched is not None
    assert fetched.id == created.id
    assert fetched.signup_date == T0
    assert fetched.expiry_date == T0 + timedelta(days=7)
    assert fetched.trial_duration_days == 7
    assert fetched.is_expired is False


async def test_get_missing_trial_user_returns_none(storage):
    assert await storage.get_trial_user("nobody") is None


async def test_duplicate_trial_user_rejected(storage):
    await _create(storage)
    with pytest.raises(DuplicateRecordError):
        await _create(storage)


async def test_expired_read_includes_flagged_and_past_due(storage, clock):
    await _create(storage, "past-due", signup=T0 - timedelta(days=10))
    await _create(storage, "flagged")
    await _create(storage, "current")
    await storage.mark_trial_user_expired("flagged")

    expired = {record.username for record in await storage.get_expired_trial_users()}
    assert expired == {"past-due", "flagged"}


async def test_expiry_boundary_is_inclusive(storage, clock):
    await _create(storage, days=1)
    clock.advance(days=1)

    expired = await storage.get_expired_trial_users()
    assert [record.username for record in expired] == ["alice"]


async def test_mark_expired_keeps_dates(storage):
    created = await _create(storage)
    await storage.mark_trial_user_expired("alice")

    record = await storage.get_trial_user("alice")
    assert record.is_expired is True
    assert record.expiry_date == created.expiry_date
    assert record.signup_date == created.signup_date


async def test_delete_trial_user(storage):
    await _create(storage)
    await storage.delete_trial_user("alice")
    assert await storage.get_trial_user("alice") is None
    # Deleting again is a no-op
    await storage.delete_trial_user("alice")


async def test_get_all_trial_users(storage):
    await _create(storage, "alice")
    await _create(storage, "bob")
    usernames = sorted(record.username for record in await storage.get_all_trial_users())
    assert usernames == ["alice", "bob"]


async def test_trial_settings_defaults_are_persisted(storage):
    first = await storage.get_trial_settings()
    assert first.is_trial_mode_enabled is True
    assert first.trial_duration_days == DEFAULT_TRIAL_DURATION_DAYS
    assert first.expiry_action == ExpiryAction.DISABLE

    second = await storage.get_trial_settings()
    assert second.id == first.id


async def test_partial_settings_update(storage):
    await storage.update_trial_settings(TrialSettingsUpdate(trial_duration_days=14))
    updated = await storage.update_trial_settings(TrialSettingsUpdate(expiry_action=ExpiryAction.DELETE))

    assert updated.trial_duration_days == 14
    assert updated.expiry_action == ExpiryAction.DELETE
    assert updated.is_trial_mode_enabled is True

    stored = await storage.get_trial_settings()
    assert stored.trial_duration_days == 14
    assert stored.expiry_action == ExpiryAction.DELETE


async def test_settings_change_does_not_touch_existing_trials(storage):
    created = await _create(storage, days=7)
    await storage.update_trial_settings(TrialSettingsUpdate(trial_duration_days=1))

    record = await storage.get_trial_user("alice")
    assert record.expiry_date == created.expiry_date
    assert record.trial_duration_days == 7


async def test_local_user_mirror(storage):
    user = await storage.create_user("alice", "hashed")
    assert user.id

    assert (await storage.get_user_by_username("alice")).password_hash == "hashed"
    assert (await storage.get_user(user.id)).username == "alice"
    assert await storage.get_user_by_username("bob") is None

    with pytest.raises(DuplicateRecordError):
        await storage.create_user("alice", "other")


@pytest.mark.parametrize(
    "database_url, backend, expected",
    [
        (None, None, "memory"),
        ("sqlite+aiosqlite:///./app.db", None, "sql"),
        ("postgresql://u:p@db/app", None, "sql"),
        ("mongodb://localhost:27017", None, "mongo"),
        ("mongodb+srv://cluster.example.net", None, "mongo"),
        ("postgresql://u:p@db/app", "memory", "memory"),
    ],
)
def test_resolve_backend(database_url, backend, expected):
    settings = Settings(DATABASE_URL=database_url, STORAGE_BACKEND=backend)
    assert resolve_backend(settings) == expected


def test_resolve_backend_rejects_unknown_name():
    with pytest.raises(ValueError):
        resolve_backend(Settings(STORAGE_BACKEND="cassandra"))


async def test_create_storage_refuses_memory_in_production():
    with pytest.raises(RuntimeError):
        await create_storage(Settings(DATABASE_URL=None, STORAGE_BACKEND=None), is_production=True)


async def test_create_storage_refuses_sqlite_in_production():
    with pytest.raises(RuntimeError):
        await create_storage(Settings(DATABASE_URL="sqlite+aiosqlite:///./prod.db"), is_production=True)


async def test_create_storage_defaults_to_memory():
    storage = await create_storage(Settings(DATABASE_URL=None, STORAGE_BACKEND=None))
    assert isinstance(storage, MemoryStorage)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("file:/data/app.db", "sqlite+aiosqlite:////data/app.db"),
        ("app.db", "sqlite+aiosqlite:///app.db"),
        ("postgres://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
        ("postgresql://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
        ("sqlite:///./app.db", "sqlite+aiosqlite:///./app.db"),
        ("sqlite+aiosqlite:///:memory:", "sqlite+aiosqlite:///:memory:"),
    ],
)
def test_normalize_database_url(url, expected):
    assert normalize_database_url(url) == expected
