"""
MongoDB backend tests. Needs a reachable server in MONGODB_TEST_URL.
"""
import os
import uuid
from datetime import timedelta

import pytest

from crud.mongo_storage import MongoStorage
from crud.storage import DuplicateRecordError
from models.trial import ExpiryAction, TrialSettingsUpdate
from tests.conftest import T0

MONGODB_TEST_URL = os.getenv("MONGODB_TEST_URL")

pytestmark = pytest.mark.skipif(not MONGODB_TEST_URL, reason="MONGODB_TEST_URL not set")


@pytest.fixture
async def mongo_storage(clock):
    database_name = f"jellyfin_signup_test_{uuid.uuid4().hex[:8]}"
    storage = MongoStorage(MONGODB_TEST_URL, database_name, clock=clock)
    await storage.initialize()
    yield storage
    await storage._client.drop_database(database_name)
    await storage.close()


async def test_trial_user_lifecycle(mongo_storage, clock):
    await mongo_storage.create_trial_user(
        username="alice",
        signup_date=T0,
        expiry_date=T0 + timedelta(days=1),
        trial_duration_days=1,
    )
    with pytest.raises(DuplicateRecordError):
        await mongo_storage.create_trial_user(
            username="alice",
            signup_date=T0,
            expiry_date=T0 + timedelta(days=1),
            trial_duration_days=1,
        )

    assert await mongo_storage.get_expired_trial_users() == []
    clock.advance(days=1)
    assert [r.username for r in await mongo_storage.get_expired_trial_users()] == ["alice"]

    await mongo_storage.mark_trial_user_expired("alice")
    record = await mongo_storage.get_trial_user("alice")
    assert record.is_expired is True
    assert record.expiry_date == T0 + timedelta(days=1)

    await mongo_storage.delete_trial_user("alice")
    assert await mongo_storage.get_trial_user("alice") is None


async def test_settings_defaults_and_partial_update(mongo_storage):
    defaults = await mongo_storage.get_trial_settings()
    assert defaults.trial_duration_days == 7

    updated = await mongo_storage.update_trial_settings(TrialSettingsUpdate(expiry_action=ExpiryAction.DELETE))
    assert updated.expiry_action == ExpiryAction.DELETE
    assert updated.trial_duration_days == 7


async def test_local_user_mirror(mongo_storage):
    user = await mongo_storage.create_user("alice", "hashed")
    assert (await mongo_storage.get_user(user.id)).username == "alice"
    with pytest.raises(DuplicateRecordError):
        await mongo_storage.create_user("alice", "hashed")
