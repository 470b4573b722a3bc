"""
Admin panel endpoint tests: session gate, user actions and trial administration.
"""
import asyncio
from datetime import timedelta

import pytest

from models.trial import ExpiryAction, TrialSettingsUpdate
from services.trial_service import TrialService


@pytest.mark.parametrize(
    "method, path",
    [
        ("get", "/api/admin/users"),
        ("get", "/api/admin/users/user-1"),
        ("post", "/api/admin/users/action"),
        ("get", "/api/admin/trial-settings"),
        ("put", "/api/admin/trial-settings"),
        ("get", "/api/admin/trial-users"),
        ("post", "/api/admin/process-expired-trials"),
        ("get", "/api/admin/analytics/access"),
        ("get", "/api/admin/analytics/activity"),
    ],
)
def test_admin_routes_require_session(client, method, path):
    response = getattr(client, method)(path)
    assert response.status_code == 401
    body = response.json()
    assert body["ok"] is False
    assert body["error"] == "unauthorized"
    assert body["message"] == "Admin authentication required"


def test_unknown_route_uses_envelope(client):
    response = client.get("/api/does-not-exist")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_login_with_bad_credentials(client):
    response = client.post("/api/admin/login", json={"username": "admin", "password": "nope"})

    assert response.status_code == 401
    assert response.json()["error"] == "invalid_credentials"
    assert "admin_session" not in response.cookies


def test_login_session_logout_cycle(client):
    assert client.get("/api/admin/session").json()["data"]["authenticated"] is False

    response = client.post("/api/admin/login", json={"username": "admin", "password": "admin-test-password"})
    assert response.status_code == 200
    assert "httponly" in response.headers["set-cookie"].lower()
    assert client.get("/api/admin/session").json()["data"]["authenticated"] is True
    assert client.get("/api/admin/trial-settings").status_code == 200

    # Keep the old cookie to prove logout invalidated it server-side
    old_cookie = client.cookies.get("admin_session")
    client.post("/api/admin/logout")
    assert client.get("/api/admin/session").json()["data"]["authenticated"] is False

    replay = client.get("/api/admin/users", headers={"Cookie": f"admin_session={old_cookie}"})
    assert replay.status_code == 401


def test_forged_cookie_rejected(client):
    response = client.get("/api/admin/users", headers={"Cookie": "admin_session=forged.token.value"})
    assert response.status_code == 401


def test_list_users_joins_trials(admin_client, fake_jellyfin, memory_storage):
    fake_jellyfin.add_user("alice")
    fake_jellyfin.add_user("bob")
    asyncio.run(TrialService(memory_storage, None).enroll("alice"))

    response = admin_client.get("/api/admin/users")

    assert response.status_code == 200
    users = {user["name"]: user for user in response.json()["data"]["users"]}
    assert users["alice"]["trial"]["username"] == "alice"
    assert users["bob"]["trial"] is None
    assert response.json()["data"]["total"] == 2


def test_get_single_user(admin_client, fake_jellyfin):
    user_id = fake_jellyfin.add_user("alice", disabled=True)

    response = admin_client.get(f"/api/admin/users/{user_id}")

    assert response.status_code == 200
    assert response.json()["data"]["user"]["is_disabled"] is True


def test_get_unknown_user_is_upstream_error(admin_client):
    response = admin_client.get("/api/admin/users/missing")
    assert response.status_code == 500
    assert response.json()["error"] == "upstream_error"


def test_disable_and_enable_actions(admin_client, fake_jellyfin):
    user_id = fake_jellyfin.add_user("alice")

    response = admin_client.post("/api/admin/users/action", json={"action": "disable", "userId": user_id})
    assert response.status_code == 200
    assert fake_jellyfin.users[user_id]["Policy"]["IsDisabled"] is True

    admin_client.post("/api/admin/users/action", json={"action": "enable", "userId": user_id})
    assert fake_jellyfin.users[user_id]["Policy"]["IsDisabled"] is False


def test_delete_action_removes_trial_record(admin_client, fake_jellyfin, memory_storage):
    user_id = fake_jellyfin.add_user("alice")
    asyncio.run(TrialService(memory_storage, None).enroll("alice"))

    response = admin_client.post("/api/admin/users/action", json={"action": "delete", "userId": user_id})

    assert response.status_code == 200
    assert user_id not in fake_jellyfin.users
    assert asyncio.run(memory_storage.get_trial_user("alice")) is None


def test_action_without_user_id(admin_client):
    response = admin_client.post("/api/admin/users/action", json={"action": "disable"})
    assert response.status_code == 400


def test_unknown_action_rejected(admin_client):
    response = admin_client.post("/api/admin/users/action", json={"action": "promote", "userId": "user-1"})
    assert response.status_code == 400
    assert response.json()["data"]["errors"][0]["field"] == "action"


def test_reset_password_requires_strong_password(admin_client, fake_jellyfin):
    user_id = fake_jellyfin.add_user("alice")

    missing = admin_client.post("/api/admin/users/action", json={"action": "reset-password", "userId": user_id})
    weak = admin_client.post(
        "/api/admin/users/action",
        json={"action": "reset-password", "userId": user_id, "newPassword": "short1"},
    )
    ok = admin_client.post(
        "/api/admin/users/action",
        json={"action": "reset-password", "userId": user_id, "newPassword": "longenough1"},
    )

    assert missing.status_code == 400
    assert weak.status_code == 400
    assert weak.json()["message"] == "Password must be at least 8 characters"
    assert ok.status_code == 200
    assert fake_jellyfin.count("POST", f"/Users/{user_id}/Password") == 2


def test_bulk_disable_isolates_failures(admin_client, fake_jellyfin):
    first = fake_jellyfin.add_user("alice")
    second = fake_jellyfin.add_user("bob")

    response = admin_client.post(
        "/api/admin/users/action",
        json={"action": "bulk-disable", "userIds": [first, "missing", second]},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["disabled"] == [first, second]
    assert [failure["user_id"] for failure in data["failed"]] == ["missing"]
    assert fake_jellyfin.users[second]["Policy"]["IsDisabled"] is True


def test_bulk_disable_requires_ids(admin_client):
    response = admin_client.post("/api/admin/users/action", json={"action": "bulk-disable"})
    assert response.status_code == 400


def test_trial_settings_defaults_and_partial_update(admin_client):
    defaults = admin_client.get("/api/admin/trial-settings").json()["data"]["settings"]
    assert defaults["is_trial_mode_enabled"] is True
    assert defaults["trial_duration_days"] == 7
    assert defaults["expiry_action"] == "disable"

    response = admin_client.put("/api/admin/trial-settings", json={"expiry_action": "delete"})

    assert response.status_code == 200
    updated = response.json()["data"]["settings"]
    assert updated["expiry_action"] == "delete"
    assert updated["trial_duration_days"] == 7


def test_trial_settings_out_of_range(admin_client):
    response = admin_client.put("/api/admin/trial-settings", json={"trial_duration_days": 31})
    assert response.status_code == 400
    assert response.json()["data"]["errors"][0]["field"] == "trial_duration_days"


def test_trial_users_listing(admin_client, memory_storage):
    asyncio.run(TrialService(memory_storage, None).enroll("alice"))

    response = admin_client.get("/api/admin/trial-users")

    assert response.status_code == 200
    trials = response.json()["data"]["trial_users"]
    assert trials[0]["username"] == "alice"
    assert "status" in trials[0]
    assert "days_remaining" in trials[0]


def test_single_trial_user(admin_client, memory_storage):
    asyncio.run(TrialService(memory_storage, None).enroll("alice"))

    assert admin_client.get("/api/admin/trial-users/alice").status_code == 200
    assert admin_client.get("/api/admin/trial-users/bob").status_code == 404


def test_manual_expiry_sweep(admin_client, fake_jellyfin, memory_storage, clock):
    user_id = fake_jellyfin.add_user("alice")

    async def seed():
        await memory_storage.update_trial_settings(
            TrialSettingsUpdate(trial_duration_days=1, expiry_action=ExpiryAction.DISABLE)
        )
        await memory_storage.create_trial_user(
            username="alice",
            signup_date=clock() - timedelta(days=3),
            expiry_date=clock() - timedelta(days=2),
            trial_duration_days=1,
        )

    asyncio.run(seed())

    response = admin_client.post("/api/admin/process-expired-trials")

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["processed"] == 1
    assert body["message"] == "processed 1, failed 0"
    assert fake_jellyfin.users[user_id]["Policy"]["IsDisabled"] is True

    again = admin_client.post("/api/admin/process-expired-trials").json()
    assert again["data"]["processed"] == 0


def test_analytics_endpoints(admin_client, access_tracker):
    asyncio.run(access_tracker.log_access("127.0.0.1", "anonymous", "/api/jellyfin/users", "pytest"))

    access = admin_client.get("/api/admin/analytics/access")
    activity = admin_client.get("/api/admin/analytics/activity")

    assert access.status_code == 200
    assert access.json()["data"]["total_tracked"] == 1
    assert activity.status_code == 200
    assert activity.json()["data"]["total_activities"] == 0
