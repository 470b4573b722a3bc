"""
Jellyfin API client - thin wrapper over the user-management REST endpoints
"""
import logging
from typing import Any, List, Optional

import httpx

from models.jellyfin import JellyfinSession, JellyfinUser

logger = logging.getLogger(__name__)


class JellyfinError(Exception):
    """Upstream call failed; message is safe to show to an admin."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class JellyfinClient:
    """
    Async client for the Jellyfin user API.
    Authenticates with the X-Emby-Token header.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "X-Emby-Token": api_key or "",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, action: str, **kwargs) -> Any:
        """
        Issue a request and translate failures into JellyfinError.

        Args:
            method: HTTP method
            path: Path relative to the server URL
            action: Human description used in error messages ("create user")
        """
        if not self.is_configured:
            raise JellyfinError("Jellyfin server is not configured")
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Jellyfin timeout during {action}: {e}")
            raise JellyfinError(f"Failed to {action}: Jellyfin server timed out") from e
        except httpx.RequestError as e:
            logger.error(f"Jellyfin unreachable during {action}: {e}")
            raise JellyfinError(f"Failed to {action}: Jellyfin server is unreachable") from e

        if response.status_code in (401, 403):
            raise JellyfinError(f"Failed to {action}: invalid Jellyfin API key", response.status_code)
        if response.status_code == 404:
            raise JellyfinError(f"Failed to {action}: not found", response.status_code)
        if response.is_error:
            detail = response.text[:200] if response.text else response.reason_phrase
            logger.error(f"Jellyfin rejected {action}: {response.status_code} {detail}")
            raise JellyfinError(f"Failed to {action}: Jellyfin returned {response.status_code}", response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    async def list_users(self) -> List[JellyfinUser]:
        data = await self._request("GET", "/Users", "list users")
        return [JellyfinUser.model_validate(item) for item in data or []]

    async def get_user(self, user_id: str) -> JellyfinUser:
        data = await self._request("GET", f"/Users/{user_id}", "get user")
        return JellyfinUser.model_validate(data)

    async def get_user_by_name(self, username: str) -> Optional[JellyfinUser]:
        """Case-insensitive lookup by user name; None if absent."""
        wanted = username.lower()
        for user in await self.list_users():
            if user.name.lower() == wanted:
                return user
        return None

    async def user_exists(self, username: str) -> bool:
        return await self.get_user_by_name(username) is not None

    async def create_user(self, username: str, password: str) -> JellyfinUser:
        data = await self._request(
            "POST", "/Users/New", "create user in Jellyfin",
            json={"Name": username, "Password": password},
        )
        return JellyfinUser.model_validate(data)

    async def delete_user(self, user_id: str) -> None:
        await self._request("DELETE", f"/Users/{user_id}", "delete user")

    async def update_user_policy(self, user_id: str, **fields: Any) -> None:
        """
        Read-modify-write the user's policy.
        Keyword names are Jellyfin policy keys, e.g. IsDisabled=True.
        """
        user_data = await self._request("GET", f"/Users/{user_id}", "read user policy")
        policy = dict((user_data or {}).get("Policy") or {})
        policy.update(fields)
        await self._request("POST", f"/Users/{user_id}/Policy", "update user policy", json=policy)

    async def set_user_disabled(self, user_id: str, disabled: bool) -> None:
        await self.update_user_policy(user_id, IsDisabled=disabled)

    async def disable_downloads(self, user_id: str) -> None:
        await self.update_user_policy(user_id, EnableContentDownloading=False)

    async def reset_password(self, user_id: str, new_password: str) -> None:
        # Clearing first lets an admin key set a password without the current one
        await self._request(
            "POST", f"/Users/{user_id}/Password", "reset password",
            json={"ResetPassword": True},
        )
        await self._request(
            "POST", f"/Users/{user_id}/Password", "set new password",
            json={"CurrentPw": "", "NewPw": new_password, "ResetPassword": False},
        )

    async def get_active_sessions(self) -> List[JellyfinSession]:
        data = await self._request("GET", "/Sessions", "fetch active sessions")
        return [JellyfinSession.model_validate(item) for item in data or []]
