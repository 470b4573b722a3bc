"""
Upstream Jellyfin payloads and signup request models
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from utils.security_utils import validate_password_strength, validate_username


class JellyfinPolicy(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    is_administrator: bool = Field(default=False, alias="IsAdministrator")
    is_disabled: bool = Field(default=False, alias="IsDisabled")
    enable_content_downloading: bool = Field(default=True, alias="EnableContentDownloading")


class JellyfinUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="Id")
    name: str = Field(alias="Name")
    # Jellyfin emits 7-digit fractional seconds; kept as the raw string
    last_login_date: Optional[str] = Field(default=None, alias="LastLoginDate")
    last_activity_date: Optional[str] = Field(default=None, alias="LastActivityDate")
    policy: JellyfinPolicy = Field(default_factory=JellyfinPolicy, alias="Policy")

    def summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_disabled": self.policy.is_disabled,
            "is_administrator": self.policy.is_administrator,
            "can_download": self.policy.enable_content_downloading,
            "last_login_date": self.last_login_date,
            "last_activity_date": self.last_activity_date,
        }


class NowPlayingItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = Field(default=None, alias="Name")


class JellyfinSession(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: Optional[str] = Field(default=None, alias="UserId")
    user_name: Optional[str] = Field(default=None, alias="UserName")
    remote_end_point: Optional[str] = Field(default=None, alias="RemoteEndPoint")
    client: Optional[str] = Field(default=None, alias="Client")
    device_name: Optional[str] = Field(default=None, alias="DeviceName")
    now_playing_item: Optional[NowPlayingItem] = Field(default=None, alias="NowPlayingItem")

    @property
    def device_info(self) -> str:
        return f"{self.client or 'Unknown'} on {self.device_name or 'Unknown Device'}"

    @property
    def activity(self) -> str:
        if self.now_playing_item and self.now_playing_item.name:
            return f"Watching: {self.now_playing_item.name}"
        return "Browsing"


class SignupRequest(BaseModel):
    username: str
    password: str

    @field_validator("username")
    @classmethod
    def check_username(cls, value: str) -> str:
        return validate_username(value)

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        validate_password_strength(value)
        return value
