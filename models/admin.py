"""
Admin request models
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AdminLoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class UserAction(str, Enum):
    DELETE = "delete"
    ENABLE = "enable"
    DISABLE = "disable"
    RESET_PASSWORD = "reset-password"
    BULK_DISABLE = "bulk-disable"


class UserActionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: UserAction
    user_id: Optional[str] = Field(default=None, alias="userId", min_length=1)
    user_ids: Optional[List[str]] = Field(default=None, alias="userIds")
    new_password: Optional[str] = Field(default=None, alias="newPassword")
