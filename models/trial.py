"""
Trial bookkeeping models
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

DEFAULT_TRIAL_ENABLED = True
DEFAULT_TRIAL_DURATION_DAYS = 7
MIN_TRIAL_DURATION_DAYS = 1
MAX_TRIAL_DURATION_DAYS = 30


class ExpiryAction(str, Enum):
    DISABLE = "disable"
    DELETE = "delete"


class TrialStatus(str, Enum):
    ACTIVE = "active"
    EXPIRING = "expiring"
    EXPIRED = "expired"


class TrialUserRecord(BaseModel):
    id: Optional[str] = None
    username: str
    signup_date: datetime
    expiry_date: datetime
    is_expired: bool = False
    trial_duration_days: int
    created_at: Optional[datetime] = None


class TrialSettings(BaseModel):
    id: Optional[str] = None
    is_trial_mode_enabled: bool = DEFAULT_TRIAL_ENABLED
    trial_duration_days: int = Field(
        default=DEFAULT_TRIAL_DURATION_DAYS, ge=MIN_TRIAL_DURATION_DAYS, le=MAX_TRIAL_DURATION_DAYS
    )
    expiry_action: ExpiryAction = ExpiryAction.DISABLE
    updated_at: Optional[datetime] = None


class TrialSettingsUpdate(BaseModel):
    """Partial settings update; omitted fields keep their stored value."""
    is_trial_mode_enabled: Optional[bool] = None
    trial_duration_days: Optional[int] = Field(
        default=None, ge=MIN_TRIAL_DURATION_DAYS, le=MAX_TRIAL_DURATION_DAYS
    )
    expiry_action: Optional[ExpiryAction] = None

    def provided_fields(self) -> dict:
        return self.model_dump(exclude_none=True)


class SweepFailure(BaseModel):
    username: str
    error: str


class SweepSummary(BaseModel):
    processed: int = 0
    failed: int = 0
    disabled: int = 0
    deleted: int = 0
    skipped: int = 0
    failures: List[SweepFailure] = Field(default_factory=list)

    @property
    def message(self) -> str:
        return f"processed {self.processed}, failed {self.failed}"
