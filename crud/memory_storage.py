"""
In-memory storage backend, used for development when no DATABASE_URL is set
"""
import itertools
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from crud.storage import DuplicateRecordError, TrialStorage
from models.trial import TrialSettings, TrialSettingsUpdate, TrialUserRecord
from models.user import LocalUser
from utils.shared_utils import utcnow

logger = logging.getLogger(__name__)


class MemoryStorage(TrialStorage):
    """
    Process-local storage keyed by username.
    Records are copied on the way in and out so callers never share state.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._users: Dict[str, LocalUser] = {}
        self._trial_users: Dict[str, TrialUserRecord] = {}
        self._trial_settings: Optional[TrialSettings] = None
        self._user_ids = itertools.count(1)
        self._trial_ids = itertools.count(1)

    async def get_user(self, user_id: str) -> Optional[LocalUser]:
        for user in self._users.values():
            if user.id == str(user_id):
                return user.model_copy()
        return None

    async def get_user_by_username(self, username: str) -> Optional[LocalUser]:
        user = self._users.get(username)
        return user.model_copy() if user else None

    async def create_user(self, username: str, password_hash: str) -> LocalUser:
        if username in self._users:
            raise DuplicateRecordError(f"User '{username}' already exists")
        user = LocalUser(
            id=str(next(self._user_ids)),
            username=username,
            password_hash=password_hash,
            created_at=self._clock(),
        )
        self._users[username] = user
        return user.model_copy()

    async def get_trial_user(self, username: str) -> Optional[TrialUserRecord]:
        record = self._trial_users.get(username)
        return record.model_copy() if record else None

    async def get_all_trial_users(self) -> List[TrialUserRecord]:
        return [record.model_copy() for record in self._trial_users.values()]

    async def get_expired_trial_users(self) -> List[TrialUserRecord]:
        now = self._clock()
        return [
            record.model_copy()
            for record in self._trial_users.values()
            if record.is_expired or record.expiry_date <= now
        ]

    async def create_trial_user(
        self,
        username: str,
        signup_date: datetime,
        expiry_date: datetime,
        trial_duration_days: int,
    ) -> TrialUserRecord:
        if username in self._trial_users:
            raise DuplicateRecordError(f"Trial user '{username}' already exists")
        record = TrialUserRecord(
            id=str(next(self._trial_ids)),
            username=username,
            signup_date=signup_date,
            expiry_date=expiry_date,
            is_expired=False,
            trial_duration_days=trial_duration_days,
            created_at=self._clock(),
        )
        self._trial_users[username] = record
        return record.model_copy()

    async def mark_trial_user_expired(self, username: str) -> None:
        record = self._trial_users.get(username)
        if record is not None:
            self._trial_users[username] = record.model_copy(update={"is_expired": True})

    async def delete_trial_user(self, username: str) -> None:
        self._trial_users.pop(username, None)

    async def get_trial_settings(self) -> TrialSettings:
        if self._trial_settings is None:
            self._trial_settings = TrialSettings(id="1", updated_at=self._clock())
            logger.info("Trial settings initialized with defaults")
        return self._trial_settings.model_copy()

    async def update_trial_settings(self, update: TrialSettingsUpdate) -> TrialSettings:
        current = await self.get_trial_settings()
        self._trial_settings = current.model_copy(
            update={**update.provided_fields(), "updated_at": self._clock()}
        )
        return self._trial_settings.model_copy()
