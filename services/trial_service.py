"""
Trial Service for time-limited signups and the expiry sweep
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from crud.storage import TrialStorage
from models.trial import (
    ExpiryAction,
    SweepFailure,
    SweepSummary,
    TrialSettings,
    TrialStatus,
    TrialUserRecord,
)
from services.jellyfin_client import JellyfinClient
from utils.shared_utils import utcnow

logger = logging.getLogger(__name__)

# Trials with less than this left are reported as expiring
EXPIRING_WINDOW = timedelta(hours=24)


def compute_expiry(signup_date: datetime, duration_days: int) -> datetime:
    return signup_date + timedelta(days=duration_days)


def is_expired(record: TrialUserRecord, now: datetime) -> bool:
    """A trial has expired once now reaches its expiry date."""
    return now >= record.expiry_date


def classify(record: TrialUserRecord, now: datetime) -> TrialStatus:
    if record.is_expired or is_expired(record, now):
        return TrialStatus.EXPIRED
    if record.expiry_date - now <= EXPIRING_WINDOW:
        return TrialStatus.EXPIRING
    return TrialStatus.ACTIVE


def days_remaining(record: TrialUserRecord, now: datetime) -> int:
    """Whole days left in the trial, never negative."""
    remaining = (record.expiry_date - now).total_seconds() / 86400
    return max(0, int(remaining))


def describe_trial(record: TrialUserRecord, now: datetime) -> dict:
    """Record plus its derived status, for admin views."""
    return {
        **record.model_dump(),
        "status": classify(record, now).value,
        "days_remaining": days_remaining(record, now),
    }


class TrialService:
    """
    Service for managing user trial periods.
    Handles enrollment at signup and the periodic expiry sweep.
    """

    def __init__(
        self,
        storage: TrialStorage,
        jellyfin: JellyfinClient,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            storage: Repository holding trial records and settings
            jellyfin: Client used to disable or delete upstream accounts
            clock: Source of the current naive UTC time
        """
        self.storage = storage
        self.jellyfin = jellyfin
        self.clock = clock

    async def enroll(self, username: str, settings: Optional[TrialSettings] = None) -> Optional[TrialUserRecord]:
        """
        Create a trial record for a freshly signed-up user.

        Returns None when trial mode is disabled. The expiry date is fixed
        here; later settings changes never touch existing records.
        """
        settings = settings or await self.storage.get_trial_settings()
        if not settings.is_trial_mode_enabled:
            return None

        # Whole seconds so every backend stores the dates losslessly
        signup_date = self.clock().replace(microsecond=0)
        expiry_date = compute_expiry(signup_date, settings.trial_duration_days)
        record = await self.storage.create_trial_user(
            username=username,
            signup_date=signup_date,
            expiry_date=expiry_date,
            trial_duration_days=settings.trial_duration_days,
        )
        logger.info(f"Trial started for {username}: {settings.trial_duration_days} days, expires {expiry_date.isoformat()}")
        return record

    async def list_trials(self) -> list:
        now = self.clock()
        return [describe_trial(record, now) for record in await self.storage.get_all_trial_users()]

    async def process_expired_trials(self) -> SweepSummary:
        """
        Apply the configured expiry action to every trial past its date.

        Each record is handled independently: an upstream or storage error
        on one record is counted and logged, and the sweep moves on.
        """
        settings = await self.storage.get_trial_settings()
        now = self.clock()
        summary = SweepSummary()

        for record in await self.storage.get_expired_trial_users():
            if record.is_expired or not is_expired(record, now):
                summary.skipped += 1
                continue
            try:
                await self._expire(record, settings.expiry_action)
            except Exception as e:
                summary.failed += 1
                summary.failures.append(SweepFailure(username=record.username, error=str(e)))
                logger.error(f"Failed to expire trial for {record.username}: {e}")
                continue

            summary.processed += 1
            if settings.expiry_action == ExpiryAction.DELETE:
                summary.deleted += 1
            else:
                summary.disabled += 1

        logger.info(f"Trial expiry sweep: {summary.message}")
        return summary

    async def _expire(self, record: TrialUserRecord, action: ExpiryAction) -> None:
        user = await self.jellyfin.get_user_by_name(record.username)
        if user is None:
            logger.warning(f"Jellyfin account for expired trial {record.username} no longer exists")

        if action == ExpiryAction.DELETE:
            if user is not None:
                await self.jellyfin.delete_user(user.id)
            await self.storage.delete_trial_user(record.username)
            logger.info(f"Deleted expired trial user {record.username}")
        else:
            if user is not None:
                await self.jellyfin.set_user_disabled(user.id, True)
            await self.storage.mark_trial_user_expired(record.username)
            logger.info(f"Disabled expired trial user {record.username}")
