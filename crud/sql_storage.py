"""
Relational storage backend (SQLite via aiosqlite, PostgreSQL via asyncpg)
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, List, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from crud.storage import DuplicateRecordError, StorageConnectionError, StorageError, TrialStorage
from database import create_engine_for_url, create_session_factory, init_db
from database_models import TrialSettings as TrialSettingsRow
from database_models import TrialUser, User
from models.trial import TrialSettings, TrialSettingsUpdate, TrialUserRecord
from models.user import LocalUser
from utils.shared_utils import utcnow

logger = logging.getLogger(__name__)


def _to_local_user(row: User) -> LocalUser:
    return LocalUser(
        id=str(row.id),
        username=row.username,
        password_hash=row.password_hash,
        created_at=row.created_at,
    )


def _to_trial_record(row: TrialUser) -> TrialUserRecord:
    return TrialUserRecord(
        id=str(row.id),
        username=row.username,
        signup_date=row.signup_date,
        expiry_date=row.expiry_date,
        is_expired=row.is_expired,
        trial_duration_days=row.trial_duration_days,
        created_at=row.created_at,
    )


def _to_trial_settings(row: TrialSettingsRow) -> TrialSettings:
    return TrialSettings(
        id=str(row.id),
        is_trial_mode_enabled=row.is_trial_mode_enabled,
        trial_duration_days=row.trial_duration_days,
        expiry_action=row.expiry_action,
        updated_at=row.updated_at,
    )


class SqlStorage(TrialStorage):
    """
    Repository over async SQLAlchemy.
    Each operation runs in its own session and commits on success.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        engine: Optional[AsyncEngine] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            session_factory: async_sessionmaker producing AsyncSession objects
            engine: Engine to create tables on and dispose at close (optional)
            clock: Source of "now" for the expired-records read
        """
        self._session_factory = session_factory
        self._engine = engine
        self._clock = clock

    @classmethod
    def from_url(cls, url: str) -> "SqlStorage":
        engine = create_engine_for_url(url)
        return cls(create_session_factory(engine), engine=engine)

    async def initialize(self) -> None:
        if self._engine is None:
            return
        try:
            await init_db(self._engine)
        except SQLAlchemyError as e:
            raise StorageConnectionError(f"Database initialization failed: {e}") from e

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session, commit on success and translate driver errors."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateRecordError(str(e.orig)) from e
            except StorageError:
                await session.rollback()
                raise
            except SQLAlchemyError as e:
                await session.rollback()
                raise StorageConnectionError(f"Database operation failed: {e}") from e

    # Local user mirror

    async def get_user(self, user_id: str) -> Optional[LocalUser]:
        try:
            numeric_id = int(user_id)
        except (TypeError, ValueError):
            return None
        async with self._session() as session:
            row = await session.get(User, numeric_id)
            return _to_local_user(row) if row else None

    async def get_user_by_username(self, username: str) -> Optional[LocalUser]:
        async with self._session() as session:
            result = await session.execute(select(User).where(User.username == username))
            row = result.scalar_one_or_none()
            return _to_local_user(row) if row else None

    async def create_user(self, username: str, password_hash: str) -> LocalUser:
        async with self._session() as session:
            row = User(username=username, password_hash=password_hash, created_at=self._clock())
            session.add(row)
            await session.flush()  # Flush to surface unique violations and get the ID
            return _to_local_user(row)

    # Trial users

    async def get_trial_user(self, username: str) -> Optional[TrialUserRecord]:
        async with self._session() as session:
            result = await session.execute(select(TrialUser).where(TrialUser.username == username))
            row = result.scalar_one_or_none()
            return _to_trial_record(row) if row else None

    async def get_all_trial_users(self) -> List[TrialUserRecord]:
        async with self._session() as session:
            result = await session.execute(select(TrialUser).order_by(TrialUser.id))
            return [_to_trial_record(row) for row in result.scalars().all()]

    async def get_expired_trial_users(self) -> List[TrialUserRecord]:
        now = self._clock()
        async with self._session() as session:
            result = await session.execute(
                select(TrialUser)
                .where(or_(TrialUser.is_expired.is_(True), TrialUser.expiry_date <= now))
                .order_by(TrialUser.id)
            )
            return [_to_trial_record(row) for row in result.scalars().all()]

    async def create_trial_user(
        self,
        username: str,
        signup_date: datetime,
        expiry_date: datetime,
        trial_duration_days: int,
    ) -> TrialUserRecord:
        async with self._session() as session:
            row = TrialUser(
                username=username,
                signup_date=signup_date,
                expiry_date=expiry_date,
                is_expired=False,
                trial_duration_days=trial_duration_days,
                created_at=self._clock(),
            )
            session.add(row)
            await session.flush()
            return _to_trial_record(row)

    async def mark_trial_user_expired(self, username: str) -> None:
        async with self._session() as session:
            await session.execute(
                update(TrialUser).where(TrialUser.username == username).values(is_expired=True)
            )

    async def delete_trial_user(self, username: str) -> None:
        async with self._session() as session:
            await session.execute(delete(TrialUser).where(TrialUser.username == username))

    # Trial settings

    async def _get_or_create_settings_row(self, session: AsyncSession) -> TrialSettingsRow:
        result = await session.execute(select(TrialSettingsRow).order_by(TrialSettingsRow.id).limit(1))
        row = result.scalar_one_or_none()
        if row is None:
            defaults = TrialSettings()
            row = TrialSettingsRow(
                is_trial_mode_enabled=defaults.is_trial_mode_enabled,
                trial_duration_days=defaults.trial_duration_days,
                expiry_action=defaults.expiry_action.value,
                updated_at=self._clock(),
            )
            session.add(row)
            await session.flush()
            logger.info("Trial settings initialized with defaults")
        return row

    async def get_trial_settings(self) -> TrialSettings:
        async with self._session() as session:
            row = await self._get_or_create_settings_row(session)
            return _to_trial_settings(row)

    async def update_trial_settings(self, update: TrialSettingsUpdate) -> TrialSettings:
        async with self._session() as session:
            row = await self._get_or_create_settings_row(session)
            for key, value in update.provided_fields().items():
                setattr(row, key, value.value if hasattr(value, "value") else value)
            row.updated_at = self._clock()
            await session.flush()
            return _to_trial_settings(row)
