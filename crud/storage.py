"""
Storage repository interface for local users, trial records and trial settings.

Three interchangeable backends implement TrialStorage:
- MemoryStorage (crud/memory_storage.py)
- SqlStorage (crud/sql_storage.py)
- MongoStorage (crud/mongo_storage.py)

create_storage() picks one at startup from configuration.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from config.settings import Settings, BACKEND_MEMORY, BACKEND_SQL, BACKEND_MONGO
from models.trial import TrialSettings, TrialSettingsUpdate, TrialUserRecord
from models.user import LocalUser

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base class for storage failures; every backend raises only these."""


class StorageConnectionError(StorageError):
    """The backing store could not be reached or failed mid-operation."""


class DuplicateRecordError(StorageError):
    """A record with the same unique key already exists."""


class TrialStorage(ABC):
    """
    Repository contract shared by all storage backends.
    Switching backends must be transparent to callers.
    """

    # Local user mirror

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[LocalUser]:
        ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> Optional[LocalUser]:
        ...

    @abstractmethod
    async def create_user(self, username: str, password_hash: str) -> LocalUser:
        """Raises DuplicateRecordError if the username is taken."""

    # Trial users

    @abstractmethod
    async def get_trial_user(self, username: str) -> Optional[TrialUserRecord]:
        ...

    @abstractmethod
    async def get_all_trial_users(self) -> List[TrialUserRecord]:
        ...

    @abstractmethod
    async def get_expired_trial_users(self) -> List[TrialUserRecord]:
        """
        Records already flagged expired OR whose expiry date has passed.
        Callers re-derive the authoritative check themselves.
        """

    @abstractmethod
    async def create_trial_user(
        self,
        username: str,
        signup_date: datetime,
        expiry_date: datetime,
        trial_duration_days: int,
    ) -> TrialUserRecord:
        """Raises DuplicateRecordError if the username already has a record."""

    @abstractmethod
    async def mark_trial_user_expired(self, username: str) -> None:
        """No-op if the username has no record."""

    @abstractmethod
    async def delete_trial_user(self, username: str) -> None:
        """No-op if the username has no record."""

    # Trial settings

    @abstractmethod
    async def get_trial_settings(self) -> TrialSettings:
        """Return the singleton, creating and persisting defaults on first read."""

    @abstractmethod
    async def update_trial_settings(self, update: TrialSettingsUpdate) -> TrialSettings:
        """Merge the provided fields into the singleton (upserting defaults)."""

    async def close(self) -> None:
        """Release connections held by the backend."""


def resolve_backend(settings: Settings) -> str:
    """Storage backend name from STORAGE_BACKEND or the shape of DATABASE_URL."""
    if settings.storage_backend:
        backend = settings.storage_backend.strip().lower()
        if backend not in (BACKEND_MEMORY, BACKEND_SQL, BACKEND_MONGO):
            raise ValueError(f"Unknown STORAGE_BACKEND '{settings.storage_backend}'")
        return backend
    url = settings.database_url
    if not url:
        return BACKEND_MEMORY
    if url.startswith("mongodb://") or url.startswith("mongodb+srv://"):
        return BACKEND_MONGO
    return BACKEND_SQL


async def create_storage(settings: Settings, is_production: bool = False) -> TrialStorage:
    """
    Build and initialize the configured storage backend.
    Imports are deferred so unused drivers need not be installed.
    """
    backend = resolve_backend(settings)

    if is_production and backend == BACKEND_MEMORY:
        raise RuntimeError("DATABASE_URL must be set in production. In-memory storage is not allowed in production.")

    if backend == BACKEND_MEMORY:
        from crud.memory_storage import MemoryStorage
        logger.info("Using in-memory storage for development")
        return MemoryStorage()

    if backend == BACKEND_MONGO:
        from crud.mongo_storage import MongoStorage
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is required for MongoDB storage")
        storage = MongoStorage(settings.database_url, settings.mongodb_database)
        await storage.initialize()
        logger.info("Database Configuration: MongoDB")
        return storage

    from crud.sql_storage import SqlStorage
    from database import DEFAULT_SQLITE_URL
    url = settings.database_url or DEFAULT_SQLITE_URL
    if is_production and "sqlite" in url.lower():
        raise RuntimeError("SQLite is forbidden in production. Use a PostgreSQL DATABASE_URL.")
    storage = SqlStorage.from_url(url)
    await storage.initialize()
    logger.info("Database Configuration: SQL")
    return storage
