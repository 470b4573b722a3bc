"""
Document-store backend (MongoDB through PyMongo's asyncio client)
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, AsyncMongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from crud.storage import DuplicateRecordError, StorageConnectionError, TrialStorage
from models.trial import TrialSettings, TrialSettingsUpdate, TrialUserRecord
from models.user import LocalUser
from utils.shared_utils import utcnow

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
TRIAL_USERS_COLLECTION = "trial_users"
TRIAL_SETTINGS_COLLECTION = "trial_settings"


def _to_local_user(doc: Dict[str, Any]) -> LocalUser:
    return LocalUser(
        id=str(doc["_id"]),
        username=doc["username"],
        password_hash=doc["password_hash"],
        created_at=doc.get("created_at"),
    )


def _to_trial_record(doc: Dict[str, Any]) -> TrialUserRecord:
    return TrialUserRecord(
        id=str(doc["_id"]),
        username=doc["username"],
        signup_date=doc["signup_date"],
        expiry_date=doc["expiry_date"],
        is_expired=doc.get("is_expired", False),
        trial_duration_days=doc["trial_duration_days"],
        created_at=doc.get("created_at"),
    )


def _to_trial_settings(doc: Dict[str, Any]) -> TrialSettings:
    return TrialSettings(
        id=str(doc["_id"]),
        is_trial_mode_enabled=doc["is_trial_mode_enabled"],
        trial_duration_days=doc["trial_duration_days"],
        expiry_action=doc["expiry_action"],
        updated_at=doc.get("updated_at"),
    )


def _default_settings_document() -> Dict[str, Any]:
    defaults = TrialSettings()
    return {
        "is_trial_mode_enabled": defaults.is_trial_mode_enabled,
        "trial_duration_days": defaults.trial_duration_days,
        "expiry_action": defaults.expiry_action.value,
    }


class MongoStorage(TrialStorage):
    """
    Repository over three MongoDB collections.
    Unique indexes on username give the same duplicate semantics as SQL.
    """

    def __init__(
        self,
        url: str,
        database_name: str,
        client: Optional[AsyncMongoClient] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        # tz_aware=False keeps datetimes naive UTC like the other backends
        self._client = client or AsyncMongoClient(url, tz_aware=False, serverSelectionTimeoutMS=5000)
        self._db = self._client[database_name]
        self._users = self._db[USERS_COLLECTION]
        self._trial_users = self._db[TRIAL_USERS_COLLECTION]
        self._trial_settings = self._db[TRIAL_SETTINGS_COLLECTION]
        self._clock = clock

    async def initialize(self) -> None:
        try:
            await self._users.create_index([("username", ASCENDING)], unique=True)
            await self._trial_users.create_index([("username", ASCENDING)], unique=True)
            await self._trial_users.create_index([("expiry_date", ASCENDING)])
            logger.info("MongoDB connected successfully")
        except PyMongoError as e:
            logger.error(f"MongoDB connection failed: {e}")
            raise StorageConnectionError(f"MongoDB connection failed: {e}") from e

    async def close(self) -> None:
        await self._client.close()

    # Local user mirror

    async def get_user(self, user_id: str) -> Optional[LocalUser]:
        try:
            object_id = ObjectId(user_id)
        except (InvalidId, TypeError):
            return None
        try:
            doc = await self._users.find_one({"_id": object_id})
        except PyMongoError as e:
            raise StorageConnectionError(str(e)) from e
        return _to_local_user(doc) if doc else None

    async def get_user_by_username(self, username: str) -> Optional[LocalUser]:
        try:
            doc = await self._users.find_one({"username": username})
        except PyMongoError as e:
            raise StorageConnectionError(str(e)) from e
        return _to_local_user(doc) if doc else None

    async def create_user(self, username: str, password_hash: str) -> LocalUser:
        doc = {"username": username, "password_hash": password_hash, "created_at": self._clock()}
        try:
            result = await self._users.insert_one(doc)
        except DuplicateKeyError as e:
            raise DuplicateRecordError(f"User '{username}' already exists") from e
        except PyMongoError as e:
            raise StorageConnectionError(str(e)) from e
        doc["_id"] = result.inserted_id
        return _to_local_user(doc)

    # Trial users

    async def _find_trial_users(self, query: Dict[str, Any]) -> List[TrialUserRecord]:
        try:
            cursor = self._trial_users.find(query).sort("_id", ASCENDING)
            docs = await cursor.to_list(None)
        except PyMongoError as e:
            raise StorageConnectionError(str(e)) from e
        return [_to_trial_record(doc) for doc in docs]

    async def get_trial_user(self, username: str) -> Optional[TrialUserRecord]:
        try:
            doc = await self._trial_users.find_one({"username": username})
        except PyMongoError as e:
            raise StorageConnectionError(str(e)) from e
        return _to_trial_record(doc) if doc else None

    async def get_all_trial_users(self) -> List[TrialUserRecord]:
        return await self._find_trial_users({})

    async def get_expired_trial_users(self) -> List[TrialUserRecord]:
        now = self._clock()
        return await self._find_trial_users(
            {"$or": [{"is_expired": True}, {"expiry_date": {"$lte": now}}]}
        )

    async def create_trial_user(
        self,
        username: str,
        signup_date: datetime,
        expiry_date: datetime,
        trial_duration_days: int,
    ) -> TrialUserRecord:
        doc = {
            "username": username,
            "signup_date": signup_date,
            "expiry_date": expiry_date,
            "is_expired": False,
            "trial_duration_days": trial_duration_days,
            "created_at": self._clock(),
        }
        try:
            result = await self._trial_users.insert_one(doc)
        except DuplicateKeyError as e:
            raise DuplicateRecordError(f"Trial user '{username}' already exists") from e
        except PyMongoError as e:
            raise StorageConnectionError(str(e)) from e
        doc["_id"] = result.inserted_id
        return _to_trial_record(doc)

    async def mark_trial_user_expired(self, username: str) -> None:
        try:
            await self._trial_users.update_one({"username": username}, {"$set": {"is_expired": True}})
        except PyMongoError as e:
            raise StorageConnectionError(str(e)) from e

    async def delete_trial_user(self, username: str) -> None:
        try:
            await self._trial_users.delete_one({"username": username})
        except PyMongoError as e:
            raise StorageConnectionError(str(e)) from e

    # Trial settings

    async def get_trial_settings(self) -> TrialSettings:
        try:
            doc = await self._trial_settings.find_one({}, sort=[("_id", ASCENDING)])
            if doc is None:
                doc = {**_default_settings_document(), "updated_at": self._clock()}
                result = await self._trial_settings.insert_one(doc)
                doc["_id"] = result.inserted_id
                logger.info("Trial settings initialized with defaults")
        except PyMongoError as e:
            raise StorageConnectionError(str(e)) from e
        return _to_trial_settings(doc)

    async def update_trial_settings(self, update: TrialSettingsUpdate) -> TrialSettings:
        provided = {
            key: (value.value if hasattr(value, "value") else value)
            for key, value in update.provided_fields().items()
        }
        on_insert = {
            key: value for key, value in _default_settings_document().items() if key not in provided
        }
        update_doc: Dict[str, Any] = {"$set": {**provided, "updated_at": self._clock()}}
        if on_insert:
            update_doc["$setOnInsert"] = on_insert
        try:
            doc = await self._trial_settings.find_one_and_update(
                {},
                update_doc,
                sort=[("_id", ASCENDING)],
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise StorageConnectionError(str(e)) from e
        return _to_trial_settings(doc)
