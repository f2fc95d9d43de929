"""Profile store over MongoDB.

Every operation returns a :class:`StoreResult`. When the database is not
configured or could not be reached at startup the store stays in mock mode
and every result is ``UNAVAILABLE``; the HTTP layer answers those with
synthetic defaults instead of failing.
"""
import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from bson import ObjectId
from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from courserag import config
from courserag.errors import InternalError

logger = structlog.get_logger()

USERS = "users"
PREFERENCES = "preferences"
ANALYTICS = "analytics"
FEEDBACK = "feedback"

DEFAULT_CONTENT_PREFERENCES = {
    "difficultyLevel": "medium",
    "explanationStyle": "detailed",
    "contentFormat": "text",
    "language": "english",
}


class StoreStatus(enum.Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class StoreResult:
    status: StoreStatus
    value: Any = None

    @classmethod
    def found(cls, value: Any = None) -> "StoreResult":
        return cls(StoreStatus.OK, value)

    @classmethod
    def missing(cls) -> "StoreResult":
        return cls(StoreStatus.NOT_FOUND)

    @classmethod
    def unavailable(cls) -> "StoreResult":
        return cls(StoreStatus.UNAVAILABLE)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


def _user_filter(user_id: str) -> Dict[str, Any]:
    # Users created outside this service may carry plain string ids
    if ObjectId.is_valid(user_id):
        return {"_id": ObjectId(user_id)}
    return {"_id": user_id}


def profile_from_document(user: Dict[str, Any]) -> Dict[str, Any]:
    """Public profile shape of a stored user document."""
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "softwareExperience": user.get("softwareExperience") or "",
        "hardwareExperience": user.get("hardwareExperience") or "",
        "roboticsBackground": user.get("roboticsBackground") or "",
        "learningGoals": user.get("learningGoals") or "",
        "preferredLanguage": user.get("preferredLanguage") or "english",
        "createdAt": _iso(user.get("createdAt")),
        "lastActive": _iso(user.get("lastActive")) or _now(),
    }


class ProfileStore:
    """User profiles, content preferences, analytics and feedback records."""

    def __init__(
        self,
        url: Optional[str] = None,
        database: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ):
        """Initialize the store (no connection is made until :meth:`connect`).

        Args:
            url: MongoDB connection string (default from config)
            database: Database name (default from config)
            timeout_ms: Server selection timeout (default: REQUEST_TIMEOUT)
        """
        self.url = url or config.MONGODB_URL
        self.database_name = database or config.MONGODB_DATABASE
        self.timeout_ms = timeout_ms or int(config.REQUEST_TIMEOUT * 1000)
        self._client: Optional[AsyncMongoClient] = None
        self._db = None

    @classmethod
    def from_database(cls, db) -> "ProfileStore":
        """Wrap an already-open database handle."""
        store = cls()
        store._db = db
        return store

    @property
    def available(self) -> bool:
        return self._db is not None

    async def connect(self) -> bool:
        """Connect and ping the database.

        Returns:
            True when connected; False means the store runs in mock mode
        """
        if not (self.url and self.database_name):
            logger.warning("profile_store_not_configured", mode="mock")
            return False

        client = AsyncMongoClient(self.url, serverSelectionTimeoutMS=self.timeout_ms)
        try:
            await client.admin.command("ping")
        except PyMongoError as e:
            logger.warning("profile_store_connect_failed", error=str(e), mode="mock")
            await client.close()
            return False

        self._client = client
        self._db = client[self.database_name]
        logger.info("profile_store_connected", database=self.database_name)
        return True

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            logger.info("profile_store_closed")
        self._client = None
        self._db = None

    def _failed(self, operation: str, error: PyMongoError) -> InternalError:
        logger.error("profile_store_operation_failed", operation=operation, error=str(error))
        return InternalError("Internal server error", retryable=True)

    async def get_profile(self, user_id: str) -> StoreResult:
        """Fetch a user's public profile.

        Raises:
            InternalError: If the database operation fails
        """
        if not self.available:
            return StoreResult.unavailable()
        try:
            user = await self._db[USERS].find_one(_user_filter(user_id))
        except PyMongoError as e:
            raise self._failed("get_profile", e) from e
        if not user:
            return StoreResult.missing()
        return StoreResult.found(profile_from_document(user))

    async def _update_user(self, operation: str, user_id: str, fields: Dict[str, Any]) -> StoreResult:
        if not self.available:
            return StoreResult.unavailable()
        try:
            result = await self._db[USERS].update_one(_user_filter(user_id), {"$set": fields})
        except PyMongoError as e:
            raise self._failed(operation, e) from e
        if result.matched_count == 0:
            return StoreResult.missing()
        logger.info("user_updated", operation=operation, user_id=user_id)
        return StoreResult.found()

    async def update_preferences(self, user_id: str, preferences: Dict[str, Any]) -> StoreResult:
        """Replace a user's general preferences."""
        return await self._update_user(
            "update_preferences",
            user_id,
            {"preferences": preferences, "lastUpdated": _now()},
        )

    async def save_background(self, user_id: str, background: Dict[str, Any]) -> StoreResult:
        """Store a user's background questionnaire answers."""
        return await self._update_user("save_background", user_id, dict(background))

    async def get_content_preferences(self, user_id: str, content_id: str) -> StoreResult:
        """Preferences for one piece of content, defaults filled in."""
        if not self.available:
            return StoreResult.unavailable()
        try:
            record = await self._db[PREFERENCES].find_one({"userId": user_id, "contentId": content_id})
        except PyMongoError as e:
            raise self._failed("get_content_preferences", e) from e
        if not record:
            return StoreResult.missing()
        return StoreResult.found({**DEFAULT_CONTENT_PREFERENCES, **(record.get("preferences") or {})})

    async def save_content_preferences(
        self, user_id: str, content_id: str, preferences: Dict[str, Any]
    ) -> StoreResult:
        if not self.available:
            return StoreResult.unavailable()
        try:
            await self._db[PREFERENCES].update_one(
                {"userId": user_id, "contentId": content_id},
                {"$set": {"preferences": preferences, "updatedAt": _now()}},
                upsert=True,
            )
        except PyMongoError as e:
            raise self._failed("save_content_preferences", e) from e
        return StoreResult.found(preferences)

    async def record_event(self, collection: str, document: Dict[str, Any]) -> StoreResult:
        """Insert an analytics or feedback record stamped with the current time."""
        if not self.available:
            return StoreResult.unavailable()
        try:
            result = await self._db[collection].insert_one({**document, "timestamp": _now()})
        except PyMongoError as e:
            raise self._failed("record_event", e) from e
        return StoreResult.found(str(result.inserted_id))
