"""
Record store for the ``users`` collection.
"""
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from numbers import Real
from typing import Any, Dict, List, Optional

from loguru import logger
from pymongo import ASCENDING, DESCENDING
from pymongo import errors as mongo_errors

from .errors import DuplicateKeyError, StoreError, StoreUnavailableError, ValidationError

USERS_COLLECTION = "users"
DEFAULT_LIST_LIMIT = 10


# --- Data Models ---
@dataclass
class UserRecord:
    """A persisted user document."""
    id: Any
    name: str
    email: str
    age: float
    created_at: datetime

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "UserRecord":
        return cls(
            id=doc["_id"],
            name=doc["name"],
            email=doc["email"],
            age=doc["age"],
            created_at=doc["createdAt"],
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert the record to its JSON-friendly form."""
        return {
            "_id": str(self.id),
            "name": self.name,
            "email": self.email,
            "age": self.age,
            "createdAt": self.created_at.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, default=str)


def records_to_json(records: List[UserRecord]) -> str:
    return json.dumps([r.to_dict() for r in records], indent=2, default=str)


def _validate_user(name: Any, email: Any, age: Any) -> None:
    for field, value in (("name", name), ("email", email)):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"User validation failed: {field}: Path `{field}` is required.")
    if age is None:
        raise ValidationError("User validation failed: age: Path `age` is required.")
    if isinstance(age, bool) or not isinstance(age, Real):
        raise ValidationError(f"User validation failed: age: Cast to Number failed for value {age!r}")


def _stamp_now() -> datetime:
    """Current UTC time rounded up to the millisecond BSON can hold."""
    now = datetime.now(timezone.utc)
    rest = now.microsecond % 1000
    return now + timedelta(microseconds=1000 - rest) if rest else now


def _to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def _translate(error: mongo_errors.PyMongoError) -> StoreError:
    if isinstance(error, mongo_errors.DuplicateKeyError):
        return DuplicateKeyError(str(error))
    if isinstance(error, mongo_errors.ConnectionFailure):
        return StoreUnavailableError(str(error))
    return StoreError(str(error))


# --- Record Store ---
class UserStore:
    """Insert and query user documents in a single collection."""

    def __init__(self, collection):
        self._collection = collection

    async def ensure_indexes(self) -> None:
        """Create the unique email index if it does not exist yet."""
        try:
            await self._collection.create_index([("email", ASCENDING)], unique=True)
        except mongo_errors.PyMongoError as e:
            logger.error(f"Failed to create email index: {e}")
            raise _translate(e) from e
        logger.debug("Unique index on users.email is in place.")

    async def insert(
        self, name: str, email: str, age: float, created_at: Optional[datetime] = None
    ) -> UserRecord:
        """Insert a new user. Email uniqueness is left to the index."""
        _validate_user(name, email, age)
        doc = {
            "name": name,
            "email": email,
            "age": age,
            "createdAt": _to_millis(created_at) if created_at else _stamp_now(),
        }
        try:
            result = await self._collection.insert_one(doc)
        except mongo_errors.PyMongoError as e:
            logger.warning(f"Insert failed for {email}: {e}")
            raise _translate(e) from e
        doc["_id"] = result.inserted_id
        logger.info(f"Created user {doc['_id']} ({email})")
        return UserRecord.from_document(doc)

    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        """Return the user with this email, or None when absent."""
        if not isinstance(email, str) or not email:
            raise ValidationError("email is required")
        try:
            doc = await self._collection.find_one({"email": email})
        except mongo_errors.PyMongoError as e:
            logger.warning(f"Lookup failed for {email}: {e}")
            raise _translate(e) from e
        return UserRecord.from_document(doc) if doc else None

    async def find_all(self, limit: int = DEFAULT_LIST_LIMIT) -> List[UserRecord]:
        """Return up to ``limit`` users, newest first."""
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValidationError(f"limit must be a positive integer, got {limit!r}")
        try:
            cursor = self._collection.find().sort("createdAt", DESCENDING).limit(limit)
            docs = await cursor.to_list(length=None)
        except mongo_errors.PyMongoError as e:
            logger.warning(f"Listing users failed: {e}")
            raise _translate(e) from e
        return [UserRecord.from_document(doc) for doc in docs]
