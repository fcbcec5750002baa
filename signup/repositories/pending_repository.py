from motor.motor_asyncio import AsyncIOMotorCollection
from typing import Optional, Protocol
from pymongo.errors import DuplicateKeyError
from datetime import datetime, timedelta, timezone


class PendingStore(Protocol):
    """Key-value store with per-entry expiry."""

    async def put(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def put_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool: ...

    async def get(self, key: str) -> Optional[str]: ...

    async def pop(self, key: str) -> Optional[str]: ...

    async def delete(self, key: str) -> None: ...

    async def delete_if(self, key: str, value: str) -> bool: ...


class PendingRepository:
    """
    MongoDB-backed PendingStore.

    Documents look like `{_id: key, value: str, expiresAt: datetime}`. A TTL
    index on `expiresAt` reaps lapsed entries eventually; reads filter on
    `expiresAt` so an entry is absent as soon as its TTL elapses.
    """

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    async def ensure_indexes(self):
        """Create the TTL index used for garbage collection."""
        await self.collection.create_index("expiresAt", expireAfterSeconds=0)

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """Insert or overwrite `key`, valid for `ttl_seconds` from now."""
        expires_at = self._now() + timedelta(seconds=ttl_seconds)
        await self.collection.replace_one(
            {"_id": key},
            {"_id": key, "value": value, "expiresAt": expires_at},
            upsert=True,
        )

    async def put_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """
        Write `key` only when no live entry holds it.
        An expired-but-unreaped entry matches the filter and gets replaced;
        a live entry makes the upsert collide on `_id`.
        """
        now = self._now()
        try:
            await self.collection.update_one(
                {"_id": key, "expiresAt": {"$lte": now}},
                {"$set": {"value": value, "expiresAt": now + timedelta(seconds=ttl_seconds)}},
                upsert=True,
            )
        except DuplicateKeyError:
            return False
        return True

    async def get(self, key: str) -> Optional[str]:
        doc = await self.collection.find_one({"_id": key, "expiresAt": {"$gt": self._now()}})
        if doc:
            return doc["value"]
        return None

    async def pop(self, key: str) -> Optional[str]:
        """Atomically read and delete a live entry."""
        doc = await self.collection.find_one_and_delete({"_id": key, "expiresAt": {"$gt": self._now()}})
        if doc:
            return doc["value"]
        return None

    async def delete(self, key: str) -> None:
        await self.collection.delete_one({"_id": key})

    async def delete_if(self, key: str, value: str) -> bool:
        """Delete `key` only while it still holds `value`."""
        result = await self.collection.delete_one({"_id": key, "value": value})
        return result.deleted_count > 0
