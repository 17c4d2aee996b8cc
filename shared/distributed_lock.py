"""
Run lock for the World Signal Tracker using MongoDB

Ledger uniqueness assumes two scheduler invocations never process the same
subscriber at the same time. This module turns that assumption into an
enforced precondition: a run takes a lease on a single lock document before it
touches the ledger, and releases it when done. Leases expire so a crashed run
cannot block the next one forever; a live run renews its lease on a heartbeat.
"""

import asyncio
import logging
import os
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any, Awaitable, Callable, TypeVar

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from shared.constants import RUN_LOCK_HEARTBEAT_SECONDS, RUN_LOCK_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

T = TypeVar("T")


def default_owner_id() -> str:
    """Identity of one invocation; unique even for runs on the same host"""
    return f"{os.getenv('HOSTNAME', 'local')}-{uuid.uuid4().hex}"


class RunLockError(Exception):
    """Raised when the run lock is held by another invocation"""


class DistributedLockManager:
    """Manages lease locks stored in a MongoDB collection"""

    def __init__(
        self,
        collection: Any,
        owner_id: str | None = None,
        lock_timeout: int = RUN_LOCK_TIMEOUT_SECONDS,
        heartbeat_interval: float = RUN_LOCK_HEARTBEAT_SECONDS,
    ) -> None:
        """
        Args:
            collection: motor collection holding lock documents
            owner_id: identity of this invocation (defaults to HOSTNAME plus a uuid)
            lock_timeout: lease length in seconds
            heartbeat_interval: seconds between lease renewals while an
                operation runs under the lock
        """
        self.collection = collection
        self.owner_id = owner_id or default_owner_id()
        self.lock_timeout = lock_timeout
        self.heartbeat_interval = heartbeat_interval

    async def ensure_indexes(self) -> None:
        """Create the unique index that makes acquisition atomic"""
        await self.collection.create_index("lock_name", unique=True)

    async def acquire_lock(self, lock_name: str, timeout_seconds: int | None = None) -> bool:
        """Acquire a lease lock.

        The filter only matches a free (expired) lock or one we already own;
        when the lock is held by someone else the upsert collides with the
        unique index and acquisition fails.
        """
        now = datetime.now(UTC)
        expires_at = now + timedelta(seconds=timeout_seconds or self.lock_timeout)

        try:
            doc = await self.collection.find_one_and_update(
                {
                    "lock_name": lock_name,
                    "$or": [
                        {"expires_at": {"$lt": now}},
                        {"owner_id": self.owner_id},
                    ],
                },
                {
                    "$set": {
                        "owner_id": self.owner_id,
                        "acquired_at": now,
                        "expires_at": expires_at,
                    }
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            logger.info(f"Lock '{lock_name}' is held by another run")
            return False

        acquired = bool(doc) and doc.get("owner_id") == self.owner_id
        if acquired:
            logger.info(
                f"Lock '{lock_name}' acquired by {self.owner_id} until "
                f"{expires_at.isoformat()}"
            )
        return acquired

    async def release_lock(self, lock_name: str) -> bool:
        """Release a lock we own"""
        try:
            result = await self.collection.delete_one(
                {"lock_name": lock_name, "owner_id": self.owner_id}
            )
        except Exception as e:
            logger.error(f"Error releasing lock '{lock_name}': {e}")
            return False

        if result.deleted_count > 0:
            logger.info(f"Lock '{lock_name}' released by {self.owner_id}")
            return True

        logger.warning(f"Lock '{lock_name}' not found or not owned by {self.owner_id}")
        return False

    async def renew_lock(self, lock_name: str) -> bool:
        """Push the expiry of a lock we own one lease length forward"""
        expires_at = datetime.now(UTC) + timedelta(seconds=self.lock_timeout)
        result = await self.collection.update_one(
            {"lock_name": lock_name, "owner_id": self.owner_id},
            {"$set": {"expires_at": expires_at}},
        )
        if result.matched_count == 0:
            logger.warning(f"Lock '{lock_name}' is no longer held by {self.owner_id}")
            return False

        logger.debug(f"Lock '{lock_name}' renewed until {expires_at.isoformat()}")
        return True

    async def _heartbeat_loop(self, lock_name: str) -> None:
        """Renew the lease until cancelled"""
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await self.renew_lock(lock_name)
            except Exception as e:
                logger.error(f"Error renewing lock '{lock_name}': {e}")

    async def execute_with_lock(
        self,
        lock_name: str,
        operation: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Execute an operation while holding the lock, renewing its lease"""
        if not await self.acquire_lock(lock_name):
            raise RunLockError(f"Failed to acquire lock '{lock_name}'")

        heartbeat_task = asyncio.create_task(self._heartbeat_loop(lock_name))
        try:
            return await operation(*args, **kwargs)
        finally:
            heartbeat_task.cancel()
            try:
                await heartbeat_task
            except asyncio.CancelledError:
                pass
            await self.release_lock(lock_name)
