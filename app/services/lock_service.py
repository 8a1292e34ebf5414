"""
Distributed Lock - Redis SET NX PX mutual exclusion with a lease.
"""

import uuid
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from redis.asyncio.client import Redis
from redis.exceptions import RedisError

from app.errors import LockContention, LockUnavailable

logger = logging.getLogger(__name__)

# Delete the key only if we still own it (lease may have expired and been
# taken by another holder in the meantime).
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    Lease-based lock shared by every service replica.

    At most one holder per key; the lease auto-expires so a crashed
    holder cannot block the key forever.
    """

    def __init__(self, redis: Redis, prefix: str = "lock:"):
        self.redis = redis
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def acquire(self, key: str, lease_ms: int) -> Optional[str]:
        """
        Try once to take the lock.

        Returns an ownership token, or None if someone else holds it.
        """
        token = uuid.uuid4().hex
        try:
            acquired = await self.redis.set(self._key(key), token, nx=True, px=lease_ms)
        except RedisError as e:
            logger.error(f"Lock backend unavailable acquiring {key}: {e}")
            raise LockUnavailable(f"Lock backend unavailable for {key}") from e

        if not acquired:
            logger.debug(f"Lock busy: {key}")
            return None

        logger.debug(f"Lock acquired: {key} (lease {lease_ms}ms)")
        return token

    async def release(self, key: str, token: Optional[str] = None) -> bool:
        """
        Release the lock.

        With a token, only the owner's lock is removed. Returns True if a
        lock was removed.
        """
        try:
            if token is None:
                removed = await self.redis.delete(self._key(key))
            else:
                removed = await self.redis.eval(RELEASE_SCRIPT, 1, self._key(key), token)
        except RedisError as e:
            raise LockUnavailable(f"Lock backend unavailable releasing {key}") from e

        if not removed:
            logger.warning(f"Lock {key} was not held at release (lease expired?)")
        return bool(removed)

    @asynccontextmanager
    async def hold(self, key: str, lease_ms: int) -> AsyncIterator[str]:
        """
        Hold the lock for the body of the `async with` block.

        Raises LockContention immediately if the key is already held, and
        LockUnavailable if the backend cannot be reached. Release is
        attempted on every exit path; a failed release is logged and the
        lease expires on its own, so the block's result is kept.
        """
        token = await self.acquire(key, lease_ms)
        if token is None:
            raise LockContention(f"Processing already in progress for {key}")

        try:
            yield token
        finally:
            try:
                await self.release(key, token)
            except LockUnavailable as e:
                logger.error(f"Failed to release lock {key}, lease will expire: {e.__cause__}")
