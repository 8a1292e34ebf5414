"""
Redis connections for the webhook lock.

Lock tokens are written as str and compared inside the release script,
so every client is built with decode_responses=True. Short socket
timeouts keep a dead Redis from stalling a webhook longer than its lease.
"""

from typing import Optional
import logging

from redis import asyncio as aioredis
from redis.asyncio.client import Redis

from app.config import settings

logger = logging.getLogger(__name__)

SOCKET_TIMEOUT_SECONDS = 2.0
CONNECT_TIMEOUT_SECONDS = 2.0


def create_redis(url: Optional[str] = None) -> Redis:
    """
    Build a client suitable for LockService.

    Callers that run their own event loop (Celery tasks) create one per
    run; the API shares the one held by RedisClient.
    """
    url = url if url is not None else settings.redis_url
    if not url:
        raise RuntimeError("Redis not configured. Set REDIS_URL environment variable.")

    return aioredis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=CONNECT_TIMEOUT_SECONDS,
        health_check_interval=30,
    )


class RedisClient:
    """Process-wide lock client for the API."""

    _client: Optional[Redis] = None

    @classmethod
    def get_client(cls) -> Redis:
        if cls._client is None:
            cls._client = create_redis()
            logger.info("Redis lock client initialized")
        return cls._client

    @classmethod
    async def close(cls):
        if cls._client:
            await cls._client.aclose()
            cls._client = None
            logger.info("Redis lock client closed")


async def get_redis() -> Redis:
    """Dependency for the shared lock client."""
    return RedisClient.get_client()
