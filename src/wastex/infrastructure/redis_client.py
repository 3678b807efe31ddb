"""Redis client for the reconciliation sweeper's distributed lock.

Usage:
    from wastex.infrastructure.redis_client import acquire_lock, release_lock

    token = await acquire_lock("reconciliation")
    if token:
        try:
            ...
        finally:
            await release_lock("reconciliation", token)
"""

from __future__ import annotations

import uuid

import redis.asyncio as aioredis

from wastex.config import get_settings
from wastex.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None

# Delete the key only if we still own it.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


async def init_redis() -> aioredis.Redis:
    """Initialize and return the Redis client. Called during app startup."""
    global _redis_client
    settings = get_settings()
    _redis_client = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
    )
    # Verify connectivity
    await _redis_client.ping()
    logger.info("redis.connected", url=settings.redis_url)
    return _redis_client


def get_redis() -> aioredis.Redis:
    """Return the Redis client singleton. Must call init_redis() first."""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


def redis_available() -> bool:
    return _redis_client is not None


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Lock Helpers ---


async def acquire_lock(name: str, ttl_seconds: int | None = None) -> str | None:
    """Try to take ``lock:{name}`` with SET NX EX.

    Returns the owner token on success, None if another worker holds it.
    """
    settings = get_settings()
    token = uuid.uuid4().hex
    acquired = await get_redis().set(
        f"lock:{name}",
        token,
        nx=True,
        ex=ttl_seconds or settings.redis_lock_ttl_seconds,
    )
    return token if acquired else None


async def release_lock(name: str, token: str) -> bool:
    """Release ``lock:{name}`` if ``token`` still owns it."""
    released = await get_redis().eval(_RELEASE_SCRIPT, 1, f"lock:{name}", token)
    return bool(released)
