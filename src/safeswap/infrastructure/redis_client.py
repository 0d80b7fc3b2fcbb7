"""Redis client for idempotency keys.

Usage:
    from safeswap.infrastructure.redis_client import get_redis, close_redis

    redis = get_redis()
    await redis.set("key", "value", ex=3600)
"""

from __future__ import annotations

import redis.asyncio as aioredis

from safeswap.config import get_settings
from safeswap.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None


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


def get_optional_redis() -> aioredis.Redis | None:
    """Return the Redis client, or None when startup could not connect."""
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Idempotency Helpers ---


async def claim_idempotency(
    redis: aioredis.Redis | None,
    key: str,
    value: str = "1",
) -> bool:
    """Atomically claim an idempotency key.

    Returns True if this call owns the key, False if it was already claimed.
    Without Redis (or when it errors) the check is skipped and the call is
    treated as new.
    """
    if redis is None:
        logger.warning("idempotency.skipped", reason="redis unavailable", key=key)
        return True

    settings = get_settings()
    try:
        claimed = await redis.set(
            f"idempotency:{key}",
            value,
            ex=settings.redis_idempotency_ttl_seconds,
            nx=True,
        )
    except aioredis.RedisError as e:
        logger.warning("idempotency.skipped", reason=str(e), key=key)
        return True
    return bool(claimed)


async def release_idempotency(redis: aioredis.Redis | None, key: str) -> None:
    """Give a key back after the guarded operation failed, so a retry can run."""
    if redis is None:
        return
    try:
        await redis.delete(f"idempotency:{key}")
    except aioredis.RedisError as e:
        logger.warning("idempotency.release_failed", reason=str(e), key=key)
