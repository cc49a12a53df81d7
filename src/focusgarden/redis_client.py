"""Redis connection pool.

Redis carries garden event broadcasts and rate-limit counters, both best
effort. An empty ``FG_REDIS_URL`` runs the service without Redis.
"""

import logging

import redis.asyncio as redis

logger = logging.getLogger(__name__)

_pool: redis.Redis | None = None


async def init_redis(url: str) -> None:
    """Initialize the Redis connection pool (skipped when ``url`` is empty)."""
    global _pool  # noqa: PLW0603
    if not url:
        logger.info("Redis disabled: garden events and rate limiting are off")
        _pool = None
        return
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _pool  # noqa: PLW0603
    if _pool is not None:
        await _pool.aclose()
        _pool = None


def get_redis_or_none() -> redis.Redis | None:
    """Get the Redis client, or None when Redis is disabled or not started."""
    return _pool


async def redis_status() -> str:
    """Readiness check result: ``ok``, ``disabled`` or ``error: ...``."""
    if _pool is None:
        return "disabled"
    try:
        await _pool.ping()
    except Exception as exc:
        return f"error: {exc}"
    return "ok"
