"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from focusgarden.redis_client import get_redis_or_none


async def get_redis_dep() -> AsyncGenerator[object, None]:
    """Yield the Redis client (or None) as a FastAPI dependency.

    Garden events are best effort, so a missing Redis pool must not fail the request.
    """
    yield get_redis_or_none()
