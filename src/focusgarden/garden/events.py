"""Best-effort garden event broadcast over Redis pub/sub."""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

GARDEN_CHANNEL = "pubsub:garden_update"


async def publish_garden_event(
    redis: object,
    user_id: int,
    event: str,
    payload: dict[str, Any] | None = None,
) -> bool:
    """Publish a garden event. Returns False when Redis is absent or the publish failed."""
    if redis is None:
        return False
    message = {"user_id": user_id, "event": event, **(payload or {})}
    try:
        await redis.publish(GARDEN_CHANNEL, json.dumps(message, default=str))  # type: ignore[attr-defined]
    except Exception:
        logger.warning("Failed to publish %s garden event", event, exc_info=True)
        return False
    return True
