"""Atomic read-modify-write runner for garden operations.

Each attempt reads the ledger, mutates it and commits ledger and plant in a
single transaction. A lost race shows up as ``StaleDataError`` (ledger
version changed underneath us) or ``IntegrityError`` (someone else created
the ledger row or the plant tile first); the whole operation is then rerun
from a fresh read.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from focusgarden.config import get_settings
from focusgarden.garden.errors import ConcurrentModification, StoreTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[AsyncSession], Awaitable[T]]


async def _attempt(db: AsyncSession, operation: Operation[T]) -> T:
    result = await operation(db)
    await db.commit()
    return result


async def run_atomic(
    db: AsyncSession,
    operation: Operation[T],
    *,
    name: str = "operation",
    max_attempts: int | None = None,
    timeout: float | None = None,
) -> T:
    """Run ``operation`` and commit, retrying from scratch on a lost race.

    Raises ConcurrentModification once ``max_attempts`` conflicts have been
    seen, and StoreTimeout when a single attempt exceeds ``timeout`` seconds.
    Domain errors roll back and propagate unchanged.
    """
    settings = get_settings()
    attempts = max_attempts or settings.garden_max_retries
    limit = settings.garden_store_timeout_seconds if timeout is None else timeout

    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(_attempt(db, operation), timeout=limit)
        except (StaleDataError, IntegrityError) as exc:
            await db.rollback()
            logger.warning(
                "Garden %s conflicted (attempt %d/%d): %s",
                name, attempt, attempts, exc.__class__.__name__,
            )
        except TimeoutError:
            await db.rollback()
            logger.warning("Garden %s timed out after %.1fs", name, limit)
            raise StoreTimeout from None
        except Exception:
            await db.rollback()
            raise

    logger.error("Garden %s gave up after %d conflicting attempts", name, attempts)
    raise ConcurrentModification
