"""Focus session lifecycle: start -> complete | abort.

A user is either Idle (no active session on the ledger) or InSession. Start
reserves a seed and a tile, Complete turns the reservation into plant growth
and dew, Abort hands the seed back. Every transition runs through
``run_atomic`` so two transitions for the same user never interleave.

Two start modes:
- plant mode (default): consumes one seed and plants the next free tile
- water mode (``tile_index`` given): grows the existing plant on that tile,
  no seed is consumed and no new tile is used
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import NamedTuple
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from focusgarden.config import get_settings
from focusgarden.db.models import ActiveSession, GardenLedger, Plant
from focusgarden.garden.catalog import SpeciesCatalog, get_catalog
from focusgarden.garden.concurrency import run_atomic
from focusgarden.garden.errors import (
    AlreadyInSession,
    InvalidSessionInput,
    PlantNotFound,
    SessionMismatch,
    SpeciesUnavailable,
    UnknownSpecies,
)
from focusgarden.garden.events import publish_garden_event
from focusgarden.garden.ledger_service import (
    adjust_inventory,
    as_utc,
    credit_dew,
    get_or_create_ledger,
    inventory_quantity,
)
from focusgarden.garden.plant_service import get_or_create_plant, get_plant, record_session
from focusgarden.garden.progression import compute_dew_reward, compute_streak, grow_grid

logger = logging.getLogger(__name__)


class CompletionResult(NamedTuple):
    plant: Plant
    ledger: GardenLedger
    dew_earned: int


def garden_today(now: datetime) -> date:
    """Calendar date of ``now`` in the configured garden timezone."""
    return as_utc(now).astimezone(ZoneInfo(get_settings().garden_timezone)).date()


async def start_session(
    db: AsyncSession,
    user_id: int,
    species_slug: str,
    subject: str | None = None,
    target_minutes: int | None = None,
    tile_index: int | None = None,
    *,
    catalog: SpeciesCatalog | None = None,
    redis: object = None,
    now: datetime | None = None,
) -> ActiveSession:
    """Begin a focus session. Fails if one is already running or the species is unavailable."""
    settings = get_settings()
    catalog = catalog or get_catalog()
    if now is None:
        now = datetime.now(timezone.utc)
    if target_minutes is None:
        target_minutes = settings.garden_default_target_minutes
    if target_minutes <= 0:
        raise InvalidSessionInput("target_minutes must be positive.")
    subject = (subject or "").strip() or settings.garden_default_subject

    species = catalog.get(species_slug)
    if species is None:
        raise SpeciesUnavailable(f"Species '{species_slug}' is not in the catalog.")

    async def _start(session: AsyncSession) -> ActiveSession:
        ledger = await get_or_create_ledger(session, user_id)
        if ledger.active_session is not None:
            raise AlreadyInSession

        if tile_index is None:
            if inventory_quantity(ledger, species.slug) <= 0:
                raise SpeciesUnavailable
            adjust_inventory(ledger, species.slug, -1)
            reserved_tile = ledger.next_tile_index
            seed_reserved = True
        else:
            plant = await get_plant(session, user_id, tile_index)
            if plant is None:
                raise PlantNotFound(f"No plant on tile {tile_index}.")
            if plant.species != species.slug:
                raise SpeciesUnavailable(f"Tile {tile_index} holds a {plant.species}, not a {species.slug}.")
            reserved_tile = tile_index
            seed_reserved = False

        active = ActiveSession(
            session_id=str(uuid.uuid4()),
            species=species.slug,
            subject=subject,
            target_minutes=target_minutes,
            started_at=now,
            tile_index=reserved_tile,
            seed_reserved=seed_reserved,
        )
        ledger.set_active_session(active)
        ledger.updated_at = now
        return active

    active = await run_atomic(db, _start, name="start_session")
    logger.info(
        "User %d started %d-minute session %s (%s, tile %d)",
        user_id, active.target_minutes, active.session_id, active.species, active.tile_index,
    )
    await publish_garden_event(redis, user_id, "garden_session_started", {
        "session_id": active.session_id,
        "species": active.species,
        "tile_index": active.tile_index,
        "target_minutes": active.target_minutes,
    })
    return active


async def complete_session(
    db: AsyncSession,
    user_id: int,
    session_id: str,
    actual_minutes: int | None = None,
    quality: int = 5,
    *,
    catalog: SpeciesCatalog | None = None,
    redis: object = None,
    now: datetime | None = None,
) -> CompletionResult:
    """Finish the active session: grow the plant, pay dew, update totals and streak.

    The session is credited for at least its target duration.
    """
    settings = get_settings()
    catalog = catalog or get_catalog()
    if now is None:
        now = datetime.now(timezone.utc)
    if not 0 <= quality <= 5:
        raise InvalidSessionInput("quality must be between 0 and 5.")
    if actual_minutes is not None and actual_minutes < 0:
        raise InvalidSessionInput("minutes cannot be negative.")
    today = garden_today(now)

    async def _complete(session: AsyncSession) -> CompletionResult:
        ledger = await get_or_create_ledger(session, user_id)
        active = ledger.active_session
        if active is None or active.session_id != session_id:
            raise SessionMismatch

        species = catalog.get(active.species)
        if species is None:
            raise UnknownSpecies(f"Species '{active.species}' metadata missing.")

        duration = max(actual_minutes or 0, active.target_minutes)

        plant = await get_or_create_plant(session, user_id, active, now)
        record_session(session, plant, species, active, duration, quality, now)

        dew = compute_dew_reward(duration)
        plant.earned_dew += dew
        credit_dew(ledger, dew)

        ledger.total_focus_minutes += duration
        ledger.total_sessions += 1
        if active.seed_reserved:
            ledger.next_tile_index += 1
            if settings.garden_grid_overflow == "grow":
                ledger.grid_rows = grow_grid(ledger.next_tile_index, ledger.grid_columns, ledger.grid_rows)

        streak = compute_streak(ledger.last_session_date, today, ledger.current_streak, ledger.longest_streak)
        ledger.current_streak = streak.current
        ledger.longest_streak = streak.longest
        ledger.last_session_date = streak.last_session_date

        ledger.set_active_session(None)
        ledger.updated_at = now
        return CompletionResult(plant, ledger, dew)

    result = await run_atomic(db, _complete, name="complete_session")
    logger.info(
        "User %d completed session %s: +%d dew, plant on tile %d at stage %d, streak %d",
        user_id, session_id, result.dew_earned, result.plant.tile_index,
        result.plant.growth_stage, result.ledger.current_streak,
    )
    await publish_garden_event(redis, user_id, "garden_session_completed", {
        "session_id": session_id,
        "tile_index": result.plant.tile_index,
        "growth_stage": result.plant.growth_stage,
        "dew_earned": result.dew_earned,
        "dew_balance": result.ledger.dew_balance,
        "current_streak": result.ledger.current_streak,
    })
    return result


async def abort_session(
    db: AsyncSession,
    user_id: int,
    *,
    redis: object = None,
) -> GardenLedger:
    """Cancel the active session and return its seed. A no-op when Idle."""

    async def _abort(session: AsyncSession) -> tuple[GardenLedger, ActiveSession | None]:
        ledger = await get_or_create_ledger(session, user_id)
        active = ledger.active_session
        if active is None:
            return ledger, None
        if active.seed_reserved:
            adjust_inventory(ledger, active.species, 1)
        ledger.set_active_session(None)
        ledger.updated_at = datetime.now(timezone.utc)
        return ledger, active

    ledger, aborted = await run_atomic(db, _abort, name="abort_session")
    if aborted is not None:
        logger.info("User %d aborted session %s", user_id, aborted.session_id)
        await publish_garden_event(redis, user_id, "garden_session_aborted", {
            "session_id": aborted.session_id,
            "species": aborted.species,
        })
    return ledger
