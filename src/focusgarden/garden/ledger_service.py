"""Garden ledger: currency, inventory, purchases and the read-only overview.

Rules:
- One ledger per user, created on first mutating access with the starter inventory
- Dew balance never goes negative (checked here and by a DB constraint)
- Inventory quantities never go negative
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from focusgarden.config import get_settings
from focusgarden.db.models import ActiveSession, GardenLedger, Plant
from focusgarden.garden.catalog import Species, SpeciesCatalog, get_catalog
from focusgarden.garden.concurrency import run_atomic
from focusgarden.garden.errors import InsufficientFunds, SpeciesUnavailable, UnknownSpecies
from focusgarden.garden.events import publish_garden_event
from focusgarden.garden.plant_service import get_subject_minutes, list_plants
from focusgarden.garden.progression import is_species_unlocked, tile_position
from focusgarden.garden.schemas import (
    ActiveSessionResponse,
    GardenOverviewResponse,
    GardenStateResponse,
    GrowthStageResponse,
    LedgerResponse,
    PlantResponse,
    SpeciesResponse,
    TilePositionResponse,
    UnlockRequirementResponse,
)

logger = logging.getLogger(__name__)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps (SQLite returns them without an offset)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def new_ledger(user_id: int, now: datetime | None = None) -> GardenLedger:
    """Build an unsaved ledger with the configured starter inventory and grid."""
    settings = get_settings()
    if now is None:
        now = datetime.now(timezone.utc)
    return GardenLedger(
        user_id=user_id,
        dew_balance=0,
        total_focus_minutes=0,
        total_sessions=0,
        current_streak=0,
        longest_streak=0,
        grid_columns=settings.garden_grid_columns,
        grid_rows=settings.garden_grid_rows,
        next_tile_index=0,
        inventory=dict(settings.garden_starter_inventory),
        created_at=now,
        updated_at=now,
    )


async def get_ledger(db: AsyncSession, user_id: int) -> GardenLedger | None:
    """Read the user's ledger fresh from the database (no create)."""
    result = await db.execute(
        select(GardenLedger)
        .where(GardenLedger.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_or_create_ledger(db: AsyncSession, user_id: int) -> GardenLedger:
    """Get or create the ledger row for a user."""
    ledger = await get_ledger(db, user_id)
    if ledger is None:
        ledger = new_ledger(user_id)
        db.add(ledger)
        await db.flush()
        logger.info("Created garden ledger for user %d", user_id)
    return ledger


# ---------------------------------------------------------------------------
# Currency & inventory mutations
# ---------------------------------------------------------------------------


def inventory_quantity(ledger: GardenLedger, slug: str) -> int:
    return int((ledger.inventory or {}).get(slug, 0))


def adjust_inventory(ledger: GardenLedger, slug: str, delta: int) -> int:
    """Change an inventory count by ``delta``; the JSON column is reassigned so the change is tracked."""
    quantity = inventory_quantity(ledger, slug) + delta
    if quantity < 0:
        raise SpeciesUnavailable
    ledger.inventory = {**(ledger.inventory or {}), slug: quantity}
    return quantity


def credit_dew(ledger: GardenLedger, amount: int) -> int:
    ledger.dew_balance += max(amount, 0)
    return ledger.dew_balance


def debit_dew(ledger: GardenLedger, amount: int) -> int:
    if amount < 0 or ledger.dew_balance < amount:
        raise InsufficientFunds
    ledger.dew_balance -= amount
    return ledger.dew_balance


async def purchase_species(
    db: AsyncSession,
    user_id: int,
    species_slug: str,
    *,
    catalog: SpeciesCatalog | None = None,
    redis: object = None,
) -> GardenLedger:
    """Buy one unit of a species with dew."""
    catalog = catalog or get_catalog()
    species = catalog.get(species_slug)
    if species is None:
        raise UnknownSpecies(f"Species '{species_slug}' not found.")

    async def _purchase(session: AsyncSession) -> GardenLedger:
        ledger = await get_or_create_ledger(session, user_id)
        debit_dew(ledger, species.price)
        adjust_inventory(ledger, species.slug, 1)
        ledger.updated_at = datetime.now(timezone.utc)
        return ledger

    ledger = await run_atomic(db, _purchase, name="purchase")
    logger.info(
        "User %d bought %s for %d dew (balance %d)",
        user_id, species.slug, species.price, ledger.dew_balance,
    )
    await publish_garden_event(redis, user_id, "garden_species_purchased", {
        "species": species.slug,
        "price": species.price,
        "dew_balance": ledger.dew_balance,
    })
    return ledger


# ---------------------------------------------------------------------------
# Projections
# ---------------------------------------------------------------------------


def ledger_to_response(ledger: GardenLedger) -> LedgerResponse:
    return LedgerResponse(
        dew_balance=ledger.dew_balance,
        total_focus_minutes=ledger.total_focus_minutes,
        total_sessions=ledger.total_sessions,
        current_streak=ledger.current_streak,
        longest_streak=ledger.longest_streak,
        grid_columns=ledger.grid_columns,
        grid_rows=ledger.grid_rows,
        next_tile_index=ledger.next_tile_index,
        last_session_date=ledger.last_session_date,
    )


def active_to_response(active: ActiveSession | None) -> ActiveSessionResponse | None:
    if active is None:
        return None
    return ActiveSessionResponse(
        session_id=active.session_id,
        species=active.species,
        subject=active.subject,
        target_minutes=active.target_minutes,
        started_at=as_utc(active.started_at),
        tile_index=active.tile_index,
        waters_existing_plant=not active.seed_reserved,
    )


def plant_to_response(plant: Plant, species: Species | None, columns: int) -> PlantResponse:
    stage = species.stage(plant.growth_stage) if species else None
    row, col = tile_position(plant.tile_index, columns)
    return PlantResponse(
        id=plant.id,
        species=plant.species,
        display_name=species.display_name if species else plant.species,
        subject=plant.subject,
        tile_index=plant.tile_index,
        position=TilePositionResponse(row=row, col=col),
        stage=plant.growth_stage,
        stage_name=stage.name if stage else None,
        art_variant=(stage.art_variant or None) if stage else None,
        health_status=plant.health_status,
        sessions=plant.session_count,
        total_focus_minutes=plant.total_focus_minutes,
        earned_dew=plant.earned_dew,
        planted_at=as_utc(plant.planted_at),
        last_care_at=as_utc(plant.last_care_at),
    )


def species_to_response(species: Species, unlocked: bool = True) -> SpeciesResponse:
    req = species.unlock_requirement
    return SpeciesResponse(
        slug=species.slug,
        display_name=species.display_name,
        category=species.category,
        description=species.description,
        base_focus_minutes=species.base_focus_minutes,
        price=species.price,
        rarity=species.rarity,
        recommended_subjects=list(species.recommended_subjects),
        growth_stages=[
            GrowthStageResponse(
                stage=s.stage,
                name=s.name,
                min_sessions=s.min_sessions,
                min_minutes=s.min_minutes,
                art_variant=s.art_variant,
            )
            for s in species.growth_stages
        ],
        unlock_requirement=(
            UnlockRequirementResponse(type=req.type, value=req.value, subject=req.subject) if req else None
        ),
        unlocked=unlocked,
    )


def ledger_state(ledger: GardenLedger) -> GardenStateResponse:
    return GardenStateResponse(
        garden=ledger_to_response(ledger),
        inventory=dict(ledger.inventory or {}),
        active_session=active_to_response(ledger.active_session),
    )


async def get_overview(
    db: AsyncSession,
    user_id: int,
    *,
    catalog: SpeciesCatalog | None = None,
) -> GardenOverviewResponse:
    """Full garden projection. Pure read: a missing ledger is shown as the starter garden, not created."""
    catalog = catalog or get_catalog()
    ledger = await get_ledger(db, user_id) or new_ledger(user_id)
    plants = await list_plants(db, user_id)
    subject_minutes = await get_subject_minutes(db, user_id)

    return GardenOverviewResponse(
        garden=ledger_to_response(ledger),
        plants=[plant_to_response(p, catalog.get(p.species), ledger.grid_columns) for p in plants],
        inventory=dict(ledger.inventory or {}),
        active_session=active_to_response(ledger.active_session),
        species_catalog=[
            species_to_response(
                s,
                unlocked=is_species_unlocked(
                    s, ledger.total_focus_minutes, ledger.longest_streak, subject_minutes
                ),
            )
            for s in catalog.all()
        ],
    )
