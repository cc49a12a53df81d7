"""Plant registry: per-tile plant instances and their session history."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from focusgarden.db.models import ActiveSession, Plant, PlantSession
from focusgarden.garden.catalog import Species
from focusgarden.garden.progression import compute_growth_stage


async def get_plant(db: AsyncSession, user_id: int, tile_index: int) -> Plant | None:
    """Get the plant on a user's tile, if one was ever completed there."""
    result = await db.execute(
        select(Plant).where(Plant.user_id == user_id, Plant.tile_index == tile_index)
    )
    return result.scalar_one_or_none()


async def get_or_create_plant(
    db: AsyncSession,
    user_id: int,
    active: ActiveSession,
    now: datetime,
) -> Plant:
    """Load the plant on the session's reserved tile, planting a new one if the tile is empty."""
    plant = await get_plant(db, user_id, active.tile_index)
    if plant is None:
        plant = Plant(
            user_id=user_id,
            species=active.species,
            subject=active.subject,
            tile_index=active.tile_index,
            planted_at=active.started_at,
            growth_stage=1,
            session_count=0,
            total_focus_minutes=0,
            earned_dew=0,
            health_status="healthy",
            created_at=now,
            updated_at=now,
        )
        db.add(plant)
    return plant


def record_session(
    db: AsyncSession,
    plant: Plant,
    species: Species,
    active: ActiveSession,
    duration: int,
    quality: int,
    now: datetime,
) -> PlantSession:
    """Append a history entry and advance the plant's counters and growth stage."""
    entry = PlantSession(
        plant=plant,
        session_id=active.session_id,
        started_at=active.started_at,
        completed_at=now,
        duration_minutes=duration,
        subject=active.subject,
        quality=quality,
    )
    db.add(entry)

    plant.session_count += 1
    plant.total_focus_minutes += duration
    plant.health_status = "healthy"
    plant.last_care_at = now
    plant.updated_at = now
    plant.growth_stage = compute_growth_stage(
        species.growth_stages,
        plant.session_count,
        plant.total_focus_minutes,
        current_stage=plant.growth_stage,
    )
    return entry


async def list_plants(db: AsyncSession, user_id: int) -> list[Plant]:
    """All plants of a user, in tile order."""
    result = await db.execute(
        select(Plant).where(Plant.user_id == user_id).order_by(Plant.tile_index.asc())
    )
    return list(result.scalars().all())


async def list_plant_sessions(db: AsyncSession, plant_id: int) -> list[PlantSession]:
    """Session history of one plant, oldest first."""
    result = await db.execute(
        select(PlantSession)
        .where(PlantSession.plant_id == plant_id)
        .order_by(PlantSession.completed_at.asc(), PlantSession.id.asc())
    )
    return list(result.scalars().all())


async def get_subject_minutes(db: AsyncSession, user_id: int) -> dict[str, int]:
    """Total focused minutes per session subject across all of a user's plants."""
    result = await db.execute(
        select(PlantSession.subject, func.sum(PlantSession.duration_minutes))
        .join(Plant, PlantSession.plant_id == Plant.id)
        .where(Plant.user_id == user_id)
        .group_by(PlantSession.subject)
    )
    return {subject: int(total or 0) for subject, total in result.all()}
