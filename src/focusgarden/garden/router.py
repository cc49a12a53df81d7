"""Focus garden API endpoints — 7 routes.

Garden rule violations raise ``GardenError`` subclasses, rendered as JSON by
the global error handler.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from focusgarden.auth.dependencies import get_current_user_id
from focusgarden.config import get_settings
from focusgarden.database import get_session
from focusgarden.dependencies import get_redis_dep
from focusgarden.garden.catalog import SpeciesCatalog, get_catalog
from focusgarden.garden.errors import PlantNotFound
from focusgarden.garden.ledger_service import (
    active_to_response,
    as_utc,
    get_ledger,
    get_overview,
    ledger_state,
    ledger_to_response,
    plant_to_response,
    purchase_species,
    species_to_response,
)
from focusgarden.garden.plant_service import get_plant, list_plant_sessions
from focusgarden.garden.schemas import (
    CompleteSessionRequest,
    CompleteSessionResponse,
    GardenOverviewResponse,
    GardenStateResponse,
    PlantDetailResponse,
    PlantSessionEntry,
    PurchaseRequest,
    SpeciesCatalogResponse,
    StartSessionRequest,
    StartSessionResponse,
)
from focusgarden.garden.session_service import abort_session, complete_session, start_session

router = APIRouter(prefix="/api/v1/garden", tags=["Garden"])


# ── Public endpoints ──


@router.get("/species", response_model=SpeciesCatalogResponse)
async def list_species(catalog: SpeciesCatalog = Depends(get_catalog)):
    """Get the species catalog."""
    return SpeciesCatalogResponse(species=[species_to_response(s) for s in catalog.all()])


# ── Authenticated endpoints ──


@router.get("/overview", response_model=GardenOverviewResponse)
async def overview(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    catalog: SpeciesCatalog = Depends(get_catalog),
):
    """Garden overview: ledger, plants, inventory, active session and catalog."""
    return await get_overview(db, user_id, catalog=catalog)


@router.post("/sessions/start", response_model=StartSessionResponse, status_code=201)
async def start(
    body: StartSessionRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
    catalog: SpeciesCatalog = Depends(get_catalog),
):
    """Start a focus session, planting a new tile or watering ``tile_index``."""
    active = await start_session(
        db,
        user_id,
        body.species,
        subject=body.subject,
        target_minutes=body.target_minutes,
        tile_index=body.tile_index,
        catalog=catalog,
        redis=redis,
    )
    return StartSessionResponse(session=active_to_response(active))


@router.post("/sessions/complete", response_model=CompleteSessionResponse)
async def complete(
    body: CompleteSessionRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
    catalog: SpeciesCatalog = Depends(get_catalog),
):
    """Complete the active focus session."""
    result = await complete_session(
        db,
        user_id,
        body.session_id,
        actual_minutes=body.minutes,
        quality=body.quality,
        catalog=catalog,
        redis=redis,
    )
    return CompleteSessionResponse(
        plant=plant_to_response(result.plant, catalog.get(result.plant.species), result.ledger.grid_columns),
        garden=ledger_to_response(result.ledger),
        inventory=dict(result.ledger.inventory or {}),
        dew_earned=result.dew_earned,
    )


@router.post("/sessions/abort", response_model=GardenStateResponse)
async def abort(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Abort the active focus session (no-op when there is none)."""
    ledger = await abort_session(db, user_id, redis=redis)
    return ledger_state(ledger)


@router.post("/shop/purchase", response_model=GardenStateResponse)
async def purchase(
    body: PurchaseRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
    catalog: SpeciesCatalog = Depends(get_catalog),
):
    """Buy one unit of a species with dew."""
    ledger = await purchase_species(db, user_id, body.species, catalog=catalog, redis=redis)
    return ledger_state(ledger)


@router.get("/plants/{tile_index}", response_model=PlantDetailResponse)
async def plant_detail(
    tile_index: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    catalog: SpeciesCatalog = Depends(get_catalog),
):
    """Get one plant with its full session history."""
    plant = await get_plant(db, user_id, tile_index)
    if plant is None:
        raise PlantNotFound(f"No plant on tile {tile_index}.")

    ledger = await get_ledger(db, user_id)
    columns = ledger.grid_columns if ledger else get_settings().garden_grid_columns
    history = await list_plant_sessions(db, plant.id)
    summary = plant_to_response(plant, catalog.get(plant.species), columns)
    return PlantDetailResponse(
        **summary.model_dump(),
        history=[
            PlantSessionEntry(
                session_id=h.session_id,
                started_at=as_utc(h.started_at),
                completed_at=as_utc(h.completed_at),
                duration_minutes=h.duration_minutes,
                subject=h.subject,
                quality=h.quality,
            )
            for h in history
        ],
    )
