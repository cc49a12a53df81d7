"""Pydantic request and response models for garden endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

# --- Requests ---


class StartSessionRequest(BaseModel):
    species: str = Field(min_length=1, max_length=64)
    subject: str | None = Field(default=None, max_length=128)
    target_minutes: int | None = Field(default=None, ge=1, le=600)
    tile_index: int | None = Field(default=None, ge=0)


class CompleteSessionRequest(BaseModel):
    session_id: str = Field(min_length=1, max_length=36)
    minutes: int | None = Field(default=None, ge=0, le=1440)
    quality: int = Field(default=5, ge=0, le=5)


class PurchaseRequest(BaseModel):
    species: str = Field(min_length=1, max_length=64)


# --- Species ---


class GrowthStageResponse(BaseModel):
    stage: int
    name: str
    min_sessions: int
    min_minutes: int
    art_variant: str


class UnlockRequirementResponse(BaseModel):
    type: str
    value: int
    subject: str | None = None


class SpeciesResponse(BaseModel):
    slug: str
    display_name: str
    category: str
    description: str
    base_focus_minutes: int
    price: int
    rarity: str
    recommended_subjects: list[str] = []
    growth_stages: list[GrowthStageResponse] = []
    unlock_requirement: UnlockRequirementResponse | None = None
    unlocked: bool = True


class SpeciesCatalogResponse(BaseModel):
    species: list[SpeciesResponse]


# --- Ledger / plants ---


class ActiveSessionResponse(BaseModel):
    session_id: str
    species: str
    subject: str
    target_minutes: int
    started_at: datetime
    tile_index: int
    waters_existing_plant: bool = False


class TilePositionResponse(BaseModel):
    row: int
    col: int


class LedgerResponse(BaseModel):
    dew_balance: int
    total_focus_minutes: int
    total_sessions: int
    current_streak: int
    longest_streak: int
    grid_columns: int
    grid_rows: int
    next_tile_index: int
    last_session_date: date | None = None


class PlantResponse(BaseModel):
    id: int | None = None
    species: str
    display_name: str
    subject: str
    tile_index: int
    position: TilePositionResponse
    stage: int
    stage_name: str | None = None
    art_variant: str | None = None
    health_status: str
    sessions: int
    total_focus_minutes: int
    earned_dew: int
    planted_at: datetime | None = None
    last_care_at: datetime | None = None


class PlantSessionEntry(BaseModel):
    session_id: str
    started_at: datetime
    completed_at: datetime
    duration_minutes: int
    subject: str
    quality: int


class PlantDetailResponse(PlantResponse):
    history: list[PlantSessionEntry] = []


class GardenOverviewResponse(BaseModel):
    garden: LedgerResponse
    plants: list[PlantResponse]
    inventory: dict[str, int]
    active_session: ActiveSessionResponse | None = None
    species_catalog: list[SpeciesResponse]


# --- Operation results ---


class StartSessionResponse(BaseModel):
    session: ActiveSessionResponse


class CompleteSessionResponse(BaseModel):
    message: str = "Session recorded successfully."
    plant: PlantResponse
    garden: LedgerResponse
    inventory: dict[str, int]
    dew_earned: int


class GardenStateResponse(BaseModel):
    garden: LedgerResponse
    inventory: dict[str, int]
    active_session: ActiveSessionResponse | None = None
