"""ORM models for the focus garden.

The ledger row is the unit of mutual exclusion for a user: every mutating
garden operation bumps its ``version`` column, so concurrent writers lose
with ``StaleDataError`` instead of overwriting each other.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from focusgarden.db.base import Base

# BIGSERIAL on PostgreSQL; SQLite only autoincrements INTEGER primary keys.
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")
JSONType = JSON().with_variant(JSONB(), "postgresql")


@dataclass(frozen=True)
class ActiveSession:
    """The single in-flight focus session embedded in a ledger."""

    session_id: str
    species: str
    subject: str
    target_minutes: int
    started_at: datetime
    tile_index: int
    seed_reserved: bool = True


# ---------------------------------------------------------------------------
# Garden Ledger
# ---------------------------------------------------------------------------


class GardenLedger(Base):
    """Per-user garden aggregate — one row per user, created lazily."""

    __tablename__ = "garden_ledgers"
    __table_args__ = (
        CheckConstraint("dew_balance >= 0", name="garden_ledgers_dew_balance_check"),
    )

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    dew_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_focus_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    grid_columns: Mapped[int] = mapped_column(Integer, nullable=False, default=5, server_default="5")
    grid_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=5, server_default="5")
    next_tile_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    inventory: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    last_session_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # --- Active session (all set together or all NULL) ---
    active_session_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    active_species: Mapped[str | None] = mapped_column(String(64), nullable=True)
    active_subject: Mapped[str | None] = mapped_column(String(128), nullable=True)
    active_target_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    active_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    active_tile_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    active_seed_reserved: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}  # noqa: RUF012

    @property
    def active_session(self) -> ActiveSession | None:
        if self.active_session_id is None:
            return None
        return ActiveSession(
            session_id=self.active_session_id,
            species=self.active_species or "",
            subject=self.active_subject or "",
            target_minutes=self.active_target_minutes or 0,
            started_at=self.active_started_at,  # type: ignore[arg-type]
            tile_index=self.active_tile_index or 0,
            seed_reserved=bool(self.active_seed_reserved),
        )

    def set_active_session(self, active: ActiveSession | None) -> None:
        """Store or clear the embedded active session as one unit."""
        if active is None:
            self.active_session_id = None
            self.active_species = None
            self.active_subject = None
            self.active_target_minutes = None
            self.active_started_at = None
            self.active_tile_index = None
            self.active_seed_reserved = None
            return
        self.active_session_id = active.session_id
        self.active_species = active.species
        self.active_subject = active.subject
        self.active_target_minutes = active.target_minutes
        self.active_started_at = active.started_at
        self.active_tile_index = active.tile_index
        self.active_seed_reserved = active.seed_reserved


# ---------------------------------------------------------------------------
# Plant Registry
# ---------------------------------------------------------------------------


class Plant(Base):
    """A planted instance occupying one tile — UNIQUE(user_id, tile_index)."""

    __tablename__ = "plants"
    __table_args__ = (
        UniqueConstraint("user_id", "tile_index", name="plants_user_id_tile_index_key"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    species: Mapped[str] = mapped_column(String(64), nullable=False)
    subject: Mapped[str] = mapped_column(String(128), nullable=False, default="General")
    tile_index: Mapped[int] = mapped_column(Integer, nullable=False)
    planted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    growth_stage: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    session_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_focus_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    earned_dew: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    health_status: Mapped[str] = mapped_column(String(16), nullable=False, default="healthy")
    last_care_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PlantSession(Base):
    """Immutable session history entry for a plant."""

    __tablename__ = "plant_sessions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    plant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("plants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_id: Mapped[str] = mapped_column(String(36), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    subject: Mapped[str] = mapped_column(String(128), nullable=False)
    quality: Mapped[int] = mapped_column(Integer, nullable=False, default=5)

    plant: Mapped[Plant] = relationship("Plant")
