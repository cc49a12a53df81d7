"""Species catalog — static, read-only reference data.

The catalog is loaded once per process, either from the built-in seed below
or from a JSON file (a list of species objects) named by
``FG_SPECIES_CATALOG_PATH``. Stage thresholds are validated at load time so
the progression calculator can rely on ascending order.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from focusgarden.config import get_settings

logger = logging.getLogger(__name__)


class GrowthStage(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    stage: int = Field(ge=1)
    name: str
    min_sessions: int = Field(default=1, ge=0, alias="minSessions")
    min_minutes: int = Field(default=25, ge=0, alias="minMinutes")
    art_variant: str = Field(default="", alias="artVariant")


class UnlockRequirement(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["totalMinutes", "streak", "subjectMinutes"] = "totalMinutes"
    value: int = Field(default=0, ge=0)
    subject: str | None = None


class Species(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    slug: str = Field(min_length=1, max_length=64)
    display_name: str = Field(alias="displayName")
    category: Literal["tree", "shrub", "flower", "herb", "succulent"] = "tree"
    description: str = ""
    base_focus_minutes: int = Field(default=25, ge=1, alias="baseFocusMinutes")
    price: int = Field(default=0, ge=0)
    rarity: Literal["common", "uncommon", "rare", "legendary"] = "common"
    recommended_subjects: tuple[str, ...] = Field(default=(), alias="recommendedSubjects")
    growth_stages: tuple[GrowthStage, ...] = Field(default=(), alias="growthStages")
    unlock_requirement: UnlockRequirement | None = Field(default=None, alias="unlockRequirement")

    @field_validator("slug")
    @classmethod
    def _normalize_slug(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("growth_stages")
    @classmethod
    def _check_stage_order(cls, stages: tuple[GrowthStage, ...]) -> tuple[GrowthStage, ...]:
        for prev, cur in zip(stages, stages[1:]):
            if cur.stage <= prev.stage:
                raise ValueError("growth stage numbers must be strictly increasing")
            if cur.min_minutes <= prev.min_minutes or cur.min_sessions < prev.min_sessions:
                raise ValueError("growth stage thresholds must increase with the stage number")
        return stages

    def stage(self, number: int) -> GrowthStage | None:
        """Return the stage definition with the given number, if any."""
        for s in self.growth_stages:
            if s.stage == number:
                return s
        return None


SPECIES_SEED_DATA: list[dict] = [
    {
        "slug": "pine-tree",
        "displayName": "Pine Tree",
        "category": "tree",
        "description": "Evergreen and resilient. Best for long focus intervals.",
        "baseFocusMinutes": 25,
        "price": 0,
        "rarity": "common",
        "recommendedSubjects": ["Science", "Mathematics"],
        "growthStages": [
            {"name": "Seedling", "stage": 1, "minSessions": 1, "minMinutes": 20, "artVariant": "pine_stage_1"},
            {"name": "Sapling", "stage": 2, "minSessions": 2, "minMinutes": 50, "artVariant": "pine_stage_2"},
            {"name": "Towering", "stage": 3, "minSessions": 4, "minMinutes": 120, "artVariant": "pine_stage_3"},
        ],
    },
    {
        "slug": "flower-tree",
        "displayName": "Flower Tree",
        "category": "tree",
        "description": "A tree with delicate white flowers. Perfect for creative study sessions.",
        "baseFocusMinutes": 25,
        "price": 500,
        "rarity": "uncommon",
        "recommendedSubjects": ["Literature", "Design"],
        "growthStages": [
            {"name": "Bud", "stage": 1, "minSessions": 1, "minMinutes": 25, "artVariant": "flower_stage_1"},
            {"name": "Blooming", "stage": 2, "minSessions": 3, "minMinutes": 75, "artVariant": "flower_stage_2"},
            {"name": "Full Bloom", "stage": 3, "minSessions": 5, "minMinutes": 140, "artVariant": "flower_stage_3"},
        ],
        "unlockRequirement": {"type": "totalMinutes", "value": 300},
    },
    {
        "slug": "lavender-bush",
        "displayName": "Lavender Bush",
        "category": "flower",
        "description": "Calming aroma helps with revision. Generates dew drops faster.",
        "baseFocusMinutes": 15,
        "price": 200,
        "rarity": "uncommon",
        "recommendedSubjects": ["Revision", "Languages"],
        "growthStages": [
            {"name": "Sprout", "stage": 1, "minSessions": 1, "minMinutes": 15, "artVariant": "lavender_stage_1"},
            {"name": "Fragrant", "stage": 2, "minSessions": 2, "minMinutes": 45, "artVariant": "lavender_stage_2"},
            {"name": "Lush", "stage": 3, "minSessions": 3, "minMinutes": 80, "artVariant": "lavender_stage_3"},
        ],
    },
]


class SpeciesCatalog:
    """Read-only slug -> Species lookup, preserving definition order."""

    def __init__(self, species: Iterable[Species]) -> None:
        self._by_slug: dict[str, Species] = {}
        for s in species:
            if s.slug in self._by_slug:
                raise ValueError(f"Duplicate species slug: {s.slug}")
            self._by_slug[s.slug] = s

    def get(self, slug: str) -> Species | None:
        return self._by_slug.get(slug.strip().lower())

    def all(self) -> list[Species]:
        return list(self._by_slug.values())

    def __contains__(self, slug: object) -> bool:
        return isinstance(slug, str) and self.get(slug) is not None

    def __len__(self) -> int:
        return len(self._by_slug)

    @classmethod
    def from_dicts(cls, rows: Iterable[dict]) -> SpeciesCatalog:
        return cls(Species.model_validate(row) for row in rows)


def load_catalog(path: str | Path | None = None) -> SpeciesCatalog:
    """Build a catalog from a JSON file, or from the built-in seed when no path is given."""
    if not path:
        catalog = SpeciesCatalog.from_dicts(SPECIES_SEED_DATA)
        logger.info("Loaded %d built-in species", len(catalog))
        return catalog

    file_path = Path(path)
    rows = json.loads(file_path.read_text(encoding="utf-8"))
    if not isinstance(rows, list):
        msg = f"Species catalog {file_path} must contain a JSON list"
        raise ValueError(msg)
    catalog = SpeciesCatalog.from_dicts(rows)
    logger.info("Loaded %d species from %s", len(catalog), file_path)
    return catalog


@lru_cache
def get_catalog() -> SpeciesCatalog:
    """Get the process-wide species catalog (FastAPI dependency)."""
    return load_catalog(get_settings().species_catalog_path or None)
