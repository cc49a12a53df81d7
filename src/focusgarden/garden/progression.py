"""Progression rules: growth stage, dew reward, streak, tile position, unlocks.

Pure functions, no I/O. The service layer feeds them ledger/plant counters
and writes the results back.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple

from focusgarden.garden.catalog import GrowthStage, Species

MINUTES_PER_DEW = 5
MIN_STAGE = 1


class StreakUpdate(NamedTuple):
    current: int
    longest: int
    last_session_date: date


class TilePosition(NamedTuple):
    row: int
    col: int


def compute_growth_stage(
    stages: Sequence[GrowthStage],
    session_count: int,
    total_minutes: int,
    current_stage: int = MIN_STAGE,
) -> int:
    """Return the highest stage whose session and minute thresholds are both met.

    Stages are in ascending order (validated by the catalog). Falls back to
    stage 1 when nothing qualifies and never returns less than ``current_stage``.
    """
    reached = MIN_STAGE
    for stage in stages:
        if session_count >= stage.min_sessions and total_minutes >= stage.min_minutes:
            reached = stage.stage
    return max(reached, current_stage, MIN_STAGE)


def compute_dew_reward(duration_minutes: int | float) -> int:
    """Dew earned for a session: duration / 5, rounded half-up."""
    if duration_minutes <= 0:
        return 0
    drops = Decimal(str(duration_minutes)) / MINUTES_PER_DEW
    return int(drops.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_streak(
    last_session_date: date | None,
    today: date,
    current_streak: int,
    longest_streak: int,
) -> StreakUpdate:
    """Advance the daily streak for a session completed on ``today``.

    Same day keeps the streak, the next day extends it, a longer gap resets it to 1.
    """
    if last_session_date is None:
        return StreakUpdate(1, max(longest_streak, 1), today)

    gap = (today - last_session_date).days
    if gap <= 0:
        # Same day, or a clock that went backwards: nothing to count.
        return StreakUpdate(current_streak, longest_streak, max(today, last_session_date))
    if gap == 1:
        current = current_streak + 1
    else:
        current = 1
    return StreakUpdate(current, max(longest_streak, current), today)


def tile_position(tile_index: int, columns: int) -> TilePosition:
    """Map a tile index to its grid cell. Not bound-checked against the row count."""
    return TilePosition(tile_index // columns, tile_index % columns)


def grow_grid(next_tile_index: int, columns: int, rows: int) -> int:
    """Return the row count needed so ``next_tile_index`` fits in the grid."""
    needed = next_tile_index // columns + 1
    return max(rows, needed)


def is_species_unlocked(
    species: Species,
    total_minutes: int,
    longest_streak: int,
    subject_minutes: Mapping[str, int] | None = None,
) -> bool:
    """Check a species' unlock requirement against the ledger's lifetime stats."""
    req = species.unlock_requirement
    if req is None or req.value <= 0:
        return True
    if req.type == "totalMinutes":
        return total_minutes >= req.value
    if req.type == "streak":
        return longest_streak >= req.value
    if req.type == "subjectMinutes":
        if not subject_minutes or req.subject is None:
            return False
        return subject_minutes.get(req.subject, 0) >= req.value
    return False


def sum_subject_minutes(pairs: Iterable[tuple[str, int]]) -> dict[str, int]:
    """Aggregate (subject, minutes) pairs into a subject -> minutes mapping."""
    totals: dict[str, int] = {}
    for subject, minutes in pairs:
        totals[subject] = totals.get(subject, 0) + minutes
    return totals
