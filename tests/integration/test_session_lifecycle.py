"""Focus session lifecycle — start, complete, abort, streaks, grid growth, races."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from focusgarden.config import get_settings
from focusgarden.db.models import ActiveSession, Plant, PlantSession
from focusgarden.garden.catalog import SpeciesCatalog
from focusgarden.garden.concurrency import run_atomic
from focusgarden.garden.errors import (
    AlreadyInSession,
    InvalidSessionInput,
    PlantNotFound,
    SessionMismatch,
    SpeciesUnavailable,
    UnknownSpecies,
)
from focusgarden.garden.events import GARDEN_CHANNEL
from focusgarden.garden.ledger_service import credit_dew, get_ledger, get_or_create_ledger
from focusgarden.garden.plant_service import get_plant, list_plant_sessions
from focusgarden.garden.session_service import (
    CompletionResult,
    abort_session,
    complete_session,
    garden_today,
    start_session,
)

TEST_USER_ID = 4242
DAY_ONE = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


async def _run_session(db, catalog, *, minutes=None, target=25, tile_index=None, now=DAY_ONE, species="pine-tree"):
    active = await start_session(
        db, TEST_USER_ID, species, target_minutes=target, tile_index=tile_index, catalog=catalog, now=now,
    )
    return await complete_session(
        db, TEST_USER_ID, active.session_id, actual_minutes=minutes, catalog=catalog, now=now,
    )


async def _plant_count(db: AsyncSession) -> int:
    return (await db.execute(select(func.count()).select_from(Plant))).scalar_one()


@pytest_asyncio.fixture
async def ledger(db_session: AsyncSession):
    """A committed ledger with the starter inventory."""
    row = await get_or_create_ledger(db_session, TEST_USER_ID)
    await db_session.commit()
    return row


class TestStartSession:
    """Idle -> InSession."""

    @pytest.mark.asyncio
    async def test_start_reserves_seed_and_tile(self, db_session, catalog):
        active = await start_session(db_session, TEST_USER_ID, "pine-tree", "Math", 25, catalog=catalog)

        assert active.species == "pine-tree"
        assert active.subject == "Math"
        assert active.target_minutes == 25
        assert active.tile_index == 0
        assert active.seed_reserved is True

        ledger = await get_ledger(db_session, TEST_USER_ID)
        assert ledger.inventory == {"pine-tree": 2}
        assert ledger.active_session.session_id == active.session_id
        assert ledger.next_tile_index == 0

    @pytest.mark.asyncio
    async def test_defaults_for_subject_and_target(self, db_session, catalog):
        active = await start_session(db_session, TEST_USER_ID, "pine-tree", "   ", catalog=catalog)
        assert active.subject == "General"
        assert active.target_minutes == 25

    @pytest.mark.asyncio
    async def test_second_start_rejected(self, db_session, catalog):
        await start_session(db_session, TEST_USER_ID, "pine-tree", catalog=catalog)
        with pytest.raises(AlreadyInSession):
            await start_session(db_session, TEST_USER_ID, "pine-tree", catalog=catalog)

        ledger = await get_ledger(db_session, TEST_USER_ID)
        assert ledger.inventory == {"pine-tree": 2}

    @pytest.mark.asyncio
    async def test_species_not_in_inventory(self, db_session, catalog):
        with pytest.raises(SpeciesUnavailable):
            await start_session(db_session, TEST_USER_ID, "lavender-bush", catalog=catalog)

        ledger = await get_ledger(db_session, TEST_USER_ID)
        assert ledger is None or ledger.active_session is None

    @pytest.mark.asyncio
    async def test_species_not_in_catalog(self, db_session, catalog):
        with pytest.raises(SpeciesUnavailable):
            await start_session(db_session, TEST_USER_ID, "oak", catalog=catalog)

    @pytest.mark.asyncio
    async def test_last_seed_can_be_used(self, db_session, catalog, ledger):
        for _ in range(3):
            await _run_session(db_session, catalog)
        with pytest.raises(SpeciesUnavailable):
            await start_session(db_session, TEST_USER_ID, "pine-tree", catalog=catalog)

        ledger = await get_ledger(db_session, TEST_USER_ID)
        assert ledger.inventory == {"pine-tree": 0}

    @pytest.mark.asyncio
    async def test_non_positive_target_rejected(self, db_session, catalog):
        with pytest.raises(InvalidSessionInput):
            await start_session(db_session, TEST_USER_ID, "pine-tree", target_minutes=0, catalog=catalog)

    @pytest.mark.asyncio
    async def test_publishes_started_event(self, db_session, catalog, mock_redis):
        active = await start_session(db_session, TEST_USER_ID, "pine-tree", catalog=catalog, redis=mock_redis)

        channel, raw = mock_redis.publish.await_args.args
        message = json.loads(raw)
        assert channel == GARDEN_CHANNEL
        assert message["event"] == "garden_session_started"
        assert message["session_id"] == active.session_id
        assert message["user_id"] == TEST_USER_ID


class TestCompleteSession:
    """InSession -> Idle with growth and rewards."""

    @pytest.mark.asyncio
    async def test_first_session_plants_tile_zero(self, db_session, catalog):
        """Fresh user: 20 actual minutes credit the 25-minute target, 5 dew, stage 1."""
        active = await start_session(db_session, TEST_USER_ID, "pine-tree", target_minutes=25, catalog=catalog)
        ledger = await get_ledger(db_session, TEST_USER_ID)
        assert ledger.inventory == {"pine-tree": 2}

        result = await complete_session(
            db_session, TEST_USER_ID, active.session_id, actual_minutes=20, catalog=catalog, now=DAY_ONE,
        )

        assert result.dew_earned == 5
        assert result.ledger.dew_balance == 5
        assert result.plant.tile_index == 0
        assert result.plant.growth_stage == 1
        assert result.plant.session_count == 1
        assert result.plant.total_focus_minutes == 25
        assert result.plant.earned_dew == 5

        ledger = await get_ledger(db_session, TEST_USER_ID)
        assert ledger.active_session is None
        assert ledger.next_tile_index == 1
        assert ledger.total_focus_minutes == 25
        assert ledger.total_sessions == 1
        assert ledger.current_streak == 1
        assert ledger.longest_streak == 1
        assert ledger.last_session_date == DAY_ONE.date()

    @pytest.mark.asyncio
    async def test_longer_session_credited_in_full(self, db_session, catalog):
        result = await _run_session(db_session, catalog, minutes=52)
        assert result.plant.total_focus_minutes == 52
        assert result.dew_earned == 10

    @pytest.mark.asyncio
    async def test_each_planting_uses_next_tile(self, db_session, catalog):
        first = await _run_session(db_session, catalog)
        second = await _run_session(db_session, catalog)
        assert (first.plant.tile_index, second.plant.tile_index) == (0, 1)
        assert await _plant_count(db_session) == 2

    @pytest.mark.asyncio
    async def test_history_entry_recorded(self, db_session, catalog):
        result = await _run_session(db_session, catalog, minutes=30)
        history = await list_plant_sessions(db_session, result.plant.id)
        assert len(history) == 1
        assert history[0].duration_minutes == 30
        assert history[0].quality == 5

    @pytest.mark.asyncio
    async def test_mismatched_session_id_changes_nothing(self, db_session, catalog):
        active = await start_session(db_session, TEST_USER_ID, "pine-tree", catalog=catalog)

        with pytest.raises(SessionMismatch):
            await complete_session(db_session, TEST_USER_ID, "not-the-session", catalog=catalog)

        ledger = await get_ledger(db_session, TEST_USER_ID)
        assert ledger.active_session.session_id == active.session_id
        assert ledger.dew_balance == 0
        assert ledger.total_sessions == 0
        assert await _plant_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_complete_while_idle_is_mismatch(self, db_session, catalog):
        with pytest.raises(SessionMismatch):
            await complete_session(db_session, TEST_USER_ID, "anything", catalog=catalog)

    @pytest.mark.asyncio
    async def test_double_complete_rejected(self, db_session, catalog):
        active = await start_session(db_session, TEST_USER_ID, "pine-tree", catalog=catalog)
        await complete_session(db_session, TEST_USER_ID, active.session_id, catalog=catalog)
        with pytest.raises(SessionMismatch):
            await complete_session(db_session, TEST_USER_ID, active.session_id, catalog=catalog)

        ledger = await get_ledger(db_session, TEST_USER_ID)
        assert ledger.total_sessions == 1
        assert ledger.dew_balance == 5

    @pytest.mark.asyncio
    async def test_invalid_quality_rejected(self, db_session, catalog):
        active = await start_session(db_session, TEST_USER_ID, "pine-tree", catalog=catalog)
        with pytest.raises(InvalidSessionInput):
            await complete_session(db_session, TEST_USER_ID, active.session_id, quality=6, catalog=catalog)
        with pytest.raises(InvalidSessionInput):
            await complete_session(db_session, TEST_USER_ID, active.session_id, actual_minutes=-1, catalog=catalog)

    @pytest.mark.asyncio
    async def test_species_missing_from_catalog(self, db_session, catalog):
        """A session whose species left the catalog cannot be completed and stays active."""
        active = await start_session(db_session, TEST_USER_ID, "pine-tree", catalog=catalog)
        trimmed = SpeciesCatalog(s for s in catalog.all() if s.slug != "pine-tree")

        with pytest.raises(UnknownSpecies):
            await complete_session(db_session, TEST_USER_ID, active.session_id, catalog=trimmed)

        ledger = await get_ledger(db_session, TEST_USER_ID)
        assert ledger.active_session.session_id == active.session_id
        assert ledger.total_sessions == 0
        assert ledger.dew_balance == 0
        assert await _plant_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_publishes_completed_event(self, db_session, catalog, mock_redis):
        active = await start_session(db_session, TEST_USER_ID, "pine-tree", catalog=catalog)
        await complete_session(db_session, TEST_USER_ID, active.session_id, catalog=catalog, redis=mock_redis)

        message = json.loads(mock_redis.publish.await_args.args[1])
        assert message["event"] == "garden_session_completed"
        assert message["dew_earned"] == 5
        assert message["dew_balance"] == 5
        assert message["tile_index"] == 0


class TestWatering:
    """Water mode grows an existing plant instead of planting a new tile."""

    @pytest.mark.asyncio
    async def test_plant_accumulates_to_stage_three(self, db_session, catalog, ledger):
        first = await _run_session(db_session, catalog)
        assert first.plant.growth_stage == 1

        stages = []
        for _ in range(3):
            result = await _run_session(db_session, catalog, minutes=35, tile_index=0)
            stages.append(result.plant.growth_stage)

        # 25 + 3 * 35 = 130 minutes over 4 sessions
        assert stages == [2, 2, 3]
        plant = await get_plant(db_session, TEST_USER_ID, 0)
        assert plant.session_count == 4
        assert plant.total_focus_minutes == 130

        # A short session afterwards never reverts the stage
        result = await _run_session(db_session, catalog, target=5, tile_index=0)
        assert result.plant.growth_stage == 3
        assert result.plant.session_count == 5

    @pytest.mark.asyncio
    async def test_watering_keeps_seed_and_tile(self, db_session, catalog):
        await _run_session(db_session, catalog)
        before = await get_ledger(db_session, TEST_USER_ID)
        inventory, next_tile, rows = dict(before.inventory), before.next_tile_index, before.grid_rows

        active = await start_session(db_session, TEST_USER_ID, "pine-tree", tile_index=0, catalog=catalog)
        assert active.seed_reserved is False
        assert active.tile_index == 0
        await complete_session(db_session, TEST_USER_ID, active.session_id, catalog=catalog)

        after = await get_ledger(db_session, TEST_USER_ID)
        assert after.inventory == inventory
        assert after.next_tile_index == next_tile
        assert after.grid_rows == rows
        assert after.total_sessions == 2
        assert await _plant_count(db_session) == 1

    @pytest.mark.asyncio
    async def test_watering_empty_tile_rejected(self, db_session, catalog):
        with pytest.raises(PlantNotFound):
            await start_session(db_session, TEST_USER_ID, "pine-tree", tile_index=4, catalog=catalog)

    @pytest.mark.asyncio
    async def test_watering_with_other_species_rejected(self, db_session, catalog):
        await _run_session(db_session, catalog)
        with pytest.raises(SpeciesUnavailable):
            await start_session(db_session, TEST_USER_ID, "lavender-bush", tile_index=0, catalog=catalog)

    @pytest.mark.asyncio
    async def test_watering_needs_no_inventory(self, db_session, catalog, ledger):
        for _ in range(3):
            await _run_session(db_session, catalog)
        result = await _run_session(db_session, catalog, tile_index=2)
        assert result.plant.session_count == 2


class TestAbortSession:
    """InSession -> Idle without rewards."""

    @pytest.mark.asyncio
    async def test_abort_returns_seed(self, db_session, catalog):
        before = await get_or_create_ledger(db_session, TEST_USER_ID)
        await db_session.commit()
        inventory, next_tile = dict(before.inventory), before.next_tile_index

        await start_session(db_session, TEST_USER_ID, "pine-tree", catalog=catalog)
        ledger = await abort_session(db_session, TEST_USER_ID)

        assert ledger.active_session is None
        assert ledger.inventory == inventory
        assert ledger.next_tile_index == next_tile
        assert ledger.dew_balance == 0
        assert await _plant_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_abort_when_idle_is_noop(self, db_session, mock_redis):
        ledger = await abort_session(db_session, TEST_USER_ID, redis=mock_redis)
        again = await abort_session(db_session, TEST_USER_ID, redis=mock_redis)

        assert ledger.inventory == {"pine-tree": 3}
        assert again.inventory == {"pine-tree": 3}
        mock_redis.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_abort_twice_returns_seed_once(self, db_session, catalog):
        await start_session(db_session, TEST_USER_ID, "pine-tree", catalog=catalog)
        await abort_session(db_session, TEST_USER_ID)
        ledger = await abort_session(db_session, TEST_USER_ID)
        assert ledger.inventory == {"pine-tree": 3}

    @pytest.mark.asyncio
    async def test_abort_watering_returns_nothing(self, db_session, catalog):
        await _run_session(db_session, catalog)
        await start_session(db_session, TEST_USER_ID, "pine-tree", tile_index=0, catalog=catalog)
        ledger = await abort_session(db_session, TEST_USER_ID)
        assert ledger.inventory == {"pine-tree": 2}

    @pytest.mark.asyncio
    async def test_can_start_again_after_abort(self, db_session, catalog):
        first = await start_session(db_session, TEST_USER_ID, "pine-tree", catalog=catalog)
        await abort_session(db_session, TEST_USER_ID)
        second = await start_session(db_session, TEST_USER_ID, "pine-tree", catalog=catalog)
        assert second.session_id != first.session_id
        assert second.tile_index == first.tile_index

    @pytest.mark.asyncio
    async def test_publishes_aborted_event(self, db_session, catalog, mock_redis):
        active = await start_session(db_session, TEST_USER_ID, "pine-tree", catalog=catalog)
        await abort_session(db_session, TEST_USER_ID, redis=mock_redis)

        message = json.loads(mock_redis.publish.await_args.args[1])
        assert message["event"] == "garden_session_aborted"
        assert message["session_id"] == active.session_id


class TestStreaks:
    """Daily streak across completions."""

    @pytest.mark.asyncio
    async def test_consecutive_days_then_gap(self, db_session, catalog):
        day_one = await _run_session(db_session, catalog, now=DAY_ONE)
        assert day_one.ledger.current_streak == 1

        day_two = await _run_session(db_session, catalog, tile_index=0, now=DAY_ONE + timedelta(days=1))
        assert day_two.ledger.current_streak == 2
        assert day_two.ledger.longest_streak == 2

        day_four = await _run_session(db_session, catalog, tile_index=0, now=DAY_ONE + timedelta(days=3))
        assert day_four.ledger.current_streak == 1
        assert day_four.ledger.longest_streak == 2

    @pytest.mark.asyncio
    async def test_same_day_counts_once(self, db_session, catalog):
        await _run_session(db_session, catalog, now=DAY_ONE)
        result = await _run_session(db_session, catalog, now=DAY_ONE + timedelta(hours=3))
        assert result.ledger.current_streak == 1
        assert result.ledger.total_sessions == 2

    @pytest.mark.asyncio
    async def test_day_boundary_follows_garden_timezone(self, monkeypatch):
        late_utc = datetime(2026, 3, 1, 23, 30, tzinfo=timezone.utc)
        assert garden_today(late_utc).day == 1

        monkeypatch.setattr(get_settings(), "garden_timezone", "Asia/Tokyo")
        assert garden_today(late_utc).day == 2


class TestGridGrowth:
    """Plantings past rows * columns."""

    @pytest_asyncio.fixture
    async def full_grid(self, db_session: AsyncSession):
        row = await get_or_create_ledger(db_session, TEST_USER_ID)
        row.next_tile_index = 24
        await db_session.commit()
        return row

    @pytest.mark.asyncio
    async def test_grid_grows_a_row(self, db_session, catalog, full_grid):
        result = await _run_session(db_session, catalog)
        assert result.plant.tile_index == 24
        assert result.ledger.next_tile_index == 25
        assert result.ledger.grid_rows == 6

        result = await _run_session(db_session, catalog)
        assert result.plant.tile_index == 25
        assert result.ledger.grid_rows == 6

    @pytest.mark.asyncio
    async def test_unbounded_policy_keeps_rows(self, db_session, catalog, full_grid, monkeypatch):
        monkeypatch.setattr(get_settings(), "garden_grid_overflow", "unbounded")
        await _run_session(db_session, catalog)
        result = await _run_session(db_session, catalog)
        assert result.plant.tile_index == 25
        assert result.ledger.grid_rows == 5


class TestConcurrency:
    """Optimistic concurrency on the ledger row."""

    @pytest.mark.asyncio
    async def test_stale_ledger_write_detected(self, session_factory, ledger):
        async with session_factory() as first, session_factory() as second:
            mine = await get_ledger(first, TEST_USER_ID)
            theirs = await get_ledger(second, TEST_USER_ID)

            credit_dew(theirs, 3)
            await second.commit()

            credit_dew(mine, 4)
            with pytest.raises(StaleDataError):
                await first.commit()
            await first.rollback()

    @pytest.mark.asyncio
    async def test_lost_race_is_retried_from_fresh_read(self, db_session, session_factory, ledger):
        attempts = 0

        async def credit_one(session: AsyncSession):
            nonlocal attempts
            attempts += 1
            row = await get_ledger(session, TEST_USER_ID)
            if attempts == 1:
                async with session_factory() as rival:
                    other = await get_ledger(rival, TEST_USER_ID)
                    credit_dew(other, 7)
                    await rival.commit()
            credit_dew(row, 1)
            return row

        row = await run_atomic(db_session, credit_one, name="credit")
        assert attempts == 2
        assert row.dew_balance == 8

        ledger = await get_ledger(db_session, TEST_USER_ID)
        assert ledger.dew_balance == 8

    @pytest.mark.asyncio
    async def test_history_matches_plant_counters(self, db_session, catalog):
        await _run_session(db_session, catalog, minutes=30)
        await _run_session(db_session, catalog, minutes=40, tile_index=0)

        total = (await db_session.execute(select(func.sum(PlantSession.duration_minutes)))).scalar_one()
        plant = await get_plant(db_session, TEST_USER_ID, 0)
        ledger = await get_ledger(db_session, TEST_USER_ID)
        assert total == plant.total_focus_minutes == ledger.total_focus_minutes == 70

    @pytest.mark.asyncio
    async def test_concurrent_completions_have_one_winner(self, session_factory, catalog):
        async with session_factory() as db:
            active = await start_session(db, TEST_USER_ID, "pine-tree", catalog=catalog)

        async def complete():
            async with session_factory() as db:
                return await complete_session(db, TEST_USER_ID, active.session_id, catalog=catalog)

        outcomes = await asyncio.gather(*(complete() for _ in range(3)), return_exceptions=True)

        assert sum(isinstance(o, CompletionResult) for o in outcomes) == 1
        assert sum(isinstance(o, SessionMismatch) for o in outcomes) == 2
        async with session_factory() as db:
            ledger = await get_ledger(db, TEST_USER_ID)
            assert ledger.active_session is None
            assert ledger.total_sessions == 1
            assert ledger.dew_balance == 5
            assert ledger.next_tile_index == 1
            assert await _plant_count(db) == 1

    @pytest.mark.asyncio
    async def test_concurrent_starts_have_one_winner(self, session_factory, catalog):
        """First access races on creating the ledger as well as on the session."""

        async def start():
            async with session_factory() as db:
                return await start_session(db, TEST_USER_ID, "pine-tree", catalog=catalog)

        outcomes = await asyncio.gather(*(start() for _ in range(3)), return_exceptions=True)

        [winner] = [o for o in outcomes if isinstance(o, ActiveSession)]
        assert sum(isinstance(o, AlreadyInSession) for o in outcomes) == 2
        async with session_factory() as db:
            ledger = await get_ledger(db, TEST_USER_ID)
            assert ledger.active_session.session_id == winner.session_id
            assert ledger.inventory == {"pine-tree": 2}
