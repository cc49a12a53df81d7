"""Focus garden tables.

Creates garden_ledgers (per-user aggregate with the embedded active session
and optimistic-concurrency version), plants and plant_sessions.

Revision ID: 001_focus_garden_tables
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_focus_garden_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Garden Ledgers ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS garden_ledgers (
            user_id BIGINT PRIMARY KEY,
            dew_balance INTEGER NOT NULL DEFAULT 0,
            total_focus_minutes INTEGER NOT NULL DEFAULT 0,
            total_sessions INTEGER NOT NULL DEFAULT 0,
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            grid_columns INTEGER NOT NULL DEFAULT 5,
            grid_rows INTEGER NOT NULL DEFAULT 5,
            next_tile_index INTEGER NOT NULL DEFAULT 0,
            inventory JSONB NOT NULL DEFAULT '{}',
            last_session_date DATE,
            active_session_id VARCHAR(36),
            active_species VARCHAR(64),
            active_subject VARCHAR(128),
            active_target_minutes INTEGER,
            active_started_at TIMESTAMPTZ,
            active_tile_index INTEGER,
            active_seed_reserved BOOLEAN,
            version INTEGER NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT garden_ledgers_dew_balance_check CHECK (dew_balance >= 0)
        )
    """)

    # --- Plants ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS plants (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            species VARCHAR(64) NOT NULL,
            subject VARCHAR(128) NOT NULL DEFAULT 'General',
            tile_index INTEGER NOT NULL,
            planted_at TIMESTAMPTZ NOT NULL,
            growth_stage INTEGER NOT NULL DEFAULT 1,
            session_count INTEGER NOT NULL DEFAULT 0,
            total_focus_minutes INTEGER NOT NULL DEFAULT 0,
            earned_dew INTEGER NOT NULL DEFAULT 0,
            health_status VARCHAR(16) NOT NULL DEFAULT 'healthy',
            last_care_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT plants_user_id_tile_index_key UNIQUE (user_id, tile_index)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_plants_user_id ON plants(user_id)")

    # --- Plant Sessions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS plant_sessions (
            id BIGSERIAL PRIMARY KEY,
            plant_id BIGINT NOT NULL REFERENCES plants(id) ON DELETE CASCADE,
            session_id VARCHAR(36) NOT NULL,
            started_at TIMESTAMPTZ NOT NULL,
            completed_at TIMESTAMPTZ NOT NULL,
            duration_minutes INTEGER NOT NULL,
            subject VARCHAR(128) NOT NULL,
            quality INTEGER NOT NULL DEFAULT 5
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_plant_sessions_plant_id ON plant_sessions(plant_id)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS plant_sessions CASCADE")
    op.execute("DROP TABLE IF EXISTS plants CASCADE")
    op.execute("DROP TABLE IF EXISTS garden_ledgers CASCADE")
