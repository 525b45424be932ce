"""create anniversary tables

Revision ID: core_001
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""

from __future__ import annotations

from alembic import op

# revision identifiers, used by Alembic.
revision = "core_001"
down_revision = None
branch_labels = ("core",)
depends_on = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS anniversaries (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            site_id TEXT NOT NULL,
            name TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            type TEXT NOT NULL
                CHECK (type IN ('birthday', 'wedding', 'death', 'death-memorial')),
            image_url TEXT,
            date DATE NOT NULL,
            year INTEGER NOT NULL,
            month INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
            day INTEGER NOT NULL CHECK (day BETWEEN 1 AND 31),
            is_annual BOOLEAN NOT NULL DEFAULT true,
            use_hebrew BOOLEAN NOT NULL DEFAULT false,
            hebrew_key TEXT,
            hebrew_date TEXT,
            death_date DATE,
            burial_date DATE,
            hebrew_burial_key TEXT,
            hebrew_burial_date TEXT,
            occurrences JSONB,
            locales JSONB NOT NULL DEFAULT '{}',
            primary_locale TEXT,
            owner_id TEXT,
            created_by TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            deleted_at TIMESTAMPTZ,
            CONSTRAINT anniversaries_occurrences_hebrew_only
                CHECK (occurrences IS NULL OR use_hebrew)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS anniversary_horizons (
            site_id TEXT PRIMARY KEY,
            horizon_year INTEGER NOT NULL,
            version INTEGER NOT NULL DEFAULT 1,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS anniversary_horizons")
    op.execute("DROP TABLE IF EXISTS anniversaries")
