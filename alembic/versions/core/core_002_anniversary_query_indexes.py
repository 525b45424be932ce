"""add indexes for the anniversary month query

Revision ID: core_002
Revises: core_001
Create Date: 2026-10-01 00:00:00.000000

"""

from __future__ import annotations

from alembic import op

# revision identifiers, used by Alembic.
revision = "core_002"
down_revision = "core_001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Solar step of the month query.
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_anniversaries_site_month
        ON anniversaries (site_id, month)
        WHERE deleted_at IS NULL
    """)

    # Hebrew step and horizon extension.
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_anniversaries_site_hebrew_annual
        ON anniversaries (site_id, use_hebrew, is_annual)
        WHERE deleted_at IS NULL
    """)

    # occurrences @> '[{"year": ..., "month": ...}]'
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_anniversaries_occurrences
        ON anniversaries USING GIN (occurrences jsonb_path_ops)
    """)


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_anniversaries_occurrences")
    op.execute("DROP INDEX IF EXISTS idx_anniversaries_site_hebrew_annual")
    op.execute("DROP INDEX IF EXISTS idx_anniversaries_site_month")
