"""add settlement lease to offline ious

Revision ID: 0002_add_settlement_lease
Revises: 0001_create_offline_ious
Create Date: 2026-10-16 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0002_add_settlement_lease"
down_revision = "0001_create_offline_ious"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("ALTER TABLE offline.ious ADD COLUMN IF NOT EXISTS settling_until timestamptz NULL;")
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_ious_synced_lease
          ON offline.ious (id, settling_until)
          WHERE status = 'synced';
        """
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS offline.ix_ious_synced_lease;")
    op.execute("ALTER TABLE offline.ious DROP COLUMN IF EXISTS settling_until;")
