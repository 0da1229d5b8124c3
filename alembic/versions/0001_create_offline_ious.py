"""create offline ious table

Revision ID: 0001_create_offline_ious
Revises:
Create Date: 2026-10-16 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0001_create_offline_ious"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS offline;")
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS offline.ious (
          id bigserial PRIMARY KEY,
          beneficiary text NOT NULL,
          merchant text NOT NULL,
          amount numeric(78, 18) NOT NULL CHECK (amount > 0),
          signature text NOT NULL,
          nonce bigint NULL,
          client_timestamp timestamptz NOT NULL,
          status text NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'synced', 'settled', 'failed')),
          created_at timestamptz NOT NULL DEFAULT now(),
          synced_at timestamptz NULL,
          settled_at timestamptz NULL,
          tx_hash text NULL,
          attempt_count integer NOT NULL DEFAULT 0,
          last_error text NULL,
          CONSTRAINT ious_settled_requires_tx_hash
            CHECK (status <> 'settled' OR tx_hash IS NOT NULL)
        );
        """
    )
    op.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS ux_ious_beneficiary_nonce
          ON offline.ious (lower(beneficiary), nonce)
          WHERE nonce IS NOT NULL;
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS ix_ious_merchant ON offline.ious (lower(merchant), id);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_ious_status ON offline.ious (status, id);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS offline.ious;")
    op.execute("DROP SCHEMA IF EXISTS offline;")
