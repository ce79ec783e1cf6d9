"""Billing ledger schema

Revision ID: 20261019_000000
Revises: None
Create Date: 2026-10-19 00:00:00.000000

Creates the billing tables:
- billing_accounts: one row per user with access-gating fields and counters
- billing_ledger_entries: append-only transaction log
- billing_idempotency_records: applied payment references

Revision format: YYYYMMDD_HHMMSS_description

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261019_000000"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the billing tables."""

    op.create_table(
        "billing_accounts",
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("trial_units_used", sa.BigInteger(), nullable=False),
        sa.Column("trial_units_limit", sa.BigInteger(), nullable=False),
        sa.Column("lifetime_units_purchased", sa.BigInteger(), nullable=False),
        sa.Column("paid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "billing_ledger_entries",
        sa.Column("entry_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("cost_cents", sa.BigInteger(), nullable=True),
        sa.Column("provider", sa.String(64), nullable=True),
        sa.Column("model", sa.String(128), nullable=True),
        sa.Column("input_units", sa.BigInteger(), nullable=True),
        sa.Column("output_units", sa.BigInteger(), nullable=True),
        sa.Column("charged_to_trial", sa.Boolean(), nullable=False),
        sa.Column("price_cents", sa.BigInteger(), nullable=True),
        sa.Column("external_reference", sa.String(128), nullable=True),
        sa.Column("description", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("entry_id"),
        sa.ForeignKeyConstraint(["user_id"], ["billing_accounts.user_id"], ondelete="CASCADE"),
        sa.Index("ix_billing_ledger_entries_user_created", "user_id", "created_at"),
    )

    op.create_table(
        "billing_idempotency_records",
        sa.Column("external_reference", sa.String(128), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("entry_id", sa.String(64), nullable=False),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("external_reference"),
        sa.Index("ix_billing_idempotency_records_user_id", "user_id"),
    )


def downgrade() -> None:
    """Drop the billing tables."""
    op.drop_table("billing_idempotency_records")
    op.drop_table("billing_ledger_entries")
    op.drop_table("billing_accounts")
