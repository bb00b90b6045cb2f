"""offline donation store

Revision ID: 5b1e0c7a9d21
Revises:
Create Date: 2026-10-17 09:12:44.318205

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5b1e0c7a9d21"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the offline donation table."""
    op.create_table(
        "offline_donation",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("receipt_number", sa.String(length=40), nullable=False),
        sa.Column("server_donation_id", sa.BigInteger(), nullable=True),
        sa.Column("donor_name", sa.Text(), nullable=True),
        sa.Column("organization_name", sa.Text(), nullable=True),
        sa.Column("is_organization", sa.Boolean(), nullable=False),
        sa.Column("donor_email", sa.Text(), nullable=True),
        sa.Column("donor_phone", sa.Text(), nullable=True),
        sa.Column("address1", sa.Text(), nullable=True),
        sa.Column("address2", sa.Text(), nullable=True),
        sa.Column("city", sa.Text(), nullable=True),
        sa.Column("state", sa.Text(), nullable=True),
        sa.Column("country", sa.Text(), nullable=True),
        sa.Column("postal_code", sa.Text(), nullable=True),
        sa.Column("amount", sa.String(length=32), nullable=False),
        sa.Column("donation_type", sa.Text(), nullable=False),
        sa.Column("payment_method", sa.Text(), nullable=False),
        sa.Column("payment_reference", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("collector_email", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sync_status", sa.String(length=20), nullable=False),
        sa.Column("sync_attempts", sa.SmallInteger(), nullable=False),
        sa.Column("last_sync_attempt", sa.DateTime(timezone=True), nullable=True),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("sync_note", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("receipt_number"),
    )
    op.create_index(
        "ix_offline_donation_status_created",
        "offline_donation",
        ["sync_status", "created_at"],
    )


def downgrade() -> None:
    """Drop the offline donation table."""
    op.drop_index("ix_offline_donation_status_created", table_name="offline_donation")
    op.drop_table("offline_donation")
