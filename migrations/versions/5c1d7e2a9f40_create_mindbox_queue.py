"""create mindbox queue

Revision ID: 5c1d7e2a9f40
Revises:
Create Date: 2026-10-19 09:12:41.317204

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5c1d7e2a9f40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the durable retry queue table."""
    op.create_table(
        "mindbox_queue",
        sa.Column(
            "id",
            sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
            autoincrement=True,
            nullable=False,
        ),
        sa.Column("status", sa.String(length=1), nullable=False),
        sa.Column("next_run_at", sa.DateTime(), nullable=True),
        sa.Column("locked_until", sa.DateTime(), nullable=True),
        sa.Column("tries", sa.Integer(), nullable=False),
        sa.Column("mode", sa.String(length=8), nullable=False),
        sa.Column("operation", sa.String(length=255), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("device_id", sa.String(length=255), nullable=True),
        sa.Column("authorization", sa.Boolean(), nullable=False),
        sa.Column("api_url", sa.String(length=255), nullable=False),
        sa.Column("endpoint_id", sa.String(length=255), nullable=False),
        sa.Column("timeout", sa.Float(), nullable=False),
        sa.Column("idempotency_token", sa.String(length=64), nullable=False),
        sa.Column("http_status", sa.Integer(), nullable=False),
        sa.Column("response_status", sa.String(length=64), nullable=True),
        sa.Column("error_id", sa.String(length=255), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("last_error_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_mindbox_queue_due",
        "mindbox_queue",
        ["status", "next_run_at", "locked_until"],
    )
    op.create_index(
        "ix_mindbox_queue_idempotency_token",
        "mindbox_queue",
        ["idempotency_token"],
    )


def downgrade() -> None:
    """Drop the retry queue table."""
    op.drop_index("ix_mindbox_queue_idempotency_token", table_name="mindbox_queue")
    op.drop_index("ix_mindbox_queue_due", table_name="mindbox_queue")
    op.drop_table("mindbox_queue")
