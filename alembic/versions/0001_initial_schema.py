"""blocked numbers

Revision ID: 0001_initial_schema
Revises: 
Create Date: 2026-10-18

"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "blocked_numbers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("phone_number", sa.String(length=32), nullable=False),
        sa.Column("caller_name", sa.String(length=255), nullable=True),
        sa.Column("call_sid", sa.String(length=64), nullable=True),
        sa.Column("blocked_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_blocked_numbers_phone_number",
        "blocked_numbers",
        ["phone_number"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_index("ix_blocked_numbers_phone_number", table_name="blocked_numbers")
    op.drop_table("blocked_numbers")
