"""Records schema - generic keyed JSON item table for the SQL record store

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    inspector = inspect(conn)

    # init_db may already have created the table in development
    if "records" in inspector.get_table_names():
        return

    op.create_table(
        "records",
        sa.Column("table_name", sa.String(100), nullable=False),
        sa.Column("record_key", sa.String(255), nullable=False),
        sa.Column("item", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("table_name", "record_key"),
    )


def downgrade() -> None:
    op.drop_table("records")
