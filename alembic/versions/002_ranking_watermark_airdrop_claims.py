"""add rankings.aggregated_until and airdrops.claimed_at

Revision ID: 002
Revises: 001
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("rankings", sa.Column("aggregated_until", sa.DateTime(), nullable=True))
    op.add_column("airdrops", sa.Column("claimed_at", sa.DateTime(), nullable=True))
    op.create_index("ix_airdrops_claimed_at", "airdrops", ["claimed_at"])


def downgrade() -> None:
    op.drop_index("ix_airdrops_claimed_at", table_name="airdrops")
    op.drop_column("airdrops", "claimed_at")
    op.drop_column("rankings", "aggregated_until")
