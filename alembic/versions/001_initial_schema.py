"""initial schema: games, predictions, ledger, rankings, airdrops

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Games & predictions ──
    op.create_table(
        "games",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("symbol", sa.String(), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("start_price", sa.Float(), nullable=False),
        sa.Column("end_price", sa.Float(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="ACTIVE"),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_games_symbol", "games", ["symbol"])
    op.create_index("ix_games_end_time", "games", ["end_time"])
    op.create_index("ix_games_status", "games", ["status"])
    op.create_index("ix_games_created_by", "games", ["created_by"])
    op.create_index("ix_games_created_at", "games", ["created_at"])

    op.create_table(
        "predictions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("game_id", sa.String(), sa.ForeignKey("games.id"), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("direction", sa.String(), nullable=False),
        sa.Column("confidence", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("accuracy", sa.Float(), nullable=False, server_default="0"),
        sa.Column("prediction_price", sa.Float(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("is_correct", sa.Boolean(), nullable=True),
        sa.Column("score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("end_price", sa.Float(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("game_id", "user_id", name="uq_predictions_game_user"),
    )
    op.create_index("ix_predictions_game_id", "predictions", ["game_id"])
    op.create_index("ix_predictions_user_id", "predictions", ["user_id"])
    op.create_index("ix_predictions_status", "predictions", ["status"])
    op.create_index("ix_predictions_submitted_at", "predictions", ["submitted_at"])
    op.create_index("ix_predictions_resolved_at", "predictions", ["resolved_at"])
    op.create_index("idx_predictions_user_resolved", "predictions", ["user_id", "resolved_at"])

    # ── Ledger → rankings → airdrops ──
    op.create_table(
        "score_entries",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("game_id", sa.String(), nullable=True),
        sa.Column("prediction_id", sa.String(), nullable=True),
        sa.Column("score_type", sa.String(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("total_points_after", sa.Integer(), nullable=False),
        sa.Column("multiplier", sa.Float(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("is_correct", sa.Boolean(), nullable=True),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_score_entries_user_id", "score_entries", ["user_id"])
    op.create_index("ix_score_entries_game_id", "score_entries", ["game_id"])
    op.create_index("ix_score_entries_prediction_id", "score_entries", ["prediction_id"])
    op.create_index("ix_score_entries_status", "score_entries", ["status"])
    op.create_index("ix_score_entries_created_at", "score_entries", ["created_at"])
    op.create_index("ix_score_entries_confirmed_at", "score_entries", ["confirmed_at"])

    op.create_table(
        "rankings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("period", sa.String(), nullable=False),
        sa.Column("period_key", sa.String(), nullable=False),
        sa.Column("total_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rank", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("previous_rank", sa.Integer(), nullable=True),
        sa.Column("win_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lose_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("best_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("airdrop_status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("airdrop_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("airdrop_retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("transaction_hash", sa.String(), nullable=True),
        sa.Column("airdrop_failure_reason", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "period", name="uq_rankings_user_period"),
    )
    op.create_index("ix_rankings_user_id", "rankings", ["user_id"])
    op.create_index("ix_rankings_period", "rankings", ["period"])
    op.create_index("ix_rankings_total_score", "rankings", ["total_score"])
    op.create_index("idx_rankings_period_score", "rankings", ["period", "total_score"])

    op.create_table(
        "ranking_cursors",
        sa.Column("period", sa.String(), primary_key=True),
        sa.Column("period_key", sa.String(), nullable=False),
        sa.Column("aggregated_until", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "airdrops",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("period", sa.String(), nullable=False),
        sa.Column("period_key", sa.String(), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("tier", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("transaction_hash", sa.String(), nullable=True),
        sa.Column("failure_reason", sa.String(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_airdrops_user_id", "airdrops", ["user_id"])
    op.create_index("ix_airdrops_period", "airdrops", ["period"])
    op.create_index("ix_airdrops_period_key", "airdrops", ["period_key"])
    op.create_index("ix_airdrops_status", "airdrops", ["status"])
    op.create_index("ix_airdrops_created_at", "airdrops", ["created_at"])


def downgrade() -> None:
    op.drop_table("airdrops")
    op.drop_table("ranking_cursors")
    op.drop_table("rankings")
    op.drop_table("score_entries")
    op.drop_table("predictions")
    op.drop_table("games")
