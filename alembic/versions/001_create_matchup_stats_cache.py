"""Create matchup_stats_cache table

Revision ID: 001
Revises:
Create Date: 2026-03-02 10:12:41.118204

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the per-pair statistics cache."""

    op.create_table(
        "matchup_stats_cache",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("patch", sa.String(length=16), nullable=False),
        sa.Column("lane", sa.String(length=16), nullable=False),
        sa.Column("player_champion", sa.String(length=64), nullable=False),
        sa.Column("enemy_champion", sa.String(length=64), nullable=False),
        sa.Column("stats_json", sa.JSON(), nullable=False),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "expires_at",
            sa.BigInteger(),
            nullable=False,
            comment="Expiry as epoch milliseconds",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "patch",
            "lane",
            "player_champion",
            "enemy_champion",
            name="uq_matchup_stats_cache_pair",
        ),
    )
    op.create_index(
        "idx_matchup_stats_cache_patch_lane",
        "matchup_stats_cache",
        ["patch", "lane"],
    )
    op.create_index(
        "idx_matchup_stats_cache_expires_at",
        "matchup_stats_cache",
        ["expires_at"],
    )


def downgrade() -> None:
    """Drop the statistics cache."""

    op.drop_index("idx_matchup_stats_cache_expires_at", table_name="matchup_stats_cache")
    op.drop_index("idx_matchup_stats_cache_patch_lane", table_name="matchup_stats_cache")
    op.drop_table("matchup_stats_cache")
