"""SQLAlchemy 2.0 ORM model for the matchup statistics cache."""

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime as SQLDateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from matchup_stats.core.models import Base


class MatchupStatsCacheORM(Base):
    """One directed matchup (player champion vs enemy champion) per row.

    ``expires_at`` is stored as epoch milliseconds so freshness comparisons
    are plain integer comparisons on every backend.
    """

    __tablename__ = "matchup_stats_cache"
    __table_args__ = (
        UniqueConstraint(
            "patch",
            "lane",
            "player_champion",
            "enemy_champion",
            name="uq_matchup_stats_cache_pair",
        ),
        Index("idx_matchup_stats_cache_patch_lane", "patch", "lane"),
        Index("idx_matchup_stats_cache_expires_at", "expires_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patch: Mapped[str] = mapped_column(String(16), nullable=False)
    lane: Mapped[str] = mapped_column(String(16), nullable=False)
    player_champion: Mapped[str] = mapped_column(String(64), nullable=False)
    enemy_champion: Mapped[str] = mapped_column(String(64), nullable=False)
    stats_json: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    computed_at: Mapped[datetime] = mapped_column(
        SQLDateTime(timezone=True), nullable=False
    )
    expires_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
