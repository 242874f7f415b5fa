"""Matchup stats feature - aggregation, storage and live reads of lane matchup statistics."""

from .schemas import (
    CachedPair,
    CacheOverview,
    ItemUsage,
    MatchupKey,
    MatchupStatRecord,
    MatchupStats,
    RuneUsage,
)
from .aggregator import (
    AggregationBucket,
    aggregate_match,
    extract_match_telemetry,
    finalize_buckets,
)
from .repository import (
    MatchupStatsStore,
    PostgresMatchupStatsStore,
    SQLiteMatchupStatsStore,
    create_stats_store,
)
from .orm_models import MatchupStatsCacheORM

__all__ = [
    # Schemas
    "CachedPair",
    "CacheOverview",
    "ItemUsage",
    "MatchupKey",
    "MatchupStatRecord",
    "MatchupStats",
    "RuneUsage",
    # Aggregation
    "AggregationBucket",
    "aggregate_match",
    "extract_match_telemetry",
    "finalize_buckets",
    # Storage
    "MatchupStatsStore",
    "SQLiteMatchupStatsStore",
    "PostgresMatchupStatsStore",
    "create_stats_store",
    "MatchupStatsCacheORM",
]
