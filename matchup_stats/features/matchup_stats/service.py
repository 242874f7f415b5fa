"""Live read path for matchup statistics.

Reads go memory cache -> store (bounded by a timeout). Whenever the answer
is missing, stale, or below the minimum sample, the pair is handed to the
backfill queue and the caller gets whatever is available plus warnings.
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

import structlog
from pydantic import BaseModel, Field

from matchup_stats.core.cache import TTLCache
from matchup_stats.core.config import Settings
from matchup_stats.jobs.backfill import (
    BackfillQueue,
    BackfillSnapshot,
    EnqueueResult,
    normalize_pair,
)

from .repository import MatchupStatsStore
from .schemas import MatchupKey, MatchupStatRecord, MatchupStats

logger = structlog.get_logger(__name__)

DEFAULT_MEMORY_TTL_SECONDS = 600


class StatsSource(str, Enum):
    MEMORY_CACHE = "memory_cache"
    STORE = "store"
    NONE = "none"


class LiveStatsResult(BaseModel):
    """What a live caller gets back for one pair."""

    pair: str
    stats: Optional[MatchupStats] = None
    source: StatsSource = StatsSource.NONE
    fresh: bool = False
    sample_sufficient: bool = False
    backfill: Optional[EnqueueResult] = None
    warnings: List[str] = Field(default_factory=list)


class MatchupStatsService:
    """Serve cached matchup statistics to interactive callers."""

    def __init__(
        self,
        store: MatchupStatsStore,
        backfill: Optional[BackfillQueue] = None,
        min_sample_games: int = 10,
        read_timeout_seconds: float = 3.5,
        memory_cache: Optional[TTLCache[MatchupStatRecord]] = None,
    ):
        self.store = store
        self.backfill = backfill
        self.min_sample_games = max(1, min_sample_games)
        self.read_timeout_seconds = read_timeout_seconds
        self.memory_cache = memory_cache or TTLCache(maxsize=2000, ttl=DEFAULT_MEMORY_TTL_SECONDS)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: MatchupStatsStore,
        backfill: Optional[BackfillQueue] = None,
    ) -> "MatchupStatsService":
        return cls(
            store,
            backfill,
            min_sample_games=settings.matchup_min_sample_games,
            read_timeout_seconds=settings.live_read_timeout_seconds,
            memory_cache=TTLCache(
                maxsize=2000,
                ttl=min(DEFAULT_MEMORY_TTL_SECONDS, settings.stats_cache_ttl_seconds),
            ),
        )

    async def get_matchup_stats(
        self, pair: MatchupKey, now: Optional[datetime] = None
    ) -> LiveStatsResult:
        """
        Look up one pair without ever blocking on collection.

        Returns:
            LiveStatsResult; ``stats`` is None when nothing usable is cached
        """
        now = now or datetime.now(timezone.utc)
        pair = normalize_pair(pair)
        key = str(pair)

        cached = self.memory_cache.get(key)
        if cached is not None and cached.is_fresh(now):
            return LiveStatsResult(
                pair=key,
                stats=cached.stats,
                source=StatsSource.MEMORY_CACHE,
                fresh=True,
                sample_sufficient=True,
            )

        result = LiveStatsResult(pair=key)
        record = await self._read_store(pair, result)

        if record is not None:
            result.stats = record.stats
            result.source = StatsSource.STORE
            result.fresh = record.is_fresh(now)
            result.sample_sufficient = record.stats.games >= self.min_sample_games

            if not result.fresh:
                result.warnings.append("Cached stats are stale; a refresh was requested.")
            if not result.sample_sufficient:
                result.warnings.append(
                    f"Only {record.stats.games} games sampled (minimum {self.min_sample_games})."
                )
            if result.fresh and result.sample_sufficient:
                remaining = (record.expires_at - now).total_seconds()
                self.memory_cache.set(key, record, ttl=min(self.memory_cache.ttl, remaining))
                return result

        elif not result.warnings:
            result.warnings.append("No cached stats for this matchup yet.")

        result.backfill = self._request_backfill(pair)
        return result

    def get_collection_status(self, pair: MatchupKey) -> Optional[BackfillSnapshot]:
        if self.backfill is None:
            return None
        return self.backfill.get_collection_status(pair)

    async def _read_store(
        self, pair: MatchupKey, result: LiveStatsResult
    ) -> Optional[MatchupStatRecord]:
        try:
            return await asyncio.wait_for(
                self.store.get(*pair), timeout=self.read_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning("Stats store read timed out", pair=result.pair, timeout=self.read_timeout_seconds)
            result.warnings.append("Stats lookup timed out.")
        except Exception as e:
            logger.error("Stats store read failed", pair=result.pair, error=str(e), error_type=type(e).__name__)
            result.warnings.append("Stats lookup failed.")
        return None

    def _request_backfill(self, pair: MatchupKey) -> Optional[EnqueueResult]:
        if self.backfill is None:
            return None
        outcome = self.backfill.enqueue(pair, self.min_sample_games)
        logger.debug(
            "Backfill requested",
            pair=str(pair),
            queued=outcome.queued,
            reason=outcome.reason.value if outcome.reason else None,
        )
        return outcome
