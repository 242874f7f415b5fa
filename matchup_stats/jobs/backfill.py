"""
Demand backfill queue.

Live reads that find a matchup missing, thin or stale enqueue it here. One
worker drains the queue in FIFO order so backfills never compete with each
other (or much with the bulk job) for the shared rate budget; each item runs
a small collection job restricted to that one pairing.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, Optional

import structlog
from pydantic import BaseModel, Field

from matchup_stats.core.champions import champion_key, normalize_champion_name
from matchup_stats.core.config import Settings
from matchup_stats.core.enums import BackfillState, ItemFailurePolicy, Lane
from matchup_stats.core.riot_api.client import RiotAPIClient
from matchup_stats.features.matchup_stats.repository import MatchupStatsStore
from matchup_stats.features.matchup_stats.schemas import MatchupKey

from .collection import CollectionOptions, MatchupCollectionJob

logger = structlog.get_logger(__name__)


class EnqueueReason(str, Enum):
    """Why an enqueue was rejected."""

    DISABLED = "disabled"
    ALREADY_QUEUED = "already_queued"
    COOLDOWN = "cooldown"
    QUEUE_FULL = "queue_full"


class EnqueueResult(BaseModel):
    queued: bool
    reason: Optional[EnqueueReason] = None


class BackfillSnapshot(BaseModel):
    """Latest known collection state of one pair."""

    pair: str
    target_games: int
    observed_games: int = 0
    state: BackfillState
    error: Optional[str] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BackfillStatus(BaseModel):
    enabled: bool
    queue_depth: int
    processing: bool
    current_key: Optional[str] = None
    max_queue_size: int


@dataclass
class BackfillOptions:
    """Limits of the backfill queue and of each backfill collection."""

    enabled: bool = True
    max_queue_size: int = 50
    cooldown: timedelta = timedelta(minutes=30)
    max_players: int = 25
    matches_per_player: int = 10
    max_unique_matches: int = 150
    concurrency: int = 2
    failure_policy: ItemFailurePolicy = ItemFailurePolicy.SKIP
    ttl: timedelta = timedelta(minutes=60)

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackfillOptions":
        return cls(
            enabled=settings.backfill_enabled,
            max_queue_size=settings.backfill_max_queue_size,
            cooldown=timedelta(minutes=settings.backfill_cooldown_minutes),
            max_players=settings.backfill_max_players,
            matches_per_player=settings.backfill_matches_per_player,
            max_unique_matches=settings.backfill_max_unique_matches,
            concurrency=settings.backfill_concurrency,
            failure_policy=settings.item_failure_policy,
            ttl=timedelta(minutes=settings.stats_cache_ttl_minutes),
        )


@dataclass
class _BackfillItem:
    pair: MatchupKey
    target_games: int


JobFactory = Callable[[CollectionOptions], Any]


def normalize_pair(pair: MatchupKey) -> MatchupKey:
    """Canonical spelling of a pair: display champion names, Lane enum."""
    return MatchupKey(
        pair.patch.strip(),
        Lane(pair.lane),
        normalize_champion_name(pair.player_champion),
        normalize_champion_name(pair.enemy_champion),
    )


class BackfillQueue:
    """Serial FIFO collector for missing or thin matchup pairs."""

    def __init__(
        self,
        client: RiotAPIClient,
        store: MatchupStatsStore,
        options: Optional[BackfillOptions] = None,
        job_factory: Optional[JobFactory] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            client: Shared Riot API client
            store: Store the backfill jobs write into
            options: Queue limits (defaults when None)
            job_factory: Builds the job for one item; defaults to MatchupCollectionJob
            clock: Monotonic time source for the per-pair cooldown
        """
        self.client = client
        self.store = store
        self.options = options or BackfillOptions()
        self._job_factory = job_factory or self._default_job
        self._clock = clock

        self._queue: Deque[_BackfillItem] = deque()
        self._queued_keys: set[str] = set()
        self._last_attempt_at: Dict[str, float] = {}
        self._snapshots: Dict[str, BackfillSnapshot] = {}
        self._current_key: Optional[str] = None
        self._worker: Optional[asyncio.Task] = None

    def _default_job(self, options: CollectionOptions) -> MatchupCollectionJob:
        return MatchupCollectionJob(self.client, self.store, options)

    # Public API

    def enqueue(self, pair: MatchupKey, target_games: int) -> EnqueueResult:
        """
        Queue a pair for collection. Must be called from a running event loop.

        Returns:
            EnqueueResult with ``queued`` False and a reason when rejected
        """
        if not self.options.enabled:
            return EnqueueResult(queued=False, reason=EnqueueReason.DISABLED)

        pair = normalize_pair(pair)
        key = str(pair)
        if key == self._current_key or key in self._queued_keys:
            return EnqueueResult(queued=False, reason=EnqueueReason.ALREADY_QUEUED)
        if self._in_cooldown(key):
            return EnqueueResult(queued=False, reason=EnqueueReason.COOLDOWN)
        if len(self._queue) >= self.options.max_queue_size:
            return EnqueueResult(queued=False, reason=EnqueueReason.QUEUE_FULL)

        self._queue.append(_BackfillItem(pair=pair, target_games=max(1, target_games)))
        self._queued_keys.add(key)
        self._set_snapshot(key, target_games, BackfillState.QUEUED)
        self._ensure_worker()
        logger.info("Backfill queued", pair=key, target_games=target_games, queue_depth=len(self._queue))
        return EnqueueResult(queued=True)

    def get_collection_status(self, pair: MatchupKey) -> Optional[BackfillSnapshot]:
        return self._snapshots.get(str(normalize_pair(pair)))

    def get_status(self) -> BackfillStatus:
        return BackfillStatus(
            enabled=self.options.enabled,
            queue_depth=len(self._queue),
            processing=self._worker is not None and not self._worker.done(),
            current_key=self._current_key,
            max_queue_size=self.options.max_queue_size,
        )

    async def drain(self) -> None:
        """Wait until the queue is empty and the worker idle."""
        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)

    async def close(self) -> None:
        """Cancel the worker; queued items are dropped."""
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None

    # Internals

    def _in_cooldown(self, key: str) -> bool:
        last = self._last_attempt_at.get(key)
        if last is None:
            return False
        return self._clock() - last < self.options.cooldown.total_seconds()

    def _set_snapshot(
        self,
        key: str,
        target_games: int,
        state: BackfillState,
        observed_games: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        previous = self._snapshots.get(key)
        if observed_games is None:
            observed_games = previous.observed_games if previous else 0
        self._snapshots[key] = BackfillSnapshot(
            pair=key,
            target_games=target_games,
            observed_games=observed_games,
            state=state,
            error=error,
        )

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run_worker())

    async def _run_worker(self) -> None:
        while self._queue:
            item = self._queue.popleft()
            key = str(item.pair)
            self._queued_keys.discard(key)
            self._current_key = key
            try:
                await self._process(item)
            finally:
                self._last_attempt_at[key] = self._clock()
                self._current_key = None

    async def _process(self, item: _BackfillItem) -> None:
        key = str(item.pair)
        self._set_snapshot(key, item.target_games, BackfillState.PROCESSING)
        options = CollectionOptions(
            patch=item.pair.patch,
            lanes=[item.pair.lane],
            max_players=self.options.max_players,
            matches_per_player=self.options.matches_per_player,
            max_unique_matches=self.options.max_unique_matches,
            concurrency=self.options.concurrency,
            checkpoint_path=None,
            resume=False,
            failure_policy=self.options.failure_policy,
            pair_filter=(item.pair.player_champion, item.pair.enemy_champion),
            ttl=self.options.ttl,
        )

        try:
            job = self._job_factory(options)
            await job.run()
        except Exception as e:
            logger.error("Backfill failed", pair=key, error=str(e), error_type=type(e).__name__)
            self._set_snapshot(key, item.target_games, BackfillState.ERROR, error=str(e))
            return

        games = self._observed_games(item.pair, job.records)
        state = BackfillState.COMPLETE if games >= item.target_games else BackfillState.PARTIAL
        self._set_snapshot(key, item.target_games, state, observed_games=games)
        logger.info("Backfill finished", pair=key, state=state.value, observed_games=games, target_games=item.target_games)

    @staticmethod
    def _observed_games(pair: MatchupKey, records: Any) -> int:
        wanted = (champion_key(pair.player_champion), champion_key(pair.enemy_champion))
        for record in records or []:
            if record.lane != pair.lane:
                continue
            if (champion_key(record.player_champion), champion_key(record.enemy_champion)) == wanted:
                return record.stats.games
        return 0
