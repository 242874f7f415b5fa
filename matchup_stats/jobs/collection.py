"""
Resumable matchup collection job.

The job runs in two phases. Discovery resolves a pool of apex-tier players
and fetches their recent ranked match ids; processing fetches each unique
match with its timeline and folds the lane pairings into aggregation
buckets. Work is done in checkpoint-sized batches: a batch is fanned out to
a bounded worker pool, its results are applied in input order, and only then
do the resumption indices advance and the checkpoint get written. Resuming
therefore replays exactly the batches that never completed.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

import structlog
from pydantic import BaseModel, Field

from matchup_stats.core.config import Settings
from matchup_stats.core.enums import ItemFailurePolicy, JobPhase, Lane
from matchup_stats.core.exceptions import CheckpointMismatch
from matchup_stats.core.patch import matches_patch, to_riot_patch_prefix
from matchup_stats.core.riot_api.client import RiotAPIClient
from matchup_stats.core.riot_api.errors import CooldownActiveError, RateLimitError
from matchup_stats.features.matchup_stats.aggregator import (
    BucketMap,
    MatchTelemetry,
    aggregate_match,
    extract_match_telemetry,
    finalize_buckets,
    read_game_version,
)
from matchup_stats.features.matchup_stats.repository import MatchupStatsStore
from matchup_stats.features.matchup_stats.schemas import MatchupStatRecord

from .checkpoint import (
    CheckpointOptions,
    CollectionCheckpoint,
    clear_checkpoint,
    deserialize_buckets,
    load_checkpoint,
    save_checkpoint,
    serialize_buckets,
)
from .error_handling import isolate_item_failures
from .workers import run_bounded

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Failed item ids kept for the summary
MAX_REPORTED_FAILURES = 50

# Returned by the match step when the game is from another patch
VERSION_MISMATCH = object()


@dataclass
class CollectionOptions:
    """Parameters of one collection run."""

    patch: str
    lanes: List[Lane]
    max_players: int
    matches_per_player: int
    max_unique_matches: int
    concurrency: int = 4
    checkpoint_path: Optional[str] = None
    checkpoint_every: int = 20
    resume: bool = True
    failure_policy: ItemFailurePolicy = ItemFailurePolicy.SKIP
    pair_filter: Optional[Tuple[str, str]] = None
    ttl: timedelta = field(default_factory=lambda: timedelta(minutes=60))

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "CollectionOptions":
        """Bulk job options from configuration, with explicit overrides."""
        values: Dict[str, Any] = {
            "patch": settings.current_patch,
            "lanes": settings.precompute_lane_list,
            "max_players": settings.precompute_max_players,
            "matches_per_player": settings.precompute_matches_per_player,
            "max_unique_matches": settings.precompute_max_unique_matches,
            "concurrency": settings.precompute_concurrency,
            "checkpoint_path": settings.checkpoint_path,
            "checkpoint_every": settings.checkpoint_every,
            "failure_policy": settings.item_failure_policy,
            "ttl": timedelta(minutes=settings.stats_cache_ttl_minutes),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def checkpoint_options(self) -> CheckpointOptions:
        return CheckpointOptions(
            patch=self.patch,
            lanes=self.lanes,
            max_players=self.max_players,
            matches_per_player=self.matches_per_player,
            max_unique_matches=self.max_unique_matches,
        )


class CollectionSummary(BaseModel):
    """Outcome of one collection run."""

    job_id: str
    patch: str
    lanes: List[Lane]
    players_tracked: int = 0
    unique_match_ids: int = 0
    matches_processed: int = 0
    matches_skipped_version: int = 0
    failed_items: int = 0
    failed_item_ids: List[str] = Field(default_factory=list)
    pairs_with_games: int = 0
    pairs_written: int = 0
    resumed: bool = False
    duration_seconds: float = 0.0


class MatchupCollectionJob:
    """Crawl apex players' recent matches and cache per-matchup statistics."""

    def __init__(
        self,
        client: RiotAPIClient,
        store: MatchupStatsStore,
        options: CollectionOptions,
    ):
        self.client = client
        self.store = store
        self.options = options
        self.job_id = uuid.uuid4().hex[:12]
        self.riot_patch_prefix = to_riot_patch_prefix(options.patch)

        self.phase = JobPhase.MATCH_IDS
        self.puuids: List[str] = []
        self.next_player_index = 0
        self.match_ids_by_player: Dict[str, List[str]] = {}
        self.unique_match_ids: List[str] = []
        self.next_match_index = 0
        self.matches_processed = 0
        self.matches_skipped = 0
        self.failed_items: List[str] = []
        self.buckets: BucketMap = {}
        self.records: List[MatchupStatRecord] = []
        self.resumed = False

    # Hooks used by isolate_item_failures

    async def wait_for_cooldown(self, error: RateLimitError) -> None:
        """Sleep until the client accepts calls again."""
        if isinstance(error, CooldownActiveError):
            delay = error.retry_after or 0.0
        else:
            delay = self.client.cooldown_remaining()
        await asyncio.sleep(max(delay, 0.01))

    def record_failure(self, operation: str, context: Dict[str, Any], error: Exception) -> None:
        item = next(iter(context.values()), None) if context else None
        self.failed_items.append(str(item) if item is not None else operation)

    # Entry point

    async def run(self) -> CollectionSummary:
        """
        Run the job to completion, resuming from a matching checkpoint.

        Returns:
            CollectionSummary of the run

        Raises:
            AuthenticationError: If the API key is rejected
            ForbiddenError: If the API key lacks access
        """
        started = time.monotonic()
        with structlog.contextvars.bound_contextvars(job_id=self.job_id):
            self._restore_checkpoint()
            logger.info(
                "Collection job started",
                patch=self.options.patch,
                riot_patch_prefix=self.riot_patch_prefix,
                lanes=[lane.value for lane in self.options.lanes],
                max_players=self.options.max_players,
                matches_per_player=self.options.matches_per_player,
                max_unique_matches=self.options.max_unique_matches,
                resumed=self.resumed,
            )

            if not self.puuids:
                await self._discover_players()
                self._save_checkpoint()

            if self.phase == JobPhase.MATCH_IDS:
                await self._discover_match_ids()
                self.unique_match_ids = self._dedupe_match_ids()
                self.next_match_index = 0
                self.phase = JobPhase.MATCHES
                self._save_checkpoint()
                logger.info(
                    "Match discovery complete",
                    players=len(self.puuids),
                    unique_match_ids=len(self.unique_match_ids),
                )

            await self._process_matches()

            computed_at = datetime.now(timezone.utc)
            self.records = finalize_buckets(self.buckets, computed_at, self.options.ttl)
            written = await self.store.upsert_many(self.records)

            if self.options.checkpoint_path:
                clear_checkpoint(self.options.checkpoint_path)

            summary = CollectionSummary(
                job_id=self.job_id,
                patch=self.options.patch,
                lanes=self.options.lanes,
                players_tracked=len(self.puuids),
                unique_match_ids=len(self.unique_match_ids),
                matches_processed=self.matches_processed,
                matches_skipped_version=self.matches_skipped,
                failed_items=len(self.failed_items),
                failed_item_ids=self.failed_items[:MAX_REPORTED_FAILURES],
                pairs_with_games=len(self.buckets),
                pairs_written=written,
                resumed=self.resumed,
                duration_seconds=round(time.monotonic() - started, 3),
            )
            if summary.failed_items:
                logger.warning(
                    "Collection job finished with failed items",
                    failed_items=summary.failed_items,
                    failed_item_ids=summary.failed_item_ids[:10],
                )
            logger.info("Collection job finished", **summary.model_dump(mode="json", exclude={"failed_item_ids"}))
            return summary

    # Checkpointing

    def _restore_checkpoint(self) -> None:
        path = self.options.checkpoint_path
        if not path or not self.options.resume:
            return

        checkpoint = load_checkpoint(path)
        if checkpoint is None:
            return

        try:
            checkpoint.ensure_matches(self.options.checkpoint_options())
        except CheckpointMismatch as e:
            logger.warning("Starting fresh, checkpoint does not match", path=path, **e.context)
            return

        self.phase = checkpoint.phase
        self.puuids = checkpoint.puuids
        self.next_player_index = checkpoint.next_player_index
        self.match_ids_by_player = checkpoint.match_ids_by_player
        self.unique_match_ids = checkpoint.unique_match_ids
        self.next_match_index = checkpoint.next_match_index
        self.matches_processed = checkpoint.matches_processed
        self.matches_skipped = checkpoint.matches_skipped
        self.failed_items = checkpoint.failed_items
        self.buckets = deserialize_buckets(self.options.patch, checkpoint.buckets)
        self.resumed = True
        logger.info(
            "Resumed from checkpoint",
            phase=self.phase.value,
            next_player_index=self.next_player_index,
            next_match_index=self.next_match_index,
            pairs=len(self.buckets),
        )

    def _save_checkpoint(self) -> None:
        if not self.options.checkpoint_path:
            return
        save_checkpoint(
            self.options.checkpoint_path,
            CollectionCheckpoint(
                options=self.options.checkpoint_options(),
                phase=self.phase,
                puuids=self.puuids,
                next_player_index=self.next_player_index,
                match_ids_by_player=self.match_ids_by_player,
                unique_match_ids=self.unique_match_ids,
                next_match_index=self.next_match_index,
                matches_processed=self.matches_processed,
                matches_skipped=self.matches_skipped,
                failed_items=self.failed_items,
                buckets=serialize_buckets(self.buckets),
            ),
        )

    # Discovery

    async def _with_cooldown_retry(self, call: Callable[[], Awaitable[T]]) -> T:
        while True:
            try:
                return await call()
            except RateLimitError as error:
                logger.info("Rate limited during discovery, waiting for cooldown", retry_after=error.retry_after)
                await self.wait_for_cooldown(error)

    async def _discover_players(self) -> None:
        """Resolve up to ``max_players`` PUUIDs from the apex leagues."""
        limit = self.options.max_players
        entries = await self._with_cooldown_retry(self.client.get_apex_league_entries)

        puuids = list(dict.fromkeys(e.puuid for e in entries if e.puuid))[:limit]
        if len(puuids) < limit:
            summoner_ids = list(
                dict.fromkeys(e.summoner_id for e in entries if not e.puuid and e.summoner_id)
            )[: limit - len(puuids)]
            resolved = await run_bounded(summoner_ids, self.options.concurrency, self._resolve_puuid)
            puuids = list(dict.fromkeys([*puuids, *(p for p in resolved if p)]))[:limit]

        self.puuids = puuids
        self.next_player_index = 0
        logger.info("Players discovered", players=len(puuids), league_entries=len(entries))

    @isolate_item_failures(
        operation="resolve summoner puuid",
        log_context=lambda self, summoner_id: {"summoner_id": summoner_id},
    )
    async def _resolve_puuid(self, summoner_id: str) -> Optional[str]:
        return await self.client.get_puuid_by_summoner_id(summoner_id)

    @isolate_item_failures(
        operation="fetch match ids",
        log_context=lambda self, puuid: {"puuid": puuid},
    )
    async def _fetch_match_ids(self, puuid: str) -> Optional[List[str]]:
        return await self.client.get_match_ids_by_puuid(
            puuid, count=self.options.matches_per_player
        )

    async def _discover_match_ids(self) -> None:
        batch_size = max(1, self.options.checkpoint_every)
        while self.next_player_index < len(self.puuids):
            start = self.next_player_index
            batch = self.puuids[start:start + batch_size]
            results = await run_bounded(batch, self.options.concurrency, self._fetch_match_ids)

            for puuid, match_ids in zip(batch, results):
                if match_ids is not None:
                    self.match_ids_by_player[puuid] = match_ids

            self.next_player_index = start + len(batch)
            self._save_checkpoint()
            logger.info(
                "Fetched match ids",
                players_done=self.next_player_index,
                players_total=len(self.puuids),
            )

    def _dedupe_match_ids(self) -> List[str]:
        """Unique match ids in discovery order, capped at ``max_unique_matches``."""
        ordered: Dict[str, None] = {}
        for puuid in self.puuids:
            for match_id in self.match_ids_by_player.get(puuid, []):
                ordered.setdefault(match_id, None)
        return list(ordered)[: self.options.max_unique_matches]

    # Processing

    @isolate_item_failures(
        operation="process match",
        log_context=lambda self, match_id: {"match_id": match_id},
    )
    async def _fetch_match_telemetry(self, match_id: str) -> Any:
        match = await self.client.get_match(match_id)
        game_version = read_game_version(match)
        if not matches_patch(game_version, self.riot_patch_prefix):
            return VERSION_MISMATCH

        timeline = await self.client.get_match_timeline(match_id)
        return extract_match_telemetry(match, timeline)

    async def _process_matches(self) -> None:
        batch_size = max(1, self.options.checkpoint_every)
        total = len(self.unique_match_ids)

        while self.next_match_index < total:
            start = self.next_match_index
            batch = self.unique_match_ids[start:start + batch_size]
            results = await run_bounded(batch, self.options.concurrency, self._fetch_match_telemetry)

            for outcome in results:
                if outcome is VERSION_MISMATCH:
                    self.matches_skipped += 1
                elif isinstance(outcome, MatchTelemetry):
                    aggregate_match(
                        self.buckets,
                        outcome,
                        self.options.patch,
                        self.options.lanes,
                        self.options.pair_filter,
                    )
                    self.matches_processed += 1

            self.next_match_index = start + len(batch)
            self._save_checkpoint()
            logger.info(
                "Processed matches",
                matches_done=self.next_match_index,
                matches_total=total,
                accepted=self.matches_processed,
                pairs=len(self.buckets),
            )
