"""
Checkpoint persistence for resumable collection jobs.

A checkpoint is a JSON document holding the job parameters, the current
phase, discovery results, resumption indices and the serialized buckets.
It is replaced atomically so a crash mid-write leaves the previous one intact.
"""

import os
import tempfile
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError

from matchup_stats.core.enums import JobPhase, Lane
from matchup_stats.core.exceptions import CheckpointMismatch
from matchup_stats.features.matchup_stats.aggregator import (
    AggregationBucket,
    BucketKey,
    BucketMap,
)

logger = structlog.get_logger(__name__)

CHECKPOINT_VERSION = 1


class CheckpointOptions(BaseModel):
    """Job parameters a checkpoint is only valid for."""

    patch: str
    lanes: List[Lane]
    max_players: int
    matches_per_player: int
    max_unique_matches: int

    def matches(self, other: "CheckpointOptions") -> bool:
        return (
            self.patch == other.patch
            and set(self.lanes) == set(other.lanes)
            and self.max_players == other.max_players
            and self.matches_per_player == other.matches_per_player
            and self.max_unique_matches == other.max_unique_matches
        )


class SerializedBucket(BaseModel):
    """One aggregation bucket with its key spelled out."""

    lane: Lane
    player_champion: str
    enemy_champion: str
    games: int
    wins: int
    gold_diff_sum: int
    early_kills: int
    early_deaths: int
    keystones: Dict[int, int] = Field(default_factory=dict)
    first_items: Dict[int, int] = Field(default_factory=dict)


class CollectionCheckpoint(BaseModel):
    """Snapshot of an in-progress collection job."""

    version: int = CHECKPOINT_VERSION
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    options: CheckpointOptions
    phase: JobPhase = JobPhase.MATCH_IDS
    puuids: List[str] = Field(default_factory=list)
    next_player_index: int = 0
    match_ids_by_player: Dict[str, List[str]] = Field(default_factory=dict)
    unique_match_ids: List[str] = Field(default_factory=list)
    next_match_index: int = 0
    matches_processed: int = 0
    matches_skipped: int = 0
    failed_items: List[str] = Field(default_factory=list)
    buckets: List[SerializedBucket] = Field(default_factory=list)

    def ensure_matches(self, requested: CheckpointOptions) -> None:
        """
        Raises:
            CheckpointMismatch: If the checkpoint was written for another run
        """
        if self.version != CHECKPOINT_VERSION or not self.options.matches(requested):
            raise CheckpointMismatch(
                "Checkpoint parameters differ from the requested run",
                expected=requested.model_dump(mode="json"),
                found=self.options.model_dump(mode="json"),
            )


def serialize_buckets(buckets: BucketMap) -> List[SerializedBucket]:
    return [
        SerializedBucket(
            lane=key.lane,
            player_champion=key.player_champion,
            enemy_champion=key.enemy_champion,
            games=bucket.games,
            wins=bucket.wins,
            gold_diff_sum=bucket.gold_diff_sum,
            early_kills=bucket.early_kills,
            early_deaths=bucket.early_deaths,
            keystones=dict(bucket.keystones),
            first_items=dict(bucket.first_items),
        )
        for key, bucket in buckets.items()
    ]


def deserialize_buckets(patch: str, serialized: List[SerializedBucket]) -> BucketMap:
    buckets: BucketMap = {}
    for entry in serialized:
        key = BucketKey(patch, entry.lane, entry.player_champion, entry.enemy_champion)
        buckets[key] = AggregationBucket(
            games=entry.games,
            wins=entry.wins,
            gold_diff_sum=entry.gold_diff_sum,
            early_kills=entry.early_kills,
            early_deaths=entry.early_deaths,
            keystones=Counter(entry.keystones),
            first_items=Counter(entry.first_items),
        )
    return buckets


def save_checkpoint(path: str | Path, checkpoint: CollectionCheckpoint) -> None:
    """Write ``checkpoint`` to ``path`` through a temporary file and rename."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    checkpoint.saved_at = datetime.now(timezone.utc)

    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(checkpoint.model_dump_json())
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.debug(
        "Checkpoint saved",
        path=str(target),
        phase=checkpoint.phase.value,
        next_player_index=checkpoint.next_player_index,
        next_match_index=checkpoint.next_match_index,
        buckets=len(checkpoint.buckets),
    )


def load_checkpoint(path: str | Path) -> Optional[CollectionCheckpoint]:
    """Load a checkpoint; a missing or unreadable file yields None."""
    target = Path(path)
    if not target.exists():
        return None

    try:
        return CollectionCheckpoint.model_validate_json(target.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        logger.warning("Ignoring unreadable checkpoint", path=str(target), error=str(e))
        return None


def clear_checkpoint(path: str | Path) -> None:
    Path(path).unlink(missing_ok=True)
    logger.debug("Checkpoint cleared", path=str(path))
