"""Jobs - bulk collection, demand backfill and nightly scheduling."""

from .collection import CollectionOptions, CollectionSummary, MatchupCollectionJob
from .backfill import BackfillOptions, BackfillQueue, EnqueueReason, EnqueueResult
from .checkpoint import CollectionCheckpoint, load_checkpoint, save_checkpoint
from .scheduler import NightlyScheduler, next_run_at

__all__ = [
    "CollectionOptions",
    "CollectionSummary",
    "MatchupCollectionJob",
    "BackfillOptions",
    "BackfillQueue",
    "EnqueueReason",
    "EnqueueResult",
    "CollectionCheckpoint",
    "load_checkpoint",
    "save_checkpoint",
    "NightlyScheduler",
    "next_run_at",
]
