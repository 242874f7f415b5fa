"""Shared enums used across features.

This module provides a single source of truth for enums used in both models and schemas.
"""

from enum import Enum


class Lane(str, Enum):
    """Lanes a matchup can be collected for."""

    TOP = "top"
    JUNGLE = "jungle"
    MID = "mid"
    ADC = "adc"
    SUPPORT = "support"


# Riot match-v5 ``teamPosition`` tag for each lane
TEAM_POSITION_BY_LANE = {
    Lane.TOP: "TOP",
    Lane.JUNGLE: "JUNGLE",
    Lane.MID: "MIDDLE",
    Lane.ADC: "BOTTOM",
    Lane.SUPPORT: "UTILITY",
}


class DatabaseProvider(str, Enum):
    """Storage backend selected at startup."""

    SQLITE = "sqlite"
    POSTGRES = "postgres"


class JobPhase(str, Enum):
    """Phase of a resumable collection job."""

    MATCH_IDS = "match_ids"
    MATCHES = "matches"


class BackfillState(str, Enum):
    """Lifecycle of a backfill request."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETE = "complete"
    PARTIAL = "partial"
    ERROR = "error"


class ItemFailurePolicy(str, Enum):
    """What a collection job does with an item that failed."""

    SKIP = "skip"
    RETRY_ONCE = "retry_once"
