"""Core infrastructure module.

This module exports core utilities used across features.
Never imports from features - only from external libraries.
"""

from .config import Settings, get_settings, get_global_settings, parse_lanes
from .database import DatabaseManager, build_database_url
from .exceptions import (
    ServiceException,
    MalformedTelemetry,
    CheckpointMismatch,
    DatabaseError,
)
from .enums import (
    BackfillState,
    DatabaseProvider,
    ItemFailurePolicy,
    JobPhase,
    Lane,
    TEAM_POSITION_BY_LANE,
)
from .champions import champion_key, normalize_champion_name
from .patch import to_riot_patch_prefix, matches_patch
from .models import Base

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "get_global_settings",
    "parse_lanes",
    # Database
    "DatabaseManager",
    "build_database_url",
    "Base",
    # Exceptions
    "ServiceException",
    "MalformedTelemetry",
    "CheckpointMismatch",
    "DatabaseError",
    # Enums
    "BackfillState",
    "DatabaseProvider",
    "ItemFailurePolicy",
    "JobPhase",
    "Lane",
    "TEAM_POSITION_BY_LANE",
    # Domain helpers
    "champion_key",
    "normalize_champion_name",
    "to_riot_patch_prefix",
    "matches_patch",
]
