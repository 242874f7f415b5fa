"""Pydantic schemas for matchup statistics."""

from datetime import datetime, timedelta, timezone
from typing import List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from matchup_stats.core.enums import Lane

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_utc_millis(value: datetime) -> datetime:
    """Normalize a datetime to UTC with millisecond precision.

    Naive values are taken to be UTC already.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=value.microsecond - value.microsecond % 1000)


def datetime_to_ms(value: datetime) -> int:
    """Epoch milliseconds of an aware (or UTC naive) datetime."""
    return (to_utc_millis(value) - EPOCH) // timedelta(milliseconds=1)


def ms_to_datetime(value: int) -> datetime:
    """Aware UTC datetime from epoch milliseconds."""
    return EPOCH + timedelta(milliseconds=int(value))


class MatchupKey(NamedTuple):
    """Canonical identity of one directed matchup."""

    patch: str
    lane: Lane
    player_champion: str
    enemy_champion: str

    def __str__(self) -> str:
        return f"{self.patch}:{Lane(self.lane).value}:{self.player_champion}:{self.enemy_champion}"


class RuneUsage(BaseModel):
    """How often a keystone was taken in a matchup."""

    keystone_id: int = Field(..., alias="keystoneId")
    count: int
    pct: float

    model_config = ConfigDict(populate_by_name=True)


class ItemUsage(BaseModel):
    """How often an item was bought first in a matchup."""

    item_id: int = Field(..., alias="itemId")
    count: int
    pct: float

    model_config = ConfigDict(populate_by_name=True)


class MatchupStats(BaseModel):
    """Finalized statistics for one directed matchup."""

    patch: str
    games: int = Field(..., ge=1)
    win_rate: float = Field(..., alias="winRate")
    gold_diff_15: int = Field(..., alias="goldDiff15")
    pre6_kill_rate: float = Field(..., alias="pre6KillRate")
    early_death_rate: float = Field(..., alias="earlyDeathRate")
    rune_usage: List[RuneUsage] = Field(default_factory=list, alias="runeUsage")
    first_item_usage: List[ItemUsage] = Field(default_factory=list, alias="firstItemUsage")
    computed_at: datetime = Field(..., alias="computedAt")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("computed_at")
    @classmethod
    def normalize_computed_at(cls, v: datetime) -> datetime:
        return to_utc_millis(v)


class MatchupStatRecord(BaseModel):
    """A stored row: the matchup identity, its stats and its freshness window."""

    patch: str
    lane: Lane
    player_champion: str
    enemy_champion: str
    stats: MatchupStats
    computed_at: datetime
    expires_at: datetime

    @field_validator("computed_at", "expires_at")
    @classmethod
    def normalize_timestamps(cls, v: datetime) -> datetime:
        """Stored timestamps carry millisecond precision."""
        return to_utc_millis(v)

    @property
    def key(self) -> MatchupKey:
        return MatchupKey(self.patch, self.lane, self.player_champion, self.enemy_champion)

    def is_fresh(self, now: datetime) -> bool:
        return to_utc_millis(now) < self.expires_at


class CacheOverview(BaseModel):
    """Freshness summary of the cache for one patch (and optionally one lane)."""

    total_count: int = 0
    fresh_count: int = 0
    stale_count: int = 0
    latest_computed_at: Optional[datetime] = None


class CachedPair(BaseModel):
    """One row of the cached pair listing."""

    lane: Lane
    player_champion: str
    enemy_champion: str
    computed_at: datetime
    expires_at: datetime
    fresh: bool
