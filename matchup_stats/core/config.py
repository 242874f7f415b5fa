"""Configuration settings for the matchup stats collector."""

import re
from typing import List

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .enums import DatabaseProvider, ItemFailurePolicy, Lane

# Load environment variables from .env file
load_dotenv()

_PATCH_PATTERN = re.compile(r"^\d{2}\.\d{1,2}$")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Riot API Configuration
    riot_api_key: str = Field(default="")
    riot_platform: str = Field(default="euw1")
    riot_region: str = Field(default="europe")

    # Rate budget (short window and long window)
    riot_short_window_limit: int = Field(default=20, ge=1)
    riot_short_window_seconds: float = Field(default=1.0, gt=0)
    riot_long_window_limit: int = Field(default=100, ge=1)
    riot_long_window_seconds: float = Field(default=120.0, gt=0)
    riot_max_retries: int = Field(default=2, ge=0)
    riot_retry_base_seconds: float = Field(default=0.8, gt=0)
    riot_rate_limit_cooldown_seconds: float = Field(
        default=45.0,
        ge=0,
        description="Minimum cooldown after a 429, even if Retry-After is shorter",
    )

    # Database Configuration
    db_provider: DatabaseProvider = Field(default=DatabaseProvider.SQLITE)
    stats_db_path: str = Field(default="./data/matchup-stats.db")
    database_url: str = Field(default="")

    # Cache behaviour
    current_patch: str = Field(default="26.4")
    stats_cache_ttl_minutes: int = Field(default=60, ge=1)
    matchup_min_sample_games: int = Field(default=10, ge=1)
    live_read_timeout_seconds: float = Field(default=3.5, gt=0)

    # Bulk precompute job
    precompute_lanes: str = Field(default="top,jungle,mid,adc,support")
    precompute_max_players: int = Field(default=80, ge=1)
    precompute_matches_per_player: int = Field(default=20, ge=1)
    precompute_max_unique_matches: int = Field(default=2000, ge=1)
    precompute_concurrency: int = Field(default=4, ge=1)
    checkpoint_path: str = Field(default="./data/scrape-matchups-checkpoint.json")
    checkpoint_every: int = Field(default=20, ge=1)
    item_failure_policy: ItemFailurePolicy = Field(default=ItemFailurePolicy.SKIP)

    # Nightly scheduler
    nightly_precompute_enabled: bool = Field(default=False)
    nightly_precompute_hour_utc: int = Field(default=4)

    # Missing pair backfill
    backfill_enabled: bool = Field(default=True)
    backfill_max_queue_size: int = Field(default=50, ge=1)
    backfill_cooldown_minutes: int = Field(default=30, ge=0)
    backfill_max_players: int = Field(default=25, ge=1)
    backfill_matches_per_player: int = Field(default=10, ge=1)
    backfill_max_unique_matches: int = Field(default=150, ge=1)
    backfill_concurrency: int = Field(default=2, ge=1)

    # Application Configuration
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", pattern="^(json|console)$")

    @field_validator("current_patch")
    @classmethod
    def validate_patch(cls, v: str) -> str:
        """Require community patch notation such as ``26.4``."""
        v = v.strip()
        if not _PATCH_PATTERN.match(v):
            raise ValueError(f"CURRENT_PATCH must look like '26.4', got '{v}'")
        return v

    @field_validator("nightly_precompute_hour_utc")
    @classmethod
    def clamp_hour(cls, v: int) -> int:
        """Clamp the nightly hour into 0-23."""
        return min(23, max(0, int(v)))

    @property
    def precompute_lane_list(self) -> List[Lane]:
        """Get configured precompute lanes as a deduplicated list."""
        return parse_lanes(self.precompute_lanes)

    @property
    def stats_cache_ttl_seconds(self) -> int:
        """Cache TTL in seconds."""
        return self.stats_cache_ttl_minutes * 60

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",
        extra="ignore",
    )


def parse_lanes(raw: str) -> List[Lane]:
    """Parse a comma separated lane list, keeping order and dropping duplicates.

    Unknown lane names are ignored; an empty result falls back to every lane.
    """
    lanes: List[Lane] = []
    for part in raw.split(","):
        value = part.strip().lower()
        if not value:
            continue
        try:
            lane = Lane(value)
        except ValueError:
            continue
        if lane not in lanes:
            lanes.append(lane)
    return lanes or list(Lane)


def get_settings() -> Settings:
    """Get application settings instance."""
    return Settings()


# Create a global settings instance lazily
settings: Settings | None = None


def get_global_settings() -> Settings:
    """Get or create the global settings instance."""
    global settings
    if settings is None:
        settings = get_settings()
    return settings
