"""Pydantic models for Riot API response data."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ApexPlayerRef(BaseModel):
    """A player listed in an apex league; at least one identifier is set."""

    puuid: Optional[str] = None
    summoner_id: Optional[str] = Field(None, alias="summonerId")

    model_config = ConfigDict(populate_by_name=True)


class ApiKeyStatus(BaseModel):
    """Result of probing the platform status endpoint with the configured key."""

    configured: bool
    valid: bool
    expired: bool
    http_status: Optional[int] = None
    message: str
    checked_at: datetime
