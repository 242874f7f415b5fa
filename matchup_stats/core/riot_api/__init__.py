"""
Riot API client package.

Provides the rate-limited HTTP client used by the collection jobs together
with its error taxonomy and endpoint routing.
"""

from .client import RiotAPIClient
from .constants import EndpointClass, Platform, QueueType, Region
from .errors import (
    AuthenticationError,
    BadRequestError,
    CooldownActiveError,
    ForbiddenError,
    NetworkError,
    NotFoundError,
    PermanentHttpError,
    RateLimitError,
    RiotAPIError,
    ServiceUnavailableError,
)
from .models import ApexPlayerRef, ApiKeyStatus
from .rate_limiter import DualWindowRateLimiter

__all__ = [
    "RiotAPIClient",
    "DualWindowRateLimiter",
    "EndpointClass",
    "Platform",
    "QueueType",
    "Region",
    "ApexPlayerRef",
    "ApiKeyStatus",
    "RiotAPIError",
    "NetworkError",
    "RateLimitError",
    "CooldownActiveError",
    "PermanentHttpError",
    "BadRequestError",
    "AuthenticationError",
    "ForbiddenError",
    "NotFoundError",
    "ServiceUnavailableError",
]
