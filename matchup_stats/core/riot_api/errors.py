"""Errors raised by the Riot API client.

Collection jobs branch on the class: rate limits wait out the cooldown,
auth/forbidden abort the run, everything else fails only the current item.
"""

import math
from typing import Optional


class RiotAPIError(Exception):
    """Base Riot API failure, carrying the HTTP status when there was one."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.message: str = message
        self.status_code: Optional[int] = status_code
        # Truncated; Riot error bodies are small JSON status objects
        self.response_body: str = (response_body or "")[:500]
        self.retry_after: Optional[float] = retry_after

    def __str__(self) -> str:
        if self.status_code is None:
            return f"Riot API: {self.message}"
        if self.retry_after:
            return f"Riot API {self.status_code}: {self.message} (retry in {self.retry_after:.0f}s)"
        return f"Riot API {self.status_code}: {self.message}"


class NetworkError(RiotAPIError):
    """Timeout, DNS or connection failure after all retries."""


class RateLimitError(RiotAPIError):
    """429 from Riot; the client enters a shared cooldown."""


class CooldownActiveError(RateLimitError):
    """Rejected locally because an earlier 429 cooldown has not expired."""

    def __init__(self, remaining_seconds: float) -> None:
        whole_seconds = max(1, math.ceil(remaining_seconds))
        super().__init__(
            f"Riot API cooldown active ({whole_seconds}s remaining) after rate limit.",
            retry_after=remaining_seconds,
        )

    def __str__(self) -> str:
        return self.message


class PermanentHttpError(RiotAPIError):
    """Non-success status that a retry would not change."""


class BadRequestError(PermanentHttpError):
    """400."""


class AuthenticationError(PermanentHttpError):
    """401: key missing, invalid or expired."""


class ForbiddenError(PermanentHttpError):
    """403: key lacks access to the endpoint."""


class NotFoundError(PermanentHttpError):
    """404."""


class ServiceUnavailableError(PermanentHttpError):
    """5xx that persisted through every retry."""
