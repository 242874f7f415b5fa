"""Riot API HTTP client with rate limiting, cooldown, and retry handling."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import structlog

from ..config import Settings, get_global_settings
from .constants import ApexTier, EndpointClass, Platform, QueueType, Region
from .endpoints import RiotAPIEndpoints
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

logger = structlog.get_logger(__name__)

QueryParams = Dict[str, Union[str, int, bool]]

_CLIENT_ERRORS = {
    400: (BadRequestError, "Invalid request parameters"),
    401: (AuthenticationError, "Invalid API key"),
    403: (ForbiddenError, "Access forbidden"),
    404: (NotFoundError, "Resource not found"),
}


class RiotAPIClient:
    """Riot API client shared by every caller in the process.

    All requests go through one ``DualWindowRateLimiter``. A 429 response
    starts a cooldown during which new calls fail fast with
    ``CooldownActiveError``; the call that received the 429 waits and retries.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        api_key: Optional[str] = None,
        rate_limiter: Optional[DualWindowRateLimiter] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize Riot API client.

        Args:
            settings: Settings to read key, routing and retry policy from
            api_key: Riot API key (uses settings if None)
            rate_limiter: Shared limiter (built from settings if None)
            clock: Monotonic time source for the cooldown
        """
        settings = settings or get_global_settings()
        self.api_key = api_key if api_key is not None else settings.riot_api_key
        self.platform = self._parse_route(Platform, settings.riot_platform)
        self.region = self._parse_route(Region, settings.riot_region)
        self.max_retries = settings.riot_max_retries
        self.retry_base_seconds = settings.riot_retry_base_seconds
        self.cooldown_floor_seconds = settings.riot_rate_limit_cooldown_seconds

        self.rate_limiter = rate_limiter or DualWindowRateLimiter(
            short_limit=settings.riot_short_window_limit,
            short_seconds=settings.riot_short_window_seconds,
            long_limit=settings.riot_long_window_limit,
            long_seconds=settings.riot_long_window_seconds,
        )
        self.endpoints = RiotAPIEndpoints(self.region, self.platform)
        self._clock = clock
        self._cooldown_until = 0.0

        # HTTP session
        self.session: Optional[httpx.AsyncClient] = None
        self._session_lock = asyncio.Lock()

    async def __aenter__(self) -> "RiotAPIClient":
        """Async context manager entry."""
        await self.start_session()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        """Async context manager exit."""
        await self.close()

    async def start_session(self) -> None:
        """Start the httpx session."""
        if self.session is None or self.session.is_closed:
            async with self._session_lock:
                if self.session is None or self.session.is_closed:
                    headers = {
                        "X-Riot-Token": self.api_key,
                        "User-Agent": "matchup-stats-collector/0.1",
                    }
                    timeout = httpx.Timeout(connect=5.0, read=25.0, write=10.0, pool=30.0)
                    limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)

                    self.session = httpx.AsyncClient(
                        headers=headers, timeout=timeout, limits=limits
                    )

                    logger.info(
                        "Riot API client session started",
                        region=self._enum_str(self.region),
                        platform=self._enum_str(self.platform),
                        api_key_prefix="[REDACTED]" if self.api_key else "None",
                    )

    async def close(self) -> None:
        """Close the httpx session."""
        if self.session and not self.session.is_closed:
            await self.session.aclose()
            logger.info("Riot API client session closed")

    # Cooldown

    def cooldown_remaining(self) -> float:
        """Seconds left in the current rate limit cooldown, 0 when inactive."""
        return max(0.0, self._cooldown_until - self._clock())

    def _activate_cooldown(self, delay: float) -> None:
        duration = max(delay, self.cooldown_floor_seconds)
        self._cooldown_until = max(self._cooldown_until, self._clock() + duration)
        logger.warning("Riot API cooldown activated", cooldown_seconds=round(duration, 2))

    def _retry_delay(self, response: httpx.Response, attempt: int) -> float:
        """Retry-After header when it is a positive number, exponential backoff otherwise."""
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                seconds = float(retry_after)
            except ValueError:
                seconds = 0.0
            if seconds > 0:
                return seconds
        return self._backoff(attempt)

    def _backoff(self, attempt: int) -> float:
        return self.retry_base_seconds * 2**attempt

    # Requests

    def _raise_client_error(self, response: httpx.Response, body: str) -> None:
        """Raise the PermanentHttpError subclass matching a 4xx response."""
        status = response.status_code
        error_class, message = _CLIENT_ERRORS.get(
            status, (PermanentHttpError, f"Client error {status}")
        )
        raise error_class(message, status_code=status, response_body=body)

    async def get(
        self,
        endpoint_class: EndpointClass,
        path: str,
        query: Optional[QueryParams] = None,
    ) -> Any:
        """
        Make a GET request with rate limiting and retry logic.

        Args:
            endpoint_class: Platform or regional host
            path: Endpoint path starting with ``/``
            query: Query parameters

        Returns:
            Decoded JSON body

        Raises:
            CooldownActiveError: A previous 429 cooldown has not expired
            RateLimitError: 429 persisted through every retry
            ServiceUnavailableError: 5xx persisted through every retry
            NetworkError: Transport errors persisted through every retry
            PermanentHttpError: Any other non-success status
        """
        remaining = self.cooldown_remaining()
        if remaining > 0:
            raise CooldownActiveError(remaining)

        await self.start_session()
        if self.session is None:
            raise RiotAPIError("Session not initialized")

        url = f"{self.endpoints.get_base_url(endpoint_class)}{path}"
        params = {
            key: str(value).lower() if isinstance(value, bool) else value
            for key, value in (query or {}).items()
        }

        for attempt in range(self.max_retries + 1):
            retries_left = attempt < self.max_retries
            await self.rate_limiter.acquire()

            try:
                response = await self.session.get(url, params=params)
            except httpx.RequestError as e:
                if retries_left:
                    delay = self._backoff(attempt)
                    logger.warning(
                        "Riot API transport error, retrying",
                        path=path,
                        attempt=attempt + 1,
                        error=str(e),
                        retry_in=delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise NetworkError(f"Request failed: {e}") from e

            try:
                if response.status_code == 200:
                    return response.json()

                body = response.text
                status = response.status_code

                if status == 429:
                    delay = self._retry_delay(response, attempt)
                    self._activate_cooldown(delay)
                    if not retries_left:
                        raise RateLimitError(
                            "Rate limit exceeded",
                            status_code=status,
                            response_body=body,
                            retry_after=delay,
                        )
                    logger.warning("Riot API rate limited, retrying", path=path, attempt=attempt + 1, retry_in=delay)
                    await asyncio.sleep(delay)
                    continue

                if status >= 500:
                    if not retries_left:
                        raise ServiceUnavailableError(
                            f"Server error {status}", status_code=status, response_body=body
                        )
                    delay = self._backoff(attempt)
                    logger.warning("Riot API server error, retrying", path=path, status=status, retry_in=delay)
                    await asyncio.sleep(delay)
                    continue

                self._raise_client_error(response, body)
            finally:
                await response.aclose()

        raise RiotAPIError("Request failed without a response")

    @staticmethod
    def _parse_route(enum_class: Any, value: str) -> Any:
        try:
            return enum_class(value.lower())
        except ValueError:
            return value.lower()

    @staticmethod
    def _enum_str(value: Union[Region, Platform, str]) -> str:
        """Extract string value from enum or return as-is."""
        return value.value if hasattr(value, "value") else value

    # League endpoints

    async def get_apex_league_entries(self) -> List[ApexPlayerRef]:
        """Players of the challenger, grandmaster and master solo queue leagues, in that order."""
        tasks = [
            asyncio.ensure_future(
                self.get(EndpointClass.PLATFORM, self.endpoints.apex_league(tier))
            )
            for tier in ApexTier
        ]
        try:
            payloads = await asyncio.gather(*tasks)
        except BaseException:
            # One failed tier fails discovery; stop the others spending budget
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        players: List[ApexPlayerRef] = []
        for payload in payloads:
            entries = payload.get("entries") if isinstance(payload, dict) else None
            for entry in entries or []:
                if not isinstance(entry, dict):
                    continue
                puuid = entry.get("puuid") if isinstance(entry.get("puuid"), str) else None
                summoner_id = (
                    entry.get("summonerId") if isinstance(entry.get("summonerId"), str) else None
                )
                if puuid or summoner_id:
                    players.append(ApexPlayerRef(puuid=puuid, summoner_id=summoner_id))
        return players

    # Summoner endpoints

    async def get_puuid_by_summoner_id(self, summoner_id: str) -> str:
        data = await self.get(EndpointClass.PLATFORM, self.endpoints.summoner_by_id(summoner_id))
        puuid = data.get("puuid") if isinstance(data, dict) else None
        if not isinstance(puuid, str):
            raise RiotAPIError(f"Missing puuid for summoner {summoner_id}")
        return puuid

    # Match endpoints

    async def get_match_ids_by_puuid(
        self,
        puuid: str,
        count: int = 10,
        queue: QueueType = QueueType.RANKED_SOLO_5X5,
        start_time: Optional[int] = None,
    ) -> List[str]:
        """Recent match ids for a player, newest first."""
        query: QueryParams = {"queue": int(queue), "count": count}
        if start_time:
            query["startTime"] = start_time

        data = await self.get(
            EndpointClass.REGIONAL, self.endpoints.match_ids_by_puuid(puuid), query
        )
        if not isinstance(data, list):
            raise RiotAPIError(f"Expected list of match ids, got {type(data).__name__}")
        return [entry for entry in data if isinstance(entry, str)]

    async def get_match(self, match_id: str) -> Dict[str, Any]:
        return await self.get(EndpointClass.REGIONAL, self.endpoints.match_by_id(match_id))

    async def get_match_timeline(self, match_id: str) -> Dict[str, Any]:
        return await self.get(EndpointClass.REGIONAL, self.endpoints.match_timeline(match_id))

    # Status

    async def get_api_key_status(self) -> ApiKeyStatus:
        """Probe the platform status endpoint to check the configured key.

        Never raises; failures are reported in the returned status.
        """
        checked_at = datetime.now(timezone.utc)
        if not self.api_key:
            return ApiKeyStatus(
                configured=False,
                valid=False,
                expired=False,
                message="RIOT_API_KEY is not configured.",
                checked_at=checked_at,
            )

        await self.start_session()
        url = f"{self.endpoints.get_base_url(EndpointClass.PLATFORM)}{self.endpoints.platform_status()}"
        await self.rate_limiter.acquire()
        try:
            response = await self.session.get(url)
        except httpx.RequestError as e:
            logger.warning("Riot API key check failed", error=str(e))
            return ApiKeyStatus(
                configured=True,
                valid=False,
                expired=False,
                message=str(e) or "Unknown network error while checking Riot key.",
                checked_at=checked_at,
            )

        try:
            if response.is_success:
                return ApiKeyStatus(
                    configured=True,
                    valid=True,
                    expired=False,
                    http_status=response.status_code,
                    message="Riot API key is valid.",
                    checked_at=checked_at,
                )

            status = response.status_code
            return ApiKeyStatus(
                configured=True,
                valid=False,
                expired=status in (401, 403),
                http_status=status,
                message=f"Riot API key check failed: HTTP {status}. {response.text[:220]}",
                checked_at=checked_at,
            )
        finally:
            await response.aclose()
