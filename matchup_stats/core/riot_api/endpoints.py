"""Riot API endpoint definitions and routing information."""

from typing import Union

from .constants import ApexTier, EndpointClass, Platform, Region, RANKED_SOLO_QUEUE_NAME


class RiotAPIEndpoints:
    """Riot API endpoint paths and host routing."""

    def __init__(
        self,
        region: Union[Region, str] = Region.EUROPE,
        platform: Union[Platform, str] = Platform.EUW1,
    ):
        """
        Initialize endpoint configuration.

        Args:
            region: Routing value for regional endpoints (match-v5)
            platform: Routing value for platform endpoints (league, summoner, status)
        """
        self.region = region
        self.platform = platform

    def get_base_url(self, endpoint_class: EndpointClass) -> str:
        """Get the host URL serving ``endpoint_class``."""
        if endpoint_class == EndpointClass.PLATFORM:
            route = self.platform
        else:
            route = self.region
        route_str = route.value if isinstance(route, (Region, Platform)) else route
        return f"https://{route_str}.api.riotgames.com"

    # League endpoints (Platform)
    @staticmethod
    def apex_league(tier: ApexTier, queue: str = RANKED_SOLO_QUEUE_NAME) -> str:
        return f"/lol/league/v4/{tier.value}leagues/by-queue/{queue}"

    # Summoner endpoints (Platform)
    @staticmethod
    def summoner_by_id(summoner_id: str) -> str:
        return f"/lol/summoner/v4/summoners/{summoner_id}"

    # Status endpoints (Platform)
    @staticmethod
    def platform_status() -> str:
        return "/lol/status/v4/platform-data"

    # Match endpoints (Regional)
    @staticmethod
    def match_ids_by_puuid(puuid: str) -> str:
        return f"/lol/match/v5/matches/by-puuid/{puuid}/ids"

    @staticmethod
    def match_by_id(match_id: str) -> str:
        return f"/lol/match/v5/matches/{match_id}"

    @staticmethod
    def match_timeline(match_id: str) -> str:
        return f"/lol/match/v5/matches/{match_id}/timeline"
