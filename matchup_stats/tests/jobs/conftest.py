"""Fakes for the collection job: a scripted Riot client and an in-memory store."""

from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

import pytest

from matchup_stats.core.riot_api.models import ApexPlayerRef


class FakeRiotClient:
    """
    Serves canned league, match id, match and timeline payloads.

    ``failures`` maps a method name and item id to a list of exceptions raised
    on successive calls before the canned payload is returned.
    """

    def __init__(
        self,
        players: List[ApexPlayerRef],
        match_ids: Dict[str, List[str]],
        games: Dict[str, tuple],
        summoners: Optional[Dict[str, str]] = None,
    ):
        self.players = players
        self.match_ids = match_ids
        self.games = games
        self.summoners = summoners or {}
        self.failures: Dict[tuple, List[BaseException]] = defaultdict(list)
        self.calls: Dict[str, List[Any]] = defaultdict(list)
        self.on_get_match: Optional[Callable[[str], None]] = None

    def fail(self, method: str, item: str, *errors: BaseException) -> None:
        self.failures[(method, item)].extend(errors)

    def _maybe_fail(self, method: str, item: str) -> None:
        self.calls[method].append(item)
        queued = self.failures.get((method, item))
        if queued:
            raise queued.pop(0)

    def cooldown_remaining(self) -> float:
        return 0.0

    async def get_apex_league_entries(self) -> List[ApexPlayerRef]:
        self._maybe_fail("get_apex_league_entries", "")
        return list(self.players)

    async def get_puuid_by_summoner_id(self, summoner_id: str) -> str:
        self._maybe_fail("get_puuid_by_summoner_id", summoner_id)
        return self.summoners[summoner_id]

    async def get_match_ids_by_puuid(self, puuid: str, count: int = 10, **kwargs) -> List[str]:
        self._maybe_fail("get_match_ids_by_puuid", puuid)
        return self.match_ids.get(puuid, [])[:count]

    async def get_match(self, match_id: str) -> Dict[str, Any]:
        if self.on_get_match is not None:
            self.on_get_match(match_id)
        self._maybe_fail("get_match", match_id)
        return self.games[match_id][0]

    async def get_match_timeline(self, match_id: str) -> Dict[str, Any]:
        self._maybe_fail("get_match_timeline", match_id)
        return self.games[match_id][1]


class MemoryStore:
    """Store double keeping upserted records in a dict."""

    def __init__(self):
        self.rows = {}
        self.upsert_calls = 0

    async def upsert_many(self, records) -> int:
        self.upsert_calls += 1
        for record in records:
            self.rows[record.key] = record
        return len(records)

    async def get(self, patch, lane, player_champion, enemy_champion):
        for key, record in self.rows.items():
            if tuple(key) == (patch, lane, player_champion, enemy_champion):
                return record
        return None


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def riot_world(payloads):
    """
    Three apex players sharing some matches.

    p1: m1 m2 m3, p2: m2 m4, p3 (summoner id only): m5 m6
    m6 is from the previous patch.
    """
    games = {
        "m1": payloads.mid_game("m1", "Ahri", "Zed", True, 5300, 5000),
        "m2": payloads.mid_game("m2", "Ahri", "Zed", True, 4900, 5000),
        "m3": payloads.mid_game("m3", "Ahri", "Zed", False, 4800, 5000),
        "m4": payloads.mid_game("m4", "Lux", "Syndra", True),
        "m5": payloads.mid_game("m5", "Zed", "Lux", False),
        "m6": payloads.mid_game("m6", "Ahri", "Zed", True, game_version="16.3.500.1"),
    }
    players = [
        ApexPlayerRef(puuid="p1"),
        ApexPlayerRef(puuid="p2"),
        ApexPlayerRef(summoner_id="s3"),
    ]
    match_ids = {"p1": ["m1", "m2", "m3"], "p2": ["m2", "m4"], "p3": ["m5", "m6"]}

    def build() -> FakeRiotClient:
        return FakeRiotClient(players, match_ids, games, summoners={"s3": "p3"})

    return build
