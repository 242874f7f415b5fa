"""Shared fixtures: match-v5 payload builders and a temporary SQLite store."""

from types import SimpleNamespace
from typing import Any, Dict, Iterable, List, Optional

import pytest
import pytest_asyncio

from matchup_stats.core.database import DatabaseManager
from matchup_stats.features.matchup_stats.repository import SQLiteMatchupStatsStore


def make_participant(
    participant_id: int,
    team_id: int,
    position: str,
    champion: str,
    win: bool,
    keystone: Optional[int] = None,
    item0: int = 0,
) -> Dict[str, Any]:
    participant: Dict[str, Any] = {
        "participantId": participant_id,
        "teamId": team_id,
        "teamPosition": position,
        "championName": champion,
        "win": win,
        "item0": item0,
    }
    if keystone is not None:
        participant["perks"] = {"styles": [{"selections": [{"perk": keystone}]}]}
    return participant


def make_match(
    match_id: str, participants: List[Dict[str, Any]], game_version: str = "16.4.512.1"
) -> Dict[str, Any]:
    return {
        "metadata": {"matchId": match_id},
        "info": {"gameVersion": game_version, "participants": participants},
    }


def make_timeline(
    gold_at_15: Optional[Dict[int, int]] = None, events: Iterable[Dict[str, Any]] = ()
) -> Dict[str, Any]:
    """Timeline with an event frame at 0 and a gold frame at 15:00."""
    frames: List[Dict[str, Any]] = [{"timestamp": 0, "events": list(events)}]
    if gold_at_15 is not None:
        frames.append(
            {
                "timestamp": 900_000,
                "participantFrames": {
                    str(pid): {"totalGold": gold} for pid, gold in gold_at_15.items()
                },
                "events": [],
            }
        )
    return {"info": {"frames": frames}}


def make_mid_game(
    match_id: str,
    blue: str,
    red: str,
    blue_wins: bool,
    blue_gold: int = 5000,
    red_gold: int = 5000,
    game_version: str = "16.4.512.1",
    events: Iterable[Dict[str, Any]] = (),
):
    """A match with only mid laners filled in (participants 1 and 6)."""
    match = make_match(
        match_id,
        [
            make_participant(1, 100, "MIDDLE", blue, blue_wins, keystone=8112),
            make_participant(6, 200, "MIDDLE", red, not blue_wins, keystone=8010),
        ],
        game_version,
    )
    return match, make_timeline({1: blue_gold, 6: red_gold}, events)


@pytest.fixture
def payloads():
    """Builders for match-v5 match and timeline payloads."""
    return SimpleNamespace(
        participant=make_participant,
        match=make_match,
        timeline=make_timeline,
        mid_game=make_mid_game,
    )


@pytest_asyncio.fixture
async def sqlite_store(tmp_path):
    """Initialized SQLite store in a temporary file."""
    db = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'stats.db'}", echo=False)
    store = SQLiteMatchupStatsStore(db)
    await store.initialize()
    yield store
    await store.close()
