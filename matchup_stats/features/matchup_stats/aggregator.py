"""
Match telemetry aggregation.

Pure functions that fold one match (match-v5 payload plus its timeline) into
per-matchup accumulators, and collapse those accumulators into finalized
``MatchupStatRecord`` rows.
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog

from matchup_stats.core.champions import champion_key, normalize_champion_name
from matchup_stats.core.enums import Lane, TEAM_POSITION_BY_LANE
from matchup_stats.core.exceptions import MalformedTelemetry
from matchup_stats.core.validation import require_list, require_mapping

from .schemas import ItemUsage, MatchupKey, MatchupStatRecord, MatchupStats, RuneUsage

logger = structlog.get_logger(__name__)

GOLD_SAMPLE_MS = 15 * 60 * 1000
EARLY_WINDOW_MS = 6 * 60 * 1000
TOP_USAGE_ENTRIES = 3

BucketKey = MatchupKey


@dataclass
class AggregationBucket:
    """Running totals for one directed matchup."""

    games: int = 0
    wins: int = 0
    gold_diff_sum: int = 0
    early_kills: int = 0
    early_deaths: int = 0
    keystones: Counter = field(default_factory=Counter)
    first_items: Counter = field(default_factory=Counter)


BucketMap = Dict[BucketKey, AggregationBucket]


@dataclass(frozen=True)
class ParticipantTelemetry:
    """What the aggregator needs to know about one participant."""

    participant_id: int
    team_id: Optional[int]
    team_position: str
    champion_name: str
    win: bool
    gold_at_15: Optional[int]
    early_kills: int
    early_deaths: int
    keystone_id: Optional[int]
    first_item_id: Optional[int]


@dataclass(frozen=True)
class MatchTelemetry:
    match_id: str
    game_version: str
    participants: Tuple[ParticipantTelemetry, ...]


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def read_game_version(match: Any) -> str:
    """Return ``info.gameVersion`` or an empty string when absent."""
    info = require_mapping(match, "info", "match")
    version = info.get("gameVersion")
    return version if isinstance(version, str) else ""


def _read_keystone(participant: Dict[str, Any]) -> Optional[int]:
    perks = participant.get("perks")
    if not isinstance(perks, dict):
        return None
    styles = perks.get("styles")
    if not isinstance(styles, list) or not styles or not isinstance(styles[0], dict):
        return None
    selections = styles[0].get("selections")
    if not isinstance(selections, list) or not selections or not isinstance(selections[0], dict):
        return None
    return _as_int(selections[0].get("perk"))


def _scan_timeline(
    frames: List[Any],
) -> Tuple[Dict[str, Any], Counter, Counter, Dict[int, int]]:
    """Walk timeline frames once.

    Returns the participant frames of the 15 minute sample, early kills and
    deaths per participant, and each participant's first purchased item.
    A purchase reverted by ``ITEM_UNDO`` does not count.
    """
    gold_frames: Optional[Dict[str, Any]] = None
    kills: Counter = Counter()
    deaths: Counter = Counter()
    purchases: Dict[int, List[int]] = {}

    for index, frame in enumerate(frames):
        if not isinstance(frame, dict):
            raise MalformedTelemetry(f"timeline.info.frames[{index}] is not an object")

        timestamp = _as_int(frame.get("timestamp"))
        if gold_frames is None and timestamp is not None and timestamp >= GOLD_SAMPLE_MS:
            participant_frames = frame.get("participantFrames")
            gold_frames = participant_frames if isinstance(participant_frames, dict) else {}

        for event in require_list(frame, "events", f"timeline.info.frames[{index}]"):
            if not isinstance(event, dict):
                continue
            event_type = event.get("type")
            event_time = _as_int(event.get("timestamp"))

            if event_type == "CHAMPION_KILL":
                if event_time is None or event_time > EARLY_WINDOW_MS:
                    continue
                killer = _as_int(event.get("killerId"))
                victim = _as_int(event.get("victimId"))
                if killer is not None and killer > 0:
                    kills[killer] += 1
                if victim is not None and victim > 0:
                    deaths[victim] += 1
            elif event_type == "ITEM_PURCHASED":
                buyer = _as_int(event.get("participantId"))
                item_id = _as_int(event.get("itemId"))
                if buyer is not None and item_id:
                    purchases.setdefault(buyer, []).append(item_id)
            elif event_type == "ITEM_UNDO":
                buyer = _as_int(event.get("participantId"))
                undone = _as_int(event.get("beforeId"))
                history = purchases.get(buyer, [])
                # beforeId is 0 when a sale is undone
                if undone and undone in history:
                    del history[len(history) - 1 - history[::-1].index(undone)]

    first_items = {buyer: items[0] for buyer, items in purchases.items() if items}
    return gold_frames or {}, kills, deaths, first_items


def extract_match_telemetry(match: Any, timeline: Any) -> MatchTelemetry:
    """
    Reduce a match and its timeline to per-participant telemetry.

    Raises:
        MalformedTelemetry: If either payload does not have the expected shape
    """
    info = require_mapping(match, "info", "match")
    metadata = match.get("metadata") if isinstance(match.get("metadata"), dict) else {}
    match_id = metadata.get("matchId") if isinstance(metadata.get("matchId"), str) else ""

    raw_participants = require_list(info, "participants", "match.info")
    timeline_info = require_mapping(timeline, "info", "timeline")
    frames = require_list(timeline_info, "frames", "timeline.info")
    gold_frames, kills, deaths, purchased = _scan_timeline(frames)

    participants: List[ParticipantTelemetry] = []
    for index, raw in enumerate(raw_participants):
        if not isinstance(raw, dict):
            raise MalformedTelemetry(f"match.info.participants[{index}] is not an object")
        participant_id = _as_int(raw.get("participantId"))
        if participant_id is None:
            raise MalformedTelemetry(
                f"match.info.participants[{index}] has no participantId",
                context={"match_id": match_id},
            )

        participant_frame = gold_frames.get(str(participant_id))
        gold = (
            _as_int(participant_frame.get("totalGold"))
            if isinstance(participant_frame, dict)
            else None
        )

        first_item = purchased.get(participant_id)
        if first_item is None:
            item0 = _as_int(raw.get("item0"))
            first_item = item0 if item0 and item0 > 0 else None

        champion_name = raw.get("championName")
        position = raw.get("teamPosition")
        participants.append(
            ParticipantTelemetry(
                participant_id=participant_id,
                team_id=_as_int(raw.get("teamId")),
                team_position=position if isinstance(position, str) else "",
                champion_name=normalize_champion_name(champion_name)
                if isinstance(champion_name, str)
                else "",
                win=raw.get("win") is True,
                gold_at_15=gold,
                early_kills=kills.get(participant_id, 0),
                early_deaths=deaths.get(participant_id, 0),
                keystone_id=_read_keystone(raw),
                first_item_id=first_item,
            )
        )

    version = info.get("gameVersion")
    return MatchTelemetry(
        match_id=match_id,
        game_version=version if isinstance(version, str) else "",
        participants=tuple(participants),
    )


def find_lane_pairing(
    telemetry: MatchTelemetry, lane: Lane
) -> Optional[Tuple[ParticipantTelemetry, ParticipantTelemetry]]:
    """
    Find the two opposing participants playing ``lane``.

    Returns None unless exactly two participants carry the lane's role tag,
    they are on different teams, and both have distinct champion names.
    """
    position = TEAM_POSITION_BY_LANE[lane]
    laners = [p for p in telemetry.participants if p.team_position == position]
    if len(laners) != 2:
        return None

    left, right = laners
    if left.team_id is not None and left.team_id == right.team_id:
        return None
    if not left.champion_name or not right.champion_name:
        return None
    if champion_key(left.champion_name) == champion_key(right.champion_name):
        return None
    return left, right


def _apply_side(
    buckets: BucketMap,
    key: BucketKey,
    player: ParticipantTelemetry,
    enemy: ParticipantTelemetry,
) -> None:
    bucket = buckets.get(key)
    if bucket is None:
        bucket = buckets[key] = AggregationBucket()

    bucket.games += 1
    if player.win:
        bucket.wins += 1
    if player.gold_at_15 is not None and enemy.gold_at_15 is not None:
        bucket.gold_diff_sum += player.gold_at_15 - enemy.gold_at_15
    bucket.early_kills += player.early_kills
    bucket.early_deaths += player.early_deaths
    if player.keystone_id is not None:
        bucket.keystones[player.keystone_id] += 1
    if player.first_item_id is not None:
        bucket.first_items[player.first_item_id] += 1


def apply_lane_pairing(
    buckets: BucketMap,
    patch: str,
    lane: Lane,
    left: ParticipantTelemetry,
    right: ParticipantTelemetry,
) -> None:
    """Update both directed buckets for one lane pairing."""
    _apply_side(buckets, BucketKey(patch, lane, left.champion_name, right.champion_name), left, right)
    _apply_side(buckets, BucketKey(patch, lane, right.champion_name, left.champion_name), right, left)


def aggregate_match(
    buckets: BucketMap,
    telemetry: MatchTelemetry,
    patch: str,
    lanes: Iterable[Lane],
    pair_filter: Optional[Tuple[str, str]] = None,
) -> int:
    """
    Feed every requested lane of one match into ``buckets``.

    Args:
        pair_filter: Optional (player, enemy) champion names; when set only
            that pairing (in either direction) is aggregated

    Returns:
        Number of lane pairings applied
    """
    wanted = None
    if pair_filter is not None:
        wanted = {champion_key(normalize_champion_name(name)) for name in pair_filter}

    applied = 0
    for lane in lanes:
        pairing = find_lane_pairing(telemetry, lane)
        if pairing is None:
            continue
        left, right = pairing
        if wanted is not None and {
            champion_key(left.champion_name),
            champion_key(right.champion_name),
        } != wanted:
            continue
        apply_lane_pairing(buckets, patch, lane, left, right)
        applied += 1
    return applied


def _top_usage(counter: Counter, games: int) -> List[Tuple[int, int, float]]:
    ranked = sorted(counter.items(), key=lambda entry: (-entry[1], entry[0]))
    return [
        (entry_id, count, round(count / games, 3))
        for entry_id, count in ranked[:TOP_USAGE_ENTRIES]
    ]


def finalize_bucket(patch: str, bucket: AggregationBucket, computed_at: datetime) -> MatchupStats:
    """Collapse a bucket into rates, rounded averages and top-3 usage lists."""
    games = bucket.games
    if games <= 0:
        raise ValueError("cannot finalize an empty bucket")

    return MatchupStats(
        patch=patch,
        games=games,
        win_rate=round(bucket.wins / games, 3),
        # half-up, so -0.5 rounds to 0
        gold_diff_15=math.floor(bucket.gold_diff_sum / games + 0.5),
        pre6_kill_rate=round(bucket.early_kills / games, 3),
        early_death_rate=round(bucket.early_deaths / games, 3),
        rune_usage=[
            RuneUsage(keystone_id=entry_id, count=count, pct=pct)
            for entry_id, count, pct in _top_usage(bucket.keystones, games)
        ],
        first_item_usage=[
            ItemUsage(item_id=entry_id, count=count, pct=pct)
            for entry_id, count, pct in _top_usage(bucket.first_items, games)
        ],
        computed_at=computed_at,
    )


def finalize_buckets(
    buckets: BucketMap, computed_at: datetime, ttl: timedelta
) -> List[MatchupStatRecord]:
    """Turn every non-empty bucket into a record expiring ``ttl`` after ``computed_at``."""
    expires_at = computed_at + ttl
    records = []
    for key, bucket in buckets.items():
        if bucket.games <= 0:
            continue
        records.append(
            MatchupStatRecord(
                patch=key.patch,
                lane=key.lane,
                player_champion=key.player_champion,
                enemy_champion=key.enemy_champion,
                stats=finalize_bucket(key.patch, bucket, computed_at),
                computed_at=computed_at,
                expires_at=expires_at,
            )
        )
    logger.debug("Finalized buckets", records=len(records))
    return records
