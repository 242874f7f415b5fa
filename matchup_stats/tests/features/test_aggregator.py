"""
Tests for match telemetry aggregation.
"""

from datetime import datetime, timedelta, timezone

import pytest

from matchup_stats.core.enums import Lane
from matchup_stats.core.exceptions import MalformedTelemetry
from matchup_stats.features.matchup_stats.aggregator import (
    AggregationBucket,
    aggregate_match,
    extract_match_telemetry,
    finalize_bucket,
    finalize_buckets,
    find_lane_pairing,
    read_game_version,
)
from matchup_stats.features.matchup_stats.schemas import MatchupKey

PATCH = "26.4"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def aggregate(buckets, match, timeline, lanes=(Lane.MID,), pair_filter=None):
    telemetry = extract_match_telemetry(match, timeline)
    return aggregate_match(buckets, telemetry, PATCH, list(lanes), pair_filter)


class TestExtractMatchTelemetry:
    """Test cases for extract_match_telemetry."""

    def test_reads_gold_kills_deaths_and_items(self, payloads):
        match, _ = payloads.mid_game("EUW1_1", "Ahri", "Zed", True)
        timeline = payloads.timeline(
            {1: 6100, 6: 5800},
            events=[
                {"type": "CHAMPION_KILL", "timestamp": 200_000, "killerId": 1, "victimId": 6},
                {"type": "CHAMPION_KILL", "timestamp": 360_000, "killerId": 1, "victimId": 6},
                {"type": "CHAMPION_KILL", "timestamp": 360_001, "killerId": 6, "victimId": 1},
                {"type": "CHAMPION_KILL", "timestamp": 100_000, "killerId": 0, "victimId": 1},
                {"type": "ITEM_PURCHASED", "timestamp": 1_000, "participantId": 1, "itemId": 1056},
                {"type": "ITEM_PURCHASED", "timestamp": 2_000, "participantId": 1, "itemId": 2003},
            ],
        )

        telemetry = extract_match_telemetry(match, timeline)
        ahri, zed = telemetry.participants

        assert telemetry.match_id == "EUW1_1"
        assert ahri.gold_at_15 == 6100
        assert ahri.early_kills == 2
        assert ahri.early_deaths == 1
        assert zed.early_kills == 0
        assert zed.early_deaths == 2
        assert ahri.first_item_id == 1056
        assert ahri.keystone_id == 8112

    def test_undone_purchase_is_not_the_first_item(self, payloads):
        match, _ = payloads.mid_game("EUW1_1", "Ahri", "Zed", True)
        timeline = payloads.timeline(
            {1: 5000, 6: 5000},
            events=[
                {"type": "ITEM_PURCHASED", "timestamp": 1_000, "participantId": 1, "itemId": 1055},
                {"type": "ITEM_UNDO", "timestamp": 1_500, "participantId": 1, "beforeId": 1055, "afterId": 0},
                {"type": "ITEM_PURCHASED", "timestamp": 2_000, "participantId": 1, "itemId": 1056},
                {"type": "ITEM_PURCHASED", "timestamp": 1_000, "participantId": 6, "itemId": 1055},
                {"type": "ITEM_UNDO", "timestamp": 1_200, "participantId": 6, "beforeId": 0, "afterId": 2003},
            ],
        )

        ahri, zed = extract_match_telemetry(match, timeline).participants

        assert ahri.first_item_id == 1056
        assert zed.first_item_id == 1055

    def test_first_item_falls_back_to_item0(self, payloads):
        match = payloads.match(
            "EUW1_2",
            [
                payloads.participant(1, 100, "MIDDLE", "Ahri", True, item0=3157),
                payloads.participant(6, 200, "MIDDLE", "Zed", False),
            ],
        )
        telemetry = extract_match_telemetry(match, payloads.timeline({}))
        assert telemetry.participants[0].first_item_id == 3157
        assert telemetry.participants[1].first_item_id is None

    def test_gold_uses_first_frame_at_or_after_15_minutes(self, payloads):
        match, _ = payloads.mid_game("EUW1_3", "Ahri", "Zed", True)
        timeline = {
            "info": {
                "frames": [
                    {"timestamp": 899_999, "participantFrames": {"1": {"totalGold": 1}}},
                    {"timestamp": 900_400, "participantFrames": {"1": {"totalGold": 7000}}},
                    {"timestamp": 960_000, "participantFrames": {"1": {"totalGold": 9000}}},
                ]
            }
        }
        telemetry = extract_match_telemetry(match, timeline)
        assert telemetry.participants[0].gold_at_15 == 7000
        assert telemetry.participants[1].gold_at_15 is None

    def test_internal_champion_names_are_normalized(self, payloads):
        match, timeline = payloads.mid_game("EUW1_4", "KSante", "MonkeyKing", True)
        names = [p.champion_name for p in extract_match_telemetry(match, timeline).participants]
        assert names == ["K'Sante", "Wukong"]

    @pytest.mark.parametrize(
        "match, timeline",
        [
            ({"metadata": {}}, {"info": {"frames": []}}),
            ({"info": {"participants": "nope"}}, {"info": {"frames": []}}),
            ({"info": {"participants": []}}, {"metadata": {}}),
            ({"info": {"participants": []}}, {"info": {"frames": ["bad"]}}),
            ({"info": {"participants": [{"teamId": 100}]}}, {"info": {"frames": []}}),
            ("not a dict", {"info": {"frames": []}}),
        ],
    )
    def test_malformed_payloads(self, match, timeline):
        with pytest.raises(MalformedTelemetry):
            extract_match_telemetry(match, timeline)

    def test_read_game_version(self, payloads):
        match, _ = payloads.mid_game("EUW1_5", "Ahri", "Zed", True, game_version="16.4.1.2")
        assert read_game_version(match) == "16.4.1.2"
        assert read_game_version({"info": {}}) == ""


class TestFindLanePairing:
    """Test cases for find_lane_pairing."""

    def test_opposing_laners(self, payloads):
        match, timeline = payloads.mid_game("EUW1_1", "Ahri", "Zed", True)
        left, right = find_lane_pairing(extract_match_telemetry(match, timeline), Lane.MID)
        assert (left.champion_name, right.champion_name) == ("Ahri", "Zed")

    def test_lane_without_two_laners(self, payloads):
        match, timeline = payloads.mid_game("EUW1_1", "Ahri", "Zed", True)
        assert find_lane_pairing(extract_match_telemetry(match, timeline), Lane.TOP) is None

    def test_same_team_is_rejected(self, payloads):
        match = payloads.match(
            "EUW1_6",
            [
                payloads.participant(1, 100, "MIDDLE", "Ahri", True),
                payloads.participant(2, 100, "MIDDLE", "Zed", True),
            ],
        )
        telemetry = extract_match_telemetry(match, payloads.timeline({}))
        assert find_lane_pairing(telemetry, Lane.MID) is None

    def test_mirror_matchup_is_rejected(self, payloads):
        match, timeline = payloads.mid_game("EUW1_7", "Ahri", "Ahri", True)
        assert find_lane_pairing(extract_match_telemetry(match, timeline), Lane.MID) is None

    def test_three_laners_is_rejected(self, payloads):
        match = payloads.match(
            "EUW1_8",
            [
                payloads.participant(1, 100, "MIDDLE", "Ahri", True),
                payloads.participant(6, 200, "MIDDLE", "Zed", False),
                payloads.participant(7, 200, "MIDDLE", "Lux", False),
            ],
        )
        telemetry = extract_match_telemetry(match, payloads.timeline({}))
        assert find_lane_pairing(telemetry, Lane.MID) is None


class TestAggregateMatch:
    """Test cases for aggregate_match."""

    def test_updates_both_directions(self, payloads):
        buckets = {}
        match, timeline = payloads.mid_game("EUW1_1", "Ahri", "Zed", True, 5300, 5000)

        assert aggregate(buckets, match, timeline) == 1

        ahri = buckets[MatchupKey(PATCH, Lane.MID, "Ahri", "Zed")]
        zed = buckets[MatchupKey(PATCH, Lane.MID, "Zed", "Ahri")]
        assert (ahri.games, ahri.wins, ahri.gold_diff_sum) == (1, 1, 300)
        assert (zed.games, zed.wins, zed.gold_diff_sum) == (1, 0, -300)
        assert ahri.keystones[8112] == 1
        assert zed.keystones[8010] == 1

    def test_three_game_scenario(self, payloads):
        """+300, -100, -200 with win, win, loss."""
        buckets = {}
        games = [
            payloads.mid_game("EUW1_1", "Ahri", "Zed", True, 5300, 5000),
            payloads.mid_game("EUW1_2", "Ahri", "Zed", True, 4900, 5000),
            payloads.mid_game("EUW1_3", "Ahri", "Zed", False, 4800, 5000),
        ]
        for match, timeline in games:
            aggregate(buckets, match, timeline)

        ahri = finalize_bucket(PATCH, buckets[MatchupKey(PATCH, Lane.MID, "Ahri", "Zed")], NOW)
        zed = finalize_bucket(PATCH, buckets[MatchupKey(PATCH, Lane.MID, "Zed", "Ahri")], NOW)

        assert ahri.games == 3
        assert ahri.win_rate == 0.667
        assert ahri.gold_diff_15 == 0
        assert zed.games == 3
        assert zed.win_rate == 0.333
        assert zed.gold_diff_15 == 0

    def test_gold_diff_skipped_when_sample_missing(self, payloads):
        buckets = {}
        match, _ = payloads.mid_game("EUW1_1", "Ahri", "Zed", True)
        aggregate(buckets, match, payloads.timeline({1: 6000}))

        bucket = buckets[MatchupKey(PATCH, Lane.MID, "Ahri", "Zed")]
        assert bucket.games == 1
        assert bucket.gold_diff_sum == 0

    def test_pair_filter(self, payloads):
        buckets = {}
        match, timeline = payloads.mid_game("EUW1_1", "KSante", "Zed", True)

        assert aggregate(buckets, match, timeline, pair_filter=("Ahri", "Zed")) == 0
        assert buckets == {}

        # Either direction and either spelling matches
        assert aggregate(buckets, match, timeline, pair_filter=("Zed", "K'Sante")) == 1
        assert MatchupKey(PATCH, Lane.MID, "K'Sante", "Zed") in buckets

    def test_only_requested_lanes(self, payloads):
        buckets = {}
        match, timeline = payloads.mid_game("EUW1_1", "Ahri", "Zed", True)
        assert aggregate(buckets, match, timeline, lanes=(Lane.TOP, Lane.ADC)) == 0
        assert buckets == {}


class TestFinalize:
    """Test cases for bucket finalization."""

    def test_rates_and_top_usage(self):
        bucket = AggregationBucket(games=4, wins=3, gold_diff_sum=-2, early_kills=5, early_deaths=1)
        bucket.keystones.update({8112: 2, 8128: 1, 8010: 1, 8021: 0})
        bucket.first_items.update({1056: 1, 1055: 1, 2003: 1, 1054: 1})

        stats = finalize_bucket(PATCH, bucket, NOW)

        assert stats.win_rate == 0.75
        assert stats.pre6_kill_rate == 1.25
        assert stats.early_death_rate == 0.25
        # -0.5 rounds half up to 0
        assert stats.gold_diff_15 == 0
        assert [(r.keystone_id, r.count, r.pct) for r in stats.rune_usage] == [
            (8112, 2, 0.5),
            (8010, 1, 0.25),
            (8128, 1, 0.25),
        ]
        assert [i.item_id for i in stats.first_item_usage] == [1054, 1055, 1056]

    def test_gold_rounding(self):
        assert finalize_bucket(PATCH, AggregationBucket(games=2, gold_diff_sum=3), NOW).gold_diff_15 == 2
        assert finalize_bucket(PATCH, AggregationBucket(games=2, gold_diff_sum=-3), NOW).gold_diff_15 == -1

    def test_empty_bucket_cannot_be_finalized(self):
        with pytest.raises(ValueError):
            finalize_bucket(PATCH, AggregationBucket(), NOW)

    def test_finalize_buckets_sets_expiry(self):
        buckets = {
            MatchupKey(PATCH, Lane.MID, "Ahri", "Zed"): AggregationBucket(games=1, wins=1),
            MatchupKey(PATCH, Lane.MID, "Zed", "Ahri"): AggregationBucket(games=0),
        }
        records = finalize_buckets(buckets, NOW, timedelta(minutes=60))

        assert len(records) == 1
        record = records[0]
        assert record.key == MatchupKey(PATCH, Lane.MID, "Ahri", "Zed")
        assert record.expires_at == NOW + timedelta(minutes=60)
        assert record.is_fresh(NOW)
        assert not record.is_fresh(NOW + timedelta(minutes=60))
