"""
Tests for the resumable matchup collection job.
"""

from datetime import timedelta

import pytest

from matchup_stats.core.enums import ItemFailurePolicy, JobPhase, Lane
from matchup_stats.core.riot_api.errors import (
    AuthenticationError,
    CooldownActiveError,
    NotFoundError,
    ServiceUnavailableError,
)
from matchup_stats.features.matchup_stats.schemas import MatchupKey
from matchup_stats.jobs.checkpoint import load_checkpoint
from matchup_stats.jobs.collection import CollectionOptions, MatchupCollectionJob

PATCH = "26.4"
AHRI_ZED = MatchupKey(PATCH, Lane.MID, "Ahri", "Zed")


class SimulatedCrash(BaseException):
    """Stands in for the process dying mid-batch."""


def make_options(tmp_path=None, **overrides):
    values = dict(
        patch=PATCH,
        lanes=[Lane.MID],
        max_players=10,
        matches_per_player=10,
        max_unique_matches=100,
        concurrency=2,
        checkpoint_path=str(tmp_path / "checkpoint.json") if tmp_path else None,
        checkpoint_every=2,
        ttl=timedelta(minutes=60),
    )
    values.update(overrides)
    return CollectionOptions(**values)


def stats_by_key(store):
    return {key: record.stats.model_dump(exclude={"computed_at"}) for key, record in store.rows.items()}


class TestCollectionRun:
    """Test cases for a full collection run."""

    async def test_collects_and_writes_pairs(self, riot_world, memory_store, tmp_path):
        client = riot_world()
        job = MatchupCollectionJob(client, memory_store, make_options(tmp_path))

        summary = await job.run()

        assert summary.players_tracked == 3
        assert summary.unique_match_ids == 6
        assert summary.matches_processed == 5
        assert summary.matches_skipped_version == 1
        assert summary.failed_items == 0
        assert summary.resumed is False
        # Ahri/Zed, Lux/Syndra, Zed/Lux in both directions
        assert summary.pairs_with_games == 6
        assert summary.pairs_written == 6

        ahri = memory_store.rows[AHRI_ZED].stats
        assert (ahri.games, ahri.win_rate, ahri.gold_diff_15) == (3, 0.667, 0)
        assert memory_store.rows[AHRI_ZED].expires_at - memory_store.rows[AHRI_ZED].computed_at == timedelta(minutes=60)

        # Duplicated match ids are fetched once, off-patch games skip the timeline
        assert sorted(client.calls["get_match"]) == ["m1", "m2", "m3", "m4", "m5", "m6"]
        assert "m6" not in client.calls["get_match_timeline"]
        assert client.calls["get_puuid_by_summoner_id"] == ["s3"]
        # Completed runs leave no checkpoint behind
        assert not (tmp_path / "checkpoint.json").exists()

    async def test_respects_caps(self, riot_world, memory_store):
        client = riot_world()
        options = make_options(max_players=1, matches_per_player=2, max_unique_matches=1)

        summary = await MatchupCollectionJob(client, memory_store, options).run()

        assert summary.players_tracked == 1
        assert summary.unique_match_ids == 1
        assert client.calls["get_match_ids_by_puuid"] == ["p1"]
        assert client.calls["get_match"] == ["m1"]
        assert client.calls["get_puuid_by_summoner_id"] == []

    async def test_only_requested_lanes_are_written(self, riot_world, memory_store):
        summary = await MatchupCollectionJob(
            riot_world(), memory_store, make_options(lanes=[Lane.TOP])
        ).run()
        assert summary.matches_processed == 5
        assert summary.pairs_written == 0
        assert memory_store.rows == {}

    async def test_pair_filter(self, riot_world, memory_store):
        options = make_options(pair_filter=("Zed", "Ahri"))
        await MatchupCollectionJob(riot_world(), memory_store, options).run()
        assert set(memory_store.rows) == {AHRI_ZED, MatchupKey(PATCH, Lane.MID, "Zed", "Ahri")}


class TestResume:
    """Test cases for checkpointed resumption."""

    async def test_resume_after_crash_matches_uninterrupted_run(self, riot_world, memory_store, tmp_path):
        reference_store = type(memory_store)()
        await MatchupCollectionJob(riot_world(), reference_store, make_options()).run()

        client = riot_world()
        crashed = {"done": False}

        def crash_once(match_id):
            if match_id == "m4" and not crashed["done"]:
                crashed["done"] = True
                raise SimulatedCrash()

        client.on_get_match = crash_once
        options = make_options(tmp_path, concurrency=1)

        with pytest.raises(SimulatedCrash):
            await MatchupCollectionJob(client, memory_store, options).run()

        checkpoint = load_checkpoint(options.checkpoint_path)
        assert checkpoint.phase == JobPhase.MATCHES
        assert checkpoint.next_match_index == 2
        assert checkpoint.matches_processed == 2
        assert memory_store.upsert_calls == 0

        resumed_job = MatchupCollectionJob(client, memory_store, options)
        summary = await resumed_job.run()

        assert summary.resumed is True
        assert summary.matches_processed == 5
        assert stats_by_key(memory_store) == stats_by_key(reference_store)
        # Discovery ran once; only the unfinished batch was fetched again
        assert len(client.calls["get_apex_league_entries"]) == 1
        assert client.calls["get_match"].count("m1") == 1
        assert client.calls["get_match"].count("m3") == 2
        assert not (tmp_path / "checkpoint.json").exists()

    async def test_resume_during_match_id_discovery(self, riot_world, memory_store, tmp_path):
        client = riot_world()
        client.fail("get_match_ids_by_puuid", "p3", SimulatedCrash())
        options = make_options(tmp_path, concurrency=1)

        with pytest.raises(SimulatedCrash):
            await MatchupCollectionJob(client, memory_store, options).run()

        checkpoint = load_checkpoint(options.checkpoint_path)
        assert checkpoint.phase == JobPhase.MATCH_IDS
        assert checkpoint.next_player_index == 2

        summary = await MatchupCollectionJob(client, memory_store, options).run()
        assert summary.resumed is True
        assert summary.unique_match_ids == 6
        assert client.calls["get_match_ids_by_puuid"].count("p1") == 1

    async def test_mismatched_checkpoint_starts_fresh(self, riot_world, memory_store, tmp_path):
        client = riot_world()
        client.fail("get_match", "m4", SimulatedCrash())
        with pytest.raises(SimulatedCrash):
            await MatchupCollectionJob(client, memory_store, make_options(tmp_path, concurrency=1)).run()

        other = make_options(tmp_path, concurrency=1, max_players=2)
        summary = await MatchupCollectionJob(client, memory_store, other).run()

        assert summary.resumed is False
        assert summary.players_tracked == 2

    async def test_no_resume_flag(self, riot_world, memory_store, tmp_path):
        client = riot_world()
        client.fail("get_match", "m4", SimulatedCrash())
        with pytest.raises(SimulatedCrash):
            await MatchupCollectionJob(client, memory_store, make_options(tmp_path, concurrency=1)).run()

        summary = await MatchupCollectionJob(
            client, memory_store, make_options(tmp_path, concurrency=1, resume=False)
        ).run()
        assert summary.resumed is False
        assert len(client.calls["get_apex_league_entries"]) == 2


class TestItemFailures:
    """Test cases for per-item failure isolation."""

    async def test_skip_policy_records_failure(self, riot_world, memory_store):
        client = riot_world()
        client.fail("get_match", "m4", NotFoundError("gone", status_code=404))

        summary = await MatchupCollectionJob(client, memory_store, make_options()).run()

        assert summary.failed_items == 1
        assert summary.failed_item_ids == ["m4"]
        assert summary.matches_processed == 4
        assert client.calls["get_match"].count("m4") == 1

    async def test_retry_once_policy(self, riot_world, memory_store):
        client = riot_world()
        client.fail("get_match", "m4", ServiceUnavailableError("down", status_code=503))
        options = make_options(failure_policy=ItemFailurePolicy.RETRY_ONCE)

        summary = await MatchupCollectionJob(client, memory_store, options).run()

        assert summary.failed_items == 0
        assert summary.matches_processed == 5
        assert client.calls["get_match"].count("m4") == 2

    async def test_retry_once_gives_up_after_second_failure(self, riot_world, memory_store):
        client = riot_world()
        client.fail(
            "get_match",
            "m4",
            ServiceUnavailableError("down", status_code=503),
            ServiceUnavailableError("still down", status_code=503),
        )
        options = make_options(failure_policy=ItemFailurePolicy.RETRY_ONCE)

        summary = await MatchupCollectionJob(client, memory_store, options).run()

        assert summary.failed_item_ids == ["m4"]
        assert client.calls["get_match"].count("m4") == 2

    async def test_malformed_timeline_is_not_retried(self, riot_world, memory_store):
        client = riot_world()
        client.games["m4"] = (client.games["m4"][0], {"info": {"frames": "broken"}})
        options = make_options(failure_policy=ItemFailurePolicy.RETRY_ONCE)

        summary = await MatchupCollectionJob(client, memory_store, options).run()

        assert summary.failed_item_ids == ["m4"]
        assert client.calls["get_match_timeline"].count("m4") == 1

    async def test_cooldown_waits_instead_of_failing(self, riot_world, memory_store):
        client = riot_world()
        client.fail("get_match", "m2", CooldownActiveError(0.01))

        summary = await MatchupCollectionJob(client, memory_store, make_options()).run()

        assert summary.failed_items == 0
        assert summary.matches_processed == 5
        assert client.calls["get_match"].count("m2") == 2

    async def test_cooldown_during_discovery(self, riot_world, memory_store):
        client = riot_world()
        client.fail("get_apex_league_entries", "", CooldownActiveError(0.01))

        summary = await MatchupCollectionJob(client, memory_store, make_options()).run()

        assert summary.players_tracked == 3
        assert len(client.calls["get_apex_league_entries"]) == 2

    async def test_failed_player_is_skipped(self, riot_world, memory_store):
        client = riot_world()
        client.fail("get_match_ids_by_puuid", "p2", NotFoundError("gone", status_code=404))

        summary = await MatchupCollectionJob(client, memory_store, make_options()).run()

        assert summary.failed_item_ids == ["p2"]
        assert summary.unique_match_ids == 5

    async def test_authentication_error_aborts(self, riot_world, memory_store):
        client = riot_world()
        client.fail("get_match", "m1", AuthenticationError("bad key", status_code=401))

        with pytest.raises(AuthenticationError):
            await MatchupCollectionJob(client, memory_store, make_options()).run()
        assert memory_store.upsert_calls == 0


class TestCollectionOptions:
    """Test cases for CollectionOptions.from_settings."""

    def test_overrides_ignore_none(self):
        from matchup_stats.core.config import Settings

        settings = Settings(_env_file=None, current_patch="26.4", precompute_lanes="mid,top")
        options = CollectionOptions.from_settings(settings, max_players=7, patch=None)

        assert options.patch == "26.4"
        assert options.lanes == [Lane.MID, Lane.TOP]
        assert options.max_players == 7
        assert options.matches_per_player == settings.precompute_matches_per_player
        assert options.ttl == timedelta(minutes=settings.stats_cache_ttl_minutes)
