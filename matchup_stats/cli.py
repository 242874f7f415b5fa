"""
Command line entry point for one bulk collection run.

Usage:
    matchup-stats-collect --patch 26.4 --lanes mid,top --max-players 40

Options left out fall back to the environment / ``.env`` configuration.
Exit code is 0 on success, 1 on configuration errors and 2 when the Riot
API rejects the key.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

import structlog

from matchup_stats.core.config import Settings, get_global_settings, parse_lanes
from matchup_stats.core.logging import setup_logging
from matchup_stats.core.riot_api.client import RiotAPIClient
from matchup_stats.core.riot_api.errors import AuthenticationError, ForbiddenError
from matchup_stats.features.matchup_stats.repository import create_stats_store
from matchup_stats.jobs.collection import (
    CollectionOptions,
    CollectionSummary,
    MatchupCollectionJob,
)

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="matchup-stats-collect",
        description="Collect apex-tier ranked matches and cache lane matchup statistics.",
    )
    p.add_argument("--patch", help="Community patch, e.g. 26.4 (default: CURRENT_PATCH)")
    p.add_argument("--lanes", help="Comma separated lanes (default: PRECOMPUTE_LANES)")
    p.add_argument("--max-players", type=int)
    p.add_argument("--matches-per-player", type=int)
    p.add_argument("--max-unique-matches", type=int)
    p.add_argument("--checkpoint-path")
    p.add_argument("--checkpoint-every", type=int)
    p.add_argument("--concurrency", type=int)
    p.add_argument(
        "--no-resume",
        action="store_true",
        help="Ignore an existing checkpoint and start over",
    )
    return p


def options_from_args(args: argparse.Namespace, settings: Settings) -> CollectionOptions:
    """Merge command line flags over the configured defaults."""
    patch = args.patch
    if patch is not None:
        # Re-run the settings validator on the flag value
        patch = Settings(current_patch=patch).current_patch

    for name in ("max_players", "matches_per_player", "max_unique_matches", "checkpoint_every", "concurrency"):
        value = getattr(args, name)
        if value is not None and value < 1:
            raise ValueError(f"--{name.replace('_', '-')} must be at least 1")

    return CollectionOptions.from_settings(
        settings,
        patch=patch,
        lanes=parse_lanes(args.lanes) if args.lanes else None,
        max_players=args.max_players,
        matches_per_player=args.matches_per_player,
        max_unique_matches=args.max_unique_matches,
        checkpoint_path=args.checkpoint_path,
        checkpoint_every=args.checkpoint_every,
        concurrency=args.concurrency,
        resume=False if args.no_resume else None,
    )


async def run_collection(options: CollectionOptions, settings: Settings) -> CollectionSummary:
    """Run one collection job against the configured store."""
    store = create_stats_store(settings)
    await store.initialize()
    try:
        async with RiotAPIClient(settings=settings) as client:
            job = MatchupCollectionJob(client, store, options)
            return await job.run()
    finally:
        await store.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = get_global_settings()
        options = options_from_args(args, settings)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(settings.log_level, settings.log_format)

    if not settings.riot_api_key:
        print("Error: RIOT_API_KEY is not set", file=sys.stderr)
        return 1

    try:
        summary = asyncio.run(run_collection(options, settings))
    except (AuthenticationError, ForbiddenError) as e:
        logger.error("Riot API rejected the key", error=str(e), status_code=e.status_code)
        return 2
    except KeyboardInterrupt:
        logger.warning("Collection interrupted, checkpoint kept", checkpoint_path=options.checkpoint_path)
        return 130

    print(summary.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
