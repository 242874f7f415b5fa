"""Service entry point: runs the nightly matchup collection until interrupted."""

import asyncio
import signal

import structlog

from matchup_stats.core.config import get_global_settings
from matchup_stats.core.logging import setup_logging
from matchup_stats.core.riot_api.client import RiotAPIClient
from matchup_stats.features.matchup_stats.repository import create_stats_store
from matchup_stats.jobs.collection import CollectionOptions, MatchupCollectionJob
from matchup_stats.jobs.scheduler import NightlyScheduler

logger = structlog.get_logger(__name__)


async def serve() -> None:
    settings = get_global_settings()
    store = create_stats_store(settings)
    await store.initialize()

    async with RiotAPIClient(settings=settings) as client:
        key_status = await client.get_api_key_status()
        logger.info("Riot API key status", **key_status.model_dump(mode="json"))

        async def run_bulk_job():
            pruned = await store.prune_expired()
            logger.info("Pruned expired matchup stats", rows=pruned)
            job = MatchupCollectionJob(client, store, CollectionOptions.from_settings(settings))
            return await job.run()

        scheduler = NightlyScheduler(run_bulk_job, settings.nightly_precompute_hour_utc)
        if settings.nightly_precompute_enabled:
            scheduler.start()
        else:
            logger.info("Nightly precompute disabled")

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        try:
            await stop.wait()
        finally:
            logger.info("Shutting down")
            await scheduler.stop()
            await store.close()


if __name__ == "__main__":
    settings = get_global_settings()
    setup_logging(settings.log_level, settings.log_format)
    asyncio.run(serve())
