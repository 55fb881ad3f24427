"""
ARQ Background Worker for ClanWins.

Runs one scan step per minute as an arq cron job.
"""
import httpx
from arq import cron
from arq.connections import RedisSettings

from clanwins.config import settings
from clanwins.logging_config import get_logger
from clanwins.services.batch_processor import BatchProcessor
from clanwins.services.notification_service import DiscordNotifier
from clanwins.services.scheduler import JobScheduler
from clanwins.services.stats_api import StatsApiClient


log = get_logger(component="worker")


def build_scheduler(http_client: httpx.AsyncClient) -> JobScheduler:
    """Wire the scheduler with production collaborators."""
    notifier = DiscordNotifier(client=http_client)
    processor = BatchProcessor(
        stats_api=StatsApiClient(client=http_client),
        notifier=notifier,
    )
    return JobScheduler(processor=processor, notifier=notifier)


async def startup(ctx: dict):
    ctx["http_client"] = httpx.AsyncClient(timeout=settings.STATS_API_TIMEOUT_SECONDS)
    ctx["scheduler"] = build_scheduler(ctx["http_client"])
    log.info("worker_started", redis=settings.REDIS_URL)


async def shutdown(ctx: dict):
    await ctx["http_client"].aclose()


async def process_scan_step(ctx: dict) -> dict:
    """Claim at most one scan job and advance it by one batch."""
    result = await ctx["scheduler"].run_once()
    if result is None:
        return {"status": "idle"}
    return {
        "status": result.status,
        "job_id": result.job_id,
        "tasks_processed": result.batch.tasks_processed if result.batch else 0,
    }


class WorkerSettings:
    """Settings for ARQ worker - use with 'arq clanwins.worker.WorkerSettings'"""
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    on_startup = startup
    on_shutdown = shutdown
    functions = []
    # One step per minute; a step killed by job_timeout is picked up again
    # once its claim goes stale.
    cron_jobs = [
        cron(process_scan_step, second=0, run_at_startup=False, timeout=240),
    ]
    job_timeout = 240
    max_tries = 1
