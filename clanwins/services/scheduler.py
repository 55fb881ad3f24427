"""
Job scheduler: one scan step per invocation.

A step claims at most one job, runs one batch of it, and either leaves
it completed or hands the claim back for the next tick. Mutual
exclusion between steps comes entirely from the store's conditional
updates; steps may run in different processes.
"""
from dataclasses import dataclass

import structlog

from clanwins.database import AsyncSessionLocal
from clanwins.logging_config import get_logger
from clanwins.models.base import utcnow
from clanwins.routes.metrics import track_job_failed
from clanwins.sentry_config import capture_exception
from clanwins.services.batch_processor import BatchProcessor, BatchResult
from clanwins.services.notification_service import render_failure_message
from clanwins.services.scan_job_service import ScanJobService


log = get_logger(component="scheduler")


@dataclass
class StepResult:
    """What a scan step did."""
    job_id: int
    job_type: str
    status: str
    batch: BatchResult | None = None
    error: str | None = None


class JobScheduler:
    """Claims and advances scan jobs, one bounded batch at a time."""

    def __init__(self, processor: BatchProcessor, notifier, session_factory=None, stale_seconds: int | None = None):
        self.processor = processor
        self.notifier = notifier
        self.session_factory = session_factory or AsyncSessionLocal
        self.stale_seconds = stale_seconds

    async def run_once(self) -> StepResult | None:
        """
        Process one scan step.

        Returns:
            None if no job was claimable, otherwise what happened to the job
        """
        claimed_at = utcnow()
        async with self.session_factory() as db:
            job = await ScanJobService(db, self.stale_seconds).claim_next_job(now=claimed_at)

        if job is None:
            return None

        with structlog.contextvars.bound_contextvars(job_id=job.id, community_id=job.community_id):
            try:
                batch = await self.processor.process(job)
            except Exception as e:
                return await self._fail(job, e)

            if batch.job_completed:
                return StepResult(job.id, job.job_type.value, "completed", batch=batch)

            async with self.session_factory() as db:
                released = await ScanJobService(db).release_job(job.id, claimed_at)
            if not released:
                log.warning("scan_job_claim_lost")
            return StepResult(job.id, job.job_type.value, "processing", batch=batch)

    async def _fail(self, job, error: Exception) -> StepResult:
        message = f"{type(error).__name__}: {error}"
        log.error("scan_job_failed", error=message, exc_info=True)

        async with self.session_factory() as db:
            failed = await ScanJobService(db).fail_job(job.id, message)

        try:
            capture_exception(error, job_id=job.id, community_id=job.community_id)
        except Exception as e:
            log.warning("sentry_capture_failed", error=str(e))

        if failed is not None:
            track_job_failed(failed.job_type.value)
            await self.notifier(
                failed.channel_id,
                render_failure_message(failed),
                community_id=failed.community_id,
                job_id=failed.id,
            )
        return StepResult(job.id, job.job_type.value, "failed", error=message)
