"""
Scan job service.

Creates scan jobs and moves them through their lifecycle. Every status
change is a single conditional UPDATE ... RETURNING: a caller either
gets the row back (and owns the change) or gets None.
"""
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from clanwins.config import settings
from clanwins.exceptions import InvalidScanRequest, ScanJobNotFound, StatsApiUnavailable
from clanwins.logging_config import get_logger
from clanwins.models.base import utcnow
from clanwins.models.scan_job import ScanJob
from clanwins.models.scan_task import ClanSessionTask, FFAGameTask, PlayerTask
from clanwins.models.status import (
    JOB_TRANSITIONS,
    ScanJobStatus,
    ScanJobType,
    sources_for,
)
from clanwins.routes.metrics import track_job_claimed, track_job_created
from clanwins.services.player_registration_service import PlayerRegistrationService
from clanwins.services.stats_api import StatsApiClient


log = get_logger(component="scan_jobs")


def scan_range(start_date: date, end_date: date | None = None, today: date | None = None) -> tuple[datetime, datetime]:
    """
    Turn inclusive calendar dates into a UTC datetime range.

    The end date defaults to today and covers the whole day.
    """
    end_date = end_date or today or datetime.now(timezone.utc).date()
    if start_date > end_date:
        raise InvalidScanRequest("Start date cannot be after end date.")
    start = datetime.combine(start_date, time.min, tzinfo=timezone.utc)
    end = datetime.combine(end_date, time(23, 59, 59, 999000), tzinfo=timezone.utc)
    return start, end


class ScanJobService:
    """Service for creating, claiming and finishing scan jobs."""

    def __init__(self, db: AsyncSession, stale_seconds: int | None = None):
        self.db = db
        self.stale_seconds = stale_seconds if stale_seconds is not None else settings.SCAN_STALE_SECONDS

    async def create_scan_job(
        self,
        community_id: str,
        channel_id: str,
        job_type: ScanJobType,
        start: datetime,
        end: datetime,
        clan_tag: str | None = None,
        stats_api: StatsApiClient | None = None,
    ) -> ScanJob:
        """
        Create a PENDING scan job with its sub-tasks.

        Args:
            community_id: Community (guild) the wins are recorded for
            channel_id: Channel that receives the completion message
            job_type: CLAN (clan sessions) or PLAYERS (registered players' FFA wins)
            start: Range start (inclusive)
            end: Range end (inclusive)
            clan_tag: Tracked clan; required for CLAN jobs
            stats_api: Client used to list a clan's winning sessions

        Returns:
            Newly created ScanJob

        Raises:
            InvalidScanRequest: bad range or CLAN job without a clan tag
            StatsApiUnavailable: clan sessions could not be fetched
        """
        if start > end:
            raise InvalidScanRequest("Start date cannot be after end date.")

        clan_sessions = []
        player_ids = []
        if job_type == ScanJobType.CLAN:
            if not clan_tag:
                raise InvalidScanRequest("A clan tag is required for a clan scan.")
            api = stats_api or StatsApiClient()
            sessions = await api.get_clan_sessions(clan_tag, start, end)
            if sessions is None:
                raise StatsApiUnavailable(f"Could not fetch sessions for clan {clan_tag}")
            seen = set()
            for session in sessions:
                if session.has_won and session.game_id not in seen:
                    seen.add(session.game_id)
                    clan_sessions.append(session)
        else:
            registrations = await PlayerRegistrationService(self.db).list_by_community(community_id)
            player_ids = sorted({r.player_id for r in registrations})

        job = ScanJob(
            community_id=community_id,
            channel_id=channel_id,
            clan_tag=clan_tag,
            job_type=job_type,
            status=ScanJobStatus.PENDING,
            start_date=start,
            end_date=end,
        )
        self.db.add(job)
        await self.db.flush()

        self.db.add_all(
            ClanSessionTask(job_id=job.id, game_id=s.game_id, score=s.score) for s in clan_sessions
        )
        self.db.add_all(PlayerTask(job_id=job.id, player_id=p) for p in player_ids)

        await self.db.commit()
        await self.db.refresh(job)

        track_job_created(job_type.value)
        log.info(
            "scan_job_created",
            job_id=job.id,
            community_id=community_id,
            job_type=job_type.value,
            clan_sessions=len(clan_sessions),
            players=len(player_ids),
        )
        return job

    async def claim_next_job(self, now: datetime | None = None) -> ScanJob | None:
        """
        Claim one job for this invocation.

        1. The oldest PENDING job becomes PROCESSING.
        2. Otherwise the oldest PROCESSING job whose claim was released or
           is older than the staleness threshold is reclaimed.
        3. Otherwise nothing is claimed.

        Returns:
            The claimed job, or None
        """
        now = now or utcnow()

        job = await self._claim_pending(now)
        if job is not None:
            track_job_claimed(job.job_type.value, reclaimed=False)
            log.info("scan_job_claimed", job_id=job.id, job_type=job.job_type.value)
            return job

        job = await self._reclaim_processing(now)
        if job is not None:
            track_job_claimed(job.job_type.value, reclaimed=True)
            log.info("scan_job_reclaimed", job_id=job.id, job_type=job.job_type.value)
        return job

    def _oldest(self, condition):
        """Id of the oldest job matching condition(entity), skipping locked rows."""
        candidate = aliased(ScanJob)
        return (
            select(candidate.id)
            .where(condition(candidate))
            .order_by(candidate.created_at, candidate.id)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )

    async def _claim_pending(self, now: datetime) -> ScanJob | None:
        def is_pending(entity):
            return entity.status == ScanJobStatus.PENDING

        stmt = (
            update(ScanJob)
            .where(ScanJob.id == self._oldest(is_pending), is_pending(ScanJob))
            .values(status=ScanJobStatus.PROCESSING, started_at=now, claimed_at=now)
            .returning(ScanJob)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        return await self._returning_one(stmt)

    async def _reclaim_processing(self, now: datetime) -> ScanJob | None:
        cutoff = now - timedelta(seconds=self.stale_seconds)

        def is_claimable(entity):
            return (entity.status == ScanJobStatus.PROCESSING) & (
                entity.claimed_at.is_(None) | (entity.claimed_at < cutoff)
            )

        stmt = (
            update(ScanJob)
            .where(ScanJob.id == self._oldest(is_claimable), is_claimable(ScanJob))
            .values(claimed_at=now)
            .returning(ScanJob)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        return await self._returning_one(stmt)

    async def _returning_one(self, stmt) -> ScanJob | None:
        result = await self.db.execute(stmt)
        job = result.scalar_one_or_none()
        await self.db.commit()
        return job

    async def release_job(self, job_id: int, claimed_at: datetime) -> bool:
        """
        Hand a job back after a non-final batch so the next tick continues it.

        Only the claim identified by claimed_at is released; a claim taken
        over by another invocation is left alone.
        """
        stmt = (
            update(ScanJob)
            .where(
                ScanJob.id == job_id,
                ScanJob.status == ScanJobStatus.PROCESSING,
                ScanJob.claimed_at == claimed_at,
            )
            .values(claimed_at=None)
            .returning(ScanJob.id)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        released = result.scalar_one_or_none() is not None
        await self.db.commit()
        return released

    async def _transition(self, job_id: int, target: ScanJobStatus, **values) -> ScanJob | None:
        stmt = (
            update(ScanJob)
            .where(
                ScanJob.id == job_id,
                ScanJob.status.in_(sources_for(JOB_TRANSITIONS, target)),
            )
            .values(status=target, **values)
            .returning(ScanJob)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        return await self._returning_one(stmt)

    async def complete_job(self, job_id: int) -> ScanJob | None:
        """
        Mark a PROCESSING job COMPLETED.

        Returns:
            The job if this call completed it, None if it was not PROCESSING
        """
        return await self._transition(
            job_id,
            ScanJobStatus.COMPLETED,
            completed_at=utcnow(),
            claimed_at=None,
        )

    async def fail_job(self, job_id: int, error_message: str) -> ScanJob | None:
        """
        Mark a job FAILED with error.

        Returns:
            The job if this call failed it, None if it was already terminal
        """
        return await self._transition(
            job_id,
            ScanJobStatus.FAILED,
            completed_at=utcnow(),
            claimed_at=None,
            error_message=error_message[:2000],
        )

    async def add_wins_recorded(self, job_id: int, count: int) -> None:
        """Increment the job's inserted-win counter. Does not commit."""
        if count:
            await self.db.execute(
                update(ScanJob)
                .where(ScanJob.id == job_id)
                .values(wins_recorded=ScanJob.wins_recorded + count)
                .execution_options(synchronize_session=False)
            )

    async def get_job_by_id(self, job_id: int) -> ScanJob | None:
        """Get job by ID."""
        stmt = select(ScanJob).where(ScanJob.id == job_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_job_or_raise(self, job_id: int) -> ScanJob:
        job = await self.get_job_by_id(job_id)
        if job is None:
            raise ScanJobNotFound(f"Scan job not found: {job_id}")
        return job

    async def get_jobs_by_community(self, community_id: str) -> list[ScanJob]:
        """Get all jobs for a community, newest first."""
        stmt = (
            select(ScanJob)
            .where(ScanJob.community_id == community_id)
            .order_by(ScanJob.created_at.desc(), ScanJob.id.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_task_counts(self, job_id: int) -> dict[str, dict[str, int]]:
        """Sub-task counts per task table and status."""
        counts = {}
        for name, model in (
            ("clan_sessions", ClanSessionTask),
            ("players", PlayerTask),
            ("ffa_games", FFAGameTask),
        ):
            stmt = (
                select(model.status, func.count())
                .where(model.job_id == job_id)
                .group_by(model.status)
            )
            rows = (await self.db.execute(stmt)).all()
            counts[name] = {status.value: count for status, count in rows}
        return counts
