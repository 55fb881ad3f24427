"""
Scan sub-task service.

Claims batches of sub-tasks with one conditional UPDATE ... RETURNING,
completes them individually, and counts what is still open. Methods
that write do not commit unless noted; batch claims commit so that
other invocations see the claim immediately.
"""
from datetime import datetime, timedelta

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from clanwins.config import settings
from clanwins.database import dialect_insert
from clanwins.models.base import utcnow
from clanwins.models.scan_task import ClanSessionTask, FFAGameTask, PlayerTask
from clanwins.models.status import OPEN_TASK_STATUSES, TASK_TRANSITIONS, TaskStatus, sources_for


# Deterministic claim order per task table
CLAIM_ORDER = {
    ClanSessionTask: "game_id",
    PlayerTask: "player_id",
    FFAGameTask: "game_id",
}


class ScanTaskService:
    """Service for claiming and completing scan sub-tasks."""

    def __init__(self, db: AsyncSession, stale_seconds: int | None = None):
        self.db = db
        self.stale_seconds = stale_seconds if stale_seconds is not None else settings.SCAN_STALE_SECONDS

    def _claimable(self, entity, cutoff: datetime):
        """Pending tasks, plus processing tasks whose claim has gone stale."""
        conditions = []
        for status in sources_for(TASK_TRANSITIONS, TaskStatus.PROCESSING):
            if status == TaskStatus.PROCESSING:
                conditions.append((entity.status == status) & (entity.started_at < cutoff))
            else:
                conditions.append(entity.status == status)
        return or_(*conditions)

    async def claim_batch(self, model, job_id: int, limit: int, now: datetime | None = None) -> list:
        """
        Claim up to ``limit`` open tasks of one job for this invocation.

        Args:
            model: ClanSessionTask, PlayerTask or FFAGameTask
            job_id: Parent scan job
            limit: Batch size
            now: Claim time (defaults to the current time)

        Returns:
            Claimed tasks in claim order (commits)
        """
        now = now or utcnow()
        cutoff = now - timedelta(seconds=self.stale_seconds)
        order_key = CLAIM_ORDER[model]

        candidate = aliased(model)
        candidate_ids = (
            select(candidate.id)
            .where(candidate.job_id == job_id, self._claimable(candidate, cutoff))
            .order_by(getattr(candidate, order_key), candidate.id)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        stmt = (
            update(model)
            .where(
                model.id.in_(candidate_ids),
                model.job_id == job_id,
                self._claimable(model, cutoff),
            )
            .values(status=TaskStatus.PROCESSING, started_at=now)
            .returning(model)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        result = await self.db.execute(stmt)
        tasks = list(result.scalars().all())
        await self.db.commit()
        return sorted(tasks, key=lambda task: (getattr(task, order_key), task.id))

    async def complete_task(self, model, task_id: int, error_message: str | None = None) -> bool:
        """
        Mark a claimed task COMPLETED. Does not commit.

        Returns:
            False if the task was not PROCESSING (already completed elsewhere)
        """
        stmt = (
            update(model)
            .where(
                model.id == task_id,
                model.status.in_(sources_for(TASK_TRANSITIONS, TaskStatus.COMPLETED)),
            )
            .values(status=TaskStatus.COMPLETED, completed_at=utcnow(), error_message=error_message)
            .returning(model.id)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def count_open(self, model, job_id: int) -> int:
        """Number of tasks of one job still PENDING or PROCESSING."""
        stmt = select(func.count()).select_from(model).where(
            model.job_id == job_id,
            model.status.in_(OPEN_TASK_STATUSES),
        )
        return (await self.db.execute(stmt)).scalar_one()

    async def add_ffa_game(self, job_id: int, game_id: str) -> bool:
        """
        Schedule an FFA game for a job. Does not commit.

        Returns:
            False if the game was already scheduled for this job
        """
        stmt = (
            dialect_insert(self.db, FFAGameTask)
            .values(job_id=job_id, game_id=game_id, status=TaskStatus.PENDING)
            .on_conflict_do_nothing(index_elements=["job_id", "game_id"])
            .returning(FFAGameTask.id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None
