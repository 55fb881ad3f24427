"""
Scan job API routes.

Creates backfill jobs, reports their progress, and exposes a manual
trigger for one scan step.
"""
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from clanwins.database import get_db
from clanwins.exceptions import InvalidScanRequest, ScanJobNotFound, StatsApiUnavailable
from clanwins.models.scan_job import ScanJob
from clanwins.models.status import ScanJobType
from clanwins.services.scan_job_service import ScanJobService, scan_range


router = APIRouter(prefix="/api", tags=["scan-jobs"])


class CreateScanJobRequest(BaseModel):
    """Request model for creating a scan job."""
    channel_id: str
    job_type: ScanJobType
    start_date: date
    end_date: date | None = None
    clan_tag: str | None = None


class ScanJobResponse(BaseModel):
    """Response model for a scan job."""
    id: int
    community_id: str
    channel_id: str
    clan_tag: str | None = None
    job_type: str
    status: str
    start_date: str
    end_date: str
    wins_recorded: int = 0
    error_message: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    created_at: str | None = None
    tasks: dict[str, dict[str, int]] | None = None


def job_to_response(job: ScanJob, tasks: dict | None = None) -> ScanJobResponse:
    """Convert ScanJob model to ScanJobResponse."""
    return ScanJobResponse(
        id=job.id,
        community_id=job.community_id,
        channel_id=job.channel_id,
        clan_tag=job.clan_tag,
        job_type=job.job_type.value,
        status=job.status.value,
        start_date=job.start_date.isoformat(),
        end_date=job.end_date.isoformat(),
        wins_recorded=job.wins_recorded or 0,
        error_message=job.error_message,
        started_at=job.started_at.isoformat() if job.started_at else None,
        completed_at=job.completed_at.isoformat() if job.completed_at else None,
        created_at=job.created_at.isoformat() if job.created_at else None,
        tasks=tasks,
    )


@router.post(
    "/communities/{community_id}/scan-jobs",
    response_model=ScanJobResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_scan_job(
    community_id: str,
    body: CreateScanJobRequest,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Create a backfill scan job.

    Returns immediately; the worker processes the job in batches.
    """
    try:
        start, end = scan_range(body.start_date, body.end_date)
        job = await ScanJobService(db).create_scan_job(
            community_id=community_id,
            channel_id=body.channel_id,
            job_type=body.job_type,
            start=start,
            end=end,
            clan_tag=body.clan_tag,
            stats_api=getattr(request.app.state, "stats_api", None),
        )
    except InvalidScanRequest as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StatsApiUnavailable as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return job_to_response(job)


@router.get("/communities/{community_id}/scan-jobs", response_model=list[ScanJobResponse])
async def list_scan_jobs(community_id: str, db: AsyncSession = Depends(get_db)):
    """List a community's scan jobs, newest first."""
    jobs = await ScanJobService(db).get_jobs_by_community(community_id)
    return [job_to_response(job) for job in jobs]


@router.get("/scan-jobs/{job_id}", response_model=ScanJobResponse)
async def get_scan_job(job_id: int, db: AsyncSession = Depends(get_db)):
    """Get a scan job with its sub-task counts."""
    service = ScanJobService(db)
    try:
        job = await service.get_job_or_raise(job_id)
    except ScanJobNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return job_to_response(job, tasks=await service.get_task_counts(job.id))


@router.post("/scan-jobs/step", response_model=dict)
async def run_scan_step(request: Request):
    """
    Run one scan step now.

    Same as one tick of the worker's cron job.
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scan scheduler is not configured"
        )

    result = await scheduler.run_once()
    if result is None:
        return {"status": "idle"}
    return {
        "status": result.status,
        "job_id": result.job_id,
        "job_type": result.job_type,
        "tasks_processed": result.batch.tasks_processed if result.batch else 0,
        "error": result.error,
    }
