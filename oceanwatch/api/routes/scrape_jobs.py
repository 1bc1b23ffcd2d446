"""Scrape job API routes.

Provides endpoints for:
- Manually triggering a scrape job for one ocean
- Listing recent jobs
- Checking whether a scrape is running and when one last completed
- Inspecting a single job's counters
"""
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from oceanwatch.core.database import get_db
from oceanwatch.models import Ocean, ScrapeJob, ScrapeJobType
from oceanwatch.repositories import ScrapeJobRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scrape-jobs", tags=["scrape-jobs"])


class ScrapeJobRequest(BaseModel):
    """Body of a manual trigger."""
    ocean: Ocean
    job_type: ScrapeJobType


def _serialize_job(job: Optional[ScrapeJob]) -> Optional[Dict]:
    if job is None:
        return None
    return {
        'id': job.id,
        'ocean': job.ocean,
        'job_type': job.job_type,
        'status': job.status,
        'started_at': job.started_at.isoformat() if job.started_at else None,
        'ended_at': job.ended_at.isoformat() if job.ended_at else None,
        'items_processed': job.items_processed,
        'items_failed': job.items_failed,
        'error_message': job.error_message,
        'duration_seconds': round(job.duration.total_seconds(), 3),
        'success_rate': round(job.success_rate, 1),
    }


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def trigger_scrape_job(body: ScrapeJobRequest, request: Request) -> Dict:
    """
    Start a scrape job in the background.

    Returns:
        The id of the created job, which starts in "running" state
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler is not available")

    job_id = scheduler.trigger_job(body.ocean, body.job_type)
    return {'job_id': job_id}


@router.get("")
async def list_scrape_jobs(
    ocean: Optional[Ocean] = Query(None, description="Limit to one ocean"),
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db)
) -> Dict:
    """Recent scrape jobs, newest first."""
    jobs = ScrapeJobRepository(db).find_recent(ocean.value if ocean else None, limit=limit)
    return {
        'count': len(jobs),
        'jobs': [_serialize_job(job) for job in jobs]
    }


@router.get("/status")
async def get_scrape_status(
    ocean: Optional[Ocean] = Query(None, description="Limit to one ocean"),
    db: Session = Depends(get_db)
) -> Dict:
    """
    Get scrape status.

    Returns:
        Whether a job is running, the running job and the last completed job
    """
    repo = ScrapeJobRepository(db)
    ocean_name = ocean.value if ocean else None
    current = repo.get_current(ocean_name)

    return {
        'is_running': current is not None,
        'current_job': _serialize_job(current),
        'last_completed': _serialize_job(repo.get_last_completed(ocean_name)),
    }


@router.get("/{job_id}")
async def get_scrape_job(job_id: str, db: Session = Depends(get_db)) -> Dict:
    """Get a single scrape job by id."""
    job = ScrapeJobRepository(db).find_by_id(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Scrape job {job_id} not found")
    return _serialize_job(job)
