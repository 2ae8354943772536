from fastapi import APIRouter, Depends, Query

from ..auth import require_api_key
from ..jobs.models import JobEnvelope
from ..jobs.queue import JobQueue
from ..schemas import FailedJobListResponse, FailedJobResponse
from .deps import get_queue

router = APIRouter(prefix="/jobs", tags=["jobs"])


def _failed(job: JobEnvelope) -> FailedJobResponse:
    return FailedJobResponse(
        job_id=job.id,
        type=job.type_name,
        priority=job.priority,
        attempts=job.attempts,
        max_attempts=job.max_attempts,
        last_error=job.last_error,
        finished_at=job.finished_at,
        payload=job.payload,
    )


@router.get("/failed", response_model=FailedJobListResponse)
async def list_failed_jobs(
    limit: int = Query(100, ge=1, le=1000),
    authorized: bool = Depends(require_api_key),
    queue: JobQueue = Depends(get_queue),
):
    jobs = await queue.failed_jobs(limit)
    return FailedJobListResponse(jobs=[_failed(j) for j in jobs])


@router.post("/failed/{job_id}/retry")
async def retry_failed_job(
    job_id: str,
    authorized: bool = Depends(require_api_key),
    queue: JobQueue = Depends(get_queue),
):
    await queue.retry_failed(job_id)
    return {"ok": True, "jobId": job_id}


@router.get("/counts")
async def queue_counts(queue: JobQueue = Depends(get_queue)):
    return await queue.counts()
