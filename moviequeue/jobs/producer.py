"""Convenience producers for movie jobs, one per job type."""

import uuid
from typing import Any, Dict, List, Optional

from .. import metrics
from .queue import JobQueue
from .types import JobType


async def enqueue_create_movie(
    queue: JobQueue, movie: Dict[str, Any], request_id: Optional[str] = None
) -> str:
    # Minted once per job so only redeliveries of this job are deduplicated
    key = request_id or f"job-{uuid.uuid4().hex}"
    metrics.jobs_submitted_total.inc()
    return await queue.enqueue(
        JobType.CREATE_MOVIE,
        {"movie": movie, "idempotency_key": key},
        idempotency_key=key,
    )


async def enqueue_update_movie(queue: JobQueue, movie_id: str, patch: Dict[str, Any]) -> str:
    metrics.jobs_submitted_total.inc()
    return await queue.enqueue(JobType.UPDATE_MOVIE, {"movie_id": movie_id, "patch": patch})


async def enqueue_bulk_create_movies(queue: JobQueue, movies: List[Dict[str, Any]]) -> str:
    metrics.jobs_submitted_total.inc()
    return await queue.enqueue(JobType.BULK_CREATE_MOVIES, {"movies": movies})
