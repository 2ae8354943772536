"""Write-path decision layer.

Every mutation either runs its job handler inline (the response reflects the
write) or enqueues the same job and only confirms acceptance. Queued writes
have no completion callback and no status lookup.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import structlog

from ..errors import Conflict, NotFound, ValidationFailure
from ..jobs import producer
from ..jobs.handlers import build_registry
from ..jobs.queue import JobQueue
from ..jobs.registry import JobRegistry
from ..jobs.types import JobType
from .store import MovieStore

logger = structlog.get_logger(__name__)


@dataclass
class Accepted:
    job_id: str
    message: str
    status_code: int = 202


@dataclass
class Applied:
    record: Dict[str, Any]
    status_code: int = 200


WriteResult = Union[Accepted, Applied]


class MovieService:
    def __init__(self, store: MovieStore, queue: JobQueue, registry: Optional[JobRegistry] = None):
        self.store = store
        self.queue = queue
        self.registry = registry or build_registry()
        self.context = {"store": store}

    async def _run_inline(self, job_type: JobType, payload: Dict[str, Any]) -> Any:
        handler = self.registry.get_handler(job_type)
        return await handler(payload, self.context)

    async def create(
        self, body: Dict[str, Any], use_queue: bool, request_id: Optional[str] = None
    ) -> WriteResult:
        if use_queue:
            job_id = await producer.enqueue_create_movie(self.queue, body, request_id=request_id)
            return Accepted(job_id=job_id, message="Movie added to queue for processing")

        payload = {"movie": body}
        if request_id:
            payload["idempotency_key"] = request_id
        record = await self._run_inline(JobType.CREATE_MOVIE, payload)
        return Applied(record=record, status_code=201)

    async def update(self, movie_id: str, patch: Dict[str, Any], use_queue: bool) -> WriteResult:
        if await self.store.find_by_id(movie_id) is None:
            raise NotFound(f"Movie not found with id of {movie_id}")

        if use_queue:
            job_id = await producer.enqueue_update_movie(self.queue, movie_id, patch)
            return Accepted(job_id=job_id, message="Movie update added to queue")

        record = await self._run_inline(JobType.UPDATE_MOVIE, {"movie_id": movie_id, "patch": patch})
        return Applied(record=record)

    async def bulk_create(self, bodies: List[Dict[str, Any]]) -> Accepted:
        if not bodies:
            raise ValidationFailure("Please provide at least one movie")
        job_id = await producer.enqueue_bulk_create_movies(self.queue, bodies)
        return Accepted(job_id=job_id, message=f"{len(bodies)} movies added to queue for processing")

    async def import_movie(self, imdb_id: str, omdb_client) -> Applied:
        """Create a movie from OMDb metadata, refusing ids already in the catalog."""
        if not imdb_id:
            raise ValidationFailure("Please provide an IMDb ID")
        if await self.store.find_by_imdb_id(imdb_id) is not None:
            raise Conflict("Movie with this IMDb ID already exists")

        movie = await omdb_client.fetch_movie_by_imdb_id(imdb_id)
        record = await self._run_inline(JobType.CREATE_MOVIE, {"movie": movie})
        logger.info("movie_imported", movie_id=record["id"], imdb_id=imdb_id)
        return Applied(record=record, status_code=201)
