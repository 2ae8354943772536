"""Movie job handlers.

These are the only implementation of the write operations: the synchronous
API path calls them directly and the worker calls them for queued jobs.
Each handler takes the job payload and a context dict holding ``store``.
"""

from typing import Any, Dict

import structlog

from ..errors import NotFound, ValidationFailure
from .registry import JobRegistry
from .types import JobType

logger = structlog.get_logger(__name__)


def _require(payload: Dict[str, Any], key: str, kind):
    value = payload.get(key)
    if not isinstance(value, kind):
        raise ValidationFailure(f"Job payload field '{key}' is missing or malformed")
    return value


async def create_movie(payload: Dict[str, Any], ctx: Dict[str, Any]) -> Dict[str, Any]:
    movie = _require(payload, "movie", dict)
    record, inserted = await ctx["store"].create_once(movie, payload.get("idempotency_key"))
    if inserted:
        logger.info("movie_created", movie_id=record["id"], title=record["title"])
    else:
        logger.info("movie_create_replayed", movie_id=record["id"])
    return record


async def update_movie(payload: Dict[str, Any], ctx: Dict[str, Any]) -> Dict[str, Any]:
    movie_id = str(_require(payload, "movie_id", (str, int)))
    patch = _require(payload, "patch", dict)
    record = await ctx["store"].update_by_id(movie_id, patch)
    if record is None:
        raise NotFound(f"Movie not found with id of {movie_id}")
    logger.info("movie_updated", movie_id=movie_id, title=record["title"])
    return record


async def bulk_create_movies(payload: Dict[str, Any], ctx: Dict[str, Any]) -> Dict[str, Any]:
    movies = _require(payload, "movies", list)
    result = await ctx["store"].insert_many(movies)
    logger.info("movies_bulk_created", count=len(result.created), failed=len(result.errors))
    return {"count": len(result.created), "failed": len(result.errors)}


def build_registry() -> JobRegistry:
    registry = JobRegistry()
    registry.register(JobType.CREATE_MOVIE, create_movie)
    registry.register(JobType.UPDATE_MOVIE, update_movie)
    registry.register(JobType.BULK_CREATE_MOVIES, bulk_create_movies)
    return registry
