"""Movie record store on Redis.

Records live as JSON in the ``movies`` hash. Secondary hashes enforce unique
IMDb ids and map idempotency keys to the record they created. Filtering,
sorting and aggregation run over the hash contents.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from ..errors import Conflict, MovieQueueError, TransientStoreFailure, ValidationFailure
from ..redis_helper import dumps, loads, store_errors
from .schemas import validate_create, validate_patch

logger = structlog.get_logger(__name__)

SORT_FIELDS = ("title", "rating", "release_date", "duration", "created_at")
SEARCH_FIELDS = ("title", "description", "director")


@dataclass
class MovieFilter:
    active_only: bool = True
    genres: Optional[List[str]] = None
    min_rating: Optional[float] = None
    year: Optional[int] = None
    text: Optional[str] = None

    def matches(self, record: Dict[str, Any]) -> bool:
        if self.active_only and not record.get("is_active", True):
            return False
        if self.genres and not set(self.genres) & set(record.get("genre") or []):
            return False
        if self.min_rating is not None and record.get("rating", 0) < self.min_rating:
            return False
        if self.year is not None and not str(record.get("release_date", "")).startswith(
            f"{self.year:04d}-"
        ):
            return False
        if self.text:
            needle = self.text.lower()
            haystack = [str(record.get(f) or "") for f in SEARCH_FIELDS]
            haystack.extend(record.get("cast") or [])
            if not any(needle in h.lower() for h in haystack):
                return False
        return True


@dataclass
class BulkResult:
    created: List[Dict[str, Any]]
    errors: List[Tuple[int, str]]


class MovieStore:
    def __init__(self, redis_client, prefix: str = "movies", clock: Callable[[], float] = time.time):
        self._redis = redis_client
        self._clock = clock
        self._records_key = prefix
        self._id_key = f"{prefix}:id"
        self._imdb_key = f"{prefix}:imdb"
        self._idempotency_key = f"{prefix}:idempotency"

    async def create(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Validate and insert a movie."""
        record, _ = await self.create_once(body, None)
        return record

    async def create_once(
        self, body: Dict[str, Any], idempotency_key: Optional[str]
    ) -> Tuple[Dict[str, Any], bool]:
        """Insert a movie unless ``idempotency_key`` already produced a live record.

        Returns the record and whether it was inserted by this call. A key whose
        record was deleted (or never written) is reused for a fresh insert.
        """
        data = validate_create(body)
        async with store_errors("create movie"):
            movie_id = str(await self._redis.incr(self._id_key))
            if idempotency_key and not await self._redis.hsetnx(
                self._idempotency_key, idempotency_key, movie_id
            ):
                previous_id = await self._redis.hget(self._idempotency_key, idempotency_key)
                existing = await self.find_by_id(previous_id)
                if existing is not None:
                    return existing, False
                logger.info("movie_idempotency_key_reused", previous_id=previous_id, movie_id=movie_id)
                await self._redis.hset(self._idempotency_key, idempotency_key, movie_id)

            imdb_id = data.get("imdb_id")
            if imdb_id and not await self._redis.hsetnx(self._imdb_key, imdb_id, movie_id):
                raise Conflict(f"Movie with IMDb id {imdb_id} already exists")

            now = self._clock()
            record = {**data, "id": movie_id, "is_active": True, "created_at": now, "updated_at": now}
            await self._redis.hset(self._records_key, movie_id, dumps(record))
        return record, True

    async def insert_many(self, bodies: List[Dict[str, Any]]) -> BulkResult:
        """Unordered insert that keeps going past invalid or duplicate items.

        Store connectivity errors abort the batch.
        """
        created, errors = [], []
        for index, body in enumerate(bodies):
            try:
                created.append(await self.create(body))
            except TransientStoreFailure:
                raise
            except MovieQueueError as exc:
                errors.append((index, exc.message))
        return BulkResult(created=created, errors=errors)

    async def update_by_id(self, movie_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply a validated partial update. Returns None when the movie is missing."""
        changes = validate_patch(patch)
        async with store_errors("update movie"):
            existing = await self.find_by_id(movie_id)
            if existing is None:
                return None
            merged = {**existing, **changes}
            # Revalidate the whole record so a patch cannot null out required fields
            validated = validate_create(merged)

            new_imdb = validated.get("imdb_id")
            if new_imdb and new_imdb != existing.get("imdb_id"):
                if not await self._redis.hsetnx(self._imdb_key, new_imdb, movie_id):
                    raise Conflict(f"Movie with IMDb id {new_imdb} already exists")
                if existing.get("imdb_id"):
                    await self._redis.hdel(self._imdb_key, existing["imdb_id"])

            record = {
                **validated,
                "id": movie_id,
                "is_active": existing.get("is_active", True),
                "created_at": existing["created_at"],
                "updated_at": self._clock(),
            }
            await self._redis.hset(self._records_key, movie_id, dumps(record))
        return record

    async def find_by_id(self, movie_id: str, include_inactive: bool = False) -> Optional[Dict[str, Any]]:
        async with store_errors("find movie"):
            record = loads(await self._redis.hget(self._records_key, str(movie_id)))
        if record is None or (not include_inactive and not record.get("is_active", True)):
            return None
        return record

    async def find_by_imdb_id(self, imdb_id: str) -> Optional[Dict[str, Any]]:
        async with store_errors("find movie"):
            movie_id = await self._redis.hget(self._imdb_key, imdb_id)
        if movie_id is None:
            return None
        return await self.find_by_id(movie_id, include_inactive=True)

    async def find_many(
        self,
        movie_filter: Optional[MovieFilter] = None,
        sort_by: str = "created_at",
        descending: bool = True,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Dict[str, Any]]:
        if sort_by not in SORT_FIELDS:
            raise ValidationFailure(f"Cannot sort by {sort_by}")
        records = await self._matching(movie_filter or MovieFilter())

        def sort_key(record):
            value = record.get(sort_by)
            if isinstance(value, str):
                value = value.lower()
            # Missing values sort last in ascending order
            return (value is None, value if value is not None else 0)

        records.sort(key=sort_key, reverse=descending)
        return records[skip:skip + limit]

    async def count(self, movie_filter: Optional[MovieFilter] = None) -> int:
        return len(await self._matching(movie_filter or MovieFilter()))

    async def statistics(self) -> Dict[str, Any]:
        """Aggregate figures over active movies; empty when there are none."""
        records = await self._matching(MovieFilter())
        if not records:
            return {}
        ratings = [r["rating"] for r in records]
        durations = [r["duration"] for r in records]
        return {
            "total_movies": len(records),
            "avg_rating": sum(ratings) / len(ratings),
            "avg_duration": sum(durations) / len(durations),
            "min_rating": min(ratings),
            "max_rating": max(ratings),
        }

    async def soft_delete(self, movie_id: str) -> bool:
        record = await self.find_by_id(movie_id)
        if record is None:
            return False
        record["is_active"] = False
        record["updated_at"] = self._clock()
        async with store_errors("delete movie"):
            await self._redis.hset(self._records_key, movie_id, dumps(record))
        return True

    async def _matching(self, movie_filter: MovieFilter) -> List[Dict[str, Any]]:
        async with store_errors("list movies"):
            raw = await self._redis.hgetall(self._records_key)
        records = [loads(v) for v in raw.values()]
        return [r for r in records if movie_filter.matches(r)]
