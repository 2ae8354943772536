import math
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, Query
from fastapi.responses import JSONResponse

from ..auth import require_api_key
from ..errors import NotFound, ValidationFailure
from ..movies.schemas import to_public
from ..movies.service import Accepted, MovieService, WriteResult
from ..movies.store import SORT_FIELDS, MovieFilter, MovieStore
from ..schemas import AcceptedResponse, BulkCreateRequest, ImportRequest
from ..services.omdb import OMDbClient
from .deps import get_omdb, get_service, get_store

router = APIRouter(prefix="/api/movies", tags=["movies"])


def _pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)}


def _write_response(result: WriteResult) -> JSONResponse:
    if isinstance(result, Accepted):
        body = AcceptedResponse(message=result.message, job_id=result.job_id)
        return JSONResponse(body.model_dump(by_alias=True), status_code=result.status_code)
    return JSONResponse(
        {"success": True, "data": to_public(result.record)}, status_code=result.status_code
    )


@router.get("")
async def list_movies(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    genre: Optional[str] = None,
    min_rating: Optional[float] = Query(None, alias="minRating"),
    year: Optional[int] = None,
    store: MovieStore = Depends(get_store),
):
    movie_filter = MovieFilter(
        genres=genre.split(",") if genre else None, min_rating=min_rating, year=year
    )
    movies = await store.find_many(movie_filter, skip=(page - 1) * limit, limit=limit)
    total = await store.count(movie_filter)
    return {
        "success": True,
        "count": len(movies),
        "pagination": _pagination(page, limit, total),
        "data": [to_public(m) for m in movies],
    }


@router.get("/sorted")
async def sorted_movies(
    sort_by: str = Query("rating", alias="sortBy"),
    order: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    store: MovieStore = Depends(get_store),
):
    # Unknown sort fields fall back to rating
    sort_field = sort_by if sort_by in SORT_FIELDS else "rating"
    movies = await store.find_many(
        sort_by=sort_field, descending=order != "asc", skip=(page - 1) * limit, limit=limit
    )
    total = await store.count()
    return {
        "success": True,
        "count": len(movies),
        "pagination": _pagination(page, limit, total),
        "sortBy": sort_field,
        "order": order,
        "data": [to_public(m) for m in movies],
    }


@router.get("/search")
async def search_movies(
    q: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: str = Query("rating", alias="sortBy"),
    order: str = "desc",
    store: MovieStore = Depends(get_store),
):
    if not q or len(q.strip()) < 2:
        raise ValidationFailure("Please provide at least 2 characters for search")
    movie_filter = MovieFilter(text=q.strip())
    sort_field = sort_by if sort_by in SORT_FIELDS else "rating"
    movies = await store.find_many(
        movie_filter,
        sort_by=sort_field,
        descending=order != "asc",
        skip=(page - 1) * limit,
        limit=limit,
    )
    total = await store.count(movie_filter)
    return {
        "success": True,
        "count": len(movies),
        "pagination": _pagination(page, limit, total),
        "query": q,
        "data": [to_public(m) for m in movies],
    }


@router.get("/stats")
async def movie_stats(store: MovieStore = Depends(get_store)):
    return {"success": True, "data": await store.statistics()}


@router.get("/{movie_id}")
async def get_movie(movie_id: str, store: MovieStore = Depends(get_store)):
    movie = await store.find_by_id(movie_id)
    if movie is None:
        raise NotFound(f"Movie not found with id of {movie_id}")
    return {"success": True, "data": to_public(movie)}


@router.post("")
async def create_movie(
    body: Dict[str, Any] = Body(...),
    use_queue: bool = Query(False, alias="useQueue"),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    authorized: bool = Depends(require_api_key),
    service: MovieService = Depends(get_service),
):
    result = await service.create(body, use_queue, request_id=idempotency_key)
    return _write_response(result)


@router.post("/bulk")
async def bulk_create_movies(
    request: BulkCreateRequest,
    authorized: bool = Depends(require_api_key),
    service: MovieService = Depends(get_service),
):
    return _write_response(await service.bulk_create(request.movies))


@router.post("/import")
async def import_movie(
    request: ImportRequest,
    authorized: bool = Depends(require_api_key),
    service: MovieService = Depends(get_service),
    omdb: OMDbClient = Depends(get_omdb),
):
    result = await service.import_movie(request.imdb_id, omdb)
    return JSONResponse(
        {
            "success": True,
            "message": "Movie imported successfully from OMDb",
            "data": to_public(result.record),
        },
        status_code=result.status_code,
    )


@router.put("/{movie_id}")
async def update_movie(
    movie_id: str,
    patch: Dict[str, Any] = Body(...),
    use_queue: bool = Query(False, alias="useQueue"),
    authorized: bool = Depends(require_api_key),
    service: MovieService = Depends(get_service),
):
    return _write_response(await service.update(movie_id, patch, use_queue))


@router.delete("/{movie_id}")
async def delete_movie(
    movie_id: str,
    authorized: bool = Depends(require_api_key),
    store: MovieStore = Depends(get_store),
):
    if not await store.soft_delete(movie_id):
        raise NotFound(f"Movie not found with id of {movie_id}")
    return {"success": True, "data": {}, "message": "Movie deleted successfully"}
