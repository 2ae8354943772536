from fastapi import Request

from ..jobs.queue import JobQueue
from ..movies.service import MovieService
from ..movies.store import MovieStore
from ..services.omdb import OMDbClient


def get_service(request: Request) -> MovieService:
    return request.app.state.movie_service


def get_store(request: Request) -> MovieStore:
    return request.app.state.movie_service.store


def get_queue(request: Request) -> JobQueue:
    return request.app.state.movie_service.queue


def get_omdb(request: Request) -> OMDbClient:
    return request.app.state.omdb_client
