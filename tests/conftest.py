import os

import pytest
from httpx import ASGITransport, AsyncClient

os.environ["TESTING"] = "1"

from moviequeue.config import Settings
from moviequeue.jobs.handlers import build_registry
from moviequeue.jobs.policy import RetryPolicy
from moviequeue.jobs.queue import JobQueue
from moviequeue.jobs.worker import Dispatcher
from moviequeue.main import create_app
from moviequeue.movies.store import MovieStore
from moviequeue.redis_helper import AsyncInMemoryRedis

API_HEADERS = {"X-API-Key": "dev-key"}


class FakeClock:
    """Manually advanced clock for backoff and visibility-timeout tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_movie(**overrides):
    movie = {
        "title": "Inception",
        "description": "A thief who steals corporate secrets through dream-sharing.",
        "rating": 8.8,
        "release_date": "2010-07-16",
        "duration": 148,
        "genre": ["Action", "Sci-Fi"],
        "director": "Christopher Nolan",
        "cast": ["Leonardo DiCaprio", "Elliot Page"],
    }
    movie.update(overrides)
    return movie


@pytest.fixture
def settings():
    return Settings(testing=True, api_key="dev-key", log_json=False, worker_poll_seconds=0.01)


@pytest.fixture
def redis_client():
    return AsyncInMemoryRedis()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def queue(redis_client, clock):
    q = JobQueue(redis_client, policy=RetryPolicy(), clock=clock)
    await q.open()
    yield q
    await q.close()


@pytest.fixture
def store(redis_client, clock):
    return MovieStore(redis_client, clock=clock)


@pytest.fixture
def dispatcher(queue, store):
    return Dispatcher(queue, build_registry(), {"store": store}, poll_interval=0.01)


@pytest.fixture
async def app(settings, redis_client):
    application = create_app(settings, redis_client=redis_client)
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def app_dispatcher(app):
    """Dispatcher bound to the app's own queue and store, driven by the test."""
    service = app.state.movie_service
    return Dispatcher(service.queue, service.registry, service.context, poll_interval=0.01)
