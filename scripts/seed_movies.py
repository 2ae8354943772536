#!/usr/bin/env python3
"""Queue a bulk import of well-known titles looked up on OMDb.

Usage:
  OMDB_API_KEY=... REDIS_URL=redis://localhost:6379/0 python scripts/seed_movies.py

A running worker performs the inserts.
"""
import asyncio

import structlog

from moviequeue.config import get_settings
from moviequeue.errors import MovieQueueError
from moviequeue.jobs.producer import enqueue_bulk_create_movies
from moviequeue.jobs.queue import JobQueue
from moviequeue.logging_config import configure_logging
from moviequeue.services.omdb import OMDbClient

logger = structlog.get_logger("moviequeue.seed")

SEED_IMDB_IDS = [
    "tt0111161",  # The Shawshank Redemption
    "tt0068646",  # The Godfather
    "tt0468569",  # The Dark Knight
    "tt0110912",  # Pulp Fiction
    "tt0109830",  # Forrest Gump
    "tt1375666",  # Inception
    "tt0137523",  # Fight Club
    "tt0133093",  # The Matrix
    "tt0099685",  # Goodfellas
    "tt0816692",  # Interstellar
]


async def seed():
    settings = get_settings()
    omdb = OMDbClient.from_settings(settings)
    movies = []
    for imdb_id in SEED_IMDB_IDS:
        try:
            movies.append(await omdb.fetch_movie_by_imdb_id(imdb_id))
        except MovieQueueError as exc:
            logger.warning("seed_lookup_failed", imdb_id=imdb_id, error=exc.message)

    if not movies:
        logger.error("seed_nothing_to_queue")
        return

    queue = JobQueue.from_settings(settings)
    await queue.open()
    try:
        job_id = await enqueue_bulk_create_movies(queue, movies)
        logger.info("seed_queued", job_id=job_id, count=len(movies))
    finally:
        await queue.close()


if __name__ == "__main__":
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    asyncio.run(seed())
