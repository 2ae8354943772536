#!/usr/bin/env python3
"""Worker process that claims movie jobs from the Redis-backed queue and runs their handlers.

Usage:
  REDIS_URL=redis://localhost:6379/0 WORKER_CONCURRENCY=4 python scripts/worker.py

SIGINT/SIGTERM stop claiming new jobs, let in-flight jobs finish, and close the
queue connection.
"""
import asyncio
import signal
from typing import Optional

import structlog

from moviequeue.config import Settings, get_settings
from moviequeue.jobs.handlers import build_registry
from moviequeue.jobs.queue import JobQueue
from moviequeue.jobs.worker import Dispatcher
from moviequeue.logging_config import configure_logging
from moviequeue.movies.store import MovieStore
from moviequeue.redis_helper import create_redis

logger = structlog.get_logger("moviequeue.worker")


async def run_worker(
    settings: Optional[Settings] = None,
    redis_client=None,
    stop_event: Optional[asyncio.Event] = None,
):
    settings = settings or get_settings()
    client = redis_client if redis_client is not None else create_redis(settings)
    queue = JobQueue.from_settings(settings, redis_client=client)
    await queue.open()

    dispatcher = Dispatcher(
        queue,
        build_registry(),
        {"store": MovieStore(client)},
        concurrency=settings.worker_concurrency,
        poll_interval=settings.worker_poll_seconds,
    )
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Not available off the main thread or on Windows
            pass

    dispatcher.start()
    try:
        await stop_event.wait()
        logger.info("worker_shutdown_requested")
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        await dispatcher.stop()
        await queue.close()


if __name__ == "__main__":
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    asyncio.run(run_worker(settings))
