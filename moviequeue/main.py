import time
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import metrics
from .api import jobs as jobs_api
from .api import movies as movies_api
from .config import Settings, get_settings
from .errors import MovieQueueError
from .jobs.queue import JobQueue
from .jobs.worker import Dispatcher
from .logging_config import configure_logging
from .metrics import metrics_response, request_latency_seconds
from .movies.service import MovieService
from .movies.store import MovieStore
from .redis_helper import create_redis
from .services.omdb import OMDbClient

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    redis_client=None,
    omdb_client: Optional[OMDbClient] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_json)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = redis_client if redis_client is not None else create_redis(settings)
        queue = JobQueue.from_settings(settings, redis_client=client)
        await queue.open()
        service = MovieService(MovieStore(client), queue)
        app.state.movie_service = service
        app.state.omdb_client = omdb_client or OMDbClient.from_settings(settings)

        dispatcher = None
        if settings.run_worker_in_process:
            dispatcher = Dispatcher(
                queue,
                service.registry,
                service.context,
                concurrency=settings.worker_concurrency,
                poll_interval=settings.worker_poll_seconds,
            )
            dispatcher.start()
        app.state.dispatcher = dispatcher
        logger.info("service_started", queue=queue.name, in_process_worker=dispatcher is not None)
        try:
            yield
        finally:
            if dispatcher is not None:
                await dispatcher.stop()
            await queue.close()
            logger.info("service_stopped")

    app = FastAPI(title="MovieQueue", lifespan=lifespan)
    app.state.settings = settings
    app.include_router(movies_api.router)
    app.include_router(jobs_api.router)

    @app.exception_handler(MovieQueueError)
    async def movie_queue_error_handler(request: Request, exc: MovieQueueError):
        if exc.status_code >= 500:
            metrics.error_count.inc()
            logger.error("request_failed", path=request.url.path, error=exc.message)
        return JSONResponse(
            {"success": False, "message": exc.message}, status_code=exc.status_code
        )

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start = time.time()
        try:
            response = await call_next(request)
            return response
        finally:
            request_latency_seconds.observe(time.time() - start)

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    @app.get("/readyz")
    async def readyz(request: Request):
        queue = request.app.state.movie_service.queue
        try:
            await queue.counts()
        except MovieQueueError:
            return JSONResponse({"ready": False}, status_code=503)
        return {"ready": queue.is_open}

    @app.get("/metrics")
    async def metrics_endpoint():
        return metrics_response()

    return app


app = create_app()
