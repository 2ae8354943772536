"""Dispatcher - claims jobs from the queue and routes them to handlers."""
import asyncio
import os
import socket
import time
from typing import Any, Dict, List, Optional

import structlog

from .. import metrics
from ..errors import UnknownJobType
from .models import JobEnvelope
from .queue import JobQueue
from .registry import JobRegistry

logger = structlog.get_logger(__name__)


def generate_worker_id() -> str:
    """Generate a unique worker ID: hostname:pid."""
    return f"{socket.gethostname()}:{os.getpid()}"


def _summarize(result: Any) -> Any:
    if isinstance(result, dict) and "id" in result:
        return {"movie_id": result["id"]}
    return result


class Dispatcher:
    """Pool of asyncio workers sharing one queue client.

    Workers hold no shared state; claiming, visibility timeouts and retry
    bookkeeping all go through the queue.
    """

    def __init__(
        self,
        queue: JobQueue,
        registry: JobRegistry,
        context: Dict[str, Any],
        concurrency: int = 1,
        poll_interval: float = 0.5,
        worker_id: Optional[str] = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._queue = queue
        self._registry = registry
        self._context = context
        self._concurrency = concurrency
        self._poll_interval = poll_interval
        self._worker_id = worker_id or generate_worker_id()
        self._running = False
        self._tasks: List[asyncio.Task] = []

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Spawn the worker tasks on the running loop."""
        if self._running:
            return
        self._running = True
        self._tasks = [
            asyncio.create_task(self._run(f"{self._worker_id}:{i}"))
            for i in range(self._concurrency)
        ]
        logger.info(
            "worker_started",
            worker_id=self._worker_id,
            concurrency=self._concurrency,
            queue=self._queue.name,
        )

    async def stop(self, grace_seconds: float = 10.0) -> None:
        """Let in-flight jobs finish, then cancel anything still running."""
        if not self._tasks:
            self._running = False
            return
        self._running = False
        done, pending = await asyncio.wait(self._tasks, timeout=grace_seconds)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._tasks = []
        logger.info("worker_stopped", worker_id=self._worker_id, cancelled=len(pending))

    async def run_once(self, worker_name: Optional[str] = None) -> Optional[JobEnvelope]:
        """Do one maintenance pass and execute at most one job."""
        await self._queue.promote_due()
        await self._queue.requeue_stalled()
        job = await self._queue.claim(worker_name or self._worker_id)
        if job is not None:
            await self._execute(job)
        return job

    async def drain(self, max_jobs: int = 1000) -> int:
        """Execute ready jobs until none are claimable. Returns how many ran."""
        executed = 0
        while executed < max_jobs and await self.run_once() is not None:
            executed += 1
        return executed

    async def _run(self, worker_name: str) -> None:
        while self._running:
            try:
                job = await self.run_once(worker_name)
                if job is None:
                    await asyncio.sleep(self._poll_interval)
            except asyncio.CancelledError:
                logger.info("worker_cancelled", worker_id=worker_name)
                raise
            except Exception as e:
                logger.error("worker_loop_error", worker_id=worker_name, error=str(e), exc_info=True)
                await asyncio.sleep(self._poll_interval)

    async def _execute(self, job: JobEnvelope) -> None:
        log = logger.bind(job_id=job.id, job_type=job.type_name, attempt=job.attempts + 1)
        log.info("job_executing")

        try:
            handler = self._registry.get_handler(job.type)
        except UnknownJobType as exc:
            # Deployment mismatch, retrying will not help
            log.error("job_no_handler", error=str(exc))
            await self._queue.fail(job, exc, retryable=False)
            metrics.jobs_executed_total.labels(type=job.type_name, outcome="no_handler").inc()
            return

        start = time.time()
        try:
            result = await handler(job.payload, self._context)
        except Exception as exc:
            log.error("job_handler_failed", error=str(exc), error_type=type(exc).__name__)
            disposition = await self._queue.fail(job, exc)
            metrics.jobs_executed_total.labels(type=job.type_name, outcome=disposition.value).inc()
            return
        finally:
            metrics.execution_latency_seconds.observe(time.time() - start)

        await self._queue.complete(job, _summarize(result))
        metrics.jobs_executed_total.labels(type=job.type_name, outcome="succeeded").inc()
        log.info("job_succeeded")
