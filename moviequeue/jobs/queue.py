"""Redis-backed job store client for the movie-operations queue.

Layout under the queue name prefix:

- ``<name>:jobs``     hash of job id -> envelope JSON
- ``<name>:ready``    zset of claimable ids, scored by priority then arrival
- ``<name>:delayed``  zset of ids waiting out a retry backoff, scored by run time
- ``<name>:active``   zset of claimed ids, scored by visibility deadline
- ``<name>:failed``   zset of terminally failed ids kept for inspection
- ``<name>:id``       counter used to assign job ids

Claims rely on ZPOPMIN/ZREM being atomic in Redis, so a ready id is handed to
exactly one worker. Expired claims are put back on the ready set, which makes
delivery at-least-once.
"""

import time
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

import structlog

from .. import metrics
from ..config import Settings
from ..errors import ErrorKind, InvalidJobType, NotFound, classify
from ..redis_helper import create_redis, dumps, loads, store_errors
from .models import JobEnvelope, JobOptions
from .policy import RetryPolicy
from .types import DEFAULT_PRIORITIES, JobDisposition, JobType

logger = structlog.get_logger(__name__)

# Keeps arrival order stable inside one priority band
PRIORITY_BAND = 10 ** 12


class JobQueue:
    """Explicitly owned queue client. Call ``open()`` before use and ``close()`` on shutdown."""

    def __init__(
        self,
        redis_client,
        name: str = "movie-operations",
        policy: Optional[RetryPolicy] = None,
        visibility_timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
    ):
        self._redis = redis_client
        self.name = name
        self.policy = policy or RetryPolicy()
        self.visibility_timeout = visibility_timeout
        self._clock = clock
        self._open = False

        self._jobs_key = f"{name}:jobs"
        self._ready_key = f"{name}:ready"
        self._delayed_key = f"{name}:delayed"
        self._active_key = f"{name}:active"
        self._failed_key = f"{name}:failed"
        self._id_key = f"{name}:id"

    @classmethod
    def from_settings(cls, settings: Settings, redis_client=None, **kwargs) -> "JobQueue":
        policy = RetryPolicy(
            max_attempts=settings.job_max_attempts,
            base_delay_ms=settings.job_backoff_delay_ms,
            retry_permanent_errors=settings.retry_permanent_errors,
        )
        return cls(
            redis_client if redis_client is not None else create_redis(settings),
            name=settings.queue_name,
            policy=policy,
            visibility_timeout=settings.visibility_timeout_seconds,
            **kwargs,
        )

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        async with store_errors("queue open"):
            await self._redis.ping()
        self._open = True
        logger.info("queue_opened", queue=self.name)

    async def close(self) -> None:
        if not self._open:
            return
        self._open = False
        await self._redis.aclose()
        logger.info("queue_closed", queue=self.name)

    def default_options(self, job_type: JobType, priority: Optional[int] = None) -> JobOptions:
        return JobOptions(
            priority=priority if priority is not None else DEFAULT_PRIORITIES[job_type],
            attempts=self.policy.max_attempts,
            backoff_delay_ms=self.policy.base_delay_ms,
        )

    # Producer side

    async def enqueue(
        self,
        job_type,
        payload: Dict[str, Any],
        priority: Optional[int] = None,
        options: Optional[JobOptions] = None,
        idempotency_key: Optional[str] = None,
    ) -> str:
        """Persist a new envelope and make it claimable. Returns the job id."""
        try:
            job_type = JobType(job_type)
        except ValueError:
            raise InvalidJobType(f"Unknown job type: {job_type}")

        opts = options or self.default_options(job_type, priority)
        if options is not None and priority is not None:
            opts = replace(opts, priority=priority)

        start = time.time()
        try:
            async with store_errors("enqueue"):
                job_id = str(await self._redis.incr(self._id_key))
                job = JobEnvelope(
                    id=job_id,
                    type=job_type,
                    payload=payload,
                    priority=opts.priority,
                    max_attempts=opts.attempts,
                    backoff_delay_ms=opts.backoff_delay_ms,
                    remove_on_complete=opts.remove_on_complete,
                    remove_on_fail=opts.remove_on_fail,
                    idempotency_key=idempotency_key,
                    created_at=self._clock(),
                )
                await self._save(job)
                await self._redis.zadd(self._ready_key, {job_id: self._ready_score(job)})
        finally:
            metrics.enqueue_latency_seconds.observe(time.time() - start)

        metrics.jobs_enqueued_total.labels(type=job_type.value).inc()
        logger.info(
            "job_enqueued", job_id=job_id, job_type=job_type.value, priority=opts.priority
        )
        return job_id

    # Worker side

    async def claim(self, worker_id: str) -> Optional[JobEnvelope]:
        """Take the best ready job, or return None when nothing is claimable."""
        while True:
            async with store_errors("claim"):
                popped = await self._redis.zpopmin(self._ready_key, 1)
                if not popped:
                    return None
                job_id, score = popped[0]
                # Track the claim first so requeue_stalled can recover it if a later step fails
                try:
                    await self._redis.zadd(
                        self._active_key, {job_id: self._clock() + self.visibility_timeout}
                    )
                except Exception:
                    await self._redis.zadd(self._ready_key, {job_id: score})
                    raise

                job = await self.get(job_id)
                if job is None:
                    # Finished elsewhere after a stalled requeue
                    await self._redis.zrem(self._active_key, job_id)
                    continue
                job.disposition = JobDisposition.IN_FLIGHT
                job.claimed_by = worker_id
                await self._save(job)
            return job

    async def complete(self, job: JobEnvelope, result: Any = None) -> None:
        await self._redis.zrem(self._active_key, job.id)
        job.disposition = JobDisposition.SUCCEEDED
        job.finished_at = self._clock()
        if job.remove_on_complete:
            await self._redis.hdel(self._jobs_key, job.id)
        else:
            await self._save(job)
        logger.info("job_completed", job_id=job.id, job_type=job.type_name, result=result)

    async def fail(
        self, job: JobEnvelope, error: BaseException, retryable: Optional[bool] = None
    ) -> JobDisposition:
        """Record a failed attempt and either schedule a retry or park the job.

        ``retryable=False`` forces a terminal failure regardless of the policy.
        """
        await self._redis.zrem(self._active_key, job.id)
        job.attempts += 1
        job.last_error = str(error)
        job.claimed_by = None

        kind = classify(error)
        policy = replace(
            self.policy, max_attempts=job.max_attempts, base_delay_ms=job.backoff_delay_ms
        )
        if retryable is not False and policy.should_retry(job.attempts, kind):
            delay_ms = policy.delay_ms(job.attempts)
            job.disposition = JobDisposition.FAILED_RETRYABLE
            job.run_after = self._clock() + delay_ms / 1000.0
            await self._save(job)
            await self._redis.zadd(self._delayed_key, {job.id: job.run_after})
            metrics.jobs_retried_total.inc()
            logger.info(
                "job_retry_scheduled",
                job_id=job.id,
                job_type=job.type_name,
                attempt=job.attempts,
                delay_ms=delay_ms,
                error=job.last_error,
            )
            return job.disposition

        job.disposition = JobDisposition.FAILED_TERMINAL
        job.finished_at = self._clock()
        if job.remove_on_fail:
            await self._redis.hdel(self._jobs_key, job.id)
        else:
            await self._save(job)
            await self._redis.zadd(self._failed_key, {job.id: job.finished_at})
        metrics.jobs_failed_total.inc()
        logger.warning(
            "job_failed_terminal",
            job_id=job.id,
            job_type=job.type_name,
            attempts=job.attempts,
            error_kind=kind.value if retryable is not False else ErrorKind.PERMANENT.value,
            error=job.last_error,
        )
        return job.disposition

    async def promote_due(self) -> int:
        """Move delayed retries whose backoff has elapsed back to the ready set."""
        moved = 0
        due = await self._redis.zrangebyscore(self._delayed_key, "-inf", self._clock())
        for job_id in due:
            if not await self._redis.zrem(self._delayed_key, job_id):
                continue
            if await self._make_ready(job_id):
                moved += 1
        return moved

    async def requeue_stalled(self) -> int:
        """Release claims whose visibility timeout expired."""
        moved = 0
        expired = await self._redis.zrangebyscore(self._active_key, "-inf", self._clock())
        for job_id in expired:
            if not await self._redis.zrem(self._active_key, job_id):
                continue
            if await self._make_ready(job_id):
                moved += 1
                metrics.jobs_requeued_stalled_total.inc()
                logger.warning("job_stalled", job_id=job_id)
        return moved

    # Inspection

    async def get(self, job_id: str) -> Optional[JobEnvelope]:
        data = loads(await self._redis.hget(self._jobs_key, job_id))
        if data is None:
            return None
        return JobEnvelope.from_dict(data)

    async def failed_jobs(self, limit: int = 100) -> List[JobEnvelope]:
        ids = await self._redis.zrange(self._failed_key, 0, limit - 1)
        jobs = []
        for job_id in ids:
            job = await self.get(job_id)
            if job is not None:
                jobs.append(job)
        return jobs

    async def retry_failed(self, job_id: str) -> JobEnvelope:
        """Give a terminally failed job a fresh attempt budget."""
        if not await self._redis.zrem(self._failed_key, job_id):
            raise NotFound(f"No failed job with id {job_id}")
        job = await self.get(job_id)
        if job is None:
            raise NotFound(f"No failed job with id {job_id}")
        job.attempts = 0
        job.finished_at = None
        job.disposition = JobDisposition.PENDING
        await self._save(job)
        await self._redis.zadd(self._ready_key, {job.id: self._ready_score(job)})
        logger.info("job_manually_retried", job_id=job.id, job_type=job.type_name)
        return job

    async def counts(self) -> Dict[str, int]:
        async with store_errors("queue counts"):
            return {
                "ready": await self._redis.zcard(self._ready_key),
                "delayed": await self._redis.zcard(self._delayed_key),
                "active": await self._redis.zcard(self._active_key),
                "failed": await self._redis.zcard(self._failed_key),
            }

    async def _make_ready(self, job_id: str) -> bool:
        job = await self.get(job_id)
        if job is None:
            return False
        job.disposition = JobDisposition.PENDING
        job.claimed_by = None
        await self._save(job)
        await self._redis.zadd(self._ready_key, {job_id: self._ready_score(job)})
        return True

    async def _save(self, job: JobEnvelope) -> None:
        await self._redis.hset(self._jobs_key, job.id, dumps(job.to_dict()))

    @staticmethod
    def _ready_score(job: JobEnvelope) -> float:
        return job.priority * PRIORITY_BAND + int(job.id)
