import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from moviequeue.errors import InvalidJobType, NotFound, TransientStoreFailure, ValidationFailure
from moviequeue.jobs.models import JobOptions
from moviequeue.jobs.queue import JobQueue
from moviequeue.jobs.types import JobDisposition, JobType
from moviequeue.redis_helper import AsyncInMemoryRedis


@pytest.mark.asyncio
async def test_enqueue_returns_unique_ids(queue):
    ids = [await queue.enqueue(JobType.CREATE_MOVIE, {"movie": {}}) for _ in range(20)]
    assert all(ids)
    assert len(set(ids)) == 20


@pytest.mark.asyncio
async def test_enqueue_attaches_default_options(queue):
    job_id = await queue.enqueue(JobType.UPDATE_MOVIE, {"movie_id": "1", "patch": {}})
    job = await queue.get(job_id)
    assert job.priority == 2
    assert job.max_attempts == 3
    assert job.backoff_delay_ms == 2000
    assert job.remove_on_complete is True
    assert job.remove_on_fail is False
    assert job.attempts == 0
    assert job.disposition is JobDisposition.PENDING


@pytest.mark.asyncio
async def test_enqueue_rejects_unknown_type(queue):
    with pytest.raises(InvalidJobType):
        await queue.enqueue("delete_everything", {})
    assert (await queue.counts())["ready"] == 0


@pytest.mark.asyncio
async def test_priority_order_among_ready_jobs(queue):
    bulk = await queue.enqueue(JobType.BULK_CREATE_MOVIES, {"movies": []})
    update = await queue.enqueue(JobType.UPDATE_MOVIE, {"movie_id": "1", "patch": {}})
    create = await queue.enqueue(JobType.CREATE_MOVIE, {"movie": {}})

    claimed = [(await queue.claim("w1")).id for _ in range(3)]
    assert claimed == [create, update, bulk]
    assert await queue.claim("w1") is None


@pytest.mark.asyncio
async def test_fifo_within_priority(queue):
    first = await queue.enqueue(JobType.CREATE_MOVIE, {"movie": {"n": 1}})
    second = await queue.enqueue(JobType.CREATE_MOVIE, {"movie": {"n": 2}})
    assert (await queue.claim("w1")).id == first
    assert (await queue.claim("w1")).id == second


@pytest.mark.asyncio
async def test_claim_marks_in_flight(queue):
    job_id = await queue.enqueue(JobType.CREATE_MOVIE, {"movie": {}})
    job = await queue.claim("worker-a")
    assert job.id == job_id
    stored = await queue.get(job_id)
    assert stored.disposition is JobDisposition.IN_FLIGHT
    assert stored.claimed_by == "worker-a"
    assert (await queue.counts())["active"] == 1


@pytest.mark.asyncio
async def test_complete_removes_job(queue):
    job_id = await queue.enqueue(JobType.CREATE_MOVIE, {"movie": {}})
    job = await queue.claim("w1")
    await queue.complete(job, {"movie_id": "1"})
    assert await queue.get(job_id) is None
    assert await queue.claim("w1") is None
    assert await queue.counts() == {"ready": 0, "delayed": 0, "active": 0, "failed": 0}


@pytest.mark.asyncio
async def test_complete_keeps_job_when_configured(queue):
    options = JobOptions(priority=1, remove_on_complete=False)
    job_id = await queue.enqueue(JobType.CREATE_MOVIE, {"movie": {}}, options=options)
    await queue.complete(await queue.claim("w1"))
    assert (await queue.get(job_id)).disposition is JobDisposition.SUCCEEDED


@pytest.mark.asyncio
async def test_transient_failure_backs_off_exponentially(queue, clock):
    job_id = await queue.enqueue(JobType.CREATE_MOVIE, {"movie": {}})

    job = await queue.claim("w1")
    assert await queue.fail(job, TransientStoreFailure("down")) is JobDisposition.FAILED_RETRYABLE
    stored = await queue.get(job_id)
    assert stored.attempts == 1
    assert stored.run_after == clock.now + 2.0

    # Not claimable until the backoff elapses
    assert await queue.promote_due() == 0
    assert await queue.claim("w1") is None
    clock.advance(2.0)
    assert await queue.promote_due() == 1
    assert (await queue.get(job_id)).disposition is JobDisposition.PENDING

    job = await queue.claim("w1")
    await queue.fail(job, TransientStoreFailure("down"))
    assert (await queue.get(job_id)).run_after == clock.now + 4.0
    clock.advance(4.0)
    await queue.promote_due()

    job = await queue.claim("w1")
    assert await queue.fail(job, TransientStoreFailure("down")) is JobDisposition.FAILED_TERMINAL
    stored = await queue.get(job_id)
    assert stored.attempts == 3
    assert stored.last_error == "down"
    assert [j.id for j in await queue.failed_jobs()] == [job_id]


@pytest.mark.asyncio
async def test_permanent_failure_is_terminal_immediately(queue):
    job_id = await queue.enqueue(JobType.CREATE_MOVIE, {"movie": {}})
    job = await queue.claim("w1")
    assert await queue.fail(job, ValidationFailure("title: required")) is JobDisposition.FAILED_TERMINAL
    assert (await queue.get(job_id)).attempts == 1
    assert (await queue.counts())["delayed"] == 0


@pytest.mark.asyncio
async def test_forced_terminal_ignores_budget(queue):
    await queue.enqueue(JobType.CREATE_MOVIE, {"movie": {}})
    job = await queue.claim("w1")
    assert await queue.fail(job, RuntimeError("x"), retryable=False) is JobDisposition.FAILED_TERMINAL


@pytest.mark.asyncio
async def test_remove_on_fail_drops_job(queue):
    options = JobOptions(priority=1, attempts=1, remove_on_fail=True)
    job_id = await queue.enqueue(JobType.CREATE_MOVIE, {"movie": {}}, options=options)
    await queue.fail(await queue.claim("w1"), RuntimeError("boom"))
    assert await queue.get(job_id) is None
    assert await queue.failed_jobs() == []


@pytest.mark.asyncio
async def test_expired_claim_is_requeued(queue, clock):
    job_id = await queue.enqueue(JobType.CREATE_MOVIE, {"movie": {}})
    await queue.claim("crashed-worker")

    clock.advance(queue.visibility_timeout - 1)
    assert await queue.requeue_stalled() == 0
    clock.advance(1)
    assert await queue.requeue_stalled() == 1

    job = await queue.claim("w2")
    assert job.id == job_id
    assert job.claimed_by == "w2"
    # Crash recovery does not consume an attempt
    assert job.attempts == 0


@pytest.mark.asyncio
async def test_retry_failed_resets_attempts(queue):
    options = JobOptions(priority=1, attempts=1)
    job_id = await queue.enqueue(JobType.CREATE_MOVIE, {"movie": {}}, options=options)
    await queue.fail(await queue.claim("w1"), RuntimeError("boom"))

    job = await queue.retry_failed(job_id)
    assert job.attempts == 0
    assert (await queue.claim("w1")).id == job_id
    assert await queue.failed_jobs() == []

    with pytest.raises(NotFound):
        await queue.retry_failed(job_id)


@pytest.mark.asyncio
async def test_close_is_idempotent(queue, redis_client):
    await queue.close()
    await queue.close()
    assert queue.is_open is False
    assert redis_client.closed is True


class FlakyRedis(AsyncInMemoryRedis):
    """Fails the next call to the named command once."""

    def __init__(self):
        super().__init__()
        self.fail_next = set()

    def _maybe_fail(self, command):
        if command in self.fail_next:
            self.fail_next.discard(command)
            raise RedisConnectionError(f"{command} lost connection")

    async def hget(self, name, key):
        self._maybe_fail("hget")
        return await super().hget(name, key)

    async def zadd(self, name, mapping):
        if name.endswith(":active"):
            self._maybe_fail("zadd_active")
        return await super().zadd(name, mapping)


@pytest.mark.asyncio
async def test_claim_interrupted_after_pop_is_recovered_by_timeout(clock):
    redis_client = FlakyRedis()
    queue = JobQueue(redis_client, clock=clock)
    job_id = await queue.enqueue(JobType.CREATE_MOVIE, {"movie": {}})

    redis_client.fail_next.add("hget")
    with pytest.raises(TransientStoreFailure):
        await queue.claim("w1")
    assert (await queue.counts())["active"] == 1

    clock.advance(queue.visibility_timeout)
    assert await queue.requeue_stalled() == 1
    job = await queue.claim("w2")
    assert job.id == job_id
    assert job.attempts == 0


@pytest.mark.asyncio
async def test_claim_that_cannot_be_tracked_goes_back_to_ready(clock):
    redis_client = FlakyRedis()
    queue = JobQueue(redis_client, clock=clock)
    job_id = await queue.enqueue(JobType.CREATE_MOVIE, {"movie": {}})

    redis_client.fail_next.add("zadd_active")
    with pytest.raises(TransientStoreFailure):
        await queue.claim("w1")
    assert await queue.counts() == {"ready": 1, "delayed": 0, "active": 0, "failed": 0}
    assert (await queue.get(job_id)).disposition is JobDisposition.PENDING
    assert (await queue.claim("w1")).id == job_id
