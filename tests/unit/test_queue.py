from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from sitepilot.exceptions import EntityNotFoundError, InvalidJobTransitionError
from sitepilot.types import JobKind, JobStatus
from sitepilot.worker.queue import DatabaseJobQueue, InMemoryJobQueue, JobQueue


class QueueContract:
    """Mixin; subclasses provide a ``queue`` fixture."""

    @pytest.mark.asyncio
    async def test_enqueue_returns_pending_job(self, queue: JobQueue) -> None:
        job = await queue.enqueue(JobKind.CRAWL, {"website_id": "w1"})

        assert job.status == JobStatus.PENDING
        assert job.payload == {"website_id": "w1"}
        stored = await queue.get_job(job.id)
        assert stored is not None
        assert stored.kind == JobKind.CRAWL

    @pytest.mark.asyncio
    async def test_claim_moves_to_running(self, queue: JobQueue) -> None:
        job = await queue.enqueue(JobKind.CRAWL, {"website_id": "w1"})

        claimed = await queue.claim_next()

        assert claimed is not None
        assert claimed.id == job.id
        assert claimed.status == JobStatus.RUNNING
        assert claimed.started_at is not None
        assert await queue.claim_next() is None

    @pytest.mark.asyncio
    async def test_claim_empty_queue(self, queue: JobQueue) -> None:
        assert await queue.claim_next() is None

    @pytest.mark.asyncio
    async def test_complete_success_and_failure(self, queue: JobQueue) -> None:
        ok = await queue.enqueue(JobKind.CRAWL, {"website_id": "w1"})
        bad = await queue.enqueue(JobKind.CRAWL, {"website_id": "w2"})
        await queue.claim_next()
        await queue.claim_next()

        done = await queue.complete(ok.id)
        failed = await queue.complete(bad.id, error="boom")

        assert done.status == JobStatus.COMPLETED
        assert done.error is None
        assert done.is_terminal
        assert failed.status == JobStatus.FAILED
        assert failed.error == "boom"
        assert failed.finished_at is not None

    @pytest.mark.asyncio
    async def test_complete_requires_running(self, queue: JobQueue) -> None:
        job = await queue.enqueue(JobKind.CRAWL, {"website_id": "w1"})

        with pytest.raises(InvalidJobTransitionError):
            await queue.complete(job.id)

    @pytest.mark.asyncio
    async def test_terminal_job_cannot_complete_again(self, queue: JobQueue) -> None:
        job = await queue.enqueue(JobKind.CRAWL, {"website_id": "w1"})
        await queue.claim_next()
        await queue.complete(job.id)

        with pytest.raises(InvalidJobTransitionError):
            await queue.complete(job.id, error="late")

    @pytest.mark.asyncio
    async def test_complete_unknown_job(self, queue: JobQueue) -> None:
        with pytest.raises(EntityNotFoundError):
            await queue.complete("missing")

    @pytest.mark.asyncio
    async def test_get_unknown_job(self, queue: JobQueue) -> None:
        assert await queue.get_job("missing") is None

    @pytest.mark.asyncio
    async def test_fresh_running_job_is_not_stale(self, queue: JobQueue) -> None:
        await queue.enqueue(JobKind.CRAWL, {"website_id": "w1"})
        await queue.claim_next()

        assert await queue.list_stale_jobs(timeout_minutes=15) == []


@pytest.mark.unit
class TestInMemoryJobQueue(QueueContract):
    @pytest.fixture()
    def queue(self) -> InMemoryJobQueue:
        return InMemoryJobQueue()

    @pytest.mark.asyncio
    async def test_fifo_order(self, queue: InMemoryJobQueue) -> None:
        first = await queue.enqueue(JobKind.CRAWL, {"website_id": "w1"})
        second = await queue.enqueue(JobKind.TEST_EXECUTION, {"run_id": "r1"})

        claimed = [await queue.claim_next(), await queue.claim_next()]

        assert [j.id for j in claimed if j] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_returned_jobs_are_copies(self, queue: InMemoryJobQueue) -> None:
        job = await queue.enqueue(JobKind.CRAWL, {"website_id": "w1"})
        job.payload["website_id"] = "tampered"

        stored = await queue.get_job(job.id)
        assert stored is not None
        assert stored.payload == {"website_id": "w1"}

    @pytest.mark.asyncio
    async def test_stale_jobs_listed_but_not_reset(self, queue: InMemoryJobQueue) -> None:
        job = await queue.enqueue(JobKind.CRAWL, {"website_id": "w1"})
        await queue.claim_next()
        queue._jobs[job.id].started_at = datetime.now(UTC) - timedelta(minutes=30)

        stale = await queue.list_stale_jobs(timeout_minutes=15)

        assert [j.id for j in stale] == [job.id]
        stored = await queue.get_job(job.id)
        assert stored is not None
        assert stored.status == JobStatus.RUNNING


@pytest.mark.unit
class TestDatabaseJobQueue(QueueContract):
    @pytest.fixture()
    def queue(self, async_engine) -> DatabaseJobQueue:
        return DatabaseJobQueue(async_engine)

    @pytest.mark.asyncio
    async def test_each_job_claimed_once(self, queue: DatabaseJobQueue) -> None:
        a = await queue.enqueue(JobKind.CRAWL, {"website_id": "w1"})
        b = await queue.enqueue(JobKind.CRAWL, {"website_id": "w2"})

        first = await queue.claim_next()
        second = await queue.claim_next()

        assert first is not None
        assert second is not None
        assert {first.id, second.id} == {a.id, b.id}
        assert await queue.claim_next() is None

    @pytest.mark.asyncio
    async def test_timestamps_are_utc_aware(self, queue: DatabaseJobQueue) -> None:
        await queue.enqueue(JobKind.CRAWL, {"website_id": "w1"})
        job = await queue.claim_next()

        assert job is not None
        assert job.created_at.tzinfo is UTC
        assert job.started_at is not None
        assert job.started_at.tzinfo is UTC
