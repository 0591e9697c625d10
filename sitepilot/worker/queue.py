"""Job queues: in-memory for single-process runs, SKIP LOCKED claiming for distributed workers."""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from collections import deque
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from sitepilot.constants import STALE_JOB_TIMEOUT_MINUTES
from sitepilot.exceptions import EntityNotFoundError
from sitepilot.models.database import PipelineJob
from sitepilot.models.domain import Job, check_transition
from sitepilot.types import JobKind, JobStatus

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class JobQueue(ABC):
    """FIFO job queue with durable PENDING -> RUNNING -> COMPLETED|FAILED status."""

    @abstractmethod
    async def enqueue(self, kind: JobKind, payload: dict[str, Any]) -> Job:
        """Add a PENDING job and return it immediately."""

    @abstractmethod
    async def claim_next(self) -> Job | None:
        """Atomically move the oldest PENDING job to RUNNING and return it."""

    @abstractmethod
    async def complete(self, job_id: str, error: str | None = None) -> Job:
        """Mark a RUNNING job COMPLETED, or FAILED when ``error`` is given."""

    @abstractmethod
    async def get_job(self, job_id: str) -> Job | None: ...

    @abstractmethod
    async def list_stale_jobs(
        self, timeout_minutes: int = STALE_JOB_TIMEOUT_MINUTES
    ) -> list[Job]:
        """Jobs RUNNING for longer than ``timeout_minutes``.

        These are suspect (a worker may have died) but are never reset
        automatically; status never moves back to PENDING.
        """


class InMemoryJobQueue(JobQueue):
    """Process-local queue guarded by an asyncio lock."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._pending: deque[str] = deque()
        self._lock = asyncio.Lock()

    async def enqueue(self, kind: JobKind, payload: dict[str, Any]) -> Job:
        job = Job(kind=kind, payload=payload)
        async with self._lock:
            self._jobs[job.id] = job
            self._pending.append(job.id)
        logger.info("job_enqueued", job_id=job.id, kind=str(kind))
        return job.model_copy(deep=True)

    async def claim_next(self) -> Job | None:
        async with self._lock:
            if not self._pending:
                return None
            job = self._jobs[self._pending.popleft()]
            check_transition(job.status, JobStatus.RUNNING)
            job.status = JobStatus.RUNNING
            job.started_at = _utc_now()
        logger.info("job_claimed", job_id=job.id, kind=str(job.kind))
        return job.model_copy(deep=True)

    async def complete(self, job_id: str, error: str | None = None) -> Job:
        status = JobStatus.FAILED if error else JobStatus.COMPLETED
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise EntityNotFoundError("Job", job_id)
            check_transition(job.status, status)
            job.status = status
            job.error = error
            job.finished_at = _utc_now()
        logger.info("job_completed", job_id=job_id, status=str(status))
        return job.model_copy(deep=True)

    async def get_job(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def list_stale_jobs(
        self, timeout_minutes: int = STALE_JOB_TIMEOUT_MINUTES
    ) -> list[Job]:
        cutoff = _utc_now() - timedelta(minutes=timeout_minutes)
        stale = [
            job.model_copy(deep=True)
            for job in self._jobs.values()
            if job.status == JobStatus.RUNNING and job.started_at and job.started_at < cutoff
        ]
        if stale:
            logger.warning("stale_jobs_detected", count=len(stale), job_ids=[j.id for j in stale])
        return stale


class DatabaseJobQueue(JobQueue):
    """Database-backed job queue using SELECT ... FOR UPDATE SKIP LOCKED.

    Several worker processes can share one PostgreSQL table; a row is
    claimed by exactly one of them.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @staticmethod
    def _to_job(row: PipelineJob) -> Job:
        def aware(value: datetime | None) -> datetime | None:
            return value.replace(tzinfo=UTC) if value else None

        return Job(
            id=row.id,
            kind=JobKind(row.kind),
            payload=json.loads(row.payload_json or "{}"),
            status=JobStatus(row.status),
            error=row.error_message,
            created_at=aware(row.created_at) or _utc_now(),
            started_at=aware(row.started_at),
            finished_at=aware(row.finished_at),
        )

    @staticmethod
    def _naive_now() -> datetime:
        return _utc_now().replace(tzinfo=None)

    async def enqueue(self, kind: JobKind, payload: dict[str, Any]) -> Job:
        row = PipelineJob(kind=str(kind), payload_json=json.dumps(payload))
        async with AsyncSession(self._engine) as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
            job = self._to_job(row)
        logger.info("job_enqueued", job_id=job.id, kind=str(kind))
        return job

    async def claim_next(self) -> Job | None:
        async with AsyncSession(self._engine) as session:
            statement = (
                select(PipelineJob)
                .where(PipelineJob.status == JobStatus.PENDING)
                .order_by(PipelineJob.created_at)  # type: ignore[arg-type]
                .limit(1)
                .with_for_update(skip_locked=True)
            )
            result = await session.execute(statement)
            row = result.scalars().first()
            if row is None:
                return None
            check_transition(JobStatus(row.status), JobStatus.RUNNING)
            row.status = JobStatus.RUNNING
            row.started_at = self._naive_now()
            session.add(row)
            await session.commit()
            await session.refresh(row)
            job = self._to_job(row)
        logger.info("job_claimed", job_id=job.id, kind=str(job.kind))
        return job

    async def complete(self, job_id: str, error: str | None = None) -> Job:
        status = JobStatus.FAILED if error else JobStatus.COMPLETED
        async with AsyncSession(self._engine) as session:
            row = await session.get(PipelineJob, job_id)
            if row is None:
                raise EntityNotFoundError("Job", job_id)
            check_transition(JobStatus(row.status), status)
            row.status = status
            row.error_message = error
            row.finished_at = self._naive_now()
            session.add(row)
            await session.commit()
            await session.refresh(row)
            job = self._to_job(row)
        logger.info("job_completed", job_id=job_id, status=str(status))
        return job

    async def get_job(self, job_id: str) -> Job | None:
        async with AsyncSession(self._engine) as session:
            row = await session.get(PipelineJob, job_id)
            return self._to_job(row) if row else None

    async def list_stale_jobs(
        self, timeout_minutes: int = STALE_JOB_TIMEOUT_MINUTES
    ) -> list[Job]:
        cutoff = self._naive_now() - timedelta(minutes=timeout_minutes)
        async with AsyncSession(self._engine) as session:
            statement = select(PipelineJob).where(
                PipelineJob.status == JobStatus.RUNNING,
                PipelineJob.started_at < cutoff,  # type: ignore[operator]
            )
            result = await session.execute(statement)
            stale = [self._to_job(row) for row in result.scalars().all()]
        if stale:
            logger.warning("stale_jobs_detected", count=len(stale), job_ids=[j.id for j in stale])
        return stale
