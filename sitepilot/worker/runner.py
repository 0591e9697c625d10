"""Worker pool polling the job queue and handing jobs to the orchestrator."""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars

from sitepilot.utils.timing import timed

if TYPE_CHECKING:
    from sitepilot.models.domain import Job
    from sitepilot.worker.orchestrator import JobOrchestrator
    from sitepilot.worker.queue import JobQueue

logger = structlog.get_logger(__name__)


class JobWorker:
    """Runs ``concurrency`` consumer loops over one queue.

    Each job is processed to completion by the loop that claimed it.
    Handles SIGTERM/SIGINT for graceful shutdown: in-flight jobs finish,
    no new ones are claimed.
    """

    def __init__(
        self,
        queue: JobQueue,
        orchestrator: JobOrchestrator,
        concurrency: int = 2,
        poll_interval: float = 2.0,
    ) -> None:
        if concurrency < 1:
            msg = "concurrency must be at least 1"
            raise ValueError(msg)
        self._queue = queue
        self._orchestrator = orchestrator
        self._concurrency = concurrency
        self._poll_interval = poll_interval
        self._running = True

    async def run(self) -> None:
        """Main polling loop; returns after shutdown is requested."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.shutdown)

        logger.info(
            "worker_started",
            concurrency=self._concurrency,
            poll_interval=self._poll_interval,
        )
        await self._queue.list_stale_jobs()
        await asyncio.gather(*(self._consume(i) for i in range(self._concurrency)))
        logger.info("worker_stopped")

    async def drain(self) -> int:
        """Process jobs until the queue is empty; returns how many ran.

        Jobs enqueued by a job being drained (scheduled dispatch) are
        processed too.
        """
        processed = 0
        while (job := await self._queue.claim_next()) is not None:
            await self._execute(job)
            processed += 1
        return processed

    async def _consume(self, slot: int) -> None:
        while self._running:
            try:
                job = await self._queue.claim_next()
                if job:
                    await self._execute(job)
                else:
                    await asyncio.sleep(self._poll_interval)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("worker_poll_error", slot=slot)
                await asyncio.sleep(self._poll_interval)

    async def _execute(self, job: Job) -> None:
        """Execute a single job and record its terminal status."""
        bind_contextvars(job_id=job.id, job_kind=str(job.kind))
        try:
            logger.info("job_executing", payload=job.payload)
            try:
                with timed(f"job:{job.kind}"):
                    await self._orchestrator.process(job)
            except Exception as exc:
                logger.exception("job_failed", error=str(exc))
                await self._queue.complete(job.id, error=str(exc) or type(exc).__name__)
            else:
                await self._queue.complete(job.id)
        finally:
            unbind_contextvars("job_id", "job_kind")

    def shutdown(self) -> None:
        """Request graceful shutdown."""
        logger.info("worker_shutdown_requested")
        self._running = False
