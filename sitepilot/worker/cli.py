"""CLI entry point for the job worker."""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from sitepilot.config.logging import setup_logging
from sitepilot.config.settings import Settings, get_settings
from sitepilot.crawler.crawler import Crawler
from sitepilot.generator.case_builder import TestCaseGenerator
from sitepilot.llm.factory import provider_from_settings
from sitepilot.reporter.bug_reporter import BugReporter
from sitepilot.runner.executor import StepExecutor
from sitepilot.storage.artifacts import ArtifactStore
from sitepilot.storage.database import get_engine, init_db
from sitepilot.storage.repositories.base import PipelineStore
from sitepilot.storage.repositories.db_store import DatabasePipelineStore
from sitepilot.storage.repositories.memory import InMemoryPipelineStore
from sitepilot.worker.orchestrator import JobOrchestrator
from sitepilot.worker.queue import DatabaseJobQueue, InMemoryJobQueue, JobQueue
from sitepilot.worker.runner import JobWorker

logger = structlog.get_logger(__name__)


def build_worker(settings: Settings) -> JobWorker:
    """Wire store, queue, browser-side factories and LLM from settings."""
    store: PipelineStore
    queue: JobQueue
    crawl_defaults = {
        "default_max_depth": settings.default_max_depth,
        "default_max_pages": settings.default_max_pages,
    }
    if settings.use_database:
        engine = get_engine()
        store = DatabasePipelineStore(engine, **crawl_defaults)
        queue = DatabaseJobQueue(engine)
    else:
        store = InMemoryPipelineStore(**crawl_defaults)
        queue = InMemoryJobQueue()

    llm = provider_from_settings(settings)
    if llm is None:
        logger.warning("llm_not_configured", provider=str(settings.llm_provider))
    artifacts = ArtifactStore(Path(settings.artifacts_dir).expanduser())

    def crawler_factory() -> Crawler:
        return Crawler(
            headless=settings.headless,
            navigation_timeout_ms=settings.navigation_timeout_ms,
            crawl_delay_ms=settings.crawl_delay_ms,
            allow_private_urls=settings.allow_private_urls,
        )

    def executor_factory() -> StepExecutor:
        return StepExecutor(
            artifacts=artifacts,
            headless=settings.headless,
            navigation_timeout_ms=settings.navigation_timeout_ms,
            selector_timeout_ms=settings.selector_timeout_ms,
        )

    orchestrator = JobOrchestrator(
        store=store,
        queue=queue,
        generator=TestCaseGenerator(llm),
        bug_reporter=BugReporter(store, llm),
        crawler_factory=crawler_factory,
        executor_factory=executor_factory,
    )
    return JobWorker(
        queue,
        orchestrator,
        concurrency=settings.worker_concurrency,
        poll_interval=settings.poll_interval,
    )


async def _serve(settings: Settings) -> None:
    if settings.use_database:
        await init_db()
    await build_worker(settings).run()


def main() -> None:
    """Start the job worker."""
    settings = get_settings()
    setup_logging(log_level=settings.log_level, json_output=settings.log_json)
    asyncio.run(_serve(settings))


if __name__ == "__main__":
    main()
