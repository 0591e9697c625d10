"""Job orchestration: crawl, test-execution and scheduled-dispatch jobs."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from sitepilot.constants import SYSTEM_USER_ID
from sitepilot.crawler.crawler import Crawler
from sitepilot.exceptions import EntityNotFoundError, JobError
from sitepilot.models.domain import CrawlTarget, Job, PageRecord, dump_steps
from sitepilot.runner.executor import StepExecutor
from sitepilot.types import JobKind, RunStatus, WebsiteStatus

if TYPE_CHECKING:
    from sitepilot.generator.case_builder import TestCaseGenerator
    from sitepilot.models.domain import TestRunResult
    from sitepilot.reporter.bug_reporter import BugReporter
    from sitepilot.storage.repositories.base import PipelineStore
    from sitepilot.worker.queue import JobQueue

logger = structlog.get_logger(__name__)

CrawlerFactory = Callable[[], Crawler]
ExecutorFactory = Callable[[], StepExecutor]


def _now() -> datetime:
    return datetime.now(UTC)


def page_record_from_row(row: dict[str, Any]) -> PageRecord:
    """Rebuild a PageRecord from its persisted dict."""
    metadata = row.get("metadata") or {}
    return PageRecord(
        url=row["url"],
        title=row.get("title") or "",
        content=row.get("content") or "",
        forms=metadata.get("forms", []),
        buttons=metadata.get("buttons", []),
        links=metadata.get("links", []),
        inputs=metadata.get("inputs", []),
    )


class JobOrchestrator:
    """Enqueues jobs and runs them against the store.

    Each job mutates only the entities it owns by id. Every collaborator is
    passed in, so tests can substitute doubles for the store, the browser
    side and the LLM.
    """

    def __init__(
        self,
        store: PipelineStore,
        queue: JobQueue,
        generator: TestCaseGenerator,
        bug_reporter: BugReporter,
        crawler_factory: CrawlerFactory | None = None,
        executor_factory: ExecutorFactory | None = None,
    ) -> None:
        self._store = store
        self._queue = queue
        self._generator = generator
        self._bug_reporter = bug_reporter
        self._crawler_factory = crawler_factory or Crawler
        self._executor_factory = executor_factory or StepExecutor

    # ------------------------------------------------------------------
    # Enqueue API
    # ------------------------------------------------------------------

    async def enqueue_crawl(self, website_id: str) -> Job:
        await self._require(self._store.get_website, "Website", website_id)
        return await self._queue.enqueue(JobKind.CRAWL, {"website_id": website_id})

    async def enqueue_test_execution(self, test_case_ids: Sequence[str], user_id: str) -> list[str]:
        """Create one PENDING run per test case and queue it; returns the run ids.

        Unknown test case ids are rejected before anything is created.
        """
        for test_case_id in test_case_ids:
            await self._require(self._store.get_test_case, "TestCase", test_case_id)
        return [await self._enqueue_run(tc_id, user_id) for tc_id in test_case_ids]

    async def enqueue_schedule_dispatch(self, schedule_id: str) -> Job:
        return await self._queue.enqueue(JobKind.SCHEDULED_DISPATCH, {"schedule_id": schedule_id})

    async def _enqueue_run(self, test_case_id: str, user_id: str) -> str:
        run = await self._store.create_test_run(test_case_id, user_id, status=RunStatus.PENDING)
        await self._queue.enqueue(
            JobKind.TEST_EXECUTION, {"run_id": run["id"], "test_case_id": test_case_id}
        )
        return run["id"]

    # ------------------------------------------------------------------
    # Synchronous site-level generation
    # ------------------------------------------------------------------

    async def generate_site_tests(self, website_id: str) -> list[dict[str, Any]]:
        """Regenerate whole-site test cases from the stored pages and persist them."""
        website = await self._require(self._store.get_website, "Website", website_id)
        page_rows = await self._store.list_pages(website_id)
        page_ids = {row["url"]: row["id"] for row in page_rows}
        cases = await self._generator.generate_for_site(
            website, [page_record_from_row(row) for row in page_rows]
        )

        saved = []
        for case in cases:
            saved.append(
                await self._store.create_test_case(
                    website_id,
                    name=case.name,
                    description=case.description,
                    steps=dump_steps(case.steps),
                    priority=str(case.priority),
                    tags=case.tags,
                    source=str(case.source),
                    page_id=page_ids.get(case.page_url or ""),
                )
            )
        logger.info("site_tests_saved", website_id=website_id, count=len(saved))
        return saved

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    async def process(self, job: Job) -> None:
        """Run one claimed job; exceptions propagate to the worker."""
        match job.kind:
            case JobKind.CRAWL:
                await self.run_crawl(self._payload(job, "website_id"))
            case JobKind.TEST_EXECUTION:
                await self.run_test_execution(self._payload(job, "run_id"))
            case JobKind.SCHEDULED_DISPATCH:
                await self.run_schedule_dispatch(self._payload(job, "schedule_id"))
            case _:
                raise JobError(f"Unknown job kind: {job.kind}")

    async def run_crawl(self, website_id: str) -> None:
        website = await self._require(self._store.get_website, "Website", website_id)
        await self._store.update_website(website_id, status=WebsiteStatus.CRAWLING)
        logger.info("crawl_job_started", website_id=website_id, url=website["url"])

        try:
            crawler = self._crawler_factory()
            result = await crawler.crawl(
                CrawlTarget(
                    root_url=website["url"],
                    max_depth=website["crawl_depth"],
                    max_pages=website["max_pages"],
                )
            )

            saved_pages = [
                (
                    page,
                    await self._store.create_page(
                        website_id,
                        url=page.url,
                        title=page.title,
                        content=page.content,
                        metadata=page.metadata(),
                    ),
                )
                for page in result.pages
            ]

            case_count = 0
            for page, row in saved_pages:
                sequences, source = await self._generator.generate_with_source(
                    page.content, page.url, page
                )
                for i, steps in enumerate(sequences, start=1):
                    await self._store.create_test_case(
                        website_id,
                        name=f"Test Case {i} for {page.title or page.url}",
                        description=f"Auto-generated test case for {page.url}",
                        steps=dump_steps(steps),
                        source=str(source),
                        page_id=row["id"],
                    )
                    case_count += 1

            await self._store.update_website(
                website_id,
                status=WebsiteStatus.COMPLETED,
                last_crawled_at=_now(),
                crawl_errors=result.errors,
            )
        except Exception:
            await self._store.update_website(website_id, status=WebsiteStatus.ERROR)
            raise

        logger.info(
            "crawl_job_completed",
            website_id=website_id,
            pages=len(result.pages),
            errors=len(result.errors),
            test_cases=case_count,
        )

    async def run_test_execution(self, run_id: str) -> None:
        """Execute a queued run; the run ends COMPLETED or FAILED, never RUNNING."""
        run = await self._require(self._store.get_test_run, "TestRun", run_id)
        await self._store.update_test_run(run_id, status=RunStatus.RUNNING, started_at=_now())

        try:
            test_case = await self._require(
                self._store.get_test_case, "TestCase", run["test_case_id"]
            )
            executor = self._executor_factory()
            result = await executor.run(test_case["id"], test_case["steps"], run_id=run_id)
            await self._store.update_test_run(run_id, **self._run_fields(result))
        except Exception as e:
            await self._store.update_test_run(
                run_id,
                status=RunStatus.FAILED,
                completed_at=_now(),
                error_message=str(e) or type(e).__name__,
            )
            raise

        logger.info("test_run_recorded", run_id=run_id, passed=result.overall_passed)
        if not result.overall_passed:
            await self._bug_reporter.report(
                run_id, test_case, result, reported_by=run.get("user_id")
            )

    async def run_schedule_dispatch(self, schedule_id: str) -> None:
        """Queue a run per test case of an active schedule; missing or inactive is a no-op."""
        schedule = await self._store.get_schedule(schedule_id)
        if schedule is None or not schedule.get("is_active"):
            logger.info("schedule_skipped", schedule_id=schedule_id, found=schedule is not None)
            return

        run_ids = []
        for test_case_id in schedule["test_case_ids"]:
            if await self._store.get_test_case(test_case_id) is None:
                logger.warning(
                    "scheduled_test_case_missing",
                    schedule_id=schedule_id,
                    test_case_id=test_case_id,
                )
                continue
            run_ids.append(await self._enqueue_run(test_case_id, SYSTEM_USER_ID))

        await self._store.update_schedule(schedule_id, last_run_at=_now())
        logger.info("schedule_dispatched", schedule_id=schedule_id, runs=len(run_ids))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _run_fields(result: TestRunResult) -> dict[str, Any]:
        return {
            "status": RunStatus.COMPLETED if result.overall_passed else RunStatus.FAILED,
            "completed_at": _now(),
            "duration_ms": result.total_duration_ms,
            "results": {
                "passed": result.overall_passed,
                "steps": [r.model_dump(mode="json") for r in result.step_results],
            },
            "logs": result.console_logs,
            "screenshots": result.screenshot_refs,
            "error_message": result.error,
        }

    @staticmethod
    def _payload(job: Job, key: str) -> str:
        try:
            return str(job.payload[key])
        except KeyError as e:
            raise JobError(f"{job.kind} job {job.id} is missing '{key}'") from e

    @staticmethod
    async def _require(
        getter: Callable[[str], Any], entity: str, entity_id: str
    ) -> dict[str, Any]:
        row = await getter(entity_id)
        if row is None:
            raise EntityNotFoundError(entity, entity_id)
        return row
