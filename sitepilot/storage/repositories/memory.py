"""In-memory pipeline store (database-backed version in production)."""

from __future__ import annotations

import copy
import uuid
from datetime import UTC, datetime
from typing import Any

import structlog

from sitepilot.exceptions import EntityNotFoundError
from sitepilot.storage.repositories.base import PipelineStore

logger = structlog.get_logger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return copy.deepcopy(value)


class InMemoryPipelineStore(PipelineStore):
    """Dict-backed store for tests and single-process runs.

    Returned dicts are copies, so callers cannot mutate stored state.
    """

    def __init__(self, **defaults: int) -> None:
        super().__init__(**defaults)
        self._websites: dict[str, dict[str, Any]] = {}
        self._pages: dict[str, dict[str, Any]] = {}
        self._test_cases: dict[str, dict[str, Any]] = {}
        self._test_runs: dict[str, dict[str, Any]] = {}
        self._bugs: dict[str, dict[str, Any]] = {}
        self._schedules: dict[str, dict[str, Any]] = {}

    def _insert(self, table: dict[str, dict[str, Any]], row: dict[str, Any]) -> dict[str, Any]:
        row["id"] = str(uuid.uuid4())
        table[row["id"]] = row
        return copy.deepcopy(row)

    def _update(
        self, table: dict[str, dict[str, Any]], entity: str, entity_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        row = table.get(entity_id)
        if row is None:
            raise EntityNotFoundError(entity, entity_id)
        row.update({k: _serialize(v) for k, v in fields.items()})
        return copy.deepcopy(row)

    @staticmethod
    def _get(table: dict[str, dict[str, Any]], entity_id: str) -> dict[str, Any] | None:
        row = table.get(entity_id)
        return copy.deepcopy(row) if row is not None else None

    async def create_website(
        self,
        name: str,
        url: str,
        crawl_depth: int | None = None,
        max_pages: int | None = None,
    ) -> dict[str, Any]:
        crawl_depth, max_pages = self._crawl_bounds(crawl_depth, max_pages)
        website = self._insert(
            self._websites,
            {
                "name": name,
                "url": url,
                "crawl_depth": crawl_depth,
                "max_pages": max_pages,
                "status": "PENDING",
                "last_crawled_at": None,
                "crawl_errors": [],
                "created_at": _now(),
            },
        )
        logger.info("website_created", id=website["id"], url=url)
        return website

    async def get_website(self, website_id: str) -> dict[str, Any] | None:
        return self._get(self._websites, website_id)

    async def update_website(self, website_id: str, **fields: Any) -> dict[str, Any]:
        return self._update(self._websites, "Website", website_id, fields)

    async def create_page(
        self,
        website_id: str,
        url: str,
        title: str = "",
        content: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return self._insert(
            self._pages,
            {
                "website_id": website_id,
                "url": url,
                "title": title,
                "content": content,
                "metadata": copy.deepcopy(metadata or {}),
                "created_at": _now(),
            },
        )

    async def list_pages(self, website_id: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(p) for p in self._pages.values() if p["website_id"] == website_id]

    async def create_test_case(
        self,
        website_id: str,
        name: str,
        steps: list[dict[str, Any]],
        description: str = "",
        priority: str = "MEDIUM",
        tags: list[str] | None = None,
        source: str = "manual",
        page_id: str | None = None,
    ) -> dict[str, Any]:
        return self._insert(
            self._test_cases,
            {
                "website_id": website_id,
                "page_id": page_id,
                "name": name,
                "description": description,
                "steps": copy.deepcopy(steps),
                "priority": priority,
                "tags": list(tags or []),
                "source": source,
                "status": "ACTIVE",
                "created_at": _now(),
            },
        )

    async def get_test_case(self, test_case_id: str) -> dict[str, Any] | None:
        return self._get(self._test_cases, test_case_id)

    async def list_test_cases(self, website_id: str) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(tc) for tc in self._test_cases.values() if tc["website_id"] == website_id
        ]

    async def create_test_run(
        self, test_case_id: str, user_id: str, status: str = "PENDING"
    ) -> dict[str, Any]:
        return self._insert(
            self._test_runs,
            {
                "test_case_id": test_case_id,
                "user_id": user_id,
                "status": status,
                "started_at": None,
                "completed_at": None,
                "duration_ms": None,
                "results": None,
                "logs": [],
                "screenshots": [],
                "error_message": None,
                "created_at": _now(),
            },
        )

    async def get_test_run(self, run_id: str) -> dict[str, Any] | None:
        return self._get(self._test_runs, run_id)

    async def update_test_run(self, run_id: str, **fields: Any) -> dict[str, Any]:
        return self._update(self._test_runs, "TestRun", run_id, fields)

    async def create_bug(self, **fields: Any) -> dict[str, Any]:
        row = {k: _serialize(v) for k, v in fields.items()}
        row.setdefault("created_at", _now())
        bug = self._insert(self._bugs, row)
        logger.info("bug_created", id=bug["id"], test_run_id=bug.get("test_run_id"))
        return bug

    async def get_bug_for_run(self, run_id: str) -> dict[str, Any] | None:
        for bug in self._bugs.values():
            if bug.get("test_run_id") == run_id:
                return copy.deepcopy(bug)
        return None

    async def list_bugs(self, test_case_id: str | None = None) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(b)
            for b in self._bugs.values()
            if test_case_id is None or b.get("test_case_id") == test_case_id
        ]

    async def create_schedule(
        self, name: str, test_case_ids: list[str], is_active: bool = True
    ) -> dict[str, Any]:
        return self._insert(
            self._schedules,
            {
                "name": name,
                "test_case_ids": list(test_case_ids),
                "is_active": is_active,
                "last_run_at": None,
                "created_at": _now(),
            },
        )

    async def get_schedule(self, schedule_id: str) -> dict[str, Any] | None:
        return self._get(self._schedules, schedule_id)

    async def update_schedule(self, schedule_id: str, **fields: Any) -> dict[str, Any]:
        return self._update(self._schedules, "TestSchedule", schedule_id, fields)
