"""Database-backed pipeline store using SQLModel + AsyncSession."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, select
from sqlmodel.ext.asyncio.session import AsyncSession

from sitepilot.exceptions import EntityNotFoundError, StorageError
from sitepilot.models import database as db
from sitepilot.storage.repositories.base import PipelineStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)

# Dict keys persisted as JSON text in ``<key>_json`` columns
_JSON_FIELDS = frozenset(
    {
        "crawl_errors",
        "metadata",
        "steps",
        "tags",
        "results",
        "logs",
        "screenshots",
        "reproduction_steps",
        "test_case_ids",
    }
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _to_column_value(value: Any) -> Any:
    """Aware datetimes are stored as naive UTC."""
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(UTC).replace(tzinfo=None)
    return value


def _loads(raw: str | None, default: Any) -> Any:
    return json.loads(raw) if raw else default


class DatabasePipelineStore(PipelineStore):
    """PostgreSQL-backed pipeline store.

    Maintains the same dict-based interface as the in-memory version so the
    orchestrator does not need to know which one it is talking to.
    """

    def __init__(self, engine: AsyncEngine, **defaults: int) -> None:
        super().__init__(**defaults)
        self._engine = engine

    # -- row conversion ---------------------------------------------------

    def _website_dict(self, w: db.Website) -> dict[str, Any]:
        return {
            "id": w.id,
            "name": w.name,
            "url": w.url,
            "crawl_depth": w.crawl_depth,
            "max_pages": w.max_pages,
            "status": w.status,
            "last_crawled_at": _iso(w.last_crawled_at),
            "crawl_errors": _loads(w.crawl_errors_json, []),
            "created_at": _iso(w.created_at),
        }

    def _page_dict(self, p: db.WebsitePage) -> dict[str, Any]:
        return {
            "id": p.id,
            "website_id": p.website_id,
            "url": p.url,
            "title": p.title,
            "content": p.content,
            "metadata": _loads(p.metadata_json, {}),
            "created_at": _iso(p.created_at),
        }

    def _test_case_dict(self, tc: db.TestCase) -> dict[str, Any]:
        return {
            "id": tc.id,
            "website_id": tc.website_id,
            "page_id": tc.page_id,
            "name": tc.name,
            "description": tc.description,
            "steps": _loads(tc.steps_json, []),
            "priority": tc.priority,
            "tags": _loads(tc.tags_json, []),
            "source": tc.source,
            "status": tc.status,
            "created_at": _iso(tc.created_at),
        }

    def _test_run_dict(self, run: db.TestRun) -> dict[str, Any]:
        return {
            "id": run.id,
            "test_case_id": run.test_case_id,
            "user_id": run.user_id,
            "status": run.status,
            "started_at": _iso(run.started_at),
            "completed_at": _iso(run.completed_at),
            "duration_ms": run.duration_ms,
            "results": _loads(run.results_json, None),
            "logs": _loads(run.logs_json, []),
            "screenshots": _loads(run.screenshots_json, []),
            "error_message": run.error_message,
            "created_at": _iso(run.created_at),
        }

    def _bug_dict(self, bug: db.Bug) -> dict[str, Any]:
        return {
            "id": bug.id,
            "title": bug.title,
            "description": bug.description,
            "severity": bug.severity,
            "ai_summary": bug.ai_summary,
            "root_cause": bug.root_cause,
            "reproduction_steps": _loads(bug.reproduction_steps_json, []),
            "logs": _loads(bug.logs_json, []),
            "screenshots": _loads(bug.screenshots_json, []),
            "test_run_id": bug.test_run_id,
            "test_case_id": bug.test_case_id,
            "fingerprint": bug.fingerprint,
            "reported_by": bug.reported_by,
            "created_at": _iso(bug.created_at),
        }

    def _schedule_dict(self, s: db.TestSchedule) -> dict[str, Any]:
        return {
            "id": s.id,
            "name": s.name,
            "test_case_ids": _loads(s.test_case_ids_json, []),
            "is_active": s.is_active,
            "last_run_at": _iso(s.last_run_at),
            "created_at": _iso(s.created_at),
        }

    @staticmethod
    def _columns(fields: dict[str, Any]) -> dict[str, Any]:
        """Map dict-level field names to column names and values."""
        columns: dict[str, Any] = {}
        for key, value in fields.items():
            if key in _JSON_FIELDS:
                columns[f"{key}_json"] = json.dumps(value) if value is not None else None
            else:
                columns[key] = _to_column_value(value)
        return columns

    # -- generic helpers --------------------------------------------------

    async def _add(self, row: SQLModel) -> SQLModel:
        try:
            async with AsyncSession(self._engine) as session:
                session.add(row)
                await session.commit()
                await session.refresh(row)
                return row
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to insert {type(row).__name__}: {e}") from e

    async def _get_row(self, model: type[SQLModel], entity_id: str) -> SQLModel | None:
        async with AsyncSession(self._engine) as session:
            return await session.get(model, entity_id)

    async def _update_row(
        self, model: type[SQLModel], entity_id: str, fields: dict[str, Any]
    ) -> SQLModel:
        columns = self._columns(fields)
        try:
            async with AsyncSession(self._engine) as session:
                row = await session.get(model, entity_id)
                if row is None:
                    raise EntityNotFoundError(model.__name__, entity_id)
                for key, value in columns.items():
                    if not hasattr(row, key):
                        raise StorageError(f"Unknown {model.__name__} field: {key}")
                    setattr(row, key, value)
                if hasattr(row, "updated_at"):
                    row.updated_at = db._utc_now()  # type: ignore[attr-defined]
                session.add(row)
                await session.commit()
                await session.refresh(row)
                return row
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update {model.__name__} {entity_id}: {e}") from e

    # -- websites ---------------------------------------------------------

    async def create_website(
        self,
        name: str,
        url: str,
        crawl_depth: int | None = None,
        max_pages: int | None = None,
    ) -> dict[str, Any]:
        crawl_depth, max_pages = self._crawl_bounds(crawl_depth, max_pages)
        row = await self._add(
            db.Website(name=name, url=url, crawl_depth=crawl_depth, max_pages=max_pages)
        )
        result = self._website_dict(row)  # type: ignore[arg-type]
        logger.info("website_created", id=result["id"], url=url)
        return result

    async def get_website(self, website_id: str) -> dict[str, Any] | None:
        row = await self._get_row(db.Website, website_id)
        return self._website_dict(row) if row else None  # type: ignore[arg-type]

    async def update_website(self, website_id: str, **fields: Any) -> dict[str, Any]:
        row = await self._update_row(db.Website, website_id, fields)
        return self._website_dict(row)  # type: ignore[arg-type]

    # -- pages ------------------------------------------------------------

    async def create_page(
        self,
        website_id: str,
        url: str,
        title: str = "",
        content: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        row = await self._add(
            db.WebsitePage(
                website_id=website_id,
                url=url,
                title=title,
                content=content,
                metadata_json=json.dumps(metadata or {}),
            )
        )
        return self._page_dict(row)  # type: ignore[arg-type]

    async def list_pages(self, website_id: str) -> list[dict[str, Any]]:
        async with AsyncSession(self._engine) as session:
            statement = (
                select(db.WebsitePage)
                .where(db.WebsitePage.website_id == website_id)
                .order_by(db.WebsitePage.created_at)  # type: ignore[arg-type]
            )
            results = await session.execute(statement)
            return [self._page_dict(p) for p in results.scalars().all()]

    # -- test cases -------------------------------------------------------

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
        row = await self._add(
            db.TestCase(
                website_id=website_id,
                page_id=page_id,
                name=name,
                description=description,
                steps_json=json.dumps(steps),
                priority=priority,
                tags_json=json.dumps(tags or []),
                source=source,
            )
        )
        return self._test_case_dict(row)  # type: ignore[arg-type]

    async def get_test_case(self, test_case_id: str) -> dict[str, Any] | None:
        row = await self._get_row(db.TestCase, test_case_id)
        return self._test_case_dict(row) if row else None  # type: ignore[arg-type]

    async def list_test_cases(self, website_id: str) -> list[dict[str, Any]]:
        async with AsyncSession(self._engine) as session:
            statement = (
                select(db.TestCase)
                .where(db.TestCase.website_id == website_id)
                .order_by(db.TestCase.created_at)  # type: ignore[arg-type]
            )
            results = await session.execute(statement)
            return [self._test_case_dict(tc) for tc in results.scalars().all()]

    # -- test runs --------------------------------------------------------

    async def create_test_run(
        self, test_case_id: str, user_id: str, status: str = "PENDING"
    ) -> dict[str, Any]:
        row = await self._add(db.TestRun(test_case_id=test_case_id, user_id=user_id, status=status))
        return self._test_run_dict(row)  # type: ignore[arg-type]

    async def get_test_run(self, run_id: str) -> dict[str, Any] | None:
        row = await self._get_row(db.TestRun, run_id)
        return self._test_run_dict(row) if row else None  # type: ignore[arg-type]

    async def update_test_run(self, run_id: str, **fields: Any) -> dict[str, Any]:
        row = await self._update_row(db.TestRun, run_id, fields)
        return self._test_run_dict(row)  # type: ignore[arg-type]

    # -- bugs -------------------------------------------------------------

    async def create_bug(self, **fields: Any) -> dict[str, Any]:
        row = await self._add(db.Bug(**self._columns(fields)))
        result = self._bug_dict(row)  # type: ignore[arg-type]
        logger.info("bug_created", id=result["id"], test_run_id=result["test_run_id"])
        return result

    async def get_bug_for_run(self, run_id: str) -> dict[str, Any] | None:
        async with AsyncSession(self._engine) as session:
            statement = select(db.Bug).where(db.Bug.test_run_id == run_id)
            results = await session.execute(statement)
            bug = results.scalars().first()
            return self._bug_dict(bug) if bug else None

    async def list_bugs(self, test_case_id: str | None = None) -> list[dict[str, Any]]:
        async with AsyncSession(self._engine) as session:
            statement = select(db.Bug).order_by(db.Bug.created_at)  # type: ignore[arg-type]
            if test_case_id is not None:
                statement = statement.where(db.Bug.test_case_id == test_case_id)
            results = await session.execute(statement)
            return [self._bug_dict(b) for b in results.scalars().all()]

    # -- schedules --------------------------------------------------------

    async def create_schedule(
        self, name: str, test_case_ids: list[str], is_active: bool = True
    ) -> dict[str, Any]:
        row = await self._add(
            db.TestSchedule(
                name=name,
                test_case_ids_json=json.dumps(test_case_ids),
                is_active=is_active,
            )
        )
        return self._schedule_dict(row)  # type: ignore[arg-type]

    async def get_schedule(self, schedule_id: str) -> dict[str, Any] | None:
        row = await self._get_row(db.TestSchedule, schedule_id)
        return self._schedule_dict(row) if row else None  # type: ignore[arg-type]

    async def update_schedule(self, schedule_id: str, **fields: Any) -> dict[str, Any]:
        row = await self._update_row(db.TestSchedule, schedule_id, fields)
        return self._schedule_dict(row)  # type: ignore[arg-type]
