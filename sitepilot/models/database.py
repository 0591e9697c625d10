"""SQLModel database table models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    """Return current UTC time as naive datetime for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def _new_uuid() -> str:
    return str(uuid.uuid4())


class Website(SQLModel, table=True):
    __tablename__ = "websites"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    name: str = ""
    url: str
    crawl_depth: int = Field(default=3)
    max_pages: int = Field(default=50)
    status: str = Field(default="PENDING")  # PENDING | CRAWLING | COMPLETED | ERROR
    last_crawled_at: datetime | None = None
    crawl_errors_json: str = Field(default="[]")
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class WebsitePage(SQLModel, table=True):
    __tablename__ = "website_pages"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    website_id: str = Field(foreign_key="websites.id", index=True)
    url: str
    title: str = ""
    content: str = ""
    metadata_json: str = Field(default="{}")
    created_at: datetime = Field(default_factory=_utc_now)


class TestCase(SQLModel, table=True):
    __tablename__ = "test_cases"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    website_id: str = Field(foreign_key="websites.id", index=True)
    page_id: str | None = Field(default=None, foreign_key="website_pages.id")
    name: str
    description: str = ""
    steps_json: str = Field(default="[]")
    priority: str = Field(default="MEDIUM")
    tags_json: str = Field(default="[]")
    source: str = Field(default="manual")  # ai | fallback | manual
    status: str = Field(default="ACTIVE")
    created_at: datetime = Field(default_factory=_utc_now)


class TestRun(SQLModel, table=True):
    __tablename__ = "test_runs"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    test_case_id: str = Field(foreign_key="test_cases.id", index=True)
    user_id: str = ""
    status: str = Field(default="PENDING")  # PENDING | RUNNING | COMPLETED | FAILED
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    results_json: str | None = None
    logs_json: str = Field(default="[]")
    screenshots_json: str = Field(default="[]")
    error_message: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)


class Bug(SQLModel, table=True):
    __tablename__ = "bugs"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    test_run_id: str = Field(foreign_key="test_runs.id", unique=True)
    test_case_id: str | None = Field(default=None, index=True)
    title: str
    description: str = ""
    severity: str = Field(default="MEDIUM")
    ai_summary: str = ""
    root_cause: str = ""
    reproduction_steps_json: str = Field(default="[]")
    logs_json: str = Field(default="[]")
    screenshots_json: str = Field(default="[]")
    fingerprint: str = Field(default="", index=True)
    reported_by: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)


class TestSchedule(SQLModel, table=True):
    __tablename__ = "test_schedules"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    name: str = ""
    test_case_ids_json: str = Field(default="[]")
    is_active: bool = Field(default=True)
    last_run_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utc_now)


class PipelineJob(SQLModel, table=True):
    __tablename__ = "pipeline_jobs"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    kind: str  # crawl | test-execution | scheduled-dispatch
    payload_json: str = Field(default="{}")
    status: str = Field(default="PENDING", index=True)
    error_message: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utc_now, index=True)
