"""Pipeline data contracts shared between crawler, generator, runner and jobs."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from sitepilot.constants import DEFAULT_MAX_DEPTH, DEFAULT_MAX_PAGES
from sitepilot.exceptions import InvalidJobTransitionError
from sitepilot.types import (
    BugSeverity,
    GenerationSource,
    JobKind,
    JobStatus,
    Priority,
    StepType,
)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Crawl
# ---------------------------------------------------------------------------


class CrawlTarget(BaseModel):
    root_url: str
    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=0)
    max_pages: int = Field(default=DEFAULT_MAX_PAGES, gt=0)


class InputInfo(BaseModel):
    selector: str
    type: str = "text"
    name: str = ""
    placeholder: str = ""
    required: bool = False


class FormInfo(BaseModel):
    selector: str
    action: str = ""
    method: str = "GET"
    inputs: list[InputInfo] = []


class ButtonInfo(BaseModel):
    selector: str
    text: str = ""
    type: str = "button"


class LinkInfo(BaseModel):
    selector: str
    text: str = ""
    href: str


class PageRecord(BaseModel):
    """Structural snapshot of one crawled page. Immutable once extracted."""

    model_config = ConfigDict(frozen=True)

    url: str
    title: str = ""
    content: str = ""
    forms: list[FormInfo] = []
    buttons: list[ButtonInfo] = []
    links: list[LinkInfo] = []
    inputs: list[InputInfo] = []

    def metadata(self) -> dict[str, Any]:
        """Return the structural part of the record in its persisted shape."""
        return self.model_dump(include={"forms", "buttons", "links", "inputs"})

    @property
    def non_submit_buttons(self) -> list[ButtonInfo]:
        return [b for b in self.buttons if b.type.lower() != "submit"]


class CrawlResult(BaseModel):
    pages: list[PageRecord] = []
    errors: list[str] = []


# ---------------------------------------------------------------------------
# Test steps (closed tagged variant)
# ---------------------------------------------------------------------------


class _StepBase(BaseModel):
    selector: str | None = None
    value: str | None = None
    description: str = ""
    expected: str | None = None


class NavigateStep(_StepBase):
    type: Literal["navigate"] = "navigate"


class ClickStep(_StepBase):
    type: Literal["click"] = "click"


class TypeStep(_StepBase):
    type: Literal["type"] = "type"


class WaitStep(_StepBase):
    type: Literal["wait"] = "wait"


class AssertStep(_StepBase):
    type: Literal["assert"] = "assert"


TestStep = Annotated[
    NavigateStep | ClickStep | TypeStep | WaitStep | AssertStep,
    Field(discriminator="type"),
]

STEP_ADAPTER: TypeAdapter[Any] = TypeAdapter(TestStep)

_STEP_CLASSES = (NavigateStep, ClickStep, TypeStep, WaitStep, AssertStep)


class MalformedStep(_StepBase):
    """Persisted step data that does not match any known step variant."""

    type: str = ""
    reason: str


def load_steps(raw_steps: Iterable[Any]) -> list[Any]:
    """Validate persisted step data, keeping malformed entries as MalformedStep.

    Order is preserved; a bad entry never aborts loading of the rest.
    """
    steps: list[Any] = []
    for raw in raw_steps:
        if isinstance(raw, (*_STEP_CLASSES, MalformedStep)):
            steps.append(raw)
            continue
        try:
            steps.append(STEP_ADAPTER.validate_python(raw))
        except ValidationError as e:
            raw_type = raw.get("type") if isinstance(raw, dict) else None
            type_name = str(raw_type) if raw_type is not None else ""
            if type_name in {t.value for t in StepType}:
                reason = f"Malformed {type_name} step: {e.errors()[0]['msg']}"
            else:
                reason = f"Unknown step type: {type_name or 'missing'}"
            description = raw.get("description", "") if isinstance(raw, dict) else ""
            steps.append(
                MalformedStep(
                    type=type_name,
                    reason=reason,
                    description=str(description or ""),
                )
            )
    return steps


def dump_steps(steps: Iterable[Any]) -> list[dict[str, Any]]:
    """Serialize steps to their persisted JSON shape."""
    return [step.model_dump(exclude_none=True, exclude={"reason"}) for step in steps]


# ---------------------------------------------------------------------------
# Test cases and results
# ---------------------------------------------------------------------------


class TestCase(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    description: str = ""
    steps: list[TestStep]
    priority: Priority = Priority.MEDIUM
    tags: list[str] = []
    source: GenerationSource = GenerationSource.MANUAL
    page_url: str | None = None
    status: str = "ACTIVE"


class StepResult(BaseModel):
    step_index: int
    passed: bool
    duration_ms: int = 0
    error: str | None = None
    screenshot_ref: str | None = None


class TestRunResult(BaseModel):
    test_case_id: str
    overall_passed: bool
    total_duration_ms: int = 0
    step_results: list[StepResult] = []
    console_logs: list[dict[str, Any]] = []
    screenshot_refs: list[str] = []

    @property
    def error(self) -> str | None:
        """Error of the failing step, if any."""
        for result in self.step_results:
            if not result.passed:
                return f"Step {result.step_index + 1} failed: {result.error}"
        return None


class BugRecord(BaseModel):
    title: str
    description: str
    severity: BugSeverity = BugSeverity.MEDIUM
    ai_summary: str
    root_cause: str
    reproduction_steps: list[str]
    related_test_run_id: str
    test_case_id: str | None = None
    fingerprint: str = ""
    logs: list[dict[str, Any]] = []
    screenshots: list[str] = []
    reported_by: str | None = None


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

_ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.RUNNING},
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


def check_transition(current: JobStatus, new: JobStatus) -> None:
    """Reject status changes that are not forward moves of the job lifecycle."""
    if new not in _ALLOWED_TRANSITIONS[JobStatus(current)]:
        msg = f"Invalid job transition {current} -> {new}"
        raise InvalidJobTransitionError(msg)


class Job(BaseModel):
    id: str = Field(default_factory=_new_id)
    kind: JobKind
    payload: dict[str, Any] = {}
    status: JobStatus = JobStatus.PENDING
    error: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)
