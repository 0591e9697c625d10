import pytest
from pydantic import ValidationError

from sitepilot.exceptions import InvalidJobTransitionError
from sitepilot.models.domain import (
    AssertStep,
    ButtonInfo,
    ClickStep,
    CrawlTarget,
    Job,
    MalformedStep,
    NavigateStep,
    PageRecord,
    StepResult,
    TestCase,
    TestRunResult,
    check_transition,
    dump_steps,
    load_steps,
)
from sitepilot.types import GenerationSource, JobKind, JobStatus, Priority


@pytest.mark.unit
class TestCrawlTarget:
    def test_defaults(self) -> None:
        target = CrawlTarget(root_url="https://x.test")
        assert target.max_depth == 3
        assert target.max_pages == 50

    def test_rejects_negative_depth(self) -> None:
        with pytest.raises(ValidationError):
            CrawlTarget(root_url="https://x.test", max_depth=-1)

    def test_rejects_zero_pages(self) -> None:
        with pytest.raises(ValidationError):
            CrawlTarget(root_url="https://x.test", max_pages=0)


@pytest.mark.unit
class TestPageRecord:
    def test_is_immutable(self) -> None:
        record = PageRecord(url="https://x.test/")
        with pytest.raises(ValidationError):
            record.title = "changed"  # type: ignore[misc]

    def test_non_submit_buttons(self) -> None:
        record = PageRecord(
            url="https://x.test/",
            buttons=[
                ButtonInfo(selector="body > button:nth-of-type(1)", type="submit"),
                ButtonInfo(selector="body > button:nth-of-type(2)", type="button"),
            ],
        )
        assert [b.selector for b in record.non_submit_buttons] == ["body > button:nth-of-type(2)"]

    def test_metadata_excludes_text(self) -> None:
        metadata = PageRecord(url="https://x.test/", content="hello").metadata()
        assert set(metadata) == {"forms", "buttons", "links", "inputs"}


@pytest.mark.unit
class TestSteps:
    def test_load_steps_builds_variants_in_order(self) -> None:
        steps = load_steps(
            [
                {"type": "navigate", "value": "https://x.test/"},
                {"type": "click", "selector": "#go"},
                {"type": "assert", "selector": "h1"},
            ]
        )
        assert [type(s) for s in steps] == [NavigateStep, ClickStep, AssertStep]

    def test_unknown_type_becomes_malformed(self) -> None:
        (step,) = load_steps([{"type": "hover", "selector": "#x", "description": "hover it"}])
        assert isinstance(step, MalformedStep)
        assert step.reason == "Unknown step type: hover"
        assert step.description == "hover it"

    def test_missing_type_becomes_malformed(self) -> None:
        (step,) = load_steps([{"selector": "#x"}])
        assert isinstance(step, MalformedStep)
        assert step.reason == "Unknown step type: missing"

    def test_non_dict_entry_becomes_malformed(self) -> None:
        (step,) = load_steps(["click #x"])
        assert isinstance(step, MalformedStep)

    def test_bad_entry_does_not_abort_loading(self) -> None:
        steps = load_steps([{"type": "bogus"}, {"type": "wait", "value": "10"}])
        assert len(steps) == 2
        assert steps[1].value == "10"

    def test_dump_steps_omits_empty_fields(self) -> None:
        dumped = dump_steps([ClickStep(selector="#go", description="press")])
        assert dumped == [{"type": "click", "selector": "#go", "description": "press"}]


@pytest.mark.unit
class TestTestCase:
    def test_defaults(self) -> None:
        case = TestCase(name="Smoke", steps=[NavigateStep(value="https://x.test/")])
        assert case.priority == Priority.MEDIUM
        assert case.source == GenerationSource.MANUAL
        assert case.status == "ACTIVE"
        assert case.id

    def test_steps_validated_from_dicts(self) -> None:
        case = TestCase(name="Smoke", steps=[{"type": "assert", "selector": "h1"}])
        assert isinstance(case.steps[0], AssertStep)


@pytest.mark.unit
class TestTestRunResult:
    def test_error_reports_first_failing_step(self) -> None:
        result = TestRunResult(
            test_case_id="tc",
            overall_passed=False,
            step_results=[
                StepResult(step_index=0, passed=True),
                StepResult(step_index=1, passed=False, error="Click step requires a selector"),
            ],
        )
        assert result.error == "Step 2 failed: Click step requires a selector"

    def test_error_none_when_passed(self) -> None:
        result = TestRunResult(
            test_case_id="tc",
            overall_passed=True,
            step_results=[StepResult(step_index=0, passed=True)],
        )
        assert result.error is None


@pytest.mark.unit
class TestJobTransitions:
    @pytest.mark.parametrize(
        ("current", "new"),
        [
            (JobStatus.PENDING, JobStatus.RUNNING),
            (JobStatus.RUNNING, JobStatus.COMPLETED),
            (JobStatus.RUNNING, JobStatus.FAILED),
        ],
    )
    def test_allowed(self, current: JobStatus, new: JobStatus) -> None:
        check_transition(current, new)

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            (JobStatus.RUNNING, JobStatus.PENDING),
            (JobStatus.COMPLETED, JobStatus.RUNNING),
            (JobStatus.FAILED, JobStatus.PENDING),
            (JobStatus.PENDING, JobStatus.COMPLETED),
        ],
    )
    def test_rejected(self, current: JobStatus, new: JobStatus) -> None:
        with pytest.raises(InvalidJobTransitionError):
            check_transition(current, new)

    def test_job_terminal_states(self) -> None:
        job = Job(kind=JobKind.CRAWL)
        assert job.status == JobStatus.PENDING
        assert job.is_terminal is False
        job.status = JobStatus.FAILED
        assert job.is_terminal is True
