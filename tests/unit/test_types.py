import pytest

from sitepilot.constants import DEFAULT_MAX_DEPTH, DEFAULT_MAX_PAGES, DEFAULT_VIEWPORT_WIDTH
from sitepilot.exceptions import (
    CrawlerError,
    EntityNotFoundError,
    GeneratorError,
    InvalidJobTransitionError,
    JobError,
    LLMProviderError,
    RunnerError,
    SitePilotError,
    StorageError,
)
from sitepilot.types import JobKind, JobStatus, LLMProvider, Priority, StepType


@pytest.mark.unit
class TestEnums:
    def test_step_type_values(self) -> None:
        assert [t.value for t in StepType] == ["navigate", "click", "type", "wait", "assert"]

    def test_job_kind_values(self) -> None:
        assert JobKind.CRAWL == "crawl"
        assert JobKind.TEST_EXECUTION == "test-execution"
        assert JobKind.SCHEDULED_DISPATCH == "scheduled-dispatch"

    def test_job_status_values(self) -> None:
        assert {s.value for s in JobStatus} == {"PENDING", "RUNNING", "COMPLETED", "FAILED"}

    def test_priority_parses_from_string(self) -> None:
        assert Priority("HIGH") is Priority.HIGH

    def test_llm_provider_values(self) -> None:
        assert LLMProvider("ollama") is LLMProvider.OLLAMA


@pytest.mark.unit
class TestExceptions:
    @pytest.mark.parametrize(
        "exc_class",
        [CrawlerError, GeneratorError, LLMProviderError, RunnerError, StorageError, JobError],
    )
    def test_inherits_from_base(self, exc_class: type) -> None:
        assert issubclass(exc_class, SitePilotError)

    def test_entity_not_found_message(self) -> None:
        err = EntityNotFoundError("Website", "w1")
        assert str(err) == "Website not found: w1"
        assert err.entity == "Website"
        assert err.entity_id == "w1"
        assert isinstance(err, StorageError)

    def test_invalid_transition_is_job_error(self) -> None:
        assert issubclass(InvalidJobTransitionError, JobError)


@pytest.mark.unit
class TestConstants:
    def test_crawl_defaults(self) -> None:
        assert DEFAULT_MAX_DEPTH == 3
        assert DEFAULT_MAX_PAGES == 50
        assert DEFAULT_VIEWPORT_WIDTH == 1920
