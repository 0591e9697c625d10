from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from sitepilot.exceptions import LLMProviderError
from sitepilot.models.domain import StepResult, TestRunResult
from sitepilot.reporter.bug_reporter import (
    QA_ANALYST_SYSTEM_PROMPT,
    BugReporter,
    failure_fingerprint,
    severity_for,
)
from sitepilot.storage.repositories.memory import InMemoryPipelineStore
from sitepilot.types import BugSeverity

TEST_CASE = {"id": "tc-1", "name": "Checkout", "priority": "HIGH"}


def _failed_result(error: str | None = "Click step requires a selector") -> TestRunResult:
    return TestRunResult(
        test_case_id="tc-1",
        overall_passed=False,
        total_duration_ms=1200,
        step_results=[
            StepResult(step_index=0, passed=True, screenshot_ref="step-1.png"),
            StepResult(step_index=1, passed=False, error=error, screenshot_ref="error-step-2.png"),
        ],
        console_logs=[{"type": "error", "text": "Uncaught TypeError", "timestamp": "t"}],
        screenshot_refs=["step-1.png", "error-step-2.png"],
    )


def _llm(content: str | None = None, side_effect: Exception | None = None) -> MagicMock:
    llm = MagicMock()
    llm.complete = AsyncMock(return_value=content, side_effect=side_effect)
    return llm


@pytest.mark.unit
class TestSeverityAndFingerprint:
    @pytest.mark.parametrize(
        ("priority", "severity"),
        [
            ("LOW", BugSeverity.LOW),
            ("high", BugSeverity.HIGH),
            ("CRITICAL", BugSeverity.CRITICAL),
            (None, BugSeverity.MEDIUM),
            ("urgent", BugSeverity.MEDIUM),
        ],
    )
    def test_severity_for(self, priority: str | None, severity: BugSeverity) -> None:
        assert severity_for(priority) == severity

    def test_fingerprint_ignores_numbers(self) -> None:
        a = failure_fingerprint("tc-1", "Timeout 10000ms exceeded at step 3")
        b = failure_fingerprint("tc-1", "Timeout 30000ms exceeded at step 4")
        assert a == b

    def test_fingerprint_differs_per_test_case(self) -> None:
        assert failure_fingerprint("tc-1", "boom") != failure_fingerprint("tc-2", "boom")


@pytest.mark.unit
class TestBugReporter:
    @pytest.mark.asyncio
    async def test_report_uses_ai_analysis(self) -> None:
        store = InMemoryPipelineStore()
        llm = _llm(
            json.dumps(
                {
                    "summary": "Checkout button missing",
                    "rootCause": "Selector changed",
                    "reproductionSteps": ["Open cart", "Click checkout"],
                }
            )
        )

        bug = await BugReporter(store, llm).report("run-1", TEST_CASE, _failed_result(), "user-1")

        assert bug["title"] == "Test failure: Checkout"
        assert bug["description"] == "Step 2 failed: Click step requires a selector"
        assert bug["severity"] == "HIGH"
        assert bug["ai_summary"] == "Checkout button missing"
        assert bug["root_cause"] == "Selector changed"
        assert bug["reproduction_steps"] == ["Open cart", "Click checkout"]
        assert bug["test_run_id"] == "run-1"
        assert bug["screenshots"] == ["step-1.png", "error-step-2.png"]
        assert bug["logs"][0]["text"] == "Uncaught TypeError"
        assert bug["reported_by"] == "user-1"
        system, prompt = llm.complete.call_args.args
        assert system == QA_ANALYST_SYSTEM_PROMPT
        assert "Uncaught TypeError" in prompt

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["not json", "", '{"summary": "only"}'])
    async def test_unusable_analysis_uses_fallback(self, content: str) -> None:
        store = InMemoryPipelineStore()

        bug = await BugReporter(store, _llm(content)).report("run-1", TEST_CASE, _failed_result())

        assert bug["ai_summary"] == "Test failed with an unexpected error"
        assert bug["root_cause"] == "Unable to determine root cause automatically"
        assert bug["reproduction_steps"] == ["Run the test case again to reproduce the issue"]

    @pytest.mark.asyncio
    async def test_provider_error_uses_fallback(self) -> None:
        store = InMemoryPipelineStore()
        llm = _llm(side_effect=LLMProviderError("down"))

        bug = await BugReporter(store, llm).report("run-1", TEST_CASE, _failed_result())

        assert bug["ai_summary"] == "Test failed with an unexpected error"

    @pytest.mark.asyncio
    async def test_failure_without_step_error_has_generic_description(self) -> None:
        store = InMemoryPipelineStore()
        result = TestRunResult(test_case_id="tc-1", overall_passed=False)

        bug = await BugReporter(store).report("run-1", TEST_CASE, result)

        assert bug["description"] == "Test failed without specific error"

    @pytest.mark.asyncio
    async def test_one_bug_per_run(self) -> None:
        store = InMemoryPipelineStore()
        reporter = BugReporter(store, _llm("not json"))

        first = await reporter.report("run-1", TEST_CASE, _failed_result())
        second = await reporter.report("run-1", TEST_CASE, _failed_result())

        assert first["id"] == second["id"]
        assert len(await store.list_bugs()) == 1

    @pytest.mark.asyncio
    async def test_separate_runs_get_separate_bugs_with_shared_fingerprint(self) -> None:
        store = InMemoryPipelineStore()
        reporter = BugReporter(store)

        a = await reporter.report("run-1", TEST_CASE, _failed_result())
        b = await reporter.report("run-2", TEST_CASE, _failed_result())

        assert a["id"] != b["id"]
        assert a["fingerprint"] == b["fingerprint"]
        assert len(await store.list_bugs(test_case_id="tc-1")) == 2
