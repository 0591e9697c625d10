"""Bug records for failed test runs, with LLM root-cause analysis."""

from __future__ import annotations

import hashlib
import json
import re
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from sitepilot.exceptions import GeneratorError, LLMProviderError
from sitepilot.models.ai import BugAnalysis, extract_json
from sitepilot.models.domain import BugRecord
from sitepilot.types import BugSeverity, Priority

if TYPE_CHECKING:
    from sitepilot.llm.provider import LLMProviderBase
    from sitepilot.models.domain import TestRunResult
    from sitepilot.storage.repositories.base import PipelineStore

logger = structlog.get_logger(__name__)

QA_ANALYST_SYSTEM_PROMPT = (
    "You are an expert QA analyst. Analyze test failures and provide actionable insights."
)

FALLBACK_ANALYSIS = BugAnalysis(
    summary="Test failed with an unexpected error",
    root_cause="Unable to determine root cause automatically",
    reproduction_steps=["Run the test case again to reproduce the issue"],
)

NO_ERROR_DESCRIPTION = "Test failed without specific error"

_SEVERITY_BY_PRIORITY = {
    Priority.LOW: BugSeverity.LOW,
    Priority.MEDIUM: BugSeverity.MEDIUM,
    Priority.HIGH: BugSeverity.HIGH,
    Priority.CRITICAL: BugSeverity.CRITICAL,
}

_DIGITS = re.compile(r"\d+")
_ANALYSIS_TEMPERATURE = 0.2


def severity_for(priority: str | None) -> BugSeverity:
    """Map a test case priority to a bug severity (MEDIUM when unknown)."""
    try:
        return _SEVERITY_BY_PRIORITY[Priority(str(priority).upper())]
    except (KeyError, ValueError):
        return BugSeverity.MEDIUM


def failure_fingerprint(test_case_id: str, error: str | None) -> str:
    """Stable grouping key: test case plus the error with numbers masked."""
    signature = _DIGITS.sub("#", error or "")
    return hashlib.sha256(f"{test_case_id}\n{signature}".encode()).hexdigest()


class BugReporter:
    """Produces exactly one bug per failed run."""

    def __init__(self, store: PipelineStore, llm: LLMProviderBase | None = None) -> None:
        self._store = store
        self._llm = llm

    async def analyze(self, error: str, logs: list[dict[str, Any]]) -> BugAnalysis:
        """Ask the LLM for a summary; any failure yields the fixed fallback analysis."""
        if self._llm is None:
            return FALLBACK_ANALYSIS
        prompt = (
            "Analyze this test failure and provide insights:\n\n"
            f"Error: {error}\n"
            f"Logs: {json.dumps(logs, default=str)}\n\n"
            "Please provide:\n"
            "1. A concise summary of what went wrong\n"
            "2. The most likely root cause\n"
            "3. Step-by-step reproduction instructions\n\n"
            "Return as JSON with keys: summary, rootCause, reproductionSteps"
        )
        try:
            content = await self._llm.complete(
                QA_ANALYST_SYSTEM_PROMPT, prompt, temperature=_ANALYSIS_TEMPERATURE
            )
            if not content.strip():
                raise GeneratorError("Empty response from LLM")
            return BugAnalysis.model_validate(extract_json(content))
        except (LLMProviderError, GeneratorError, ValidationError, ValueError) as e:
            logger.warning("ai_bug_analysis_failed", error=str(e))
            return FALLBACK_ANALYSIS

    async def report(
        self,
        run_id: str,
        test_case: dict[str, Any],
        result: TestRunResult,
        reported_by: str | None = None,
    ) -> dict[str, Any]:
        """Persist the bug for a failed run and return it.

        Reporting the same run twice returns the existing bug.
        """
        existing = await self._store.get_bug_for_run(run_id)
        if existing is not None:
            logger.info("bug_already_reported", run_id=run_id, bug_id=existing["id"])
            return existing

        error = result.error or NO_ERROR_DESCRIPTION
        analysis = await self.analyze(error, result.console_logs)
        record = BugRecord(
            title=f"Test failure: {test_case.get('name', result.test_case_id)}",
            description=error,
            severity=severity_for(test_case.get("priority")),
            ai_summary=analysis.summary,
            root_cause=analysis.root_cause,
            reproduction_steps=analysis.reproduction_steps,
            related_test_run_id=run_id,
            test_case_id=result.test_case_id,
            fingerprint=failure_fingerprint(result.test_case_id, result.error),
            logs=result.console_logs,
            screenshots=result.screenshot_refs,
            reported_by=reported_by,
        )
        fields = record.model_dump(mode="json", exclude={"related_test_run_id"})
        bug = await self._store.create_bug(test_run_id=run_id, **fields)
        logger.info(
            "bug_reported",
            bug_id=bug["id"],
            run_id=run_id,
            severity=bug["severity"],
        )
        return bug
