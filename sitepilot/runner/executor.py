"""Step-sequence execution engine driving a real browser page."""

from __future__ import annotations

import asyncio
import re
import time
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from sitepilot.constants import (
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DEFAULT_SELECTOR_TIMEOUT_MS,
    DEFAULT_WAIT_MS,
    MAX_WAIT_MS,
    STEP_DEADLINE_GRACE_SECONDS,
    STEP_SETTLE_DELAY_MS,
)
from sitepilot.crawler.browser import BrowserManager
from sitepilot.models.domain import (
    AssertStep,
    ClickStep,
    MalformedStep,
    NavigateStep,
    StepResult,
    TestRunResult,
    TypeStep,
    WaitStep,
    load_steps,
)
from sitepilot.utils.timing import elapsed_ms

if TYPE_CHECKING:
    from playwright.async_api import ConsoleMessage, Page, Request

    from sitepilot.storage.artifacts import ArtifactStore

logger = structlog.get_logger(__name__)

_LEADING_INT = re.compile(r"^\s*(\d+)")


class RunState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"


class StepFailure(Exception):
    """A step could not be carried out; message becomes the StepResult error."""


def parse_wait_ms(value: str | None) -> int:
    """Parse a wait step value as milliseconds, defaulting when absent or invalid."""
    if value is None:
        return DEFAULT_WAIT_MS
    match = _LEADING_INT.match(value)
    if not match:
        return DEFAULT_WAIT_MS
    return min(int(match.group(1)), MAX_WAIT_MS)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class StepExecutor:
    """Runs one ordered step sequence against a fresh browser context, fail-fast."""

    def __init__(
        self,
        browser: BrowserManager | None = None,
        artifacts: ArtifactStore | None = None,
        headless: bool = True,
        navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
        selector_timeout_ms: int = DEFAULT_SELECTOR_TIMEOUT_MS,
        settle_delay_ms: int = STEP_SETTLE_DELAY_MS,
    ) -> None:
        self._browser = browser or BrowserManager(
            headless=headless, default_timeout_ms=navigation_timeout_ms
        )
        self._artifacts = artifacts
        self._navigation_timeout_ms = navigation_timeout_ms
        self._selector_timeout_ms = selector_timeout_ms
        self._settle_delay_ms = settle_delay_ms
        self.state = RunState.IDLE

    async def run(
        self,
        test_case_id: str,
        steps: Sequence[Any],
        run_id: str | None = None,
    ) -> TestRunResult:
        """Execute ``steps`` in order and return the step-level trace.

        Step problems (missing fields, timeouts, engine errors) are recorded
        in the result; only failures to obtain a browser context raise.
        """
        run_id = run_id or str(uuid.uuid4())
        parsed = load_steps(steps)
        step_results: list[StepResult] = []
        screenshot_refs: list[str] = []
        console_logs: list[dict[str, Any]] = []

        self.state = RunState.RUNNING
        logger.info("test_run_started", test_case_id=test_case_id, run_id=run_id, steps=len(parsed))
        start = time.monotonic()

        try:
            await self._browser.launch()
            async with self._browser.page_session() as page:
                self._attach_listeners(page, console_logs)
                for index, step in enumerate(parsed):
                    step_start = time.monotonic()
                    error = await self._run_step(page, step)
                    duration = elapsed_ms(step_start)
                    passed = error is None

                    ref = await self._capture_screenshot(page, run_id, index, passed)
                    if ref:
                        screenshot_refs.append(ref)
                    step_results.append(
                        StepResult(
                            step_index=index,
                            passed=passed,
                            duration_ms=duration,
                            error=error,
                            screenshot_ref=ref,
                        )
                    )
                    if not passed:
                        logger.info("step_failed", run_id=run_id, step=index + 1, error=error)
                        break
                    if self._settle_delay_ms and index < len(parsed) - 1:
                        await page.wait_for_timeout(self._settle_delay_ms)
        except BaseException:
            self.state = RunState.FAILED
            raise
        finally:
            await self._browser.close()

        overall_passed = len(step_results) == len(parsed) and all(r.passed for r in step_results)
        self.state = RunState.PASSED if overall_passed else RunState.FAILED
        result = TestRunResult(
            test_case_id=test_case_id,
            overall_passed=overall_passed,
            total_duration_ms=elapsed_ms(start),
            step_results=step_results,
            console_logs=console_logs,
            screenshot_refs=screenshot_refs,
        )
        logger.info(
            "test_run_finished",
            run_id=run_id,
            passed=overall_passed,
            steps_executed=len(step_results),
            duration_ms=result.total_duration_ms,
        )
        return result

    async def _run_step(self, page: Page, step: Any) -> str | None:
        """Execute one step under a hard deadline; return an error message or None."""
        deadline = self._deadline_for(step)
        try:
            await asyncio.wait_for(self._dispatch(page, step), deadline)
        except StepFailure as e:
            return str(e)
        except TimeoutError:
            return f"Step timed out after {deadline:.0f}s"
        except Exception as e:
            return str(e) or type(e).__name__
        return None

    async def _dispatch(self, page: Page, step: Any) -> None:
        timeout = self._selector_timeout_ms
        match step:
            case NavigateStep(value=url):
                if not url:
                    raise StepFailure("Navigate step requires a URL")
                await page.goto(url, wait_until="networkidle", timeout=self._navigation_timeout_ms)
            case ClickStep(selector=selector):
                if not selector:
                    raise StepFailure("Click step requires a selector")
                await page.wait_for_selector(selector, timeout=timeout)
                await page.click(selector, timeout=timeout)
            case TypeStep(selector=selector, value=value):
                if not selector or not value:
                    raise StepFailure("Type step requires selector and value")
                await page.wait_for_selector(selector, timeout=timeout)
                await page.fill(selector, value, timeout=timeout)
            case WaitStep(value=value):
                await page.wait_for_timeout(parse_wait_ms(value))
            case AssertStep(selector=selector):
                if not selector:
                    raise StepFailure("Assert step requires a selector")
                await page.wait_for_selector(selector, state="visible", timeout=timeout)
            case MalformedStep(reason=reason):
                raise StepFailure(reason)
            case _:
                raise StepFailure(f"Unknown step type: {getattr(step, 'type', type(step).__name__)}")

    def _deadline_for(self, step: Any) -> float:
        budget_ms = max(self._navigation_timeout_ms, 2 * self._selector_timeout_ms)
        if isinstance(step, WaitStep):
            budget_ms = parse_wait_ms(step.value)
        return budget_ms / 1000 + STEP_DEADLINE_GRACE_SECONDS

    async def _capture_screenshot(
        self, page: Page, run_id: str, index: int, passed: bool
    ) -> str | None:
        """Screenshot after a step; failures are logged and never fail the step."""
        if not self._artifacts:
            return None
        name = f"step-{index + 1}.png" if passed else f"error-step-{index + 1}.png"
        deadline = self._selector_timeout_ms / 1000 + STEP_DEADLINE_GRACE_SECONDS
        try:
            data = await asyncio.wait_for(
                page.screenshot(type="png", full_page=True, timeout=self._selector_timeout_ms),
                deadline,
            )
            self._artifacts.save_screenshot(run_id, name, data)
        except Exception as e:
            logger.warning("screenshot_failed", run_id=run_id, step=index + 1, error=str(e))
            return None
        return name

    def _attach_listeners(self, page: Page, console_logs: list[dict[str, Any]]) -> None:
        def _on_console(msg: ConsoleMessage) -> None:
            console_logs.append({"type": msg.type, "text": msg.text, "timestamp": _now_iso()})

        def _on_request_failed(request: Request) -> None:
            console_logs.append(
                {
                    "type": "network_error",
                    "url": request.url,
                    "error": request.failure,
                    "timestamp": _now_iso(),
                }
            )

        page.on("console", _on_console)
        page.on("requestfailed", _on_request_failed)
