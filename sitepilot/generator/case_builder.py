"""LLM-powered test case generator with a deterministic template fallback."""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from sitepilot.constants import SITE_PROMPT_CONTENT_CHARS, SITE_PROMPT_MAX_PAGES
from sitepilot.exceptions import GeneratorError, LLMProviderError
from sitepilot.models.ai import PAGE_STEPS_ADAPTER, SITE_CASES_ADAPTER, extract_json
from sitepilot.models.domain import (
    AssertStep,
    ClickStep,
    NavigateStep,
    PageRecord,
    TestCase,
    TypeStep,
)
from sitepilot.types import GenerationSource, Priority

if TYPE_CHECKING:
    from sitepilot.llm.provider import LLMProviderBase

logger = structlog.get_logger(__name__)

QA_ENGINEER_SYSTEM_PROMPT = (
    "You are an expert QA engineer. Generate detailed, practical test cases "
    "for web applications. Always return valid JSON."
)

HEADING_SELECTOR = "h1, h2, h3"
REQUIRED_FIELD_SELECTOR = "input[required], select[required]"
SUBMIT_SELECTOR = 'button[type="submit"], input[type="submit"]'
NON_SUBMIT_BUTTON_SELECTOR = 'button:not([type="submit"]), input[type="button"]'
SAMPLE_INPUT_VALUE = "test@example.com"

_PAGE_TEMPERATURE = 0.3
_SITE_TEMPERATURE = 0.7

# Failures that route to the template fallback instead of surfacing
_AI_FAILURES = (LLMProviderError, GeneratorError, ValidationError, ValueError)


class TestCaseGenerator:
    """Turns crawled pages into step sequences, via the LLM when one is configured."""

    def __init__(self, llm: LLMProviderBase | None = None) -> None:
        self._llm = llm

    async def generate(
        self,
        page_content: str,
        page_url: str,
        page: PageRecord | None = None,
    ) -> list[list[Any]]:
        """Return one step sequence per generated test case for a single page."""
        sequences, _ = await self.generate_with_source(page_content, page_url, page)
        return sequences

    async def generate_with_source(
        self,
        page_content: str,
        page_url: str,
        page: PageRecord | None = None,
    ) -> tuple[list[list[Any]], GenerationSource]:
        """Like ``generate`` but also report whether the AI or the fallback produced it."""
        if self._llm is not None:
            try:
                content = await self._llm.complete(
                    QA_ENGINEER_SYSTEM_PROMPT,
                    self._build_page_prompt(page_content, page_url),
                    temperature=_PAGE_TEMPERATURE,
                )
                parsed = PAGE_STEPS_ADAPTER.validate_python(self._parse(content))
                sequences = [[step.to_step() for step in case] for case in parsed]
                logger.info("page_tests_generated", url=page_url, count=len(sequences))
                return sequences, GenerationSource.AI
            except _AI_FAILURES as e:
                logger.warning("ai_page_generation_failed", url=page_url, error=str(e))

        record = page or PageRecord(url=page_url, content=page_content)
        cases = self.fallback_cases(page_url, [record])
        logger.info("page_tests_fallback", url=page_url, count=len(cases))
        return [list(case.steps) for case in cases], GenerationSource.FALLBACK

    async def generate_for_site(
        self, website: dict[str, Any], pages: Sequence[PageRecord]
    ) -> list[TestCase]:
        """Generate 5-8 whole-site test cases, falling back to the template set."""
        root_url = website["url"]
        if self._llm is not None and pages:
            try:
                content = await self._llm.complete(
                    QA_ENGINEER_SYSTEM_PROMPT,
                    self._build_site_prompt(website, pages),
                    temperature=_SITE_TEMPERATURE,
                )
                raw_cases = SITE_CASES_ADAPTER.validate_python(self._parse(content))
                cases = [
                    TestCase(
                        name=raw.name,
                        description=raw.description,
                        steps=[step.to_step() for step in raw.steps],
                        priority=raw.priority,
                        tags=raw.tags,
                        source=GenerationSource.AI,
                        page_url=pages[i % min(len(pages), SITE_PROMPT_MAX_PAGES)].url,
                    )
                    for i, raw in enumerate(raw_cases)
                ]
                logger.info("site_tests_generated", url=root_url, count=len(cases))
                return cases
            except _AI_FAILURES as e:
                logger.warning("ai_site_generation_failed", url=root_url, error=str(e))

        cases = self.fallback_cases(root_url, pages)
        logger.info("site_tests_fallback", url=root_url, count=len(cases))
        return cases

    def fallback_cases(self, root_url: str, pages: Sequence[PageRecord]) -> list[TestCase]:
        """Deterministic template set; never empty.

        Always a navigation case, plus a form case when any page has a form
        and a button case when any page has a non-submit button.
        """
        cases = [
            TestCase(
                name="Homepage Navigation",
                description="Verify that the homepage loads correctly and shows a heading",
                priority=Priority.HIGH,
                tags=["navigation", "homepage"],
                source=GenerationSource.FALLBACK,
                page_url=root_url,
                steps=[
                    NavigateStep(value=root_url, description="Navigate to homepage"),
                    AssertStep(
                        selector=HEADING_SELECTOR,
                        description="Check for main heading",
                        expected="Page has a visible heading",
                    ),
                ],
            )
        ]

        form_page = next((p for p in pages if p.forms), None)
        if form_page is not None:
            cases.append(
                TestCase(
                    name="Form Submission Test",
                    description="Test form submission with valid data",
                    priority=Priority.MEDIUM,
                    tags=["forms", "validation"],
                    source=GenerationSource.FALLBACK,
                    page_url=form_page.url,
                    steps=[
                        NavigateStep(value=form_page.url, description="Navigate to form page"),
                        TypeStep(
                            selector=REQUIRED_FIELD_SELECTOR,
                            value=SAMPLE_INPUT_VALUE,
                            description="Fill required field",
                        ),
                        ClickStep(
                            selector=SUBMIT_SELECTOR,
                            description="Submit form",
                            expected="Form is submitted",
                        ),
                    ],
                )
            )

        button_page = next((p for p in pages if p.non_submit_buttons), None)
        if button_page is not None:
            cases.append(
                TestCase(
                    name="Button Interaction Test",
                    description="Test interactive buttons on the page",
                    priority=Priority.MEDIUM,
                    tags=["buttons", "interactions"],
                    source=GenerationSource.FALLBACK,
                    page_url=button_page.url,
                    steps=[
                        NavigateStep(value=button_page.url, description="Navigate to page"),
                        ClickStep(
                            selector=NON_SUBMIT_BUTTON_SELECTOR,
                            description="Click interactive button",
                        ),
                    ],
                )
            )
        return cases

    def _parse(self, content: str) -> Any:
        if not content.strip():
            raise GeneratorError("Empty response from LLM")
        try:
            data = extract_json(content)
        except json.JSONDecodeError as e:
            raise GeneratorError(f"LLM response is not JSON: {e}") from e
        # Some models wrap the array in an object
        if isinstance(data, dict) and len(data) == 1:
            (data,) = data.values()
        return data

    def _build_page_prompt(self, page_content: str, page_url: str) -> str:
        return (
            "Analyze the following webpage content and generate comprehensive test cases.\n\n"
            f"Page URL: {page_url}\n"
            f"Page Content: {page_content}\n\n"
            "Generate test cases that cover:\n"
            "1. Navigation and basic functionality\n"
            "2. Form interactions (if any)\n"
            "3. User flows and critical paths\n"
            "4. UI interactions (buttons, links)\n"
            "5. Error handling and edge cases\n\n"
            "Return the test cases as a JSON array where each test case is an array of steps.\n"
            "Each step should have: type, selector (if needed), value (if needed), "
            "and description.\n\n"
            "Types available: navigate, click, type, wait, assert"
        )

    def _build_site_prompt(self, website: dict[str, Any], pages: Sequence[PageRecord]) -> str:
        pages_desc = []
        for page in pages[:SITE_PROMPT_MAX_PAGES]:
            forms = json.dumps([f.model_dump() for f in page.forms])
            buttons = json.dumps([b.model_dump() for b in page.buttons])
            pages_desc.append(
                f"- {page.title or page.url}\n"
                f"  URL: {page.url}\n"
                f"  Forms: {forms}\n"
                f"  Buttons: {buttons}\n"
                f"  Content: {page.content[:SITE_PROMPT_CONTENT_CHARS]}"
            )

        return (
            "Generate comprehensive test cases for a website with the following pages:\n\n"
            f"Website: {website.get('name', '')} ({website['url']})\n\n"
            f"Pages:\n{chr(10).join(pages_desc)}\n\n"
            "Generate 5-8 test cases covering:\n"
            "1. User authentication flows (login, registration, password reset)\n"
            "2. Form submissions and validations\n"
            "3. Navigation and user flows\n"
            "4. UI interactions (buttons, links, dropdowns)\n"
            "5. Error handling and edge cases\n\n"
            "For each test case, provide:\n"
            "- name: Descriptive test case name\n"
            "- description: What the test validates\n"
            "- priority: LOW, MEDIUM, HIGH, or CRITICAL\n"
            "- tags: Array of relevant tags\n"
            "- steps: Array of steps with type (navigate, click, type, wait, assert), "
            "selector, value, description and expected result\n\n"
            "Return as JSON array of test cases."
        )
