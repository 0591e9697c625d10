"""Repository contract shared by the in-memory and database-backed stores.

Entities are exchanged as plain dicts keyed by a string ``id``. Timestamps
are ISO-8601 strings on the way out; updates accept ``datetime`` values.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from sitepilot.constants import DEFAULT_MAX_DEPTH, DEFAULT_MAX_PAGES


class PipelineStore(ABC):
    """Async CRUD over websites, pages, test cases, runs, bugs and schedules.

    Websites created without explicit crawl bounds get the store defaults.
    """

    def __init__(
        self,
        default_max_depth: int = DEFAULT_MAX_DEPTH,
        default_max_pages: int = DEFAULT_MAX_PAGES,
    ) -> None:
        self._default_max_depth = default_max_depth
        self._default_max_pages = default_max_pages

    def _crawl_bounds(self, crawl_depth: int | None, max_pages: int | None) -> tuple[int, int]:
        return (
            self._default_max_depth if crawl_depth is None else crawl_depth,
            self._default_max_pages if max_pages is None else max_pages,
        )

    # Websites

    @abstractmethod
    async def create_website(
        self, name: str, url: str, crawl_depth: int | None = None, max_pages: int | None = None
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def get_website(self, website_id: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def update_website(self, website_id: str, **fields: Any) -> dict[str, Any]:
        """Update fields atomically; raises EntityNotFoundError for an unknown id."""

    # Pages

    @abstractmethod
    async def create_page(
        self,
        website_id: str,
        url: str,
        title: str = "",
        content: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def list_pages(self, website_id: str) -> list[dict[str, Any]]: ...

    # Test cases

    @abstractmethod
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
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def get_test_case(self, test_case_id: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def list_test_cases(self, website_id: str) -> list[dict[str, Any]]: ...

    # Test runs

    @abstractmethod
    async def create_test_run(
        self, test_case_id: str, user_id: str, status: str = "PENDING"
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def get_test_run(self, run_id: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def update_test_run(self, run_id: str, **fields: Any) -> dict[str, Any]:
        """Update fields atomically; raises EntityNotFoundError for an unknown id."""

    # Bugs

    @abstractmethod
    async def create_bug(self, **fields: Any) -> dict[str, Any]: ...

    @abstractmethod
    async def get_bug_for_run(self, run_id: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def list_bugs(self, test_case_id: str | None = None) -> list[dict[str, Any]]: ...

    # Schedules

    @abstractmethod
    async def create_schedule(
        self, name: str, test_case_ids: list[str], is_active: bool = True
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def get_schedule(self, schedule_id: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def update_schedule(self, schedule_id: str, **fields: Any) -> dict[str, Any]:
        """Update fields atomically; raises EntityNotFoundError for an unknown id."""
