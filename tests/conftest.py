"""Shared test fixtures."""

from __future__ import annotations

import contextlib
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel

from sitepilot.models import database as _tables  # noqa: F401


@pytest.fixture()
async def async_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def mock_page() -> MagicMock:
    """A Playwright page double whose async operations all succeed."""
    page = MagicMock()
    page.url = "https://x.test/"
    page.goto = AsyncMock()
    page.click = AsyncMock()
    page.fill = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.wait_for_timeout = AsyncMock()
    page.evaluate = AsyncMock()
    page.screenshot = AsyncMock(return_value=b"\x89PNG")
    page.on = MagicMock()
    return page


@pytest.fixture()
def mock_browser(mock_page: MagicMock) -> MagicMock:
    """A BrowserManager double handing out ``mock_page`` from page_session()."""
    browser = MagicMock()
    browser.launch = AsyncMock()
    browser.close = AsyncMock()
    browser.sessions_closed = 0

    @contextlib.asynccontextmanager
    async def page_session():
        try:
            yield mock_page
        finally:
            browser.sessions_closed += 1

    browser.page_session = page_session
    return browser
