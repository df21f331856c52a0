"""stealthrun test configuration — shared fixtures for unit and integration tests."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest


# ---------------------------------------------------------------------------
# Async backend
# ---------------------------------------------------------------------------


@pytest.fixture()
def anyio_backend() -> str:
    """Run ``@pytest.mark.anyio`` tests on asyncio only."""
    return "asyncio"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_settings_cache(monkeypatch):
    """Clear the settings LRU cache between tests and pin the default env."""
    from stealthrun.settings.config import get_settings

    monkeypatch.delenv("STEALTHRUN_ENV", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def settings():
    """Default settings with human pacing disabled."""
    from stealthrun.settings.config import Settings

    s = Settings()
    return s.model_copy(update={"timing": s.timing.model_copy(update={"scale": 0.0})})


# ---------------------------------------------------------------------------
# Fake Playwright
# ---------------------------------------------------------------------------


def make_fake_page() -> MagicMock:
    """A ``MagicMock`` page exposing the async Playwright calls the engine uses."""
    page = MagicMock()
    page.goto = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.eval_on_selector_all = AsyncMock(return_value=[])
    page.screenshot = AsyncMock(return_value=b"\x89PNG\r\n")
    page.evaluate = AsyncMock(return_value=None)
    page.content = AsyncMock(return_value="<html><body></body></html>")
    page.close = AsyncMock()
    page.mouse.move = AsyncMock()
    page.mouse.wheel = AsyncMock()
    page.keyboard.type = AsyncMock()

    locator = MagicMock()
    locator.bounding_box = AsyncMock(return_value={"x": 100.0, "y": 200.0, "width": 80.0, "height": 30.0})
    locator.click = AsyncMock()
    locator.focus = AsyncMock()
    page.locator.return_value.first = locator
    page.test_locator = locator
    return page


@pytest.fixture()
def fake_page_factory():
    """Factory for standalone fake pages (to customise before ``new_page`` returns them)."""
    return make_fake_page


@pytest.fixture()
def fake_playwright() -> SimpleNamespace:
    """A fake ``async_playwright`` factory plus handles to every object it creates."""
    pages: list[MagicMock] = []

    def _new_page() -> MagicMock:
        page = make_fake_page()
        pages.append(page)
        return page

    context = MagicMock()
    context.new_page = AsyncMock(side_effect=_new_page)
    context.add_init_script = AsyncMock()
    context.clear_cookies = AsyncMock()
    context.close = AsyncMock()

    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()

    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser)
    playwright.stop = AsyncMock()

    manager = MagicMock()
    manager.start = AsyncMock(return_value=playwright)

    return SimpleNamespace(
        factory=MagicMock(return_value=manager),
        playwright=playwright,
        browser=browser,
        context=context,
        pages=pages,
    )


@pytest.fixture()
def fake_sleep() -> AsyncMock:
    """Recording stand-in for ``asyncio.sleep``."""
    return AsyncMock(return_value=None)


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests that require a real browser")
    config.addinivalue_line("markers", "slow: marks tests that take more than a few seconds")
