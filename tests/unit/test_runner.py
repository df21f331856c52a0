"""Unit tests for run_script / run_many against a mocked Playwright."""

from __future__ import annotations

import asyncio
from functools import partial
from unittest.mock import AsyncMock, MagicMock

import pytest

from stealthrun.browser.engine import StealthBrowser
from stealthrun.models.session import SessionState, StepState
from stealthrun.runner import EventBus, EventType, InMemorySink, ScriptJob, run_many, run_script

SCRIPT = """\
// Step 1: open
await page.goto('https://shop.example');
// Step 2: search
await page.fill('#q', 'lamp');
// Step 3: results
await page.waitForSelector('.results');
"""


class TestRunScript:
    """End-to-end through compiler, engine and monitor."""

    @pytest.mark.anyio
    async def test_successful_run(self, settings, fake_playwright, fake_sleep) -> None:
        sink = InMemorySink()
        bus = EventBus()
        bus.add_sink(sink)
        session = await run_script(
            SCRIPT,
            task_name="shop",
            settings=settings,
            seed=1,
            event_bus=bus,
            browser_factory=partial(StealthBrowser, playwright_factory=fake_playwright.factory),
            sleep=fake_sleep,
        )
        assert session.status == SessionState.COMPLETED
        assert session.task_name == "shop"
        assert session.completed_steps == 3
        page = fake_playwright.pages[0]
        page.goto.assert_awaited_once()
        page.wait_for_selector.assert_awaited_once_with(".results", timeout=settings.browser.timeout_ms)
        fake_playwright.playwright.stop.assert_awaited_once()
        assert sink.of_type(EventType.SESSION_FINISHED)[0].data["status"] == "completed"

    @pytest.mark.anyio
    async def test_launch_failure_yields_failed_session(self, settings, fake_playwright, fake_sleep) -> None:
        fake_playwright.playwright.chromium.launch.side_effect = RuntimeError("chromium missing")
        session = await run_script(
            SCRIPT,
            settings=settings,
            browser_factory=partial(StealthBrowser, playwright_factory=fake_playwright.factory),
            sleep=fake_sleep,
        )
        assert session.status == SessionState.FAILED
        assert session.failed_steps == session.total_steps == 3
        assert all(s.status == StepState.FAILED for s in session.steps)
        assert "chromium missing" in session.steps[0].error
        fake_playwright.context.new_page.assert_not_awaited()

    @pytest.mark.anyio
    async def test_seed_fixes_profile(self, settings, fake_playwright, fake_sleep) -> None:
        factory = partial(StealthBrowser, playwright_factory=fake_playwright.factory)
        await run_script(SCRIPT, settings=settings, seed=99, browser_factory=factory, sleep=fake_sleep)
        await run_script(SCRIPT, settings=settings, seed=99, browser_factory=factory, sleep=fake_sleep)
        first, second = fake_playwright.browser.new_context.await_args_list
        assert first.kwargs["user_agent"] == second.kwargs["user_agent"]
        assert first.kwargs["timezone_id"] == second.kwargs["timezone_id"]

    @pytest.mark.anyio
    async def test_failed_step_with_settings_retry(self, settings, fake_playwright, fake_sleep, fake_page_factory) -> None:
        from playwright.async_api import TimeoutError as PlaywrightTimeout

        settings = settings.model_copy(
            update={"compiler": settings.compiler.model_copy(update={"default_retry_count": 1})}
        )
        page_holder: list = []

        async def new_page():
            page = fake_page_factory()
            page.goto.side_effect = PlaywrightTimeout("Timeout")
            page_holder.append(page)
            return page

        fake_playwright.context.new_page.side_effect = new_page
        session = await run_script(
            SCRIPT,
            settings=settings,
            browser_factory=partial(StealthBrowser, playwright_factory=fake_playwright.factory),
            sleep=fake_sleep,
        )
        assert page_holder[0].goto.await_count == 2
        assert session.steps[0].retry_count == 1
        assert session.status == SessionState.FAILED


class TestRunMany:
    """Concurrent sessions."""

    @pytest.mark.anyio
    async def test_results_in_job_order(self, settings, fake_playwright, fake_sleep) -> None:
        jobs = [ScriptJob(script_text=SCRIPT, task_name=f"job-{i}", seed=i) for i in range(3)]
        sessions = await run_many(
            jobs,
            concurrency=2,
            settings=settings,
            browser_factory=partial(StealthBrowser, playwright_factory=fake_playwright.factory),
            sleep=fake_sleep,
        )
        assert [s.task_name for s in sessions] == ["job-0", "job-1", "job-2"]
        assert all(s.status == SessionState.COMPLETED for s in sessions)
        assert len({s.id for s in sessions}) == 3
        assert fake_playwright.factory.call_count == 3

    @pytest.mark.anyio
    async def test_concurrency_limit(self, settings, fake_sleep) -> None:
        active = 0
        peak = 0

        def factory(settings, *, pacer):
            browser = MagicMock(spec=StealthBrowser)

            async def launch(profile=None):
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                return browser

            async def close():
                nonlocal active
                active -= 1

            async def navigate(url):
                for _ in range(5):
                    await asyncio.sleep(0)

            browser.launch.side_effect = launch
            browser.close.side_effect = close
            browser.navigate.side_effect = navigate
            return browser

        script = "// Step 1\nawait page.goto('https://a.com')\n"
        jobs = [ScriptJob(script_text=script, task_name=f"j{i}") for i in range(5)]
        sessions = await run_many(jobs, concurrency=2, settings=settings, browser_factory=factory, sleep=fake_sleep)
        assert len(sessions) == 5
        assert peak == 2

    @pytest.mark.anyio
    async def test_crashing_job_does_not_discard_others(self, settings, fake_playwright, fake_sleep) -> None:
        real_factory = partial(StealthBrowser, playwright_factory=fake_playwright.factory)
        calls = 0

        def factory(settings, **kwargs):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("display unavailable")
            return real_factory(settings, **kwargs)

        jobs = [ScriptJob(script_text=SCRIPT, task_name=name) for name in ("broken", "healthy")]
        sessions = await run_many(jobs, concurrency=1, settings=settings, browser_factory=factory, sleep=fake_sleep)

        broken, healthy = sessions
        assert broken.task_name == "broken"
        assert broken.status == SessionState.FAILED
        assert broken.total_steps == 3
        assert broken.failed_steps == 3
        assert all("display unavailable" in s.error for s in broken.steps)
        assert healthy.status == SessionState.COMPLETED

    @pytest.mark.anyio
    async def test_invalid_concurrency(self, settings) -> None:
        with pytest.raises(ValueError):
            await run_many([], concurrency=0, settings=settings)
