"""Stealth execution engine — one Playwright browser session with human-paced primitives.

``StealthBrowser`` owns a single Chromium browser, one context configured
from a ``SessionProfile``, and a cache of pages keyed by string id. The
anti-detection bundle is registered on the context before the first page is
created, so it runs ahead of every document the session loads.

Primitive failures are translated into the retryable ``StepError`` family
(with the selector or URL attached); a failed launch raises
``SessionInitError``.

Usage::

    async with StealthBrowser(settings) as browser:
        await browser.launch(profile)
        await browser.navigate("https://example.com")
        await browser.click("#login")
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from stealthrun.browser.humanize import HumanPacer, mouse_path
from stealthrun.browser.profiles import ProfileGenerator
from stealthrun.browser.stealth import (
    ProxyPool,
    StealthOptions,
    build_context_args,
    build_launch_args,
    build_stealth_script,
    options_for_level,
)
from stealthrun.exceptions import (
    ElementNotFound,
    NavigationError,
    NavigationTimeout,
    ScriptExecutionError,
    SessionInitError,
    StepTimeout,
)
from stealthrun.models.profile import SessionProfile
from stealthrun.models.session import ExtractedRecord
from stealthrun.settings.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_PAGE_ID = "default"

_EXTRACT_JS = """
(elements) => elements.map((el) => ({
    text: (el.textContent || '').trim(),
    raw_markup: el.innerHTML,
    attributes: Array.from(el.attributes).reduce((acc, attr) => {
        acc[attr.name] = attr.value;
        return acc;
    }, {}),
}))
"""


def _first_line(exc: BaseException) -> str:
    """Playwright messages carry a multi-line call log; keep the headline."""
    lines = str(exc).strip().splitlines()
    return lines[0] if lines else type(exc).__name__


class StealthBrowser:
    """A single stealth browser session.

    One instance backs exactly one session; never share it between
    concurrently running sessions.

    Args:
        settings: Resolved settings (``get_settings()`` when omitted).
        pacer: Random source and sleeper for human timing.
        options: Countermeasure groups; defaults to the preset for
            ``settings.stealth.level``.
        proxy_pool: Optional proxy rotation; built from
            ``settings.stealth.proxy_urls`` when omitted.
        playwright_factory: Returns an object whose ``start()`` coroutine
            yields a ``Playwright`` instance.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        pacer: HumanPacer | None = None,
        options: StealthOptions | None = None,
        proxy_pool: ProxyPool | None = None,
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        if settings is None:
            from stealthrun.settings import get_settings

            settings = get_settings()

        self._settings = settings
        self._timeout_ms: int = settings.browser.timeout_ms
        self._pacer = pacer or HumanPacer(scale=settings.timing.scale)
        self._options = options or options_for_level(settings.stealth.level)
        self._proxy_pool = proxy_pool or ProxyPool(
            settings.stealth.proxy_urls,
            strategy=settings.stealth.rotation_strategy,
            rng=self._pacer.rng,
        )
        self._playwright_factory = playwright_factory

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._pages: dict[str, Page] = {}
        self.profile: SessionProfile | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def launched(self) -> bool:
        return self._context is not None

    async def launch(self, profile: SessionProfile | None = None) -> "StealthBrowser":
        """Start the browser configured with *profile* and inject countermeasures.

        A profile is drawn from the pool (using this session's random
        source) when none is given.

        Raises:
            SessionInitError: If the browser cannot be started or is already running.
        """
        if self._playwright is not None:
            raise SessionInitError("Browser session already launched")

        profile = profile or ProfileGenerator(rng=self._pacer.rng).generate()
        browser_cfg = self._settings.browser
        launch_args = build_launch_args(
            headless=browser_cfg.headless,
            sandbox=browser_cfg.sandbox,
            proxy_url=self._proxy_pool.next(),
        )
        context_args = build_context_args(profile, record_video_dir=browser_cfg.record_video_dir)

        try:
            self._playwright = await self._playwright_factory().start()
            self._browser = await self._playwright.chromium.launch(**launch_args)
            context = await self._browser.new_context(**context_args)
            await context.add_init_script(script=build_stealth_script(profile, self._options))
        except Exception as exc:
            logger.error("Browser launch failed: %s", exc)
            await self.close()
            raise SessionInitError(f"Browser failed to start: {exc}") from exc

        self._context = context
        self.profile = profile
        logger.info(
            "Browser launched (headless=%s, viewport=%dx%d, locale=%s, tz=%s)",
            browser_cfg.headless,
            profile.viewport.width,
            profile.viewport.height,
            profile.locale,
            profile.timezone,
        )
        return self

    async def close(self) -> None:
        """Close all pages, clear cookies and release the browser.

        Safe to call repeatedly and before ``launch``. Teardown errors are
        logged, never raised.
        """
        if self._playwright is None and self._browser is None and self._context is None:
            return

        pages, self._pages = self._pages, {}
        for page_id, page in pages.items():
            try:
                await page.close()
            except Exception as e:
                logger.warning("Page %s close error (non-fatal): %s", page_id, e)

        context, self._context = self._context, None
        if context is not None:
            if self._options.clear_cookies:
                try:
                    await context.clear_cookies()
                except Exception as e:
                    logger.warning("Cookie clear error (non-fatal): %s", e)
            try:
                await context.close()
            except Exception as e:
                logger.warning("Context close error (non-fatal): %s", e)

        browser, self._browser = self._browser, None
        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.warning("Browser close error (non-fatal): %s", e)

        playwright, self._playwright = self._playwright, None
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as e:
                logger.warning("Playwright stop error (non-fatal): %s", e)

        logger.info("Browser closed")

    async def __aenter__(self) -> "StealthBrowser":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    async def get_page(self, page_id: str | None = None) -> Page:
        """Return the cached page for *page_id*, creating it on first use."""
        if self._context is None:
            raise SessionInitError("Browser not launched. Call launch() first.")
        key = page_id or DEFAULT_PAGE_ID
        page = self._pages.get(key)
        if page is None:
            try:
                page = await self._context.new_page()
            except PlaywrightError as exc:
                raise ScriptExecutionError(f"Could not open page {key}: {_first_line(exc)}", context=key) from exc
            page.set_default_timeout(self._timeout_ms)
            page.set_default_navigation_timeout(self._timeout_ms)
            self._pages[key] = page
            logger.debug("Opened page %s", key)
        return page

    async def close_page(self, page_id: str | None = None) -> None:
        page = self._pages.pop(page_id or DEFAULT_PAGE_ID, None)
        if page is not None:
            await page.close()

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    async def navigate(self, url: str, page_id: str | None = None) -> None:
        """Load *url* and wait for DOMContentLoaded.

        Raises:
            NavigationTimeout: If the load exceeds the configured timeout.
            NavigationError: For any other navigation failure.
        """
        page = await self.get_page(page_id)
        logger.info("Navigating to: %s", url)
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self._timeout_ms)
        except PlaywrightTimeout as exc:
            raise NavigationTimeout(url, self._timeout_ms) from exc
        except PlaywrightError as exc:
            raise NavigationError(url, _first_line(exc)) from exc
        if self._options.human_input:
            await self._pacer.pause(1000, 3000)

    async def click(self, selector: str, page_id: str | None = None) -> None:
        """Move the pointer along a jittered path to *selector* and click it.

        Falls back to a direct click when the element has no bounding box
        (e.g. it is not rendered yet).
        """
        page = await self.get_page(page_id)
        logger.info("Clicking: %s", selector)
        locator = page.locator(selector).first
        try:
            box = await locator.bounding_box(timeout=self._timeout_ms) if self._options.human_input else None
            if box:
                pacer = self._pacer
                start = (pacer.uniform(0, 100), pacer.uniform(0, 100))
                target = (
                    box["x"] + box["width"] / 2 + pacer.uniform(-10, 10),
                    box["y"] + box["height"] / 2 + pacer.uniform(-10, 10),
                )
                await page.mouse.move(*start)
                await pacer.pause(50, 150)
                for x, y in mouse_path(start, target, pacer.randint(10, 25)):
                    await page.mouse.move(x, y)
                    await pacer.pause(5, 15)
                await pacer.pause(100, 300)
                await locator.click(timeout=self._timeout_ms)
                await pacer.pause(150, 400)
            else:
                await locator.click(timeout=self._timeout_ms)
        except PlaywrightError as exc:
            raise ElementNotFound(selector, _first_line(exc)) from exc

    async def type(self, selector: str, text: str, page_id: str | None = None) -> None:
        """Type *text* into *selector* one character at a time."""
        page = await self.get_page(page_id)
        logger.info("Typing into: %s", selector)
        locator = page.locator(selector).first
        pacer = self._pacer
        try:
            await locator.focus(timeout=self._timeout_ms)
            if not self._options.human_input:
                await page.keyboard.type(text)
                return
            await pacer.pause(200, 600)
            for char in text:
                await page.keyboard.type(char)
                await pacer.pause(50, 200)
                if pacer.chance(0.1):
                    await pacer.pause(200, 800)
            await pacer.pause(100, 400)
        except PlaywrightError as exc:
            raise ElementNotFound(selector, _first_line(exc)) from exc
        logger.debug("Typed %d characters into %s", len(text), selector)

    async def scroll(
        self,
        direction: str = "down",
        page_id: str | None = None,
        *,
        distance: float | None = None,
    ) -> None:
        """Scroll *direction* in 3–8 wheel bursts.

        Args:
            direction: ``"down"`` or ``"up"``.
            distance: Total pixels; a random 200–500 px when omitted.
        """
        if direction not in ("up", "down"):
            raise ValueError(f"Unknown scroll direction: {direction}")
        page = await self.get_page(page_id)
        pacer = self._pacer
        total = distance if distance is not None else pacer.uniform(200, 500)
        bursts = pacer.randint(3, 8) if self._options.human_input else 1
        delta = (total / bursts) * (1 if direction == "down" else -1)
        logger.info("Scrolling %s %.0fpx in %d bursts", direction, total, bursts)
        try:
            for _ in range(bursts):
                await page.mouse.wheel(0, delta)
                if self._options.human_input:
                    await pacer.pause(300, 800)
        except PlaywrightError as exc:
            raise ScriptExecutionError(f"Scroll failed: {_first_line(exc)}") from exc

    async def wait_for_selector(self, selector: str, page_id: str | None = None) -> None:
        """Wait until *selector* is attached and visible.

        Raises:
            StepTimeout: If it does not appear within the configured timeout.
        """
        page = await self.get_page(page_id)
        logger.info("Waiting for element: %s", selector)
        try:
            await page.wait_for_selector(selector, timeout=self._timeout_ms)
        except PlaywrightTimeout as exc:
            raise StepTimeout(selector, self._timeout_ms) from exc
        except PlaywrightError as exc:
            raise ElementNotFound(selector, _first_line(exc)) from exc

    async def wait_for_duration(self, ms: int, page_id: str | None = None) -> None:
        """Hold for *ms* milliseconds on the given page."""
        await self.get_page(page_id)
        await self._pacer.hold(ms)

    async def extract(self, selector: str, page_id: str | None = None) -> list[ExtractedRecord]:
        """Return text, inner markup and attributes of every element matching *selector*."""
        page = await self.get_page(page_id)
        logger.info("Extracting from: %s", selector)
        try:
            rows = await page.eval_on_selector_all(selector, _EXTRACT_JS)
        except PlaywrightError as exc:
            raise ElementNotFound(selector, _first_line(exc)) from exc
        records = [ExtractedRecord.model_validate(row) for row in rows]
        logger.info("Extracted %d items from %s", len(records), selector)
        return records

    async def screenshot(self, page_id: str | None = None, *, full_page: bool = False) -> bytes:
        """Capture the page as PNG bytes."""
        page = await self.get_page(page_id)
        try:
            return await page.screenshot(full_page=full_page)
        except PlaywrightError as exc:
            raise ScriptExecutionError(f"Screenshot failed: {exc}") from exc

    async def execute_script(self, code: str, page_id: str | None = None) -> Any:
        """Evaluate *code* in the page and return its (JSON-serialisable) value."""
        page = await self.get_page(page_id)
        try:
            return await page.evaluate(code)
        except PlaywrightError as exc:
            raise ScriptExecutionError(f"Script execution failed: {exc}") from exc

    async def get_content(self, page_id: str | None = None) -> str:
        """Return the page's full HTML."""
        page = await self.get_page(page_id)
        try:
            return await page.content()
        except PlaywrightError as exc:
            raise ScriptExecutionError(f"Failed to get page content: {exc}") from exc
