"""
Browser-rendering fetch backend built on Playwright (Chromium).

One browser process is shared by all sessions; each session is a tab. Tabs
block images, stylesheets, fonts and media to cut load time, and the
rendered DOM is handed to the shared HtmlFieldExtractor.
"""

import asyncio
import time
from typing import List, Optional, Any

from loguru import logger
from playwright.async_api import async_playwright, Error as PlaywrightError, Page, Route

from crawl_engine.interfaces import (
    BackendType, BackendUnavailableError, ExtractionError, IFetchBackend, NavigationError, SelectorRole,
)
from crawl_engine.models import ExtractedFields, PageHandle, SelectorSet, SelectorTestResult
from crawl_engine.extractors.html_extraction import HtmlFieldExtractor
from crawl_engine.extractors.diagnostics import build_error_result, build_test_result
from utils.config.crawler_settings import DEFAULT_USER_AGENT


class BrowserBackend(IFetchBackend):
    """Fetch backend that renders pages in headless Chromium."""

    backend_type = BackendType.BROWSER

    BLOCKED_RESOURCE_TYPES = frozenset({'image', 'stylesheet', 'font', 'media'})

    LAUNCH_ARGS = [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--no-first-run",
        "--disable-extensions",
        "--disable-background-timer-throttling",
        "--disable-backgrounding-occluded-windows",
        "--disable-renderer-backgrounding",
    ]

    DEFAULT_PAGE_TIMEOUT_MS = 30000

    def __init__(self, headless: bool = True, javascript_enabled: bool = True,
                 user_agent: str = DEFAULT_USER_AGENT,
                 extractor: Optional[HtmlFieldExtractor] = None):
        self.headless = headless
        self.javascript_enabled = javascript_enabled
        self.user_agent = user_agent
        self.extractor = extractor or HtmlFieldExtractor()

        self._playwright = None
        self._browser = None
        self._context = None
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        async with self._lock:
            if self._context is not None:
                return
            try:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless,
                    args=self.LAUNCH_ARGS,
                )
                self._context = await self._browser.new_context(
                    user_agent=self.user_agent,
                    viewport={"width": 1920, "height": 1080},
                    java_script_enabled=self.javascript_enabled,
                )
                logger.info(f"Browser backend started (headless={self.headless}, "
                            f"javascript={self.javascript_enabled})")
            except Exception as e:
                logger.error(f"Failed to launch browser: {e}")
                await self._teardown()
                raise BackendUnavailableError(f"Browser cannot be launched: {e}",
                                              self.backend_type.value, e)

    async def shutdown(self) -> None:
        async with self._lock:
            await self._teardown()
        logger.info("Browser backend stopped")

    async def _teardown(self) -> None:
        for resource, closer in ((self._context, 'close'), (self._browser, 'close'),
                                 (self._playwright, 'stop')):
            if resource is None:
                continue
            try:
                await getattr(resource, closer)()
            except Exception as e:
                logger.warning(f"Error while closing browser resource: {e}")
        self._context = None
        self._browser = None
        self._playwright = None

    async def create_session(self) -> Page:
        await self.start()
        page = await self._context.new_page()
        page.set_default_timeout(self.DEFAULT_PAGE_TIMEOUT_MS)
        await page.route("**/*", self._filter_request)
        return page

    async def _filter_request(self, route: Route) -> None:
        if route.request.resource_type in self.BLOCKED_RESOURCE_TYPES:
            await route.abort()
        else:
            await route.continue_()

    async def reset_session(self, session: Page) -> None:
        await session.goto("about:blank")

    async def destroy_session(self, session: Page) -> None:
        try:
            if not session.is_closed():
                await session.close()
        except PlaywrightError as e:
            logger.debug(f"Page close failed: {e}")

    async def open(self, session: Page, url: str, timeout_ms: int,
                   settle_ms: int = 0) -> PageHandle:
        wait_condition = "domcontentloaded"
        try:
            response = await session.goto(url, wait_until=wait_condition, timeout=timeout_ms)
        except PlaywrightError as first_error:
            logger.warning(f"Navigation failed for {url}, trying load strategy ({first_error})")
            wait_condition = "load"
            try:
                response = await session.goto(url, wait_until=wait_condition, timeout=timeout_ms)
            except PlaywrightError as e:
                raise NavigationError(f"Navigation failed for {url}: {e}", url, e)

        if settle_ms > 0:
            await asyncio.sleep(settle_ms / 1000)

        try:
            html = await session.content()
        except PlaywrightError as e:
            raise NavigationError(f"Could not read document for {url}: {e}", url, e)

        return PageHandle(
            url=url,
            html=html,
            session=session,
            final_url=session.url,
            wait_condition=wait_condition,
            status=response.status if response is not None else None,
        )

    async def extract(self, handle: PageHandle, selectors: SelectorSet) -> ExtractedFields:
        return self.extractor.extract_fields(handle.html, handle.effective_url, selectors)

    async def extract_list(self, handle: PageHandle, selectors: SelectorSet) -> List[str]:
        return self.extractor.extract_list_links(handle.html, handle.effective_url, selectors)

    async def close(self, handle: PageHandle) -> None:
        # The tab stays open; the pool resets it on release
        handle.html = ""

    async def test_selector(self, url: str, expression: str, role: SelectorRole,
                            wait_time_ms: int, timeout_ms: int) -> SelectorTestResult:
        started = time.monotonic()
        page: Any = None
        try:
            page = await self.create_session()
            handle = await self.open(page, url, timeout_ms, settle_ms=wait_time_ms)
            return build_test_result(self.extractor, handle.html, handle.effective_url,
                                     expression, role, started)
        except (NavigationError, ExtractionError, BackendUnavailableError, PlaywrightError) as e:
            logger.error(f"Selector test failed for {url}: {e}")
            return build_error_result(e, url, expression, role, started)
        finally:
            if page is not None:
                await self.destroy_session(page)
