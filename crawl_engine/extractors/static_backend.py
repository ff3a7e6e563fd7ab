"""
Static HTML fetch backend.

Fetches raw HTML over HTTP with aiohttp and parses it with BeautifulSoup,
without executing JavaScript. Materially faster than the browser backend for
sources that do not need rendering.
"""

import asyncio
import itertools
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

import aiohttp
from loguru import logger

from crawl_engine.interfaces import (
    BackendType, BackendUnavailableError, ExtractionError, IFetchBackend, NavigationError, SelectorRole,
)
from crawl_engine.models import ExtractedFields, PageHandle, SelectorSet, SelectorTestResult
from crawl_engine.extractors.html_extraction import HtmlFieldExtractor
from crawl_engine.extractors.diagnostics import build_error_result, build_test_result
from utils.config.crawler_settings import DEFAULT_USER_AGENT


@dataclass
class StaticSession:
    """Lightweight session record; the HTTP connection pool is shared by the backend."""
    session_id: int
    current_url: Optional[str] = None
    closed: bool = False


class StaticHtmlBackend(IFetchBackend):
    """Fetch backend using aiohttp for transport and BeautifulSoup for parsing."""

    backend_type = BackendType.STATIC_HTML

    # First attempt is capped at this many ms; the retry gets the full timeout
    FAST_ATTEMPT_TIMEOUT_MS = 15000

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT,
                 extractor: Optional[HtmlFieldExtractor] = None):
        self.user_agent = user_agent
        self.extractor = extractor or HtmlFieldExtractor()
        self.http: Optional[aiohttp.ClientSession] = None
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        async with self._lock:
            if self.http is not None and not self.http.closed:
                return
            try:
                self.http = aiohttp.ClientSession(
                    headers={
                        'User-Agent': self.user_agent,
                        'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
                        'Accept-Language': 'en-US,en;q=0.9',
                    }
                )
                logger.info("Static HTML backend started")
            except Exception as e:
                raise BackendUnavailableError(f"Cannot start HTTP client: {e}", self.backend_type.value, e)

    async def shutdown(self) -> None:
        if self.http is not None:
            await self.http.close()
            self.http = None
            logger.info("Static HTML backend stopped")

    async def create_session(self) -> StaticSession:
        await self.start()
        return StaticSession(session_id=next(self._ids))

    async def reset_session(self, session: StaticSession) -> None:
        if session.closed:
            raise RuntimeError(f"Static session {session.session_id} is closed")
        session.current_url = None

    async def destroy_session(self, session: StaticSession) -> None:
        session.closed = True
        session.current_url = None

    async def open(self, session: StaticSession, url: str, timeout_ms: int,
                   settle_ms: int = 0) -> PageHandle:
        fast_timeout = min(timeout_ms, self.FAST_ATTEMPT_TIMEOUT_MS)
        try:
            html, final_url, status = await self._fetch_html(url, fast_timeout)
            wait_condition = "domcontentloaded"
        except NavigationError as first_error:
            logger.warning(f"Fast fetch failed for {url} ({first_error}), retrying with full timeout")
            html, final_url, status = await self._fetch_html(url, timeout_ms)
            wait_condition = "load"

        session.current_url = final_url
        return PageHandle(
            url=url,
            html=html,
            session=session,
            final_url=final_url,
            wait_condition=wait_condition,
            status=status,
        )

    async def _fetch_html(self, url: str, timeout_ms: int) -> Tuple[str, str, int]:
        """GET a page and return (html, final_url, status)."""
        await self.start()
        try:
            timeout = aiohttp.ClientTimeout(total=timeout_ms / 1000)
            async with self.http.get(url, timeout=timeout, allow_redirects=True) as response:
                if response.status >= 400:
                    raise NavigationError(f"HTTP {response.status} for {url}", url)
                html = await response.text(errors='replace')
                return html, str(response.url), response.status
        except NavigationError:
            raise
        except asyncio.TimeoutError as e:
            raise NavigationError(f"Navigation timeout after {timeout_ms}ms for {url}", url, e)
        except aiohttp.ClientError as e:
            raise NavigationError(f"Network error for {url}: {e}", url, e)

    async def extract(self, handle: PageHandle, selectors: SelectorSet) -> ExtractedFields:
        return self.extractor.extract_fields(handle.html, handle.effective_url, selectors)

    async def extract_list(self, handle: PageHandle, selectors: SelectorSet) -> List[str]:
        return self.extractor.extract_list_links(handle.html, handle.effective_url, selectors)

    async def close(self, handle: PageHandle) -> None:
        handle.html = ""

    async def test_selector(self, url: str, expression: str, role: SelectorRole,
                            wait_time_ms: int, timeout_ms: int) -> SelectorTestResult:
        started = time.monotonic()
        session: Optional[StaticSession] = None
        try:
            session = await self.create_session()
            handle = await self.open(session, url, timeout_ms)
            return build_test_result(self.extractor, handle.html, handle.effective_url,
                                     expression, role, started)
        except (NavigationError, ExtractionError, BackendUnavailableError) as e:
            logger.error(f"Selector test failed for {url}: {e}")
            return build_error_result(e, url, expression, role, started)
        finally:
            if session is not None:
                await self.destroy_session(session)
