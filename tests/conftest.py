"""
Shared test configuration and fixtures for the crawl engine tests.

Provides an in-memory storage seeded with one source, HTML fixture builders
and a fake fetch backend that serves fixture pages through the real
HtmlFieldExtractor, so no browser or network is needed.
"""
import asyncio
import os
import sys
from typing import Callable, Dict, Iterable, List, Optional

import pytest

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from crawl_engine.interfaces import BackendType, IFetchBackend, NavigationError, SelectorRole
from crawl_engine.models import PageHandle, Selector, SelectorSet, Source
from crawl_engine.extractors.html_extraction import HtmlFieldExtractor
from crawl_engine.extractors.diagnostics import build_test_result
from crawl_engine.core import CrawlEngine
from crawl_engine.storage import InMemoryCrawlStorage
from monitoring import CrawlMetrics
from utils import CrawlerSettings


BASE_URL = "https://news.test/"


def list_page_html(links: Iterable[str]) -> str:
    items = "\n".join(f'<li><a href="{link}">Headline for {link}</a></li>' for link in links)
    return f"""
    <html>
    <head><title>News index</title></head>
    <body><ul class="news">{items}</ul></body>
    </html>
    """


def article_page_html(title: str, paragraphs: Iterable[str] = ("Body text.",),
                      links: Iterable[str] = ()) -> str:
    body = "\n".join(f"<p>{paragraph}</p>" for paragraph in paragraphs)
    anchors = "\n".join(f'<a href="{link}">related</a>' for link in links)
    return f"""
    <html>
    <head><title>{title}</title></head>
    <body>
        <h1>{title}</h1>
        <div class="body">{body}</div>
        <nav class="related">{anchors}</nav>
    </body>
    </html>
    """


class FakeBackend(IFetchBackend):
    """
    Fetch backend serving HTML from a dict (or a page factory).

    Records every opened URL, tracks how many opens run concurrently and can
    fail navigation for chosen URLs.
    """

    backend_type = BackendType.STATIC_HTML

    def __init__(self, pages: Optional[Dict[str, str]] = None,
                 page_factory: Optional[Callable[[str], Optional[str]]] = None,
                 failing_urls: Iterable[str] = (), open_delay: float = 0):
        self.pages = dict(pages or {})
        self.page_factory = page_factory
        self.failing_urls = set(failing_urls)
        self.open_delay = open_delay
        self.extractor = HtmlFieldExtractor()

        self.opened: List[str] = []
        self.started = 0
        self.sessions_created = 0
        self.sessions_destroyed = 0
        self.resets = 0
        self.active_opens = 0
        self.peak_active_opens = 0

    async def start(self) -> None:
        self.started += 1

    async def shutdown(self) -> None:
        pass

    async def create_session(self):
        self.sessions_created += 1
        return {"id": self.sessions_created, "poisoned": False}

    async def reset_session(self, session) -> None:
        self.resets += 1
        if session.get("poisoned"):
            raise RuntimeError("reset failed")

    async def destroy_session(self, session) -> None:
        self.sessions_destroyed += 1

    async def open(self, session, url: str, timeout_ms: int, settle_ms: int = 0) -> PageHandle:
        self.opened.append(url)
        self.active_opens += 1
        self.peak_active_opens = max(self.peak_active_opens, self.active_opens)
        try:
            await asyncio.sleep(self.open_delay)
            if url in self.failing_urls:
                raise NavigationError(f"Navigation timeout for {url}", url)
            html = self.pages.get(url)
            if html is None and self.page_factory is not None:
                html = self.page_factory(url)
            if html is None:
                raise NavigationError(f"HTTP 404 for {url}", url)
            return PageHandle(url=url, html=html, session=session)
        finally:
            self.active_opens -= 1

    async def extract(self, handle: PageHandle, selectors: SelectorSet):
        return self.extractor.extract_fields(handle.html, handle.effective_url, selectors)

    async def extract_list(self, handle: PageHandle, selectors: SelectorSet) -> List[str]:
        return self.extractor.extract_list_links(handle.html, handle.effective_url, selectors)

    async def close(self, handle: PageHandle) -> None:
        handle.html = ""

    async def test_selector(self, url, expression, role, wait_time_ms, timeout_ms):
        handle = await self.open(None, url, timeout_ms)
        return build_test_result(self.extractor, handle.html, url, expression, role, 0.0)

    def opened_at(self, prefix: str) -> List[str]:
        return [url for url in self.opened if url.startswith(prefix)]


def make_source(source_id: int = 1, base_url: str = BASE_URL,
                backend: BackendType = BackendType.STATIC_HTML) -> Source:
    selectors = [
        Selector(id=1, source_id=source_id, role=SelectorRole.LIST, expression="ul.news a"),
        Selector(id=2, source_id=source_id, role=SelectorRole.TITLE, expression="h1"),
        Selector(id=3, source_id=source_id, role=SelectorRole.CONTENT, expression="div.body p"),
        Selector(id=4, source_id=source_id, role=SelectorRole.LINK, expression="nav.related a"),
    ]
    return Source(id=source_id, name="test-news", base_url=base_url, backend=backend,
                  selectors=selectors)


@pytest.fixture
def settings():
    """Settings with small pool limits and no file logging."""
    return CrawlerSettings(pool_max_sessions=3, session_reset_timeout_seconds=0.5)


@pytest.fixture
def storage():
    store = InMemoryCrawlStorage()
    store.add_source(make_source())
    return store


@pytest.fixture
def article_links():
    return [f"{BASE_URL}article-{i}" for i in range(1, 6)]


@pytest.fixture
def news_site(article_links):
    """A list page with five articles and no internal links."""
    pages = {BASE_URL: list_page_html(article_links)}
    for index, link in enumerate(article_links, start=1):
        pages[link] = article_page_html(f"Market update number {index}",
                                        [f"Paragraph one of {index}", f"Paragraph two of {index}"])
    return pages


@pytest.fixture
def fake_backend(news_site):
    return FakeBackend(pages=news_site)


@pytest.fixture
def engine(storage, settings, fake_backend):
    return CrawlEngine(storage, settings=settings,
                       backends={BackendType.STATIC_HTML: fake_backend},
                       metrics=CrawlMetrics())
