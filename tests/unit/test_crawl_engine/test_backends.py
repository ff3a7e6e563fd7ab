"""
Unit tests for the static HTML and browser fetch backends.

Network and Chromium are mocked; both backends share the extraction code, so
identical documents must give identical fields.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError

from conftest import article_page_html
from crawl_engine.extractors import BackendFactory, BrowserBackend, StaticHtmlBackend, StaticSession
from crawl_engine.interfaces import BackendType, BackendUnavailableError, NavigationError, SelectorRole
from crawl_engine.models import SelectorSet
from utils.config import CrawlerSettings

URL = "https://news.test/markets/rates"

FIXTURE_HTML = article_page_html(
    "Bond yields climb after jobs report",
    ["Treasury yields rose on Friday.", "Traders now price fewer cuts."],
    ["/markets/fx", "https://news.test/markets/oil", "https://elsewhere.test/x", "#comments"],
)

SELECTORS = SelectorSet(
    list=("nav.related a",),
    title=("h1",),
    content=("div.body p",),
    link=("nav.related a",),
)


def mock_page(html: str = FIXTURE_HTML, url: str = URL):
    page = MagicMock()
    page.goto = AsyncMock(return_value=MagicMock(status=200))
    page.content = AsyncMock(return_value=html)
    page.url = url
    page.is_closed = MagicMock(return_value=False)
    page.close = AsyncMock()
    return page


class TestBackendSelection:

    @pytest.mark.unit
    @pytest.mark.parametrize("configured,expected", [
        ("puppeteer", BackendType.BROWSER),
        ("Playwright", BackendType.BROWSER),
        ("selenium", BackendType.BROWSER),
        ("cheerio", BackendType.STATIC_HTML),
        ("static-html", BackendType.STATIC_HTML),
        ("html", BackendType.STATIC_HTML),
        ("something-else", BackendType.BROWSER),
        (None, BackendType.BROWSER),
    ])
    def test_configured_names_map_to_backend_types(self, configured, expected):
        assert BackendType.from_config(configured) == expected

    @pytest.mark.unit
    def test_factory_builds_configured_backends(self):
        settings = CrawlerSettings(browser_headless=False, browser_javascript_enabled=False,
                                   user_agent="TestAgent/1.0")

        browser = BackendFactory.create_backend(BackendType.BROWSER, settings)
        static = BackendFactory.create_backend(BackendType.STATIC_HTML, settings)

        assert isinstance(browser, BrowserBackend)
        assert browser.headless is False
        assert browser.javascript_enabled is False
        assert isinstance(static, StaticHtmlBackend)
        assert static.user_agent == "TestAgent/1.0"
        assert set(BackendFactory.get_supported_backend_types()) >= {BackendType.BROWSER, BackendType.STATIC_HTML}

    @pytest.mark.unit
    def test_backends_share_default_user_agent(self):
        assert StaticHtmlBackend().user_agent == BrowserBackend().user_agent == CrawlerSettings().user_agent

    @pytest.mark.unit
    def test_registered_builder_replaces_default(self):
        custom = StaticHtmlBackend(user_agent="Custom/2.0")

        with patch.dict(BackendFactory._REGISTRY):
            BackendFactory.register_backend(BackendType.BROWSER, lambda settings: custom)
            assert BackendFactory.create_backend(BackendType.BROWSER, CrawlerSettings()) is custom

        assert isinstance(BackendFactory.create_backend(BackendType.BROWSER, CrawlerSettings()), BrowserBackend)


class TestStaticHtmlBackend:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_fast_attempt_succeeds(self):
        backend = StaticHtmlBackend()
        fetch = AsyncMock(return_value=(FIXTURE_HTML, URL, 200))

        with patch.object(backend, "_fetch_html", fetch):
            handle = await backend.open(StaticSession(session_id=1), URL, timeout_ms=60000)

        assert handle.wait_condition == "domcontentloaded"
        fetch.assert_awaited_once_with(URL, StaticHtmlBackend.FAST_ATTEMPT_TIMEOUT_MS)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retries_once_with_full_timeout(self):
        backend = StaticHtmlBackend()
        fetch = AsyncMock(side_effect=[NavigationError("Navigation timeout", URL), (FIXTURE_HTML, URL, 200)])
        session = StaticSession(session_id=1)

        with patch.object(backend, "_fetch_html", fetch):
            handle = await backend.open(session, URL, timeout_ms=60000)

        assert handle.wait_condition == "load"
        assert fetch.await_count == 2
        assert fetch.await_args_list[1].args == (URL, 60000)
        assert session.current_url == URL

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_second_failure_surfaces_navigation_error(self):
        backend = StaticHtmlBackend()
        fetch = AsyncMock(side_effect=NavigationError("HTTP 503", URL))

        with patch.object(backend, "_fetch_html", fetch):
            with pytest.raises(NavigationError):
                await backend.open(StaticSession(session_id=1), URL, timeout_ms=60000)

        assert fetch.await_count == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_closed_session_cannot_be_reset(self):
        backend = StaticHtmlBackend()
        session = StaticSession(session_id=7)
        await backend.destroy_session(session)

        with pytest.raises(RuntimeError):
            await backend.reset_session(session)


class TestBrowserBackend:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_falls_back_to_load_condition(self):
        backend = BrowserBackend()
        page = mock_page()
        page.goto.side_effect = [PlaywrightError("Timeout 30000ms exceeded"), MagicMock(status=200)]

        handle = await backend.open(page, URL, timeout_ms=30000)

        assert handle.wait_condition == "load"
        assert [call.kwargs["wait_until"] for call in page.goto.await_args_list] == ["domcontentloaded", "load"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_navigation_error_after_both_attempts(self):
        backend = BrowserBackend()
        page = mock_page()
        page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")

        with pytest.raises(NavigationError):
            await backend.open(page, URL, timeout_ms=30000)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_reset_navigates_to_blank(self):
        backend = BrowserBackend()
        page = mock_page()

        await backend.reset_session(page)

        page.goto.assert_awaited_once_with("about:blank")


class TestBackendEquivalence:
    """Static fetch and non-JavaScript rendering extract the same fields."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_identical_fixture_gives_identical_fields(self):
        static = StaticHtmlBackend()
        browser = BrowserBackend(javascript_enabled=False)

        with patch.object(static, "_fetch_html", AsyncMock(return_value=(FIXTURE_HTML, URL, 200))):
            static_handle = await static.open(StaticSession(session_id=1), URL, timeout_ms=60000)
        browser_handle = await browser.open(mock_page(), URL, timeout_ms=60000)

        static_fields = await static.extract(static_handle, SELECTORS)
        browser_fields = await browser.extract(browser_handle, SELECTORS)

        assert static_fields == browser_fields
        assert static_fields.title == "Bond yields climb after jobs report"
        assert static_fields.internal_links == ["https://news.test/markets/fx", "https://news.test/markets/oil"]
        assert await static.extract_list(static_handle, SELECTORS) == \
            await browser.extract_list(browser_handle, SELECTORS)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_title_fallback_identical(self):
        html = "<html><body><h2>Oil steadies as supply worries ease</h2></body></html>"
        static = StaticHtmlBackend()
        browser = BrowserBackend(javascript_enabled=False)
        selectors = SelectorSet(title=(".missing",))

        with patch.object(static, "_fetch_html", AsyncMock(return_value=(html, URL, 200))):
            static_handle = await static.open(StaticSession(session_id=1), URL, timeout_ms=60000)
        browser_handle = await browser.open(mock_page(html), URL, timeout_ms=60000)

        static_fields = await static.extract(static_handle, selectors)
        browser_fields = await browser.extract(browser_handle, selectors)

        assert static_fields.title == browser_fields.title == "Oil steadies as supply worries ease"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_selector_test_reports_navigation_failure(self):
        static = StaticHtmlBackend()
        fetch = AsyncMock(side_effect=NavigationError("Network error for https://news.test/", URL))

        with patch.object(static, "create_session", AsyncMock(return_value=StaticSession(session_id=1))), \
             patch.object(static, "_fetch_html", fetch):
            result = await static.test_selector(URL, "h1", SelectorRole.TITLE, 1000, 10000)

        assert result.success is False
        assert result.error_type == "network"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_selector_test_reports_unavailable_http_client(self):
        static = StaticHtmlBackend()
        start = AsyncMock(side_effect=BackendUnavailableError("Cannot start HTTP client", "static-html"))

        with patch.object(static, "start", start):
            result = await static.test_selector(URL, "h1", SelectorRole.TITLE, 1000, 10000)

        assert result.success is False
        assert result.error_type == "browser"
