# crawl_engine/interfaces/crawl_interfaces.py
"""
Core interfaces for the crawl orchestration engine.

Fetch backends and the storage collaborator are consumed only through the
abstract classes below, so the engine, pool and scheduler never depend on a
concrete browser, HTTP client or database.
"""
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, List, Any, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from crawl_engine.models.crawl_models import (
        Article, CrawlRun, ExtractedFields, InsertResult, PageHandle,
        Schedule, CleanupSchedule, SelectorSet, SelectorTestResult, Source,
    )


class BackendType(Enum):
    """Fetch strategies a source can be crawled with."""
    BROWSER = "browser"
    STATIC_HTML = "static-html"

    @classmethod
    def from_config(cls, value: Optional[str]) -> 'BackendType':
        """Map a configured crawler name (including legacy aliases) to a backend type."""
        if isinstance(value, BackendType):
            return value
        aliases = {
            'browser': cls.BROWSER,
            'puppeteer': cls.BROWSER,
            'playwright': cls.BROWSER,
            'selenium': cls.BROWSER,
            'webdriver': cls.BROWSER,
            'static-html': cls.STATIC_HTML,
            'static_html': cls.STATIC_HTML,
            'static': cls.STATIC_HTML,
            'html': cls.STATIC_HTML,
            'cheerio': cls.STATIC_HTML,
        }
        return aliases.get((value or '').strip().lower(), cls.BROWSER)


class SelectorRole(Enum):
    """Role a selector plays when pulling fields out of a page."""
    LIST = "list"
    TITLE = "title"
    CONTENT = "content"
    LINK = "link"
    IMAGE = "image"
    DATE = "date"
    AUTHOR = "author"


class RunStatus(Enum):
    """Outcome recorded for a crawl run."""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class IFetchBackend(ABC):
    """
    Capability interface every fetch strategy implements.

    A backend creates the expensive sessions the pool hands out, loads pages
    into them and evaluates selector expressions against the loaded document.
    """

    backend_type: BackendType

    @abstractmethod
    async def start(self) -> None:
        """
        Prepare shared resources (browser process, HTTP connector).

        Raises:
            BackendUnavailableError: When the backend cannot be initialized
        """
        pass

    @abstractmethod
    async def shutdown(self) -> None:
        """Release shared resources."""
        pass

    @abstractmethod
    async def create_session(self) -> Any:
        """Create a new reusable session (e.g. a browser tab)."""
        pass

    @abstractmethod
    async def reset_session(self, session: Any) -> None:
        """Return a session to a neutral blank state before it is reused."""
        pass

    @abstractmethod
    async def destroy_session(self, session: Any) -> None:
        """Terminate a session for good."""
        pass

    @abstractmethod
    async def open(self, session: Any, url: str, timeout_ms: int,
                   settle_ms: int = 0) -> 'PageHandle':
        """
        Load a URL into the session.

        Two-stage navigation: a fast content-ready wait first, then one retry
        with the permissive fully-loaded wait.

        Raises:
            NavigationError: When both attempts fail
        """
        pass

    @abstractmethod
    async def extract(self, handle: 'PageHandle', selectors: 'SelectorSet') -> 'ExtractedFields':
        """Evaluate selectors against the loaded page. Missing fields come back empty."""
        pass

    @abstractmethod
    async def extract_list(self, handle: 'PageHandle', selectors: 'SelectorSet') -> List[str]:
        """Return absolute candidate article links matched by the list selectors."""
        pass

    @abstractmethod
    async def close(self, handle: 'PageHandle') -> None:
        """Release the page without terminating its session."""
        pass

    @abstractmethod
    async def test_selector(self, url: str, expression: str, role: 'SelectorRole',
                            wait_time_ms: int, timeout_ms: int) -> 'SelectorTestResult':
        """Diagnostic single-shot selector evaluation on a dedicated session."""
        pass


class ICrawlStorage(ABC):
    """Contract consumed from the persistent-storage collaborator."""

    @abstractmethod
    async def find_article_by_fingerprint_or_link(self, fingerprint: str,
                                                  link: str) -> Optional['Article']:
        pass

    @abstractmethod
    async def insert_article(self, article: 'Article') -> 'InsertResult':
        """
        Insert an article.

        Unique-constraint violations are classified as ``is_new=False``
        instead of being propagated.
        """
        pass

    @abstractmethod
    async def get_active_source_by_id(self, source_id: int) -> Optional['Source']:
        """Return the active source with its active selectors ordered by priority."""
        pass

    @abstractmethod
    async def record_crawl_run(self, run: 'CrawlRun') -> None:
        pass

    @abstractmethod
    async def get_schedule(self, schedule_id: int) -> Optional['Schedule']:
        pass

    @abstractmethod
    async def list_schedules(self) -> List['Schedule']:
        pass

    @abstractmethod
    async def update_schedule_last_run(self, schedule_id: int) -> None:
        pass

    @abstractmethod
    async def get_cleanup_schedule(self, schedule_id: int) -> Optional['CleanupSchedule']:
        pass

    @abstractmethod
    async def list_cleanup_schedules(self) -> List['CleanupSchedule']:
        pass

    @abstractmethod
    async def prune_articles(self, keep_count: int) -> Tuple[int, int]:
        """Delete the oldest articles beyond ``keep_count``; return (deleted, remaining)."""
        pass

    @abstractmethod
    async def record_cleanup_run(self, schedule_id: int, status: str, message: str) -> None:
        pass


# Exceptions

class CrawlEngineError(Exception):
    """Base exception for crawl engine operations."""

    def __init__(self, message: str, source_name: str = "", cause: Optional[Exception] = None):
        super().__init__(message)
        self.source_name = source_name
        self.cause = cause


class ValidationError(CrawlEngineError):
    """Raised when crawl options violate one or more bounds."""

    def __init__(self, errors: List[str], source_name: str = ""):
        self.errors = list(errors)
        super().__init__("Invalid crawl options: " + "; ".join(self.errors), source_name)


class NavigationError(CrawlEngineError):
    """Timeout or network failure while loading a page."""

    def __init__(self, message: str, url: str = "", cause: Optional[Exception] = None):
        super().__init__(message, cause=cause)
        self.url = url


class ExtractionError(CrawlEngineError):
    """Selector evaluation failure."""
    pass


class BackendUnavailableError(CrawlEngineError):
    """The fetch backend cannot be initialized."""

    def __init__(self, message: str, backend: str = "", cause: Optional[Exception] = None):
        super().__init__(message, cause=cause)
        self.backend = backend


class DuplicateArticleError(CrawlEngineError):
    """Storage unique-constraint violation on insert."""
    pass


class SourceNotFoundError(CrawlEngineError):
    """No active source exists for the requested id."""
    pass


class ScheduleError(CrawlEngineError):
    """Invalid schedule definition (e.g. malformed cron expression)."""
    pass
