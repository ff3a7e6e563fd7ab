# crawl_engine/models/crawl_models.py
"""
Data models for sources, selectors, articles, schedules and run results.
Following Domain-Driven Design principles.
"""
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, List, Any, Tuple
from datetime import datetime, timezone

from crawl_engine.interfaces.crawl_interfaces import BackendType, SelectorRole, RunStatus


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Selector:
    """A named extraction rule attached to a source."""
    id: Optional[int]
    source_id: int
    role: SelectorRole
    expression: str
    priority: int = 1
    active: bool = True
    name: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.role, SelectorRole):
            self.role = SelectorRole(str(self.role).lower())
        if not self.expression or not self.expression.strip():
            raise ValueError("Selector expression cannot be empty")


@dataclass(frozen=True)
class SelectorSet:
    """
    Immutable snapshot of a source's active selectors, grouped by role.

    Expressions for each role are kept in priority order; extraction uses the
    first one that yields a non-empty result.
    """
    list: Tuple[str, ...] = ()
    title: Tuple[str, ...] = ()
    content: Tuple[str, ...] = ()
    link: Tuple[str, ...] = ()
    image: Tuple[str, ...] = ()
    date: Tuple[str, ...] = ()
    author: Tuple[str, ...] = ()

    @classmethod
    def from_selectors(cls, selectors: List[Selector]) -> 'SelectorSet':
        """Build a snapshot from selector rows, ignoring inactive ones."""
        grouped: Dict[str, List[Selector]] = {}
        for selector in selectors:
            if not selector.active:
                continue
            grouped.setdefault(selector.role.value, []).append(selector)

        ordered = {
            role: tuple(
                s.expression.strip()
                for s in sorted(items, key=lambda s: (s.priority, s.id if s.id is not None else 0))
            )
            for role, items in grouped.items()
        }
        return cls(**ordered)


@dataclass
class Source:
    """A configured website plus its extraction selectors."""
    id: int
    name: str
    base_url: str
    backend: BackendType = BackendType.BROWSER
    active: bool = True
    selectors: List[Selector] = field(default_factory=list)

    def __post_init__(self):
        """Validate configuration."""
        if not self.name.strip():
            raise ValueError("Source name cannot be empty")
        if not self.base_url.strip():
            raise ValueError("Base URL cannot be empty")
        self.backend = BackendType.from_config(self.backend)

    def selector_set(self) -> SelectorSet:
        return SelectorSet.from_selectors(self.selectors)


@dataclass
class Article:
    """A persisted article. Created only by the crawl engine."""
    source_id: int
    title: str
    link: str
    content: str
    fingerprint: str
    depth: int = 0
    id: Optional[int] = None
    created_at: datetime = field(default_factory=utc_now)
    read: bool = False
    image_url: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[str] = None


@dataclass(frozen=True)
class InsertResult:
    """Outcome of an article insert."""
    id: Optional[int]
    is_new: bool


@dataclass
class CrawlRun:
    """Append-only history record for a completed or failed run."""
    source_id: int
    started_at: datetime
    found_count: int = 0
    processed_count: int = 0
    new_count: int = 0
    error_count: int = 0
    depth: int = 0
    duration_ms: int = 0
    status: RunStatus = RunStatus.SUCCESS
    source_name: str = ""
    backend: str = ""
    error_message: Optional[str] = None
    finished_at: Optional[datetime] = None


@dataclass
class Schedule:
    """Recurring crawl definition for a source."""
    id: int
    source_id: int
    cron_expression: str
    active: bool = True
    crawl_depth: int = 0
    full_content: bool = False
    article_limit: int = 10
    timeout: int = 300000
    follow_links: bool = True
    last_run: Optional[datetime] = None

    def to_crawl_options(self) -> 'CrawlOptions':
        return CrawlOptions(
            limit=self.article_limit or 10,
            crawl_depth=self.crawl_depth if self.crawl_depth is not None else 0,
            full_content=bool(self.full_content),
            timeout=self.timeout or 300000,
            follow_links=self.follow_links is not False,
        )


@dataclass
class CleanupSchedule:
    """Recurring article retention job."""
    id: int
    name: str
    cron_expression: str
    keep_articles_count: int = 1000
    active: bool = True
    last_run: Optional[datetime] = None


@dataclass
class CrawlOptions:
    """Per-run crawl options. Bounds are enforced by CrawlOptionsValidator."""
    limit: Any = 10
    crawl_depth: Any = 0
    full_content: bool = True
    wait_time: Any = 3000
    timeout: Any = 60000
    follow_links: bool = True

    _KEY_ALIASES = {
        'limit': 'limit',
        'article_limit': 'limit',
        'crawlDepth': 'crawl_depth',
        'crawl_depth': 'crawl_depth',
        'fullContent': 'full_content',
        'full_content': 'full_content',
        'waitTime': 'wait_time',
        'wait_time': 'wait_time',
        'timeout': 'timeout',
        'followLinks': 'follow_links',
        'follow_links': 'follow_links',
    }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'CrawlOptions':
        """Build options from API-style (camelCase) or snake_case keys."""
        kwargs = {}
        for key, value in (data or {}).items():
            attr = cls._KEY_ALIASES.get(key)
            if attr is not None:
                kwargs[attr] = value
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ExtractedFields:
    """Structured fields pulled out of one page."""
    title: str = ""
    content: str = ""
    internal_links: List[str] = field(default_factory=list)
    image: str = ""
    date: str = ""
    author: str = ""


@dataclass
class PageHandle:
    """A page loaded into a session, with the document snapshot to extract from."""
    url: str
    html: str
    session: Any = None
    final_url: Optional[str] = None
    wait_condition: str = "domcontentloaded"
    status: Optional[int] = None

    @property
    def effective_url(self) -> str:
        return self.final_url or self.url


@dataclass
class SelectorTestResult:
    """Structured outcome of a diagnostic selector test."""
    success: bool
    url: str
    selector: str
    role: str
    count: int = 0
    samples: List[Dict[str, Any]] = field(default_factory=list)
    duration_ms: int = 0
    error: Optional[str] = None
    error_type: Optional[str] = None
    suggestion: Optional[str] = None
    suggestions: List[Dict[str, Any]] = field(default_factory=list)
    page_info: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: utc_now().isoformat())

    @property
    def performance(self) -> Dict[str, Any]:
        return {
            'load_time_ms': self.duration_ms,
            'elements_found': self.count,
            'status': 'excellent' if self.count > 0 else 'warning',
        }

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.success:
            data['performance'] = self.performance
        return data


@dataclass
class CrawlResult:
    """Aggregate result of a crawl run, reported even on partial failure."""
    success: bool
    source_id: int
    source_name: str = ""
    backend: str = ""
    found: int = 0
    processed: int = 0
    new: int = 0
    errors: int = 0
    skipped: int = 0
    duplicates: int = 0
    depth_reached: int = 0
    duration_ms: int = 0
    status: RunStatus = RunStatus.SUCCESS
    articles: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status.value
        return data
