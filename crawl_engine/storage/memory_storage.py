"""
In-process implementation of the crawl storage contract.

Used by the CLI and the test suite. Link and fingerprint uniqueness are
enforced the way a database unique index would be.
"""
import asyncio
import itertools
from typing import Dict, List, Optional, Tuple

from loguru import logger

from crawl_engine.interfaces import DuplicateArticleError, ICrawlStorage
from crawl_engine.models import (
    Article, CleanupSchedule, CrawlRun, InsertResult, Schedule, Selector, Source, utc_now,
)


class InMemoryCrawlStorage(ICrawlStorage):
    """Dictionary-backed storage guarded by one asyncio lock."""

    def __init__(self):
        self.sources: Dict[int, Source] = {}
        self.articles: Dict[int, Article] = {}
        self.schedules: Dict[int, Schedule] = {}
        self.cleanup_schedules: Dict[int, CleanupSchedule] = {}
        self.crawl_runs: List[CrawlRun] = []
        self.cleanup_runs: List[Dict] = []

        self._by_link: Dict[str, int] = {}
        self._by_fingerprint: Dict[str, int] = {}
        self._article_ids = itertools.count(1)
        self._lock = asyncio.Lock()

    # Seeding helpers

    def add_source(self, source: Source) -> Source:
        self.sources[source.id] = source
        return source

    def add_selector(self, selector: Selector) -> Selector:
        """Attach a selector to its source; takes effect from the next run."""
        source = self.sources[selector.source_id]
        source.selectors = [s for s in source.selectors if s.id != selector.id] + [selector]
        return selector

    def add_schedule(self, schedule: Schedule) -> Schedule:
        self.schedules[schedule.id] = schedule
        return schedule

    def add_cleanup_schedule(self, cleanup: CleanupSchedule) -> CleanupSchedule:
        self.cleanup_schedules[cleanup.id] = cleanup
        return cleanup

    # Articles

    async def find_article_by_fingerprint_or_link(self, fingerprint: str,
                                                  link: str) -> Optional[Article]:
        async with self._lock:
            article_id = self._by_fingerprint.get(fingerprint) or self._by_link.get(link)
            return self.articles.get(article_id) if article_id else None

    async def insert_article(self, article: Article) -> InsertResult:
        try:
            async with self._lock:
                return self._insert(article)
        except DuplicateArticleError as e:
            logger.debug(str(e))
            return InsertResult(id=None, is_new=False)

    def _insert(self, article: Article) -> InsertResult:
        if article.link in self._by_link:
            raise DuplicateArticleError(f"UNIQUE constraint failed: articles.link ({article.link})")
        if article.fingerprint in self._by_fingerprint:
            raise DuplicateArticleError(f"UNIQUE constraint failed: articles.fingerprint ({article.fingerprint})")

        article.id = next(self._article_ids)
        article.created_at = utc_now()
        self.articles[article.id] = article
        self._by_link[article.link] = article.id
        self._by_fingerprint[article.fingerprint] = article.id
        return InsertResult(id=article.id, is_new=True)

    async def prune_articles(self, keep_count: int) -> Tuple[int, int]:
        async with self._lock:
            newest_first = sorted(self.articles.values(), key=lambda a: (a.created_at, a.id), reverse=True)
            doomed = newest_first[max(keep_count, 0):]
            for article in doomed:
                del self.articles[article.id]
                self._by_link.pop(article.link, None)
                self._by_fingerprint.pop(article.fingerprint, None)
            return len(doomed), len(self.articles)

    # Sources

    async def get_active_source_by_id(self, source_id: int) -> Optional[Source]:
        source = self.sources.get(source_id)
        if source is None or not source.active:
            return None
        return source

    # Runs

    async def record_crawl_run(self, run: CrawlRun) -> None:
        self.crawl_runs.append(run)

    async def record_cleanup_run(self, schedule_id: int, status: str, message: str) -> None:
        self.cleanup_runs.append({
            "schedule_id": schedule_id,
            "status": status,
            "message": message,
            "created_at": utc_now(),
        })
        cleanup = self.cleanup_schedules.get(schedule_id)
        if cleanup is not None:
            cleanup.last_run = utc_now()

    # Schedules

    async def get_schedule(self, schedule_id: int) -> Optional[Schedule]:
        return self.schedules.get(schedule_id)

    async def list_schedules(self) -> List[Schedule]:
        return list(self.schedules.values())

    async def update_schedule_last_run(self, schedule_id: int) -> None:
        schedule = self.schedules.get(schedule_id)
        if schedule is not None:
            schedule.last_run = utc_now()

    async def get_cleanup_schedule(self, schedule_id: int) -> Optional[CleanupSchedule]:
        return self.cleanup_schedules.get(schedule_id)

    async def list_cleanup_schedules(self) -> List[CleanupSchedule]:
        return list(self.cleanup_schedules.values())
