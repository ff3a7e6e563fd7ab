"""
Depth-limited crawl orchestration.

A run discovers candidate links on a source's list page, extracts each
candidate, stores new articles through the deduplicator and then follows a
few internal links per new page, one depth level at a time.
"""
import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from loguru import logger

from crawl_engine.interfaces import (
    BackendType, BackendUnavailableError, ICrawlStorage, IFetchBackend,
    RunStatus, SelectorRole, SourceNotFoundError, ValidationError,
)
from crawl_engine.models import (
    CrawlOptions, CrawlResult, CrawlRun, SelectorSet, SelectorTestResult, Source, utc_now,
)
from crawl_engine.validators import CrawlOptionsValidator
from crawl_engine.extractors.backend_factory import BackendFactory
from crawl_engine.extractors.diagnostics import build_error_result
from crawl_engine.pool import SessionPool
from crawl_engine.core.concurrency import run_in_batches
from crawl_engine.core.dedup import ArticleDeduplicator
from monitoring.metrics import CrawlMetrics
from utils.config import CrawlerSettings


@dataclass
class _RunStats:
    found: int = 0
    processed: int = 0
    new: int = 0
    errors: int = 0
    skipped: int = 0
    duplicates: int = 0
    depth_reached: int = 0
    previews: List[Dict[str, Any]] = field(default_factory=list)


class CrawlEngine:
    """
    Runs crawls and selector tests against configured sources.

    Backends are created on first use through the BackendFactory unless
    supplied up front; each backend type gets its own SessionPool.
    """

    FOLLOW_FANOUT = 2
    FOLLOW_BATCH_SIZE = 2
    ITEM_SETTLE_CAP_MS = 2000
    PREVIEW_COUNT = 5

    def __init__(self, storage: ICrawlStorage, settings: Optional[CrawlerSettings] = None,
                 backends: Optional[Dict[BackendType, IFetchBackend]] = None,
                 metrics: Optional[CrawlMetrics] = None):
        self.storage = storage
        self.settings = settings or CrawlerSettings()
        self.metrics = metrics or CrawlMetrics()
        self.deduplicator = ArticleDeduplicator(storage)

        self._backends: Dict[BackendType, IFetchBackend] = dict(backends or {})
        self._pools: Dict[BackendType, SessionPool] = {}
        self._lock = asyncio.Lock()

    async def get_backend(self, backend_type: BackendType) -> IFetchBackend:
        """Return the started backend for a type, creating it on first use."""
        async with self._lock:
            backend = self._backends.get(backend_type)
            if backend is None:
                try:
                    backend = BackendFactory.create_backend(backend_type, self.settings)
                except ValueError as e:
                    raise BackendUnavailableError(str(e), backend_type.value, e)
                self._backends[backend_type] = backend

        await backend.start()
        return backend

    async def get_pool(self, backend_type: BackendType) -> SessionPool:
        backend = await self.get_backend(backend_type)
        async with self._lock:
            pool = self._pools.get(backend_type)
            if pool is None:
                pool = SessionPool(
                    backend,
                    max_sessions=self.settings.pool_max_sessions,
                    reset_timeout_s=self.settings.session_reset_timeout_seconds,
                    max_usage=self.settings.session_max_usage,
                )
                self._pools[backend_type] = pool
        return pool

    async def run_crawl(self, source_id: int,
                        options: Union[CrawlOptions, Dict[str, Any], None] = None) -> CrawlResult:
        """
        Crawl one source.

        Args:
            source_id: ID of an active source
            options: CrawlOptions or an options dict (camelCase or snake_case)

        Returns:
            CrawlResult with counts, reported even when the run failed

        Raises:
            ValidationError: If any option is out of range; nothing is fetched
        """
        if not isinstance(options, CrawlOptions):
            options = CrawlOptions.from_dict(options)
        CrawlOptionsValidator.ensure_valid(options)

        started_at = utc_now()
        start_time = time.monotonic()
        stats = _RunStats()
        source: Optional[Source] = None
        run_error: Optional[Exception] = None

        try:
            source = await self.storage.get_active_source_by_id(source_id)
            if source is None:
                raise SourceNotFoundError(f"Active source {source_id} not found")

            logger.info(f"Starting crawl of {source.name} with {source.backend.value} backend "
                        f"(limit={options.limit}, depth={options.crawl_depth})")

            # Selector edits made during the run do not apply to it
            selectors = source.selector_set()
            pool = await self.get_pool(source.backend)

            processed_links, seeds = await self._crawl_list_page(pool, source, selectors, options, stats)
            if seeds:
                await self._follow_links(pool, source, selectors, options, seeds, processed_links, stats)
        except Exception as e:
            run_error = e
            source_label = source.name if source is not None else source_id
            logger.error(f"Crawl of source {source_label} failed: {e}")

        status = self._run_status(stats, run_error)
        duration_ms = int((time.monotonic() - start_time) * 1000)

        result = CrawlResult(
            success=status != RunStatus.FAILED,
            source_id=source_id,
            source_name=source.name if source is not None else "",
            backend=source.backend.value if source is not None else "",
            found=stats.found,
            processed=stats.processed,
            new=stats.new,
            errors=stats.errors,
            skipped=stats.skipped,
            duplicates=stats.duplicates,
            depth_reached=stats.depth_reached,
            duration_ms=duration_ms,
            status=status,
            articles=stats.previews[:self.PREVIEW_COUNT],
            error=str(run_error) if run_error is not None else None,
        )

        await self._record_run(result, options, started_at)
        self.metrics.record_run(result)

        if status == RunStatus.FAILED:
            logger.error(f"Crawl of source {source_id} finished as failed in {duration_ms}ms")
        else:
            logger.success(f"Crawl of {result.source_name} finished ({status.value}): "
                           f"found={stats.found} processed={stats.processed} new={stats.new} "
                           f"errors={stats.errors} in {duration_ms}ms")
        return result

    async def _crawl_list_page(self, pool: SessionPool, source: Source, selectors: SelectorSet,
                               options: CrawlOptions,
                               stats: _RunStats) -> Tuple[List[str], List[Tuple[str, str]]]:
        """
        Extract candidates from the list page and process up to ``limit`` of them.

        Returns:
            The processed links, and (parent_url, link) follow-up seeds
            collected from new articles
        """
        backend = pool.backend
        seeds: List[Tuple[str, str]] = []
        item_settle_ms = min(options.wait_time, self.ITEM_SETTLE_CAP_MS)

        async with pool.session() as session:
            handle = await backend.open(session, source.base_url, options.timeout,
                                        settle_ms=options.wait_time)
            try:
                candidates = await backend.extract_list(handle, selectors)
            finally:
                await backend.close(handle)

            stats.found = len(candidates)
            logger.info(f"Found {len(candidates)} candidate links on {source.base_url}")

            processed_links: List[str] = candidates[:options.limit]
            for link in processed_links:
                internal_links = await self._process_item(
                    backend, session, source, selectors, options, link, 0, item_settle_ms, stats
                )
                if internal_links and options.follow_links and options.crawl_depth > 0:
                    seeds.extend((link, child) for child in internal_links)

        return processed_links, seeds

    async def _follow_links(self, pool: SessionPool, source: Source, selectors: SelectorSet,
                            options: CrawlOptions, seeds: List[Tuple[str, str]],
                            processed_links: List[str], stats: _RunStats) -> None:
        """Process follow-up links level by level, never deeper than ``crawl_depth``."""
        item_settle_ms = min(options.wait_time, self.ITEM_SETTLE_CAP_MS)
        visited: Set[str] = {source.base_url}
        # Depth-0 items are never revisited
        visited.update(processed_links)

        frontier = self._next_level(seeds, visited)
        depth = 1

        while frontier and depth <= options.crawl_depth:
            logger.info(f"Following {len(frontier)} internal links at depth {depth}")

            factories = [
                self._follow_task(pool, source, selectors, options, link, depth, item_settle_ms, stats)
                for link in frontier
            ]
            outcomes = await run_in_batches(factories, self.FOLLOW_BATCH_SIZE)

            children: List[Tuple[str, str]] = []
            for link, outcome in zip(frontier, outcomes):
                if isinstance(outcome, Exception):
                    stats.errors += 1
                elif outcome:
                    children.extend((link, child) for child in outcome)

            frontier = self._next_level(children, visited)
            depth += 1

    def _next_level(self, edges: List[Tuple[str, str]], visited: Set[str]) -> List[str]:
        """At most FOLLOW_FANOUT unvisited children per parent, marked visited."""
        level: List[str] = []
        per_parent: Dict[str, int] = {}
        for parent, child in edges:
            if child in visited or per_parent.get(parent, 0) >= self.FOLLOW_FANOUT:
                continue
            visited.add(child)
            per_parent[parent] = per_parent.get(parent, 0) + 1
            level.append(child)
        return level

    def _follow_task(self, pool: SessionPool, source: Source, selectors: SelectorSet,
                     options: CrawlOptions, link: str, depth: int, settle_ms: int,
                     stats: _RunStats):
        async def task() -> List[str]:
            async with pool.session() as session:
                return await self._process_item(pool.backend, session, source, selectors,
                                                options, link, depth, settle_ms, stats)
        return task

    async def _process_item(self, backend: IFetchBackend, session: Any, source: Source,
                            selectors: SelectorSet, options: CrawlOptions, link: str,
                            depth: int, settle_ms: int, stats: _RunStats) -> List[str]:
        """
        Extract and store one page. Failures are counted, never raised.

        Returns:
            Internal links of the page when it produced a new article
        """
        try:
            handle = await backend.open(session, link, options.timeout, settle_ms=settle_ms)
            try:
                fields = await backend.extract(handle, selectors)
            finally:
                await backend.close(handle)

            if not fields.title:
                logger.warning(f"Skipping {link}: no title extracted")
                stats.skipped += 1
                return []

            stats.processed += 1
            stats.depth_reached = max(stats.depth_reached, depth)

            outcome = await self.deduplicator.store(
                source_id=source.id,
                title=fields.title,
                link=link,
                content=fields.content if options.full_content else "",
                depth=depth,
                image_url=fields.image,
                author=fields.author,
                published_at=fields.date,
            )
            if not outcome.is_new:
                stats.duplicates += 1
                return []

            stats.new += 1
            stats.previews.append({
                'title': fields.title,
                'link': link,
                'depth': depth,
                'content': fields.content[:200] if options.full_content else "",
            })
            return fields.internal_links
        except Exception as e:
            stats.errors += 1
            logger.warning(f"Failed to process {link} at depth {depth}: {e}")
            return []

    @staticmethod
    def _run_status(stats: _RunStats, run_error: Optional[Exception]) -> RunStatus:
        if run_error is not None:
            return RunStatus.FAILED
        if stats.errors > 0:
            return RunStatus.PARTIAL if stats.processed > 0 else RunStatus.FAILED
        return RunStatus.SUCCESS

    async def _record_run(self, result: CrawlResult, options: CrawlOptions, started_at) -> None:
        run = CrawlRun(
            source_id=result.source_id,
            started_at=started_at,
            found_count=result.found,
            processed_count=result.processed,
            new_count=result.new,
            error_count=result.errors,
            depth=options.crawl_depth,
            duration_ms=result.duration_ms,
            status=result.status,
            source_name=result.source_name,
            backend=result.backend,
            error_message=result.error,
            finished_at=utc_now(),
        )
        try:
            await self.storage.record_crawl_run(run)
        except Exception as e:
            logger.error(f"Could not record crawl run for source {result.source_id}: {e}")

    async def test_selector(self, url: str, expression: str, role: Union[SelectorRole, str] = SelectorRole.LIST,
                            backend_type: Union[BackendType, str] = BackendType.BROWSER,
                            wait_time: int = 3000, timeout: int = 20000) -> SelectorTestResult:
        """
        Evaluate a selector against a live page.

        Runs on a dedicated session outside the session pools and never
        raises; problems come back as a result with ``error_type`` set.
        """
        errors = []
        try:
            role = SelectorRole(role)
        except ValueError:
            errors.append(f"Unknown selector role: {role}")
            role = SelectorRole.LIST

        errors.extend(CrawlOptionsValidator.validate_selector_test(url, expression, wait_time, timeout))
        if errors:
            return build_error_result(ValidationError(errors), url, expression, role)

        try:
            backend = await self.get_backend(BackendType.from_config(backend_type))
        except BackendUnavailableError as e:
            logger.error(f"Selector test backend unavailable: {e}")
            return build_error_result(e, url, expression, role)

        logger.info(f"Testing selector '{expression}' ({role.value}) on {url}")
        return await backend.test_selector(url, expression.strip(), role, wait_time, timeout)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "pools": {backend_type.value: pool.get_stats() for backend_type, pool in self._pools.items()},
            "metrics": self.metrics.get_stats(),
        }

    async def close(self) -> None:
        """Close every pool, then shut the backends down."""
        for pool in list(self._pools.values()):
            await pool.close_all()
        for backend_type, backend in list(self._backends.items()):
            try:
                await backend.shutdown()
            except Exception as e:
                logger.warning(f"Error shutting down {backend_type.value} backend: {e}")
        self._pools.clear()
