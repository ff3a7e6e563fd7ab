"""
Article retention cleanup.
"""
import time
from typing import Any, Dict

from loguru import logger

from crawl_engine.interfaces import ICrawlStorage
from crawl_engine.models import CleanupSchedule


class RetentionCleaner:
    """Keeps only the newest ``keep_articles_count`` articles."""

    def __init__(self, storage: ICrawlStorage):
        self.storage = storage

    async def run(self, schedule: CleanupSchedule) -> Dict[str, Any]:
        """
        Prune old articles and record the outcome.

        Returns:
            Dict with status, deleted and remaining counts
        """
        start_time = time.time()
        logger.info(f"Starting cleanup '{schedule.name}' (keeping {schedule.keep_articles_count} articles)")

        try:
            deleted, remaining = await self.storage.prune_articles(schedule.keep_articles_count)
        except Exception as e:
            logger.error(f"Cleanup '{schedule.name}' failed: {e}")
            await self.storage.record_cleanup_run(schedule.id, "failed", str(e))
            return {"status": "failed", "deleted": 0, "remaining": None, "error": str(e)}

        duration = time.time() - start_time
        message = f"Deleted {deleted} articles, {remaining} remaining"
        logger.info(f"Cleanup '{schedule.name}' completed in {duration:.2f}s: {message}")
        await self.storage.record_cleanup_run(schedule.id, "success", message)
        return {"status": "success", "deleted": deleted, "remaining": remaining}
