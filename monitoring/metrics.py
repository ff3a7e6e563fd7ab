"""
Metrics collection for crawl runs.
"""
import json
import os
from datetime import datetime
from typing import Dict, Any, Optional

from loguru import logger

from crawl_engine.interfaces import RunStatus
from crawl_engine.models import CrawlResult


class CrawlMetrics:
    """Collects running counters per source and overall."""

    def __init__(self, metrics_dir: Optional[str] = None):
        """Initialize the metrics collector.

        Args:
            metrics_dir: Directory for daily JSON snapshots; None keeps metrics in memory only
        """
        self.metrics_dir = metrics_dir
        if self.metrics_dir:
            os.makedirs(os.path.join(self.metrics_dir, 'daily'), exist_ok=True)

        self.sources: Dict[int, Dict[str, Any]] = {}

        # Running metrics (reset on application restart)
        self.running_metrics = {
            "app_start_time": datetime.now().isoformat(),
            "runs_completed": 0,
            "runs_partial": 0,
            "runs_failed": 0,
            "total_articles_found": 0,
            "total_articles_processed": 0,
            "total_articles_new": 0,
            "total_duplicates_detected": 0,
            "total_extraction_failures": 0,
            "cleanups_completed": 0,
            "last_cleanup_time": None,
            "last_cleanup_deleted": 0,
        }

    def _source_entry(self, source_id: int, source_name: str) -> Dict[str, Any]:
        if source_id not in self.sources:
            self.sources[source_id] = {
                "name": source_name,
                "runs": 0,
                "failures": 0,
                "articles_found": 0,
                "articles_new": 0,
                "errors": 0,
                "last_run": None,
                "last_status": None,
            }
        return self.sources[source_id]

    def record_run(self, result: CrawlResult):
        """Record the outcome of one crawl run."""
        entry = self._source_entry(result.source_id, result.source_name)
        entry["name"] = result.source_name or entry["name"]
        entry["runs"] += 1
        entry["articles_found"] += result.found
        entry["articles_new"] += result.new
        entry["errors"] += result.errors
        entry["last_run"] = datetime.now().isoformat()
        entry["last_status"] = result.status.value

        if result.status == RunStatus.FAILED:
            entry["failures"] += 1
            self.running_metrics["runs_failed"] += 1
        elif result.status == RunStatus.PARTIAL:
            self.running_metrics["runs_partial"] += 1
        else:
            self.running_metrics["runs_completed"] += 1

        self.running_metrics["total_articles_found"] += result.found
        self.running_metrics["total_articles_processed"] += result.processed
        self.running_metrics["total_articles_new"] += result.new
        self.running_metrics["total_duplicates_detected"] += result.duplicates
        self.running_metrics["total_extraction_failures"] += result.errors

    def record_cleanup(self, deleted: int):
        self.running_metrics["cleanups_completed"] += 1
        self.running_metrics["last_cleanup_time"] = datetime.now().isoformat()
        self.running_metrics["last_cleanup_deleted"] = deleted

    def get_stats(self) -> Dict[str, Any]:
        """Get current metrics.

        Returns:
            Dictionary with running totals and per-source counters
        """
        return {
            "running_metrics": dict(self.running_metrics),
            "sources": {source_id: dict(entry) for source_id, entry in self.sources.items()},
        }

    def save_daily_metrics(self) -> Optional[str]:
        """Write a snapshot of the current metrics to the daily directory."""
        if not self.metrics_dir:
            return None

        date_str = datetime.now().strftime('%Y-%m-%d')
        file_path = os.path.join(self.metrics_dir, 'daily', f"{date_str}.json")
        try:
            with open(file_path, 'w') as f:
                json.dump(self.get_stats(), f, indent=2, default=str)
            logger.info(f"Saved daily metrics to {file_path}")
            return file_path
        except Exception as e:
            logger.error(f"Failed to save daily metrics: {e}")
            return None
