"""
Cron scheduling of crawl and cleanup jobs.
"""

from .crawl_scheduler import CrawlScheduler, JobKind, ScheduledJob, ScheduleState

__all__ = ['CrawlScheduler', 'JobKind', 'ScheduledJob', 'ScheduleState']
