# crawl_engine/models/__init__.py
"""
Data models for the crawl engine.
"""

from .crawl_models import (
    Selector,
    SelectorSet,
    Source,
    Article,
    InsertResult,
    CrawlRun,
    Schedule,
    CleanupSchedule,
    CrawlOptions,
    ExtractedFields,
    PageHandle,
    SelectorTestResult,
    CrawlResult,
    utc_now,
)

__all__ = [
    'Selector',
    'SelectorSet',
    'Source',
    'Article',
    'InsertResult',
    'CrawlRun',
    'Schedule',
    'CleanupSchedule',
    'CrawlOptions',
    'ExtractedFields',
    'PageHandle',
    'SelectorTestResult',
    'CrawlResult',
    'utc_now',
]
