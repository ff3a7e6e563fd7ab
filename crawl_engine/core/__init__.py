"""
Core crawl logic: identity, deduplication, bounded concurrency, the crawl
engine itself and retention cleanup.
"""

from .dedup import ArticleDeduplicator, generate_fingerprint
from .concurrency import run_in_batches
from .crawl_engine import CrawlEngine
from .cleanup import RetentionCleaner

__all__ = [
    'ArticleDeduplicator',
    'generate_fingerprint',
    'run_in_batches',
    'CrawlEngine',
    'RetentionCleaner',
]
