"""
Monitoring package for the crawl engine.
"""

from .metrics import CrawlMetrics

__all__ = ['CrawlMetrics']
