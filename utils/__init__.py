"""
Utilities package for the crawl engine.
"""

from .config.crawler_settings import CrawlerSettings
from .logging_setup import configure_logging

__all__ = [
    'CrawlerSettings',
    'configure_logging',
]
