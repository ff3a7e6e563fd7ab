"""
Configuration utilities for environment settings.
"""

from .crawler_settings import CrawlerSettings

__all__ = ['CrawlerSettings']
