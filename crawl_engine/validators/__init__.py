"""
Validation utilities for the crawl engine.
"""

from .options_validator import CrawlOptionsValidator

__all__ = ['CrawlOptionsValidator']
