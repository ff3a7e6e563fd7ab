"""
Fetch backends and HTML extraction for the crawl engine.
"""

from .html_extraction import HtmlFieldExtractor
from .static_backend import StaticHtmlBackend, StaticSession
from .browser_backend import BrowserBackend
from .backend_factory import BackendFactory
from .diagnostics import classify_error

__all__ = [
    'HtmlFieldExtractor',
    'StaticHtmlBackend',
    'StaticSession',
    'BrowserBackend',
    'BackendFactory',
    'classify_error',
]
