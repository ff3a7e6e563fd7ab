# crawl_engine/interfaces/__init__.py
"""
Interfaces package for the crawl engine.
Contains the backend and storage contracts, enums and exceptions.
"""

from .crawl_interfaces import (
    # Core interfaces
    IFetchBackend,
    ICrawlStorage,

    # Enums
    BackendType,
    SelectorRole,
    RunStatus,

    # Exceptions
    CrawlEngineError,
    ValidationError,
    NavigationError,
    ExtractionError,
    BackendUnavailableError,
    DuplicateArticleError,
    SourceNotFoundError,
    ScheduleError,
)

__all__ = [
    'IFetchBackend',
    'ICrawlStorage',

    'BackendType',
    'SelectorRole',
    'RunStatus',

    'CrawlEngineError',
    'ValidationError',
    'NavigationError',
    'ExtractionError',
    'BackendUnavailableError',
    'DuplicateArticleError',
    'SourceNotFoundError',
    'ScheduleError',
]
