"""
Selector diagnostics shared by all fetch backends.

Turns a loaded document (or the exception raised while loading it) into a
SelectorTestResult with a readable error category and remediation hint.
"""

import asyncio
import time
from typing import Optional, Tuple

from crawl_engine.interfaces import (
    BackendUnavailableError, ExtractionError, NavigationError, SelectorRole, ValidationError,
)
from crawl_engine.models import SelectorTestResult
from crawl_engine.extractors.html_extraction import HtmlFieldExtractor


ERROR_SUGGESTIONS = {
    'validation': "Check the URL format and make sure the selector and timing values are within range.",
    'timeout': "The page did not load in time. The site may be slow or unreachable; try a larger timeout.",
    'network': "Could not connect to the site. Check the URL and the network connection.",
    'browser': "The browser failed. It may need to be reinstalled or restarted.",
    'selector': "The selector is not valid CSS. Check its syntax.",
    'not_found': "The selector matched nothing. Try one of the suggested selectors.",
    'unknown': "Unexpected error. Check the logs for details.",
}


def classify_error(error: Exception) -> Tuple[str, str]:
    """Map an exception to (error_type, suggestion)."""
    message = str(error)
    cause = getattr(error, 'cause', None)

    if isinstance(error, ValidationError):
        error_type = 'validation'
    elif isinstance(error, ExtractionError):
        error_type = 'selector'
    elif isinstance(error, BackendUnavailableError):
        error_type = 'browser'
    elif isinstance(error, asyncio.TimeoutError) or isinstance(cause, asyncio.TimeoutError) \
            or 'timeout' in message.lower():
        error_type = 'timeout'
    elif isinstance(error, NavigationError) or 'net::ERR_' in message:
        error_type = 'network'
    elif 'Protocol error' in message or 'Target closed' in message:
        error_type = 'browser'
    else:
        error_type = 'unknown'

    return error_type, ERROR_SUGGESTIONS[error_type]


def build_test_result(extractor: HtmlFieldExtractor, html: str, url: str, expression: str,
                      role: SelectorRole, started: float) -> SelectorTestResult:
    """Evaluate the expression on a loaded document and package the outcome."""
    count, samples = extractor.describe_matches(html, url, expression, role)
    duration_ms = int((time.monotonic() - started) * 1000)

    if count == 0:
        return SelectorTestResult(
            success=False,
            url=url,
            selector=expression,
            role=role.value,
            duration_ms=duration_ms,
            error="Selector did not match any element on the page",
            error_type='not_found',
            suggestion=ERROR_SUGGESTIONS['not_found'],
            suggestions=extractor.suggest_selectors(html),
            page_info=extractor.page_info(html, url),
        )

    return SelectorTestResult(
        success=True,
        url=url,
        selector=expression,
        role=role.value,
        count=count,
        samples=samples,
        duration_ms=duration_ms,
    )


def build_error_result(error: Exception, url: str, expression: str, role: SelectorRole,
                       started: Optional[float] = None) -> SelectorTestResult:
    error_type, suggestion = classify_error(error)
    duration_ms = int((time.monotonic() - started) * 1000) if started is not None else 0
    return SelectorTestResult(
        success=False,
        url=url,
        selector=expression,
        role=role.value,
        duration_ms=duration_ms,
        error=str(error),
        error_type=error_type,
        suggestion=suggestion,
    )
