# crawl_engine/validators/options_validator.py
"""
Crawl option validation utilities.
"""
from typing import List, Tuple
from urllib.parse import urlparse

from crawl_engine.interfaces.crawl_interfaces import ValidationError
from crawl_engine.models.crawl_models import CrawlOptions


class CrawlOptionsValidator:
    """Validator for crawl options and selector-test parameters."""

    LIMIT_RANGE: Tuple[int, int] = (1, 100)
    DEPTH_RANGE: Tuple[int, int] = (0, 5)
    TIMEOUT_RANGE: Tuple[int, int] = (30000, 900000)
    WAIT_TIME_RANGE: Tuple[int, int] = (1000, 30000)

    TEST_TIMEOUT_RANGE: Tuple[int, int] = (5000, 120000)

    @classmethod
    def validate(cls, options: CrawlOptions) -> List[str]:
        """
        Validate crawl options.

        Every violated bound is reported; validation never stops at the first
        problem.

        Args:
            options: CrawlOptions to validate

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        errors.extend(cls._check_range("limit", options.limit, cls.LIMIT_RANGE))
        errors.extend(cls._check_range("crawlDepth", options.crawl_depth, cls.DEPTH_RANGE))
        errors.extend(cls._check_range("waitTime", options.wait_time, cls.WAIT_TIME_RANGE, " ms"))
        errors.extend(cls._check_range("timeout", options.timeout, cls.TIMEOUT_RANGE, " ms"))

        return errors

    @classmethod
    def ensure_valid(cls, options: CrawlOptions, source_name: str = "") -> CrawlOptions:
        """Raise ValidationError listing every violation, otherwise return the options."""
        errors = cls.validate(options)
        if errors:
            raise ValidationError(errors, source_name)
        return options

    @classmethod
    def validate_selector_test(cls, url: str, expression: str,
                               wait_time: int, timeout: int) -> List[str]:
        """Validate the inputs of a diagnostic selector test."""
        errors = []

        if not url or not expression or not str(expression).strip():
            errors.append("url and selector are both required")
        elif not cls._is_valid_url(url):
            errors.append(f"Invalid URL format: {url}")

        errors.extend(cls._check_range("timeout", timeout, cls.TEST_TIMEOUT_RANGE, " ms"))
        errors.extend(cls._check_range("waitTime", wait_time, cls.WAIT_TIME_RANGE, " ms"))

        return errors

    @staticmethod
    def _check_range(name: str, value, bounds: Tuple[int, int], unit: str = "") -> List[str]:
        low, high = bounds
        # bool is an int subclass; reject it explicitly
        if isinstance(value, bool) or not isinstance(value, int):
            return [f"{name} must be an integer between {low} and {high}{unit} (got {value!r})"]
        if value < low or value > high:
            return [f"{name} must be between {low} and {high}{unit} (got {value})"]
        return []

    @staticmethod
    def _is_valid_url(url: str) -> bool:
        try:
            result = urlparse(url)
            return result.scheme in ('http', 'https') and bool(result.netloc)
        except Exception:
            return False
