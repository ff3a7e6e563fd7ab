"""
Unit tests for CrawlOptions parsing and validation.
"""
import pytest

from crawl_engine.interfaces import ValidationError
from crawl_engine.models import CrawlOptions, Schedule
from crawl_engine.validators import CrawlOptionsValidator


class TestCrawlOptions:

    @pytest.mark.unit
    def test_defaults(self):
        options = CrawlOptions()
        assert options.limit == 10
        assert options.crawl_depth == 0
        assert options.full_content is True
        assert options.wait_time == 3000
        assert options.timeout == 60000
        assert options.follow_links is True

    @pytest.mark.unit
    def test_from_dict_accepts_camel_and_snake_case(self):
        options = CrawlOptions.from_dict({
            "limit": 5,
            "crawlDepth": 2,
            "fullContent": False,
            "wait_time": 1500,
            "followLinks": False,
            "unknown": "ignored",
        })
        assert options.limit == 5
        assert options.crawl_depth == 2
        assert options.full_content is False
        assert options.wait_time == 1500
        assert options.follow_links is False

    @pytest.mark.unit
    def test_schedule_conversion_applies_fallbacks(self):
        schedule = Schedule(id=1, source_id=3, cron_expression="*/5 * * * *",
                            article_limit=0, crawl_depth=2, timeout=0)
        options = schedule.to_crawl_options()
        assert options.limit == 10
        assert options.crawl_depth == 2
        assert options.timeout == 300000
        assert options.full_content is False


class TestCrawlOptionsValidator:

    @pytest.mark.unit
    def test_default_options_are_valid(self):
        assert CrawlOptionsValidator.validate(CrawlOptions()) == []

    @pytest.mark.unit
    @pytest.mark.parametrize("field,value", [
        ("limit", 1), ("limit", 100),
        ("crawl_depth", 0), ("crawl_depth", 5),
        ("timeout", 30000), ("timeout", 900000),
        ("wait_time", 1000), ("wait_time", 30000),
    ])
    def test_bounds_are_inclusive(self, field, value):
        options = CrawlOptions(**{field: value})
        assert CrawlOptionsValidator.validate(options) == []

    @pytest.mark.unit
    def test_all_violations_collected(self):
        options = CrawlOptions(limit=0, crawl_depth=6, timeout=100, wait_time=50000)
        errors = CrawlOptionsValidator.validate(options)

        assert len(errors) == 4
        assert [error.split()[0] for error in errors] == ["limit", "crawlDepth", "waitTime", "timeout"]

    @pytest.mark.unit
    def test_booleans_and_strings_are_not_integers(self):
        errors = CrawlOptionsValidator.validate(CrawlOptions(limit=True, crawl_depth="2"))
        assert len(errors) == 2

    @pytest.mark.unit
    def test_ensure_valid_raises_with_error_list(self):
        with pytest.raises(ValidationError) as exc_info:
            CrawlOptionsValidator.ensure_valid(CrawlOptions(limit=101), "test-news")

        assert exc_info.value.errors == ["limit must be between 1 and 100 (got 101)"]
        assert exc_info.value.source_name == "test-news"
        assert "Invalid crawl options" in str(exc_info.value)

    @pytest.mark.unit
    def test_selector_test_validation(self):
        assert CrawlOptionsValidator.validate_selector_test("https://news.test/", "h1", 3000, 20000) == []

        errors = CrawlOptionsValidator.validate_selector_test("ftp//broken", "", 500, 200000)
        assert len(errors) == 3
