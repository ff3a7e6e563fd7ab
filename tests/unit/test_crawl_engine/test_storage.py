"""
Unit tests for the in-memory storage and the YAML source loader.
"""
import textwrap

import pytest

from crawl_engine.interfaces import BackendType, SelectorRole
from crawl_engine.models import Article, Selector
from crawl_engine.storage import InMemoryCrawlStorage, SourceConfigLoader, load_storage_from_yaml


def article(i: int, link: str = None, fingerprint: str = None) -> Article:
    return Article(source_id=1, title=f"Story {i}", link=link or f"https://news.test/s{i}",
                   content="", fingerprint=fingerprint or f"fp{i}")


class TestInMemoryCrawlStorage:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_link_uniqueness(self):
        storage = InMemoryCrawlStorage()

        first = await storage.insert_article(article(1, link="https://news.test/same"))
        second = await storage.insert_article(article(2, link="https://news.test/same"))

        assert first.is_new and first.id == 1
        assert second.is_new is False and second.id is None
        assert len(storage.articles) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_lookup_by_fingerprint_or_link(self):
        storage = InMemoryCrawlStorage()
        await storage.insert_article(article(1))

        assert (await storage.find_article_by_fingerprint_or_link("fp1", "nope")).id == 1
        assert (await storage.find_article_by_fingerprint_or_link("nope", "https://news.test/s1")).id == 1
        assert await storage.find_article_by_fingerprint_or_link("nope", "nope") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_prune_keeps_newest(self):
        storage = InMemoryCrawlStorage()
        for i in range(1, 6):
            await storage.insert_article(article(i))

        assert await storage.prune_articles(3) == (2, 3)
        assert sorted(storage.articles) == [3, 4, 5]
        # Pruned links can be stored again
        assert (await storage.insert_article(article(1))).is_new is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_inactive_source_is_hidden(self, storage):
        storage.sources[1].active = False
        assert await storage.get_active_source_by_id(1) is None
        assert await storage.get_active_source_by_id(42) is None

    @pytest.mark.unit
    def test_added_selector_replaces_same_id(self, storage):
        storage.add_selector(Selector(id=2, source_id=1, role=SelectorRole.TITLE, expression="h2.title"))

        assert storage.sources[1].selector_set().title == ("h2.title",)


class TestSourceConfigLoader:

    @pytest.mark.unit
    def test_load_from_yaml(self, tmp_path):
        config = tmp_path / "sources.yaml"
        config.write_text(textwrap.dedent("""
            sources:
              - id: 1
                name: kabutan
                url: https://kabutan.test/news/
                backend: cheerio
                selectors:
                  list: "ul.news a"
                  title:
                    - h1.headline
                    - h1
                  content:
                    expression: div.body p
                    priority: 2
              - id: 2
                name: broken
            schedules:
              - id: 1
                source_id: 1
                cron: "*/15 * * * *"
                article_limit: 5
                follow_links: false
            cleanup_schedules:
              - id: 1
                cron: "0 3 * * *"
                keep_articles_count: 500
        """))

        storage = load_storage_from_yaml(str(config))

        assert list(storage.sources) == [1]
        source = storage.sources[1]
        assert source.backend == BackendType.STATIC_HTML
        selectors = source.selector_set()
        assert selectors.list == ("ul.news a",)
        assert selectors.title == ("h1.headline", "h1")
        assert selectors.content == ("div.body p",)

        schedule = storage.schedules[1]
        assert schedule.article_limit == 5
        assert schedule.follow_links is False
        assert schedule.full_content is False

        cleanup = storage.cleanup_schedules[1]
        assert cleanup.name == "cleanup-1"
        assert cleanup.keep_articles_count == 500

    @pytest.mark.unit
    def test_missing_file_gives_empty_storage(self, tmp_path):
        storage = SourceConfigLoader.load_from_yaml(str(tmp_path / "absent.yaml"))
        assert storage.sources == {}

    @pytest.mark.unit
    def test_unknown_selector_role_skips_source(self):
        storage = SourceConfigLoader.load_from_dict({
            "sources": [{"id": 3, "name": "odd", "url": "https://odd.test/",
                         "selectors": {"sidebar": "aside"}}],
        })
        assert storage.sources == {}
