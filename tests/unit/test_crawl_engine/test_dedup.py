"""
Unit tests for article fingerprints and the deduplicator.
"""
import hashlib
from unittest.mock import AsyncMock, MagicMock

import pytest

from crawl_engine.core import ArticleDeduplicator, generate_fingerprint
from crawl_engine.interfaces import DuplicateArticleError
from crawl_engine.models import Article, InsertResult
from crawl_engine.storage import InMemoryCrawlStorage


class TestFingerprint:

    @pytest.mark.unit
    def test_fingerprint_is_md5_of_title_and_link(self):
        expected = hashlib.md5("Rates hold steadyhttps://news.test/rates".encode('utf-8')).hexdigest()
        assert generate_fingerprint("Rates hold steady", "https://news.test/rates") == expected

    @pytest.mark.unit
    def test_fingerprint_is_deterministic(self):
        first = generate_fingerprint("Title", "https://news.test/a")
        second = generate_fingerprint("Title", "https://news.test/a")
        assert first == second

    @pytest.mark.unit
    def test_different_inputs_give_different_fingerprints(self):
        fingerprints = {
            generate_fingerprint(f"Title {i}", f"https://news.test/{j}")
            for i in range(20) for j in range(20)
        }
        assert len(fingerprints) == 400


class TestArticleDeduplicator:

    @pytest.fixture
    def storage(self):
        return InMemoryCrawlStorage()

    @pytest.fixture
    def dedup(self, storage):
        return ArticleDeduplicator(storage)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_new_article_is_inserted(self, dedup, storage):
        result = await dedup.store(1, "Fresh headline", "https://news.test/fresh", "body", depth=1)

        assert result.is_new is True
        article = storage.articles[result.id]
        assert article.depth == 1
        assert article.fingerprint == generate_fingerprint("Fresh headline", "https://news.test/fresh")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_same_link_with_new_title_is_duplicate(self, dedup, storage):
        await dedup.store(1, "Original title", "https://news.test/story", "body")
        result = await dedup.store(1, "Edited title", "https://news.test/story", "body")

        assert result.is_new is False
        assert len(storage.articles) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_first_depth_wins(self, dedup, storage):
        await dedup.store(1, "Shared story", "https://news.test/shared", "body", depth=2)
        await dedup.store(2, "Shared story", "https://news.test/shared", "body", depth=0)

        (article,) = storage.articles.values()
        assert article.depth == 2
        assert article.source_id == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unique_violation_on_insert_means_not_new(self):
        storage = MagicMock()
        storage.find_article_by_fingerprint_or_link = AsyncMock(return_value=None)
        storage.insert_article = AsyncMock(side_effect=DuplicateArticleError("UNIQUE constraint failed"))

        result = await ArticleDeduplicator(storage).store(1, "Race", "https://news.test/race", "")

        assert result == InsertResult(id=None, is_new=False)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_storage_classifies_duplicate_insert(self, storage):
        article = Article(source_id=1, title="T", link="https://news.test/x", content="",
                          fingerprint="abc")
        twin = Article(source_id=1, title="T2", link="https://news.test/y", content="",
                       fingerprint="abc")

        assert (await storage.insert_article(article)).is_new is True
        assert (await storage.insert_article(twin)).is_new is False
