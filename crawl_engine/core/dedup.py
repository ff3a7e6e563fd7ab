"""
Article identity and deduplication.
"""
import hashlib
from typing import Optional

from loguru import logger

from crawl_engine.interfaces import DuplicateArticleError, ICrawlStorage
from crawl_engine.models import Article, InsertResult


def generate_fingerprint(title: str, link: str) -> str:
    """Deterministic md5 hex digest of title followed by link."""
    return hashlib.md5(f"{title}{link}".encode('utf-8')).hexdigest()


class ArticleDeduplicator:
    """
    Check-then-insert against the storage collaborator.

    The check is not atomic with the insert; a unique-constraint violation on
    insert is reported as an existing article.
    """

    def __init__(self, storage: ICrawlStorage):
        self.storage = storage

    async def is_known(self, fingerprint: str, link: str) -> bool:
        existing = await self.storage.find_article_by_fingerprint_or_link(fingerprint, link)
        return existing is not None

    async def store(self, source_id: int, title: str, link: str, content: str, depth: int = 0,
                    image_url: Optional[str] = None, author: Optional[str] = None,
                    published_at: Optional[str] = None) -> InsertResult:
        """
        Persist an article unless one with the same fingerprint or link exists.

        Returns:
            InsertResult with ``is_new`` False for any kind of duplicate
        """
        fingerprint = generate_fingerprint(title, link)

        if await self.is_known(fingerprint, link):
            logger.debug(f"Article already stored: {link}")
            return InsertResult(id=None, is_new=False)

        article = Article(
            source_id=source_id,
            title=title,
            link=link,
            content=content,
            fingerprint=fingerprint,
            depth=depth,
            image_url=image_url or None,
            author=author or None,
            published_at=published_at or None,
        )

        try:
            return await self.storage.insert_article(article)
        except DuplicateArticleError:
            logger.debug(f"Concurrent insert detected for {link}")
            return InsertResult(id=None, is_new=False)
