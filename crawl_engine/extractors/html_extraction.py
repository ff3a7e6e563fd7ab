"""
Shared HTML field extraction.

Every fetch backend hands its document snapshot to HtmlFieldExtractor, so a
page yields the same fields whether it was rendered by a browser or fetched
as static HTML.
"""

from typing import List, Optional, Dict, Any, Tuple
from urllib.parse import urljoin, urlparse
from loguru import logger
from bs4 import BeautifulSoup, Tag

from crawl_engine.interfaces import ExtractionError, SelectorRole
from crawl_engine.models import ExtractedFields, SelectorSet


class HtmlFieldExtractor:
    """Evaluates CSS selector expressions against an HTML document."""

    # Tried in order when none of the configured title selectors match
    TITLE_FALLBACK_SELECTORS = ['h1', 'h2', '.title', '.headline', '[class*="title"]', '[class*="headline"]']
    TITLE_FALLBACK_MIN_LENGTH = 10

    DEFAULT_LINK_SELECTOR = 'a'
    INTERNAL_LINK_SAMPLE = 3

    EXCLUDED_HREF_PREFIXES = ('javascript:', 'mailto:', 'tel:')

    SUGGESTION_TAGS = ['a', 'h1', 'h2', 'h3', 'p', 'div', 'span', 'article']
    SUGGESTION_CLASS_HINTS = ('news', 'article', 'link')

    def __init__(self, parser: str = 'html.parser'):
        self.parser = parser

    def parse(self, html: str) -> BeautifulSoup:
        return BeautifulSoup(html or '', self.parser)

    def select(self, soup: BeautifulSoup, expression: str) -> List[Tag]:
        """Run one CSS expression; invalid expressions raise ExtractionError."""
        try:
            return soup.select(expression)
        except Exception as e:
            raise ExtractionError(f"Selector evaluation failed for '{expression}': {e}", cause=e)

    def extract_fields(self, html: str, page_url: str, selectors: SelectorSet) -> ExtractedFields:
        """Extract title, content, internal links and optional metadata fields."""
        soup = self.parse(html)

        title = self._first_text(soup, selectors.title)
        if not title:
            title = self._fallback_title(soup)

        return ExtractedFields(
            title=title,
            content=self._joined_text(soup, selectors.content),
            internal_links=self._internal_links(soup, page_url, selectors.link),
            image=self._first_image(soup, page_url, selectors.image),
            date=self._first_date(soup, selectors.date),
            author=self._first_text(soup, selectors.author),
        )

    def extract_list_links(self, html: str, base_url: str, selectors: SelectorSet) -> List[str]:
        """
        Return candidate article links in document order.

        The first list expression that yields any link wins. Relative hrefs
        are normalized against ``base_url``.
        """
        soup = self.parse(html)

        for expression in selectors.list:
            try:
                elements = self.select(soup, expression)
            except ExtractionError as e:
                logger.warning(f"List selector skipped: {e}")
                continue

            links = []
            for element in elements:
                href = self._href_of(element)
                if not href or href.strip().lower().startswith(self.EXCLUDED_HREF_PREFIXES):
                    continue
                links.append(self.normalize_url(href, base_url))

            if links:
                return list(dict.fromkeys(links))

        return []

    @staticmethod
    def normalize_url(url: str, base_url: str) -> str:
        url = url.strip()
        if url.startswith('http://') or url.startswith('https://'):
            return url
        return urljoin(base_url, url)

    # Field helpers

    def _first_text(self, soup: BeautifulSoup, expressions: Tuple[str, ...]) -> str:
        for expression in expressions:
            try:
                element = next(iter(self.select(soup, expression)), None)
            except ExtractionError as e:
                logger.debug(str(e))
                continue
            if element is not None:
                text = element.get_text(' ', strip=True)
                if text:
                    return text
        return ""

    def _fallback_title(self, soup: BeautifulSoup) -> str:
        for expression in self.TITLE_FALLBACK_SELECTORS:
            element = soup.select_one(expression)
            if element is None:
                continue
            text = element.get_text(' ', strip=True)
            if len(text) > self.TITLE_FALLBACK_MIN_LENGTH:
                return text
        return ""

    def _joined_text(self, soup: BeautifulSoup, expressions: Tuple[str, ...]) -> str:
        for expression in expressions:
            try:
                elements = self.select(soup, expression)
            except ExtractionError as e:
                logger.debug(str(e))
                continue
            parts = [el.get_text(' ', strip=True) for el in elements]
            text = '\n'.join(part for part in parts if part)
            if text:
                return text
        return ""

    def _internal_links(self, soup: BeautifulSoup, page_url: str,
                        expressions: Tuple[str, ...]) -> List[str]:
        origin = self._origin(page_url)
        page_key = page_url.rstrip('/')
        links: List[str] = []

        for expression in expressions or (self.DEFAULT_LINK_SELECTOR,):
            try:
                elements = self.select(soup, expression)
            except ExtractionError as e:
                logger.debug(str(e))
                continue

            for element in elements:
                href = self._href_of(element)
                if not href:
                    continue
                raw = href.strip()
                if '#' in raw or raw.lower().startswith(self.EXCLUDED_HREF_PREFIXES):
                    continue
                absolute = urljoin(page_url, raw)
                if self._origin(absolute) != origin or absolute.rstrip('/') == page_key:
                    continue
                if absolute not in links:
                    links.append(absolute)
                if len(links) >= self.INTERNAL_LINK_SAMPLE:
                    return links

        return links

    def _first_image(self, soup: BeautifulSoup, page_url: str,
                     expressions: Tuple[str, ...]) -> str:
        for expression in expressions:
            try:
                element = next(iter(self.select(soup, expression)), None)
            except ExtractionError as e:
                logger.debug(str(e))
                continue
            if element is None:
                continue
            if element.name != 'img':
                element = element.find('img') or element
            src = element.get('src') or element.get('data-src')
            if src:
                return urljoin(page_url, src.strip())
        return ""

    def _first_date(self, soup: BeautifulSoup, expressions: Tuple[str, ...]) -> str:
        for expression in expressions:
            try:
                element = next(iter(self.select(soup, expression)), None)
            except ExtractionError as e:
                logger.debug(str(e))
                continue
            if element is None:
                continue
            value = element.get('datetime') or element.get('content') or element.get_text(' ', strip=True)
            if value:
                return value.strip()
        return ""

    @staticmethod
    def _href_of(element: Tag) -> Optional[str]:
        href = element.get('href')
        if href:
            return href
        anchor = element.find('a', href=True)
        return anchor.get('href') if anchor else None

    @staticmethod
    def _origin(url: str) -> Tuple[str, str]:
        parsed = urlparse(url)
        return parsed.scheme.lower(), parsed.netloc.lower()

    # Diagnostics

    def describe_matches(self, html: str, page_url: str, expression: str,
                         role: SelectorRole) -> Tuple[int, List[Dict[str, Any]]]:
        """
        Count matches for one expression and build role-specific samples.

        Raises:
            ExtractionError: When the expression is not valid CSS
        """
        soup = self.parse(html)
        elements = self.select(soup, expression)

        if role == SelectorRole.LIST:
            limit, text_length = 5, 150
        elif role == SelectorRole.CONTENT:
            limit, text_length = 3, 300
        else:
            limit, text_length = 3, 200

        samples = []
        for index, element in enumerate(elements[:limit], start=1):
            sample = {
                'index': index,
                'text': element.get_text(' ', strip=True)[:text_length],
                'tag_name': element.name,
                'class_name': ' '.join(element.get('class') or []),
                'id': element.get('id') or '',
            }
            if role == SelectorRole.LIST:
                href = self._href_of(element)
                sample['href'] = urljoin(page_url, href) if href else None
            elif role != SelectorRole.CONTENT:
                sample['attributes'] = {
                    name: ' '.join(value) if isinstance(value, list) else value
                    for name, value in element.attrs.items()
                }
            samples.append(sample)

        return len(elements), samples

    def suggest_selectors(self, html: str) -> List[Dict[str, Any]]:
        """Offer alternative selectors when the tested one matched nothing."""
        soup = self.parse(html)
        suggestions = []

        for tag in self.SUGGESTION_TAGS:
            count = len(soup.find_all(tag))
            if count:
                suggestions.append({'selector': tag, 'count': count, 'description': f"all <{tag}> elements"})

        class_names: List[str] = []
        for element in soup.find_all(class_=True):
            for class_name in element.get('class') or []:
                if any(hint in class_name for hint in self.SUGGESTION_CLASS_HINTS) and class_name not in class_names:
                    class_names.append(class_name)

        for class_name in class_names[:5]:
            count = len(soup.find_all(class_=class_name))
            suggestions.append({
                'selector': f".{class_name}",
                'count': count,
                'description': f"elements with class {class_name}",
            })

        return suggestions[:10]

    def page_info(self, html: str, url: str) -> Dict[str, Any]:
        soup = self.parse(html)
        title = soup.title.get_text(strip=True) if soup.title else ''
        return {
            'title': title,
            'url': url,
            'total_elements': len(soup.find_all(True)),
            'links': len(soup.find_all('a')),
            'images': len(soup.find_all('img')),
        }
