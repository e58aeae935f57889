"""
Web page parser for extracting links and basic page content.
"""

import re
import logging
from typing import List, Optional
from urllib.parse import urlparse
from dataclasses import dataclass, field
from bs4 import BeautifulSoup, Comment

from .errors import ParseError
from .url_frontier import normalize_url


SKIP_EXTENSIONS = (
    '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.svg', '.webp',
    '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
    '.zip', '.rar', '.tar', '.gz', '.exe', '.dmg', '.iso',
    '.mp3', '.mp4', '.avi', '.mov', '.wmv', '.flv',
    '.css', '.js', '.ico', '.woff', '.woff2', '.ttf', '.eot'
)


@dataclass
class ParsedContent:
    """Container for parsed web page content."""
    url: str
    title: Optional[str] = None
    content: Optional[str] = None
    meta_description: Optional[str] = None
    canonical_url: Optional[str] = None
    links: List[str] = field(default_factory=list)
    word_count: int = 0


class ContentParser:
    """
    Parses HTML to extract links and page text.

    `extract_links` is the link extraction capability handed to the pool.
    """

    def __init__(self, features: str = 'lxml'):
        self.features = features
        self.logger = logging.getLogger(__name__)
        self.whitespace_pattern = re.compile(r'\s+')

    def _soup(self, url: str, html_content: str) -> BeautifulSoup:
        try:
            return BeautifulSoup(html_content, self.features)
        except Exception as e:
            raise ParseError(f"Could not parse HTML: {e}", url=url) from e

    def extract_links(self, url: str, html_content: str) -> List[str]:
        """Return normalized, crawlable links found on the page."""
        return self._extract_links(self._soup(url, html_content), url)

    def parse(self, url: str, html_content: str) -> ParsedContent:
        """
        Parse HTML content and extract structured data.

        Args:
            url: The URL of the page
            html_content: Raw HTML content

        Returns:
            ParsedContent object with extracted data

        Raises:
            ParseError: if the document cannot be parsed
        """
        soup = self._soup(url, html_content)

        for script in soup(["script", "style", "noscript"]):
            script.decompose()
        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        parsed_content = ParsedContent(url=url)

        title_tag = soup.find('title')
        if title_tag:
            parsed_content.title = self._clean_text(title_tag.get_text())

        meta_desc = soup.find('meta', attrs={'name': 'description'}) or \
            soup.find('meta', attrs={'property': 'og:description'})
        if meta_desc:
            parsed_content.meta_description = self._clean_text(meta_desc.get('content', ''))

        canonical = soup.find('link', attrs={'rel': 'canonical'})
        if canonical and canonical.get('href'):
            parsed_content.canonical_url = normalize_url(canonical['href'], url)

        body = soup.find('body') or soup
        parsed_content.content = self._clean_text(body.get_text(separator=' ', strip=True))
        parsed_content.links = self._extract_links(soup, url)

        if parsed_content.content:
            parsed_content.word_count = len(parsed_content.content.split())

        self.logger.debug(f"Parsed content from {url}: {parsed_content.word_count} words, "
                          f"{len(parsed_content.links)} links")
        return parsed_content

    def _extract_links(self, soup: BeautifulSoup, base_url: str) -> List[str]:
        """Extract and normalize links, keeping document order."""
        base_tag = soup.find('base', href=True)
        if base_tag:
            base_url = normalize_url(base_tag['href'], base_url) or base_url

        links = []
        seen = set()
        for link in soup.find_all('a', href=True):
            href = link['href'].strip()
            if not href or href.startswith('#'):
                continue

            normalized_url = normalize_url(href, base_url)
            if normalized_url and self._is_valid_url(normalized_url) and normalized_url not in seen:
                seen.add(normalized_url)
                links.append(normalized_url)

        return links

    def _is_valid_url(self, url: str) -> bool:
        """Skip links that point at non-page resources."""
        path = urlparse(url).path.lower()
        return not path.endswith(SKIP_EXTENSIONS)

    def _clean_text(self, text: str) -> str:
        if not text:
            return ""
        return self.whitespace_pattern.sub(' ', text.strip())
