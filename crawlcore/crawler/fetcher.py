"""
Web page fetcher implementation with robots.txt support and bounded retries.
"""

import asyncio
import aiohttp
import logging
import time
from typing import Optional, Dict
from urllib.parse import urljoin, urlparse
from urllib.robotparser import RobotFileParser
from dataclasses import dataclass
from aiohttp import ClientSession, ClientTimeout, ClientError

from .errors import ErrorKind


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    status_code: int
    content: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    fetch_time: float = 0.0
    content_type: Optional[str] = None
    encoding: Optional[str] = None
    final_url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RobotsChecker:
    """Manages robots.txt checking for domains."""

    def __init__(self, user_agent: str, cache_ttl: int = 3600):
        self.user_agent = user_agent
        self.robots_cache: Dict[str, RobotFileParser] = {}
        self.robots_check_time: Dict[str, float] = {}
        self.cache_ttl = cache_ttl
        self.logger = logging.getLogger(__name__)

    def _get_origin(self, url: str) -> str:
        parsed = urlparse(url)
        return f"{parsed.scheme}://{parsed.netloc}"

    async def can_fetch(self, url: str, session: ClientSession) -> bool:
        """Check if URL can be fetched according to robots.txt."""
        origin = self._get_origin(url)
        current_time = time.time()

        if (origin in self.robots_cache and
                current_time - self.robots_check_time.get(origin, 0) < self.cache_ttl):
            return self.robots_cache[origin].can_fetch(self.user_agent, url)

        robots_url = urljoin(origin, '/robots.txt')
        rp = RobotFileParser()
        rp.set_url(robots_url)
        try:
            async with session.get(robots_url, timeout=ClientTimeout(total=10)) as response:
                if response.status == 200:
                    rp.parse((await response.text()).splitlines())
                else:
                    # No robots.txt means everything is allowed
                    rp.parse([])
        except (ClientError, asyncio.TimeoutError) as e:
            self.logger.warning(f"Could not fetch robots.txt for {origin}: {e}")
            return True

        self.robots_cache[origin] = rp
        self.robots_check_time[origin] = current_time
        return rp.can_fetch(self.user_agent, url)


class WebFetcher:
    """
    Fetches web pages with robots.txt compliance, retries and error
    classification. Implements the fetch capability used by the pool.
    """

    TEXT_TYPES = (
        'text/html',
        'text/plain',
        'text/xml',
        'application/xml',
        'application/xhtml+xml',
    )

    def __init__(self, user_agent: str, request_timeout: float = 30,
                 max_concurrent_requests: int = 10, respect_robots_txt: bool = True,
                 retry_attempts: int = 0, retry_backoff: float = 0.5,
                 max_content_size: int = 10 * 1024 * 1024):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_concurrent_requests = max_concurrent_requests
        self.respect_robots_txt = respect_robots_txt
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.max_content_size = max_content_size

        self.logger = logging.getLogger(__name__)
        self.robots_checker = RobotsChecker(user_agent) if respect_robots_txt else None

        self.session: Optional[ClientSession] = None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'retries': 0,
            'robots_blocked': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self.request_timeout),
                headers={'User-Agent': self.user_agent},
                connector=aiohttp.TCPConnector(
                    limit=self.max_concurrent_requests * 2,
                    ttl_dns_cache=300
                )
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a single URL, retrying transient failures.

        Args:
            url: The URL to fetch

        Returns:
            FetchResult with content, or with error and error_kind set
        """
        if self.session is None:
            await self.start()

        start_time = time.time()

        if self.robots_checker and not await self.robots_checker.can_fetch(url, self.session):
            self.stats['robots_blocked'] += 1
            self.logger.info(f"Robots.txt blocks access to: {url}")
            return FetchResult(
                url=url,
                status_code=403,
                error="Blocked by robots.txt",
                error_kind=ErrorKind.ROBOTS,
                fetch_time=time.time() - start_time
            )

        attempt = 0
        while True:
            result = await self._fetch_once(url, start_time)
            if result.ok or not self._should_retry(result) or attempt >= self.retry_attempts:
                break

            attempt += 1
            self.stats['retries'] += 1
            delay = self.retry_backoff * (2 ** (attempt - 1))
            self.logger.info(f"Retrying {url} ({attempt}/{self.retry_attempts}) in {delay:.1f}s: {result.error}")
            await asyncio.sleep(delay)

        if result.ok:
            self.stats['successful_requests'] += 1
        else:
            self.stats['failed_requests'] += 1
        return result

    def _should_retry(self, result: FetchResult) -> bool:
        if result.error_kind == ErrorKind.TIMEOUT:
            return True
        return result.error_kind == ErrorKind.NETWORK and (
            result.status_code == 0 or result.status_code >= 500
        )

    async def _fetch_once(self, url: str, start_time: float) -> FetchResult:
        self.stats['total_requests'] += 1

        try:
            async with self.session.get(url) as response:
                headers = dict(response.headers)
                content_type = response.headers.get('content-type', '').lower()
                final_url = str(response.url)

                if response.status >= 400:
                    self.logger.warning(f"HTTP {response.status} fetching {url}")
                    return FetchResult(
                        url=url,
                        status_code=response.status,
                        headers=headers,
                        content_type=content_type,
                        error=f"HTTP {response.status}",
                        error_kind=ErrorKind.NETWORK,
                        fetch_time=time.time() - start_time,
                        final_url=final_url
                    )

                content = None
                if self._is_text_content(content_type):
                    content = await self._read_content_safely(response)
                    if content:
                        self.stats['total_bytes_downloaded'] += len(content)
                else:
                    self.logger.debug(f"Skipping body of non-text content: {url} ({content_type})")

                self.logger.debug(f"Fetched {url}: {response.status} ({len(content) if content else 0} chars)")
                return FetchResult(
                    url=url,
                    status_code=response.status,
                    content=content,
                    headers=headers,
                    content_type=content_type,
                    encoding=response.charset,
                    fetch_time=time.time() - start_time,
                    final_url=final_url
                )

        except asyncio.TimeoutError:
            self.logger.warning(f"Timeout fetching {url}")
            return FetchResult(
                url=url,
                status_code=0,
                error="Request timeout",
                error_kind=ErrorKind.TIMEOUT,
                fetch_time=time.time() - start_time
            )

        except ClientError as e:
            self.logger.warning(f"Client error fetching {url}: {e}")
            return FetchResult(
                url=url,
                status_code=0,
                error=f"Client error: {e}",
                error_kind=ErrorKind.NETWORK,
                fetch_time=time.time() - start_time
            )

    def _is_text_content(self, content_type: str) -> bool:
        """Check if content type is text-based."""
        return any(text_type in content_type for text_type in self.TEXT_TYPES)

    async def _read_content_safely(self, response) -> Optional[str]:
        """
        Read response content up to max_content_size bytes.

        Returns None if the body is too large.
        """
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_content_size:
            self.logger.warning(f"Content too large ({content_length} bytes): {response.url}")
            return None

        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > self.max_content_size:
                self.logger.warning(f"Content exceeded size limit during reading: {response.url}")
                return None

        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            return content_bytes.decode('utf-8', errors='replace')

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()

    def reset_stats(self):
        """Reset statistics counters."""
        for key in self.stats:
            self.stats[key] = 0
