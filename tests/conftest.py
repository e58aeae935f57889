import asyncio
from collections import Counter
from dataclasses import replace

import pytest

from crawlcore.crawler.errors import ErrorKind
from crawlcore.crawler.fetcher import FetchResult
from crawlcore.crawler.scheduler import CrawlCoordinator
from crawlcore.crawler.url_frontier import get_domain
from crawlcore.utils.config import CrawlerConfig


class FakeFetcher:
    """
    In-memory fetch capability backed by a link graph.

    pages maps url -> list of links; the page content is the url itself so
    extract_links can look the links back up.
    """

    def __init__(self, pages=None, errors=None, delay=0.0, delays=None):
        self.pages = pages or {}
        self.errors = errors or {}
        self.delay = delay
        self.delays = delays or {}
        self.calls = []
        self.in_flight = Counter()
        self.max_in_flight = Counter()
        self.max_total_in_flight = 0

    async def fetch(self, url):
        self.calls.append(url)
        domain = get_domain(url)
        self.in_flight[domain] += 1
        self.max_in_flight[domain] = max(self.max_in_flight[domain], self.in_flight[domain])
        self.max_total_in_flight = max(self.max_total_in_flight, sum(self.in_flight.values()))
        try:
            await asyncio.sleep(self.delays.get(url, self.delay))

            error = self.errors.get(url)
            if isinstance(error, Exception):
                raise error
            if isinstance(error, ErrorKind):
                return FetchResult(url=url, status_code=0, error=f"{error.value} error", error_kind=error)
            if url not in self.pages:
                return FetchResult(url=url, status_code=404, error="HTTP 404", error_kind=ErrorKind.NETWORK)

            return FetchResult(url=url, status_code=200, content=url, final_url=url)
        finally:
            self.in_flight[domain] -= 1

    def extract_links(self, url, content):
        return self.pages.get(content, [])


class RecordingSink:
    """Result sink that keeps everything in memory."""

    def __init__(self, fail_urls=()):
        self.stored = {}
        self.fail_urls = set(fail_urls)

    async def store(self, url, content):
        if url in self.fail_urls:
            raise IOError(f"disk full while storing {url}")
        self.stored[url] = content
        return True


@pytest.fixture
def crawler_config():
    return CrawlerConfig(
        seed_urls=["http://a.test/"],
        max_depth=3,
        max_workers=4,
        per_domain_limit=2,
        request_timeout=2.0,
        retry_attempts=0,
        respect_robots_txt=False,
        stats_interval=60
    )


@pytest.fixture
def make_coordinator(crawler_config):
    def _make(pages=None, errors=None, delay=0.0, delays=None, sink=None, **overrides):
        fetcher = FakeFetcher(pages, errors, delay, delays)
        config = replace(crawler_config, **overrides)
        sink = sink if sink is not None else RecordingSink()
        coordinator = CrawlCoordinator(config, fetcher, fetcher.extract_links, sink=sink)
        return coordinator, fetcher, sink
    return _make


@pytest.fixture
def recording_sink_cls():
    return RecordingSink


@pytest.fixture
def fake_fetcher_cls():
    return FakeFetcher
