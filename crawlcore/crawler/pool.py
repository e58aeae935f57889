"""
Fetcher pool: a fixed set of worker tasks draining the frontier.
"""

import asyncio
import logging
import time
from typing import Callable, Iterable, List, Optional

from .errors import CrawlError, ErrorKind
from .results import CrawlResult
from .url_frontier import URLFrontier, URLTask, normalize_url, get_domain
from ..utils.logger import get_crawler_logger


LinkExtractor = Callable[[str, str], Iterable[str]]


class FetcherPool:
    """
    Runs N workers that take tasks from the frontier, fetch them, feed
    discovered links back and resolve each task with one CrawlResult.

    Collaborators:
        fetcher: object with `async fetch(url) -> FetchResult`
        extract_links: callable `(url, content) -> iterable of URLs`
        sink: optional object with `async store(url, content)`
    """

    def __init__(self, frontier: URLFrontier, fetcher, extract_links: LinkExtractor,
                 sink=None, num_workers: int = 4, fetch_timeout: float = 30.0,
                 max_depth: int = 3,
                 on_result: Optional[Callable[[CrawlResult], None]] = None):
        if num_workers < 1:
            raise ValueError("num_workers must be at least 1")

        self.frontier = frontier
        self.fetcher = fetcher
        self.extract_links = extract_links
        self.sink = sink
        self.num_workers = num_workers
        self.fetch_timeout = fetch_timeout
        self.max_depth = max_depth
        self.on_result = on_result
        self.logger = logging.getLogger(__name__)

        self.workers: List[asyncio.Task] = []
        self.stats = {
            'results': 0,
            'stored': 0,
            'store_failures': 0,
            'links_found': 0,
            'links_enqueued': 0
        }

    def start(self):
        """Spawn the worker tasks."""
        if self.workers:
            raise RuntimeError("Pool already started")

        for i in range(self.num_workers):
            self.workers.append(asyncio.create_task(
                self._worker(f"worker-{i}"), name=f"crawl-worker-{i}"
            ))
        self.logger.info(f"Started fetcher pool with {self.num_workers} workers")

    async def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for every worker to exit. Returns False if the timeout expired
        first; the workers are left running in that case.
        """
        if not self.workers:
            return True
        done, pending = await asyncio.wait(self.workers, timeout=timeout)
        for worker in done:
            if not worker.cancelled() and worker.exception() is not None:
                self.logger.error(f"Worker {worker.get_name()} crashed",
                                  exc_info=worker.exception())
        return not pending

    async def stop(self):
        """Hard-cancel workers that are still running."""
        for worker in self.workers:
            if not worker.done():
                worker.cancel()
        await asyncio.gather(*self.workers, return_exceptions=True)

    @property
    def running(self) -> int:
        return sum(1 for worker in self.workers if not worker.done())

    async def _worker(self, worker_id: str):
        log = get_crawler_logger(__name__, worker_id=worker_id)
        log.debug(f"Worker {worker_id} started")

        while True:
            task = await self.frontier.get_next_url()
            if task is None:
                break

            result = CrawlResult.failure(task, ErrorKind.CANCELLED, "Worker cancelled before completion")
            try:
                result = await self._process_url(task, log)
            finally:
                await self.frontier.mark_done(task, result)
                self._report(result)

        log.debug(f"Worker {worker_id} finished")

    async def _process_url(self, task: URLTask, log) -> CrawlResult:
        """Process a single task. Per-task errors become failed results."""
        if not self.frontier.domain_filter.is_allowed(task.domain):
            log.info(f"Skipping URL on disallowed domain: {task.url}")
            return CrawlResult.failure(task, ErrorKind.DISALLOWED_DOMAIN,
                                       f"Domain not allowed: {task.domain}")

        start_time = time.monotonic()
        try:
            fetch_result = await asyncio.wait_for(self.fetcher.fetch(task.url), self.fetch_timeout)
        except asyncio.TimeoutError:
            log.warning(f"Fetch timed out after {self.fetch_timeout}s: {task.url}")
            return CrawlResult.failure(task, ErrorKind.TIMEOUT,
                                       f"Fetch exceeded {self.fetch_timeout}s",
                                       fetch_time=time.monotonic() - start_time)
        except CrawlError as e:
            log.warning(f"Failed to fetch {task.url}: {e}")
            return CrawlResult.failure(task, e.kind, str(e),
                                       fetch_time=time.monotonic() - start_time)
        except Exception as e:
            log.error(f"Unexpected error fetching {task.url}: {e}", exc_info=True)
            return CrawlResult.failure(task, ErrorKind.NETWORK, f"Unexpected error: {e}",
                                       fetch_time=time.monotonic() - start_time)

        fetch_time = time.monotonic() - start_time

        if not fetch_result.ok:
            log.warning(f"Failed to fetch {task.url}: {fetch_result.error}")
            return CrawlResult.failure(task, fetch_result.error_kind or ErrorKind.NETWORK,
                                       fetch_result.error, fetch_result.status_code, fetch_time)

        base_url = normalize_url(fetch_result.final_url) if fetch_result.final_url else None
        base_url = base_url or task.url
        if base_url != task.url and not self.frontier.domain_filter.is_allowed(get_domain(base_url)):
            log.info(f"Redirect to disallowed domain: {task.url} -> {base_url}")
            return CrawlResult.failure(task, ErrorKind.DISALLOWED_DOMAIN,
                                       f"Redirected to disallowed domain: {base_url}",
                                       fetch_result.status_code, fetch_time)

        content = fetch_result.content
        result = CrawlResult(
            task=task,
            success=True,
            status_code=fetch_result.status_code,
            fetch_time=fetch_time,
            content_length=len(content) if content else 0
        )

        if content and task.depth < self.max_depth:
            try:
                links = list(self.extract_links(base_url, content))
            except CrawlError as e:
                log.warning(f"Failed to extract links from {task.url}: {e}")
                return CrawlResult.failure(task, ErrorKind.PARSE, str(e),
                                           fetch_result.status_code, fetch_time)
            except Exception as e:
                log.error(f"Unexpected error extracting links from {task.url}: {e}", exc_info=True)
                return CrawlResult.failure(task, ErrorKind.PARSE, f"Unexpected error: {e}",
                                           fetch_result.status_code, fetch_time)

            result.links_found = len(links)
            result.links_enqueued = await self._queue_new_urls(task, base_url, links)

        if content is not None and self.sink is not None:
            await self._store(task.url, content, log)

        log.debug(f"Processed {task.url} in {fetch_time:.2f}s "
                  f"({result.links_enqueued}/{result.links_found} links queued)")
        return result

    async def _queue_new_urls(self, task: URLTask, base_url: str, links: List[str]) -> int:
        """Enqueue discovered links one level deeper. Must run before the task resolves."""
        new_tasks = []
        for link in links:
            normalized = normalize_url(link, base_url)
            if normalized:
                new_tasks.append(task.child(normalized))

        if not new_tasks:
            return 0
        return await self.frontier.add_urls(new_tasks)

    async def _store(self, url: str, content: str, log):
        try:
            stored = await self.sink.store(url, content)
        except Exception as e:
            log.error(f"Failed to store content for {url}: {e}", exc_info=True)
            self.stats['store_failures'] += 1
            return

        if stored is False:
            self.stats['store_failures'] += 1
        else:
            self.stats['stored'] += 1

    def _report(self, result: CrawlResult):
        self.stats['results'] += 1
        self.stats['links_found'] += result.links_found
        self.stats['links_enqueued'] += result.links_enqueued
        if self.on_result is not None:
            self.on_result(result)

    def get_stats(self) -> dict:
        return {**self.stats, 'workers_running': self.running}
