"""
URL Frontier implementation for managing URLs to crawl.
Implements deduplication, per-domain queues and parallelism-aware dispatch.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Set, Optional, List
from urllib.parse import urljoin, urlparse, urlunparse

from .completion import CompletionTracker
from .domain_limiter import DomainLimiter, DomainFilter


DEFAULT_PORTS = {'http': 80, 'https': 443}


def normalize_url(url: str, base_url: Optional[str] = None) -> Optional[str]:
    """
    Canonicalize a URL so equivalent resources compare equal.

    Resolves against base_url, lowercases scheme and host, drops the
    default port, user info and fragment, and uses '/' for an empty path.
    Returns None for anything that is not an absolute http(s) URL.
    """
    if not url:
        return None

    url = url.strip()
    if base_url:
        url = urljoin(base_url, url)

    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError:
        return None

    scheme = parsed.scheme.lower()
    if scheme not in DEFAULT_PORTS or not parsed.hostname:
        return None

    host = parsed.hostname
    if ':' in host:
        host = f"[{host}]"
    if port is not None and port != DEFAULT_PORTS[scheme]:
        host = f"{host}:{port}"

    return urlunparse((
        scheme,
        host,
        parsed.path or '/',
        parsed.params,
        parsed.query,
        ''
    ))


def get_domain(url: str) -> str:
    """Extract domain (host[:port]) from URL."""
    try:
        return urlparse(url).netloc.lower()
    except ValueError:
        return "unknown"


@dataclass
class URLTask:
    """Represents a URL crawling task."""
    url: str
    depth: int
    parent_url: Optional[str] = None
    domain: str = ''
    discovered_time: float = field(default_factory=time.time)

    def __post_init__(self):
        if self.depth < 0:
            raise ValueError(f"Task depth must be non-negative, got {self.depth}")
        if not self.domain:
            self.domain = get_domain(self.url)

    @classmethod
    def from_url(cls, url: str, depth: int = 0, parent_url: Optional[str] = None) -> 'URLTask':
        """Create a task from a raw URL, normalizing it first."""
        normalized = normalize_url(url, parent_url)
        if normalized is None:
            raise ValueError(f"Not a crawlable URL: {url!r}")
        return cls(url=normalized, depth=depth, parent_url=parent_url)

    def child(self, url: str) -> 'URLTask':
        """Task for a link discovered on this page."""
        return URLTask(url=url, depth=self.depth + 1, parent_url=self.url)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'url': self.url,
            'depth': self.depth,
            'parent_url': self.parent_url,
            'domain': self.domain,
            'discovered_time': self.discovered_time
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'URLTask':
        """Create URLTask from dictionary."""
        return cls(
            url=data['url'],
            depth=data['depth'],
            parent_url=data.get('parent_url'),
            domain=data.get('domain', ''),
            discovered_time=data.get('discovered_time', time.time())
        )


class URLFrontier:
    """
    Holds not-yet-dispatched tasks and the visited set.

    One asyncio.Condition guards the visited set, the per-domain queues, the
    domain limiter and the completion tracker. Every check-and-update runs
    while it is held and without an await in between, which makes dedup
    and slot acquisition atomic with respect to concurrent workers.
    """

    def __init__(self, limiter: Optional[DomainLimiter] = None,
                 domain_filter: Optional[DomainFilter] = None,
                 tracker: Optional[CompletionTracker] = None,
                 dispatch_limit: Optional[int] = None):
        self.limiter = limiter or DomainLimiter()
        self.domain_filter = domain_filter or DomainFilter()
        self.tracker = tracker or CompletionTracker()
        self.dispatch_limit = dispatch_limit
        self.logger = logging.getLogger(__name__)

        # Insertion order doubles as round-robin order across domains
        self.domain_queues: Dict[str, deque] = {}
        self.visited: Set[str] = set()

        self.dispatched = 0
        self.filtered = 0
        self.duplicates = 0
        self._cancelled = False
        self._condition = asyncio.Condition()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def limit_reached(self) -> bool:
        return self.dispatch_limit is not None and self.dispatched >= self.dispatch_limit

    async def add_url(self, task: URLTask, check_domain: bool = True) -> bool:
        """
        Add a task to the frontier.
        Returns True if it was accepted, False if it was a duplicate or
        rejected by the domain filter, or if the crawl is over.
        """
        async with self._condition:
            return self._add_locked(task, check_domain)

    async def add_urls(self, tasks: List[URLTask], check_domain: bool = True) -> int:
        """Add multiple tasks under one lock acquisition. Returns count added."""
        async with self._condition:
            return sum(1 for task in tasks if self._add_locked(task, check_domain))

    def _add_locked(self, task: URLTask, check_domain: bool) -> bool:
        if self._cancelled or self.tracker.done:
            return False

        if task.url in self.visited:
            self.duplicates += 1
            return False

        if check_domain and not self.domain_filter.is_allowed(task.domain):
            self.filtered += 1
            self.logger.debug(f"Filtered URL outside allowed domains: {task.url}")
            return False

        self.visited.add(task.url)
        queue = self.domain_queues.get(task.domain)
        if queue is None:
            queue = self.domain_queues[task.domain] = deque()
        queue.append(task)
        self.tracker.task_enqueued()
        self._condition.notify_all()

        self.logger.debug(f"Added URL to frontier: {task.url}")
        return True

    def _pop_dispatchable_locked(self) -> Optional[URLTask]:
        if self.limit_reached:
            return None

        for domain in list(self.domain_queues):
            if not self.limiter.can_acquire(domain):
                continue

            queue = self.domain_queues.pop(domain)
            task = queue.popleft()
            if queue:
                # Re-insert at the back so other domains get a turn
                self.domain_queues[domain] = queue

            self.limiter.acquire(domain)
            self.tracker.task_started()
            self.dispatched += 1
            return task

        return None

    async def try_dequeue(self) -> Optional[URLTask]:
        """
        Take one dispatchable task without waiting.
        Returns None when nothing can be dispatched right now, which does
        not mean the crawl is finished.
        """
        async with self._condition:
            if self._cancelled or self.tracker.done:
                return None
            return self._pop_dispatchable_locked()

    async def get_next_url(self) -> Optional[URLTask]:
        """
        Wait for the next dispatchable task.
        Returns None once the crawl is finished, cancelled or out of budget.
        """
        async with self._condition:
            while True:
                if self._cancelled or self.tracker.done or self.limit_reached:
                    return None

                task = self._pop_dispatchable_locked()
                if task is not None:
                    self.logger.debug(f"Retrieved URL from frontier: {task.url}")
                    return task

                await self._condition.wait()

    async def mark_done(self, task: URLTask, result):
        """Release the task's domain slot and resolve it in the tracker."""
        async with self._condition:
            self.limiter.release(task.domain)
            self.tracker.task_resolved(result)
            self._condition.notify_all()

    async def close_seeding(self):
        """Signal that no further seeds will be added."""
        async with self._condition:
            self.tracker.close()
            self._condition.notify_all()

    def stop_dispatching(self):
        """
        Stop handing out tasks immediately. Does not wait for the lock, so
        it is safe to call from signal handlers; follow up with cancel()
        to abandon the queue and wake waiting workers.
        """
        self._cancelled = True

    async def cancel(self) -> int:
        """
        Stop handing out work and wake every waiting worker.
        Returns the number of queued tasks that were abandoned.
        """
        async with self._condition:
            self._cancelled = True
            abandoned = 0
            for queue in self.domain_queues.values():
                for task in queue:
                    self.visited.discard(task.url)
                abandoned += len(queue)
            self.domain_queues.clear()

            if abandoned:
                self.tracker.task_abandoned(abandoned)

            self._condition.notify_all()
            if abandoned:
                self.logger.info(f"Frontier cancelled, {abandoned} queued URLs abandoned")
            return abandoned

    def queued_count(self) -> int:
        return sum(len(queue) for queue in self.domain_queues.values())

    def is_empty(self) -> bool:
        """Check if the frontier has no queued tasks."""
        return self.queued_count() == 0

    def get_stats(self) -> Dict[str, int]:
        """Get frontier statistics."""
        return {
            'total_queued': self.queued_count(),
            'domains_with_urls': len(self.domain_queues),
            'total_visited': len(self.visited),
            'total_dispatched': self.dispatched,
            'duplicates_rejected': self.duplicates,
            'filtered': self.filtered,
            'in_flight': self.limiter.total_in_flight()
        }
