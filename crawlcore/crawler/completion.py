"""
Completion tracking for a crawl.

The Pending Counter counts every task accepted by the frontier until its
CrawlResult is resolved, so it covers both queued and in-flight work.
"""

import asyncio
import logging
from collections import Counter
from typing import Dict

from .errors import ErrorKind


class CompletionTracker:
    """
    Detects when the whole crawl is finished.

    All mutators are synchronous and are called by the frontier while it
    holds its condition lock, so enqueue, resolve and the completion check
    never interleave.
    """

    def __init__(self):
        self.pending = 0
        self.active = 0
        self.enqueued = 0
        self.resolved = 0
        self.successes = 0
        self.failures_by_kind: Counter = Counter()
        self._closed = False
        self._done = asyncio.Event()
        self.logger = logging.getLogger(__name__)

    @property
    def is_complete(self) -> bool:
        return self.pending == 0 and self.active == 0

    @property
    def failures(self) -> int:
        return sum(self.failures_by_kind.values())

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def task_enqueued(self):
        if self._done.is_set():
            raise RuntimeError("Cannot enqueue after the crawl has completed")
        self.pending += 1
        self.enqueued += 1

    def task_started(self):
        if self.pending - self.active <= 0:
            raise RuntimeError("Task started without a pending task")
        self.active += 1

    def task_resolved(self, result):
        """Record one resolved CrawlResult."""
        if self.pending <= 0 or self.active <= 0:
            raise RuntimeError(f"Resolved more tasks than were dispatched: {result.url}")

        self.pending -= 1
        self.active -= 1
        self.resolved += 1

        if result.success:
            self.successes += 1
        else:
            self.failures_by_kind[result.error_kind or ErrorKind.NETWORK] += 1

        self._check_done()

    def task_abandoned(self, count: int = 1):
        """Drop queued tasks that will never be dispatched (cancellation)."""
        if count > self.pending - self.active:
            raise RuntimeError("Abandoned more tasks than are queued")
        self.pending -= count
        self._check_done()

    def close(self):
        """No more seeds will arrive; allows completion with nothing enqueued."""
        self._closed = True
        self._check_done()

    def _check_done(self):
        if self._closed and self.is_complete and not self._done.is_set():
            self.logger.debug(f"Crawl complete: {self.resolved} tasks resolved")
            self._done.set()

    async def wait(self):
        await self._done.wait()

    def get_stats(self) -> Dict:
        return {
            'pending': self.pending,
            'active': self.active,
            'enqueued': self.enqueued,
            'resolved': self.resolved,
            'successes': self.successes,
            'failures': self.failures,
            'failures_by_kind': {kind.value: n for kind, n in self.failures_by_kind.items()}
        }
