"""
Crawl coordinator: owns the frontier, tracker and pool for one crawl and
drives it through its lifecycle.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from .completion import CompletionTracker
from .domain_limiter import DomainLimiter, DomainFilter
from .errors import ConfigurationError
from .pool import FetcherPool, LinkExtractor
from .results import CrawlResult
from .url_frontier import URLFrontier, URLTask
from ..utils.config import CrawlerConfig, validate_crawler_config


class CrawlState(Enum):
    """Lifecycle states of a crawl."""
    IDLE = "idle"
    SEEDING = "seeding"
    RUNNING = "running"
    DRAINING = "draining"
    DONE = "done"
    CANCELLED = "cancelled"


TRANSITIONS = {
    CrawlState.IDLE: {CrawlState.SEEDING},
    CrawlState.SEEDING: {CrawlState.RUNNING, CrawlState.CANCELLED},
    CrawlState.RUNNING: {CrawlState.DRAINING, CrawlState.CANCELLED},
    CrawlState.DRAINING: {CrawlState.DONE},
    CrawlState.DONE: set(),
    CrawlState.CANCELLED: set(),
}


@dataclass
class CrawlReport:
    """Final report of a crawl."""
    state: CrawlState
    visited: int
    successes: int
    failures: int
    failures_by_kind: Dict[str, int] = field(default_factory=dict)
    abandoned: int = 0
    stored: int = 0
    store_failures: int = 0
    elapsed: float = 0.0
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'state': self.state.value,
            'visited': self.visited,
            'successes': self.successes,
            'failures': self.failures,
            'failures_by_kind': dict(self.failures_by_kind),
            'abandoned': self.abandoned,
            'stored': self.stored,
            'store_failures': self.store_failures,
            'elapsed': self.elapsed,
            'reason': self.reason
        }


class CrawlCoordinator:
    """
    Top-level lifecycle of one crawl: seeds the frontier, starts the
    workers, waits for completion or cancellation and builds the report.

    Cancellation is cooperative: `cancel()` stops new dequeues and lets
    in-flight fetches finish within their timeout.
    """

    def __init__(self, config: CrawlerConfig, fetcher, extract_links: LinkExtractor,
                 sink=None, monitor=None):
        validate_crawler_config(config, require_seeds=False)

        self.config = config
        self.logger = logging.getLogger(__name__)
        self.monitor = monitor

        self.tracker = CompletionTracker()
        self.limiter = DomainLimiter(config.per_domain_limit, config.domain_limits)
        self.domain_filter = DomainFilter(config.allowed_domains, config.blocked_domains)
        self.frontier = URLFrontier(
            self.limiter,
            self.domain_filter,
            self.tracker,
            dispatch_limit=config.max_pages
        )
        self.pool = FetcherPool(
            self.frontier,
            fetcher,
            extract_links,
            sink=sink,
            num_workers=config.max_workers,
            fetch_timeout=config.effective_fetch_timeout,
            max_depth=config.max_depth,
            on_result=self._on_result
        )

        self.state = CrawlState.IDLE
        self.abandoned = 0
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None
        self._cancel_event = asyncio.Event()
        self._cancel_reason: Optional[str] = None

    @property
    def elapsed_time(self) -> float:
        if self.start_time is None:
            return 0.0
        return (self.end_time or time.time()) - self.start_time

    @property
    def is_running(self) -> bool:
        return self.state in (CrawlState.SEEDING, CrawlState.RUNNING, CrawlState.DRAINING)

    def _transition(self, new_state: CrawlState):
        if new_state not in TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal crawl state transition {self.state.value} -> {new_state.value}")
        self.logger.debug(f"Crawl state {self.state.value} -> {new_state.value}")
        self.state = new_state

    def _build_seed_tasks(self, seed_urls: Iterable[str]) -> List[URLTask]:
        tasks = []
        for url in seed_urls:
            try:
                tasks.append(URLTask.from_url(url, depth=0))
            except ValueError as e:
                raise ConfigurationError(f"Invalid seed URL: {e}") from e

        if not tasks:
            raise ConfigurationError("At least one seed URL must be provided")
        return tasks

    def cancel(self, reason: str = "cancelled"):
        """Request cooperative cancellation. Safe to call from a signal handler."""
        if self.state in (CrawlState.DONE, CrawlState.CANCELLED) or self._cancel_event.is_set():
            return
        self._cancel_reason = reason
        self.frontier.stop_dispatching()
        self._cancel_event.set()
        self.logger.info(f"Cancellation requested: {reason}")

    async def crawl(self, seed_urls: Optional[Iterable[str]] = None) -> CrawlReport:
        """
        Run the crawl to completion or cancellation.

        Args:
            seed_urls: Seeds to start from; defaults to the configured seeds

        Returns:
            CrawlReport for the finished run

        Raises:
            ConfigurationError: if the seeds are missing or invalid
        """
        if self.state is not CrawlState.IDLE:
            raise RuntimeError("A coordinator can only run one crawl")

        seed_tasks = self._build_seed_tasks(
            seed_urls if seed_urls is not None else self.config.seed_urls
        )

        self.start_time = time.time()
        self._transition(CrawlState.SEEDING)
        added = await self.frontier.add_urls(seed_tasks, check_domain=False)
        await self.frontier.close_seeding()
        self.logger.info(f"Added {added} seed URLs to frontier")

        stats_task = None
        try:
            if self._cancel_event.is_set():
                await self._shutdown()
            else:
                self._transition(CrawlState.RUNNING)
                self.pool.start()
                stats_task = asyncio.create_task(self._stats_reporter())

                if await self._wait_for_completion():
                    self._transition(CrawlState.DRAINING)
                    await self.pool.join()
                    self._transition(CrawlState.DONE)
                else:
                    await self._shutdown()
        except asyncio.CancelledError:
            self.logger.warning("Crawl task cancelled, stopping workers")
            await self.pool.stop()
            raise
        finally:
            if stats_task is not None:
                stats_task.cancel()
                await asyncio.gather(stats_task, return_exceptions=True)
            self.end_time = time.time()

        report = self.build_report()
        self._log_final_stats(report)
        return report

    async def _wait_for_completion(self) -> bool:
        """Return True when all work completed, False when cancelled."""
        done_waiter = asyncio.create_task(self.tracker.wait())
        cancel_waiter = asyncio.create_task(self._cancel_event.wait())
        try:
            await asyncio.wait(
                {done_waiter, cancel_waiter},
                timeout=self.config.max_duration,
                return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for waiter in (done_waiter, cancel_waiter):
                waiter.cancel()
            await asyncio.gather(done_waiter, cancel_waiter, return_exceptions=True)

        if self.tracker.done:
            return True

        if not self._cancel_event.is_set():
            self.logger.info(f"Reached max duration: {self.config.max_duration} seconds")
            self._cancel_reason = "max_duration"
            self._cancel_event.set()
        return False

    async def _shutdown(self):
        """Stop dispatching and wait for in-flight tasks to resolve."""
        self._transition(CrawlState.CANCELLED)
        self.abandoned = await self.frontier.cancel()
        await self.pool.join()
        self.logger.info(f"Crawl cancelled ({self._cancel_reason}), "
                         f"{self.abandoned} queued URLs abandoned")

    def _on_result(self, result: CrawlResult):
        if self.monitor is not None:
            self.monitor.record_result(result)

        max_pages = self.config.max_pages
        if max_pages and self.tracker.resolved >= max_pages and not self.tracker.done:
            self.logger.info(f"Reached max pages limit: {max_pages}")
            self.cancel("max_pages")

    async def _stats_reporter(self):
        """Periodically log crawl progress."""
        while True:
            await asyncio.sleep(self.config.stats_interval)
            self._log_current_stats()

    def _log_current_stats(self):
        frontier_stats = self.frontier.get_stats()
        if self.monitor is not None:
            self.monitor.update_progress(
                frontier_stats['total_queued'],
                frontier_stats['in_flight'],
                self.tracker.pending
            )

        self.logger.info(
            f"Crawl Progress: "
            f"State={self.state.value}, "
            f"Resolved={self.tracker.resolved}, "
            f"Succeeded={self.tracker.successes}, "
            f"Failed={self.tracker.failures}, "
            f"Queued={frontier_stats['total_queued']}, "
            f"InFlight={frontier_stats['in_flight']}, "
            f"Elapsed={self.elapsed_time:.1f}s"
        )

    def build_report(self) -> CrawlReport:
        """Build the report for the current state of the crawl."""
        return CrawlReport(
            state=self.state,
            visited=len(self.frontier.visited),
            successes=self.tracker.successes,
            failures=self.tracker.failures,
            failures_by_kind={kind.value: n for kind, n in self.tracker.failures_by_kind.items()},
            abandoned=self.abandoned,
            stored=self.pool.stats['stored'],
            store_failures=self.pool.stats['store_failures'],
            elapsed=self.elapsed_time,
            reason=self._cancel_reason if self.state is CrawlState.CANCELLED else None
        )

    def _log_final_stats(self, report: CrawlReport):
        self.logger.info(f"=== CRAWL {report.state.value.upper()} ===")
        self.logger.info(f"URLs visited: {report.visited}")
        self.logger.info(f"Succeeded: {report.successes}")
        self.logger.info(f"Failed: {report.failures} {report.failures_by_kind or ''}")
        self.logger.info(f"Pages stored: {report.stored} (failures: {report.store_failures})")
        if report.state is CrawlState.CANCELLED:
            self.logger.info(f"Abandoned in queue: {report.abandoned} (reason: {report.reason})")
        self.logger.info(f"Total time: {report.elapsed:.2f} seconds")

    def get_stats(self) -> Dict:
        """Get current crawl statistics."""
        return {
            'state': self.state.value,
            'elapsed_time': self.elapsed_time,
            'frontier': self.frontier.get_stats(),
            'tracker': self.tracker.get_stats(),
            'pool': self.pool.get_stats(),
            'domains_in_flight': self.limiter.get_stats()
        }
