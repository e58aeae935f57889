"""
Prometheus metrics for the crawler.
"""

import time
import logging
from typing import Dict, Optional, Any

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, start_http_server

from ..crawler.errors import ErrorKind


class MetricsCollector:
    """Owns the crawler's Prometheus metrics on a private registry."""

    def __init__(self, enable_prometheus: bool = False, prometheus_port: int = 8000,
                 registry: Optional[CollectorRegistry] = None):
        self.logger = logging.getLogger(__name__)
        self.enable_prometheus = enable_prometheus
        self.prometheus_port = prometheus_port
        self.registry = registry or CollectorRegistry()

        self.results_total = Counter(
            'crawler_results_total',
            'Resolved crawl tasks by outcome',
            ['outcome'],
            registry=self.registry
        )
        self.errors_total = Counter(
            'crawler_errors_total',
            'Failed crawl tasks by error kind',
            ['error_kind'],
            registry=self.registry
        )
        self.links_enqueued_total = Counter(
            'crawler_links_enqueued_total',
            'Discovered links accepted into the frontier',
            registry=self.registry
        )
        self.fetch_duration = Histogram(
            'crawler_fetch_duration_seconds',
            'Time spent fetching a URL',
            registry=self.registry
        )
        self.queue_size = Gauge(
            'crawler_queue_size',
            'Number of URLs waiting in the frontier',
            registry=self.registry
        )
        self.in_flight = Gauge(
            'crawler_in_flight',
            'Number of tasks currently being processed',
            registry=self.registry
        )
        self.pending = Gauge(
            'crawler_pending',
            'Tasks enqueued but not yet resolved',
            registry=self.registry
        )

    def start_prometheus_server(self):
        """Expose the registry over HTTP when enabled."""
        if not self.enable_prometheus:
            return
        start_http_server(self.prometheus_port, registry=self.registry)
        self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")

    def sample(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Read the current value of a sample, 0.0 if it was never set."""
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0


class CrawlerMonitor:
    """High-level monitoring interface used by the coordinator."""

    def __init__(self, metrics_collector: Optional[MetricsCollector] = None):
        self.metrics = metrics_collector or MetricsCollector()
        self.start_time = time.time()

    def record_result(self, result):
        """Record one resolved CrawlResult."""
        if result.success:
            self.metrics.results_total.labels(outcome='success').inc()
        else:
            self.metrics.results_total.labels(outcome='failure').inc()
            kind = result.error_kind or ErrorKind.NETWORK
            self.metrics.errors_total.labels(error_kind=kind.value).inc()

        if result.fetch_time:
            self.metrics.fetch_duration.observe(result.fetch_time)
        if result.links_enqueued:
            self.metrics.links_enqueued_total.inc(result.links_enqueued)

    def update_progress(self, queued: int, in_flight: int, pending: int):
        self.metrics.queue_size.set(queued)
        self.metrics.in_flight.set(in_flight)
        self.metrics.pending.set(pending)

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the main counters."""
        runtime = time.time() - self.start_time
        successes = self.metrics.sample('crawler_results_total', {'outcome': 'success'})
        failures = self.metrics.sample('crawler_results_total', {'outcome': 'failure'})

        return {
            'runtime_seconds': runtime,
            'successes': successes,
            'failures': failures,
            'urls_per_second': (successes + failures) / runtime if runtime > 0 else 0,
        }


def initialize_monitoring(enable_prometheus: bool = False, prometheus_port: int = 8000) -> CrawlerMonitor:
    """Create a monitor and start the metrics endpoint if enabled."""
    collector = MetricsCollector(enable_prometheus, prometheus_port)
    collector.start_prometheus_server()
    return CrawlerMonitor(collector)
