import logging

from crawlcore.crawler.errors import ErrorKind
from crawlcore.crawler.results import CrawlResult
from crawlcore.crawler.url_frontier import URLTask
from crawlcore.utils.logger import JSONFormatter, get_crawler_logger
from crawlcore.utils.monitoring import CrawlerMonitor, MetricsCollector


def make_result(success=True, kind=None, fetch_time=0.2, links=0):
    task = URLTask.from_url("http://a.test/")
    if success:
        return CrawlResult(task=task, success=True, fetch_time=fetch_time, links_enqueued=links)
    return CrawlResult.failure(task, kind, "boom", fetch_time=fetch_time)


def test_record_results():
    monitor = CrawlerMonitor()

    monitor.record_result(make_result(links=3))
    monitor.record_result(make_result(False, ErrorKind.TIMEOUT))
    monitor.record_result(make_result(False, ErrorKind.TIMEOUT))

    metrics = monitor.metrics
    assert metrics.sample('crawler_results_total', {'outcome': 'success'}) == 1
    assert metrics.sample('crawler_results_total', {'outcome': 'failure'}) == 2
    assert metrics.sample('crawler_errors_total', {'error_kind': 'timeout'}) == 2
    assert metrics.sample('crawler_links_enqueued_total') == 3
    assert metrics.sample('crawler_fetch_duration_seconds_count') == 3


def test_collectors_do_not_share_registries():
    first = MetricsCollector()
    second = MetricsCollector()

    first.results_total.labels(outcome='success').inc()

    assert second.sample('crawler_results_total', {'outcome': 'success'}) == 0.0


def test_update_progress_and_summary():
    monitor = CrawlerMonitor()
    monitor.update_progress(queued=5, in_flight=2, pending=7)
    monitor.record_result(make_result())

    assert monitor.metrics.sample('crawler_queue_size') == 5
    assert monitor.metrics.sample('crawler_pending') == 7

    summary = monitor.get_summary()
    assert summary['successes'] == 1
    assert summary['failures'] == 0
    assert summary['runtime_seconds'] >= 0


def test_disabled_server_does_not_start():
    collector = MetricsCollector(enable_prometheus=False)
    collector.start_prometheus_server()


def test_crawler_logger_adds_context(caplog):
    log = get_crawler_logger("crawlcore.test", worker_id="worker-3")

    with caplog.at_level(logging.INFO, logger="crawlcore.test"):
        log.info("fetched")

    record = caplog.records[-1]
    assert record.extra_fields == {'worker_id': 'worker-3'}
    assert '"worker_id": "worker-3"' in JSONFormatter().format(record)
