import asyncio
import time

import pytest

from crawlcore.crawler.errors import ConfigurationError, NetworkError
from crawlcore.crawler.scheduler import CrawlCoordinator, CrawlState
from crawlcore.utils.config import CrawlerConfig


A = "http://a.test/"
B = "http://a.test/b"
C = "http://a.test/c"


@pytest.mark.asyncio
async def test_links_back_to_seed_are_not_redispatched(make_coordinator):
    pages = {A: [B, C, A], B: [], C: []}
    coordinator, fetcher, sink = make_coordinator(pages)

    report = await coordinator.crawl()

    assert report.state is CrawlState.DONE
    assert coordinator.frontier.visited == {A, B, C}
    assert sorted(fetcher.calls) == sorted([A, B, C])
    assert fetcher.calls.count(A) == 1
    assert report.visited == 3
    assert report.successes == 3
    assert report.failures == 0
    assert set(sink.stored) == {A, B, C}


@pytest.mark.asyncio
async def test_max_depth_zero_only_visits_seed(make_coordinator):
    coordinator, fetcher, _ = make_coordinator({A: [B], B: []}, max_depth=0)

    report = await coordinator.crawl()

    assert report.state is CrawlState.DONE
    assert coordinator.frontier.visited == {A}
    assert fetcher.calls == [A]


@pytest.mark.asyncio
async def test_depth_limit_stops_one_level_down(make_coordinator):
    D = "http://a.test/d"
    coordinator, fetcher, _ = make_coordinator({A: [B], B: [C], C: [D], D: []}, max_depth=2)

    report = await coordinator.crawl()

    assert coordinator.frontier.visited == {A, B, C}
    assert D not in fetcher.calls
    assert report.successes == 3


@pytest.mark.asyncio
async def test_network_failure_of_only_seed_still_completes(make_coordinator):
    coordinator, _, sink = make_coordinator({A: [B]}, errors={A: NetworkError("connection refused")})

    report = await coordinator.crawl()

    assert report.state is CrawlState.DONE
    assert report.successes == 0
    assert report.failures == 1
    assert report.failures_by_kind == {"network": 1}
    assert sink.stored == {}
    assert coordinator.tracker.pending == 0


@pytest.mark.asyncio
async def test_failures_are_counted_by_kind(make_coordinator):
    pages = {A: [B, C, "http://a.test/missing"], B: [], C: []}
    coordinator, _, _ = make_coordinator(pages, delays={C: 5.0}, fetch_timeout=0.1)

    report = await coordinator.crawl()

    assert report.state is CrawlState.DONE
    assert report.successes == 2
    assert report.failures_by_kind == {"timeout": 1, "network": 1}


@pytest.mark.asyncio
async def test_allowed_domains_filter_discovered_links(make_coordinator):
    other = "http://other.test/"
    coordinator, fetcher, _ = make_coordinator(
        {A: [B, other], B: [], other: []},
        allowed_domains=["a.test"]
    )

    report = await coordinator.crawl()

    assert other not in fetcher.calls
    assert report.visited == 2
    assert coordinator.frontier.filtered == 1


@pytest.mark.asyncio
async def test_disallowed_seed_resolves_as_failure(make_coordinator):
    other = "http://other.test/"
    coordinator, fetcher, _ = make_coordinator({other: []}, allowed_domains=["a.test"])

    report = await coordinator.crawl([other])

    assert report.state is CrawlState.DONE
    assert fetcher.calls == []
    assert report.failures_by_kind == {"disallowed_domain": 1}


@pytest.mark.asyncio
async def test_per_domain_parallelism_never_exceeds_cap(make_coordinator):
    links = [f"http://a.test/p{i}" for i in range(20)] + [f"http://b.test/p{i}" for i in range(20)]
    pages = {A: links}
    pages.update({link: [] for link in links})
    coordinator, fetcher, _ = make_coordinator(
        pages, delay=0.01, max_workers=10, per_domain_limit=3
    )

    report = await coordinator.crawl()

    assert report.successes == 41
    assert fetcher.max_in_flight["a.test"] <= 3
    assert fetcher.max_in_flight["b.test"] <= 3
    assert coordinator.limiter.peak_in_flight["a.test"] <= 3
    assert fetcher.max_total_in_flight > 3


@pytest.mark.asyncio
async def test_per_domain_override(make_coordinator):
    links = [f"http://b.test/p{i}" for i in range(10)]
    pages = {A: links}
    pages.update({link: [] for link in links})
    coordinator, fetcher, _ = make_coordinator(
        pages, delay=0.01, max_workers=8, per_domain_limit=4, domain_limits={"b.test": 1}
    )

    await coordinator.crawl()

    assert fetcher.max_in_flight["b.test"] == 1


@pytest.mark.asyncio
async def test_dense_graph_dispatches_each_url_once(make_coordinator):
    urls = [f"http://a.test/n{i}" for i in range(30)]
    # every page links to every other page
    pages = {url: list(urls) for url in urls}
    pages[A] = list(urls)
    coordinator, fetcher, _ = make_coordinator(pages, max_workers=12, per_domain_limit=12, max_depth=5)

    report = await coordinator.crawl()

    assert report.state is CrawlState.DONE
    assert len(fetcher.calls) == len(set(fetcher.calls)) == 31
    assert report.successes == 31
    assert coordinator.tracker.pending == 0
    assert coordinator.tracker.active == 0
    assert coordinator.frontier.is_empty()


@pytest.mark.asyncio
async def test_done_only_after_last_result(make_coordinator):
    # B is slow and discovers C late: completion must wait for C
    pages = {A: [B], B: [C], C: []}
    coordinator, fetcher, _ = make_coordinator(pages, delays={B: 0.05, C: 0.05})

    report = await coordinator.crawl()

    assert report.state is CrawlState.DONE
    assert fetcher.calls == [A, B, C]
    assert coordinator.pool.running == 0


@pytest.mark.asyncio
async def test_cancel_mid_run_stops_dequeues(make_coordinator):
    links = [f"http://a.test/p{i}" for i in range(50)]
    pages = {A: links}
    pages.update({link: [] for link in links})
    coordinator, fetcher, _ = make_coordinator(pages, delay=0.2, max_workers=4, per_domain_limit=4)

    crawl_task = asyncio.create_task(coordinator.crawl())
    while len(fetcher.calls) < 3:
        await asyncio.sleep(0.01)

    assert coordinator.is_running
    coordinator.cancel("test")
    dispatched_at_cancel = coordinator.frontier.dispatched
    cancelled_at = time.monotonic()

    report = await crawl_task
    assert not coordinator.is_running

    assert time.monotonic() - cancelled_at < 0.2 + 0.15
    assert coordinator.frontier.dispatched == dispatched_at_cancel
    assert report.state is CrawlState.CANCELLED
    assert report.reason == "test"
    assert report.successes + report.failures == dispatched_at_cancel
    assert report.abandoned > 0
    assert report.visited == dispatched_at_cancel
    assert coordinator.tracker.pending == 0


@pytest.mark.asyncio
async def test_cancel_before_start_skips_workers(make_coordinator):
    coordinator, fetcher, _ = make_coordinator({A: []})
    coordinator.cancel()

    report = await coordinator.crawl()

    assert report.state is CrawlState.CANCELLED
    assert fetcher.calls == []
    assert report.visited == 0
    assert report.abandoned == 0


@pytest.mark.asyncio
async def test_max_pages_budget(make_coordinator):
    links = [f"http://a.test/p{i}" for i in range(20)]
    pages = {A: links}
    pages.update({link: [] for link in links})
    coordinator, fetcher, _ = make_coordinator(pages, max_pages=5)

    report = await coordinator.crawl()

    assert len(fetcher.calls) == 5
    assert report.state is CrawlState.CANCELLED
    assert report.reason == "max_pages"
    assert report.successes == 5


@pytest.mark.asyncio
async def test_max_duration(make_coordinator):
    links = [f"http://a.test/p{i}" for i in range(20)]
    pages = {A: links}
    pages.update({link: [] for link in links})
    coordinator, _, _ = make_coordinator(pages, delay=0.1, max_workers=1, max_duration=0.25)

    report = await coordinator.crawl()

    assert report.state is CrawlState.CANCELLED
    assert report.reason == "max_duration"
    assert report.elapsed < 1.0


@pytest.mark.asyncio
async def test_store_failures_do_not_fail_tasks(make_coordinator, recording_sink_cls):
    sink = recording_sink_cls(fail_urls=[B])
    coordinator, _, _ = make_coordinator({A: [B], B: []}, sink=sink)

    report = await coordinator.crawl()

    assert report.successes == 2
    assert report.stored == 1
    assert report.store_failures == 1


@pytest.mark.asyncio
async def test_coordinator_runs_once(make_coordinator):
    coordinator, _, _ = make_coordinator({A: []})
    await coordinator.crawl()

    with pytest.raises(RuntimeError):
        await coordinator.crawl()


@pytest.mark.asyncio
async def test_invalid_seed_is_a_setup_error(make_coordinator):
    coordinator, fetcher, _ = make_coordinator({})

    with pytest.raises(ConfigurationError):
        await coordinator.crawl(["ftp://a.test/file"])

    assert coordinator.state is CrawlState.IDLE
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_missing_seeds_is_a_setup_error(make_coordinator):
    coordinator, _, _ = make_coordinator({}, seed_urls=[])

    with pytest.raises(ConfigurationError):
        await coordinator.crawl()


def test_invalid_config_rejected_at_construction():
    with pytest.raises(ConfigurationError):
        CrawlCoordinator(CrawlerConfig(max_workers=0), None, None)

    with pytest.raises(ConfigurationError):
        CrawlCoordinator(CrawlerConfig(max_depth=-1), None, None)


@pytest.mark.asyncio
async def test_monitor_receives_every_result(make_coordinator):
    from crawlcore.utils.monitoring import CrawlerMonitor

    coordinator, _, _ = make_coordinator({A: [B, C], B: []})
    coordinator.monitor = CrawlerMonitor()

    report = await coordinator.crawl()

    summary = coordinator.monitor.get_summary()
    assert summary['successes'] == report.successes == 2
    assert summary['failures'] == report.failures == 1


@pytest.mark.asyncio
async def test_get_stats_shape(make_coordinator):
    coordinator, _, _ = make_coordinator({A: []})
    await coordinator.crawl()

    stats = coordinator.get_stats()

    assert stats['state'] == "done"
    assert stats['tracker']['resolved'] == 1
    assert stats['frontier']['total_visited'] == 1
    assert stats['pool']['workers_running'] == 0
