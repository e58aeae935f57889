#!/usr/bin/env python3
"""
Main entry point for the crawler.
"""

import asyncio
import argparse
import logging
import signal
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from crawlcore import __version__
from crawlcore.crawler.errors import ConfigurationError
from crawlcore.crawler.fetcher import WebFetcher
from crawlcore.crawler.parser import ContentParser
from crawlcore.crawler.scheduler import CrawlCoordinator, CrawlState
from crawlcore.storage.database import DatabaseManager, DatabaseError
from crawlcore.utils.config import load_config, Config
from crawlcore.utils.logger import setup_logging, log_system_info
from crawlcore.utils.monitoring import initialize_monitoring


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130


class CrawlerApp:
    """Main application class: wires collaborators around the coordinator."""

    def __init__(self):
        self.coordinator: Optional[CrawlCoordinator] = None
        self.logger = logging.getLogger(__name__)
        self._interrupted = False

    def setup_signal_handlers(self):
        """Turn SIGINT/SIGTERM into cooperative cancellation."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signal.Signals(signum).name}, initiating shutdown...")
            self._interrupted = True
            if self.coordinator:
                self.coordinator.cancel("signal")

        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, signal_handler, signum)

    async def run(self, config: Config, dry_run: bool = False) -> int:
        """Run the crawler."""
        self.logger.info("=== WEB CRAWLER STARTING ===")
        self.logger.info(f"Seed URLs: {config.crawler.seed_urls}")
        self.logger.info(f"Max depth: {config.crawler.max_depth}")
        self.logger.info(f"Workers: {config.crawler.max_workers}, "
                         f"per-domain limit: {config.crawler.per_domain_limit}")
        self.logger.info(f"Storage type: {config.storage.type}")

        if dry_run:
            self.logger.info("DRY RUN MODE: No actual crawling will be performed")
            await self._dry_run(config)
            return EXIT_OK

        database = DatabaseManager(config.storage)
        fetcher = WebFetcher(
            user_agent=config.crawler.user_agent,
            request_timeout=config.crawler.request_timeout,
            max_concurrent_requests=config.crawler.max_workers,
            respect_robots_txt=config.crawler.respect_robots_txt,
            retry_attempts=config.crawler.retry_attempts
        )
        parser = ContentParser()

        try:
            await database.initialize()
            monitor = initialize_monitoring(
                config.monitoring.metrics_enabled,
                config.monitoring.prometheus_port
            )
            await fetcher.start()

            self.coordinator = CrawlCoordinator(
                config.crawler,
                fetcher,
                parser.extract_links,
                sink=database,
                monitor=monitor
            )
            self.setup_signal_handlers()
            report = await self.coordinator.crawl()

        except (ConfigurationError, DatabaseError) as e:
            self.logger.error(f"Fatal error: {e}")
            return EXIT_ERROR

        finally:
            await fetcher.close()
            await database.close()
            self.logger.info("=== WEB CRAWLER FINISHED ===")

        self.logger.info(f"Final report: {report.to_dict()}")
        if report.state is CrawlState.CANCELLED and self._interrupted:
            return EXIT_INTERRUPTED
        return EXIT_OK

    async def _dry_run(self, config: Config):
        """Check storage and fetch the first seed without crawling."""
        self.logger.info("Testing storage configuration...")
        database = DatabaseManager(config.storage)
        try:
            await database.initialize()
            self.logger.info("✓ Storage initialization successful")
        except DatabaseError as e:
            self.logger.error(f"✗ Storage initialization failed: {e}")
        finally:
            await database.close()

        self.logger.info("Testing fetcher configuration...")
        async with WebFetcher(
            user_agent=config.crawler.user_agent,
            request_timeout=config.crawler.request_timeout,
            max_concurrent_requests=1,
            respect_robots_txt=config.crawler.respect_robots_txt
        ) as fetcher:
            result = await fetcher.fetch(config.crawler.seed_urls[0])
            if result.error:
                self.logger.warning(f"Test fetch failed: {result.error}")
            else:
                self.logger.info(f"✓ Test fetch successful: {result.status_code}")

        self.logger.info("Dry run completed")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Concurrent Web Crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                           # Run with default config.yaml
  python main.py --config my_config.yaml   # Run with custom config
  python main.py --max-pages 1000          # Stop after 1000 pages
  python main.py --max-duration 3600       # Run for 1 hour max
  python main.py --dry-run                 # Test configuration only
        """
    )

    parser.add_argument(
        '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )

    parser.add_argument(
        '--max-pages',
        type=int,
        help='Maximum number of pages to crawl'
    )

    parser.add_argument(
        '--max-duration',
        type=float,
        help='Maximum crawl duration in seconds'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Test configuration without actually crawling'
    )

    parser.add_argument(
        '--json-logs',
        action='store_true',
        help='Emit logs as JSON lines'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'crawlcore {__version__}'
    )

    args = parser.parse_args()

    if not Path(args.config).exists():
        print(f"Error: Configuration file '{args.config}' not found.")
        print("Please create a config.yaml file or specify a different path with --config")
        return EXIT_ERROR

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return EXIT_ERROR

    overrides = {}
    if args.max_pages is not None:
        overrides['max_pages'] = args.max_pages
    if args.max_duration is not None:
        overrides['max_duration'] = args.max_duration
    if overrides:
        config.crawler = replace(config.crawler, **overrides)

    setup_logging({
        'level': config.logging.level,
        'file': config.logging.file,
        'format': config.logging.format
    }, enable_json=args.json_logs)
    log_system_info()

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(config, dry_run=args.dry_run))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return EXIT_INTERRUPTED


if __name__ == '__main__':
    sys.exit(main())
