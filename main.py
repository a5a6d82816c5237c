#!/usr/bin/env python3
"""
Main entry point for the agent crawler.
"""

import asyncio
import argparse
import dataclasses
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from agentcrawler import __version__
from agentcrawler.crawler.scheduler import CrawlerScheduler
from agentcrawler.errors import CrawlerError, FetchError
from agentcrawler.utils.config import Config, load_config, validate_config
from agentcrawler.utils.logger import setup_logging


class CrawlerApp:
    """Main application class for the crawler."""

    def __init__(self):
        self.scheduler: Optional[CrawlerScheduler] = None
        self.logger = logging.getLogger(__name__)
        self._shutdown_event: Optional[asyncio.Event] = None

    def setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            self._shutdown_event.set()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, signal_handler, signum)
            except NotImplementedError:
                # Windows event loops do not support signal handlers
                pass

    async def run(self, config: Config, seeds: List[str], dry_run: bool = False) -> int:
        """Run the crawler."""
        self._shutdown_event = asyncio.Event()
        setup_logging(config.logging)
        self.setup_signal_handlers()

        try:
            self.logger.info("=== AGENT CRAWLER STARTING ===")
            self.logger.info(f"Seed URLs: {seeds}")
            self.logger.info(f"Max depth: {config.crawler.max_depth}")
            self.logger.info(f"Agents: {config.crawler.n_agents}")
            self.logger.info(f"Respect robots.txt: {config.crawler.respect_robots_txt}")
            self.logger.info(f"Store: {config.store.type}, channel: {config.channel.type}")

            self.scheduler = CrawlerScheduler(config)
            await self.scheduler.initialize()

            if dry_run:
                self.logger.info("DRY RUN MODE: No actual crawling will be performed")
                await self._dry_run(seeds)
                return 0

            await self.scheduler.add_seed_urls(seeds)

            crawl_task = asyncio.create_task(self.scheduler.start_crawling())
            shutdown_task = asyncio.create_task(self._shutdown_event.wait())

            done, pending = await asyncio.wait(
                [crawl_task, shutdown_task],
                return_when=asyncio.FIRST_COMPLETED
            )

            if shutdown_task in done:
                self.logger.info("Shutdown requested, stopping crawler...")
                await self.scheduler.stop_crawling()

            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

            if crawl_task.done() and not crawl_task.cancelled() and crawl_task.exception():
                raise crawl_task.exception()

        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1

        finally:
            if self.scheduler:
                await self.scheduler.close()
            self.logger.info("=== AGENT CRAWLER FINISHED ===")

        return 0

    async def _dry_run(self, seeds: List[str]):
        """Test-fetch the first seed; store and channel were checked by initialize()."""
        self.logger.info("✓ Visited store connection successful")
        self.logger.info("✓ Distribution channel connection successful")

        if not seeds:
            self.logger.info("No seeds given, skipping test fetch")
            return

        test_url = seeds[0]
        self.logger.info(f"Robots allows {test_url}: {await self.scheduler.robots.allowed(test_url)}")
        try:
            page = await self.scheduler.fetcher.fetch(test_url)
            self.logger.info(f"✓ Test fetch successful: {page.status_code} ({len(page.links)} links)")
        except FetchError as e:
            self.logger.warning(f"Test fetch failed: {e}")

        self.logger.info("Dry run completed")


def build_config(args) -> Config:
    """Load the configuration file and apply command line overrides."""
    if Path(args.config).exists():
        config = load_config(args.config)
    elif args.config == 'config.yaml':
        config = Config.default()
    else:
        raise FileNotFoundError(f"Configuration file not found: {args.config}")

    overrides = {}
    if args.max_depth is not None:
        overrides['max_depth'] = args.max_depth
    if args.agents is not None:
        overrides['n_agents'] = args.agents
    if args.no_robots:
        overrides['respect_robots_txt'] = False

    if overrides:
        config = dataclasses.replace(config, crawler=dataclasses.replace(config.crawler, **overrides))
        validate_config(config)

    return config


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Agent Crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                  # Run with config.yaml seeds
  python main.py --config my_config.yaml          # Run with custom config
  python main.py --seed https://example.com/      # Crawl a specific seed
  python main.py --max-depth 1 --agents 8         # Override crawl bounds
  python main.py --dry-run                        # Test connections only
        """
    )

    parser.add_argument(
        '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )

    parser.add_argument(
        '--seed',
        action='append',
        default=[],
        help='Seed URL; may be given several times (default: crawler.seed_urls)'
    )

    parser.add_argument(
        '--max-depth',
        type=int,
        help='Maximum link depth from the seeds'
    )

    parser.add_argument(
        '--agents',
        type=int,
        help='Number of concurrent agents'
    )

    parser.add_argument(
        '--no-robots',
        action='store_true',
        help='Ignore robots.txt'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Test configuration and connections without crawling'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'Agent Crawler {__version__}'
    )

    args = parser.parse_args()

    try:
        config = build_config(args)
    except (CrawlerError, FileNotFoundError) as e:
        print(f"Error: {e}")
        return 1

    seeds = args.seed or list(config.crawler.seed_urls)

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(config, seeds, dry_run=args.dry_run))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
