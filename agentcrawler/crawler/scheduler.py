"""
Crawler scheduler that runs a fixed pool of agents over the shared frontier.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Iterable
from dataclasses import dataclass, asdict

from .url_frontier import URLFrontier, CrawlTask
from .fetcher import WebFetcher, PageData
from .robots import RobotsPolicyEvaluator
from .publisher import ResultPublisher
from ..errors import FetchError
from ..storage.dedup_gate import DedupGate
from ..storage.visited_store import VisitedStore, InMemoryVisitedStore, RedisVisitedStore
from ..storage.channel import DistributionChannel, InMemoryChannel, RedisListChannel
from ..utils.config import Config
from ..utils.logger import get_crawler_logger, CrawlerLogAdapter
from ..utils.monitoring import CrawlerMonitor


@dataclass
class CrawlStats:
    """Statistics for crawl operations."""
    start_time: float
    urls_fetched: int = 0
    pages_published: int = 0
    robots_denied: int = 0
    duplicates_skipped: int = 0
    fetch_errors: int = 0
    publish_errors: int = 0
    errors: int = 0

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.urls_fetched / elapsed_minutes if elapsed_minutes > 0 else 0


class CrawlerScheduler:
    """
    Coordinates the crawl components and runs N symmetric agents.

    Each agent loops: dequeue, robots check, dedup claim, fetch, enqueue
    children, publish. The claim always precedes the fetch, so a URL is
    fetched at most once across every agent sharing the visited store.
    All shared state lives in the frontier and the dedup gate.

    Components may be injected; anything not injected is built from the
    configuration in initialize().
    """

    def __init__(self, config: Config,
                 visited_store: Optional[VisitedStore] = None,
                 channel: Optional[DistributionChannel] = None,
                 fetcher: Optional[WebFetcher] = None,
                 robots: Optional[RobotsPolicyEvaluator] = None,
                 monitor: Optional[CrawlerMonitor] = None):
        self.config = config
        self.logger = logging.getLogger(__name__)

        self.visited_store = visited_store
        self.channel = channel
        self.fetcher = fetcher
        self.robots = robots
        self.monitor = monitor
        self.frontier: Optional[URLFrontier] = None
        self.dedup_gate: Optional[DedupGate] = None
        self.publisher: Optional[ResultPublisher] = None

        self.stats = CrawlStats(start_time=time.time())
        self.is_running = False
        self.workers: List[asyncio.Task] = []
        self.max_depth = config.crawler.max_depth
        self._active_agents = 0
        self._seeded = False

    async def initialize(self):
        """
        Build and connect all components.

        Failing to reach the visited store or the distribution channel is
        fatal: no agent could make progress without them.
        """
        crawler_config = self.config.crawler

        try:
            if self.visited_store is None:
                if self.config.store.type == 'memory':
                    self.visited_store = InMemoryVisitedStore()
                else:
                    self.visited_store = RedisVisitedStore.from_config(self.config.redis)
            await self.visited_store.ping()

            if self.channel is None:
                if self.config.channel.type == 'memory':
                    self.channel = InMemoryChannel()
                else:
                    self.channel = RedisListChannel.from_config(self.config.redis)
            await self.channel.ping()

            self.publisher = ResultPublisher(self.channel, self.config.channel.queue_name)
            await self.publisher.declare()

            self.dedup_gate = DedupGate(self.visited_store, fail_open=crawler_config.dedup_fail_open)

            self.frontier = URLFrontier(
                max_depth=crawler_config.max_depth,
                priority_keywords=crawler_config.priority_keywords
            )

            if self.fetcher is None:
                self.fetcher = WebFetcher(
                    user_agent=crawler_config.user_agent,
                    request_timeout=crawler_config.request_timeout,
                    proxy=crawler_config.proxy,
                    max_content_size=crawler_config.max_content_size,
                    max_connections=crawler_config.n_agents * 2
                )
            await self.fetcher.start()

            if self.robots is None:
                self.robots = RobotsPolicyEvaluator(
                    session=self.fetcher.session,
                    user_agent=crawler_config.user_agent,
                    respect_robots_txt=crawler_config.respect_robots_txt,
                    cache_ttl=crawler_config.robots_cache_ttl,
                    request_timeout=min(crawler_config.request_timeout, 10.0),
                    proxy=crawler_config.proxy
                )

            if self.monitor is None:
                self.monitor = CrawlerMonitor(
                    enable_server=self.config.monitoring.metrics_enabled,
                    prometheus_port=self.config.monitoring.prometheus_port
                )
            self.monitor.start_server()

            self.logger.info("Crawler scheduler initialized successfully")

        except Exception as e:
            self.logger.error(f"Failed to initialize crawler scheduler: {e}")
            raise

    async def add_seed_urls(self, urls: Optional[Iterable[str]] = None) -> int:
        """Add seed URLs at depth 0; defaults to the configured seeds."""
        if urls is None:
            urls = self.config.crawler.seed_urls

        self._seeded = True
        seed_tasks = [CrawlTask(url=url, depth=0) for url in urls]
        added_count = await self.frontier.enqueue_many(seed_tasks)
        self.logger.info(f"Added {added_count} seed URLs to frontier")
        return added_count

    async def start_crawling(self) -> CrawlStats:
        """
        Run the agents until the frontier drains or stop_crawling() is called.
        """
        if self.is_running:
            self.logger.warning("Crawler is already running")
            return self.stats

        self.is_running = True
        self.stats = CrawlStats(start_time=time.time())
        stats_task = None

        try:
            if not self._seeded:
                await self.add_seed_urls()

            num_agents = self.config.crawler.n_agents
            self.workers = [
                asyncio.create_task(self._agent(f"agent-{i}"))
                for i in range(num_agents)
            ]

            if self.config.crawler.stats_interval > 0:
                stats_task = asyncio.create_task(self._stats_reporter())

            self.logger.info(f"Started crawling with {num_agents} agents")

            await asyncio.gather(*self.workers, return_exceptions=True)

            self._log_final_stats()

        finally:
            if stats_task:
                stats_task.cancel()
                await asyncio.gather(stats_task, return_exceptions=True)
            self.is_running = False
            await self._cleanup_workers()

        return self.stats

    async def _agent(self, agent_id: str):
        """Agent coroutine that processes tasks until the frontier is drained."""
        log = get_crawler_logger(__name__, agent=agent_id)
        log.debug("Agent started")

        while True:
            task = await self.frontier.dequeue()
            if task is None:
                break

            self._active_agents += 1
            self.monitor.update_active_agents(self._active_agents)
            try:
                await self._process_task(task, log)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.error(f"Unexpected error processing {task.url}: {e}", exc_info=True)
                self.stats.errors += 1
                self.monitor.record_error('unexpected')
            finally:
                self._active_agents -= 1
                self.monitor.update_active_agents(self._active_agents)
                self.monitor.update_queue_size(self.frontier.qsize())
                await self.frontier.task_done()

        log.debug("Agent finished")

    async def _process_task(self, task: CrawlTask, log: CrawlerLogAdapter):
        """Run one task through robots, dedup, fetch, enqueue and publish."""
        if not await self.robots.allowed(task.url):
            self.stats.robots_denied += 1
            self.monitor.record_discard('robots')
            return

        if not await self.dedup_gate.claim(task.url):
            log.log_url_event(logging.DEBUG, task.url, "Skipping already claimed URL")
            self.stats.duplicates_skipped += 1
            self.monitor.record_discard('duplicate')
            return

        try:
            page = await self.fetcher.fetch(task.url)
        except FetchError as e:
            log.warning(f"Failed to fetch {task.url}: {e.reason}")
            self.stats.fetch_errors += 1
            self.monitor.record_error('fetch')
            return

        self.stats.urls_fetched += 1
        self.monitor.record_fetch(page.status_code)
        log.log_url_event(logging.INFO, task.url, f"Fetched {page.status_code} at depth {task.depth}")

        await self._queue_children(page, task.depth + 1, log)

        if await self.publisher.publish(page):
            self.stats.pages_published += 1
            self.monitor.record_published()
        else:
            self.stats.publish_errors += 1
            self.monitor.record_error('publish')

    async def _queue_children(self, page: PageData, depth: int, log: CrawlerLogAdapter) -> int:
        """Queue unvisited links of a page at the given depth."""
        if depth > self.max_depth:
            if page.links:
                log.debug(f"Max depth reached for {page.url}, not enqueuing {len(page.links)} links")
            return 0

        new_tasks = []
        for link in page.links:
            if await self.dedup_gate.is_visited(link):
                continue
            new_tasks.append(CrawlTask(url=link, depth=depth))

        added_count = 0
        if new_tasks:
            added_count = await self.frontier.enqueue_many(new_tasks)
            log.debug(f"Queued {added_count} new URLs from {page.url}")
        return added_count

    async def _stats_reporter(self):
        """Periodically log crawl statistics."""
        while self.is_running:
            await asyncio.sleep(self.config.crawler.stats_interval)
            self._log_current_stats()

    def _log_current_stats(self):
        """Log current crawl statistics."""
        self.monitor.update_queue_size(self.frontier.qsize())
        self.logger.info(
            f"Crawl Progress: "
            f"Fetched={self.stats.urls_fetched}, "
            f"Published={self.stats.pages_published}, "
            f"Queued={self.frontier.qsize()}, "
            f"InFlight={self.frontier.in_flight}, "
            f"Duplicates={self.stats.duplicates_skipped}, "
            f"RobotsDenied={self.stats.robots_denied}, "
            f"FetchErrors={self.stats.fetch_errors}, "
            f"PublishErrors={self.stats.publish_errors}, "
            f"Rate={self.stats.pages_per_minute:.1f} pages/min"
        )

    def _log_final_stats(self):
        """Log final crawl statistics."""
        self.logger.info("=== CRAWL COMPLETED ===")
        self.logger.info(f"Total URLs fetched: {self.stats.urls_fetched}")
        self.logger.info(f"Pages published: {self.stats.pages_published}")
        self.logger.info(f"Duplicates skipped: {self.stats.duplicates_skipped}")
        self.logger.info(f"Robots denied: {self.stats.robots_denied}")
        self.logger.info(f"Fetch errors: {self.stats.fetch_errors}")
        self.logger.info(f"Publish errors: {self.stats.publish_errors}")
        self.logger.info(f"Total time: {self.stats.elapsed_time:.2f} seconds")
        self.logger.info(f"Frontier stats: {self.frontier.get_stats()}")
        self.logger.info(f"Fetcher stats: {self.fetcher.get_stats()}")
        self.logger.info(f"Robots stats: {self.robots.get_stats()}")
        self.logger.info(f"Dedup stats: {self.dedup_gate.get_stats()}")
        self.logger.info(f"Publisher stats: {self.publisher.get_stats()}")

    async def stop_crawling(self):
        """Stop the crawl; in-flight fetches are abandoned."""
        self.logger.info("Stopping crawler...")
        self.is_running = False
        if self.frontier:
            await self.frontier.close()
        await self._cleanup_workers()

    async def _cleanup_workers(self):
        """Cancel and cleanup agent tasks."""
        if self.workers:
            for worker in self.workers:
                if not worker.done():
                    worker.cancel()

            await asyncio.gather(*self.workers, return_exceptions=True)
            self.workers.clear()

    async def close(self):
        """Close all connections and cleanup resources."""
        if self.is_running:
            await self.stop_crawling()

        for name, component in (('fetcher', self.fetcher),
                                ('visited store', self.visited_store),
                                ('channel', self.channel)):
            if component is None:
                continue
            try:
                await component.close()
            except Exception as e:
                self.logger.error(f"Error closing {name}: {e}")

        self.logger.info("Crawler scheduler closed")

    def get_stats(self) -> Dict:
        """Get current crawl statistics."""
        return {
            **asdict(self.stats),
            'elapsed_time': self.stats.elapsed_time,
            'pages_per_minute': self.stats.pages_per_minute,
            'urls_in_queue': self.frontier.qsize() if self.frontier else 0,
            'is_running': self.is_running
        }
