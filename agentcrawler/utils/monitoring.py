"""
Monitoring and metrics collection for the crawler.
"""

import time
import logging
from typing import Dict, Any

from prometheus_client import Counter, Gauge, CollectorRegistry, start_http_server


class CrawlerMonitor:
    """
    Prometheus metrics for one crawler process.

    Each monitor owns its registry so several schedulers (or tests) can
    live in one interpreter without colliding on metric names.
    """

    def __init__(self, enable_server: bool = False, prometheus_port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.enable_server = enable_server
        self.prometheus_port = prometheus_port
        self.registry = CollectorRegistry()
        self.start_time = time.time()

        self.pages_fetched = Counter(
            'crawler_pages_fetched_total',
            'Pages fetched, by HTTP status class',
            ['status_class'],
            registry=self.registry
        )
        self.tasks_discarded = Counter(
            'crawler_tasks_discarded_total',
            'Tasks discarded before fetch',
            ['reason'],
            registry=self.registry
        )
        self.pages_published = Counter(
            'crawler_pages_published_total',
            'Page records handed to the distribution channel',
            registry=self.registry
        )
        self.errors = Counter(
            'crawler_errors_total',
            'Per-task errors',
            ['error_type'],
            registry=self.registry
        )
        self.queue_size = Gauge(
            'crawler_queue_size',
            'Tasks pending in the frontier',
            registry=self.registry
        )
        self.active_agents = Gauge(
            'crawler_active_agents',
            'Agents currently processing a task',
            registry=self.registry
        )

    def start_server(self):
        """Start Prometheus metrics HTTP server."""
        if not self.enable_server:
            return

        try:
            start_http_server(self.prometheus_port, registry=self.registry)
            self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")

    def record_fetch(self, status_code: int):
        self.pages_fetched.labels(status_class=f"{status_code // 100}xx").inc()

    def record_discard(self, reason: str):
        self.tasks_discarded.labels(reason=reason).inc()

    def record_published(self):
        self.pages_published.inc()

    def record_error(self, error_type: str):
        self.errors.labels(error_type=error_type).inc()

    def update_queue_size(self, size: int):
        self.queue_size.set(size)

    def update_active_agents(self, count: int):
        self.active_agents.set(count)

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metric samples."""
        samples = {}
        for metric in self.registry.collect():
            for sample in metric.samples:
                if sample.name.endswith('_created'):
                    continue
                key = sample.name
                if sample.labels:
                    label_str = ','.join(f"{k}={v}" for k, v in sorted(sample.labels.items()))
                    key = f"{key}{{{label_str}}}"
                samples[key] = sample.value

        return {
            'runtime_seconds': time.time() - self.start_time,
            'metrics': samples,
        }
