"""
URL Frontier shared by all agents of a crawler process.
Bounds crawl depth and signals termination once no work remains.
"""

import asyncio
import logging
from typing import Dict, Optional, List, Iterable
from dataclasses import dataclass
from collections import deque
from enum import Enum

from ..errors import ValidationError
from ..utils.urls import validate_url


class URLPriority(Enum):
    """URL priority levels."""
    NORMAL = 2
    HIGH = 3


@dataclass
class CrawlTask:
    """Represents a URL crawling task."""
    url: str
    depth: int
    priority: URLPriority = URLPriority.NORMAL


class URLFrontier:
    """
    Concurrency-safe FIFO of pending crawl tasks.

    Tasks deeper than max_depth or with non-http(s) URLs are dropped on
    enqueue. dequeue() waits while other agents still hold tasks in flight,
    since they may yet discover children, and returns None once the
    frontier is drained or closed. Every dequeued task must be followed by
    exactly one task_done().

    URLs matching a priority keyword go to a HIGH tier that is always
    drained first; order within a tier is insertion order.
    """

    def __init__(self, max_depth: int, priority_keywords: Iterable[str] = ()):
        if max_depth < 0:
            raise ValueError("max_depth must be non-negative")

        self.max_depth = max_depth
        self.priority_keywords = tuple(k for k in priority_keywords if k)
        self.logger = logging.getLogger(__name__)

        self._queues: Dict[URLPriority, deque] = {
            URLPriority.HIGH: deque(),
            URLPriority.NORMAL: deque(),
        }
        self._condition = asyncio.Condition()
        self._in_flight = 0
        self._closed = False

        self.stats = {
            'total_enqueued': 0,
            'total_dequeued': 0,
            'dropped_depth': 0,
            'dropped_invalid': 0
        }

    def _classify(self, url: str) -> URLPriority:
        if any(keyword in url for keyword in self.priority_keywords):
            return URLPriority.HIGH
        return URLPriority.NORMAL

    def _pending(self) -> int:
        return sum(len(queue) for queue in self._queues.values())

    async def enqueue(self, task: CrawlTask) -> bool:
        """
        Add a task to the frontier.
        Returns False if the task was dropped for depth or URL validity.
        """
        if task.depth < 0 or task.depth > self.max_depth:
            self.stats['dropped_depth'] += 1
            self.logger.debug(f"Dropping task beyond max depth {self.max_depth}: {task.url} (depth {task.depth})")
            return False

        try:
            task.url = validate_url(task.url)
        except ValidationError as e:
            self.stats['dropped_invalid'] += 1
            self.logger.debug(f"Dropping task: {e}")
            return False

        task.priority = self._classify(task.url)

        async with self._condition:
            if self._closed:
                return False
            self._queues[task.priority].append(task)
            self.stats['total_enqueued'] += 1
            self._condition.notify()

        self.logger.debug(f"Added URL to frontier: {task.url} (depth {task.depth})")
        return True

    async def enqueue_many(self, tasks: List[CrawlTask]) -> int:
        """Add multiple tasks. Returns count of added tasks."""
        added_count = 0
        for task in tasks:
            if await self.enqueue(task):
                added_count += 1
        return added_count

    async def dequeue(self) -> Optional[CrawlTask]:
        """
        Remove and return the next task, or None when the crawl is over.
        """
        async with self._condition:
            while True:
                if self._closed:
                    return None

                for priority in (URLPriority.HIGH, URLPriority.NORMAL):
                    queue = self._queues[priority]
                    if queue:
                        task = queue.popleft()
                        self._in_flight += 1
                        self.stats['total_dequeued'] += 1
                        return task

                if self._in_flight == 0:
                    # Nothing pending and nobody can produce more work
                    self._condition.notify_all()
                    return None

                await self._condition.wait()

    async def task_done(self):
        """Mark one dequeued task as finished."""
        async with self._condition:
            if self._in_flight <= 0:
                raise ValueError("task_done() called more times than dequeue()")
            self._in_flight -= 1
            if self._in_flight == 0 and self._pending() == 0:
                self._condition.notify_all()

    async def close(self):
        """Stop handing out tasks and wake every waiting agent."""
        async with self._condition:
            self._closed = True
            self._condition.notify_all()

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._pending()

    def is_empty(self) -> bool:
        """True when nothing is pending and nothing is in flight."""
        return self._pending() == 0 and self._in_flight == 0

    def get_stats(self) -> Dict[str, int]:
        """Get frontier statistics."""
        return {
            **self.stats,
            'total_queued': self._pending(),
            'priority_queued': len(self._queues[URLPriority.HIGH]),
            'in_flight': self._in_flight
        }
