"""
Publishes page records to the distribution channel.
"""

import logging
from typing import Dict

from ..errors import PublishError
from ..storage.channel import DistributionChannel
from .fetcher import PageData


class ResultPublisher:
    """
    Serializes PageData to JSON and hands it to a distribution channel.

    A failed publish is logged and the record dropped; it is never retried
    or requeued. The channel's own delivery guarantee is at-least-once, so
    no dedup is done here either.
    """

    def __init__(self, channel: DistributionChannel, queue_name: str):
        self.channel = channel
        self.queue_name = queue_name
        self.logger = logging.getLogger(__name__)

        self.stats = {
            'published': 0,
            'failed': 0,
            'bytes_published': 0
        }

    async def declare(self):
        """Declare the target queue; errors propagate since startup depends on it."""
        await self.channel.declare(self.queue_name)

    async def publish(self, page: PageData) -> bool:
        """Publish one record. Returns False if it was dropped."""
        try:
            payload = page.to_wire()
        except (TypeError, ValueError) as e:
            self.stats['failed'] += 1
            self.logger.error(f"Could not serialize page record for {page.url}, dropping: {e}")
            return False

        try:
            await self.channel.publish(self.queue_name, payload)
        except PublishError as e:
            self.stats['failed'] += 1
            self.logger.error(f"Publish failed for {page.url}, record dropped: {e}")
            return False

        self.stats['published'] += 1
        self.stats['bytes_published'] += len(payload)
        self.logger.debug(f"Published {page.url} to {self.queue_name} ({len(payload)} bytes)")
        return True

    def get_stats(self) -> Dict[str, int]:
        return self.stats.copy()
