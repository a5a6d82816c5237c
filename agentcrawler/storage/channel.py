"""
Distribution channels carrying serialized page records to consumers.
"""

import asyncio
import logging
from typing import AsyncIterator, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..errors import PublishError
from ..utils.config import RedisConfig


class DistributionChannel:
    """Abstract base class for distribution channels."""

    async def declare(self, name: str):
        """Create the named queue if it does not exist."""
        raise NotImplementedError

    async def publish(self, name: str, payload: bytes):
        """Append payload to the named queue; raise PublishError on failure."""
        raise NotImplementedError

    def consume(self, name: str) -> AsyncIterator[bytes]:
        """Yield payloads from the named queue as they arrive."""
        raise NotImplementedError

    async def ping(self):
        """Raise PublishError if the channel is unreachable."""
        raise NotImplementedError

    async def close(self):
        """Close channel connections."""
        raise NotImplementedError


class InMemoryChannel(DistributionChannel):
    """One asyncio.Queue per declared name."""

    def __init__(self):
        self.queues: Dict[str, asyncio.Queue] = {}

    async def declare(self, name: str):
        self.queues.setdefault(name, asyncio.Queue())

    async def publish(self, name: str, payload: bytes):
        if name not in self.queues:
            raise PublishError(f"Queue not declared: {name}")
        await self.queues[name].put(payload)

    async def consume(self, name: str) -> AsyncIterator[bytes]:
        if name not in self.queues:
            raise PublishError(f"Queue not declared: {name}")
        queue = self.queues[name]
        while True:
            yield await queue.get()

    def drain(self, name: str) -> list:
        """Return every payload currently waiting in the queue."""
        queue = self.queues.get(name)
        items = []
        while queue is not None and not queue.empty():
            items.append(queue.get_nowait())
        return items

    async def ping(self):
        return None

    async def close(self):
        return None


class RedisListChannel(DistributionChannel):
    """
    Redis list per queue name.

    RPUSH on publish and BLMOVE on consume give FIFO hand-off. A consumed
    record sits in a per-queue processing list until the consumer asks for
    the next one; records left there by a crashed consumer are redelivered
    through requeue_unacked(), so delivery is at least once.
    """

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "crawler:channel:",
                 owns_client: bool = False, block_timeout: int = 5):
        self.redis_client = redis_client
        self.key_prefix = key_prefix
        self.owns_client = owns_client
        self.block_timeout = block_timeout
        self.registry_key = "crawler:channels"
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: RedisConfig) -> 'RedisListChannel':
        client = redis.Redis(
            host=config.host,
            port=config.port,
            db=config.db,
            password=config.password,
            decode_responses=False
        )
        return cls(client, owns_client=True)

    def _key(self, name: str) -> str:
        return f"{self.key_prefix}{name}"

    async def declare(self, name: str):
        try:
            await self.redis_client.sadd(self.registry_key, name)
        except (RedisError, OSError) as e:
            raise PublishError(f"Failed to declare queue {name}: {e}") from e
        self.logger.info(f"Declared queue {name} ({self._key(name)})")

    async def publish(self, name: str, payload: bytes):
        try:
            await self.redis_client.rpush(self._key(name), payload)
        except (RedisError, OSError) as e:
            raise PublishError(f"Failed to publish to {name}: {e}") from e

    def _processing_key(self, name: str) -> str:
        return f"{self._key(name)}:processing"

    async def consume(self, name: str) -> AsyncIterator[bytes]:
        key, processing = self._key(name), self._processing_key(name)
        while True:
            try:
                item: Optional[bytes] = await self.redis_client.blmove(
                    key, processing, self.block_timeout, 'LEFT', 'RIGHT'
                )
            except (RedisError, OSError) as e:
                raise PublishError(f"Failed to consume from {name}: {e}") from e
            if item is None:
                continue
            yield item
            # Asking for the next record acknowledges this one
            try:
                await self.redis_client.lrem(processing, 1, item)
            except (RedisError, OSError) as e:
                raise PublishError(f"Failed to acknowledge record on {name}: {e}") from e

    async def requeue_unacked(self, name: str) -> int:
        """
        Move records a consumer took but never acknowledged back to the
        head of the queue, oldest first. Run it while no consumer is active.
        """
        key, processing = self._key(name), self._processing_key(name)
        moved = 0
        try:
            while await self.redis_client.lmove(processing, key, 'RIGHT', 'LEFT') is not None:
                moved += 1
        except (RedisError, OSError) as e:
            raise PublishError(f"Failed to requeue records on {name}: {e}") from e
        if moved:
            self.logger.warning(f"Requeued {moved} unacknowledged records on {name}")
        return moved

    async def ping(self):
        try:
            await self.redis_client.ping()
        except (RedisError, OSError) as e:
            raise PublishError(f"Distribution channel unreachable: {e}") from e
        self.logger.info("Distribution channel connection established")

    async def close(self):
        if self.owns_client:
            await self.redis_client.aclose()
