"""
Visited-URL stores backing the dedup gate.

Every backend exposes a single atomic claim primitive so that two agents,
or two crawler processes sharing a backend, can never both win the same URL.
"""

import asyncio
import logging
from typing import Optional, Set

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..errors import DedupStoreError
from ..utils.config import RedisConfig


class VisitedStore:
    """Abstract base class for visited-URL stores."""

    async def claim(self, key: str) -> bool:
        """Atomically record key; True if it was absent."""
        raise NotImplementedError

    async def exists(self, key: str) -> bool:
        """Check whether key has been recorded."""
        raise NotImplementedError

    async def set(self, key: str):
        """Record key unconditionally."""
        raise NotImplementedError

    async def ping(self):
        """Raise DedupStoreError if the store is unreachable."""
        raise NotImplementedError

    async def close(self):
        """Close store connections."""
        raise NotImplementedError


class InMemoryVisitedStore(VisitedStore):
    """Process-local store for single-process runs and tests."""

    def __init__(self, keys: Optional[Set[str]] = None):
        # Passing the same set to a new instance simulates a persistent backend
        self.keys: Set[str] = keys if keys is not None else set()
        self._lock = asyncio.Lock()

    async def claim(self, key: str) -> bool:
        async with self._lock:
            if key in self.keys:
                return False
            self.keys.add(key)
            return True

    async def exists(self, key: str) -> bool:
        return key in self.keys

    async def set(self, key: str):
        async with self._lock:
            self.keys.add(key)

    async def ping(self):
        return None

    async def close(self):
        return None


class RedisVisitedStore(VisitedStore):
    """
    Redis-backed store.

    URLs are fields of one hash; HSETNX is the atomic check-and-set, so the
    claim holds across processes sharing the same Redis database.
    """

    def __init__(self, redis_client: redis.Redis, visited_key: str = "crawler:visited_urls",
                 owns_client: bool = False):
        self.redis_client = redis_client
        self.visited_key = visited_key
        self.owns_client = owns_client
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: RedisConfig) -> 'RedisVisitedStore':
        client = redis.Redis(
            host=config.host,
            port=config.port,
            db=config.db,
            password=config.password,
            decode_responses=False
        )
        return cls(client, config.visited_key, owns_client=True)

    async def claim(self, key: str) -> bool:
        try:
            added = await self.redis_client.hsetnx(self.visited_key, key, "true")
        except (RedisError, OSError) as e:
            raise DedupStoreError(f"Visited store unreachable during claim: {e}") from e
        return bool(added)

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self.redis_client.hexists(self.visited_key, key))
        except (RedisError, OSError) as e:
            raise DedupStoreError(f"Visited store unreachable during lookup: {e}") from e

    async def set(self, key: str):
        try:
            await self.redis_client.hset(self.visited_key, key, "true")
        except (RedisError, OSError) as e:
            raise DedupStoreError(f"Visited store unreachable during set: {e}") from e

    async def ping(self):
        try:
            await self.redis_client.ping()
        except (RedisError, OSError) as e:
            raise DedupStoreError(f"Visited store unreachable: {e}") from e
        self.logger.info(f"Visited store connection established (hash {self.visited_key})")

    async def close(self):
        if self.owns_client:
            await self.redis_client.aclose()
