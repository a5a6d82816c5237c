"""
robots.txt policy evaluation with a per-origin cache.
"""

import asyncio
import logging
import time
from typing import Dict, Optional, Tuple
from urllib.robotparser import RobotFileParser

from aiohttp import ClientSession, ClientTimeout, ClientError

from ..errors import RobotsFetchError
from ..utils.urls import get_origin, is_valid_url

MAX_ROBOTS_SIZE = 512 * 1024


def _order_by_longest_match(policy: RobotFileParser):
    """
    Reorder each group's rules so RobotFileParser's first-match lookup
    picks the longest matching path, with Allow winning ties.
    """
    entries = list(policy.entries)
    if policy.default_entry is not None:
        entries.append(policy.default_entry)
    for entry in entries:
        entry.rulelines.sort(key=lambda rule: (-len(rule.path), not rule.allowance))


class RobotsPolicyEvaluator:
    """
    Decides whether a URL may be fetched according to its origin's robots.txt.

    The first query for an origin fetches {origin}/robots.txt; concurrent
    first queries wait on one fetch. Policies are cached per origin for
    cache_ttl seconds (0 keeps them for the process lifetime). Any failure
    to obtain a usable robots.txt yields an allow-all policy.
    """

    def __init__(self, session: Optional[ClientSession], user_agent: str,
                 respect_robots_txt: bool = True, cache_ttl: float = 0.0,
                 request_timeout: float = 10.0, proxy: Optional[str] = None):
        self.session = session
        self.user_agent = user_agent
        self.respect_robots_txt = respect_robots_txt
        self.cache_ttl = cache_ttl
        self.request_timeout = request_timeout
        self.proxy = proxy
        self.logger = logging.getLogger(__name__)

        self.robots_cache: Dict[str, Tuple[RobotFileParser, float]] = {}
        self._origin_locks: Dict[str, asyncio.Lock] = {}

        self.stats = {
            'robots_fetched': 0,
            'robots_failed': 0,
            'cache_hits': 0,
            'denied': 0
        }

    async def allowed(self, url: str) -> bool:
        """Check if URL can be fetched according to robots.txt."""
        if not self.respect_robots_txt:
            return True

        if not is_valid_url(url):
            return False

        origin = get_origin(url)
        policy = await self._get_policy(origin)

        if policy.can_fetch(self.user_agent, url):
            return True

        self.stats['denied'] += 1
        self.logger.info(f"Robots.txt blocks access to: {url}")
        return False

    def _cached(self, origin: str) -> Optional[RobotFileParser]:
        entry = self.robots_cache.get(origin)
        if entry is None:
            return None
        policy, fetched_at = entry
        if self.cache_ttl and time.time() - fetched_at >= self.cache_ttl:
            return None
        return policy

    async def _get_policy(self, origin: str) -> RobotFileParser:
        policy = self._cached(origin)
        if policy is not None:
            self.stats['cache_hits'] += 1
            return policy

        lock = self._origin_locks.setdefault(origin, asyncio.Lock())
        async with lock:
            # Another agent may have fetched it while we waited
            policy = self._cached(origin)
            if policy is not None:
                self.stats['cache_hits'] += 1
                return policy

            try:
                policy = await self._fetch_policy(origin)
                self.stats['robots_fetched'] += 1
            except RobotsFetchError as e:
                self.stats['robots_failed'] += 1
                self.logger.warning(f"Could not fetch robots.txt for {origin}, allowing by default: {e}")
                policy = self._permissive_policy()

            self.robots_cache[origin] = (policy, time.time())
            return policy

    async def _fetch_policy(self, origin: str) -> RobotFileParser:
        robots_url = f"{origin}/robots.txt"
        if self.session is None:
            raise RobotsFetchError("No HTTP session available")

        try:
            async with self.session.get(
                robots_url,
                timeout=ClientTimeout(total=self.request_timeout),
                proxy=self.proxy
            ) as response:
                if not 200 <= response.status < 300:
                    raise RobotsFetchError(f"HTTP {response.status} for {robots_url}")
                raw = (await response.read())[:MAX_ROBOTS_SIZE]
        except asyncio.TimeoutError as e:
            raise RobotsFetchError(f"Timeout fetching {robots_url}") from e
        except (ClientError, ValueError) as e:
            raise RobotsFetchError(f"Client error fetching {robots_url}: {e}") from e

        # utf-8-sig strips a leading BOM that would otherwise hide the first group
        content = raw.decode('utf-8-sig', errors='replace')

        policy = RobotFileParser(robots_url)
        try:
            policy.parse(content.splitlines())
        except Exception as e:
            raise RobotsFetchError(f"Malformed robots.txt at {robots_url}: {e}") from e
        _order_by_longest_match(policy)

        self.logger.debug(f"Fetched robots.txt for {origin}")
        return policy

    @staticmethod
    def _permissive_policy() -> RobotFileParser:
        policy = RobotFileParser()
        policy.allow_all = True
        return policy

    def get_stats(self) -> Dict[str, int]:
        return {**self.stats, 'cached_origins': len(self.robots_cache)}

