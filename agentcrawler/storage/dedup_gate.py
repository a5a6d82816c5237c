"""
Dedup gate: claim-before-fetch against the visited-URL store.
"""

import logging
from typing import Dict

from ..errors import DedupStoreError
from .visited_store import VisitedStore


class DedupGate:
    """
    Wraps a VisitedStore with claim semantics and a store-failure policy.

    When the store is unreachable the gate is fail-closed by default: the
    URL is treated as already claimed and the fetch is skipped. Setting
    fail_open lets the fetch proceed instead, at the cost of possible
    duplicate fetches while the store is down.
    """

    def __init__(self, store: VisitedStore, fail_open: bool = False):
        self.store = store
        self.fail_open = fail_open
        self.logger = logging.getLogger(__name__)

        self.stats = {
            'claimed': 0,
            'duplicates': 0,
            'store_errors': 0
        }

    async def claim(self, url: str) -> bool:
        """Return True if this caller newly claimed url, False if it was visited."""
        try:
            claimed = await self.store.claim(url)
        except DedupStoreError as e:
            self.stats['store_errors'] += 1
            policy = "fail-open, fetching anyway" if self.fail_open else "fail-closed, skipping"
            self.logger.error(f"Dedup claim failed for {url} ({policy}): {e}")
            return self.fail_open

        if claimed:
            self.stats['claimed'] += 1
        else:
            self.stats['duplicates'] += 1
        return claimed

    async def is_visited(self, url: str) -> bool:
        """Non-claiming lookup used to avoid enqueueing known URLs."""
        try:
            return await self.store.exists(url)
        except DedupStoreError as e:
            # claim() remains authoritative once the task is dequeued
            self.logger.warning(f"Visited lookup failed for {url}: {e}")
            return False

    def get_stats(self) -> Dict[str, int]:
        return self.stats.copy()
