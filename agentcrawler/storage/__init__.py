"""
Storage layer: visited-URL store, dedup gate and distribution channels.
"""

from .visited_store import VisitedStore, InMemoryVisitedStore, RedisVisitedStore
from .dedup_gate import DedupGate
from .channel import DistributionChannel, InMemoryChannel, RedisListChannel

__all__ = [
    'VisitedStore', 'InMemoryVisitedStore', 'RedisVisitedStore',
    'DedupGate',
    'DistributionChannel', 'InMemoryChannel', 'RedisListChannel'
]
