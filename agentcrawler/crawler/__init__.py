"""
Crawler core components.
"""

from .url_frontier import URLFrontier, CrawlTask, URLPriority
from .fetcher import WebFetcher, PageData
from .parser import extract, ExtractedContent
from .robots import RobotsPolicyEvaluator
from .publisher import ResultPublisher
from .scheduler import CrawlerScheduler, CrawlStats

__all__ = [
    'URLFrontier', 'CrawlTask', 'URLPriority',
    'WebFetcher', 'PageData',
    'extract', 'ExtractedContent',
    'RobotsPolicyEvaluator',
    'ResultPublisher',
    'CrawlerScheduler', 'CrawlStats'
]
