"""
Agent Crawler

A concurrent crawl core: agents share a depth-bounded frontier, claim URLs
against a visited store, honour robots.txt and publish page records.
"""

__version__ = "1.0.0"
__description__ = "A concurrent multi-agent web crawler that publishes page records to a distribution channel"
