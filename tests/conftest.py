"""
Shared fixtures for the crawler test suite.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestServer

from agentcrawler.crawler.fetcher import PageData, WebFetcher
from agentcrawler.errors import FetchError
from agentcrawler.utils.config import (
    ChannelConfig,
    Config,
    CrawlerConfig,
    StoreConfig,
)


class FakeFetcher(WebFetcher):
    """Serves canned pages keyed by URL; unknown URLs fail like a dead host."""

    def __init__(self, pages: Dict[str, List[str]]):
        super().__init__(user_agent="test-agent")
        self.pages = pages
        self.calls: List[str] = []

    async def fetch(self, url: str) -> PageData:
        self.calls.append(url)
        # Yield so agents genuinely interleave
        await asyncio.sleep(0)
        if url not in self.pages:
            raise FetchError(url, "Connection refused")
        return PageData(
            url=url,
            status_code=200,
            headers={"Content-Type": "text/html"},
            links=tuple(self.pages[url]),
            body="<html></html>",
        )


def make_config(**crawler_overrides) -> Config:
    crawler = dict(
        max_depth=1,
        n_agents=4,
        respect_robots_txt=False,
        stats_interval=0,
    )
    crawler.update(crawler_overrides)
    return Config(
        crawler=CrawlerConfig(**crawler),
        store=StoreConfig(type="memory"),
        channel=ChannelConfig(type="memory", queue_name="pages"),
    )


@pytest.fixture
def config_factory():
    return make_config


@pytest_asyncio.fixture
async def serve():
    """Start aiohttp applications on local ports; all are closed afterwards."""

    servers = []

    async def _serve(app):
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return server

    yield _serve

    for server in servers:
        await server.close()
