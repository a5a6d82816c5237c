import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from agentcrawler.crawler.fetcher import PageData
from agentcrawler.crawler.publisher import ResultPublisher
from agentcrawler.errors import PublishError
from agentcrawler.storage.channel import InMemoryChannel, RedisListChannel


def make_page(url="http://a.test/", **overrides):
    values = dict(
        url=url,
        status_code=200,
        headers={"Content-Type": "text/html"},
        meta={"description": "A"},
        links=("http://a.test/x",),
        body="<html></html>",
        title="A",
    )
    values.update(overrides)
    return PageData(**values)


class StubRedisLists:
    def __init__(self):
        self.lists = {}
        self.sets = {}

    async def rpush(self, key, payload):
        self.lists.setdefault(key, []).append(payload)
        return len(self.lists[key])

    async def sadd(self, key, member):
        self.sets.setdefault(key, set()).add(member)
        return 1

    async def blmove(self, source, destination, timeout, src="LEFT", dest="RIGHT"):
        return await self.lmove(source, destination, src, dest)

    async def lmove(self, source, destination, src="LEFT", dest="RIGHT"):
        items = self.lists.get(source)
        if not items:
            return None
        item = items.pop(0 if src == "LEFT" else -1)
        target = self.lists.setdefault(destination, [])
        if dest == "LEFT":
            target.insert(0, item)
        else:
            target.append(item)
        return item

    async def lrem(self, key, count, value):
        items = self.lists.get(key, [])
        if value in items:
            items.remove(value)
            return 1
        return 0

    async def ping(self):
        return True


class DownRedisLists(StubRedisLists):
    async def rpush(self, key, payload):
        raise RedisConnectionError("Connection refused")


class RejectingChannel(InMemoryChannel):
    async def publish(self, name, payload):
        raise PublishError("broker unavailable")


@pytest.mark.asyncio
async def test_publishes_wire_records_in_order():
    channel = InMemoryChannel()
    publisher = ResultPublisher(channel, "pages")
    await publisher.declare()

    first = make_page("http://a.test/1")
    second = make_page("http://a.test/2", status_code=404, links=())
    assert await publisher.publish(first)
    assert await publisher.publish(second)

    payloads = channel.drain("pages")
    assert [PageData.from_wire(p) for p in payloads] == [first, second]

    record = json.loads(payloads[0])
    assert set(record) == {"url", "status", "title", "headers", "meta", "links", "body"}
    assert record["status"] == 200
    assert publisher.get_stats()["published"] == 2


@pytest.mark.asyncio
async def test_publish_to_undeclared_queue_is_dropped():
    publisher = ResultPublisher(InMemoryChannel(), "pages")

    assert not await publisher.publish(make_page())
    assert publisher.get_stats()["failed"] == 1


@pytest.mark.asyncio
async def test_channel_failure_drops_the_record():
    channel = RejectingChannel()
    publisher = ResultPublisher(channel, "pages")
    await publisher.declare()

    assert not await publisher.publish(make_page())
    assert channel.drain("pages") == []
    assert publisher.get_stats() == {"published": 0, "failed": 1, "bytes_published": 0}


@pytest.mark.asyncio
async def test_redis_channel_pushes_and_pops():
    backend = StubRedisLists()
    channel = RedisListChannel(backend)
    publisher = ResultPublisher(channel, "pages")
    await publisher.declare()

    page = make_page()
    assert await publisher.publish(page)

    assert backend.sets["crawler:channels"] == {"pages"}
    assert len(backend.lists["crawler:channel:pages"]) == 1

    consumer = channel.consume("pages")
    payload = await consumer.__anext__()
    await consumer.aclose()
    assert PageData.from_wire(payload) == page


@pytest.mark.asyncio
async def test_redis_errors_become_publish_errors():
    channel = RedisListChannel(DownRedisLists())

    with pytest.raises(PublishError):
        await channel.publish("pages", b"{}")

    publisher = ResultPublisher(channel, "pages")
    assert not await publisher.publish(make_page())


@pytest.mark.asyncio
async def test_redis_consumer_acknowledges_on_next_read():
    backend = StubRedisLists()
    channel = RedisListChannel(backend)
    await channel.publish("pages", b"first")
    await channel.publish("pages", b"second")

    consumer = channel.consume("pages")
    assert await consumer.__anext__() == b"first"
    assert backend.lists["crawler:channel:pages:processing"] == [b"first"]

    assert await consumer.__anext__() == b"second"
    assert backend.lists["crawler:channel:pages:processing"] == [b"second"]
    await consumer.aclose()


@pytest.mark.asyncio
async def test_unacknowledged_records_are_redelivered():
    backend = StubRedisLists()
    channel = RedisListChannel(backend)
    for payload in (b"a", b"b", b"c"):
        await channel.publish("pages", payload)

    # A consumer takes two records and dies without asking for a third
    crashed = channel.consume("pages")
    await crashed.__anext__()
    await crashed.__anext__()
    await crashed.aclose()
    assert backend.lists["crawler:channel:pages"] == [b"c"]

    assert await channel.requeue_unacked("pages") == 1
    assert backend.lists["crawler:channel:pages"] == [b"b", b"c"]
    assert backend.lists["crawler:channel:pages:processing"] == []
