import asyncio
import dataclasses

import pytest
import pytest_asyncio
from aiohttp import web

from agentcrawler.crawler.fetcher import PageData, WebFetcher
from agentcrawler.errors import FetchError

PAGE = """
<html>
  <head>
    <title>Index</title>
    <meta name="description" content="Test page">
  </head>
  <body>
    <a href="/about">About</a>
    <a href="http://b.test/">B</a>
    <a href="javascript:void(0)">nothing</a>
  </body>
</html>
"""


def site_app():
    async def index(request):
        return web.Response(
            text=PAGE,
            content_type="text/html",
            headers={"X-Test": "yes", "X-Agent": request.headers.get("User-Agent", "")},
        )

    async def missing(request):
        return web.Response(text='<a href="/home">home</a>', status=404, content_type="text/html")

    async def plain(request):
        return web.Response(text='<a href="/hidden">not html</a>', content_type="text/plain")

    async def slow(request):
        await asyncio.sleep(1.0)
        return web.Response(text="late", content_type="text/html")

    async def big(request):
        return web.Response(body=b"x" * 5000, content_type="application/octet-stream")

    async def docs(request):
        raise web.HTTPMovedPermanently("/docs/")

    async def docs_index(request):
        return web.Response(text='<a href="page">Page</a>', content_type="text/html")

    app = web.Application()
    app.router.add_get("/", index)
    app.router.add_get("/missing", missing)
    app.router.add_get("/plain", plain)
    app.router.add_get("/slow", slow)
    app.router.add_get("/big", big)
    app.router.add_get("/docs", docs)
    app.router.add_get("/docs/", docs_index)
    return app


@pytest_asyncio.fixture
async def site(serve):
    return await serve(site_app())


@pytest_asyncio.fixture
async def fetcher():
    async with WebFetcher(user_agent="AgentCrawler/test", request_timeout=0.5) as web_fetcher:
        yield web_fetcher


@pytest.mark.asyncio
async def test_fetch_extracts_links_meta_and_headers(site, fetcher):
    url = str(site.make_url("/"))
    page = await fetcher.fetch(url)

    assert isinstance(page, PageData)
    assert page.url == url
    assert page.status_code == 200
    assert page.title == "Index"
    assert page.meta == {"description": "Test page"}
    assert page.links == (str(site.make_url("/about")), "http://b.test/")
    assert page.headers["X-Test"] == "yes"
    assert page.headers["X-Agent"] == "AgentCrawler/test"
    assert "<title>Index</title>" in page.body


@pytest.mark.asyncio
async def test_non_2xx_still_yields_page(site, fetcher):
    page = await fetcher.fetch(str(site.make_url("/missing")))

    assert page.status_code == 404
    assert page.links == (str(site.make_url("/home")),)


@pytest.mark.asyncio
async def test_non_html_body_is_not_extracted(site, fetcher):
    page = await fetcher.fetch(str(site.make_url("/plain")))

    assert page.status_code == 200
    assert page.links == ()
    assert page.body == '<a href="/hidden">not html</a>'


@pytest.mark.asyncio
async def test_oversized_body_is_truncated(site):
    async with WebFetcher(user_agent="AgentCrawler/test", max_content_size=100) as small:
        page = await small.fetch(str(site.make_url("/big")))

    assert len(page.body) == 100


@pytest.mark.asyncio
async def test_timeout_raises_fetch_error(site, fetcher):
    with pytest.raises(FetchError) as excinfo:
        await fetcher.fetch(str(site.make_url("/slow")))

    assert "timeout" in excinfo.value.reason.lower()
    assert fetcher.get_stats()["failed_requests"] == 1


@pytest.mark.asyncio
async def test_connection_refused_raises_fetch_error(serve, fetcher):
    server = await serve(web.Application())
    url = str(server.make_url("/"))
    await server.close()

    with pytest.raises(FetchError):
        await fetcher.fetch(url)


@pytest.mark.asyncio
async def test_invalid_url_raises_fetch_error(fetcher):
    with pytest.raises(FetchError):
        await fetcher.fetch("ftp://example.com/file")


def test_wire_record_round_trip():
    page = PageData(
        url="http://a.test/",
        status_code=200,
        headers={"Content-Type": "text/html"},
        meta={"description": "d"},
        links=("http://a.test/x", "http://b.test/"),
        body="<html>ü</html>",
        title="A",
    )

    wire = page.to_dict()
    assert set(wire) == {"url", "status", "title", "headers", "meta", "links", "body"}
    assert wire["links"] == ["http://a.test/x", "http://b.test/"]
    assert PageData.from_wire(page.to_wire()) == page


@pytest.mark.asyncio
async def test_links_resolve_against_redirect_target(site, fetcher):
    requested = str(site.make_url("/docs"))
    page = await fetcher.fetch(requested)

    assert page.url == requested
    assert page.links == (str(site.make_url("/docs/page")),)


def test_page_record_cannot_be_mutated():
    headers = {"Content-Type": "text/html"}
    page = PageData(url="http://a.test/", status_code=200, headers=headers, meta={"k": "v"})

    headers["X-Later"] = "changed"
    assert "X-Later" not in page.headers

    with pytest.raises(TypeError):
        page.meta["k"] = "other"
    with pytest.raises(dataclasses.FrozenInstanceError):
        page.url = "http://b.test/"
