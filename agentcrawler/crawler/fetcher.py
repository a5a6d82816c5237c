"""
Web page fetcher producing immutable page records.
"""

import asyncio
import aiohttp
import json
import logging
import time
from types import MappingProxyType
from typing import Optional, Dict, Mapping, Tuple
from dataclasses import dataclass, field
from aiohttp import ClientSession, ClientTimeout, ClientError, ClientResponse

from ..errors import FetchError
from ..utils.urls import is_valid_url
from .parser import extract, is_html_like


@dataclass(frozen=True)
class PageData:
    """Record published for every successfully fetched page."""
    url: str
    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    meta: Mapping[str, str] = field(default_factory=dict)
    links: Tuple[str, ...] = ()
    body: str = ""
    title: str = ""

    def __post_init__(self):
        # Private copies behind read-only views keep the record immutable
        object.__setattr__(self, 'headers', MappingProxyType(dict(self.headers)))
        object.__setattr__(self, 'meta', MappingProxyType(dict(self.meta)))
        object.__setattr__(self, 'links', tuple(self.links))

    def to_dict(self) -> dict:
        """Convert to the wire record shared with consumers."""
        return {
            'url': self.url,
            'status': self.status_code,
            'title': self.title,
            'headers': dict(self.headers),
            'meta': dict(self.meta),
            'links': list(self.links),
            'body': self.body
        }

    def to_wire(self) -> bytes:
        return json.dumps(self.to_dict(), ensure_ascii=False).encode('utf-8')

    @classmethod
    def from_dict(cls, data: dict) -> 'PageData':
        """Create PageData from a wire record dictionary."""
        return cls(
            url=data['url'],
            status_code=int(data['status']),
            headers=dict(data.get('headers') or {}),
            meta=dict(data.get('meta') or {}),
            links=tuple(data.get('links') or ()),
            body=data.get('body', ''),
            title=data.get('title', '')
        )

    @classmethod
    def from_wire(cls, payload: bytes) -> 'PageData':
        return cls.from_dict(json.loads(payload.decode('utf-8')))


class WebFetcher:
    """
    Fetches web pages with a fixed user agent, timeout and optional proxy.

    Any HTTP response, whatever its status, becomes a PageData. Only
    failures that produce no response at all raise FetchError.
    """

    def __init__(self, user_agent: str, request_timeout: float = 30.0,
                 proxy: Optional[str] = None, max_content_size: int = 10 * 1024 * 1024,
                 max_connections: int = 20):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.proxy = proxy
        self.max_content_size = max_content_size
        self.max_connections = max_connections

        self.logger = logging.getLogger(__name__)
        self.session: Optional[ClientSession] = None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            timeout = ClientTimeout(total=self.request_timeout)
            headers = {'User-Agent': self.user_agent}

            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                connector=aiohttp.TCPConnector(
                    limit=self.max_connections,
                    limit_per_host=10,
                    ttl_dns_cache=300,
                    use_dns_cache=True
                )
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, url: str) -> PageData:
        """
        Fetch a single URL and extract links and meta from HTML bodies.

        Args:
            url: The URL to fetch

        Returns:
            PageData for any HTTP response

        Raises:
            FetchError: on timeout, connection or DNS failure
        """
        if not is_valid_url(url):
            raise FetchError(url, "Invalid URL")
        if self.session is None:
            await self.start()

        start_time = time.time()
        self.stats['total_requests'] += 1

        try:
            async with self.session.get(url, proxy=self.proxy) as response:
                headers = self._collect_headers(response)
                content_type = response.headers.get('content-type', '')
                raw = await self._read_content_safely(response)
                status_code = response.status
                charset = response.charset
                # Redirects are followed, so relative links resolve against where we landed
                final_url = str(response.url)
        except asyncio.TimeoutError as e:
            self.stats['failed_requests'] += 1
            raise FetchError(url, "Request timeout") from e
        except ClientError as e:
            self.stats['failed_requests'] += 1
            raise FetchError(url, f"Client error: {e}") from e
        except ValueError as e:
            self.stats['failed_requests'] += 1
            raise FetchError(url, f"Invalid request: {e}") from e

        self.stats['successful_requests'] += 1
        self.stats['total_bytes_downloaded'] += len(raw)

        body = self._decode(raw, charset)

        if is_html_like(content_type, raw):
            extracted = extract(body, final_url)
        else:
            extracted = None

        page = PageData(
            url=url,
            status_code=status_code,
            headers=headers,
            meta=extracted.meta if extracted else {},
            links=extracted.links if extracted else (),
            body=body,
            title=extracted.title if extracted else ""
        )

        self.logger.debug(
            f"Fetched {url}: {status_code} ({len(raw)} bytes, {len(page.links)} links) "
            f"in {time.time() - start_time:.2f}s"
        )
        return page

    @staticmethod
    def _collect_headers(response: ClientResponse) -> Dict[str, str]:
        """Copy response headers, joining repeated ones with ', '."""
        headers: Dict[str, str] = {}
        for key, value in response.headers.items():
            if key in headers:
                headers[key] = f"{headers[key]}, {value}"
            else:
                headers[key] = value
        return headers

    async def _read_content_safely(self, response: ClientResponse) -> bytes:
        """Read the body, truncating at max_content_size."""
        buffer = bytearray()
        async for chunk in response.content.iter_chunked(8192):
            buffer.extend(chunk)
            if len(buffer) > self.max_content_size:
                self.logger.warning(f"Content exceeded size limit, truncating: {response.url}")
                del buffer[self.max_content_size:]
                break
        return bytes(buffer)

    @staticmethod
    def _decode(raw: bytes, charset: Optional[str]) -> str:
        """Decode body bytes, falling back through common encodings."""
        for encoding in (charset, 'utf-8', 'cp1252'):
            if not encoding:
                continue
            try:
                return raw.decode(encoding)
            except (UnicodeDecodeError, LookupError):
                continue
        return raw.decode('latin-1')

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
