"""
HTML extraction of links, meta tags and title.

Everything here is a pure function of (html, base URL) so it can be tested
without any network access.
"""

import re
import logging
from typing import Dict, List, Tuple, Union
from urllib.parse import urljoin
from dataclasses import dataclass, field

from bs4 import BeautifulSoup

from ..errors import ParseError
from ..utils.urls import is_valid_url, normalize_url

logger = logging.getLogger(__name__)

_whitespace_pattern = re.compile(r'\s+')
_html_sniff_pattern = re.compile(rb'^\s*(<!--.*?-->\s*)*<(!doctype\s+html|html|head|body)', re.IGNORECASE | re.DOTALL)

HTML_CONTENT_TYPES = ('text/html', 'application/xhtml+xml')


@dataclass(frozen=True)
class ExtractedContent:
    """Links, meta pairs and title pulled out of one HTML document."""
    links: Tuple[str, ...] = ()
    meta: Dict[str, str] = field(default_factory=dict)
    title: str = ""


def is_html_like(content_type: str, body: bytes = b'') -> bool:
    """Decide whether a response body should go through HTML extraction."""
    content_type = (content_type or '').split(';')[0].strip().lower()
    if content_type:
        return content_type in HTML_CONTENT_TYPES
    return bool(_html_sniff_pattern.match(body[:1024]))


def _clean_text(text: str) -> str:
    if not text:
        return ""
    return _whitespace_pattern.sub(' ', text).strip()


def _parse(html: Union[str, bytes], base_url: str) -> ExtractedContent:
    soup = BeautifulSoup(html, 'lxml')

    # <base href> overrides the document URL for relative resolution
    base_tag = soup.find('base', href=True)
    if base_tag:
        base_url = urljoin(base_url, base_tag['href'].strip())

    links: List[str] = []
    seen = set()
    for anchor in soup.find_all('a', href=True):
        href = anchor['href'].strip()
        if not href or href.startswith('#'):
            continue

        try:
            absolute_url = urljoin(base_url, href)
        except ValueError:
            continue

        if not is_valid_url(absolute_url):
            continue

        normalized_url = normalize_url(absolute_url)
        if normalized_url not in seen:
            seen.add(normalized_url)
            links.append(normalized_url)

    meta: Dict[str, str] = {}
    for tag in soup.find_all('meta'):
        name = tag.get('name') or tag.get('property') or tag.get('http-equiv')
        content = tag.get('content')
        if not name or content is None:
            continue
        # First occurrence wins
        meta.setdefault(name.strip(), content.strip())

    title = ""
    title_tag = soup.find('title')
    if title_tag:
        title = _clean_text(title_tag.get_text())

    return ExtractedContent(links=tuple(links), meta=meta, title=title)


def extract(html: Union[str, bytes], base_url: str) -> ExtractedContent:
    """
    Extract links, meta pairs and title from an HTML document.

    Anchors are resolved against the page (or its <base href>), normalized,
    restricted to http/https and de-duplicated in first-seen order. Malformed
    markup never fails the caller: it degrades to an empty extraction.

    Args:
        html: Raw HTML, as text or bytes
        base_url: URL the document was fetched from

    Returns:
        ExtractedContent with links, meta and title
    """
    if not html:
        return ExtractedContent()

    try:
        return _parse(html, base_url)
    except Exception as e:
        error = ParseError(f"Error parsing content from {base_url}: {e}")
        logger.warning(str(error))
        return ExtractedContent()
