"""
URL validation and normalization helpers.
"""

from urllib.parse import urlparse, urlunparse

from ..errors import ValidationError

ALLOWED_SCHEMES = ('http', 'https')
DEFAULT_PORTS = {'http': 80, 'https': 443}


def is_valid_url(url) -> bool:
    """Return True only for well-formed absolute http/https URLs."""
    if not isinstance(url, str) or not url.strip():
        return False

    try:
        parsed = urlparse(url.strip())
        # Accessing .port raises ValueError on garbage like "host:abc"
        parsed.port
    except ValueError:
        return False

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return False

    return bool(parsed.hostname)


def normalize_url(url: str) -> str:
    """
    Normalize URL so equal pages share one visited-store key.

    Lower-cases scheme and host, strips default ports and the fragment,
    and turns an empty path into "/". The query string is kept verbatim.
    """
    parsed = urlparse(url.strip())
    scheme = parsed.scheme.lower()
    host = (parsed.hostname or '').lower()
    if ':' in host:
        host = f"[{host}]"

    port = parsed.port
    netloc = host
    if parsed.username:
        userinfo = parsed.username
        if parsed.password:
            userinfo += f":{parsed.password}"
        netloc = f"{userinfo}@{netloc}"
    if port and port != DEFAULT_PORTS.get(scheme):
        netloc = f"{netloc}:{port}"

    path = parsed.path or '/'

    return urlunparse((
        scheme,
        netloc,
        path,
        parsed.params,
        parsed.query,
        ''  # Remove fragment
    ))


def validate_url(url) -> str:
    """Return the normalized form of url, or raise ValidationError."""
    if not is_valid_url(url):
        raise ValidationError(f"Not an absolute http/https URL: {url!r}")
    return normalize_url(url)


def get_origin(url: str) -> str:
    """Return scheme://host[:port] for a URL, the unit of robots.txt caching."""
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    host = (parsed.hostname or '').lower()
    if ':' in host:
        host = f"[{host}]"
    port = parsed.port
    if port and port != DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"
