import pytest

from agentcrawler.errors import ValidationError
from agentcrawler.utils.urls import get_origin, is_valid_url, normalize_url, validate_url


@pytest.mark.parametrize("url", [
    "http://example.com",
    "https://example.com/path?q=1",
    "HTTP://Example.com/",
    "http://127.0.0.1:8080/x",
    "https://[::1]/",
])
def test_accepts_absolute_http_urls(url):
    assert is_valid_url(url)


@pytest.mark.parametrize("url", [
    "",
    "   ",
    None,
    "ftp://example.com/file",
    "mailto:someone@example.com",
    "javascript:void(0)",
    "/relative/path",
    "relative/path",
    "http://",
    "http://example.com:notaport/",
])
def test_rejects_everything_else(url):
    assert not is_valid_url(url)


def test_normalize_lowercases_host_and_drops_fragment():
    assert normalize_url("HTTP://Example.COM/Path#section") == "http://example.com/Path"


def test_normalize_strips_default_port_and_fills_empty_path():
    assert normalize_url("https://example.com:443") == "https://example.com/"
    assert normalize_url("http://example.com:8080") == "http://example.com:8080/"


def test_normalize_keeps_query_verbatim():
    assert normalize_url("http://example.com/a?b=2&a=1") == "http://example.com/a?b=2&a=1"


def test_origin():
    assert get_origin("https://Example.com/a/b?c") == "https://example.com"
    assert get_origin("http://example.com:8080/x") == "http://example.com:8080"
    assert get_origin("http://example.com:80/x") == "http://example.com"


def test_validate_url_normalizes_or_raises():
    assert validate_url("HTTP://Example.com:80#top") == "http://example.com/"
    with pytest.raises(ValidationError):
        validate_url("javascript:alert(1)")
