"""
Exception types raised by the crawler components.

None of the per-task errors is fatal: the agent loop logs them and moves on
to the next task. Only failures during scheduler initialization stop the
process.
"""


class CrawlerError(Exception):
    """Base class for crawler errors."""
    pass


class ConfigError(CrawlerError):
    """Invalid or unreadable configuration."""
    pass


class ValidationError(CrawlerError):
    """URL is malformed or does not use http/https."""
    pass


class RobotsFetchError(CrawlerError):
    """robots.txt could not be fetched or parsed."""
    pass


class DedupStoreError(CrawlerError):
    """The visited-URL store could not be reached."""
    pass


class FetchError(CrawlerError):
    """Page fetch failed before any HTTP response was received."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{reason} ({url})")
        self.url = url
        self.reason = reason


class ParseError(CrawlerError):
    """HTML could not be parsed."""
    pass


class PublishError(CrawlerError):
    """The distribution channel rejected or could not accept a record."""
    pass
