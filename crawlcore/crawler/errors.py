"""
Error taxonomy for crawl operations.

Per-task errors never escape a worker: they are turned into failed
CrawlResult values. Only ConfigurationError is raised to the caller.
"""

from enum import Enum


class ErrorKind(Enum):
    """Kinds of per-task failure reported in a CrawlResult."""
    NETWORK = "network"
    TIMEOUT = "timeout"
    DISALLOWED_DOMAIN = "disallowed_domain"
    ROBOTS = "robots"
    PARSE = "parse"
    CANCELLED = "cancelled"


class CrawlError(Exception):
    """Base class for per-task crawl errors."""
    kind = ErrorKind.NETWORK

    def __init__(self, message: str = "", url: str = None):
        super().__init__(message)
        self.url = url


class NetworkError(CrawlError):
    """Connection, DNS or HTTP transport failure."""
    kind = ErrorKind.NETWORK


class FetchTimeoutError(CrawlError):
    """A fetch did not complete within the configured timeout."""
    kind = ErrorKind.TIMEOUT


class DisallowedDomainError(CrawlError):
    """URL belongs to a domain outside the allowed-domain filter."""
    kind = ErrorKind.DISALLOWED_DOMAIN


class RobotsDisallowedError(CrawlError):
    """robots.txt forbids fetching the URL."""
    kind = ErrorKind.ROBOTS


class ParseError(CrawlError):
    """Link extraction failed for a fetched page."""
    kind = ErrorKind.PARSE


class CrawlCancelledError(CrawlError):
    """Task abandoned because the crawl was cancelled."""
    kind = ErrorKind.CANCELLED


class ConfigurationError(ValueError):
    """Invalid crawler configuration, raised before a run starts."""
    pass
