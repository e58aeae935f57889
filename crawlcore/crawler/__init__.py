"""
Crawler core components.
"""

from .errors import (
    ErrorKind, CrawlError, NetworkError, FetchTimeoutError, DisallowedDomainError,
    RobotsDisallowedError, ParseError, CrawlCancelledError, ConfigurationError
)
from .url_frontier import URLFrontier, URLTask, normalize_url
from .domain_limiter import DomainLimiter, DomainFilter
from .completion import CompletionTracker
from .results import CrawlResult
from .fetcher import WebFetcher, FetchResult
from .parser import ContentParser, ParsedContent
from .pool import FetcherPool

__all__ = [
    'ErrorKind', 'CrawlError', 'NetworkError', 'FetchTimeoutError',
    'DisallowedDomainError', 'RobotsDisallowedError', 'ParseError',
    'CrawlCancelledError', 'ConfigurationError',
    'URLFrontier', 'URLTask', 'normalize_url',
    'DomainLimiter', 'DomainFilter',
    'CompletionTracker', 'CrawlResult',
    'WebFetcher', 'FetchResult',
    'ContentParser', 'ParsedContent',
    'FetcherPool'
]
