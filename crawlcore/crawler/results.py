"""
Crawl result records produced by workers.
"""

from dataclasses import dataclass
from typing import Optional

from .errors import ErrorKind
from .url_frontier import URLTask


@dataclass
class CrawlResult:
    """Outcome of one dispatched task."""
    task: URLTask
    success: bool
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    status_code: int = 0
    links_found: int = 0
    links_enqueued: int = 0
    fetch_time: float = 0.0
    content_length: int = 0

    @property
    def url(self) -> str:
        return self.task.url

    @classmethod
    def failure(cls, task: URLTask, kind: ErrorKind, error: str,
                status_code: int = 0, fetch_time: float = 0.0) -> 'CrawlResult':
        """Build a failed result."""
        return cls(
            task=task,
            success=False,
            error_kind=kind,
            error=error,
            status_code=status_code,
            fetch_time=fetch_time
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for logging and export."""
        return {
            'url': self.task.url,
            'depth': self.task.depth,
            'success': self.success,
            'error_kind': self.error_kind.value if self.error_kind else None,
            'error': self.error,
            'status_code': self.status_code,
            'links_found': self.links_found,
            'links_enqueued': self.links_enqueued,
            'fetch_time': self.fetch_time,
            'content_length': self.content_length
        }
