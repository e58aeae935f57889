"""
Storage layer for crawled pages.
Supports file-based and Redis storage; implements the result sink used by
the fetcher pool.
"""

import hashlib
import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any
from datetime import datetime, timezone

import redis.asyncio as redis

from ..utils.config import StorageConfig


class DatabaseError(Exception):
    """Custom exception for storage operations."""
    pass


def url_hash(url: str) -> str:
    return hashlib.sha256(url.encode('utf-8')).hexdigest()


class StorageBackend:
    """Abstract base class for storage backends."""

    async def initialize(self):
        """Initialize the storage backend."""
        raise NotImplementedError

    async def store(self, url: str, content: str) -> bool:
        """Store one fetched page."""
        raise NotImplementedError

    async def get_stats(self) -> Dict[str, Any]:
        """Get storage statistics."""
        raise NotImplementedError

    async def close(self):
        """Close storage connections."""
        raise NotImplementedError


class NullStorageBackend(StorageBackend):
    """Discards pages; used when storage type is 'none'."""

    def __init__(self):
        self.stats = {'total_discarded': 0}

    async def initialize(self):
        pass

    async def store(self, url: str, content: str) -> bool:
        self.stats['total_discarded'] += 1
        return True

    async def get_stats(self) -> Dict[str, Any]:
        return self.stats.copy()

    async def close(self):
        pass


class FileStorageBackend(StorageBackend):
    """File-based storage backend: one JSON document per page."""

    def __init__(self, data_directory: str):
        self.data_directory = Path(data_directory)
        self.logger = logging.getLogger(__name__)
        self.stats = {
            'total_stored': 0,
            'storage_errors': 0,
            'total_size_bytes': 0
        }

    async def initialize(self):
        """Create data directory structure."""
        try:
            (self.data_directory / 'content').mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DatabaseError(f"Failed to initialize file storage: {e}") from e
        self.logger.info(f"File storage initialized at {self.data_directory}")

    def get_file_path(self, url: str) -> Path:
        """Generate file path for URL, sharded by the first two hash chars."""
        digest = url_hash(url)
        return self.data_directory / 'content' / digest[:2] / f"{digest}.json"

    async def store(self, url: str, content: str) -> bool:
        """Store content to file."""
        file_path = self.get_file_path(url)
        data = {
            'url': url,
            'content': content,
            'content_length': len(content),
            'stored_at': datetime.now(timezone.utc).isoformat()
        }

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False)
        except OSError as e:
            self.stats['storage_errors'] += 1
            self.logger.error(f"Error storing content for {url}: {e}")
            return False

        self.stats['total_stored'] += 1
        self.stats['total_size_bytes'] += file_path.stat().st_size
        self.logger.debug(f"Stored content to {file_path}")
        return True

    async def load(self, url: str) -> Optional[Dict[str, Any]]:
        """Read back a stored page, or None if it was never stored."""
        file_path = self.get_file_path(url)
        if not file_path.exists():
            return None
        with open(file_path, 'r', encoding='utf-8') as f:
            return json.load(f)

    async def get_stats(self) -> Dict[str, Any]:
        return self.stats.copy()

    async def close(self):
        stats_file = self.data_directory / 'stats.json'
        try:
            with open(stats_file, 'w') as f:
                json.dump(self.stats, f, indent=2)
        except OSError as e:
            self.logger.error(f"Error saving statistics: {e}")


class RedisStorageBackend(StorageBackend):
    """Redis storage backend: a hash per page plus a set of stored URLs."""

    def __init__(self, config: Dict[str, Any], client: Optional[redis.Redis] = None):
        self.config = config
        self.client = client
        self.key_prefix = config.get('key_prefix', 'crawler')
        self.pages_key = f"{self.key_prefix}:pages"
        self.logger = logging.getLogger(__name__)
        self.stats = {
            'total_stored': 0,
            'storage_errors': 0
        }

    async def initialize(self):
        """Connect and check the server is reachable."""
        if self.client is None:
            self.client = redis.Redis(
                host=self.config.get('host', 'localhost'),
                port=self.config.get('port', 6379),
                db=self.config.get('db', 0),
                password=self.config.get('password'),
            )
        try:
            await self.client.ping()
        except redis.RedisError as e:
            raise DatabaseError(f"Failed to connect to Redis: {e}") from e
        self.logger.info("Redis storage initialized")

    def page_key(self, url: str) -> str:
        return f"{self.key_prefix}:page:{url_hash(url)}"

    async def store(self, url: str, content: str) -> bool:
        """Store content to Redis."""
        try:
            await self.client.hset(self.page_key(url), mapping={
                'url': url,
                'content': content,
                'stored_at': datetime.now(timezone.utc).isoformat()
            })
            await self.client.sadd(self.pages_key, url)
        except redis.RedisError as e:
            self.stats['storage_errors'] += 1
            self.logger.error(f"Error storing content for {url}: {e}")
            return False

        self.stats['total_stored'] += 1
        self.logger.debug(f"Stored content to Redis: {url}")
        return True

    async def get_stats(self) -> Dict[str, Any]:
        stats = self.stats.copy()
        try:
            stats['pages_in_redis'] = await self.client.scard(self.pages_key)
        except redis.RedisError as e:
            self.logger.warning(f"Error reading Redis stats: {e}")
        return stats

    async def close(self):
        if self.client is not None:
            await self.client.aclose()
            self.logger.info("Redis connection closed")


class DatabaseManager:
    """Selects the configured storage backend and acts as the result sink."""

    def __init__(self, config: StorageConfig):
        self.config = config
        self.backend: Optional[StorageBackend] = None
        self.logger = logging.getLogger(__name__)

    async def initialize(self):
        """Initialize the appropriate storage backend."""
        backend_type = self.config.type.lower()

        if backend_type == 'file':
            self.backend = FileStorageBackend(self.config.file.get('data_directory', 'data'))
        elif backend_type == 'redis':
            self.backend = RedisStorageBackend(self.config.redis)
        elif backend_type == 'none':
            self.backend = NullStorageBackend()
        else:
            raise DatabaseError(f"Unknown storage type: {backend_type}")

        await self.backend.initialize()
        self.logger.info(f"Database manager initialized with {backend_type} backend")

    async def store(self, url: str, content: str) -> bool:
        """Store one fetched page."""
        if not self.backend:
            raise DatabaseError("Database not initialized")
        return await self.backend.store(url, content)

    async def get_stats(self) -> Dict[str, Any]:
        if not self.backend:
            raise DatabaseError("Database not initialized")
        return await self.backend.get_stats()

    async def close(self):
        if self.backend:
            await self.backend.close()
            self.logger.info("Database connections closed")
