"""
Storage layer for crawled pages.
"""

from .database import (
    DatabaseManager, DatabaseError, StorageBackend,
    FileStorageBackend, RedisStorageBackend, NullStorageBackend
)

__all__ = [
    'DatabaseManager', 'DatabaseError', 'StorageBackend',
    'FileStorageBackend', 'RedisStorageBackend', 'NullStorageBackend'
]
