"""
Storage layer for crawl output.
"""

from .database import (
    DatabaseManager, PersistenceError, StorageBackend,
    SqliteStorageBackend, FileStorageBackend
)

__all__ = [
    'DatabaseManager', 'PersistenceError', 'StorageBackend',
    'SqliteStorageBackend', 'FileStorageBackend'
]
