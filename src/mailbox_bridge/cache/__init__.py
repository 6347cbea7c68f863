"""Local thread cache.

This package holds the two-tier local representation of synchronized
threads: a SQLite metadata row per thread for listings, and the full thread
JSON in a blob store for detail views.
"""

from .blobs import FileSystemBlobStore, thread_blob_key
from .repository import ThreadCacheRepository, ThreadRow, normalize_timestamp

__all__ = [
    "FileSystemBlobStore",
    "ThreadCacheRepository",
    "ThreadRow",
    "normalize_timestamp",
    "thread_blob_key",
]
