"""Content hashing and change detection for incremental indexing."""

from .file_tracker import FileTracker, hash_content, hash_content_sync

__all__ = ['FileTracker', 'hash_content', 'hash_content_sync']
