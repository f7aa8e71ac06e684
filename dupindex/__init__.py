"""Incremental semantic-duplicate index: vector search, chunk metadata and file change tracking."""

__version__ = "0.1.0"

from .cache.file_tracker import FileTracker, hash_content, hash_content_sync
from .config import IndexConfig
from .errors import DupIndexError, DimensionMismatchError, CorruptIndexError
from .index.metadata_store import MetadataStore
from .index.vector_store import VectorStore
from .storage import IndexStorage
from .types import (
    ChangeType,
    ChunkKind,
    ChunkMetadata,
    ChunkRecord,
    FileChange,
    FileHashEntry,
    SimilarityResult,
)

__all__ = [
    "VectorStore",
    "MetadataStore",
    "FileTracker",
    "IndexStorage",
    "IndexConfig",
    "hash_content",
    "hash_content_sync",
    "ChunkKind",
    "ChunkMetadata",
    "ChunkRecord",
    "SimilarityResult",
    "FileHashEntry",
    "ChangeType",
    "FileChange",
    "DupIndexError",
    "DimensionMismatchError",
    "CorruptIndexError",
    "__version__",
]
