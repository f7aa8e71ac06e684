"""Vector and metadata stores keyed by chunk id."""

from .vector_store import VectorStore
from .metadata_store import MetadataStore

__all__ = ['VectorStore', 'MetadataStore']
