"""Shared record types for the vector index, metadata index and file tracker.

Each store owns its own records; records cross store boundaries only as
copies keyed by chunk id or file path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, TypedDict


# =============================================================================
# Chunk metadata
# =============================================================================

class ChunkKind(str, Enum):
    """Kinds of code regions produced by the chunker."""
    COMPONENT = "component"
    HOOK = "hook"
    FUNCTION = "function"
    JSX_FRAGMENT = "jsx-fragment"
    COMPONENT_SUMMARY = "component-summary"
    JSX_SECTION = "jsx-section"
    FUNCTION_SUMMARY = "function-summary"
    FUNCTION_SECTION = "function-section"
    OTHER = "other"


class ChunkMetadataDict(TypedDict, total=False):
    """On-disk representation of a ``ChunkMetadata``."""
    file_path: str
    start_line: int
    end_line: int
    kind: str
    name: Optional[str]
    content_hash: str
    start_column: Optional[int]
    end_column: Optional[int]
    extra: Dict[str, Any]


@dataclass(frozen=True)
class ChunkMetadata:
    """Location and identity facts about one chunk.

    Attributes:
        file_path: Source file the chunk was extracted from
        start_line: First line of the chunk (1-based, inclusive)
        end_line: Last line of the chunk (1-based, inclusive)
        kind: Chunk kind tag
        name: Human label (component/function name), None for anonymous chunks
        content_hash: Digest of the chunk's exact source text
        start_column: Optional start column
        end_column: Optional end column
        extra: Free-form chunker facts (props, hooks, export flags)
    """
    file_path: str
    start_line: int
    end_line: int
    kind: ChunkKind
    name: Optional[str]
    content_hash: str
    start_column: Optional[int] = None
    end_column: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.kind, ChunkKind):
            object.__setattr__(self, "kind", ChunkKind(self.kind))

    def contains_line(self, line: int) -> bool:
        """Whether ``line`` falls inside this chunk's inclusive range."""
        return self.start_line <= line <= self.end_line

    def to_dict(self) -> ChunkMetadataDict:
        """Convert to a JSON-serializable dict."""
        return {
            "file_path": self.file_path,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "kind": self.kind.value,
            "name": self.name,
            "content_hash": self.content_hash,
            "start_column": self.start_column,
            "end_column": self.end_column,
            "extra": dict(self.extra),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChunkMetadata":
        """Create from a dict produced by ``to_dict``."""
        return cls(
            file_path=data["file_path"],
            start_line=int(data["start_line"]),
            end_line=int(data["end_line"]),
            kind=ChunkKind(data["kind"]),
            name=data.get("name"),
            content_hash=data["content_hash"],
            start_column=data.get("start_column"),
            end_column=data.get("end_column"),
            extra=dict(data.get("extra") or {}),
        )


@dataclass(frozen=True)
class ChunkRecord:
    """A chunk id paired with its metadata, as returned by lookups."""
    id: str
    metadata: ChunkMetadata


# =============================================================================
# Similarity search
# =============================================================================

@dataclass(frozen=True)
class SimilarityResult:
    """One nearest-neighbor hit.

    ``score`` is the cosine similarity; ``distance`` is ``1 - score``.
    """
    id: str
    score: float
    distance: float


# =============================================================================
# File tracking
# =============================================================================

@dataclass
class FileHashEntry:
    """Tracking record for one indexed file."""
    content_hash: str
    mtime_ms: float
    chunk_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_hash": self.content_hash,
            "mtime_ms": self.mtime_ms,
            "chunk_ids": list(self.chunk_ids),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileHashEntry":
        return cls(
            content_hash=str(data["content_hash"]),
            mtime_ms=float(data["mtime_ms"]),
            chunk_ids=[str(c) for c in data.get("chunk_ids", [])],
        )


class ChangeType(str, Enum):
    """Outcome of comparing a scanned file against its tracking entry."""
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class FileChange:
    """A file that needs re-indexing or cleanup."""
    path: str
    type: ChangeType
    old_hash: Optional[str] = None
    new_hash: Optional[str] = None
