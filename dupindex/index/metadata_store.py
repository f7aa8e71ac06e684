"""
Metadata store for chunk locations and identities.

JSON-backed storage with secondary lookups by file path, content hash,
line location, kind and name.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from ..errors import CorruptIndexError
from ..types import ChunkKind, ChunkMetadata, ChunkRecord
from ..utils.fileio import write_atomic

logger = logging.getLogger(__name__)


class MetadataStore:
    """
    Multi-key lookup over chunk metadata.

    Records are keyed by chunk id. A file-path index keeps per-file lookups
    and bulk removal proportional to the number of chunks in that file.
    """

    METADATA_FILE = 'metadata.json'
    FORMAT_VERSION = 1

    def __init__(self) -> None:
        self._chunks: Dict[str, ChunkMetadata] = {}
        # file path -> ids, dict used as an insertion-ordered set
        self._by_file: Dict[str, Dict[str, None]] = {}

    # --- mutation ---

    def set(self, chunk_id: str, metadata: ChunkMetadata) -> None:
        """Add or overwrite the metadata stored under ``chunk_id``."""
        self._validate(chunk_id, metadata)
        self._unlink(chunk_id)
        self._chunks[chunk_id] = metadata
        self._by_file.setdefault(metadata.file_path, {})[chunk_id] = None

    def set_batch(self, items: Iterable[Tuple[str, ChunkMetadata]]) -> None:
        """Add several records; nothing is stored if any record is invalid."""
        items = list(items)
        for chunk_id, metadata in items:
            self._validate(chunk_id, metadata)
        for chunk_id, metadata in items:
            self.set(chunk_id, metadata)

    def remove(self, chunk_id: str) -> bool:
        """Remove one record. Returns whether anything was removed."""
        if chunk_id not in self._chunks:
            return False
        self._unlink(chunk_id)
        del self._chunks[chunk_id]
        return True

    def remove_by_file_path(self, file_path: str) -> List[ChunkRecord]:
        """Remove every record for ``file_path`` and return the removed records."""
        ids = self._by_file.pop(file_path, {})
        return [ChunkRecord(chunk_id, self._chunks.pop(chunk_id)) for chunk_id in ids]

    def clear(self) -> None:
        self._chunks.clear()
        self._by_file.clear()

    # --- lookup ---

    def get(self, chunk_id: str) -> Optional[ChunkMetadata]:
        return self._chunks.get(chunk_id)

    def has(self, chunk_id: str) -> bool:
        return chunk_id in self._chunks

    def size(self) -> int:
        return len(self._chunks)

    def __len__(self) -> int:
        return len(self._chunks)

    def __contains__(self, chunk_id: object) -> bool:
        return chunk_id in self._chunks

    def get_ids(self) -> List[str]:
        return list(self._chunks)

    def get_file_paths(self) -> List[str]:
        """Get all distinct file paths with at least one chunk."""
        return list(self._by_file)

    def entries(self) -> Iterator[Tuple[str, ChunkMetadata]]:
        snapshot = list(self._chunks.items())
        return iter(snapshot)

    def get_by_file_path(self, file_path: str) -> List[ChunkRecord]:
        """Get all records for a file, in insertion order."""
        return [
            ChunkRecord(chunk_id, self._chunks[chunk_id])
            for chunk_id in self._by_file.get(file_path, {})
        ]

    def get_by_content_hash(self, content_hash: str) -> Optional[ChunkRecord]:
        """
        Get a record with the given content hash.

        Exact duplicates share a hash; the first one stored is returned.
        """
        for chunk_id, metadata in self._chunks.items():
            if metadata.content_hash == content_hash:
                return ChunkRecord(chunk_id, metadata)
        return None

    def get_at_location(self, file_path: str, line: int) -> Optional[ChunkRecord]:
        """Get the chunk in ``file_path`` whose line range contains ``line``."""
        for record in self.get_by_file_path(file_path):
            if record.metadata.contains_line(line):
                return record
        return None

    def filter_by_kind(self, kind: Union[ChunkKind, str]) -> List[ChunkRecord]:
        """Records of the given kind; a kind outside the vocabulary matches nothing."""
        try:
            kind = ChunkKind(kind)
        except ValueError:
            return []
        return [
            ChunkRecord(chunk_id, metadata)
            for chunk_id, metadata in self._chunks.items()
            if metadata.kind is kind
        ]

    def search_by_name(self, query: str) -> List[ChunkRecord]:
        """Search by name (case-insensitive partial match)."""
        needle = query.casefold()
        return [
            ChunkRecord(chunk_id, metadata)
            for chunk_id, metadata in self._chunks.items()
            if metadata.name and needle in metadata.name.casefold()
        ]

    # --- persistence ---

    def save(self, directory: Union[str, Path]) -> None:
        """Persist all records to ``directory``."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        data = {
            'version': self.FORMAT_VERSION,
            'chunks': {chunk_id: metadata.to_dict() for chunk_id, metadata in self._chunks.items()},
        }
        write_atomic(directory / self.METADATA_FILE, json.dumps(data, indent=2))
        logger.debug(f"Saved {len(self._chunks)} chunk records to {directory}")

    def load(self, directory: Union[str, Path]) -> None:
        """
        Replace the store's contents with the data saved in ``directory``.

        A directory without saved data leaves the store empty. Malformed data
        raises ``CorruptIndexError`` and leaves the current contents untouched.
        """
        path = Path(directory) / self.METADATA_FILE
        if not path.exists():
            self.clear()
            return

        try:
            data = json.loads(path.read_text(encoding='utf-8'))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CorruptIndexError(f"Invalid metadata file: {e}", path=str(path)) from e

        chunks = self._decode(data, path)

        self.clear()
        for chunk_id, metadata in chunks.items():
            self._chunks[chunk_id] = metadata
            self._by_file.setdefault(metadata.file_path, {})[chunk_id] = None

        logger.debug(f"Loaded {len(self._chunks)} chunk records from {directory}")

    # --- internals ---

    @staticmethod
    def _validate(chunk_id: str, metadata: ChunkMetadata) -> None:
        if metadata.start_line < 1:
            raise ValueError(f"Chunk '{chunk_id}' start_line must be >= 1, got {metadata.start_line}")
        if metadata.end_line < metadata.start_line:
            raise ValueError(
                f"Chunk '{chunk_id}' end_line {metadata.end_line} precedes start_line {metadata.start_line}"
            )

    def _unlink(self, chunk_id: str) -> None:
        """Drop ``chunk_id`` from the file-path index."""
        previous = self._chunks.get(chunk_id)
        if previous is None:
            return
        ids = self._by_file.get(previous.file_path)
        if ids is not None:
            ids.pop(chunk_id, None)
            if not ids:
                del self._by_file[previous.file_path]

    def _decode(self, data: Any, path: Path) -> Dict[str, ChunkMetadata]:
        if not isinstance(data, dict) or data.get('version') != self.FORMAT_VERSION:
            raise CorruptIndexError("Unsupported metadata format", path=str(path))

        raw = data.get('chunks')
        if not isinstance(raw, dict):
            raise CorruptIndexError("Metadata file has no chunk table", path=str(path))

        chunks: Dict[str, ChunkMetadata] = {}
        for chunk_id, record in raw.items():
            try:
                metadata = ChunkMetadata.from_dict(record)
                self._validate(chunk_id, metadata)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                raise CorruptIndexError(f"Invalid metadata for chunk '{chunk_id}': {e}", path=str(path)) from e
            chunks[chunk_id] = metadata
        return chunks
