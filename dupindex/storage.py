"""
On-disk duplicate index combining the vector store, metadata store and
file tracker.

The indexing driver scans files, asks ``detect_changes`` what to redo,
chunks and embeds the changed files itself, and hands the results to
``apply_file``. Queries read vectors first and resolve metadata after.
"""

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from .cache.file_tracker import FileTracker
from .config import IndexConfig
from .errors import CorruptIndexError
from .index.metadata_store import MetadataStore
from .index.vector_store import VectorLike, VectorStore
from .types import ChangeType, ChunkMetadata, FileChange, SimilarityResult
from .utils.fileio import write_atomic
from .utils.logging_setup import log_operation

logger = logging.getLogger(__name__)

ChunkInput = Tuple[str, VectorLike, ChunkMetadata]
SimilarChunk = Tuple[SimilarityResult, Optional[ChunkMetadata]]
DetachedChunk = Tuple[str, Optional[NDArray[np.float64]], Optional[ChunkMetadata]]

# Default for query thresholds: use the configured one. Pass None for no threshold.
CONFIGURED: Any = object()


class IndexStorage:
    """
    The three stores of one project's index, saved side by side.

    Layout under ``<root>/<config.index_dir>``::

        manifest.json
        <vectors_subdir>/   ids.json, embeddings.bin
        <metadata_subdir>/  metadata.json
        <tracker_subdir>/   hashes.json

    One indexing pass at a time; callers serialize writers.
    """

    MANIFEST_FILE = "manifest.json"
    MANIFEST_VERSION = 1

    def __init__(self, root: Union[str, Path], config: Optional[IndexConfig] = None) -> None:
        self.root = Path(root)
        self.config = config or IndexConfig()

        index_dir = Path(self.config.index_dir)
        self.index_dir = index_dir if index_dir.is_absolute() else self.root / index_dir

        self.vectors = VectorStore(dtype=self.config.vector_dtype)
        self.metadata = MetadataStore()
        self.tracker = FileTracker()
        self.manifest: Optional[Dict[str, Any]] = None

    @property
    def vectors_dir(self) -> Path:
        return self.index_dir / self.config.vectors_subdir

    @property
    def metadata_dir(self) -> Path:
        return self.index_dir / self.config.metadata_subdir

    @property
    def tracker_dir(self) -> Path:
        return self.index_dir / self.config.tracker_subdir

    # --- persistence ---

    def load(self) -> None:
        """
        Load the index from disk.

        A missing index gives empty stores. A corrupt vector or metadata
        store resets all three, so the next ``detect_changes`` reports every
        file as added.
        """
        start = time.time()
        self._reset()
        if not self.index_dir.exists():
            return

        self.manifest = self._read_manifest()
        try:
            self.vectors.load(self.vectors_dir)
            self.metadata.load(self.metadata_dir)
        except CorruptIndexError as e:
            logger.warning(f"Discarding corrupt index in {self.index_dir}: {e}")
            self._reset()
            return
        self.tracker.load(self.tracker_dir)

        files = len(self.tracker.get_tracked_files())
        log_operation(
            logger, "load_index",
            f"Loaded index: {self.vectors.size()} vectors, {self.metadata.size()} chunks, {files} files",
            index_dir=str(self.index_dir),
            vectors=self.vectors.size(),
            chunks=self.metadata.size(),
            files=files,
            duration=round(time.time() - start, 3),
        )

    def save(self, embedding_model: Optional[str] = None) -> None:
        """Save all stores and rewrite the manifest."""
        start = time.time()
        self.index_dir.mkdir(parents=True, exist_ok=True)

        self.vectors.save(self.vectors_dir)
        self.metadata.save(self.metadata_dir)
        self.tracker.save(self.tracker_dir)

        now = datetime.now(timezone.utc).isoformat()
        previous = self.manifest or {}
        self.manifest = {
            "version": self.MANIFEST_VERSION,
            "created_at": previous.get("created_at", now),
            "updated_at": now,
            "embedding_model": embedding_model or previous.get("embedding_model"),
            "dimension": self.vectors.dimension or 0,
            "file_count": len(self.tracker.get_tracked_files()),
            "chunk_count": self.metadata.size(),
        }
        write_atomic(self.index_dir / self.MANIFEST_FILE, json.dumps(self.manifest, indent=2))

        duration = time.time() - start
        log_operation(
            logger, "save_index",
            f"Saved index to {self.index_dir} in {duration:.2f}s",
            index_dir=str(self.index_dir),
            chunks=self.manifest["chunk_count"],
            files=self.manifest["file_count"],
            duration=round(duration, 3),
        )

    # --- incremental updates ---

    def detect_changes(self, paths: Iterable[str]) -> List[FileChange]:
        changes = self.tracker.detect_changes(paths)
        counts = {change_type.value: 0 for change_type in ChangeType}
        for change in changes:
            counts[change.type.value] += 1
        log_operation(
            logger, "detect_changes",
            f"Detected {len(changes)} changed files",
            index_dir=str(self.index_dir),
            **counts,
        )
        return changes

    def apply_file(self, file_path: str, content: str, chunks: Sequence[ChunkInput]) -> List[str]:
        """
        Replace everything indexed for ``file_path`` with ``chunks``.

        Args:
            file_path: File that was (re)chunked
            content: File text the chunks were produced from, read in text mode
            chunks: ``(chunk_id, vector, metadata)`` per chunk

        Returns:
            The new chunk ids

        If any vector or record is rejected, the index is restored to its
        state before the call and the error propagates. That includes
        chunks of other files whose ids were about to be reused.
        """
        chunk_ids = [chunk_id for chunk_id, _, _ in chunks]
        previous = self._detach(file_path)
        displaced = [
            (chunk_id, self.vectors.get(chunk_id), self.metadata.get(chunk_id))
            for chunk_id in dict.fromkeys(chunk_ids)
            if self.vectors.has(chunk_id) or self.metadata.has(chunk_id)
        ]

        try:
            self.vectors.insert_batch((chunk_id, vector) for chunk_id, vector, _ in chunks)
            self.metadata.set_batch((chunk_id, metadata) for chunk_id, _, metadata in chunks)
            self.tracker.update_file(file_path, content, chunk_ids)
        except Exception:
            for chunk_id in chunk_ids:
                self.vectors.remove(chunk_id)
                self.metadata.remove(chunk_id)
            self._reattach(previous + displaced)
            raise

        logger.debug(f"Indexed {len(chunk_ids)} chunks for {file_path}")
        return chunk_ids

    def remove_file(self, file_path: str) -> List[str]:
        """Drop a file's chunks from both indexes and stop tracking it."""
        removed = [chunk_id for chunk_id, _, _ in self._detach(file_path)]
        self.tracker.remove_entry(file_path)
        return removed

    # --- queries ---

    def find_similar(self, query: VectorLike, k: Optional[int] = None,
                     threshold: Optional[float] = CONFIGURED) -> List[SimilarChunk]:
        """
        Nearest chunks to ``query`` with their metadata (None if missing).

        ``k`` defaults to ``config.default_top_k`` and ``threshold`` to
        ``config.default_threshold``; ``threshold=None`` disables the
        threshold for this query.
        """
        results = self.vectors.find_similar(
            query,
            k=self.config.default_top_k if k is None else k,
            threshold=self.config.default_threshold if threshold is CONFIGURED else threshold,
        )
        return [(result, self.metadata.get(result.id)) for result in results]

    def find_similar_to_location(self, file_path: str, line: int, k: Optional[int] = None,
                                 threshold: Optional[float] = CONFIGURED) -> List[SimilarChunk]:
        """Chunks similar to the one covering ``file_path:line``, excluding itself."""
        record = self.metadata.get_at_location(file_path, line)
        if record is None:
            return []
        vector = self.vectors.get(record.id)
        if vector is None:
            return []

        k = self.config.default_top_k if k is None else k
        matches = self.find_similar(vector, k=k + 1, threshold=threshold)
        return [match for match in matches if match[0].id != record.id][:k]

    def get_stats(self) -> Dict[str, Any]:
        vector_stats = self.vectors.get_stats()
        return {
            "total_files": len(self.tracker.get_tracked_files()),
            "total_chunks": self.metadata.size(),
            "dimension": vector_stats["dimension"],
            "memory_bytes": vector_stats["memory_bytes"],
        }

    # --- internals ---

    def _reset(self) -> None:
        self.vectors.clear()
        self.metadata.clear()
        self.tracker.clear()
        self.manifest = None

    def _read_manifest(self) -> Optional[Dict[str, Any]]:
        path = self.index_dir / self.MANIFEST_FILE
        if not path.exists():
            return None
        try:
            manifest = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unreadable manifest {path}: {e}")
            return None
        if not isinstance(manifest, dict) or manifest.get("version") != self.MANIFEST_VERSION:
            logger.info(f"Ignoring manifest {path} with unsupported version")
            return None
        return manifest

    def _detach(self, file_path: str) -> List[DetachedChunk]:
        """Remove a file's chunks from both indexes, returning what was removed."""
        records = {record.id: record.metadata for record in self.metadata.remove_by_file_path(file_path)}
        entry = self.tracker.get_entry(file_path)
        ids = list(dict.fromkeys(list(records) + (entry.chunk_ids if entry else [])))

        removed = []
        for chunk_id in ids:
            vector = self.vectors.get(chunk_id)
            self.vectors.remove(chunk_id)
            removed.append((chunk_id, vector, records.get(chunk_id)))
        return removed

    def _reattach(self, removed: List[DetachedChunk]) -> None:
        self.vectors.insert_batch(
            (chunk_id, vector) for chunk_id, vector, _ in removed if vector is not None
        )
        self.metadata.set_batch(
            (chunk_id, metadata) for chunk_id, _, metadata in removed if metadata is not None
        )
