"""
Vector store for chunk embeddings.

Exact in-memory nearest-neighbor search by cosine similarity, persisted
as an id list plus a packed binary matrix.
"""

import json
import logging
import struct
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from ..errors import CorruptIndexError, DimensionMismatchError
from ..types import SimilarityResult
from ..utils.fileio import write_atomic

logger = logging.getLogger(__name__)

VectorLike = Union[Sequence[float], NDArray[np.floating]]


class VectorStore:
    """
    Fixed-dimension vector storage with cosine similarity search.

    Vectors are held as float64 in memory. The first insert into an empty
    store establishes the dimension; removing the last vector clears it
    again unless the dimension was pinned through the constructor.

    On disk the store is two files:

    - ``ids.json``: ordered list of ids matching matrix rows
    - ``embeddings.bin``: little-endian header ``(dimension, count,
      itemsize)`` as three uint32, then ``count * dimension`` floats of
      ``itemsize`` bytes (4 for float32, 8 for float64)

    Not safe for concurrent writers; mutating the store while iterating
    ``entries()`` is unsupported.
    """

    IDS_FILE = 'ids.json'
    EMBEDDINGS_FILE = 'embeddings.bin'
    HEADER = struct.Struct('<III')
    DTYPES = {
        'float32': np.dtype('<f4'),
        'float64': np.dtype('<f8'),
    }

    def __init__(self, dimension: Optional[int] = None, dtype: str = 'float32') -> None:
        """
        Initialize vector store.

        Args:
            dimension: Optional pinned dimension, kept even when the store empties
            dtype: Precision used on disk ('float32' or 'float64')
        """
        if dimension is not None and dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        if dtype not in self.DTYPES:
            raise ValueError(f"Unsupported vector dtype: {dtype!r}")

        self._vectors: Dict[str, NDArray[np.float64]] = {}
        self._pinned_dimension = dimension
        self._dimension: Optional[int] = dimension
        self._disk_dtype = self.DTYPES[dtype]

        # Search matrix, rebuilt lazily after mutations
        self._matrix: Optional[NDArray[np.float64]] = None
        self._norms: Optional[NDArray[np.float64]] = None
        self._matrix_ids: List[str] = []
        self._matrix_valid = False

    # --- mutation ---

    def insert(self, chunk_id: str, vector: VectorLike) -> None:
        """Insert or overwrite the vector stored under ``chunk_id``."""
        vec = self._as_vector(vector)
        expected = self._dimension if self._dimension is not None else len(vec)
        if len(vec) != expected:
            raise DimensionMismatchError(expected, len(vec), chunk_id=chunk_id)

        self._dimension = expected
        self._vectors[chunk_id] = vec
        self._invalidate()

    def insert_batch(self, entries: Iterable[Tuple[str, VectorLike]]) -> None:
        """
        Insert several vectors at once.

        All-or-nothing: every vector is validated before any is stored, so a
        single mismatch rejects the whole batch and leaves the store as it was.
        """
        prepared = [(chunk_id, self._as_vector(vector)) for chunk_id, vector in entries]
        if not prepared:
            return

        expected = self._dimension if self._dimension is not None else len(prepared[0][1])
        for chunk_id, vec in prepared:
            if len(vec) != expected:
                raise DimensionMismatchError(expected, len(vec), chunk_id=chunk_id)

        self._dimension = expected
        for chunk_id, vec in prepared:
            self._vectors[chunk_id] = vec
        self._invalidate()

    def remove(self, chunk_id: str) -> bool:
        """Remove a vector. Returns whether anything was removed."""
        if self._vectors.pop(chunk_id, None) is None:
            return False
        if not self._vectors:
            self._dimension = self._pinned_dimension
        self._invalidate()
        return True

    def clear(self) -> None:
        """Remove all vectors and reset the dimension."""
        self._vectors.clear()
        self._dimension = self._pinned_dimension
        self._invalidate()

    # --- lookup ---

    def get(self, chunk_id: str) -> Optional[NDArray[np.float64]]:
        """Return a copy of the stored vector, or None."""
        vec = self._vectors.get(chunk_id)
        return None if vec is None else vec.copy()

    def has(self, chunk_id: str) -> bool:
        return chunk_id in self._vectors

    def size(self) -> int:
        return len(self._vectors)

    def __len__(self) -> int:
        return len(self._vectors)

    def __contains__(self, chunk_id: object) -> bool:
        return chunk_id in self._vectors

    @property
    def dimension(self) -> Optional[int]:
        """Established dimension, or None for an empty unpinned store."""
        return self._dimension

    def get_ids(self) -> List[str]:
        return list(self._vectors)

    def entries(self) -> Iterator[Tuple[str, NDArray[np.float64]]]:
        """
        Iterate over ``(id, vector)`` pairs.

        The id set is snapshotted when this method is called; call it again
        for a fresh pass.
        """
        snapshot = list(self._vectors.items())
        return ((chunk_id, vec.copy()) for chunk_id, vec in snapshot)

    def find_similar(self, query: VectorLike, k: int = 10,
                     threshold: Optional[float] = None) -> List[SimilarityResult]:
        """
        Find the ``k`` stored vectors most similar to ``query``.

        Args:
            query: Query vector, must match the store's dimension
            k: Maximum number of results
            threshold: Optional minimum cosine similarity

        Returns:
            Results sorted by descending score; ties keep insertion order
        """
        q = self._as_vector(query)
        if self._dimension is not None and len(q) != self._dimension:
            raise DimensionMismatchError(self._dimension, len(q))

        if not self._vectors or k <= 0:
            return []

        matrix, norms = self._ensure_matrix()
        q_norm = float(np.linalg.norm(q))

        dots = matrix @ q
        denom = norms * q_norm
        scores = np.zeros(len(self._matrix_ids), dtype=np.float64)
        nonzero = denom > 0
        scores[nonzero] = dots[nonzero] / denom[nonzero]
        # Rounding can push |score| slightly past 1
        np.clip(scores, -1.0, 1.0, out=scores)

        if threshold is None:
            candidates = np.arange(len(scores))
        else:
            candidates = np.flatnonzero(scores >= threshold)

        order = candidates[np.argsort(-scores[candidates], kind='stable')][:k]

        return [
            SimilarityResult(
                id=self._matrix_ids[i],
                score=float(scores[i]),
                distance=float(1.0 - scores[i]),
            )
            for i in order
        ]

    def get_stats(self) -> Dict[str, Optional[int]]:
        """Get size, dimension and approximate in-memory footprint."""
        return {
            'size': len(self._vectors),
            'dimension': self._dimension,
            'memory_bytes': sum(vec.nbytes for vec in self._vectors.values()),
        }

    # --- persistence ---

    def save(self, directory: Union[str, Path]) -> None:
        """Persist all vectors and the dimension to ``directory``."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        ids = list(self._vectors)
        dimension = self._dimension or 0
        if ids:
            matrix = np.vstack([self._vectors[i] for i in ids]).astype(self._disk_dtype)
        else:
            matrix = np.zeros((0, dimension), dtype=self._disk_dtype)

        header = self.HEADER.pack(dimension, len(ids), self._disk_dtype.itemsize)
        write_atomic(directory / self.EMBEDDINGS_FILE, header + matrix.tobytes())
        write_atomic(directory / self.IDS_FILE, json.dumps(ids))

        logger.debug(f"Saved {len(ids)} vectors (dim={dimension}) to {directory}")

    def load(self, directory: Union[str, Path]) -> None:
        """
        Replace the store's contents with the data saved in ``directory``.

        A directory without saved data leaves the store empty. Malformed data
        raises ``CorruptIndexError`` and leaves the current contents untouched.
        """
        directory = Path(directory)
        ids_path = directory / self.IDS_FILE
        embeddings_path = directory / self.EMBEDDINGS_FILE

        if not ids_path.exists() and not embeddings_path.exists():
            self.clear()
            return
        if not ids_path.exists() or not embeddings_path.exists():
            raise CorruptIndexError(
                f"Incomplete vector store in {directory}", path=str(directory)
            )

        ids = self._read_ids(ids_path)
        dimension, matrix = self._read_matrix(embeddings_path)

        if len(ids) != matrix.shape[0]:
            raise CorruptIndexError(
                f"Vector store id count ({len(ids)}) does not match vector count ({matrix.shape[0]})",
                path=str(directory)
            )
        if len(set(ids)) != len(ids):
            raise CorruptIndexError("Vector store contains duplicate ids", path=str(ids_path))
        if self._pinned_dimension is not None and dimension not in (0, self._pinned_dimension):
            raise DimensionMismatchError(self._pinned_dimension, dimension)

        self._vectors = {chunk_id: matrix[row].copy() for row, chunk_id in enumerate(ids)}
        self._dimension = self._pinned_dimension or (dimension or None)
        self._invalidate()

        logger.debug(f"Loaded {len(ids)} vectors (dim={self._dimension}) from {directory}")

    # --- internals ---

    @staticmethod
    def _as_vector(vector: VectorLike) -> NDArray[np.float64]:
        vec = np.array(vector, dtype=np.float64)
        if vec.ndim != 1:
            raise ValueError(f"Vectors must be one-dimensional, got shape {vec.shape}")
        if vec.size == 0:
            raise ValueError("Vectors must not be empty")
        return vec

    def _invalidate(self) -> None:
        self._matrix_valid = False

    def _ensure_matrix(self) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
        if not self._matrix_valid or self._matrix is None or self._norms is None:
            self._matrix_ids = list(self._vectors)
            self._matrix = np.vstack([self._vectors[i] for i in self._matrix_ids])
            self._norms = np.linalg.norm(self._matrix, axis=1)
            self._matrix_valid = True
        return self._matrix, self._norms

    @staticmethod
    def _read_ids(path: Path) -> List[str]:
        try:
            ids = json.loads(path.read_text(encoding='utf-8'))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CorruptIndexError(f"Invalid vector id list: {e}", path=str(path)) from e

        if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
            raise CorruptIndexError("Vector id list must be a JSON array of strings", path=str(path))
        return ids

    def _read_matrix(self, path: Path) -> Tuple[int, NDArray[np.float64]]:
        buffer = path.read_bytes()
        if len(buffer) < self.HEADER.size:
            raise CorruptIndexError("Truncated vector header", path=str(path))

        dimension, count, itemsize = self.HEADER.unpack_from(buffer, 0)
        dtype = {4: self.DTYPES['float32'], 8: self.DTYPES['float64']}.get(itemsize)
        if dtype is None:
            raise CorruptIndexError(f"Unsupported vector item size: {itemsize}", path=str(path))
        if count > 0 and dimension == 0:
            raise CorruptIndexError("Vectors stored with zero dimension", path=str(path))

        expected = self.HEADER.size + count * dimension * itemsize
        if len(buffer) != expected:
            raise CorruptIndexError(
                f"Vector data is {len(buffer)} bytes, expected {expected}", path=str(path)
            )

        if count * dimension == 0:
            return dimension, np.zeros((count, dimension), dtype=np.float64)

        values = np.frombuffer(buffer, dtype=dtype, count=count * dimension, offset=self.HEADER.size)
        return dimension, values.reshape(count, dimension).astype(np.float64)
