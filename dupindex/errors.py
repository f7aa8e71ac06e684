"""
Error types for the duplicate index.

Missing ids, paths and locations are not errors; lookups report them as
``None`` or an empty list.
"""

from typing import Optional, Any, Dict


class DupIndexError(Exception):
    """
    Base exception for all index errors.

    Carries a structured ``details`` dict for reporting.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize index error.

        Args:
            message: Error message
            details: Optional detailed error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class DimensionMismatchError(DupIndexError):
    """
    Raised when a vector's length disagrees with the store's dimension.
    """

    def __init__(self, expected: int, actual: int,
                 chunk_id: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        """
        Initialize dimension mismatch error.

        Args:
            expected: Dimension established by the store
            actual: Length of the offending vector
            chunk_id: Id being inserted, if any (None for queries)
            details: Additional error context
        """
        if chunk_id is None:
            message = f"Query vector dimension mismatch: expected {expected}, got {actual}"
        else:
            message = f"Vector dimension mismatch for '{chunk_id}': expected {expected}, got {actual}"
        super().__init__(message, details)
        self.expected = expected
        self.actual = actual
        self.chunk_id = chunk_id

        self.details.update({
            'expected': expected,
            'actual': actual,
            'chunk_id': chunk_id
        })


class CorruptIndexError(DupIndexError):
    """
    Raised when persisted index data cannot be decoded.
    """

    def __init__(self, message: str, path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.path = path
        self.details['path'] = path
