"""Common exceptions raised by the chunking and embedding layers."""
from __future__ import annotations

from typing import Dict, List, Optional


class ChunkingError(RuntimeError):
    """Raised when a document cannot be chunked."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class ChunkingInputError(ChunkingError, ValueError):
    """Raised for empty text or an unusable option combination."""


class StructureError(ChunkingError):
    """Raised when parsed sections do not partition the source text."""


class EmbeddingError(RuntimeError):
    """Base class for embedding failures."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class EmbeddingInputError(EmbeddingError, ValueError):
    """Raised when texts passed for embedding are empty or malformed."""


class EmbeddingProviderError(EmbeddingError):
    """Raised when the embedding provider is unavailable or misbehaves."""


class EmbeddingBatchError(EmbeddingError):
    """Raised when one provider batch fails after all retries.

    ``completed`` maps input positions to the vectors resolved before the
    failure (cache hits and batches that succeeded), so callers can retry
    only the remainder.
    """

    def __init__(
        self,
        message: str,
        *,
        batch_index: int,
        completed: Optional[Dict[int, List[float]]] = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.batch_index = batch_index
        self.completed: Dict[int, List[float]] = dict(completed or {})


class EmbeddingCancelledError(EmbeddingError):
    """Raised when a caller cancels ``embed_many`` between batches."""

    def __init__(self, message: str, *, completed: Optional[Dict[int, List[float]]] = None) -> None:
        super().__init__(message)
        self.completed: Dict[int, List[float]] = dict(completed or {})
