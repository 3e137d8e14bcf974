"""Capability interface implemented by embedding backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Sequence

__all__ = ["EmbeddingProvider", "EmbeddingResponse"]


@dataclass(slots=True)
class EmbeddingResponse:
    """Vectors for one batch plus the token total the backend reports for it."""

    vectors: List[List[float]] = field(default_factory=list)
    total_tokens: int = 0


class EmbeddingProvider(ABC):
    """Abstract interface for embedding providers.

    ``encode`` receives one batch and must return exactly one vector per
    input text, in input order. Providers only report a token total for
    the whole batch.
    """

    model_name: str
    dimension: int
    max_input_tokens: int

    @abstractmethod
    async def encode(self, texts: Sequence[str]) -> EmbeddingResponse:
        """Encode the provided texts into embeddings."""
