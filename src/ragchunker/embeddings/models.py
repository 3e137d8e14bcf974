"""Result records returned by the embedding layer."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass(slots=True)
class EmbeddingResult:
    embedding: List[float]
    token_count: int
    cached: bool


@dataclass(slots=True)
class BatchEmbeddingResult:
    """Order-preserving output of ``embed_many``: ``embeddings[i]`` belongs to ``texts[i]``."""

    embeddings: List[List[float]] = field(default_factory=list)
    token_counts: List[int] = field(default_factory=list)
    total_tokens: int = 0
    cache_hits: int = 0
    cache_misses: int = 0


@dataclass(frozen=True, slots=True)
class BatchFailure:
    """Passed to a retry hook after a provider batch fails."""

    batch_index: int
    attempt: int
    error: Exception
    size: int
