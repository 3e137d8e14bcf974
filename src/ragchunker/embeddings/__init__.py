"""Cache-aware batched embedding."""
from __future__ import annotations

from .batch import EmbeddingBatchProcessor, distribute_tokens
from .cache import (
    CacheStats,
    CacheStore,
    EmbeddingCache,
    EmbeddingCacheEntry,
    InMemoryCacheStore,
    content_hash,
)
from .models import BatchEmbeddingResult, BatchFailure, EmbeddingResult

__all__ = [
    "BatchEmbeddingResult",
    "BatchFailure",
    "CacheStats",
    "CacheStore",
    "EmbeddingBatchProcessor",
    "EmbeddingCache",
    "EmbeddingCacheEntry",
    "EmbeddingResult",
    "InMemoryCacheStore",
    "content_hash",
    "distribute_tokens",
]
