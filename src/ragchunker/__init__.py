"""Structure-aware document chunking with cached, batched embeddings."""
from __future__ import annotations

from .chunking import (
    Chunk,
    ChunkingOptions,
    ChunkingResult,
    ChunkingService,
    ChunkingStrategy,
    analyze_structure_quality,
    chunk_document,
    recommend_options,
)
from .embeddings import EmbeddingBatchProcessor, EmbeddingCache, InMemoryCacheStore
from .pipeline import ChunkEmbeddingPipeline, IngestPipeline
from .providers import EmbeddingProvider, HashEmbeddingProvider, get_embedding_provider

__all__ = [
    "Chunk",
    "ChunkEmbeddingPipeline",
    "ChunkingOptions",
    "ChunkingResult",
    "ChunkingService",
    "ChunkingStrategy",
    "EmbeddingBatchProcessor",
    "EmbeddingCache",
    "EmbeddingProvider",
    "HashEmbeddingProvider",
    "InMemoryCacheStore",
    "IngestPipeline",
    "analyze_structure_quality",
    "chunk_document",
    "get_embedding_provider",
    "recommend_options",
]

__version__ = "0.1.0"
