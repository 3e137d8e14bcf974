"""Pipelines that connect chunking to the embedding layer."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .chunking.models import Chunk, ChunkingStats
from .chunking.service import ChunkingService, OptionsLike
from .chunking.text import normalize_text
from .embeddings.batch import EmbeddingBatchProcessor
from .embeddings.models import BatchEmbeddingResult
from .telemetry import traced_duration

LOGGER = logging.getLogger(__name__)


class ChunkEmbeddingPipeline:
    """Attach embedding vectors to already chunked text."""

    def __init__(self, processor: Optional[EmbeddingBatchProcessor] = None) -> None:
        self.processor = processor or EmbeddingBatchProcessor.from_settings()

    async def run(
        self,
        chunks: Sequence[Chunk],
        tenant_id: str,
        use_cache: bool = True,
    ) -> BatchEmbeddingResult:
        """Embed ``chunks`` in order and set each ``chunk.embedding``.

        A failed batch leaves every chunk untouched; the caller can retry
        with the same chunks and the cache absorbs the batches that worked.
        """

        if not chunks:
            return BatchEmbeddingResult()
        result = await self.processor.embed_many([chunk.content for chunk in chunks], tenant_id, use_cache)
        for chunk, vector in zip(chunks, result.embeddings):
            chunk.embedding = vector
        return result


@dataclass(slots=True)
class IngestResult:
    """Structured result returned from :meth:`IngestPipeline.ingest`."""

    document_id: str
    text: str
    chunks: List[Chunk]
    chunking: ChunkingStats
    embeddings: Optional[BatchEmbeddingResult] = None
    warnings: List[str] = field(default_factory=list)


class IngestPipeline:
    """Normalise extracted text, chunk it and optionally embed the chunks.

    Chunk offsets refer to the normalised text returned in the result.
    """

    def __init__(
        self,
        chunker: Optional[ChunkingService] = None,
        embedder: Optional[ChunkEmbeddingPipeline] = None,
    ) -> None:
        self.chunker = chunker or ChunkingService()
        self._embedder = embedder

    @property
    def embedder(self) -> ChunkEmbeddingPipeline:
        if self._embedder is None:
            self._embedder = ChunkEmbeddingPipeline()
        return self._embedder

    async def ingest(
        self,
        text: str,
        tenant_id: str,
        options: OptionsLike = None,
        embed: bool = True,
        *,
        document_id: Optional[str] = None,
    ) -> IngestResult:
        document_id = document_id or str(uuid.uuid4())
        normalized = normalize_text(text) if isinstance(text, str) else text

        with traced_duration("ingest.chunking", logger=LOGGER, document_id=document_id):
            chunked = self.chunker.chunk_document(normalized, options)
        LOGGER.info("Generated %s chunks for document %s", len(chunked.chunks), document_id)

        result = IngestResult(
            document_id=document_id,
            text=normalized,
            chunks=chunked.chunks,
            chunking=chunked.metadata,
        )
        result.warnings.extend(
            f"chunk {chunk.chunk_index} exceeds max_chunk_size" for chunk in chunked.chunks if chunk.metadata.is_oversized
        )
        if len(chunked.chunks) > 1:
            result.warnings.extend(
                f"chunk {chunk.chunk_index} is below min_chunk_size"
                for chunk in chunked.chunks
                if chunk.metadata.is_undersized
            )
        if embed:
            with traced_duration("ingest.embedding", logger=LOGGER, document_id=document_id, tenant_id=tenant_id):
                result.embeddings = await self.embedder.run(result.chunks, tenant_id)
        return result
