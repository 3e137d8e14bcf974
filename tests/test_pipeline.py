"""Tests for the chunk-and-embed pipelines."""
from __future__ import annotations

import asyncio

import pytest

from fakes import RecordingProvider
from ragchunker.chunking import ChunkingOptions, chunk_document
from ragchunker.embeddings.batch import EmbeddingBatchProcessor
from ragchunker.errors import EmbeddingBatchError
from ragchunker.pipeline import ChunkEmbeddingPipeline, IngestPipeline
from ragchunker.providers import HashEmbeddingProvider

DOCUMENT = (
    "# Overview\r\n\r\n\r\nThis   agreement covers the delivery of services.\r\n\r\n"
    "# Payment\r\n\r\nInvoices are due within thirty days of receipt."
)


def test_ingest_normalises_chunks_and_embeds(processor, provider) -> None:
    pipeline = IngestPipeline(embedder=ChunkEmbeddingPipeline(processor))

    result = asyncio.run(pipeline.ingest(DOCUMENT, "tenant-1", document_id="doc-1"))

    assert result.document_id == "doc-1"
    assert "\r" not in result.text
    assert "This agreement covers" in result.text
    assert result.chunks
    assert result.chunking.total_chunks == len(result.chunks)
    assert result.embeddings is not None
    assert result.embeddings.cache_misses == len(result.chunks)
    for chunk in result.chunks:
        assert chunk.embedding == provider.vector_for(chunk.content)
        assert result.text[chunk.start_offset : chunk.end_offset].strip()


def test_ingest_without_embedding_leaves_vectors_empty(processor, provider) -> None:
    pipeline = IngestPipeline(embedder=ChunkEmbeddingPipeline(processor))

    result = asyncio.run(pipeline.ingest(DOCUMENT, "tenant-1", embed=False))

    assert result.embeddings is None
    assert all(chunk.embedding is None for chunk in result.chunks)
    assert provider.calls == []


def test_ingest_accepts_option_overrides(processor) -> None:
    pipeline = IngestPipeline(embedder=ChunkEmbeddingPipeline(processor))

    result = asyncio.run(pipeline.ingest(DOCUMENT, "tenant-1", {"strategy": "flat"}, embed=False))

    assert result.chunking.strategy == "flat"


def test_run_attaches_vectors_in_chunk_order(processor, provider) -> None:
    text = "\n\n".join(f"# Part {index}\n\nContent for part {index}." for index in range(5))
    chunks = chunk_document(text, ChunkingOptions(min_chunk_size=0)).chunks

    result = asyncio.run(ChunkEmbeddingPipeline(processor).run(chunks, "tenant-1"))

    assert len(chunks) == 5
    assert [chunk.embedding for chunk in chunks] == result.embeddings
    assert [chunk.embedding for chunk in chunks] == [provider.vector_for(chunk.content) for chunk in chunks]


def test_failed_batch_leaves_chunks_untouched(cache, sleeper) -> None:
    provider = RecordingProvider(fail_on={2})
    processor = EmbeddingBatchProcessor(provider, cache, batch_size=2, sleep=sleeper)
    text = "\n\n".join(f"# Part {index}\n\nContent for part {index}." for index in range(4))
    chunks = chunk_document(text, ChunkingOptions(min_chunk_size=0)).chunks

    with pytest.raises(EmbeddingBatchError):
        asyncio.run(ChunkEmbeddingPipeline(processor).run(chunks, "tenant-1"))

    assert all(chunk.embedding is None for chunk in chunks)


def test_default_embedder_uses_configured_provider(monkeypatch) -> None:
    monkeypatch.setenv("EMBEDDING_DIMENSION", "8")
    monkeypatch.setenv("EMBEDDING_BATCH_DELAY_MS", "0")

    result = asyncio.run(IngestPipeline().ingest("Plain text without headings.", "tenant-1"))

    assert isinstance(IngestPipeline().embedder.processor.provider, HashEmbeddingProvider)
    assert [len(chunk.embedding) for chunk in result.chunks] == [8]
