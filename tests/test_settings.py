"""Tests for environment-driven configuration."""
from __future__ import annotations

import logging

import pytest

from ragchunker.chunking.models import ChunkingOptions, ChunkingStrategy
from ragchunker.errors import ChunkingInputError
from ragchunker.settings import EmbeddingSettings, load_chunking_options


def test_chunking_defaults_without_environment() -> None:
    assert load_chunking_options() == ChunkingOptions()
    assert ChunkingOptions().strategy is ChunkingStrategy.HIERARCHICAL


def test_chunking_options_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("CHUNK_SIZE", "500")
    monkeypatch.setenv("CHUNK_OVERLAP", "50")
    monkeypatch.setenv("MIN_CHUNK_SIZE", "40")
    monkeypatch.setenv("MAX_CHUNK_SIZE", "900")
    monkeypatch.setenv("CHUNK_PRESERVE_STRUCTURE", "false")
    monkeypatch.setenv("CHUNK_STRATEGY", "Paragraph")

    options = load_chunking_options()

    assert (options.chunk_size, options.chunk_overlap, options.min_chunk_size, options.max_chunk_size) == (
        500,
        50,
        40,
        900,
    )
    assert options.preserve_structure is False
    assert options.strategy is ChunkingStrategy.PARAGRAPH


def test_invalid_values_fall_back_with_warning(monkeypatch, caplog) -> None:
    monkeypatch.setenv("CHUNK_SIZE", "lots")
    monkeypatch.setenv("CHUNK_STRATEGY", "semantic")

    with caplog.at_level(logging.WARNING, logger="ragchunker.settings"):
        options = load_chunking_options()

    assert options.chunk_size == 1000
    assert options.strategy is ChunkingStrategy.HIERARCHICAL
    assert len(caplog.records) == 2


def test_inconsistent_environment_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("CHUNK_SIZE", "50")

    with pytest.raises(ChunkingInputError):
        load_chunking_options()


def test_embedding_settings_defaults() -> None:
    settings = EmbeddingSettings.from_env()

    assert settings.provider == "hash"
    assert settings.batch_size == 100
    assert settings.inter_batch_delay == pytest.approx(0.1)
    assert settings.max_input_tokens == 8191
    assert settings.max_batch_retries == 0
    assert settings.cache_max_entries == 10_000
    assert settings.cache_ttl_days == 30
    assert settings.dimension is None


def test_embedding_settings_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("EMBEDDING_PROVIDER", " Sentence-Transformers ")
    monkeypatch.setenv("EMBEDDING_BATCH_SIZE", "25")
    monkeypatch.setenv("EMBEDDING_BATCH_DELAY_MS", "250")
    monkeypatch.setenv("EMBEDDING_BATCH_RETRIES", "3")
    monkeypatch.setenv("EMBEDDING_DIMENSION", "oops")

    settings = EmbeddingSettings.from_env()

    assert settings.provider == "sentence-transformers"
    assert settings.batch_size == 25
    assert settings.inter_batch_delay == pytest.approx(0.25)
    assert settings.max_batch_retries == 3
    assert settings.dimension is None
