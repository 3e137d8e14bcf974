"""Tests for embedding providers and the configured-provider factory."""
from __future__ import annotations

import asyncio
import sys

import numpy as np
import pytest

from ragchunker.errors import EmbeddingProviderError
from ragchunker.providers import (
    HashEmbeddingProvider,
    SentenceTransformerProvider,
    get_embedding_provider,
    reset_embedding_provider_cache,
)


def test_hash_provider_returns_deterministic_vectors() -> None:
    provider = HashEmbeddingProvider(dimension=5)
    texts = ["hello", "world"]

    first = asyncio.run(provider.encode(texts))
    second = asyncio.run(provider.encode(texts))

    assert len(first.vectors) == len(texts)
    for vector in first.vectors:
        assert len(vector) == 5
        assert all(-1.0 <= value <= 1.0 for value in vector)
    assert first.vectors == second.vectors
    assert first.vectors[0] != first.vectors[1]
    assert first.total_tokens == 4
    assert provider.model_name == "hash-embedding-5"


def test_hash_provider_rejects_invalid_dimension() -> None:
    with pytest.raises(ValueError):
        HashEmbeddingProvider(dimension=0)


class _FakeSentenceTransformer:
    def __init__(self) -> None:
        self.calls = []

    def encode(self, texts, **kwargs):
        self.calls.append((list(texts), kwargs))
        return np.array([[float(len(text)), 1.0, 0.0] for text in texts], dtype=np.float32)

    def get_sentence_embedding_dimension(self) -> int:
        return 3


def test_sentence_transformer_provider_encodes_in_worker_thread() -> None:
    model = _FakeSentenceTransformer()
    provider = SentenceTransformerProvider("fake-model", model=model)

    response = asyncio.run(provider.encode(["abc", "abcdefgh"]))

    assert response.vectors == [[3.0, 1.0, 0.0], [8.0, 1.0, 0.0]]
    assert response.total_tokens == 1 + 2
    assert provider.dimension == 3
    assert model.calls[0][1]["convert_to_numpy"] is True


def test_sentence_transformer_provider_reports_missing_library(monkeypatch) -> None:
    monkeypatch.setitem(sys.modules, "sentence_transformers", None)
    provider = SentenceTransformerProvider("fake-model")

    with pytest.raises(EmbeddingProviderError):
        asyncio.run(provider.encode(["text"]))


def test_factory_builds_hash_provider_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("EMBEDDING_PROVIDER", "hash")
    monkeypatch.setenv("EMBEDDING_DIMENSION", "16")
    monkeypatch.setenv("EMBEDDING_MAX_TOKENS", "512")

    provider = get_embedding_provider()

    assert isinstance(provider, HashEmbeddingProvider)
    assert provider.dimension == 16
    assert provider.max_input_tokens == 512
    assert get_embedding_provider() is provider

    reset_embedding_provider_cache()
    assert get_embedding_provider() is not provider


def test_factory_builds_sentence_transformer_provider_lazily(monkeypatch) -> None:
    monkeypatch.setenv("EMBEDDING_PROVIDER", "sentence-transformers")
    monkeypatch.setenv("EMBEDDING_MODEL", "local/model")
    monkeypatch.setenv("EMBEDDING_DEVICE", "cpu")

    provider = get_embedding_provider()

    assert isinstance(provider, SentenceTransformerProvider)
    assert provider.model_name == "local/model"
    assert provider.device == "cpu"


def test_factory_rejects_unknown_provider(monkeypatch) -> None:
    monkeypatch.setenv("EMBEDDING_PROVIDER", "carrier-pigeon")

    with pytest.raises(EmbeddingProviderError):
        get_embedding_provider()
