"""Test configuration: environment isolation and shared fixtures."""
from __future__ import annotations

import pytest

from fakes import FakeClock, RecordingProvider, SleepRecorder
from ragchunker.embeddings.batch import EmbeddingBatchProcessor
from ragchunker.embeddings.cache import EmbeddingCache, InMemoryCacheStore
from ragchunker.providers import reset_embedding_provider_cache

ENV_KEYS = (
    "CHUNK_SIZE",
    "CHUNK_OVERLAP",
    "MIN_CHUNK_SIZE",
    "MAX_CHUNK_SIZE",
    "CHUNK_PRESERVE_STRUCTURE",
    "CHUNK_STRATEGY",
    "EMBEDDING_PROVIDER",
    "EMBEDDING_MODEL",
    "EMBEDDING_DEVICE",
    "EMBEDDING_DIMENSION",
    "EMBEDDING_BATCH_SIZE",
    "EMBEDDING_BATCH_DELAY_MS",
    "EMBEDDING_MAX_TOKENS",
    "EMBEDDING_BATCH_RETRIES",
    "EMBEDDING_CACHE_MAX_ENTRIES",
    "EMBEDDING_CACHE_TTL_DAYS",
)


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    reset_embedding_provider_cache()
    yield
    reset_embedding_provider_cache()


@pytest.fixture
def provider() -> RecordingProvider:
    return RecordingProvider()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def cache(clock) -> EmbeddingCache:
    return EmbeddingCache(InMemoryCacheStore(max_entries=100, clock=clock), clock=clock)


@pytest.fixture
def processor(provider, cache, sleeper) -> EmbeddingBatchProcessor:
    return EmbeddingBatchProcessor(provider, cache, batch_size=2, inter_batch_delay=0.1, sleep=sleeper)
