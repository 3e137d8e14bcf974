"""Tests for cache-aware batched embedding."""
from __future__ import annotations

import asyncio
import logging

import pytest

from fakes import FailingCacheStore, RecordingProvider, ShortResponseProvider, YieldingProvider
from ragchunker.embeddings.batch import EmbeddingBatchProcessor, distribute_tokens
from ragchunker.embeddings.cache import EmbeddingCache
from ragchunker.errors import (
    EmbeddingBatchError,
    EmbeddingCancelledError,
    EmbeddingInputError,
    EmbeddingProviderError,
)
from ragchunker.providers.base import EmbeddingResponse


def test_repeated_text_in_one_call_counts_as_cache_hit(processor, provider) -> None:
    result = asyncio.run(processor.embed_many(["a", "a", "b"], "tenant-1", True))

    assert result.cache_misses == 2
    assert result.cache_hits == 1
    assert result.embeddings == [provider.vector_for("a"), provider.vector_for("a"), provider.vector_for("b")]
    assert provider.calls == [["a", "b"]]
    assert result.total_tokens == sum(result.token_counts)


def test_embed_one_is_cached_on_second_call(processor, provider) -> None:
    async def runner():
        first = await processor.embed_one("The quick brown fox.", "tenant-1", True)
        second = await processor.embed_one("The quick brown fox.", "tenant-1", True)
        return first, second

    first, second = asyncio.run(runner())

    assert first.cached is False
    assert second.cached is True
    assert first.embedding == second.embedding
    assert first.token_count == second.token_count
    assert len(provider.calls) == 1


def test_cache_is_scoped_by_tenant(processor, provider) -> None:
    async def runner():
        await processor.embed_one("shared text", "tenant-a")
        return await processor.embed_one("shared text", "tenant-b")

    assert asyncio.run(runner()).cached is False
    assert len(provider.calls) == 2


def test_misses_are_sent_in_sequential_batches_with_delay(processor, provider, sleeper) -> None:
    texts = [f"text {index}" for index in range(5)]

    result = asyncio.run(processor.embed_many(texts, "tenant-1"))

    assert [len(call) for call in provider.calls] == [2, 2, 1]
    assert sleeper.delays == [0.1, 0.1]
    assert result.embeddings == [provider.vector_for(text) for text in texts]


def test_results_keep_input_order_across_hits_and_misses(processor, provider) -> None:
    async def runner():
        await processor.embed_many(["beta", "delta"], "tenant-1")
        return await processor.embed_many(["alpha", "beta", "gamma", "delta", "epsilon"], "tenant-1")

    result = asyncio.run(runner())

    expected = ["alpha", "beta", "gamma", "delta", "epsilon"]
    assert result.embeddings == [provider.vector_for(text) for text in expected]
    assert result.cache_hits == 2
    assert result.cache_misses == 3
    assert provider.calls[-2:] == [["alpha", "gamma"], ["epsilon"]]


def test_cache_can_be_bypassed(processor, provider) -> None:
    async def runner():
        bypassed = await processor.embed_many(["a", "a"], "tenant-1", use_cache=False)
        cached = await processor.embed_many(["a"], "tenant-1", use_cache=True)
        return bypassed, cached

    bypassed, cached = asyncio.run(runner())

    assert (bypassed.cache_hits, bypassed.cache_misses) == (0, 2)
    assert provider.calls[0] == ["a", "a"]
    assert cached.cache_misses == 1


def test_provider_token_total_is_distributed_proportionally(cache, sleeper) -> None:
    provider = RecordingProvider(reported_tokens=10)
    processor = EmbeddingBatchProcessor(provider, cache, batch_size=10, sleep=sleeper)

    result = asyncio.run(processor.embed_many(["aaaa", "bbbb", "cccc"], "tenant-1"))

    assert result.token_counts == [4, 3, 3]
    assert result.total_tokens == 10


def test_distribute_tokens_uses_largest_remainder() -> None:
    assert distribute_tokens(8, [1, 3]) == [2, 6]
    assert distribute_tokens(10, [1, 1, 1]) == [4, 3, 3]
    assert distribute_tokens(5, [0, 0]) == [3, 2]
    assert sum(distribute_tokens(101, [7, 13, 29, 2])) == 101
    assert distribute_tokens(3, []) == []


def test_failed_batch_keeps_earlier_results_and_caches_them(cache, sleeper) -> None:
    provider = RecordingProvider(fail_on={2})
    processor = EmbeddingBatchProcessor(provider, cache, batch_size=1, sleep=sleeper)

    with pytest.raises(EmbeddingBatchError) as excinfo:
        asyncio.run(processor.embed_many(["one", "two", "three"], "tenant-1"))

    error = excinfo.value
    assert error.batch_index == 1
    assert error.completed == {0: provider.vector_for("one")}
    assert isinstance(error.__cause__, RuntimeError)

    provider.fail_on.clear()
    retry = asyncio.run(processor.embed_many(["one", "two", "three"], "tenant-1"))

    assert (retry.cache_hits, retry.cache_misses) == (1, 2)
    assert provider.calls[-2:] == [["two"], ["three"]]


def test_retry_hook_can_retry_a_failed_batch(cache, sleeper) -> None:
    provider = RecordingProvider(fail_on={1})
    failures = []

    def hook(failure):
        failures.append(failure)
        return failure.attempt < 2

    processor = EmbeddingBatchProcessor(provider, cache, batch_size=5, sleep=sleeper, retry_hook=hook)

    result = asyncio.run(processor.embed_many(["a", "b"], "tenant-1"))

    assert result.embeddings == [provider.vector_for("a"), provider.vector_for("b")]
    assert [(failure.batch_index, failure.attempt, failure.size) for failure in failures] == [(0, 1, 2)]
    assert len(provider.calls) == 2


def test_max_batch_retries_without_hook(cache, sleeper) -> None:
    provider = RecordingProvider(fail_on={1, 2})

    retrying = EmbeddingBatchProcessor(provider, cache, sleep=sleeper, max_batch_retries=2)
    result = asyncio.run(retrying.embed_many(["a"], "tenant-1"))

    assert result.embeddings == [provider.vector_for("a")]
    assert len(provider.calls) == 3


def test_no_retry_by_default(cache, sleeper) -> None:
    provider = RecordingProvider(fail_on={1})
    processor = EmbeddingBatchProcessor(provider, cache, sleep=sleeper)

    with pytest.raises(EmbeddingBatchError):
        asyncio.run(processor.embed_many(["a"], "tenant-1"))
    assert len(provider.calls) == 1


def test_malformed_provider_response_fails_the_batch(cache, sleeper) -> None:
    processor = EmbeddingBatchProcessor(ShortResponseProvider(), cache, sleep=sleeper)

    with pytest.raises(EmbeddingBatchError) as excinfo:
        asyncio.run(processor.embed_many(["a", "b"], "tenant-1"))

    assert isinstance(excinfo.value.__cause__, EmbeddingProviderError)


class _CancellingProvider(RecordingProvider):
    def __init__(self, event: asyncio.Event) -> None:
        super().__init__()
        self.event = event

    async def encode(self, texts):
        response = await super().encode(texts)
        self.event.set()
        return response


def test_cancellation_is_checked_between_batches(cache, sleeper) -> None:
    async def runner():
        event = asyncio.Event()
        provider = _CancellingProvider(event)
        processor = EmbeddingBatchProcessor(provider, cache, batch_size=2, sleep=sleeper)
        try:
            await processor.embed_many(["a", "b", "c", "d"], "tenant-1", cancel_event=event)
        except EmbeddingCancelledError as error:
            return provider, error
        raise AssertionError("embed_many was not cancelled")

    provider, error = asyncio.run(runner())

    assert provider.calls == [["a", "b"]]
    assert error.completed == {0: provider.vector_for("a"), 1: provider.vector_for("b")}


def test_long_texts_are_truncated_to_the_provider_window(cache, sleeper) -> None:
    provider = RecordingProvider(max_input_tokens=2)
    processor = EmbeddingBatchProcessor(provider, cache, sleep=sleeper)

    asyncio.run(processor.embed_many(["abcdefghijkl"], "tenant-1"))

    assert provider.calls == [["abcdefgh"]]


def test_failing_cache_store_never_breaks_embedding(provider, sleeper, caplog) -> None:
    processor = EmbeddingBatchProcessor(provider, EmbeddingCache(FailingCacheStore()), sleep=sleeper)

    with caplog.at_level(logging.WARNING, logger="ragchunker.telemetry"):
        result = asyncio.run(processor.embed_many(["a", "b"], "tenant-1"))

    assert result.embeddings == [provider.vector_for("a"), provider.vector_for("b")]
    assert result.cache_misses == 2
    assert any(isinstance(record.msg, dict) and record.msg["step"] == "embedding_cache.put" for record in caplog.records)


def test_invalid_inputs_are_rejected(processor) -> None:
    assert asyncio.run(processor.embed_many([], "tenant-1")).embeddings == []
    with pytest.raises(EmbeddingInputError):
        asyncio.run(processor.embed_many("not a list", "tenant-1"))  # type: ignore[arg-type]
    with pytest.raises(EmbeddingInputError):
        asyncio.run(processor.embed_many(["ok", "  "], "tenant-1"))
    with pytest.raises(EmbeddingInputError):
        asyncio.run(processor.embed_many(["ok"], ""))


def test_model_info_and_self_test(processor) -> None:
    info = processor.model_info()

    assert info == {
        "model": "recording-model",
        "dimension": 4,
        "max_input_tokens": 8191,
        "batch_size": 2,
        "inter_batch_delay": 0.1,
    }
    assert asyncio.run(processor.self_test()) is True


def test_self_test_reports_dimension_mismatch(cache, sleeper) -> None:
    class WrongDimensionProvider(RecordingProvider):
        async def encode(self, texts):
            return EmbeddingResponse(vectors=[[0.5] for _ in texts], total_tokens=1)

    processor = EmbeddingBatchProcessor(WrongDimensionProvider(), cache, sleep=sleeper)

    assert asyncio.run(processor.self_test()) is False


def test_concurrent_calls_for_the_same_text_share_one_entry(cache, sleeper) -> None:
    provider = YieldingProvider()
    processor = EmbeddingBatchProcessor(provider, cache, batch_size=2, sleep=sleeper)
    text = "Shared clause that both requests embed."

    async def runner():
        return await asyncio.gather(
            processor.embed_many([text], "tenant-1"),
            processor.embed_many([text], "tenant-1"),
        )

    first, second = asyncio.run(runner())

    assert len(provider.calls) == 2
    assert first.embeddings == second.embeddings == [provider.vector_for(text)]
    assert first.cache_misses == second.cache_misses == 1
    assert len(cache.store) == 1

    later = asyncio.run(processor.embed_one(text, "tenant-1"))
    assert later.cached
    assert later.embedding == provider.vector_for(text)
    assert len(provider.calls) == 2
