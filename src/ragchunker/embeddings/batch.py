"""Batched, cache-aware embedding of text lists."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import numpy as np

from ..chunking.tokens import DEFAULT_ESTIMATOR, TokenEstimator
from ..errors import (
    EmbeddingBatchError,
    EmbeddingCancelledError,
    EmbeddingError,
    EmbeddingInputError,
    EmbeddingProviderError,
)
from ..providers import build_embedding_provider
from ..providers.base import EmbeddingProvider, EmbeddingResponse
from ..settings import EmbeddingSettings
from ..telemetry import emit_embeddings_event, log_event
from .cache import EmbeddingCache, InMemoryCacheStore, content_hash
from .models import BatchEmbeddingResult, BatchFailure, EmbeddingResult

LOGGER = logging.getLogger(__name__)

RetryHook = Callable[[BatchFailure], bool]
Sleep = Callable[[float], Awaitable[Any]]

SELF_TEST_TEXT = "This is a test embedding request."


def distribute_tokens(total: int, weights: Sequence[int]) -> List[int]:
    """Split ``total`` across ``weights`` proportionally; the parts sum to ``total``.

    Uses the largest-remainder method, ties going to the earlier position.
    """

    if not weights:
        return []
    total = max(0, int(total))
    weights = [max(0, int(weight)) for weight in weights]
    weight_sum = sum(weights)
    if weight_sum == 0:
        weights = [1] * len(weights)
        weight_sum = len(weights)

    shares = [divmod(total * weight, weight_sum) for weight in weights]
    parts = [quotient for quotient, _ in shares]
    leftover = total - sum(parts)
    by_remainder = sorted(range(len(weights)), key=lambda index: (-shares[index][1], index))
    for index in by_remainder[:leftover]:
        parts[index] += 1
    return parts


@dataclass(slots=True)
class _PendingText:
    digest: str
    text: str
    positions: List[int] = field(default_factory=list)


class EmbeddingBatchProcessor:
    """Resolve embeddings through the cache and send misses to the provider in batches.

    Batches of one call run sequentially with ``inter_batch_delay`` seconds
    between them. A batch that still fails after its retries raises
    :class:`EmbeddingBatchError` carrying every vector resolved so far;
    those vectors are already cached, so a retry only pays for the rest.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        cache: Optional[EmbeddingCache] = None,
        *,
        batch_size: int = 100,
        inter_batch_delay: float = 0.1,
        max_input_tokens: Optional[int] = None,
        estimator: Optional[TokenEstimator] = None,
        max_batch_retries: int = 0,
        retry_hook: Optional[RetryHook] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be a positive integer")
        if inter_batch_delay < 0:
            raise ValueError("inter_batch_delay must not be negative")
        if max_batch_retries < 0:
            raise ValueError("max_batch_retries must not be negative")
        self.provider = provider
        self.cache = cache if cache is not None else EmbeddingCache()
        self.batch_size = batch_size
        self.inter_batch_delay = inter_batch_delay
        self.max_input_tokens = max_input_tokens or provider.max_input_tokens
        self.estimator = estimator or DEFAULT_ESTIMATOR
        self.max_batch_retries = max_batch_retries
        self.retry_hook = retry_hook
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Optional[EmbeddingSettings] = None,
        *,
        provider: Optional[EmbeddingProvider] = None,
        cache: Optional[EmbeddingCache] = None,
    ) -> "EmbeddingBatchProcessor":
        settings = settings or EmbeddingSettings.from_env()
        if cache is None:
            ttl = timedelta(days=settings.cache_ttl_days) if settings.cache_ttl_days else None
            cache = EmbeddingCache(InMemoryCacheStore(settings.cache_max_entries, ttl))
        return cls(
            provider or build_embedding_provider(settings),
            cache,
            batch_size=settings.batch_size,
            inter_batch_delay=settings.inter_batch_delay,
            max_input_tokens=settings.max_input_tokens,
            max_batch_retries=settings.max_batch_retries,
        )

    @property
    def model(self) -> str:
        return self.provider.model_name

    @property
    def max_input_chars(self) -> int:
        return self.estimator.max_chars(self.max_input_tokens)

    async def embed_one(self, text: str, tenant_id: str, use_cache: bool = True) -> EmbeddingResult:
        result = await self.embed_many([text], tenant_id, use_cache)
        return EmbeddingResult(
            embedding=result.embeddings[0],
            token_count=result.token_counts[0],
            cached=result.cache_hits > 0,
        )

    async def embed_many(
        self,
        texts: Sequence[str],
        tenant_id: str,
        use_cache: bool = True,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchEmbeddingResult:
        """Embed ``texts`` for ``tenant_id``; ``embeddings[i]`` belongs to ``texts[i]``."""

        self._validate(texts, tenant_id)
        if not texts:
            return BatchEmbeddingResult()

        started = time.perf_counter()
        model = self.model
        embeddings: List[Optional[List[float]]] = [None] * len(texts)
        token_counts = [0] * len(texts)
        cache_hits = 0
        pending: List[_PendingText] = []

        try:
            pending_by_digest: Dict[str, _PendingText] = {}
            resolved: Dict[str, int] = {}
            for position, original in enumerate(texts):
                text = self._truncate(original, position)
                digest = content_hash(text, model)
                if use_cache:
                    if digest in resolved:
                        source = resolved[digest]
                        embeddings[position] = list(embeddings[source])  # type: ignore[arg-type]
                        token_counts[position] = token_counts[source]
                        cache_hits += 1
                        continue
                    if digest in pending_by_digest:
                        pending_by_digest[digest].positions.append(position)
                        cache_hits += 1
                        continue
                    entry = await self.cache.get(tenant_id, digest, model)
                    if entry is not None:
                        embeddings[position] = entry.embedding.tolist()
                        token_counts[position] = entry.token_count
                        resolved[digest] = position
                        cache_hits += 1
                        continue
                item = _PendingText(digest=digest, text=text, positions=[position])
                pending.append(item)
                if use_cache:
                    pending_by_digest[digest] = item

            for batch_index, start in enumerate(range(0, len(pending), self.batch_size)):
                if batch_index > 0 and self.inter_batch_delay > 0:
                    await self._sleep(self.inter_batch_delay)
                if cancel_event is not None and cancel_event.is_set():
                    raise EmbeddingCancelledError(
                        f"Embedding cancelled before batch {batch_index}",
                        completed=_completed(embeddings),
                    )
                batch = pending[start : start + self.batch_size]
                await self._run_batch(batch_index, batch, tenant_id, use_cache, embeddings, token_counts)
        except EmbeddingError as exc:
            self._emit(tenant_id, len(texts), cache_hits, len(pending), token_counts, started, error=exc)
            raise

        result = BatchEmbeddingResult(
            embeddings=[vector for vector in embeddings if vector is not None],
            token_counts=token_counts,
            total_tokens=sum(token_counts),
            cache_hits=cache_hits,
            cache_misses=len(pending),
        )
        if len(result.embeddings) != len(texts):
            raise EmbeddingProviderError("Embedding results are incomplete")
        self._emit(tenant_id, len(texts), cache_hits, len(pending), token_counts, started)
        return result

    async def _run_batch(
        self,
        batch_index: int,
        batch: List[_PendingText],
        tenant_id: str,
        use_cache: bool,
        embeddings: List[Optional[List[float]]],
        token_counts: List[int],
    ) -> None:
        texts = [item.text for item in batch]
        try:
            response = await self._encode_with_retries(batch_index, texts)
        except Exception as exc:
            raise EmbeddingBatchError(
                f"Embedding batch {batch_index} failed: {exc}",
                batch_index=batch_index,
                completed=_completed(embeddings),
                cause=exc,
            ) from exc

        counts = distribute_tokens(response.total_tokens, [self.estimator.estimate(text) for text in texts])
        for item, vector, count in zip(batch, response.vectors, counts):
            rounded = np.asarray(vector, dtype=np.float32)
            values = rounded.tolist()
            for position in item.positions:
                embeddings[position] = list(values)
                token_counts[position] = count
            if use_cache:
                await self.cache.put(tenant_id, item.digest, self.model, rounded, count)
        LOGGER.debug("Embedded batch %s with %s texts", batch_index, len(batch))

    async def _encode_with_retries(self, batch_index: int, texts: List[str]) -> EmbeddingResponse:
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self.provider.encode(texts)
                _check_response(response, len(texts))
                return response
            except Exception as exc:
                failure = BatchFailure(batch_index=batch_index, attempt=attempt, error=exc, size=len(texts))
                if self.retry_hook is not None:
                    retry = bool(self.retry_hook(failure))
                else:
                    retry = attempt <= self.max_batch_retries
                LOGGER.warning(
                    "Embedding batch %s failed on attempt %s (%s); %s",
                    batch_index,
                    attempt,
                    exc,
                    "retrying" if retry else "giving up",
                )
                if not retry:
                    raise
                if self.inter_batch_delay > 0:
                    await self._sleep(self.inter_batch_delay)

    def _validate(self, texts: Sequence[str], tenant_id: str) -> None:
        if isinstance(texts, str) or not isinstance(texts, Sequence):
            raise EmbeddingInputError("texts must be a sequence of strings")
        if not isinstance(tenant_id, str) or not tenant_id.strip():
            raise EmbeddingInputError("tenant_id must be a non-empty string")
        for position, text in enumerate(texts):
            if not isinstance(text, str):
                raise EmbeddingInputError(f"Text at position {position} is {type(text).__name__}, not str")
            if not text.strip():
                raise EmbeddingInputError(f"Text at position {position} is empty")

    def _truncate(self, text: str, position: int) -> str:
        limit = self.max_input_chars
        if len(text) <= limit:
            return text
        LOGGER.debug("Truncated text at position %s from %s to %s characters", position, len(text), limit)
        return text[:limit]

    def _emit(
        self,
        tenant_id: str,
        count: int,
        cache_hits: int,
        cache_misses: int,
        token_counts: Sequence[int],
        started: float,
        error: Exception | None = None,
    ) -> None:
        emit_embeddings_event(
            model=self.model,
            tenant_id=tenant_id,
            count=count,
            cache_hits=cache_hits,
            cache_misses=cache_misses,
            total_tokens=sum(token_counts),
            duration_ms=(time.perf_counter() - started) * 1000.0,
            errors=[str(error)] if error is not None else None,
        )

    def model_info(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "dimension": self.provider.dimension,
            "max_input_tokens": self.max_input_tokens,
            "batch_size": self.batch_size,
            "inter_batch_delay": self.inter_batch_delay,
        }

    async def self_test(self) -> bool:
        """Embed a sample text without the cache and check the vector dimension."""

        try:
            result = await self.embed_one(SELF_TEST_TEXT, "self-test", use_cache=False)
            dimension = self.provider.dimension
        except EmbeddingError as exc:
            log_event(LOGGER, "embeddings.self_test", level="error", exc=exc, details={"model": self.model})
            return False
        ok = len(result.embedding) == dimension
        log_event(
            LOGGER,
            "embeddings.self_test",
            level="info" if ok else "error",
            details={"model": self.model, "dimension": len(result.embedding), "expected": dimension},
        )
        return ok


def _check_response(response: EmbeddingResponse, expected: int) -> None:
    if len(response.vectors) != expected:
        raise EmbeddingProviderError(f"Provider returned {len(response.vectors)} vectors for {expected} texts")
    for vector in response.vectors:
        if len(vector) == 0:
            raise EmbeddingProviderError("Provider returned an empty vector")


def _completed(embeddings: Sequence[Optional[List[float]]]) -> Dict[int, List[float]]:
    return {position: list(vector) for position, vector in enumerate(embeddings) if vector is not None}
