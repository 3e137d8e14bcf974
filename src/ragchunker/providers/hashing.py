"""Deterministic embedding provider for tests and offline development."""
from __future__ import annotations

import hashlib
import random
from typing import List, Sequence

from ..chunking.tokens import DEFAULT_ESTIMATOR, TokenEstimator
from .base import EmbeddingProvider, EmbeddingResponse

DEFAULT_DIMENSION = 384
DEFAULT_MAX_INPUT_TOKENS = 8191


class HashEmbeddingProvider(EmbeddingProvider):
    """Return deterministic embedding vectors derived from each text."""

    def __init__(
        self,
        dimension: int = DEFAULT_DIMENSION,
        *,
        max_input_tokens: int = DEFAULT_MAX_INPUT_TOKENS,
        estimator: TokenEstimator | None = None,
    ) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be a positive integer")
        if max_input_tokens <= 0:
            raise ValueError("max_input_tokens must be a positive integer")
        self.dimension = dimension
        self.max_input_tokens = max_input_tokens
        self.model_name = f"hash-embedding-{dimension}"
        self.estimator = estimator or DEFAULT_ESTIMATOR

    async def encode(self, texts: Sequence[str]) -> EmbeddingResponse:
        vectors = [self.vector_for(text) for text in texts]
        total_tokens = sum(self.estimator.estimate(text) for text in texts)
        return EmbeddingResponse(vectors=vectors, total_tokens=total_tokens)

    def vector_for(self, text: str) -> List[float]:
        seed = hashlib.sha256(text.encode("utf-8")).hexdigest()
        rng = random.Random(seed)
        return [(rng.random() * 2.0) - 1.0 for _ in range(self.dimension)]
