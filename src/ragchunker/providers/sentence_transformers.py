"""Embedding provider backed by Sentence Transformers."""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, List, Sequence

from ..chunking.tokens import DEFAULT_ESTIMATOR, TokenEstimator
from ..errors import EmbeddingProviderError
from .base import EmbeddingProvider, EmbeddingResponse

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "sentence-transformers/all-MiniLM-L6-v2"


class SentenceTransformerProvider(EmbeddingProvider):
    """Run a SentenceTransformer model in a worker thread.

    The model is loaded on first use. Token totals are estimated with the
    shared :class:`TokenEstimator` because the library does not report them.
    """

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL_NAME,
        *,
        device: str | None = None,
        max_input_tokens: int = 8191,
        estimator: TokenEstimator | None = None,
        model: Any | None = None,
    ) -> None:
        self.model_name = model_name
        self.device = device
        self.max_input_tokens = max_input_tokens
        self.estimator = estimator or DEFAULT_ESTIMATOR
        self._model = model
        self._lock = threading.Lock()

    def _load(self) -> Any:
        with self._lock:
            if self._model is not None:
                return self._model
            try:
                from sentence_transformers import SentenceTransformer  # type: ignore import-not-found
            except ImportError as error:
                raise EmbeddingProviderError(
                    "sentence-transformers is not installed; install the 'embeddings' extra",
                    cause=error,
                ) from error
            try:
                self._model = SentenceTransformer(self.model_name, device=self.device)
            except Exception as error:
                raise EmbeddingProviderError(
                    f"Failed to initialize sentence-transformers model '{self.model_name}': {error}",
                    cause=error,
                ) from error
            LOGGER.info("Loaded sentence-transformers model %s on %s", self.model_name, self.device or "default device")
            return self._model

    @property
    def dimension(self) -> int:  # type: ignore[override]
        return int(self._load().get_sentence_embedding_dimension())

    def _encode_sync(self, texts: List[str]) -> List[List[float]]:
        embeddings = self._load().encode(
            texts,
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=False,
        )
        return embeddings.tolist()

    async def encode(self, texts: Sequence[str]) -> EmbeddingResponse:
        batch = [str(text) for text in texts]
        if not batch:
            return EmbeddingResponse()
        vectors = await asyncio.to_thread(self._encode_sync, batch)
        total_tokens = sum(self.estimator.estimate(text) for text in batch)
        return EmbeddingResponse(vectors=vectors, total_tokens=total_tokens)
