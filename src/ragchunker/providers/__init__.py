"""Embedding provider implementations and the configured-provider factory."""
from __future__ import annotations

from functools import lru_cache

from ..errors import EmbeddingProviderError
from ..settings import EmbeddingSettings
from .base import EmbeddingProvider, EmbeddingResponse
from .hashing import HashEmbeddingProvider
from .sentence_transformers import SentenceTransformerProvider

__all__ = [
    "EmbeddingProvider",
    "EmbeddingResponse",
    "HashEmbeddingProvider",
    "SentenceTransformerProvider",
    "build_embedding_provider",
    "get_embedding_provider",
    "reset_embedding_provider_cache",
]


def build_embedding_provider(settings: EmbeddingSettings) -> EmbeddingProvider:
    """Instantiate the provider named by ``settings.provider``."""

    if settings.provider in {"hash", "mock"}:
        return HashEmbeddingProvider(
            settings.dimension or 384,
            max_input_tokens=settings.max_input_tokens,
        )
    if settings.provider in {"sentence-transformers", "sentence_transformers"}:
        return SentenceTransformerProvider(
            settings.model_name,
            device=settings.device,
            max_input_tokens=settings.max_input_tokens,
        )
    raise EmbeddingProviderError(f"Unknown embedding provider: {settings.provider}")


@lru_cache()
def get_embedding_provider() -> EmbeddingProvider:
    """Return a cached provider configured from the environment."""

    return build_embedding_provider(EmbeddingSettings.from_env())


def reset_embedding_provider_cache() -> None:
    """Clear the cached provider instance (primarily for testing)."""

    get_embedding_provider.cache_clear()  # type: ignore[attr-defined]
