"""Environment-driven configuration for chunking and embedding."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from .chunking.models import ChunkingOptions, ChunkingStrategy
from .errors import ChunkingInputError

LOGGER = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_HASH_DIMENSION = 384


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _optional_int_from_env(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; ignoring it", name, value)
        return None


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _strategy_from_env(name: str, default: ChunkingStrategy) -> ChunkingStrategy:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return ChunkingStrategy(value.strip().lower())
    except ValueError:
        LOGGER.warning("Unknown chunking strategy for %s: %s; using %s", name, value, default.value)
        return default


def load_chunking_options() -> ChunkingOptions:
    """Build :class:`ChunkingOptions` from ``CHUNK_*`` environment variables."""

    defaults = ChunkingOptions()
    values = {
        "chunk_size": _int_from_env("CHUNK_SIZE", defaults.chunk_size),
        "chunk_overlap": _int_from_env("CHUNK_OVERLAP", defaults.chunk_overlap),
        "min_chunk_size": _int_from_env("MIN_CHUNK_SIZE", defaults.min_chunk_size),
        "max_chunk_size": _int_from_env("MAX_CHUNK_SIZE", defaults.max_chunk_size),
        "preserve_structure": _env_flag("CHUNK_PRESERVE_STRUCTURE", defaults.preserve_structure),
        "strategy": _strategy_from_env("CHUNK_STRATEGY", defaults.strategy),
    }
    try:
        return ChunkingOptions(**values)
    except ValidationError as exc:
        raise ChunkingInputError(f"Invalid chunking configuration in environment: {exc}", cause=exc) from exc


@dataclass(slots=True)
class EmbeddingSettings:
    """Provider, batching and cache parameters for the embedding layer."""

    provider: str = "hash"
    model_name: str = DEFAULT_EMBEDDING_MODEL
    device: Optional[str] = None
    dimension: Optional[int] = None
    batch_size: int = 100
    batch_delay_ms: int = 100
    max_input_tokens: int = 8191
    max_batch_retries: int = 0
    cache_max_entries: int = 10_000
    cache_ttl_days: int = 30

    @property
    def inter_batch_delay(self) -> float:
        return self.batch_delay_ms / 1000.0

    @classmethod
    def from_env(cls) -> "EmbeddingSettings":
        provider = (os.getenv("EMBEDDING_PROVIDER") or "hash").strip().lower()
        device = (os.getenv("EMBEDDING_DEVICE") or "").strip() or None
        return cls(
            provider=provider,
            model_name=(os.getenv("EMBEDDING_MODEL") or "").strip() or DEFAULT_EMBEDDING_MODEL,
            device=device,
            dimension=_optional_int_from_env("EMBEDDING_DIMENSION"),
            batch_size=max(1, _int_from_env("EMBEDDING_BATCH_SIZE", 100)),
            batch_delay_ms=max(0, _int_from_env("EMBEDDING_BATCH_DELAY_MS", 100)),
            max_input_tokens=max(1, _int_from_env("EMBEDDING_MAX_TOKENS", 8191)),
            max_batch_retries=max(0, _int_from_env("EMBEDDING_BATCH_RETRIES", 0)),
            cache_max_entries=max(1, _int_from_env("EMBEDDING_CACHE_MAX_ENTRIES", 10_000)),
            cache_ttl_days=max(0, _int_from_env("EMBEDDING_CACHE_TTL_DAYS", 30)),
        )
