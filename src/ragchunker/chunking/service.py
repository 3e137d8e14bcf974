"""Document-level chunking entry point."""
from __future__ import annotations

import logging
import time
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from ..errors import ChunkingError, ChunkingInputError
from ..telemetry import emit_chunking_event
from .constraints import ChunkConstraintEnforcer
from .models import ChunkingOptions, ChunkingResult, ChunkingStats
from .strategies import get_strategy
from .structure import StructureParser
from .tokens import DEFAULT_ESTIMATOR, TokenEstimator

LOGGER = logging.getLogger(__name__)

OptionsLike = Union[ChunkingOptions, Mapping[str, Any], None]


def resolve_options(options: OptionsLike = None, defaults: Optional[ChunkingOptions] = None) -> ChunkingOptions:
    """Return validated options, layering a mapping of overrides on ``defaults``."""

    if isinstance(options, ChunkingOptions):
        return options
    if defaults is None:
        from ..settings import load_chunking_options

        defaults = load_chunking_options()
    if options is None:
        return defaults
    try:
        return ChunkingOptions.model_validate({**defaults.model_dump(), **dict(options)})
    except ValidationError as exc:
        raise ChunkingInputError(f"Invalid chunking options: {exc}", cause=exc) from exc


class ChunkingService:
    """Parse structure, run the selected strategy and enforce size bounds."""

    def __init__(
        self,
        estimator: TokenEstimator | None = None,
        parser: StructureParser | None = None,
        default_options: ChunkingOptions | None = None,
    ) -> None:
        self.estimator = estimator or DEFAULT_ESTIMATOR
        self.parser = parser or StructureParser()
        self.default_options = default_options

    def chunk_document(self, text: str, options: OptionsLike = None) -> ChunkingResult:
        if not isinstance(text, str):
            raise ChunkingInputError(f"Document text must be a string, got {type(text).__name__}")
        if not text.strip():
            raise ChunkingInputError("Document text is empty")
        resolved = resolve_options(options, self.default_options)

        started = time.perf_counter()
        try:
            enforcer = ChunkConstraintEnforcer(resolved, self.estimator)
            strategy = get_strategy(resolved, self.estimator, enforcer, self.parser)
            candidates = strategy.chunk(text)
            chunks = enforcer.enforce(candidates)
        except ChunkingError as exc:
            self._emit_failure(resolved, text, started, exc)
            raise
        except Exception as exc:
            self._emit_failure(resolved, text, started, exc)
            raise ChunkingError(f"Failed to chunk document: {exc}", cause=exc) from exc

        if not chunks:
            raise ChunkingError("Chunking produced no chunks for non-empty text")

        duration_ms = (time.perf_counter() - started) * 1000.0
        total_tokens = sum(chunk.token_count for chunk in chunks)
        stats = ChunkingStats(
            total_chunks=len(chunks),
            total_tokens=total_tokens,
            average_chunk_size=total_tokens / len(chunks),
            strategy=resolved.strategy.value,
            processing_time_ms=duration_ms,
        )
        emit_chunking_event(
            strategy=stats.strategy,
            text_length=len(text),
            total_chunks=stats.total_chunks,
            total_tokens=stats.total_tokens,
            duration_ms=duration_ms,
        )
        LOGGER.info("Generated %s chunks (%s tokens) with %s strategy", len(chunks), total_tokens, stats.strategy)
        return ChunkingResult(chunks=chunks, metadata=stats)

    @staticmethod
    def _emit_failure(options: ChunkingOptions, text: str, started: float, error: Exception) -> None:
        emit_chunking_event(
            strategy=options.strategy.value,
            text_length=len(text),
            total_chunks=0,
            total_tokens=0,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            error=error,
        )


def chunk_document(text: str, options: OptionsLike = None) -> ChunkingResult:
    """Chunk ``text`` with a default :class:`ChunkingService`."""

    return ChunkingService().chunk_document(text, options)
