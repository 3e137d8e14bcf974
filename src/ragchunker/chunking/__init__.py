"""Structure-aware, token-bounded document chunking."""
from __future__ import annotations

from .analysis import (
    OverlapQuality,
    StructureQuality,
    analyze_overlap_quality,
    analyze_structure_quality,
    optimize_overlap_size,
    recommend_options,
)
from .constraints import ChunkConstraintEnforcer, overlap_between, pack_sentences
from .models import (
    Chunk,
    ChunkingOptions,
    ChunkingResult,
    ChunkingStats,
    ChunkingStrategy,
    ChunkMetadata,
    ChunkSourceType,
    Heading,
    Section,
)
from .service import ChunkingService, chunk_document, resolve_options
from .strategies import (
    ChunkStrategy,
    FlatChunkStrategy,
    HierarchicalChunkStrategy,
    ParagraphChunkStrategy,
    get_strategy,
)
from .structure import HeadingLexer, SectionBuilder, StructureParser, StructureToken, StructureTokenType
from .tokens import DEFAULT_CHARS_PER_TOKEN, TokenEstimator, estimate_tokens

__all__ = [
    "Chunk",
    "ChunkConstraintEnforcer",
    "ChunkMetadata",
    "ChunkSourceType",
    "ChunkStrategy",
    "ChunkingOptions",
    "ChunkingResult",
    "ChunkingService",
    "ChunkingStats",
    "ChunkingStrategy",
    "DEFAULT_CHARS_PER_TOKEN",
    "FlatChunkStrategy",
    "Heading",
    "HeadingLexer",
    "HierarchicalChunkStrategy",
    "OverlapQuality",
    "ParagraphChunkStrategy",
    "Section",
    "SectionBuilder",
    "StructureParser",
    "StructureQuality",
    "StructureToken",
    "StructureTokenType",
    "TokenEstimator",
    "analyze_overlap_quality",
    "analyze_structure_quality",
    "chunk_document",
    "estimate_tokens",
    "get_strategy",
    "optimize_overlap_size",
    "overlap_between",
    "pack_sentences",
    "recommend_options",
    "resolve_options",
]
