"""Content analysis helpers used to pick chunking options for a document."""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import List, Sequence

from .models import Chunk, ChunkingOptions, ChunkingStrategy
from .structure import StructureParser
from .text import sentence_spans
from .tokens import DEFAULT_ESTIMATOR, TokenEstimator

_STRUCTURE_RE = re.compile(r"^#{1,6}\s+|\n\s*\d+\.\s+|\n\s*[-*+]\s+", re.MULTILINE)
_LIST_RE = re.compile(r"^\s*(?:[-*+]|\d+\.)\s+", re.MULTILINE)
_TABLE_RE = re.compile(r"\|.*\|")
_CODE_RE = re.compile(r"```|`[^`]+`")

SMALL_DOCUMENT_CHARS = 5_000
LARGE_DOCUMENT_CHARS = 50_000
LONG_SENTENCE_CHARS = 100
SHORT_SENTENCE_CHARS = 50


@dataclass(frozen=True, slots=True)
class ContentProfile:
    has_structure: bool
    has_headings: bool
    has_lists: bool
    has_tables: bool
    has_code: bool


@dataclass(frozen=True, slots=True)
class StructureQuality:
    has_headings: bool
    heading_levels: List[int]
    average_section_length: float
    structure_score: float


def profile_content(text: str, parser: StructureParser | None = None) -> ContentProfile:
    headings = (parser or StructureParser()).headings(text)
    return ContentProfile(
        has_structure=bool(headings) or bool(_STRUCTURE_RE.search(text)),
        has_headings=bool(headings),
        has_lists=bool(_LIST_RE.search(text)),
        has_tables=bool(_TABLE_RE.search(text)),
        has_code=bool(_CODE_RE.search(text)),
    )


def recommend_options(text: str, document_type: str) -> ChunkingOptions:
    """Suggest chunking options from the document type and its length."""

    profile = profile_content(text)
    strategy = ChunkingStrategy.PARAGRAPH
    preserve_structure = True

    kind = document_type.strip().lower()
    if kind in {"pdf", "word", "docx"}:
        if profile.has_structure:
            strategy = ChunkingStrategy.HIERARCHICAL
    elif kind in {"markdown", "md", "text", "txt"}:
        if profile.has_headings:
            strategy = ChunkingStrategy.HIERARCHICAL
    elif kind == "code":
        strategy = ChunkingStrategy.FLAT
        preserve_structure = False
    elif kind in {"web", "html"}:
        strategy = ChunkingStrategy.HIERARCHICAL

    chunk_size, chunk_overlap = 1000, 200
    if len(text) < SMALL_DOCUMENT_CHARS:
        chunk_size, chunk_overlap = 500, 100
    elif len(text) > LARGE_DOCUMENT_CHARS:
        chunk_size, chunk_overlap = 1500, 300

    return ChunkingOptions(
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        min_chunk_size=100,
        max_chunk_size=2000,
        preserve_structure=preserve_structure,
        strategy=strategy,
    )


def analyze_structure_quality(text: str, parser: StructureParser | None = None) -> StructureQuality:
    """Score how well headings organise ``text`` on a 0..1 scale."""

    sections = [section for section in (parser or StructureParser()).parse(text) if section.heading is not None]
    levels = sorted({section.level for section in sections})
    average = sum(len(section.content.strip()) for section in sections) / len(sections) if sections else 0.0

    score = 0.0
    if sections:
        score += 0.4
        if len(levels) > 1:
            score += 0.3
        if 100 < average < 2000:
            score += 0.3

    return StructureQuality(
        has_headings=bool(sections),
        heading_levels=levels,
        average_section_length=average,
        structure_score=round(score, 2),
    )


@dataclass(frozen=True, slots=True)
class OverlapQuality:
    average_overlap: float
    overlap_consistency: float
    context_preservation: float
    quality_score: float


def analyze_overlap_quality(chunks: Sequence[Chunk]) -> OverlapQuality:
    """Score how evenly consecutive chunks share context.

    Consistency drops with the variance of ``actual_overlap``; context
    preservation saturates at an average of 100 shared characters.
    """

    if len(chunks) < 2:
        return OverlapQuality(0.0, 1.0, 1.0, 1.0)

    overlaps = [chunk.metadata.actual_overlap for chunk in chunks[1:]]
    average = sum(overlaps) / len(overlaps)
    variance = sum((overlap - average) ** 2 for overlap in overlaps) / len(overlaps)
    consistency = max(0.0, 1.0 - variance / (average + 1))
    preservation = min(1.0, average / 100)
    return OverlapQuality(
        average_overlap=round(average, 3),
        overlap_consistency=round(consistency, 3),
        context_preservation=round(preservation, 3),
        quality_score=round((consistency + preservation) / 2, 3),
    )


def optimize_overlap_size(text: str, base_overlap: int, estimator: TokenEstimator | None = None) -> int:
    """Widen ``base_overlap`` (tokens) so it spans whole sentences of ``text``.

    Long sentences (over 100 characters) get room for one and a half
    sentences, short ones (under 50) for three.
    """

    estimator = estimator or DEFAULT_ESTIMATOR
    lengths = [len(text[start:end].strip()) for start, end in sentence_spans(text)]
    if not lengths:
        return base_overlap
    average = sum(lengths) / len(lengths)
    if average > LONG_SENTENCE_CHARS:
        return max(base_overlap, estimator.estimate_length(math.ceil(average * 1.5)))
    if average < SHORT_SENTENCE_CHARS:
        return max(base_overlap, estimator.estimate_length(math.ceil(average * 3)))
    return base_overlap
