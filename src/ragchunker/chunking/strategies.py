"""Interchangeable chunking strategies.

All strategies turn one logical unit (the whole document, or one section)
into candidate chunks sized against ``ChunkingOptions.chunk_size``. The
constraint enforcer runs afterwards to guarantee the hard bounds.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import ClassVar, Dict, List, Optional, Sequence, Type

from .constraints import ChunkConstraintEnforcer
from .models import Chunk, ChunkingOptions, ChunkingStrategy, ChunkMetadata, ChunkSourceType, Section
from .structure import StructureParser
from .text import Span, paragraph_spans, sentence_spans, strip_span, word_spans
from .tokens import DEFAULT_ESTIMATOR, TokenEstimator

LOGGER = logging.getLogger(__name__)

HEADING_SEPARATOR = "\n\n"


@dataclass(slots=True)
class _Region:
    """A chunk under construction: a verbatim span plus an optional heading prefix."""

    start: int
    end: int
    paragraphs: List[Span] = field(default_factory=list)
    prefix: Optional[str] = None


class ChunkStrategy(ABC):
    """Base class for chunking strategies."""

    name: ClassVar[ChunkingStrategy]
    source_type: ClassVar[ChunkSourceType]

    def __init__(
        self,
        options: ChunkingOptions,
        estimator: TokenEstimator | None = None,
        enforcer: ChunkConstraintEnforcer | None = None,
    ) -> None:
        self.options = options
        self.estimator = estimator or DEFAULT_ESTIMATOR
        self.enforcer = enforcer or ChunkConstraintEnforcer(options, self.estimator)

    def chunk(self, text: str, sections: Optional[Sequence[Section]] = None) -> List[Chunk]:
        """Chunk the whole document as a single unit."""

        unit = Section(heading=None, content=text, start_offset=0, end_offset=len(text), level=0)
        return self._reindex(self.chunk_unit(text, unit))

    @abstractmethod
    def chunk_unit(self, text: str, unit: Section) -> List[Chunk]:
        """Chunk ``text[unit.start_offset:unit.end_offset]``."""

    def _make_chunk(
        self,
        content: str,
        start: int,
        end: int,
        unit: Section,
        source_type: ChunkSourceType | None = None,
    ) -> Chunk:
        metadata = ChunkMetadata(
            source_type=source_type or self.source_type,
            level=unit.level,
            title=unit.title,
        )
        return Chunk(
            content=content,
            chunk_index=0,
            start_offset=start,
            end_offset=end,
            token_count=self.estimator.estimate(content),
            metadata=metadata,
        )

    @staticmethod
    def _reindex(chunks: List[Chunk]) -> List[Chunk]:
        for index, chunk in enumerate(chunks):
            chunk.chunk_index = index
        return chunks


class FlatChunkStrategy(ChunkStrategy):
    """Fixed token window over the word stream with word-level overlap."""

    name = ChunkingStrategy.FLAT
    source_type = ChunkSourceType.TOKEN

    def chunk_unit(self, text: str, unit: Section) -> List[Chunk]:
        words = word_spans(text, unit.start_offset, unit.end_offset)
        chunks: List[Chunk] = []
        first = 0
        while first < len(words):
            window_start = words[first][0]
            last = first
            while (
                last + 1 < len(words)
                and self.estimator.estimate_length(words[last + 1][1] - window_start) <= self.options.chunk_size
            ):
                last += 1
            window_end = words[last][1]
            chunks.append(self._make_chunk(text[window_start:window_end], window_start, window_end, unit))
            if last == len(words) - 1:
                break
            first = self._next_window(words, first, last)
        return chunks

    def _next_window(self, words: Sequence[Span], first: int, last: int) -> int:
        """Index of the first word of the next window, seeded with the overlap tail."""

        next_first = last + 1
        if self.options.chunk_overlap <= 0:
            return next_first
        window_end = words[last][1]
        for index in range(last, first, -1):
            if self.estimator.estimate_length(window_end - words[index][0]) > self.options.chunk_overlap:
                break
            next_first = index
        return next_first


class ParagraphChunkStrategy(ChunkStrategy):
    """Greedy accumulation of whole paragraphs."""

    name = ChunkingStrategy.PARAGRAPH
    source_type = ChunkSourceType.PARAGRAPH

    def chunk_unit(self, text: str, unit: Section) -> List[Chunk]:
        paragraphs = paragraph_spans(text, unit.start_offset, unit.end_offset)
        return self._pack(text, unit, paragraphs)

    def _pack(
        self,
        text: str,
        unit: Section,
        paragraphs: Sequence[Span],
        *,
        prefix: Optional[str] = None,
        prefix_start: Optional[int] = None,
        contextual: bool = False,
    ) -> List[Chunk]:
        chunks: List[Chunk] = []
        region: Optional[_Region] = None
        previous: Optional[_Region] = None
        pending_prefix = prefix

        for paragraph in paragraphs:
            paragraph_start, paragraph_end = paragraph
            if self.estimator.estimate_length(paragraph_end - paragraph_start) > self.options.max_chunk_size:
                if region is not None:
                    chunks.append(self._emit(text, unit, region, prefix_start))
                    region = None
                pieces = self._split_paragraph(text, unit, paragraph, len(chunks), pending_prefix, prefix_start)
                pending_prefix = None
                chunks.extend(pieces)
                tail_start = max(pieces[-1].start_offset, paragraph_start)
                previous = _Region(tail_start, paragraph_end, [(tail_start, paragraph_end)])
                continue

            if region is None:
                region = self._open(text, previous, paragraph, pending_prefix, contextual)
                pending_prefix = None
                continue

            if self._region_tokens(region, paragraph_end) <= self.options.chunk_size:
                region.end = paragraph_end
                region.paragraphs.append(paragraph)
                continue

            chunks.append(self._emit(text, unit, region, prefix_start))
            previous = region
            region = self._open(text, previous, paragraph, None, contextual)

        if region is not None:
            chunks.append(self._emit(text, unit, region, prefix_start))

        for part_index, chunk in enumerate(chunks):
            chunk.metadata.part_index = part_index
            chunk.metadata.is_partial = len(chunks) > 1
        return chunks

    def _region_tokens(self, region: _Region, end: int) -> int:
        prefix_length = len(region.prefix) + len(HEADING_SEPARATOR) if region.prefix else 0
        return self.estimator.estimate_length(prefix_length + end - region.start)

    def _open(
        self,
        text: str,
        previous: Optional[_Region],
        paragraph: Span,
        prefix: Optional[str],
        contextual: bool,
    ) -> _Region:
        paragraph_start, paragraph_end = paragraph
        start = paragraph_start
        if previous is not None and self.options.chunk_overlap > 0:
            overlap_start = self._contextual_overlap(text, previous) if contextual else self._word_overlap(text, previous)
            if overlap_start is not None and overlap_start < paragraph_start:
                candidate = _Region(overlap_start, paragraph_end, prefix=prefix)
                if self._region_tokens(candidate, paragraph_end) <= self.options.max_chunk_size:
                    start = overlap_start

        carried: List[Span] = []
        if previous is not None and start < paragraph_start:
            carried = [
                (max(span_start, start), span_end)
                for span_start, span_end in previous.paragraphs
                if span_end > start
            ]
        return _Region(start, paragraph_end, carried + [paragraph], prefix)

    def _word_overlap(self, text: str, previous: _Region) -> Optional[int]:
        """Start offset of the trailing words of ``previous`` within the overlap budget."""

        overlap_start: Optional[int] = None
        for word_start, _ in reversed(word_spans(text, previous.start, previous.end)):
            if word_start <= previous.start:
                break
            if self.estimator.estimate_length(previous.end - word_start) > self.options.chunk_overlap:
                break
            overlap_start = word_start
        return overlap_start

    def _contextual_overlap(self, text: str, previous: _Region) -> Optional[int]:
        """Start offset of whole trailing paragraphs/sentences of ``previous``.

        Paragraphs are taken back to front while they fit the budget. The
        first paragraph that does not fit contributes its trailing sentences
        only if more than ``min_overlap_context_chars`` of budget remain.
        """

        budget = self.estimator.max_chars(self.options.chunk_overlap)
        overlap_start: Optional[int] = None
        for paragraph_start, paragraph_end in reversed(previous.paragraphs):
            if previous.end - paragraph_start <= budget:
                overlap_start = paragraph_start
                continue
            used = previous.end - overlap_start if overlap_start is not None else 0
            if budget - used > self.options.min_overlap_context_chars:
                for sentence_start, _ in reversed(sentence_spans(text, paragraph_start, paragraph_end)):
                    if previous.end - sentence_start > budget:
                        break
                    overlap_start = sentence_start
            break
        if overlap_start is not None and overlap_start <= previous.start:
            return None
        return overlap_start

    def _emit(self, text: str, unit: Section, region: _Region, prefix_start: Optional[int]) -> Chunk:
        body = text[region.start : region.end]
        if region.prefix:
            start = prefix_start if prefix_start is not None else region.start
            return self._make_chunk(region.prefix + HEADING_SEPARATOR + body, start, region.end, unit, ChunkSourceType.PARAGRAPH)
        return self._make_chunk(body, region.start, region.end, unit, ChunkSourceType.PARAGRAPH)

    def _split_paragraph(
        self,
        text: str,
        unit: Section,
        paragraph: Span,
        position: int,
        prefix: Optional[str],
        prefix_start: Optional[int],
    ) -> List[Chunk]:
        paragraph_start, paragraph_end = paragraph
        candidate = self._make_chunk(
            text[paragraph_start:paragraph_end], paragraph_start, paragraph_end, unit, ChunkSourceType.PARAGRAPH
        )
        candidate.chunk_index = position
        pieces = self.enforcer.split_oversized(candidate)
        if prefix:
            first = pieces[0]
            first.content = prefix + HEADING_SEPARATOR + first.content
            first.start_offset = prefix_start if prefix_start is not None else first.start_offset
            first.token_count = self.estimator.estimate(first.content)
        return pieces


class HierarchicalChunkStrategy(ParagraphChunkStrategy):
    """Section-aware chunking driven by the structure parser."""

    name = ChunkingStrategy.HIERARCHICAL
    source_type = ChunkSourceType.SECTION

    def __init__(
        self,
        options: ChunkingOptions,
        estimator: TokenEstimator | None = None,
        enforcer: ChunkConstraintEnforcer | None = None,
        parser: StructureParser | None = None,
    ) -> None:
        super().__init__(options, estimator, enforcer)
        self.parser = parser or StructureParser()

    def chunk(self, text: str, sections: Optional[Sequence[Section]] = None) -> List[Chunk]:
        if sections is None:
            sections = self.parser.parse(text)
        chunks: List[Chunk] = []
        for section in sections:
            chunks.extend(self.chunk_unit(text, section))
        return self._reindex(chunks)

    def chunk_unit(self, text: str, unit: Section) -> List[Chunk]:
        heading = unit.heading
        body = strip_span(text, unit.start_offset, unit.end_offset)
        if body is None and heading is None:
            return []

        parts = [heading.text] if heading is not None else []
        if body is not None:
            parts.append(text[body[0] : body[1]])
        composed = HEADING_SEPARATOR.join(parts)
        paragraphs = paragraph_spans(text, unit.start_offset, unit.end_offset)

        if self.estimator.estimate(composed) <= self.options.chunk_size or not paragraphs:
            start = heading.start_offset if heading is not None else body[0]
            end = body[1] if body is not None else heading.end_offset
            return [self._make_chunk(composed, start, end, unit, ChunkSourceType.SECTION)]

        LOGGER.debug("Section '%s' exceeds chunk_size; splitting by paragraph", unit.title)
        return self._pack(
            text,
            unit,
            paragraphs,
            prefix=heading.text if heading is not None else None,
            prefix_start=heading.start_offset if heading is not None else None,
            contextual=self.options.preserve_structure,
        )


_STRATEGIES: Dict[ChunkingStrategy, Type[ChunkStrategy]] = {
    ChunkingStrategy.FLAT: FlatChunkStrategy,
    ChunkingStrategy.PARAGRAPH: ParagraphChunkStrategy,
    ChunkingStrategy.HIERARCHICAL: HierarchicalChunkStrategy,
}


def get_strategy(
    options: ChunkingOptions,
    estimator: TokenEstimator | None = None,
    enforcer: ChunkConstraintEnforcer | None = None,
    parser: StructureParser | None = None,
) -> ChunkStrategy:
    """Instantiate the strategy selected by ``options.strategy``."""

    try:
        strategy_cls = _STRATEGIES[ChunkingStrategy(options.strategy)]
    except (KeyError, ValueError) as exc:
        raise ValueError(f"Unsupported chunking strategy: {options.strategy}") from exc
    if strategy_cls is HierarchicalChunkStrategy:
        return HierarchicalChunkStrategy(options, estimator, enforcer, parser)
    return strategy_cls(options, estimator, enforcer)
