"""Post-processing that keeps every chunk within the configured token bounds."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

from ..logging_config import QUALITY_LOGGER_NAME
from .models import Chunk, ChunkingOptions, ChunkSourceType
from .text import sentence_spans
from .tokens import DEFAULT_ESTIMATOR, TokenEstimator

LOGGER = logging.getLogger(__name__)
QUALITY_LOGGER = logging.getLogger(QUALITY_LOGGER_NAME)

MERGE_SEPARATOR = "\n\n"


@dataclass(frozen=True, slots=True)
class SentenceGroup:
    start: int
    end: int
    oversized: bool = False


def pack_sentences(
    text: str,
    start: int,
    end: int,
    options: ChunkingOptions,
    estimator: TokenEstimator = DEFAULT_ESTIMATOR,
) -> List[SentenceGroup]:
    """Greedily pack sentences of ``text[start:end]`` into groups.

    Groups are contiguous and cover the range exactly. Each group stays
    within ``chunk_size`` unless it is a single sentence; a lone sentence
    above ``max_chunk_size`` is marked oversized. A trailing group below
    ``min_chunk_size`` is folded into its predecessor when the result still
    fits ``max_chunk_size``.
    """

    groups: List[SentenceGroup] = []
    group_start: Optional[int] = None
    group_end = start
    for sentence_start, sentence_end in sentence_spans(text, start, end):
        if group_start is None:
            group_start, group_end = sentence_start, sentence_end
            continue
        if estimator.estimate_length(sentence_end - group_start) <= options.chunk_size:
            group_end = sentence_end
            continue
        groups.append(_close_group(group_start, group_end, options, estimator))
        group_start, group_end = sentence_start, sentence_end
    if group_start is not None:
        groups.append(_close_group(group_start, group_end, options, estimator))

    if len(groups) > 1:
        last, previous = groups[-1], groups[-2]
        if (
            estimator.estimate_length(last.end - last.start) < options.min_chunk_size
            and not last.oversized
            and not previous.oversized
            and estimator.estimate_length(last.end - previous.start) <= options.max_chunk_size
        ):
            groups[-2:] = [SentenceGroup(previous.start, last.end)]
    return groups


def _close_group(start: int, end: int, options: ChunkingOptions, estimator: TokenEstimator) -> SentenceGroup:
    return SentenceGroup(start, end, oversized=estimator.estimate_length(end - start) > options.max_chunk_size)


def overlap_between(previous: Chunk, current: Chunk) -> int:
    """Characters of the document covered by both chunks."""

    return max(0, min(previous.end_offset, current.end_offset) - max(previous.start_offset, current.start_offset))


class ChunkConstraintEnforcer:
    """Merge undersized chunks, split oversized ones and re-index."""

    def __init__(self, options: ChunkingOptions, estimator: TokenEstimator | None = None) -> None:
        self.options = options
        self.estimator = estimator or DEFAULT_ESTIMATOR

    def enforce(self, chunks: Sequence[Chunk]) -> List[Chunk]:
        """Split oversized chunks, then fold undersized ones into a neighbour.

        An undersized chunk merges forward when it can, otherwise backward.
        One that fits neither neighbour is kept and flagged ``is_undersized``.
        """

        pieces: List[Chunk] = []
        for chunk in chunks:
            pieces.extend(self.split_oversized(chunk))

        result: List[Chunk] = []
        carry: Optional[Chunk] = None
        for chunk in pieces:
            if carry is not None:
                if self._can_merge(carry, chunk):
                    chunk = self._merge(carry, chunk)
                else:
                    self._fold_backward(result, carry)
                carry = None
            if chunk.token_count < self.options.min_chunk_size:
                carry = chunk
                continue
            result.append(chunk)
        if carry is not None:
            self._fold_backward(result, carry)

        previous: Optional[Chunk] = None
        for index, chunk in enumerate(result):
            chunk.chunk_index = index
            chunk.metadata.is_undersized = chunk.token_count < self.options.min_chunk_size
            chunk.metadata.actual_overlap = overlap_between(previous, chunk) if previous is not None else 0
            previous = chunk
        self._report_quality(result)
        return result

    def _fold_backward(self, result: List[Chunk], chunk: Chunk) -> None:
        if result and self._can_merge(result[-1], chunk):
            result[-1] = self._merge(result[-1], chunk)
        else:
            result.append(chunk)

    def split_oversized(self, chunk: Chunk) -> List[Chunk]:
        """Split a chunk above ``max_chunk_size`` at sentence boundaries."""

        if chunk.metadata.is_oversized or chunk.token_count <= self.options.max_chunk_size:
            return [chunk]

        groups = pack_sentences(chunk.content, 0, len(chunk.content), self.options, self.estimator)
        if len(groups) <= 1:
            chunk.metadata.is_oversized = True
            self._warn_oversized(chunk)
            return [chunk]

        verbatim = chunk.end_offset - chunk.start_offset == len(chunk.content)
        sub_chunks: List[Chunk] = []
        for sub_index, group in enumerate(groups):
            content = chunk.content[group.start : group.end]
            if verbatim:
                start_offset = chunk.start_offset + group.start
                end_offset = chunk.start_offset + group.end
            else:
                start_offset = min(chunk.start_offset + group.start, chunk.end_offset)
                end_offset = min(chunk.start_offset + group.end, chunk.end_offset)
            if sub_index == len(groups) - 1:
                end_offset = chunk.end_offset
            metadata = replace(
                chunk.metadata,
                is_sub_chunk=True,
                parent_chunk=chunk.chunk_index,
                sub_chunk_index=sub_index,
                is_oversized=group.oversized,
            )
            sub_chunk = Chunk(
                content=content,
                chunk_index=chunk.chunk_index,
                start_offset=start_offset,
                end_offset=end_offset,
                token_count=self.estimator.estimate(content),
                metadata=metadata,
            )
            if group.oversized:
                self._warn_oversized(sub_chunk)
            sub_chunks.append(sub_chunk)
        LOGGER.debug("Split chunk %s into %s sub-chunks", chunk.chunk_index, len(sub_chunks))
        return sub_chunks

    def _can_merge(self, first: Chunk, second: Chunk) -> bool:
        if first.metadata.is_oversized or second.metadata.is_oversized:
            return False
        if first.metadata.level != second.metadata.level:
            return False
        same_section = first.metadata.title == second.metadata.title
        sibling_sections = (
            first.metadata.source_type is ChunkSourceType.SECTION
            and second.metadata.source_type is ChunkSourceType.SECTION
        )
        if not (same_section or sibling_sections):
            return False
        separator = self._separator(first, second)
        merged_length = len(first.content) + len(separator) + len(second.content)
        return self.estimator.estimate_length(merged_length) <= self.options.max_chunk_size

    @staticmethod
    def _separator(first: Chunk, second: Chunk) -> str:
        contiguous_parts = (
            first.metadata.is_sub_chunk
            and second.metadata.is_sub_chunk
            and first.metadata.parent_chunk == second.metadata.parent_chunk
            and first.end_offset == second.start_offset
        )
        return "" if contiguous_parts else MERGE_SEPARATOR

    def _merge(self, first: Chunk, second: Chunk) -> Chunk:
        content = first.content + self._separator(first, second) + second.content
        metadata = replace(
            first.metadata,
            is_merged=True,
            is_sub_chunk=first.metadata.is_sub_chunk and second.metadata.is_sub_chunk,
        )
        return Chunk(
            content=content,
            chunk_index=first.chunk_index,
            start_offset=first.start_offset,
            end_offset=max(first.end_offset, second.end_offset),
            token_count=self.estimator.estimate(content),
            metadata=metadata,
        )

    def _warn_oversized(self, chunk: Chunk) -> None:
        QUALITY_LOGGER.warning(
            "Chunk at offset %s keeps %s tokens (max %s): a single sentence cannot be split further",
            chunk.start_offset,
            chunk.token_count,
            self.options.max_chunk_size,
        )

    def _report_quality(self, chunks: Sequence[Chunk]) -> None:
        undersized = [chunk.chunk_index for chunk in chunks if chunk.metadata.is_undersized]
        if undersized and len(chunks) > 1:
            QUALITY_LOGGER.info("Chunks below min_chunk_size without a merge candidate: %s", undersized)
        empty = [chunk.chunk_index for chunk in chunks if not chunk.content.strip()]
        if empty:
            QUALITY_LOGGER.warning("Empty chunks emitted: %s", empty)
