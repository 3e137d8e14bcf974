"""Text helpers: whitespace normalisation and offset-preserving splitting.

Every splitter returns ``(start, end)`` spans into the original string so
that chunk offsets can always be traced back to the source document.
"""
from __future__ import annotations

import re
import unicodedata
from typing import List, Optional, Tuple

Span = Tuple[int, int]

_WHITESPACE_RE = re.compile(r"[ \t]+")
_MULTIPLE_NEWLINES_RE = re.compile(r"\n{3,}")
_TRAILING_SPACE_RE = re.compile(r"[ \t]+\n")

_PARAGRAPH_BREAK_RE = re.compile(r"\n[ \t]*\n\s*")
_SENTENCE_END_RE = re.compile(r"[.!?]+(?=\s|\Z)\s*")
_WORD_RE = re.compile(r"\S+")


def normalize_text(text: str) -> str:
    """Normalise line endings, runs of whitespace and Unicode composition."""

    normalized = unicodedata.normalize("NFC", text)
    normalized = normalized.replace("\r\n", "\n").replace("\r", "\n")
    normalized = _WHITESPACE_RE.sub(" ", normalized)
    normalized = _TRAILING_SPACE_RE.sub("\n", normalized)
    normalized = _MULTIPLE_NEWLINES_RE.sub("\n\n", normalized)
    return normalized.strip()


def strip_span(text: str, start: int, end: int) -> Optional[Span]:
    """Shrink ``[start, end)`` to exclude surrounding whitespace."""

    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    if start >= end:
        return None
    return start, end


def paragraph_spans(text: str, start: int = 0, end: Optional[int] = None) -> List[Span]:
    """Blank-line delimited paragraphs within ``[start, end)``, whitespace trimmed."""

    end = len(text) if end is None else end
    spans: List[Span] = []
    cursor = start
    for match in _PARAGRAPH_BREAK_RE.finditer(text, start, end):
        span = strip_span(text, cursor, match.start())
        if span is not None:
            spans.append(span)
        cursor = match.end()
    span = strip_span(text, cursor, end)
    if span is not None:
        spans.append(span)
    return spans


def sentence_spans(text: str, start: int = 0, end: Optional[int] = None) -> List[Span]:
    """Sentence spans that exactly partition ``[start, end)``.

    A sentence ends at a run of ``.``, ``!`` or ``?`` followed by whitespace
    or the end of the range; the trailing whitespace stays with the sentence
    so that joining the slices reproduces the input.
    """

    end = len(text) if end is None else end
    if start >= end:
        return []
    spans: List[Span] = []
    cursor = start
    for match in _SENTENCE_END_RE.finditer(text, start, end):
        spans.append((cursor, match.end()))
        cursor = match.end()
    if cursor < end:
        if spans and not text[cursor:end].strip():
            spans[-1] = (spans[-1][0], end)
        else:
            spans.append((cursor, end))
    return spans


def word_spans(text: str, start: int = 0, end: Optional[int] = None) -> List[Span]:
    end = len(text) if end is None else end
    return [match.span() for match in _WORD_RE.finditer(text, start, end)]
