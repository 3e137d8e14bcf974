"""Heading detection and section partitioning.

``HeadingLexer`` turns text into a flat token stream (heading start, heading
end, plain text) and ``SectionBuilder`` consumes that stream to produce
ordered sections that partition the document exactly.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Sequence, Tuple

from ..errors import StructureError
from .models import Heading, Section

LOGGER = logging.getLogger(__name__)

_ATX_RE = re.compile(r"^(#{1,6})[ \t]+(\S.*?)$")
_ATX_CLOSING_RE = re.compile(r"[ \t]+#+$")
_SETEXT_UNDERLINE_RE = re.compile(r"^(=+|-+)[ \t]*$")
_FENCE_RE = re.compile(r"^[ \t]{0,3}(```|~~~)")


class StructureTokenType(str, Enum):
    HEADING_START = "heading_start"
    HEADING_END = "heading_end"
    TEXT = "text"


@dataclass(frozen=True, slots=True)
class StructureToken:
    type: StructureTokenType
    start: int
    end: int
    level: int = 0
    value: str = ""


def _iter_lines(text: str) -> Iterator[Tuple[int, int, int]]:
    """Yield ``(start, content_end, next_start)`` for every line."""

    cursor = 0
    for raw in text.splitlines(keepends=True):
        next_start = cursor + len(raw)
        content_end = cursor + len(raw.rstrip("\r\n"))
        yield cursor, content_end, next_start
        cursor = next_start


class HeadingLexer:
    """Tokenise ATX (``# Title``) and Setext (underlined) headings."""

    def tokenize(self, text: str) -> List[StructureToken]:
        lines = list(_iter_lines(text))
        tokens: List[StructureToken] = []
        text_start = 0
        in_fence = False
        index = 0

        while index < len(lines):
            line_start, line_end, next_start = lines[index]
            line = text[line_start:line_end]

            if _FENCE_RE.match(line):
                in_fence = not in_fence
                index += 1
                continue
            if in_fence:
                index += 1
                continue

            heading = self._match_atx(line)
            consumed = 1
            heading_end = next_start
            if heading is None and index + 1 < len(lines):
                heading = self._match_setext(text, line, lines[index + 1])
                if heading is not None:
                    consumed = 2
                    heading_end = lines[index + 1][2]

            if heading is None:
                index += 1
                continue

            level, value = heading
            if line_start > text_start:
                tokens.append(StructureToken(StructureTokenType.TEXT, text_start, line_start))
            tokens.append(
                StructureToken(StructureTokenType.HEADING_START, line_start, line_start, level=level, value=value)
            )
            tokens.append(StructureToken(StructureTokenType.HEADING_END, heading_end, heading_end, level=level))
            text_start = heading_end
            index += consumed

        if text_start < len(text):
            tokens.append(StructureToken(StructureTokenType.TEXT, text_start, len(text)))
        return tokens

    @staticmethod
    def _match_atx(line: str) -> Tuple[int, str] | None:
        match = _ATX_RE.match(line)
        if match is None:
            return None
        value = _ATX_CLOSING_RE.sub("", match.group(2)).strip()
        if not value:
            return None
        return len(match.group(1)), value

    @staticmethod
    def _match_setext(text: str, line: str, underline: Tuple[int, int, int]) -> Tuple[int, str] | None:
        if not line.strip() or _FENCE_RE.match(line):
            return None
        underline_text = text[underline[0] : underline[1]]
        match = _SETEXT_UNDERLINE_RE.match(underline_text)
        if match is None:
            return None
        level = 1 if match.group(1)[0] == "=" else 2
        return level, line.strip()


class SectionBuilder:
    """Build sections from a lexer token stream and verify the partition."""

    def build(self, text: str, tokens: Sequence[StructureToken]) -> List[Section]:
        headings = self._collect_headings(tokens)
        if not headings:
            return [Section(heading=None, content=text, start_offset=0, end_offset=len(text), level=0)]

        sections: List[Section] = []
        first = headings[0]
        if first.start_offset > 0:
            sections.append(
                Section(heading=None, content=text[: first.start_offset], start_offset=0, end_offset=first.start_offset, level=0)
            )
        for position, heading in enumerate(headings):
            section_end = headings[position + 1].start_offset if position + 1 < len(headings) else len(text)
            sections.append(
                Section(
                    heading=heading,
                    content=text[heading.end_offset : section_end],
                    start_offset=heading.end_offset,
                    end_offset=section_end,
                    level=heading.level,
                )
            )

        self._verify_partition(text, sections)
        return sections

    @staticmethod
    def _collect_headings(tokens: Sequence[StructureToken]) -> List[Heading]:
        headings: List[Heading] = []
        open_token: StructureToken | None = None
        for token in tokens:
            if token.type is StructureTokenType.HEADING_START:
                open_token = token
            elif token.type is StructureTokenType.HEADING_END and open_token is not None:
                headings.append(
                    Heading(
                        level=open_token.level,
                        text=open_token.value,
                        start_offset=open_token.start,
                        end_offset=token.end,
                    )
                )
                open_token = None
        headings.sort(key=lambda item: item.start_offset)
        return headings

    @staticmethod
    def _verify_partition(text: str, sections: Sequence[Section]) -> None:
        cursor = 0
        for section in sections:
            if section.heading is not None:
                if section.heading.start_offset != cursor or section.start_offset != section.heading.end_offset:
                    raise StructureError(f"Heading '{section.heading.text}' breaks the section partition at {cursor}")
            elif section.start_offset != cursor:
                raise StructureError(f"Section gap or overlap at offset {cursor}")
            if section.end_offset < section.start_offset:
                raise StructureError(f"Section at {section.start_offset} ends before it starts")
            cursor = section.end_offset
        if cursor != len(text):
            raise StructureError(f"Sections cover {cursor} of {len(text)} characters")


class StructureParser:
    """Partition text into heading-governed sections."""

    def __init__(self, lexer: HeadingLexer | None = None, builder: SectionBuilder | None = None) -> None:
        self.lexer = lexer or HeadingLexer()
        self.builder = builder or SectionBuilder()

    def parse(self, text: str) -> List[Section]:
        tokens = self.lexer.tokenize(text)
        sections = self.builder.build(text, tokens)
        LOGGER.debug("Parsed %s sections from %s characters", len(sections), len(text))
        return sections

    def headings(self, text: str) -> List[Heading]:
        return [section.heading for section in self.parse(text) if section.heading is not None]
