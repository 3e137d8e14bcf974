"""Data models used by the chunking pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ChunkingStrategy(str, Enum):
    FLAT = "flat"
    PARAGRAPH = "paragraph"
    HIERARCHICAL = "hierarchical"


class ChunkSourceType(str, Enum):
    SECTION = "section"
    PARAGRAPH = "paragraph"
    TOKEN = "token"


@dataclass(frozen=True, slots=True)
class Heading:
    """A detected heading. ``end_offset`` includes the trailing newline."""

    level: int
    text: str
    start_offset: int
    end_offset: int


@dataclass(frozen=True, slots=True)
class Section:
    """Text governed by one heading, or the whole document if headless."""

    heading: Optional[Heading]
    content: str
    start_offset: int
    end_offset: int
    level: int

    @property
    def title(self) -> Optional[str]:
        return self.heading.text if self.heading is not None else None


@dataclass(slots=True)
class ChunkMetadata:
    """Metadata attached to an individual chunk."""

    source_type: ChunkSourceType
    level: int = 0
    title: Optional[str] = None
    is_partial: bool = False
    part_index: int = 0
    is_merged: bool = False
    is_sub_chunk: bool = False
    parent_chunk: Optional[int] = None
    sub_chunk_index: Optional[int] = None
    is_oversized: bool = False
    is_undersized: bool = False
    # characters shared with the previous chunk
    actual_overlap: int = 0


@dataclass(slots=True)
class Chunk:
    """Chunk text with its document offsets and an optional embedding."""

    content: str
    chunk_index: int
    start_offset: int
    end_offset: int
    token_count: int
    metadata: ChunkMetadata
    embedding: Optional[List[float]] = None


class ChunkingOptions(BaseModel):
    """Sizing and strategy options. All sizes are in estimated tokens."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    chunk_size: int = Field(1000, ge=1, description="Target tokens per chunk.")
    chunk_overlap: int = Field(200, ge=0, description="Trailing tokens carried into the next chunk.")
    min_chunk_size: int = Field(100, ge=0, description="Lower bound enforced after chunking.")
    max_chunk_size: int = Field(2000, ge=1, description="Upper bound enforced after chunking.")
    preserve_structure: bool = Field(
        True,
        description="Choose overlap from whole sentences/paragraphs instead of raw word cuts.",
    )
    strategy: ChunkingStrategy = ChunkingStrategy.HIERARCHICAL
    min_overlap_context_chars: int = Field(
        100,
        ge=0,
        description="Remaining overlap budget (characters) needed before partial paragraphs are used.",
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> "ChunkingOptions":
        if self.min_chunk_size > self.chunk_size:
            raise ValueError(
                f"min_chunk_size ({self.min_chunk_size}) must not exceed chunk_size ({self.chunk_size})"
            )
        if self.chunk_size > self.max_chunk_size:
            raise ValueError(
                f"chunk_size ({self.chunk_size}) must not exceed max_chunk_size ({self.max_chunk_size})"
            )
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than chunk_size ({self.chunk_size})"
            )
        return self


@dataclass(slots=True)
class ChunkingStats:
    total_chunks: int
    total_tokens: int
    average_chunk_size: float
    strategy: str
    processing_time_ms: float


@dataclass(slots=True)
class ChunkingResult:
    chunks: List[Chunk] = field(default_factory=list)
    metadata: Optional[ChunkingStats] = None
