"""
Immutable data types passed between engine stages.

Each stage produces a new collection of these and never mutates the one it
received.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Segment(_Frozen):
    """Smallest time-coded unit of the source transcript."""

    text: str
    start_time_seconds: float
    end_time_seconds: float
    confidence: float = 1.0


class Chunk(_Frozen):
    """Inclusive window ``[start_index, end_index]`` over segment indices."""

    index: int
    total_chunks: int
    start_index: int
    end_index: int

    @property
    def size(self) -> int:
        return self.end_index - self.start_index + 1

    @property
    def is_last(self) -> bool:
        return self.index == self.total_chunks - 1


class Fragment(_Frozen):
    """One corrected unit returned by the service for a chunk.

    ``start_ref``/``end_ref`` are segment indices in index mode and
    character offsets ``[start_ref, end_ref)`` in offset mode. Offset-mode
    fragments keep the subtitle lines they were rendered as.
    """

    text: str
    start_ref: int
    end_ref: int
    lines: list[str] = Field(default_factory=list)

    @property
    def min_ref(self) -> int:
        return min(self.start_ref, self.end_ref)

    @property
    def max_ref(self) -> int:
        return max(self.start_ref, self.end_ref)


class RawCorrectionResult(_Frozen):
    chunk_index: int
    fragments: list[Fragment]


class ReconciledSentence(_Frozen):
    text: str
    original_segment_indices: list[int]


class TimedSentence(ReconciledSentence):
    start_time_seconds: float
    end_time_seconds: float


class SubtitleCue(_Frozen):
    """One on-screen subtitle unit; times are relative to the clip start."""

    index: int
    lines: list[str]
    start_time_seconds: float
    end_time_seconds: float


class DictionaryEntry(_Frozen):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    correct: str
    category: str = ""
    description: str = ""
    wrong_patterns: list[str] = Field(default_factory=list, alias="wrongPatterns")


class CorrectionDictionary(_Frozen):
    version: str = "0"
    description: str = ""
    entries: list[DictionaryEntry] = Field(default_factory=list)
