"""
Timestamp reconstruction for reconciled sentences and subtitle fragments.

Index mode looks times up directly on the referenced segments. Offset mode
interpolates linearly inside a sentence's time span by character position,
which assumes a uniform speech rate; the result is an approximation.
"""
import logging
from typing import NamedTuple, Sequence

from app.transcript.keywords import normalize_text
from app.transcript.models import Fragment, ReconciledSentence, Segment, SubtitleCue, TimedSentence

logger = logging.getLogger(__name__)


def clamp_index(index: int, total: int) -> int:
    if index < 0 or index >= total:
        clamped = min(max(index, 0), total - 1)
        logger.warning(f"Segment index {index} outside [0, {total - 1}]; clamped to {clamped}")
        return clamped
    return index


def assign_index_timestamps(
    sentences: Sequence[ReconciledSentence],
    segments: Sequence[Segment],
) -> list[TimedSentence]:
    """Start of the first referenced segment to end of the last one."""
    total = len(segments)
    timed = []
    for sentence in sentences:
        if not sentence.original_segment_indices or not total:
            logger.warning(f"Sentence '{sentence.text[:30]}' has no usable segment indices; skipped")
            continue
        first = clamp_index(min(sentence.original_segment_indices), total)
        last = clamp_index(max(sentence.original_segment_indices), total)
        timed.append(TimedSentence(
            text=sentence.text,
            original_segment_indices=sentence.original_segment_indices,
            start_time_seconds=segments[first].start_time_seconds,
            end_time_seconds=segments[last].end_time_seconds,
        ))
    return timed


def interpolate_offset(offset: int, length: int, start_time: float, end_time: float) -> float:
    """Time at character ``offset`` of a text of ``length`` chars spoken over ``[start_time, end_time]``."""
    if length <= 0:
        return start_time
    ratio = min(max(offset / length, 0.0), 1.0)
    return start_time + ratio * (end_time - start_time)


def interpolate_span(start: int, end: int, length: int, start_time: float, end_time: float) -> tuple[float, float]:
    return (
        interpolate_offset(start, length, start_time, end_time),
        interpolate_offset(end, length, start_time, end_time),
    )


class _TextRange(NamedTuple):
    char_start: int
    char_end: int
    start_time: float
    end_time: float


class OffsetTimeline:
    """
    Maps character offsets in a normalized text run back to wall-clock time.

    The run is the normalized texts joined by single spaces (the same
    rendering ``build_normalized_text`` produces), and each text owns the
    time span it was spoken in.
    """

    def __init__(self, ranges: list[_TextRange], text: str):
        self.ranges = ranges
        self.text = text

    @classmethod
    def from_sentences(cls, sentences: Sequence[TimedSentence]) -> "OffsetTimeline":
        return cls.from_spans(
            [(s.text, s.start_time_seconds, s.end_time_seconds) for s in sentences]
        )

    @classmethod
    def from_spans(cls, spans: Sequence[tuple[str, float, float]]) -> "OffsetTimeline":
        ranges = []
        parts = []
        pos = 0
        for text, start_time, end_time in spans:
            normalized = normalize_text(text)
            if not normalized:
                continue
            if parts:
                pos += 1  # joining space
            ranges.append(_TextRange(pos, pos + len(normalized), start_time, end_time))
            parts.append(normalized)
            pos += len(normalized)
        return cls(ranges, " ".join(parts))

    def start_time_at(self, offset: int) -> float:
        """Time a fragment starting at ``offset`` begins."""
        for r in self.ranges:
            if offset < r.char_end:
                if offset <= r.char_start:
                    return r.start_time
                return interpolate_offset(offset - r.char_start, r.char_end - r.char_start, r.start_time, r.end_time)
        return self.ranges[-1].end_time if self.ranges else 0.0

    def end_time_at(self, offset: int) -> float:
        """Time a fragment ending at ``offset`` (exclusive) finishes."""
        for r in reversed(self.ranges):
            if offset > r.char_start:
                if offset >= r.char_end:
                    return r.end_time
                return interpolate_offset(offset - r.char_start, r.char_end - r.char_start, r.start_time, r.end_time)
        return self.ranges[0].start_time if self.ranges else 0.0

    def assign(self, fragments: Sequence[Fragment], origin_seconds: float = 0.0) -> list[SubtitleCue]:
        """Build cues with times relative to ``origin_seconds``, never negative."""
        cues = []
        for i, fragment in enumerate(fragments):
            start = self.start_time_at(fragment.start_ref) - origin_seconds
            end = self.end_time_at(fragment.end_ref) - origin_seconds
            start = max(0.0, start)
            end = max(start, end)
            cues.append(SubtitleCue(
                index=i,
                lines=fragment.lines or [fragment.text],
                start_time_seconds=start,
                end_time_seconds=end,
            ))
        return cues
