"""
Error taxonomy for the transcript engine.

Every failure inside a dispatch aborts the whole invocation; callers get a
single exception naming the failing chunk (when there is one) with the
underlying cause chained via ``raise ... from``.
"""
from typing import Optional


class TranscriptEngineError(Exception):
    """Base class for all engine errors."""


class ChunkPlanningError(TranscriptEngineError):
    """Chunk policy cannot produce a valid plan (e.g. overlap >= chunk size)."""


class ChunkError(TranscriptEngineError):
    """An error tied to a single chunk of the dispatch."""

    def __init__(self, message: str, chunk_index: Optional[int] = None):
        self.chunk_index = chunk_index
        self.detail = message
        if chunk_index is not None:
            message = f"chunk {chunk_index}: {message}"
        super().__init__(message)


class CorrectionServiceError(ChunkError):
    """Transport, rate-limit or generation failure from the correction service."""


class CorrectionParseError(ChunkError):
    """Response payload for a chunk is malformed or fails schema validation."""


class ReconciliationInvariantViolation(TranscriptEngineError):
    """Merged output broke ordering or coverage guarantees."""


class SubtitleGenerationError(TranscriptEngineError):
    """Subtitle cues could not be produced for a clip."""


class DictionaryError(TranscriptEngineError):
    """Correction dictionary file could not be parsed."""
