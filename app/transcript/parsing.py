"""
Two-step parsing of correction-service responses.

1. ``extract_json_block`` finds the first balanced ``{...}`` object with a
   bracket-matching scan (string literals and escapes are respected, so
   braces inside text do not confuse it).
2. The decoded object is validated with pydantic; field-level problems are
   reported as ``CorrectionParseError`` for the chunk.
"""
import json
from typing import Any, Optional

from pydantic import BaseModel, ValidationError, field_validator, model_validator

from app.core.errors import CorrectionParseError
from app.transcript.models import Fragment, RawCorrectionResult


def extract_json_block(text: str, chunk_index: Optional[int] = None) -> str:
    start = text.find("{")
    if start == -1:
        raise CorrectionParseError("no JSON object found in response", chunk_index)

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        ch = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:pos + 1]

    raise CorrectionParseError("unbalanced JSON object in response", chunk_index)


def load_json_object(text: str, chunk_index: Optional[int] = None) -> dict[str, Any]:
    block = extract_json_block(text, chunk_index)
    try:
        data = json.loads(block)
    except json.JSONDecodeError as e:
        raise CorrectionParseError(f"invalid JSON: {e.msg} at position {e.pos}", chunk_index) from e
    return data


def _describe(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


# ── Index mode ─────────────────────────────────────────────────────────────

class _IndexedSentence(BaseModel):
    text: str
    start: int
    end: int

    @model_validator(mode="before")
    @classmethod
    def from_segment_indices(cls, data: Any) -> Any:
        # Some responses list the merged indices instead of a start/end pair
        if isinstance(data, dict) and ("start" not in data or "end" not in data):
            indices = data.get("originalSegmentIndices")
            # Anything but a list of plain ints is left for the schema to reject
            if isinstance(indices, list) and indices and all(
                isinstance(i, int) and not isinstance(i, bool) for i in indices
            ):
                return {**data, "start": min(indices), "end": max(indices)}
        return data


class _IndexedPayload(BaseModel):
    sentences: list[_IndexedSentence]


def parse_indexed_response(text: str, chunk_index: int) -> RawCorrectionResult:
    """Parse ``{"sentences": [{"text", "start", "end"}]}`` into a raw result."""
    data = load_json_object(text, chunk_index)
    try:
        payload = _IndexedPayload.model_validate(data)
    except ValidationError as e:
        raise CorrectionParseError(f"invalid response schema: {_describe(e)}", chunk_index) from e

    return RawCorrectionResult(
        chunk_index=chunk_index,
        fragments=[Fragment(text=s.text, start_ref=s.start, end_ref=s.end) for s in payload.sentences],
    )


# ── Text-only mode ─────────────────────────────────────────────────────────

class _TextFragment(BaseModel):
    lines: list[str]

    @model_validator(mode="before")
    @classmethod
    def from_text(cls, data: Any) -> Any:
        if isinstance(data, dict) and "lines" not in data and isinstance(data.get("text"), str):
            return {**data, "lines": data["text"].splitlines() or [data["text"]]}
        return data

    @field_validator("lines")
    @classmethod
    def non_empty(cls, v: list[str]) -> list[str]:
        lines = [line.strip() for line in v if line.strip()]
        if not lines:
            raise ValueError("missing or empty lines")
        return lines


class _TextPayload(BaseModel):
    segments: list[_TextFragment]

    @model_validator(mode="before")
    @classmethod
    def accept_fragments_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and "segments" not in data and "fragments" in data:
            return {**data, "segments": data["fragments"]}
        return data


def parse_text_response(text: str, chunk_index: int) -> list[list[str]]:
    """Parse a text-only payload into the ordered list of line groups.

    Accepts ``{"segments": [{"lines": [...]}]}`` or
    ``{"fragments": [{"text": ...}]}``.
    """
    data = load_json_object(text, chunk_index)
    try:
        payload = _TextPayload.model_validate(data)
    except ValidationError as e:
        raise CorrectionParseError(f"invalid response schema: {_describe(e)}", chunk_index) from e
    return [fragment.lines for fragment in payload.segments]
