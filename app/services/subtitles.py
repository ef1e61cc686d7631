import logging
from typing import Optional, Sequence

from langchain_core.prompts import PromptTemplate

from app.core.config import settings
from app.core.errors import SubtitleGenerationError
from app.transcript.dispatcher import CorrectionDispatcher, Invoker
from app.transcript.keywords import KeywordPositionResolver, split_long_lines
from app.transcript.models import Chunk, RawCorrectionResult, SubtitleCue, TimedSentence
from app.transcript.parsing import parse_text_response
from app.transcript.timestamps import OffsetTimeline

logger = logging.getLogger(__name__)

# ── Subtitle Segmentation Prompt ───────────────────────────────────────────

SUBTITLE_PROMPT = PromptTemplate(
    input_variables=["sentences", "max_chars", "max_lines"],
    template="""You are a video subtitle editor.
Split the following sentences into units suitable for on-screen subtitles.

## Input
{sentences}

## Output format
Respond with JSON only, no other text:
{{
  "segments": [
    {{"lines": ["It is a really"]}},
    {{"lines": ["nice day today", "everyone"]}}
  ]
}}

## Rules
1. Each line must be at most {max_chars} characters (strict)
2. Each segment has at most {max_lines} lines (strict)
3. Do not add punctuation; subtitles do not need it
4. Split at sentence and meaning boundaries
5. Keep segments in chronological order
6. Do not omit or add any content from the input"""
)


def format_time(seconds: float) -> str:
    """``mm:ss.cc``"""
    minutes = int(seconds // 60)
    secs = seconds - minutes * 60
    return f"{minutes:02d}:{secs:05.2f}"


def filter_sentences_for_clip(
    sentences: Sequence[TimedSentence], clip_start: float, clip_end: float
) -> list[TimedSentence]:
    """Sentences overlapping ``(clip_start, clip_end)``."""
    return [
        s for s in sentences
        if s.start_time_seconds < clip_end and s.end_time_seconds > clip_start
    ]


def build_subtitle_prompt(sentences: Sequence[TimedSentence], max_chars: int, max_lines: int) -> str:
    lines = "\n".join(
        f"[{format_time(s.start_time_seconds)}-{format_time(s.end_time_seconds)}] {s.text}"
        for s in sentences
    )
    return SUBTITLE_PROMPT.format(sentences=lines, max_chars=max_chars, max_lines=max_lines)


async def generate_clip_subtitles(
    sentences: Sequence[TimedSentence],
    clip_start: float,
    clip_end: float,
    *,
    max_chars_per_line: int = settings.SUBTITLE_MAX_CHARS_PER_LINE,
    max_lines: int = settings.SUBTITLE_MAX_LINES,
    invoke: Optional[Invoker] = None,
) -> list[SubtitleCue]:
    """
    Produce subtitle cues for a clip of an already refined transcript.

    The service only returns the text split into lines; each cue's position in
    the source is recovered by keyword search and its times are interpolated
    by character count. Cue times are relative to ``clip_start``.
    """
    clip_sentences = filter_sentences_for_clip(sentences, clip_start, clip_end)
    if not clip_sentences:
        raise SubtitleGenerationError(f"No sentences found for clip range {clip_start}-{clip_end}")

    timeline = OffsetTimeline.from_sentences(clip_sentences)
    chunk = Chunk(index=0, total_chunks=1, start_index=0, end_index=len(clip_sentences) - 1)

    def build_prompt(_chunk: Chunk) -> str:
        return build_subtitle_prompt(clip_sentences, max_chars_per_line, max_lines)

    def parse(c: Chunk, response: str) -> RawCorrectionResult:
        line_groups = parse_text_response(response, c.index)
        resolver = KeywordPositionResolver(timeline.text)
        return RawCorrectionResult(chunk_index=c.index, fragments=resolver.resolve(line_groups))

    dispatcher = CorrectionDispatcher(build_prompt, parse, concurrency_limit=1, invoke=invoke)
    results = await dispatcher.dispatch([chunk])

    fragments = split_long_lines(results[chunk.index].fragments, max_chars_per_line, max_lines)
    cues = timeline.assign(fragments, origin_seconds=clip_start)
    logger.info(f"Generated {len(cues)} subtitle cue(s) for clip {clip_start:.2f}-{clip_end:.2f}")
    return cues
