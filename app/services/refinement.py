import logging
from typing import Optional, Sequence

from langchain_core.prompts import PromptTemplate

from app.core.config import settings
from app.services.dictionary import EMPTY_DICTIONARY, format_dictionary_section
from app.transcript.chunking import plan_chunks, render_segment_line
from app.transcript.dispatcher import CorrectionDispatcher, Invoker, ProgressSink
from app.transcript.models import Chunk, CorrectionDictionary, RawCorrectionResult, Segment, TimedSentence
from app.transcript.parsing import parse_indexed_response
from app.transcript.reconciler import OverlapReconciler
from app.transcript.timestamps import assign_index_timestamps

logger = logging.getLogger(__name__)

# ── Refinement Prompt ──────────────────────────────────────────────────────

REFINEMENT_PROMPT = PromptTemplate(
    input_variables=["dictionary", "chunk_info", "previous_context", "segments"],
    template="""You are an assistant that corrects speech-recognition transcripts.

## Known-term dictionary
Always replace the wrong spellings on the left with the correct term:
{dictionary}

## Task
1. Merge the word-level segments into natural sentences
2. Fix proper nouns using the dictionary
3. Fix homophones using the surrounding context
4. Keep the order of the input; process all segments, do not skip any
5. Record the first and last segment index each sentence was merged from
{chunk_info}{previous_context}
## Input format
[index] [start-end] text

## Input
{segments}

## Output format (JSON)
Respond with JSON only, no explanations:
{{
  "sentences": [
    {{"text": "Corrected sentence.", "start": 0, "end": 3}}
  ]
}}"""
)

CHUNK_INFO_TEMPLATE = """
## Chunk information
This is chunk {position} of {total} chunks. It covers segment index {start} to {end}.
Use the absolute indices shown in the input.
"""

PREVIOUS_CONTEXT_TEMPLATE = """
## End of the previous chunk (context only)
{text}
Do not include this text in the output.
"""


def build_chunk_prompt(
    chunk: Chunk,
    segments: Sequence[Segment],
    dictionary: CorrectionDictionary = EMPTY_DICTIONARY,
    previous_context: str = "",
) -> str:
    chunk_info = ""
    if chunk.total_chunks > 1:
        chunk_info = CHUNK_INFO_TEMPLATE.format(
            position=chunk.index + 1, total=chunk.total_chunks,
            start=chunk.start_index, end=chunk.end_index,
        )
    context = PREVIOUS_CONTEXT_TEMPLATE.format(text=previous_context) if previous_context else ""
    lines = "\n".join(
        render_segment_line(i, segments[i]) for i in range(chunk.start_index, chunk.end_index + 1)
    )
    return REFINEMENT_PROMPT.format(
        dictionary=format_dictionary_section(dictionary),
        chunk_info=chunk_info,
        previous_context=context,
        segments=lines,
    )


def previous_context_for(chunk: Chunk, segments: Sequence[Segment], max_segments: int) -> str:
    """Raw text of the segments just before the chunk."""
    if chunk.start_index == 0 or max_segments <= 0:
        return ""
    first = max(0, chunk.start_index - max_segments)
    return " ".join(s.text for s in segments[first:chunk.start_index])


def build_full_text(sentences: Sequence[TimedSentence], separator: str = " ") -> str:
    """Plain transcript text; pass ``separator=""`` for scripts written without spaces."""
    return separator.join(s.text for s in sentences)


async def refine_transcript(
    segments: Sequence[Segment],
    dictionary: Optional[CorrectionDictionary] = None,
    *,
    max_chunk_segments: int = settings.MAX_CHUNK_SEGMENTS,
    overlap_size: int = settings.CHUNK_OVERLAP,
    max_chunk_tokens: Optional[int] = settings.MAX_CHUNK_TOKENS,
    concurrency_limit: int = settings.CONCURRENCY_LIMIT,
    previous_context_segments: int = settings.PREVIOUS_CONTEXT_SEGMENTS,
    invoke: Optional[Invoker] = None,
    on_progress: Optional[ProgressSink] = None,
) -> list[TimedSentence]:
    """
    Correct a long transcript into time-coded sentences.

    Plans overlapping chunks, sends them to the correction service in
    bounded batches, merges the results across overlaps and looks each
    sentence's times up on its source segments. Any chunk failure raises;
    nothing is returned in that case.
    """
    dictionary = dictionary or EMPTY_DICTIONARY
    chunks = plan_chunks(segments, max_chunk_segments, overlap_size, max_chunk_tokens)
    if not chunks:
        return []

    def build_prompt(chunk: Chunk) -> str:
        return build_chunk_prompt(
            chunk, segments, dictionary,
            previous_context_for(chunk, segments, previous_context_segments),
        )

    def parse(chunk: Chunk, response: str) -> RawCorrectionResult:
        return parse_indexed_response(response, chunk.index)

    dispatcher = CorrectionDispatcher(
        build_prompt, parse,
        concurrency_limit=concurrency_limit,
        invoke=invoke,
        on_progress=on_progress,
    )
    results = await dispatcher.dispatch(chunks)

    sentences = OverlapReconciler(overlap_size).reconcile(chunks, results)
    timed = assign_index_timestamps(sentences, segments)
    await dispatcher.drain_progress()
    logger.info(f"Refined {len(segments)} segments into {len(timed)} sentences")
    return timed
