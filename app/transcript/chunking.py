import logging
from typing import Callable, Optional, Sequence

import tiktoken

from app.core.errors import ChunkPlanningError
from app.transcript.models import Chunk, Segment

logger = logging.getLogger(__name__)

_encoding = None


def count_tokens(text: str) -> int:
    """Token count with the cl100k_base encoding (loaded on first use)."""
    global _encoding
    if _encoding is None:
        _encoding = tiktoken.get_encoding("cl100k_base")
    return len(_encoding.encode(text))


def render_segment_line(index: int, segment: Segment) -> str:
    """Render a segment the way it is sent to the correction service."""
    return (
        f"[{index}] [{segment.start_time_seconds:.2f}-{segment.end_time_seconds:.2f}] "
        f"{segment.text}"
    )


def plan_chunks(
    segments: Sequence[Segment],
    max_chunk_segments: int,
    overlap_size: int,
    max_chunk_tokens: Optional[int] = None,
    token_counter: Callable[[str], int] = count_tokens,
) -> list[Chunk]:
    """
    Split an ordered segment sequence into overlapping windows.

    Chunk i starts at ``chunks[i-1].end_index - overlap_size + 1``; the last
    chunk ends at ``N - 1``. A sequence that fits in one window produces a
    single chunk with no overlap. When ``max_chunk_tokens`` is set a window
    also closes before the segment that would push it over the token budget,
    but always keeps ``overlap_size + 1`` segments so planning advances.
    """
    if max_chunk_segments < 1:
        raise ChunkPlanningError(f"max_chunk_segments must be >= 1, got {max_chunk_segments}")
    if overlap_size < 0:
        raise ChunkPlanningError(f"overlap_size must be >= 0, got {overlap_size}")
    if overlap_size >= max_chunk_segments:
        raise ChunkPlanningError(
            f"overlap_size ({overlap_size}) must be smaller than max_chunk_segments ({max_chunk_segments})"
        )

    total = len(segments)
    if total == 0:
        return []

    token_costs: list[int] = []
    if max_chunk_tokens is not None:
        token_costs = [token_counter(render_segment_line(i, s)) for i, s in enumerate(segments)]

    bounds: list[tuple[int, int]] = []
    start = 0
    while True:
        end = min(start + max_chunk_segments - 1, total - 1)
        if token_costs:
            end = _shrink_to_budget(token_costs, start, end, max_chunk_tokens, overlap_size)
        bounds.append((start, end))
        if end >= total - 1:
            break
        start = end - overlap_size + 1

    chunks = [
        Chunk(index=i, total_chunks=len(bounds), start_index=s, end_index=e)
        for i, (s, e) in enumerate(bounds)
    ]
    logger.info(
        f"Planned {len(chunks)} chunk(s) for {total} segments "
        f"(max {max_chunk_segments}, overlap {overlap_size})"
    )
    return chunks


def _shrink_to_budget(costs: list[int], start: int, end: int, budget: int, overlap_size: int) -> int:
    """Pull ``end`` back until the window fits the token budget."""
    min_end = min(start + overlap_size, end)
    used = sum(costs[start:min_end + 1])
    if used > budget:
        logger.warning(
            f"Segments {start}-{min_end} exceed the token budget ({used} > {budget}); "
            f"keeping them together so planning can advance"
        )
    for idx in range(min_end + 1, end + 1):
        used += costs[idx]
        if used > budget:
            return idx - 1
    return end
