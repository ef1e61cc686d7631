"""
Overlap-aware merge of per-chunk correction results.

The merge is a left fold over chunks in ascending index order. Its state is
the watermark (highest segment index already emitted, starting at -1) and
the accepted sentences. A fragment is accepted iff every index it covers is
above the watermark and at or below the chunk's cutoff; the cutoff drops the
trailing overlap of every chunk except the last. The first chunk to reach an
index wins it.
"""
import logging
from functools import reduce
from typing import Mapping, NamedTuple, Sequence

from app.core.errors import ReconciliationInvariantViolation
from app.transcript.models import Chunk, Fragment, RawCorrectionResult, ReconciledSentence

logger = logging.getLogger(__name__)


class MergeState(NamedTuple):
    watermark: int
    accepted: tuple[ReconciledSentence, ...]


INITIAL_STATE = MergeState(watermark=-1, accepted=())


def chunk_cutoff(chunk: Chunk, overlap_size: int) -> int:
    """Last segment index a chunk may contribute."""
    if chunk.is_last:
        return chunk.end_index
    return chunk.end_index - overlap_size


def accepts(fragment: Fragment, watermark: int, cutoff: int) -> bool:
    return fragment.min_ref > watermark and fragment.max_ref <= cutoff


class OverlapReconciler:
    def __init__(self, overlap_size: int):
        self.overlap_size = overlap_size

    def reconcile(
        self,
        chunks: Sequence[Chunk],
        results: Mapping[int, RawCorrectionResult],
    ) -> list[ReconciledSentence]:
        missing = [c.index for c in chunks if c.index not in results]
        if missing:
            raise ReconciliationInvariantViolation(f"no correction result for chunk(s) {missing}")

        ordered = sorted(chunks, key=lambda c: c.index)
        state = reduce(lambda s, c: self._merge_chunk(s, c, results[c.index]), ordered, INITIAL_STATE)

        sentences = list(state.accepted)
        verify_monotonic(sentences)
        return sentences

    def _merge_chunk(self, state: MergeState, chunk: Chunk, result: RawCorrectionResult) -> MergeState:
        cutoff = chunk_cutoff(chunk, self.overlap_size)
        watermark_before = state.watermark

        def step(s: MergeState, fragment: Fragment) -> MergeState:
            if not accepts(fragment, s.watermark, cutoff):
                logger.debug(
                    f"Chunk {chunk.index}: dropped [{fragment.min_ref}, {fragment.max_ref}] "
                    f"(watermark {s.watermark}, cutoff {cutoff})"
                )
                return s
            sentence = ReconciledSentence(
                text=fragment.text,
                original_segment_indices=list(range(fragment.min_ref, fragment.max_ref + 1)),
            )
            return MergeState(max(s.watermark, fragment.max_ref), s.accepted + (sentence,))

        new_state = reduce(step, result.fragments, state)
        accepted = len(new_state.accepted) - len(state.accepted)
        logger.info(
            f"Chunk {chunk.index}: accepted {accepted}/{len(result.fragments)} fragment(s), "
            f"watermark {watermark_before} -> {new_state.watermark}"
        )

        # Indices skipped here are never revisited by later chunks
        if accepted:
            first_new = new_state.accepted[len(state.accepted)].original_segment_indices[0]
            if first_new > watermark_before + 1:
                logger.warning(
                    f"Chunk {chunk.index}: segments {watermark_before + 1}-{first_new - 1} "
                    f"were not covered by any accepted fragment"
                )
        return new_state


def verify_monotonic(sentences: Sequence[ReconciledSentence]) -> None:
    """Raise if any segment index is reused or out of order across sentences."""
    for prev, curr in zip(sentences, sentences[1:]):
        if not prev.original_segment_indices or not curr.original_segment_indices:
            continue
        if max(prev.original_segment_indices) >= min(curr.original_segment_indices):
            raise ReconciliationInvariantViolation(
                f"sentence '{curr.text[:30]}' reuses or precedes indices of '{prev.text[:30]}'"
            )
