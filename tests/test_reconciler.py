import pytest
from app.core.errors import ReconciliationInvariantViolation
from app.transcript.chunking import plan_chunks
from app.transcript.models import Chunk, Fragment, RawCorrectionResult, ReconciledSentence
from app.transcript.reconciler import OverlapReconciler, chunk_cutoff, verify_monotonic
from tests.conftest import make_segments


def result(chunk_index, *ranges):
    return RawCorrectionResult(
        chunk_index=chunk_index,
        fragments=[Fragment(text=f"{s}-{e}", start_ref=s, end_ref=e) for s, e in ranges],
    )


def spans(sentences):
    return [(s.original_segment_indices[0], s.original_segment_indices[-1]) for s in sentences]


class TestChunkCutoff:
    def test_non_last_chunk_excludes_overlap(self):
        chunk = Chunk(index=0, total_chunks=2, start_index=0, end_index=5)
        assert chunk_cutoff(chunk, 2) == 3

    def test_last_chunk_keeps_everything(self):
        chunk = Chunk(index=1, total_chunks=2, start_index=4, end_index=9)
        assert chunk_cutoff(chunk, 2) == 9


class TestOverlapReconciler:
    """Test watermark-based merging across chunk overlaps."""

    def test_documented_boundary_example(self):
        chunks = plan_chunks(make_segments(10), max_chunk_segments=6, overlap_size=2)
        results = {
            0: result(0, (0, 2), (3, 5)),
            1: result(1, (4, 6), (7, 9)),
        }
        sentences = OverlapReconciler(2).reconcile(chunks, results)
        assert spans(sentences) == [(0, 2), (4, 6), (7, 9)]

    def test_indices_are_expanded_ranges(self):
        chunks = plan_chunks(make_segments(4), max_chunk_segments=10, overlap_size=2)
        sentences = OverlapReconciler(2).reconcile(chunks, {0: result(0, (0, 3))})
        assert sentences[0].original_segment_indices == [0, 1, 2, 3]
        assert sentences[0].text == "0-3"

    def test_result_order_does_not_matter(self):
        chunks = plan_chunks(make_segments(10), max_chunk_segments=6, overlap_size=2)
        forward = {0: result(0, (0, 2), (3, 5)), 1: result(1, (3, 4), (5, 9))}
        backward = dict(reversed(list(forward.items())))
        reconciler = OverlapReconciler(2)
        assert reconciler.reconcile(chunks, forward) == reconciler.reconcile(chunks, backward)
        assert spans(reconciler.reconcile(chunks, forward)) == [(0, 2), (3, 4), (5, 9)]

    def test_duplicate_from_overlap_emitted_once(self):
        chunks = plan_chunks(make_segments(10), max_chunk_segments=6, overlap_size=2)
        results = {
            0: result(0, (0, 1), (2, 3)),
            1: result(1, (2, 3), (4, 9)),
        }
        sentences = OverlapReconciler(2).reconcile(chunks, results)
        assert spans(sentences) == [(0, 1), (2, 3), (4, 9)]

    def test_fragment_straddling_watermark_rejected(self):
        chunks = plan_chunks(make_segments(10), max_chunk_segments=6, overlap_size=2)
        results = {
            0: result(0, (0, 3)),
            1: result(1, (3, 5), (6, 9)),
        }
        sentences = OverlapReconciler(2).reconcile(chunks, results)
        assert spans(sentences) == [(0, 3), (6, 9)]

    def test_chunk_with_nothing_accepted_keeps_watermark(self):
        chunks = plan_chunks(make_segments(14), max_chunk_segments=6, overlap_size=2)
        # chunks: [0,5], [4,9], [8,13]
        results = {
            0: result(0, (0, 3)),
            1: result(1, (4, 9)),  # beyond cutoff 7: dropped
            2: result(2, (8, 13)),
        }
        sentences = OverlapReconciler(2).reconcile(chunks, results)
        assert spans(sentences) == [(0, 3), (8, 13)]

    def test_reversed_refs_are_normalized(self):
        chunks = plan_chunks(make_segments(5), max_chunk_segments=10, overlap_size=1)
        sentences = OverlapReconciler(1).reconcile(chunks, {0: result(0, (2, 0), (3, 4))})
        assert spans(sentences) == [(0, 2), (3, 4)]

    def test_output_is_strictly_increasing(self):
        chunks = plan_chunks(make_segments(40), max_chunk_segments=10, overlap_size=3)
        results = {}
        for chunk in chunks:
            ranges = [(i, min(i + 1, chunk.end_index)) for i in range(chunk.start_index, chunk.end_index + 1, 2)]
            results[chunk.index] = result(chunk.index, *ranges)
        sentences = OverlapReconciler(3).reconcile(chunks, results)
        for prev, curr in zip(sentences, sentences[1:]):
            assert max(prev.original_segment_indices) < min(curr.original_segment_indices)

    def test_missing_chunk_result(self):
        chunks = plan_chunks(make_segments(10), max_chunk_segments=6, overlap_size=2)
        with pytest.raises(ReconciliationInvariantViolation, match=r"\[1\]"):
            OverlapReconciler(2).reconcile(chunks, {0: result(0, (0, 2))})


class TestVerifyMonotonic:
    def test_accepts_increasing(self):
        verify_monotonic([
            ReconciledSentence(text="a", original_segment_indices=[0, 1]),
            ReconciledSentence(text="b", original_segment_indices=[2]),
        ])

    def test_rejects_reuse(self):
        with pytest.raises(ReconciliationInvariantViolation):
            verify_monotonic([
                ReconciledSentence(text="a", original_segment_indices=[0, 1]),
                ReconciledSentence(text="b", original_segment_indices=[1, 2]),
            ])
