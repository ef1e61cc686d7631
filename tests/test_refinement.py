import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from app.core.errors import CorrectionParseError, CorrectionServiceError
from app.services.refinement import (
    build_chunk_prompt,
    build_full_text,
    previous_context_for,
    refine_transcript,
)
from app.transcript.models import Chunk
from tests.conftest import SAMPLE_DICTIONARY, SAMPLE_SEGMENTS, make_segments, sentences_response


class TestChunkPrompt:
    """Test correction prompt building."""

    def test_includes_dictionary_section(self):
        chunk = Chunk(index=0, total_chunks=1, start_index=0, end_index=7)
        prompt = build_chunk_prompt(chunk, SAMPLE_SEGMENTS, SAMPLE_DICTIONARY)
        assert "lang chain, long chain → LangChain (LLM framework)" in prompt
        assert "pie test → pytest (test runner)" in prompt

    def test_includes_indexed_segments(self):
        chunk = Chunk(index=0, total_chunks=1, start_index=0, end_index=7)
        prompt = build_chunk_prompt(chunk, SAMPLE_SEGMENTS, SAMPLE_DICTIONARY)
        assert "[0] [0.00-0.50] hello" in prompt
        assert "[4] [3.00-4.00] about lang chain" in prompt
        assert "[7] [5.80-6.50] watching" in prompt

    def test_output_format_is_literal_json(self):
        chunk = Chunk(index=0, total_chunks=1, start_index=0, end_index=7)
        prompt = build_chunk_prompt(chunk, SAMPLE_SEGMENTS)
        assert '"sentences"' in prompt
        assert '{"text": "Corrected sentence.", "start": 0, "end": 3}' in prompt

    def test_single_chunk_has_no_chunk_info(self):
        chunk = Chunk(index=0, total_chunks=1, start_index=0, end_index=7)
        assert "## Chunk information" not in build_chunk_prompt(chunk, SAMPLE_SEGMENTS)

    def test_chunk_info_uses_absolute_indices(self):
        segments = make_segments(60)
        chunk = Chunk(index=2, total_chunks=10, start_index=50, end_index=52)
        prompt = build_chunk_prompt(chunk, segments)
        assert "chunk 3 of 10" in prompt
        assert "segment index 50 to 52" in prompt
        assert "[50]" in prompt and "[52]" in prompt
        assert "[49]" not in prompt and "[53]" not in prompt

    def test_previous_context_section(self):
        chunk = Chunk(index=1, total_chunks=3, start_index=4, end_index=7)
        prompt = build_chunk_prompt(chunk, SAMPLE_SEGMENTS, previous_context="earlier words")
        assert "## End of the previous chunk" in prompt
        assert "earlier words" in prompt
        assert "Do not include this text in the output." in prompt

    def test_previous_context_for(self):
        chunk = Chunk(index=1, total_chunks=2, start_index=4, end_index=7)
        assert previous_context_for(chunk, SAMPLE_SEGMENTS, 2) == "to the show today we talk"
        first = Chunk(index=0, total_chunks=2, start_index=0, end_index=5)
        assert previous_context_for(first, SAMPLE_SEGMENTS, 2) == ""


@pytest.mark.asyncio
class TestRefineTranscript:
    """Test the index-mode pipeline end to end with a fake service."""

    async def test_single_chunk(self):
        invoke = AsyncMock(return_value=sentences_response((0, 2), (3, 5), (6, 7)))
        sentences = await refine_transcript(SAMPLE_SEGMENTS, SAMPLE_DICTIONARY, invoke=invoke)

        assert len(sentences) == 3
        assert sentences[0].start_time_seconds == 0.0
        assert sentences[0].end_time_seconds == 2.0
        assert sentences[1].original_segment_indices == [3, 4, 5]
        assert sentences[1].start_time_seconds == 2.1
        assert sentences[2].end_time_seconds == 6.5
        invoke.assert_awaited_once()

    async def test_overlapping_chunks_are_merged(self):
        segments = make_segments(10)
        responses = {
            0: sentences_response((0, 2), (3, 5)),
            1: sentences_response((4, 6), (7, 9)),
        }

        async def invoke(prompt):
            return responses[0] if "chunk 1 of 2" in prompt else responses[1]

        progress = MagicMock()
        sentences = await refine_transcript(
            segments, max_chunk_segments=6, overlap_size=2, concurrency_limit=2,
            invoke=invoke, on_progress=progress,
        )

        assert [s.original_segment_indices for s in sentences] == [[0, 1, 2], [4, 5, 6], [7, 8, 9]]
        assert [(s.start_time_seconds, s.end_time_seconds) for s in sentences] == [(0.0, 3.0), (4.0, 7.0), (7.0, 10.0)]
        progress.assert_called_once_with(2, 2)

    async def test_parse_failure_is_fatal(self):
        segments = make_segments(30)

        async def invoke(prompt):
            if "chunk 3 of" in prompt:
                return '{"sentences": [{"text": "no indices"}]}'
            return sentences_response()

        with pytest.raises(CorrectionParseError) as exc_info:
            await refine_transcript(segments, max_chunk_segments=6, overlap_size=2, invoke=invoke)
        assert exc_info.value.chunk_index == 2

    async def test_service_failure_is_fatal(self):
        invoke = AsyncMock(side_effect=TimeoutError("read timeout"))
        with pytest.raises(CorrectionServiceError, match="chunk 0"):
            await refine_transcript(SAMPLE_SEGMENTS, invoke=invoke)

    async def test_empty_transcript(self):
        invoke = AsyncMock()
        assert await refine_transcript([], invoke=invoke) == []
        invoke.assert_not_called()

    async def test_uses_shared_llm_client_by_default(self, mock_llm):
        with patch("app.core.llm_client.llm", mock_llm):
            sentences = await refine_transcript(SAMPLE_SEGMENTS)
        assert len(sentences) == 3
        prompt = mock_llm.ainvoke.call_args[0][0]
        assert "[0] [0.00-0.50] hello" in prompt


def test_build_full_text():
    from tests.conftest import SAMPLE_SENTENCES
    assert build_full_text(SAMPLE_SENTENCES) == "Today is a nice day. I hope tomorrow is sunny too."
    assert build_full_text(SAMPLE_SENTENCES, separator="") == "Today is a nice day.I hope tomorrow is sunny too."
