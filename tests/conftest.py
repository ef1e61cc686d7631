import json
import os

import pytest
from unittest.mock import AsyncMock, MagicMock

# Settings require an API key at import time
os.environ.setdefault("GROQ_API_KEY", "test-key")

from app.transcript.models import CorrectionDictionary, DictionaryEntry, Segment, TimedSentence


# ── Sample Test Data ───────────────────────────────────────────────────────

SAMPLE_SEGMENTS = [
    Segment(text="hello", start_time_seconds=0.0, end_time_seconds=0.5, confidence=0.95),
    Segment(text="and welcome", start_time_seconds=0.5, end_time_seconds=1.2, confidence=0.98),
    Segment(text="to the show", start_time_seconds=1.2, end_time_seconds=2.0, confidence=0.9),
    Segment(text="today we talk", start_time_seconds=2.1, end_time_seconds=3.0, confidence=0.85),
    Segment(text="about lang chain", start_time_seconds=3.0, end_time_seconds=4.0, confidence=0.7),
    Segment(text="and pie test", start_time_seconds=4.0, end_time_seconds=5.0, confidence=0.75),
    Segment(text="thanks for", start_time_seconds=5.2, end_time_seconds=5.8, confidence=0.97),
    Segment(text="watching", start_time_seconds=5.8, end_time_seconds=6.5, confidence=0.99),
]

SAMPLE_DICTIONARY = CorrectionDictionary(
    version="1.0.0",
    description="Test dictionary",
    entries=[
        DictionaryEntry(correct="LangChain", category="library", description="LLM framework",
                        wrong_patterns=["lang chain", "long chain"]),
        DictionaryEntry(correct="pytest", category="tool", description="test runner",
                        wrong_patterns=["pie test"]),
    ],
)

SAMPLE_SENTENCES = [
    TimedSentence(text="Today is a nice day.", original_segment_indices=[0, 1, 2],
                  start_time_seconds=0.0, end_time_seconds=1.5),
    TimedSentence(text="I hope tomorrow is sunny too.", original_segment_indices=[3, 4, 5],
                  start_time_seconds=1.5, end_time_seconds=3.0),
]


def make_segments(count: int, duration: float = 1.0) -> list[Segment]:
    return [
        Segment(text=f"word{i}", start_time_seconds=i * duration, end_time_seconds=(i + 1) * duration)
        for i in range(count)
    ]


def sentences_response(*ranges: tuple[int, int]) -> str:
    """Service response with one sentence per (start, end) pair."""
    return json.dumps({
        "sentences": [{"text": f"Sentence {s}-{e}.", "start": s, "end": e} for s, e in ranges]
    })


# ── Mock Fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def mock_llm():
    """Mock LLM for testing without API calls."""
    mock = AsyncMock()
    mock_response = MagicMock()
    mock_response.content = sentences_response((0, 2), (3, 5), (6, 7))
    mock.ainvoke = AsyncMock(return_value=mock_response)
    return mock
