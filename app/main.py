"""
Command-line runner for transcript refinement.

    python -m app.main segments.json -o refined.json [--dictionary dict.json]

The input is a JSON list of segments
(``text``, ``start_time_seconds``, ``end_time_seconds``, ``confidence``).
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from app.core.config import settings
from app.core.errors import TranscriptEngineError
from app.core.logging import setup_logging
from app.services.dictionary import load_dictionary
from app.services.refinement import build_full_text, refine_transcript
from app.transcript.models import Segment

logger = logging.getLogger(__name__)

_segments_adapter = TypeAdapter(list[Segment])


def load_segments(path: Path) -> list[Segment]:
    return _segments_adapter.validate_json(path.read_bytes())


def _log_progress(completed: int, total: int) -> None:
    logger.info(f"Progress: {completed}/{total} chunks corrected")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=settings.PROJECT_NAME)
    parser.add_argument("segments", type=Path, help="JSON file with the time-coded segments")
    parser.add_argument("-o", "--output", type=Path, help="Where to write the refined sentences (default: stdout)")
    parser.add_argument("--dictionary", type=Path, default=settings.DICTIONARY_PATH, help="Correction dictionary JSON")
    parser.add_argument("--max-chunk-segments", type=int, default=settings.MAX_CHUNK_SEGMENTS)
    parser.add_argument("--overlap", type=int, default=settings.CHUNK_OVERLAP)
    parser.add_argument("--concurrency", type=int, default=settings.CONCURRENCY_LIMIT)
    parser.add_argument("--text", type=Path, help="Also write the plain corrected text to this file")
    parser.add_argument("--separator", default=" ", help="Joins sentences in --text output (use '' for CJK)")
    return parser


async def run(args: argparse.Namespace) -> int:
    try:
        segments = load_segments(args.segments)
    except (OSError, ValidationError) as e:
        logger.error(f"Could not read segments from {args.segments}: {e}")
        return 2

    logger.info(f"Refining {len(segments)} segments from {args.segments}")
    try:
        sentences = await refine_transcript(
            segments,
            load_dictionary(args.dictionary),
            max_chunk_segments=args.max_chunk_segments,
            overlap_size=args.overlap,
            concurrency_limit=args.concurrency,
            on_progress=_log_progress,
        )
    except TranscriptEngineError as e:
        logger.error(f"Refinement failed: {e}")
        return 1

    payload = json.dumps([s.model_dump() for s in sentences], ensure_ascii=False, indent=2)
    if args.output:
        args.output.write_text(payload, encoding="utf-8")
        logger.info(f"Wrote {len(sentences)} sentences to {args.output}")
    else:
        print(payload)

    if args.text:
        args.text.write_text(build_full_text(sentences, args.separator), encoding="utf-8")
        logger.info(f"Wrote plain text to {args.text}")
    return 0


def main(argv=None) -> int:
    setup_logging(settings.DEBUG)
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
