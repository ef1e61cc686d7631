import logging
import re
import textwrap
from difflib import SequenceMatcher
from typing import Sequence

from app.transcript.models import Fragment

logger = logging.getLogger(__name__)

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")

# How far past the cursor the fallback matcher is allowed to look,
# as a multiple of the fragment length.
FALLBACK_WINDOW_FACTOR = 3
FALLBACK_MIN_WINDOW = 50


def normalize_text(text: str) -> str:
    """Lowercase, drop punctuation, collapse whitespace."""
    text = _PUNCTUATION.sub("", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def build_normalized_text(texts: Sequence[str]) -> str:
    """Normalized rendering of a run of source texts, joined by single spaces."""
    return " ".join(t for t in (normalize_text(text) for text in texts) if t)


class KeywordPositionResolver:
    """
    Locate corrected text fragments inside the normalized source text.

    The search cursor only moves forward, so two identical fragments are
    matched to two successive occurrences instead of the same one.
    """

    def __init__(self, source_text: str):
        self.source_text = source_text
        self.cursor = 0

    def resolve(self, line_groups: Sequence[Sequence[str]]) -> list[Fragment]:
        fragments = []
        for lines in line_groups:
            start, end = self.locate(lines)
            fragments.append(Fragment(text=" ".join(lines), start_ref=start, end_ref=end, lines=list(lines)))
        return fragments

    def locate(self, lines: Sequence[str]) -> tuple[int, int]:
        """Return the ``[start, end)`` span of ``lines`` and advance the cursor."""
        candidates = []
        for joined in (" ".join(lines), "".join(lines)):
            normalized = normalize_text(joined)
            if normalized not in candidates:
                candidates.append(normalized)

        target = candidates[0]
        if not target:
            return self.cursor, self.cursor

        for candidate in candidates:
            pos = self.source_text.find(candidate, self.cursor)
            if pos != -1:
                return self._advance(pos, pos + len(candidate))

        start, end = self._partial_match(target)
        logger.warning(
            f"No exact match for '{target[:40]}' after position {self.cursor}; "
            f"recovered span [{start}, {end}) from partial match"
        )
        return self._advance(start, end)

    def _partial_match(self, target: str) -> tuple[int, int]:
        limit = self.cursor + max(len(target) * FALLBACK_WINDOW_FACTOR, FALLBACK_MIN_WINDOW)
        window = self.source_text[self.cursor:limit]
        match = SequenceMatcher(None, window, target, autojunk=False).find_longest_match(
            0, len(window), 0, len(target)
        )
        if match.size:
            start = max(self.cursor, self.cursor + match.a - match.b)
        else:
            start = self.cursor
        end = min(start + len(target), len(self.source_text))
        return start, max(start, end)

    def _advance(self, start: int, end: int) -> tuple[int, int]:
        self.cursor = max(self.cursor, end)
        return start, end


def wrap_line(line: str, max_chars: int) -> list[str]:
    if len(line) <= max_chars:
        return [line]
    return textwrap.wrap(line, width=max_chars, break_long_words=True, break_on_hyphens=False)


def split_long_lines(fragments: Sequence[Fragment], max_chars_per_line: int, max_lines: int) -> list[Fragment]:
    """
    Split fragments whose lines are too long for display.

    Over-long lines are wrapped, lines are regrouped into fragments of at most
    ``max_lines``, and each new fragment receives a share of the parent span
    proportional to its character count.
    """
    result: list[Fragment] = []
    for fragment in fragments:
        lines = [piece for line in fragment.lines for piece in wrap_line(line, max_chars_per_line)]
        if len(lines) <= max_lines:
            if lines != fragment.lines:
                fragment = fragment.model_copy(update={"lines": lines})
            result.append(fragment)
            continue

        groups = [lines[i:i + max_lines] for i in range(0, len(lines), max_lines)]
        logger.info(f"Split '{fragment.text[:30]}' into {len(groups)} cues")
        result.extend(_redistribute(fragment, groups))
    return result


def _redistribute(fragment: Fragment, groups: list[list[str]]) -> list[Fragment]:
    weights = [sum(len(line) for line in group) for group in groups]
    total = sum(weights)
    span = fragment.end_ref - fragment.start_ref

    pieces = []
    cumulative = 0
    start = fragment.start_ref
    for i, (group, weight) in enumerate(zip(groups, weights)):
        cumulative += weight
        if i == len(groups) - 1:
            end = fragment.end_ref
        elif total:
            end = fragment.start_ref + round(span * cumulative / total)
        else:
            end = fragment.start_ref + round(span * (i + 1) / len(groups))
        pieces.append(Fragment(text=" ".join(group), start_ref=start, end_ref=end, lines=group))
        start = end
    return pieces
