import json
import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from app.core.errors import DictionaryError
from app.transcript.models import CorrectionDictionary

logger = logging.getLogger(__name__)

EMPTY_DICTIONARY = CorrectionDictionary(version="0", description="empty", entries=[])


def load_dictionary(path: Optional[Union[str, Path]]) -> CorrectionDictionary:
    """
    Load a known-term correction dictionary from JSON.

    Expected shape::

        {"version": "1.0.0", "description": "...",
         "entries": [{"correct": "...", "category": "...",
                      "description": "...", "wrongPatterns": ["..."]}]}

    A missing file is not an error: correction simply runs without one.
    """
    if not path:
        return EMPTY_DICTIONARY

    dict_path = Path(path)
    if not dict_path.is_file():
        logger.warning(f"Dictionary file not found: {dict_path}. Continuing without one.")
        return EMPTY_DICTIONARY

    try:
        data = json.loads(dict_path.read_text(encoding="utf-8"))
        dictionary = CorrectionDictionary.model_validate(data)
    except json.JSONDecodeError as e:
        raise DictionaryError(f"Dictionary {dict_path} is not valid JSON: {e}") from e
    except ValidationError as e:
        raise DictionaryError(f"Dictionary {dict_path} has an invalid shape: {e}") from e

    logger.info(f"Loaded dictionary v{dictionary.version} with {len(dictionary.entries)} entries")
    return dictionary


def format_dictionary_section(dictionary: CorrectionDictionary) -> str:
    """One line per entry: ``wrong1, wrong2 → correct (description)``."""
    lines = []
    for entry in dictionary.entries:
        wrong = ", ".join(entry.wrong_patterns)
        line = f"- {wrong} → {entry.correct}"
        if entry.description:
            line += f" ({entry.description})"
        lines.append(line)
    return "\n".join(lines) if lines else "(no dictionary entries)"
