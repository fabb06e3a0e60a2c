"""Best-effort normalisation of raw completion text before JSON parsing.

Models often answer with Python-style single quotes or wrap the JSON in a
Markdown code fence. The repair pass is deliberately small:

1. every ``'`` becomes ``"``;
2. a ``"`` sitting between two word characters is turned back into ``'``
   (the apostrophe in ``France's`` or ``don't``);
3. a leading ```` ```json ```` / ```` ``` ```` fence and a trailing ```` ``` ````
   fence are removed.

It is a heuristic, not a guarantee: it never raises, and text that is already
valid double-quoted JSON passes through unchanged, surrounding whitespace
included.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from quizgen.services.llm_service.errors import MalformedOutputError

logger = logging.getLogger(__name__)

_IN_WORD_QUOTE_RE = re.compile(r"(\w)\"(\w)")
_OPEN_FENCE_RE = re.compile(r"^\s*```(?:json|JSON)?[ \t]*\n?")
_CLOSE_FENCE_RE = re.compile(r"\n?[ \t]*```\s*$")


def swap_quotes(text: str) -> str:
    """Replace single quotes with double quotes."""
    return text.replace("'", '"')


def restore_apostrophes(text: str) -> str:
    """Undo the quote swap inside contractions and possessives."""
    return _IN_WORD_QUOTE_RE.sub(r"\1'\2", text)


def strip_code_fences(text: str) -> str:
    """Remove one leading and one trailing Markdown fence marker."""
    text = _OPEN_FENCE_RE.sub("", text, count=1)
    return _CLOSE_FENCE_RE.sub("", text, count=1)


def repair_completion_text(text: str) -> str:
    """Apply all repair heuristics in order."""
    text = swap_quotes(text)
    text = restore_apostrophes(text)
    return strip_code_fences(text)


def parse_completion(text: str, lenient: bool = False) -> Any:
    """Repair *text* and parse it as JSON.

    Args:
        text: Raw completion text.
        lenient: Fall back to the ``json_repair`` library when strict parsing
            fails. Only objects and arrays are accepted from the fallback.

    Raises:
        MalformedOutputError: If no JSON value could be recovered.
    """
    repaired = repair_completion_text(text)
    try:
        return json.loads(repaired)
    except (ValueError, RecursionError) as exc:
        error = exc

    if lenient:
        import json_repair

        try:
            recovered = json_repair.loads(repaired)
        except Exception as exc:
            logger.debug(f"json_repair fallback failed: {exc}")
        else:
            if isinstance(recovered, (dict, list)) and recovered:
                logger.info("Completion recovered by json_repair fallback")
                return recovered

    raise MalformedOutputError(f"json-parse-error: {error}") from error
