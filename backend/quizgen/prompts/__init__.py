"""Prompt template loader.

Each ``get_*_prompts`` function loads ``.txt`` templates from this
package directory and substitutes placeholders.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Dict, Tuple

_DIR = os.path.dirname(__file__)


@lru_cache(maxsize=32)
def _load(filename: str) -> str:
    """Read a template file, caching the result."""
    with open(os.path.join(_DIR, filename), encoding="utf-8") as f:
        return f.read()


def _render(filename: str, subs: Dict[str, str]) -> str:
    """Load *filename* and apply all substitutions."""
    text = _load(filename)
    for key, val in subs.items():
        text = text.replace(key, val)
    return text.strip()


# ── Public helpers ────────────────────────────────────────


def get_multiple_choice_prompts(topic: str) -> Tuple[str, str]:
    """Return ``(system_prompt, user_prompt)`` for a multiple-choice question."""
    return (
        _render("mcq_system_prompt.txt", {}),
        _render("mcq_user_prompt.txt", {"{{TOPIC}}": topic}),
    )


def get_open_ended_prompts(topic: str) -> Tuple[str, str]:
    """Return ``(system_prompt, user_prompt)`` for an open-ended question."""
    return (
        _render("open_ended_system_prompt.txt", {}),
        _render("open_ended_user_prompt.txt", {"{{TOPIC}}": topic}),
    )
