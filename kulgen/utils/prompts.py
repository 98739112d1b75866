"""Prompt templates shipped in ``kulgen/prompts``.

Templates use ``{{name}}`` placeholders. Rendering is single-pass, so text
substituted from user input is never itself expanded.
"""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import FrozenSet, Mapping

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"
_PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@lru_cache(maxsize=None)
def read_template(name: str) -> str:
    path = PROMPTS_DIR / f"{name}.txt"
    if not path.is_file():
        raise FileNotFoundError(f"no prompt template named {name!r} in {PROMPTS_DIR}")
    return path.read_text(encoding="utf-8")


def template_placeholders(name: str) -> FrozenSet[str]:
    """Return the placeholder names used by template ``name``."""
    return frozenset(_PLACEHOLDER_PATTERN.findall(read_template(name)))


def load_prompt(name: str, variables: Mapping[str, object] | None = None) -> str:
    """Render template ``name``; every placeholder must be supplied."""
    variables = variables or {}
    missing = template_placeholders(name) - set(variables)
    if missing:
        raise KeyError(f"prompt {name!r} is missing values for: {', '.join(sorted(missing))}")

    def _replace(match: re.Match[str]) -> str:
        value = variables[match.group(1)]
        return "" if value is None else str(value)

    return _PLACEHOLDER_PATTERN.sub(_replace, read_template(name))


__all__ = ["PROMPTS_DIR", "load_prompt", "read_template", "template_placeholders"]
