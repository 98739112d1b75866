"""Saving generated images and descriptions to the local file system."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List

from .types import ResultItem
from .utils.files import atomic_write, ensure_dir, extension_for, write_text

PROMPT_KINDS = ("face", "outfit")


def save_results(items: Iterable[ResultItem], output_dir: str | Path) -> List[Path]:
    """Write every successful result image; failed placeholders are skipped."""
    directory = ensure_dir(output_dir)
    saved: List[Path] = []
    for index, item in enumerate(items, start=1):
        if not item.ok or item.image is None:
            continue
        filename = f"{index:03d}-{item.item_id}.{extension_for(item.image.mime_type)}"
        saved.append(atomic_write(directory / filename, item.image.data))
    return saved


def prompt_filename(kind: str) -> str:
    if kind not in PROMPT_KINDS:
        raise ValueError(f"prompt kind must be one of {PROMPT_KINDS}, got {kind!r}")
    return f"kulgen-{kind}-prompt.txt"


def save_prompt_text(text: str, kind: str, output_dir: str | Path) -> Path:
    """Persist a face or outfit description so it can be reused as a text source."""
    if not text:
        raise ValueError("cannot save an empty description")
    return write_text(Path(output_dir) / prompt_filename(kind), text)


def load_prompt_text(path: str | Path) -> str:
    return Path(path).read_text(encoding="utf-8").strip()
