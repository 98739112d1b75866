"""Per-run artifacts: every prompt sent and a summary of every answer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from .files import ensure_dir, write_json, write_text

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StepLogPaths:
    prompt_path: Path
    response_path: Path


class RunLogger:
    """Writes ``<step>-prompt.txt`` / ``<step>-response.json`` under ``runs/<run_id>``.

    Step names carry the per-background tag (``composite-scene-2``), so units
    running concurrently never write to the same file.
    """

    def __init__(self, base_dir: str | Path = "runs") -> None:
        self._base_dir = ensure_dir(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def run_dir(self, run_id: str) -> Path:
        return ensure_dir(self._base_dir / run_id)

    def step_paths(self, run_id: str, step_name: str) -> StepLogPaths:
        root = self.run_dir(run_id)
        return StepLogPaths(
            prompt_path=root / f"{step_name}-prompt.txt",
            response_path=root / f"{step_name}-response.json",
        )

    def log_prompt(self, run_id: str, step_name: str, prompt: str) -> None:
        path = write_text(self.step_paths(run_id, step_name).prompt_path, prompt)
        logger.debug("Prompt for %s written to %s", step_name, path)

    def log_response(self, run_id: str, step_name: str, response: Dict[str, Any]) -> None:
        """Persist a JSON-friendly response summary, stamped with the time it arrived."""
        payload = {"received_at": datetime.now(timezone.utc).isoformat(), **response}
        write_json(self.step_paths(run_id, step_name).response_path, payload)

    def logged_steps(self, run_id: str) -> List[str]:
        """Return the step names that have a logged response, sorted by name."""
        suffix = "-response.json"
        root = self._base_dir / run_id
        if not root.is_dir():
            return []
        return sorted(path.name[: -len(suffix)] for path in root.glob(f"*{suffix}"))
