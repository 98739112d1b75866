"""Progress accounting and the observer contract for run consumers."""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from .types import PipelineRun, ProgressState, ResultItem

logger = logging.getLogger(__name__)


class ProgressSink(Protocol):
    """Receives progress events, then results, then the finished signal."""

    def on_progress(self, state: ProgressState) -> None:
        ...

    def on_results(self, items: Sequence[ResultItem]) -> None:
        ...

    def on_error(self, message: str) -> None:
        ...

    def on_finished(self, run: Optional[PipelineRun]) -> None:
        ...


class LoggingSink:
    """Default sink that reports every event through :mod:`logging`."""

    def on_progress(self, state: ProgressState) -> None:
        logger.info("[%d/%d] %s", state.current, state.total, state.label)

    def on_results(self, items: Sequence[ResultItem]) -> None:
        ok = sum(1 for item in items if item.ok)
        logger.info("%d image(s) generated, %d failed", ok, len(items) - ok)
        for item in items:
            if not item.ok:
                logger.warning("Background %s: %s", item.source_background_id, item.error)

    def on_error(self, message: str) -> None:
        logger.error("%s", message)

    def on_finished(self, run: Optional[PipelineRun]) -> None:
        if run is not None:
            logger.info("Run %s finished with status %s", run.run_id, run.status.value)


class ProgressTracker:
    """Counts dispatched steps for one run.

    The counter advances when a network-calling step is dispatched, not when
    it completes, so concurrent per-background units interleave freely.
    """

    def __init__(self, run: PipelineRun, sink: ProgressSink) -> None:
        self._run = run
        self._sink = sink
        self._current = 0

    @property
    def current(self) -> int:
        return self._current

    def dispatch(self, label: str) -> ProgressState:
        """Record one more dispatched step and emit it."""
        self._current += 1
        return self._emit(label)

    def note(self, label: str) -> ProgressState:
        """Emit an informational label without advancing the counter."""
        return self._emit(label)

    def _emit(self, label: str) -> ProgressState:
        state = ProgressState(current=self._current, total=self._run.total, label=label)
        self._run.progress = state
        self._sink.on_progress(state)
        return state
