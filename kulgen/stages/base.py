"""Stage abstractions shared by the concrete synthesis steps."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Sequence

from ..errors import GenerationError, UnknownSynthesisError, error_from_result
from ..services.base import (
    BlockedResult,
    ImageResult,
    OutputModality,
    Part,
    ProviderFailure,
    SynthesisGateway,
    SynthesisResult,
    TextInsteadOfImageResult,
    TextResult,
)
from ..utils.files import sha256_hex
from ..utils.run_logger import RunLogger

logger = logging.getLogger(__name__)


def summarize_result(result: SynthesisResult) -> Dict[str, Any]:
    """Return a JSON-friendly view of a gateway result without raw image bytes."""
    summary: Dict[str, Any] = {"kind": type(result).__name__}
    if isinstance(result, ImageResult):
        summary["image"] = {
            "mime_type": result.image.mime_type,
            "bytes": len(result.image.data),
            "sha256": sha256_hex(result.image.data),
        }
        if result.text:
            summary["text"] = result.text
    elif isinstance(result, (TextResult, TextInsteadOfImageResult)):
        summary["text"] = result.text
    elif isinstance(result, BlockedResult):
        summary["reason"] = result.reason
    elif isinstance(result, ProviderFailure):
        summary["code"] = result.code
        summary["message"] = result.message
    return summary


@dataclass(slots=True)
class BaseStage:
    """Convenience base for stages: prompt logging, one gateway call, error labelling."""

    name: str
    run_id: str
    logger: RunLogger
    gateway: SynthesisGateway
    rate_limit_retries: int = 0
    rate_limit_backoff_sec: float = 2.0

    def _step_name(self, tag: Optional[str]) -> str:
        return f"{self.name}-{tag}" if tag else self.name

    def log_prompt(self, prompt: str, tag: Optional[str] = None) -> None:
        """Persist the prompt."""
        self.logger.log_prompt(self.run_id, self._step_name(tag), prompt)

    def log_response(self, response: Dict[str, Any], tag: Optional[str] = None) -> None:
        """Persist the response."""
        self.logger.log_response(self.run_id, self._step_name(tag), response)

    @contextmanager
    def stage_errors(self) -> Iterator[None]:
        """Label every failure raised inside the block with this stage's name."""
        try:
            yield
        except GenerationError as exc:
            raise exc.with_stage(self.name)
        except Exception as exc:
            raise UnknownSynthesisError(str(exc) or type(exc).__name__, stage=self.name) from exc

    async def submit(
        self,
        parts: Sequence[Part],
        modality: OutputModality,
        *,
        tag: Optional[str] = None,
    ) -> SynthesisResult:
        """Call the gateway, retrying only rate-limited answers when configured."""
        started = time.perf_counter()
        attempt = 0
        while True:
            result = await self.gateway.submit(parts, modality, stage=self.name)
            if (
                isinstance(result, ProviderFailure)
                and result.code == 429
                and attempt < self.rate_limit_retries
            ):
                delay = self.rate_limit_backoff_sec * (2**attempt)
                logger.warning("%s rate limited; retrying in %.1fs", self._step_name(tag), delay)
                attempt += 1
                await asyncio.sleep(delay)
                continue
            break

        elapsed = time.perf_counter() - started
        logger.info("%s finished in %.2fs (%s)", self._step_name(tag), elapsed, type(result).__name__)
        self.log_response(summarize_result(result), tag)
        return result

    async def request_image(self, parts: Sequence[Part], *, tag: Optional[str] = None) -> ImageResult:
        result = await self.submit(parts, OutputModality.IMAGE, tag=tag)
        if not isinstance(result, ImageResult):
            raise error_from_result(result)
        return result

    async def request_text(self, parts: Sequence[Part], *, tag: Optional[str] = None) -> str:
        result = await self.submit(parts, OutputModality.TEXT, tag=tag)
        if not isinstance(result, TextResult):
            raise error_from_result(result)
        return result.text
