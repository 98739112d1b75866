"""Background cleaning: remove people from a scene and record where they stood."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..errors import MalformedMetadataError
from ..services.base import ImagePart, TextPart
from ..types import ImageBlob, PoseMetadata
from ..utils.prompts import load_prompt
from .base import BaseStage

logger = logging.getLogger(__name__)

UNKNOWN_SCALE = "unknown scale"
UNKNOWN_ANGLE = "unknown angle"
UNKNOWN_LIGHTING = "unknown lighting"
UNKNOWN_LOCATION = "unknown location"

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_POSE_FIELDS = ("location", "scale", "angle", "lighting")


@dataclass(frozen=True, slots=True)
class CleanedBackground:
    image: ImageBlob
    pose: PoseMetadata


def parse_pose_metadata_strict(text: str) -> PoseMetadata:
    """Parse pose JSON, preferring a fenced code block when one is present."""
    match = _FENCED_BLOCK.search(text)
    json_text = match.group(1) if match else text.strip()
    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as exc:
        raise MalformedMetadataError(f"pose metadata is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedMetadataError("pose metadata must be a JSON object")
    missing = [key for key in _POSE_FIELDS if not isinstance(data.get(key), str)]
    if missing:
        raise MalformedMetadataError(f"pose metadata is missing string fields: {', '.join(missing)}")
    return PoseMetadata(
        location=data["location"],
        scale=data["scale"],
        angle=data["angle"],
        lighting=data["lighting"],
    )


def parse_pose_metadata(text: Optional[str]) -> PoseMetadata:
    """Lenient variant: malformed metadata degrades to a location-only record."""
    if not text or not text.strip():
        logger.warning("Background cleaning returned no pose text; using unknown placement.")
        return PoseMetadata(UNKNOWN_LOCATION, UNKNOWN_SCALE, UNKNOWN_ANGLE, UNKNOWN_LIGHTING)
    try:
        return parse_pose_metadata_strict(text)
    except MalformedMetadataError as exc:
        logger.warning("Falling back to raw pose text: %s", exc)
        return PoseMetadata(
            location=text,
            scale=UNKNOWN_SCALE,
            angle=UNKNOWN_ANGLE,
            lighting=UNKNOWN_LIGHTING,
        )


class CleanBackground(BaseStage):
    """Dual-output call: cleaned scene image plus JSON pose metadata."""

    def __init__(self, run_id: str, logger, gateway, **retry) -> None:
        super().__init__(name="clean-background", run_id=run_id, logger=logger, gateway=gateway, **retry)

    async def run(self, background: ImageBlob, *, tag: Optional[str] = None) -> CleanedBackground:
        with self.stage_errors():
            prompt = load_prompt("clean_background").strip()
            self.log_prompt(prompt, tag)
            result = await self.request_image(
                [ImagePart.from_blob(background), TextPart(prompt)],
                tag=tag,
            )
            return CleanedBackground(image=result.image, pose=parse_pose_metadata(result.text))
