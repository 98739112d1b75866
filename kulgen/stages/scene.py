"""Stages that place the isolated subject into scenes and re-pose results."""

from __future__ import annotations

from textwrap import dedent
from typing import List, Optional

from ..errors import InvalidRequestError
from ..services.base import ImagePart, Part, TextPart
from ..types import ArtDirection, ImageBlob, PoseMetadata
from ..utils.prompts import load_prompt
from .base import BaseStage
from .strictness import composite_directive


def _placement_section(art_direction: ArtDirection, pose: Optional[PoseMetadata]) -> str:
    if pose is None:
        return (
            "2. **Pose adjustment:** Change the subject's pose so they interact naturally and "
            "plausibly with the environment of the 'scene'. The overall pose/action theme is: "
            f'"{art_direction.pose}".'
        )
    return dedent(
        f"""\
        2. **Placement & scale (MOST IMPORTANT REQUIREMENT):**
        - **LOCATION:** Place the subject here: "{pose.location}".
        - **SCALE:** Size the subject to match: "{pose.scale}". This is CRITICAL for correct perspective.
        - **ANGLE & INTERACTION:** The subject must be at the angle "{pose.angle}" and interact naturally with that spot."""
    )


def _lighting_section(pose: Optional[PoseMetadata]) -> str:
    if pose is None or not pose.lighting:
        return (
            "4. **Lighting:** Adjust the light and shadows on the subject to match the light "
            "sources and environment of the 'scene' perfectly."
        )
    return dedent(
        f"""\
        4. **Lighting & environment harmony (IMPORTANT):**
        - **LIGHT SOURCE:** The scene is lit by "{pose.lighting}". Match the light on the subject to it.
        - **SHADOWS:** Add realistic contact shadows where the subject touches the ground or objects.
        - **COLOR MATCH:** Tune the subject's white balance and contrast to the 'scene'.
        - **LENS EFFECTS:** Add very light grain, vignette and chromatic aberration so the subject blends in."""
    )


class CompositeScene(BaseStage):
    """Composites the isolated subject into a background at an exact output size."""

    def __init__(self, run_id: str, logger, gateway, **retry) -> None:
        super().__init__(name="composite-scene", run_id=run_id, logger=logger, gateway=gateway, **retry)

    async def run(
        self,
        subject: ImageBlob,
        background: ImageBlob,
        art_direction: ArtDirection,
        width: int,
        height: int,
        *,
        pose_metadata: Optional[PoseMetadata] = None,
        face_reference: Optional[ImageBlob] = None,
        tag: Optional[str] = None,
    ) -> ImageBlob:
        with self.stage_errors():
            if width <= 0 or height <= 0:
                raise InvalidRequestError(f"output size must be positive, got {width}x{height}")

            directive = composite_directive(art_direction.identity_strictness)
            face_clause = (
                "To guarantee this, keep checking against the 'primary reference face'."
                if face_reference is not None
                else ""
            )
            additional = art_direction.additional_prompt.strip()
            prompt = load_prompt(
                "composite_scene",
                {
                    "identity_core": directive.core,
                    "identity_face": directive.face,
                    "face_reference_clause": face_clause,
                    "placement_section": _placement_section(art_direction, pose_metadata),
                    "expression": art_direction.expression,
                    "lighting_section": _lighting_section(pose_metadata),
                    "width": width,
                    "height": height,
                    "style": art_direction.style.value,
                    "quality": art_direction.quality.value,
                    "additional_line": f"- Additional request: {additional}" if additional else "",
                },
            ).strip()
            self.log_prompt(prompt, tag)

            parts: List[Part] = [
                TextPart(prompt),
                TextPart("isolated subject (to composite):"),
                ImagePart.from_blob(subject),
                TextPart("scene (new background):"),
                ImagePart.from_blob(background),
            ]
            if face_reference is not None:
                parts.append(TextPart("primary reference face (for comparison):"))
                parts.append(ImagePart.from_blob(face_reference))

            result = await self.request_image(parts, tag=tag)
            return result.image


class GenerateVariant(BaseStage):
    """Re-poses a finished image while keeping identity, outfit, scene and style."""

    def __init__(self, run_id: str, logger, gateway, **retry) -> None:
        super().__init__(name="generate-variant", run_id=run_id, logger=logger, gateway=gateway, **retry)

    async def run(self, base: ImageBlob, pose: str) -> ImageBlob:
        with self.stage_errors():
            if not pose or not pose.strip():
                raise InvalidRequestError("a new pose description is required")
            prompt = load_prompt("generate_variant", {"pose": pose.strip()}).strip()
            self.log_prompt(prompt)
            result = await self.request_image(
                [
                    TextPart(prompt),
                    TextPart("original image (to create the variant from):"),
                    ImagePart.from_blob(base),
                ]
            )
            return result.image
