"""Stages producing the master subject and its isolated cut-out."""

from __future__ import annotations

from typing import List, Optional

from ..services.base import ImagePart, Part, TextPart
from ..types import ArtDirection, CharacterProfile, ImageBlob, ImageSource
from ..utils.prompts import load_prompt
from .base import BaseStage
from .strictness import master_directive


class CreateMasterSubject(BaseStage):
    """Synthesises a neutral-pose, neutral-background reference of the character.

    When face photos are supplied they are attached after the prompt and the
    prompt instructs the model to let the photo win over the text description.
    """

    def __init__(self, run_id: str, logger, gateway, **retry) -> None:
        super().__init__(name="create-master-subject", run_id=run_id, logger=logger, gateway=gateway, **retry)

    async def run(
        self,
        face_description: str,
        outfit_description: str,
        profile: CharacterProfile,
        art_direction: ArtDirection,
        face_images: Optional[ImageSource] = None,
    ) -> ImageBlob:
        with self.stage_errors():
            directive = master_directive(art_direction.identity_strictness)
            variables = {
                "identity_title": directive.title,
                "identity_rule": directive.rule,
                "face_description": face_description,
                "outfit_description": outfit_description,
                "gender": profile.gender,
                "age": profile.age,
                "height": profile.height,
                "weight": profile.weight,
                "build": profile.build,
                "style": art_direction.style.value,
            }
            template = "master_subject_reference" if face_images else "master_subject_text"
            prompt = load_prompt(template, variables).strip()
            self.log_prompt(prompt)

            parts: List[Part] = [TextPart(prompt)]
            if face_images:
                parts.append(TextPart("primary reference face:"))
                parts.append(ImagePart.from_blob(face_images.primary.image))
                for index, extra in enumerate(face_images.extras, start=1):
                    parts.append(TextPart(f"additional face {index}:"))
                    parts.append(ImagePart.from_blob(extra.image))

            result = await self.request_image(parts)
            return result.image


class IsolateSubject(BaseStage):
    """Removes the neutral background from the master subject, without shadows."""

    def __init__(self, run_id: str, logger, gateway, **retry) -> None:
        super().__init__(name="isolate-subject", run_id=run_id, logger=logger, gateway=gateway, **retry)

    async def run(self, master: ImageBlob) -> ImageBlob:
        with self.stage_errors():
            prompt = load_prompt("isolate_subject").strip()
            self.log_prompt(prompt)
            result = await self.request_image([TextPart(prompt), ImagePart.from_blob(master)])
            return result.image
