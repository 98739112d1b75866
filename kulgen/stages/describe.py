"""Stages that turn face and outfit photos into text descriptions."""

from __future__ import annotations

from typing import List, Sequence

from ..errors import EmptyResponseError
from ..services.base import ImagePart, Part, TextPart
from ..types import OutfitColor, VisualAsset
from ..utils.prompts import load_prompt
from .base import BaseStage


class DescribeFace(BaseStage):
    """Describes the face and its expression range across all reference photos."""

    def __init__(self, run_id: str, logger, gateway, **retry) -> None:
        super().__init__(name="describe-face", run_id=run_id, logger=logger, gateway=gateway, **retry)

    async def run(self, primary: VisualAsset, extras: Sequence[VisualAsset] = ()) -> str:
        with self.stage_errors():
            prompt = load_prompt("describe_face").strip()
            self.log_prompt(prompt)

            parts: List[Part] = [
                TextPart(prompt),
                TextPart("primary reference face:"),
                ImagePart.from_blob(primary.image),
            ]
            for index, extra in enumerate(extras, start=1):
                parts.append(TextPart(f"additional face {index} (for emotional range):"))
                parts.append(ImagePart.from_blob(extra.image))

            description = (await self.request_text(parts)).strip()
            if not description:
                raise EmptyResponseError("no face description was produced")
            return description


class DescribeOutfit(BaseStage):
    """Describes the garments only, applying the requested color policy."""

    def __init__(self, run_id: str, logger, gateway, **retry) -> None:
        super().__init__(name="describe-outfit", run_id=run_id, logger=logger, gateway=gateway, **retry)

    async def run(self, outfit: VisualAsset, color: OutfitColor) -> str:
        with self.stage_errors():
            if color.keep_original:
                color_instruction = "Keep the original colors of the outfit in the photo."
            else:
                color_instruction = f"Change the dominant color of the outfit to hex {color.target_hex}."
            prompt = load_prompt("describe_outfit", {"color_instruction": color_instruction}).strip()
            self.log_prompt(prompt)

            parts: List[Part] = [TextPart(prompt), ImagePart.from_blob(outfit.image)]
            description = (await self.request_text(parts)).strip()
            if not description:
                raise EmptyResponseError("no outfit description was produced")
            return description
