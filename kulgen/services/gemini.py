"""Google Gemini implementation of the synthesis gateway."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional, Sequence, Tuple

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from ..errors import InvalidImageError
from ..types import ImageBlob
from ..utils.files import sha256_hex
from ..utils.images import image_size, placeholder_png
from .base import (
    BlockedResult,
    EmptyResult,
    ImagePart,
    ImageResult,
    MalformedResult,
    OutputModality,
    Part,
    ProviderFailure,
    SynthesisResult,
    TextInsteadOfImageResult,
    TextPart,
    TextResult,
)

logger = logging.getLogger(__name__)

_BLOCKING_FINISH_REASONS = {
    "SAFETY",
    "PROHIBITED_CONTENT",
    "BLOCKLIST",
    "SPII",
    "IMAGE_SAFETY",
    "RECITATION",
}
_DIMENSIONS_PATTERN = re.compile(r"(\d+)\s*pixels wide\D+(\d+)\s*pixels tall", re.IGNORECASE)
_MOCK_POSE = {
    "location": "standing near the centre of the frame",
    "scale": "about one third of the frame height",
    "angle": "facing the camera, slightly turned to the left",
    "lighting": "soft daylight from the upper right",
}


class GeminiGateway:
    """Sends multi-part requests to Gemini, with a deterministic offline mock."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        text_model: str = "gemini-2.5-flash",
        image_model: str = "gemini-2.5-flash-image",
        use_mock: bool = True,
        timeout: int = 120,
    ) -> None:
        self._api_key = api_key
        self._text_model = text_model
        self._image_model = image_model
        self._use_mock = use_mock
        self._timeout = timeout
        self._client: genai.Client | None = None

    async def submit(
        self,
        parts: Sequence[Part],
        modality: OutputModality = OutputModality.TEXT,
        *,
        stage: Optional[str] = None,
    ) -> SynthesisResult:
        """Perform exactly one generate-content call and classify the answer."""
        if self._use_mock:
            return self._mock_result(parts, modality, stage)
        if not self._api_key:
            return ProviderFailure(code=None, message="Gemini API key is missing; set GEMINI_API_KEY.")

        client = self._resolve_client()
        model = self._image_model if modality is OutputModality.IMAGE else self._text_model
        config = None
        if modality is OutputModality.IMAGE:
            config = genai_types.GenerateContentConfig(response_modalities=["IMAGE", "TEXT"])

        contents = [genai_types.Content(role="user", parts=[self._to_sdk_part(part) for part in parts])]
        logger.debug("Submitting %s request to %s (%d parts)", stage or "unnamed", model, len(parts))
        try:
            response = await client.aio.models.generate_content(
                model=model,
                contents=contents,
                config=config,
            )
        except genai_errors.APIError as err:
            logger.warning("Gemini call for %s failed with %s: %s", stage or "unnamed", err.code, err.message)
            return ProviderFailure(code=err.code, message=err.message or str(err))

        return classify_response(response, modality)

    def _resolve_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(
                api_key=self._api_key,
                http_options=genai_types.HttpOptions(timeout=self._timeout * 1000),
            )
        return self._client

    @staticmethod
    def _to_sdk_part(part: Part) -> genai_types.Part:
        if isinstance(part, TextPart):
            return genai_types.Part(text=part.text)
        return genai_types.Part(inline_data=genai_types.Blob(data=part.data, mime_type=part.mime_type))

    def _mock_result(
        self, parts: Sequence[Part], modality: OutputModality, stage: Optional[str]
    ) -> SynthesisResult:
        """Deterministic local fallback used for testing and offline runs."""
        texts = [part.text for part in parts if isinstance(part, TextPart)]
        images = [part for part in parts if isinstance(part, ImagePart)]
        fingerprint = sha256_hex("\n".join(texts).encode("utf-8") + b"".join(img.data for img in images))

        if modality is OutputModality.TEXT:
            return TextResult(text=self._mock_description(stage, len(images)))

        width, height = self._mock_dimensions(texts, images)
        image = ImageBlob(data=placeholder_png(width, height, f"{stage}:{fingerprint}"), mime_type="image/png")
        text = json.dumps(_MOCK_POSE) if stage == "clean-background" else None
        return ImageResult(image=image, text=text)

    @staticmethod
    def _mock_description(stage: Optional[str], image_count: int) -> str:
        if stage == "describe-outfit":
            return (
                "A fitted cotton shirt with a pointed collar, long sleeves and a single row of "
                "buttons, paired with straight-leg denim trousers; plain weave, no pattern."
            )
        return (
            f"Observed across {image_count} reference photo(s): oval face, dark brown almond eyes, "
            "short black hair. Smiles lift the cheeks and narrow the eyes; a neutral look keeps the "
            "lips relaxed and the brows level."
        )

    @staticmethod
    def _mock_dimensions(texts: Sequence[str], images: Sequence[ImagePart]) -> Tuple[int, int]:
        for text in texts:
            match = _DIMENSIONS_PATTERN.search(text)
            if match:
                return int(match.group(1)), int(match.group(2))
        if images:
            try:
                return image_size(ImageBlob(data=images[0].data, mime_type=images[0].mime_type))
            except InvalidImageError:
                logger.debug("Mock input image is not decodable; using default size.")
        return 512, 512


def classify_response(response: Any, modality: OutputModality) -> SynthesisResult:
    """Map a generate-content response onto a :data:`SynthesisResult`."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        feedback = getattr(response, "prompt_feedback", None)
        reason = getattr(feedback, "block_reason", None) if feedback is not None else None
        if reason:
            return BlockedResult(reason=_enum_text(reason))
        return EmptyResult()

    candidate = candidates[0]
    content = getattr(candidate, "content", None)
    parts = getattr(content, "parts", None) or []
    finish_reason = _enum_text(getattr(candidate, "finish_reason", None))

    image_part = None
    texts = []
    for part in parts:
        inline = getattr(part, "inline_data", None)
        if image_part is None and inline is not None and getattr(inline, "data", None):
            image_part = inline
        text = getattr(part, "text", None)
        if text and not getattr(part, "thought", False):
            texts.append(text)
    text = "\n".join(texts) if texts else None

    if modality is OutputModality.IMAGE:
        if image_part is not None:
            blob = ImageBlob(data=image_part.data, mime_type=image_part.mime_type or "image/png")
            return ImageResult(image=blob, text=text)
        if text:
            return TextInsteadOfImageResult(text=text)
    elif text:
        return TextResult(text=text)

    if finish_reason in _BLOCKING_FINISH_REASONS:
        return BlockedResult(reason=finish_reason)
    if not parts:
        return EmptyResult()
    return MalformedResult(detail=f"response parts did not include the requested {modality.value}")


def _enum_text(value: Any) -> str:
    if value is None:
        return ""
    return getattr(value, "name", None) or str(value)
