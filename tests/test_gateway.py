"""Tests for response classification, error mapping and the offline Gemini mock."""

from __future__ import annotations

import unittest
from types import SimpleNamespace

from fakes import png_bytes

from kulgen.errors import (
    BlockedError,
    EmptyResponseError,
    InvalidCredentialError,
    MalformedResponseError,
    ProviderError,
    RateLimitError,
    TextInsteadOfImageError,
    error_from_result,
    provider_error,
)
from kulgen.services.base import (
    BlockedResult,
    EmptyResult,
    ImagePart,
    ImageResult,
    MalformedResult,
    OutputModality,
    ProviderFailure,
    TextInsteadOfImageResult,
    TextPart,
    TextResult,
)
from kulgen.services.gemini import GeminiGateway, classify_response
from kulgen.stages.background import parse_pose_metadata_strict
from kulgen.utils.images import image_size


def _response(parts=None, finish_reason=None, block_reason=None, candidates=True):
    if not candidates:
        return SimpleNamespace(candidates=[], prompt_feedback=SimpleNamespace(block_reason=block_reason))
    candidate = SimpleNamespace(content=SimpleNamespace(parts=parts or []), finish_reason=finish_reason)
    return SimpleNamespace(candidates=[candidate], prompt_feedback=None)


def _image_part(data=b"\x89PNG...", mime_type="image/png"):
    return SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type=mime_type), text=None, thought=False)


def _text_part(text, thought=False):
    return SimpleNamespace(inline_data=None, text=text, thought=thought)


class ClassifyResponseTest(unittest.TestCase):
    """Every response shape maps onto exactly one result kind."""

    def test_prompt_level_block(self) -> None:
        result = classify_response(_response(candidates=False, block_reason="SAFETY"), OutputModality.IMAGE)
        self.assertEqual(result, BlockedResult("SAFETY"))

    def test_no_candidates_without_reason_is_empty(self) -> None:
        self.assertIsInstance(classify_response(_response(candidates=False), OutputModality.TEXT), EmptyResult)

    def test_image_with_text(self) -> None:
        response = _response([_text_part("thinking", thought=True), _text_part('{"a": 1}'), _image_part()])
        result = classify_response(response, OutputModality.IMAGE)
        self.assertIsInstance(result, ImageResult)
        self.assertEqual(result.image.data, b"\x89PNG...")
        self.assertEqual(result.text, '{"a": 1}')

    def test_text_instead_of_image(self) -> None:
        result = classify_response(_response([_text_part("I can't do that")]), OutputModality.IMAGE)
        self.assertEqual(result, TextInsteadOfImageResult("I can't do that"))

    def test_text_request(self) -> None:
        result = classify_response(_response([_text_part("a round face")]), OutputModality.TEXT)
        self.assertEqual(result, TextResult("a round face"))

    def test_blocking_finish_reason(self) -> None:
        result = classify_response(_response([], finish_reason="IMAGE_SAFETY"), OutputModality.IMAGE)
        self.assertEqual(result, BlockedResult("IMAGE_SAFETY"))

    def test_candidate_without_parts_is_empty(self) -> None:
        self.assertIsInstance(classify_response(_response([], finish_reason="STOP"), OutputModality.IMAGE), EmptyResult)

    def test_unusable_parts_are_malformed(self) -> None:
        response = _response([SimpleNamespace(inline_data=None, text=None)], finish_reason="STOP")
        self.assertIsInstance(classify_response(response, OutputModality.IMAGE), MalformedResult)


class ErrorMappingTest(unittest.TestCase):
    def test_provider_error_sub_cases(self) -> None:
        self.assertIsInstance(provider_error(400, "API key not valid. Please pass a valid API key."), InvalidCredentialError)
        self.assertIsInstance(provider_error(403, "Permission denied: key revoked"), InvalidCredentialError)
        self.assertIsInstance(provider_error(429, "Resource has been exhausted"), RateLimitError)
        self.assertIsInstance(provider_error(None, "Gemini API key is missing"), InvalidCredentialError)
        self.assertIs(type(provider_error(None, "connection reset")), ProviderError)
        plain = provider_error(500, "internal")
        self.assertIs(type(plain), ProviderError)
        self.assertEqual(plain.code, 500)

    def test_error_from_result(self) -> None:
        cases = [
            (BlockedResult("SAFETY"), BlockedError),
            (EmptyResult(), EmptyResponseError),
            (TextInsteadOfImageResult("nope"), TextInsteadOfImageError),
            (ProviderFailure(429, "slow down"), RateLimitError),
            (MalformedResult(), MalformedResponseError),
        ]
        for result, error in cases:
            with self.subTest(result=type(result).__name__):
                self.assertIsInstance(error_from_result(result), error)


class GeminiMockTest(unittest.IsolatedAsyncioTestCase):
    """The offline mock returns well-formed results without network access."""

    def setUp(self) -> None:
        self.gateway = GeminiGateway(use_mock=True)

    async def test_image_honours_requested_size(self) -> None:
        result = await self.gateway.submit(
            [TextPart("Output EXACTLY 300 pixels wide and 200 pixels tall.")],
            OutputModality.IMAGE,
            stage="composite-scene",
        )
        self.assertIsInstance(result, ImageResult)
        self.assertEqual(image_size(result.image), (300, 200))

    async def test_image_defaults_to_first_input_size(self) -> None:
        result = await self.gateway.submit(
            [ImagePart(png_bytes(70, 40), "image/png"), TextPart("clean this scene")],
            OutputModality.IMAGE,
            stage="clean-background",
        )
        self.assertEqual(image_size(result.image), (70, 40))
        self.assertTrue(parse_pose_metadata_strict(result.text).location)

    async def test_text_request(self) -> None:
        result = await self.gateway.submit([TextPart("describe")], OutputModality.TEXT, stage="describe-outfit")
        self.assertIsInstance(result, TextResult)
        self.assertIn("shirt", result.text)

    async def test_mock_is_deterministic(self) -> None:
        parts = [TextPart("isolate"), ImagePart(png_bytes(), "image/png")]
        first = await self.gateway.submit(parts, OutputModality.IMAGE, stage="isolate-subject")
        second = await self.gateway.submit(parts, OutputModality.IMAGE, stage="isolate-subject")
        self.assertEqual(first, second)

    async def test_live_mode_requires_key(self) -> None:
        gateway = GeminiGateway(api_key=None, use_mock=False)
        result = await gateway.submit([TextPart("hello")])
        self.assertIsInstance(result, ProviderFailure)
        self.assertIsNone(result.code)
        self.assertIsInstance(error_from_result(result), InvalidCredentialError)


if __name__ == "__main__":
    unittest.main()
