"""Synthesis gateway contract shared by real and fake implementations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Sequence, Union

from ..types import ImageBlob


class OutputModality(str, Enum):
    TEXT = "text"
    IMAGE = "image"


@dataclass(frozen=True, slots=True)
class TextPart:
    text: str


@dataclass(frozen=True, slots=True)
class ImagePart:
    data: bytes
    mime_type: str

    @classmethod
    def from_blob(cls, blob: ImageBlob) -> "ImagePart":
        return cls(data=blob.data, mime_type=blob.mime_type)


Part = Union[TextPart, ImagePart]


@dataclass(frozen=True, slots=True)
class ImageResult:
    """An image answer; ``text`` holds any text part returned alongside it."""

    image: ImageBlob
    text: Optional[str] = None


@dataclass(frozen=True, slots=True)
class TextResult:
    text: str


@dataclass(frozen=True, slots=True)
class BlockedResult:
    reason: str


@dataclass(frozen=True, slots=True)
class EmptyResult:
    pass


@dataclass(frozen=True, slots=True)
class TextInsteadOfImageResult:
    text: str


@dataclass(frozen=True, slots=True)
class ProviderFailure:
    code: Optional[int]
    message: str


@dataclass(frozen=True, slots=True)
class MalformedResult:
    detail: str = "response did not contain any usable part"


SynthesisResult = Union[
    ImageResult,
    TextResult,
    BlockedResult,
    EmptyResult,
    TextInsteadOfImageResult,
    ProviderFailure,
    MalformedResult,
]


class SynthesisGateway(Protocol):
    """Submits one multi-part request and classifies the answer.

    Implementations perform exactly one outbound call per ``submit`` and never
    retry; retry policy belongs to the caller.
    """

    async def submit(
        self,
        parts: Sequence[Part],
        modality: OutputModality = OutputModality.TEXT,
        *,
        stage: Optional[str] = None,
    ) -> SynthesisResult:
        ...
