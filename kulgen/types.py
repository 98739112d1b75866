"""Core data models used across the kulgen pipeline."""

from __future__ import annotations

import base64
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple, Union


def new_asset_id() -> str:
    """Return a fresh identifier; ids are never reused within a process."""
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class ImageBlob:
    """Raw image bytes plus their MIME type."""

    data: bytes
    mime_type: str = "image/png"

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("utf-8")
        return f"data:{self.mime_type};base64,{encoded}"


@dataclass(frozen=True, slots=True)
class PoseMetadata:
    """Where, how large, at what angle and under what light a subject sits in a scene."""

    location: str
    scale: str
    angle: str
    lighting: str


@dataclass(frozen=True, slots=True)
class VisualAsset:
    """An ingested image together with its per-item annotations."""

    asset_id: str
    image: ImageBlob
    name: str = ""
    pose: str = ""
    pose_metadata: Optional[PoseMetadata] = None
    cleaned: bool = False
    width: Optional[int] = None
    height: Optional[int] = None


class ArtStyle(str, Enum):
    PHOTOGRAPHIC = "Photographic"
    ANIME = "Anime"
    OIL_PAINTING = "Oil painting"
    WATERCOLOR = "Watercolor"
    PIXEL_ART = "Pixel art"
    CYBERPUNK = "Cyberpunk"


class OutputQuality(str, Enum):
    DEFAULT = "Default"
    FOUR_K = "4K"
    EIGHT_K = "8K"


@dataclass(frozen=True, slots=True)
class CharacterProfile:
    """Body descriptors used when synthesising the master subject."""

    gender: str = "female"
    age: int = 2
    height: str = "90cm"
    weight: str = "12kg"
    build: str = "balanced build for the age"


@dataclass(frozen=True, slots=True)
class ArtDirection:
    """Creative controls shared by every stage of a run."""

    pose: str = "standing confidently, interacting naturally with the scene"
    style: ArtStyle = ArtStyle.PHOTOGRAPHIC
    quality: OutputQuality = OutputQuality.DEFAULT
    additional_prompt: str = ""
    identity_strictness: int = 90
    expression: str = "a natural expression that suits the scene"
    auto_clean_backgrounds: bool = True

    def __post_init__(self) -> None:
        if not 0 <= self.identity_strictness <= 100:
            raise ValueError(
                f"identity_strictness must be within [0, 100], got {self.identity_strictness}"
            )

    def with_pose(self, pose: str) -> "ArtDirection":
        """Return a copy that uses ``pose`` instead of the shared pose."""
        return replace(self, pose=pose)


@dataclass(frozen=True, slots=True)
class OutfitColor:
    """Color policy applied when describing the outfit."""

    keep_original: bool = True
    target_hex: str = "#000000"


@dataclass(frozen=True, slots=True)
class TextSource:
    """A description typed in by the user."""

    text: str


@dataclass(frozen=True, slots=True)
class ImageSource:
    """Reference photo(s); ``description`` skips image analysis when provided."""

    primary: VisualAsset
    extras: Tuple[VisualAsset, ...] = ()
    description: Optional[str] = None


Source = Union[TextSource, ImageSource]


def source_text(source: Source) -> Optional[str]:
    """Return the ready-made description carried by ``source``, if any."""
    if isinstance(source, TextSource):
        return source.text.strip() or None
    if source.description and source.description.strip():
        return source.description.strip()
    return None


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """Everything a single "Generate" invocation captures."""

    face: Source
    outfit: Source
    backgrounds: Tuple[VisualAsset, ...]
    profile: CharacterProfile = field(default_factory=CharacterProfile)
    art_direction: ArtDirection = field(default_factory=ArtDirection)
    outfit_color: OutfitColor = field(default_factory=OutfitColor)

    @property
    def needs_face_analysis(self) -> bool:
        return source_text(self.face) is None

    @property
    def needs_outfit_analysis(self) -> bool:
        return source_text(self.outfit) is None

    @property
    def face_images(self) -> Optional[ImageSource]:
        return self.face if isinstance(self.face, ImageSource) else None

    @property
    def face_reference(self) -> Optional[ImageBlob]:
        images = self.face_images
        return images.primary.image if images else None


class ResultStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ResultItem:
    """One generated image (or failure placeholder)."""

    item_id: str
    image: Optional[ImageBlob]
    source_background_id: str
    status: ResultStatus
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ResultStatus.SUCCESS


@dataclass(frozen=True, slots=True)
class ProgressState:
    current: int
    total: int
    label: str


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class PipelineRun:
    """Mutable state owned by one invocation of the main pipeline."""

    run_id: str
    total: int
    status: RunStatus = RunStatus.IDLE
    progress: Optional[ProgressState] = None
    results: List[ResultItem] = field(default_factory=list)
    error: Optional[str] = None
