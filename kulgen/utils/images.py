"""Pillow helpers for ingesting, measuring and previewing images."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from ..errors import InvalidImageError
from ..types import ImageBlob, VisualAsset, new_asset_id
from .files import guess_mime_type, read_binary, sha256_hex

MAX_REFERENCE_DIM = 4096
PREVIEW_DIM = 200


def load_asset(path: str | Path, *, pose: str = "") -> VisualAsset:
    """Read an image file into a normalised :class:`VisualAsset`."""
    source = Path(path)
    raw_bytes = read_binary(source)
    blob, width, height = prepare_reference_image(raw_bytes, guess_mime_type(source))
    return VisualAsset(
        asset_id=new_asset_id(),
        image=blob,
        name=source.name,
        pose=pose,
        width=width,
        height=height,
    )


def asset_from_bytes(data: bytes, mime_type: str, *, name: str = "", pose: str = "") -> VisualAsset:
    """Wrap already-encoded bytes without re-encoding them."""
    blob = ImageBlob(data=data, mime_type=mime_type)
    width, height = image_size(blob)
    return VisualAsset(
        asset_id=new_asset_id(),
        image=blob,
        name=name,
        pose=pose,
        width=width,
        height=height,
    )


def prepare_reference_image(raw_bytes: bytes, mime_type: str) -> Tuple[ImageBlob, int, int]:
    """Convert large or exotic source files into safe reference images."""
    try:
        with Image.open(BytesIO(raw_bytes)) as image:
            if getattr(image, "n_frames", 1) > 1:
                image.seek(0)

            image = ImageOps.exif_transpose(image)
            if image.mode not in {"RGB", "RGBA"}:
                image = image.convert("RGBA" if "A" in image.getbands() else "RGB")

            if max(image.size) > MAX_REFERENCE_DIM:
                image.thumbnail((MAX_REFERENCE_DIM, MAX_REFERENCE_DIM), Image.LANCZOS)

            has_alpha = "A" in image.getbands()
            format_ = "PNG" if has_alpha else "JPEG"

            output = BytesIO()
            save_kwargs = {"format": format_, "optimize": True}
            if format_ == "JPEG":
                save_kwargs["quality"] = 90
            image.save(output, **save_kwargs)
            blob = ImageBlob(
                data=output.getvalue(),
                mime_type="image/png" if has_alpha else "image/jpeg",
            )
            return blob, image.width, image.height
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidImageError(f"cannot decode image ({mime_type}): {exc}") from exc


def image_size(blob: ImageBlob) -> Tuple[int, int]:
    """Return the natural ``(width, height)`` of an encoded image."""
    try:
        with Image.open(BytesIO(blob.data)) as image:
            return image.size
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidImageError(f"cannot read image dimensions: {exc}") from exc


def make_preview(blob: ImageBlob, max_width: int = PREVIEW_DIM, max_height: int = PREVIEW_DIM) -> ImageBlob:
    """Return a bounded JPEG preview for display."""
    try:
        with Image.open(BytesIO(blob.data)) as image:
            preview = image.convert("RGB")
            preview.thumbnail((max_width, max_height), Image.LANCZOS)
            output = BytesIO()
            preview.save(output, format="JPEG", quality=85)
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidImageError(f"cannot build preview: {exc}") from exc
    return ImageBlob(data=output.getvalue(), mime_type="image/jpeg")


def placeholder_png(width: int, height: int, seed: str = "") -> bytes:
    """Render a flat-colored PNG whose color is derived from ``seed``."""
    digest = sha256_hex(seed.encode("utf-8"))
    color = tuple(int(digest[i : i + 2], 16) for i in (0, 2, 4))
    image = Image.new("RGB", (max(1, width), max(1, height)), color)
    output = BytesIO()
    image.save(output, format="PNG")
    return output.getvalue()
