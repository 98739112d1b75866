"""Per-session cache of assets and reusable intermediate artifacts."""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from .types import ImageBlob, PoseMetadata, VisualAsset


class ArtifactStore:
    """Holds ingested assets, their cleaned versions and the isolated subject.

    Cleaned backgrounds persist per asset id until the asset is removed or
    replaced. The isolated-subject slot belongs to the active subject and is
    overwritten by every successful main run.
    """

    def __init__(self) -> None:
        self._assets: Dict[str, VisualAsset] = {}
        self._isolated_subject: Optional[ImageBlob] = None

    def __contains__(self, asset_id: object) -> bool:
        return asset_id in self._assets

    def add(self, asset: VisualAsset) -> VisualAsset:
        if asset.asset_id in self._assets:
            raise ValueError(f"asset id {asset.asset_id} is already stored")
        self._assets[asset.asset_id] = asset
        return asset

    def add_many(self, assets: Iterable[VisualAsset]) -> List[VisualAsset]:
        return [self.add(asset) for asset in assets]

    def get(self, asset_id: str) -> Optional[VisualAsset]:
        return self._assets.get(asset_id)

    def require(self, asset_id: str) -> VisualAsset:
        asset = self._assets.get(asset_id)
        if asset is None:
            raise KeyError(f"unknown asset id {asset_id}")
        return asset

    def remove(self, asset_id: str) -> Optional[VisualAsset]:
        return self._assets.pop(asset_id, None)

    def replace(self, asset_id: str, image: ImageBlob, *, name: Optional[str] = None) -> VisualAsset:
        """Swap in a new upload; cached pose metadata and the cleaned flag are dropped."""
        current = self.require(asset_id)
        updated = replace(
            current,
            image=image,
            name=current.name if name is None else name,
            pose_metadata=None,
            cleaned=False,
            width=None,
            height=None,
        )
        self._assets[asset_id] = updated
        return updated

    def set_pose_override(self, asset_id: str, pose: str) -> VisualAsset:
        updated = replace(self.require(asset_id), pose=pose)
        self._assets[asset_id] = updated
        return updated

    def get_pose(self, asset_id: str) -> Optional[PoseMetadata]:
        asset = self._assets.get(asset_id)
        return asset.pose_metadata if asset else None

    def set_cleaned(self, asset_id: str, image: ImageBlob, pose: PoseMetadata) -> VisualAsset:
        """Replace the asset's bytes with the cleaned scene and attach its pose."""
        updated = replace(
            self.require(asset_id),
            image=image,
            pose_metadata=pose,
            cleaned=True,
            width=None,
            height=None,
        )
        self._assets[asset_id] = updated
        return updated

    def get_isolated_subject(self) -> Optional[ImageBlob]:
        return self._isolated_subject

    def set_isolated_subject(self, image: ImageBlob) -> None:
        self._isolated_subject = image

    def clear_isolated_subject(self) -> None:
        self._isolated_subject = None
