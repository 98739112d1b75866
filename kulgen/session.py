"""Explicit, owned session state passed to the orchestrator."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .store import ArtifactStore
from .types import (
    ArtDirection,
    CharacterProfile,
    GenerationRequest,
    ImageBlob,
    OutfitColor,
    PipelineRun,
    ResultItem,
    RunStatus,
    Source,
    VisualAsset,
)


class GenerationSession:
    """Everything one user session accumulates between runs.

    Several sessions can coexist; nothing here is module-global.
    """

    def __init__(self, store: ArtifactStore | None = None) -> None:
        self.store = store or ArtifactStore()
        self.background_ids: List[str] = []
        self.quick_background_id: Optional[str] = None
        self.results: List[ResultItem] = []
        self.is_generating = False
        self.is_quick_compositing = False
        self.current_run: Optional[PipelineRun] = None
        self.ai_prompts: Dict[str, Optional[str]] = {"face": None, "outfit": None}
        self.error: Optional[str] = None
        self.last_request: Optional[GenerationRequest] = None

    # Backgrounds ---------------------------------------------------------

    @property
    def backgrounds(self) -> List[VisualAsset]:
        return [self.store.require(asset_id) for asset_id in self.background_ids]

    def add_backgrounds(self, assets: Iterable[VisualAsset]) -> List[VisualAsset]:
        added = self.store.add_many(assets)
        self.background_ids.extend(asset.asset_id for asset in added)
        return added

    def remove_background(self, asset_id: str) -> None:
        if asset_id in self.background_ids:
            self.background_ids.remove(asset_id)
            self.store.remove(asset_id)

    def replace_background(self, asset_id: str, image: ImageBlob, *, name: Optional[str] = None) -> VisualAsset:
        return self.store.replace(asset_id, image, name=name)

    def set_background_pose(self, asset_id: str, pose: str) -> VisualAsset:
        return self.store.set_pose_override(asset_id, pose)

    # Quick-composite background -----------------------------------------

    @property
    def quick_background(self) -> Optional[VisualAsset]:
        if self.quick_background_id is None:
            return None
        return self.store.get(self.quick_background_id)

    def set_quick_background(self, asset: VisualAsset) -> VisualAsset:
        self.remove_quick_background()
        self.store.add(asset)
        self.quick_background_id = asset.asset_id
        return asset

    def remove_quick_background(self) -> None:
        if self.quick_background_id is not None:
            self.store.remove(self.quick_background_id)
            self.quick_background_id = None

    # Subject ---------------------------------------------------------------

    @property
    def isolated_subject(self) -> Optional[ImageBlob]:
        return self.store.get_isolated_subject()

    def replace_isolated_subject(self, image: ImageBlob) -> None:
        """Install a user-provided cut-out in place of the generated one."""
        self.store.set_isolated_subject(image)

    # Requests and results ---------------------------------------------------

    def build_request(
        self,
        face: Source,
        outfit: Source,
        *,
        profile: CharacterProfile | None = None,
        art_direction: ArtDirection | None = None,
        outfit_color: OutfitColor | None = None,
    ) -> GenerationRequest:
        """Snapshot the current backgrounds into an immutable request."""
        return GenerationRequest(
            face=face,
            outfit=outfit,
            backgrounds=tuple(self.backgrounds),
            profile=profile or CharacterProfile(),
            art_direction=art_direction or ArtDirection(),
            outfit_color=outfit_color or OutfitColor(),
        )

    def result(self, item_id: str) -> ResultItem:
        for item in self.results:
            if item.item_id == item_id:
                return item
        raise KeyError(f"unknown result id {item_id}")

    def start_run(self, run: PipelineRun, request: GenerationRequest) -> None:
        """Supersede the previous run: results and AI descriptions are cleared."""
        run.status = RunStatus.RUNNING
        self.current_run = run
        self.last_request = request
        self.results = []
        self.ai_prompts = {"face": None, "outfit": None}
        self.error = None
        self.is_generating = True
