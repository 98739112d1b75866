"""Pipeline orchestration for the kulgen character generator."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import List, Optional, Tuple, TypedDict

from langgraph.graph import END, START, StateGraph

from .config import PipelineConfig
from .errors import GenerationError, InvalidRequestError, PipelineBusyError
from .progress import LoggingSink, ProgressSink, ProgressTracker
from .services.base import SynthesisGateway
from .services.gemini import GeminiGateway
from .session import GenerationSession
from .stages.background import CleanBackground, CleanedBackground
from .stages.describe import DescribeFace, DescribeOutfit
from .stages.scene import CompositeScene, GenerateVariant
from .stages.subject import CreateMasterSubject, IsolateSubject
from .types import (
    ArtDirection,
    GenerationRequest,
    ImageBlob,
    ImageSource,
    PipelineRun,
    ResultItem,
    ResultStatus,
    RunStatus,
    VisualAsset,
    source_text,
)
from .utils.images import image_size
from .utils.run_logger import RunLogger

logger = logging.getLogger(__name__)


class LeadingState(TypedDict, total=False):
    """State threaded through the sequential leading phases."""

    request: GenerationRequest
    face_description: str
    outfit_description: str
    master: ImageBlob
    isolated: ImageBlob


@dataclass(slots=True)
class StageSet:
    """Stage instances bound to one run id."""

    describe_face: DescribeFace
    describe_outfit: DescribeOutfit
    create_master: CreateMasterSubject
    isolate: IsolateSubject
    clean_background: CleanBackground
    composite_scene: CompositeScene
    generate_variant: GenerateVariant


class CharacterGenerator:
    """High-level facade exposing the main run and the shortcut paths."""

    def __init__(self, config: PipelineConfig | None = None, gateway: SynthesisGateway | None = None) -> None:
        self.config = config or PipelineConfig.from_env()
        self.logger = RunLogger(base_dir=self.config.runs_dir)
        self.gateway = gateway or GeminiGateway(
            api_key=self.config.gemini_api_key,
            text_model=self.config.text_model,
            image_model=self.config.image_model,
            use_mock=self.config.enable_mock_generation,
            timeout=self.config.timeout_sec,
        )

    @staticmethod
    def plan_total_steps(request: GenerationRequest) -> int:
        """Return the fixed step count for ``request``, computed before any stage runs."""
        cleaning = 0
        if request.art_direction.auto_clean_backgrounds:
            cleaning = sum(1 for background in request.backgrounds if not background.cleaned)
        return (
            int(request.needs_face_analysis)
            + int(request.needs_outfit_analysis)
            + 2  # create master + isolate
            + cleaning
            + len(request.backgrounds)
        )

    # Main run ---------------------------------------------------------------

    async def run(
        self,
        session: GenerationSession,
        request: GenerationRequest,
        sink: ProgressSink | None = None,
    ) -> PipelineRun:
        """Execute the full pipeline and return the finished run."""
        sink = sink or LoggingSink()
        if session.is_generating or session.is_quick_compositing:
            raise PipelineBusyError("a generation is already in progress for this session")
        self._validate_request(request)

        run = PipelineRun(run_id=self._new_run_id(), total=self.plan_total_steps(request))
        session.start_run(run, request)
        tracker = ProgressTracker(run, sink)

        try:
            stages = self._build_stages(run.run_id)
            tracker.note("Starting...")
            try:
                graph = self._build_graph(session, stages, tracker)
                leading = await graph.ainvoke({"request": request})
            except GenerationError as exc:
                message = str(exc)
                run.status = RunStatus.FAILED
                run.error = message
                session.error = message
                logger.error("Run %s failed: %s", run.run_id, message)
                sink.on_error(message)
                return run

            items = await self._composite_backgrounds(session, request, stages, tracker, leading["isolated"])
            run.results = items
            run.status = RunStatus.COMPLETED
            session.results.extend(items)
            sink.on_results(items)
            return run
        except Exception as exc:
            if run.status is RunStatus.RUNNING:
                run.status = RunStatus.FAILED
                run.error = str(exc) or type(exc).__name__
                session.error = run.error
            raise
        finally:
            session.is_generating = False
            sink.on_finished(run)

    def _build_graph(self, session: GenerationSession, stages: StageSet, tracker: ProgressTracker):
        """Wire the strictly sequential leading phases into a LangGraph graph."""

        async def describe_face(state: LeadingState) -> dict:
            request = state["request"]
            text = source_text(request.face)
            if text is not None:
                tracker.note("Step 1a: using the provided face description")
                return {"face_description": text}
            tracker.dispatch("Step 1a: analysing the face")
            images = request.face_images
            description = await stages.describe_face.run(images.primary, images.extras)
            session.ai_prompts["face"] = description
            return {"face_description": description}

        async def describe_outfit(state: LeadingState) -> dict:
            request = state["request"]
            text = source_text(request.outfit)
            if text is not None:
                tracker.note("Step 1b: using the provided outfit description")
                return {"outfit_description": text}
            tracker.dispatch("Step 1b: analysing the outfit")
            description = await stages.describe_outfit.run(request.outfit.primary, request.outfit_color)
            session.ai_prompts["outfit"] = description
            return {"outfit_description": description}

        async def create_master(state: LeadingState) -> dict:
            request = state["request"]
            tracker.dispatch("Step 2: creating the master subject")
            master = await stages.create_master.run(
                state["face_description"],
                state["outfit_description"],
                request.profile,
                request.art_direction,
                request.face_images,
            )
            return {"master": master}

        async def isolate(state: LeadingState) -> dict:
            tracker.dispatch("Step 3: isolating the subject")
            isolated = await stages.isolate.run(state["master"])
            session.store.set_isolated_subject(isolated)
            return {"isolated": isolated}

        graph = StateGraph(LeadingState)
        graph.add_node("describe_face", describe_face)
        graph.add_node("describe_outfit", describe_outfit)
        graph.add_node("create_master", create_master)
        graph.add_node("isolate", isolate)
        graph.add_edge(START, "describe_face")
        graph.add_edge("describe_face", "describe_outfit")
        graph.add_edge("describe_outfit", "create_master")
        graph.add_edge("create_master", "isolate")
        graph.add_edge("isolate", END)
        return graph.compile()

    async def _composite_backgrounds(
        self,
        session: GenerationSession,
        request: GenerationRequest,
        stages: StageSet,
        tracker: ProgressTracker,
        subject: ImageBlob,
    ) -> List[ResultItem]:
        """Fan out one unit per background and map outcomes back in request order."""
        backgrounds = request.backgrounds
        limit = self.config.max_concurrency
        semaphore = asyncio.Semaphore(limit) if limit else None

        async def unit(index: int, background: VisualAsset) -> ImageBlob:
            if semaphore is None:
                return await self._process_background(session, request, stages, tracker, subject, index, background)
            async with semaphore:
                return await self._process_background(session, request, stages, tracker, subject, index, background)

        outcomes = await asyncio.gather(
            *(unit(index, background) for index, background in enumerate(backgrounds)),
            return_exceptions=True,
        )

        items: List[ResultItem] = []
        for index, (background, outcome) in enumerate(zip(backgrounds, outcomes)):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error("Background %d/%d failed: %s", index + 1, len(backgrounds), outcome)
                items.append(
                    ResultItem(
                        item_id=self._new_item_id("fail"),
                        image=None,
                        source_background_id=background.asset_id,
                        status=ResultStatus.FAILED,
                        error=f"Image generation failed: {outcome}",
                    )
                )
            else:
                items.append(
                    ResultItem(
                        item_id=self._new_item_id("gen"),
                        image=outcome,
                        source_background_id=background.asset_id,
                        status=ResultStatus.SUCCESS,
                    )
                )
        return items

    async def _process_background(
        self,
        session: GenerationSession,
        request: GenerationRequest,
        stages: StageSet,
        tracker: ProgressTracker,
        subject: ImageBlob,
        index: int,
        background: VisualAsset,
    ) -> ImageBlob:
        """Optionally clean one background, then composite the subject into it."""
        total = len(request.backgrounds)
        tag = str(index + 1)
        current = background
        art_direction = request.art_direction

        if art_direction.auto_clean_backgrounds and not background.cleaned:
            tracker.dispatch(f"Cleaning background {index + 1}/{total}")
            try:
                cleaned = await stages.clean_background.run(background.image, tag=tag)
            except GenerationError as exc:
                logger.warning("Could not clean background %d, using the original: %s", index + 1, exc)
            else:
                current = replace(
                    background,
                    image=cleaned.image,
                    pose_metadata=cleaned.pose,
                    cleaned=True,
                    width=None,
                    height=None,
                )
                self._store_cleaned(session, background, cleaned)

        tracker.dispatch(f"Compositing scene {index + 1}/{total}")
        with stages.composite_scene.stage_errors():
            width, height = self._dimensions(current)
        if current.pose.strip():
            art_direction = art_direction.with_pose(current.pose)
        return await stages.composite_scene.run(
            subject,
            current.image,
            art_direction,
            width,
            height,
            pose_metadata=current.pose_metadata,
            face_reference=request.face_reference,
            tag=tag,
        )

    # Secondary paths --------------------------------------------------------

    async def quick_composite(
        self,
        session: GenerationSession,
        art_direction: ArtDirection | None = None,
        sink: ProgressSink | None = None,
    ) -> Optional[ResultItem]:
        """Composite the cached subject into the quick background; ``None`` when unavailable."""
        subject = session.isolated_subject
        background = session.quick_background
        if subject is None or background is None:
            return None
        if session.is_generating or session.is_quick_compositing:
            return None

        sink = sink or LoggingSink()
        last_request = session.last_request
        direction = art_direction or (last_request.art_direction if last_request else ArtDirection())
        if background.pose.strip():
            direction = direction.with_pose(background.pose)
        face_reference = last_request.face_reference if last_request else None
        stages = self._build_stages(self._new_run_id("quick"))

        session.is_quick_compositing = True
        session.error = None
        try:
            with stages.composite_scene.stage_errors():
                width, height = self._dimensions(background)
            image = await stages.composite_scene.run(
                subject,
                background.image,
                direction,
                width,
                height,
                pose_metadata=background.pose_metadata,
                face_reference=face_reference,
            )
        except GenerationError as exc:
            self._report_standalone_failure(session, sink, f"Quick composite failed: {exc}")
            raise
        finally:
            session.is_quick_compositing = False

        item = ResultItem(
            item_id=self._new_item_id("q-gen"),
            image=image,
            source_background_id=background.asset_id,
            status=ResultStatus.SUCCESS,
        )
        session.results.append(item)
        sink.on_results([item])
        return item

    async def generate_variant(
        self,
        session: GenerationSession,
        base: ResultItem | str,
        pose: str,
        sink: ProgressSink | None = None,
    ) -> ResultItem:
        """Re-pose an existing result and append the variant as a standalone item."""
        if isinstance(base, str):
            try:
                base = session.result(base)
            except KeyError as exc:
                raise InvalidRequestError(f"unknown result id {base}") from exc
        if not pose or not pose.strip():
            raise InvalidRequestError("a new pose description is required")
        if base.image is None:
            raise InvalidRequestError("cannot create a variant of a failed result")

        sink = sink or LoggingSink()
        stages = self._build_stages(self._new_run_id("variant"))
        session.error = None
        try:
            image = await stages.generate_variant.run(base.image, pose)
        except GenerationError as exc:
            self._report_standalone_failure(session, sink, f"Variant generation failed: {exc}")
            raise

        item = ResultItem(
            item_id=self._new_item_id("var"),
            image=image,
            source_background_id=base.source_background_id,
            status=ResultStatus.SUCCESS,
        )
        session.results.append(item)
        sink.on_results([item])
        return item

    async def clean_background(self, session: GenerationSession, asset_id: str) -> VisualAsset:
        """Clean one stored background on demand and cache the result."""
        asset = session.store.require(asset_id)
        stages = self._build_stages(self._new_run_id("clean"))
        session.error = None
        try:
            cleaned = await stages.clean_background.run(asset.image)
        except GenerationError as exc:
            session.error = f"Background cleaning failed: {exc}"
            logger.error("%s", session.error)
            raise
        if not self._store_cleaned(session, asset, cleaned):
            logger.warning("Background %s changed while it was being cleaned; keeping the newer upload.", asset_id)
        return session.store.require(asset_id)

    # Helpers ----------------------------------------------------------------

    def _build_stages(self, run_id: str) -> StageSet:
        """Construct stage instances wired with the current services."""
        shared = {
            "run_id": run_id,
            "logger": self.logger,
            "gateway": self.gateway,
            "rate_limit_retries": self.config.rate_limit_retries,
            "rate_limit_backoff_sec": self.config.rate_limit_backoff_sec,
        }
        return StageSet(
            describe_face=DescribeFace(**shared),
            describe_outfit=DescribeOutfit(**shared),
            create_master=CreateMasterSubject(**shared),
            isolate=IsolateSubject(**shared),
            clean_background=CleanBackground(**shared),
            composite_scene=CompositeScene(**shared),
            generate_variant=GenerateVariant(**shared),
        )

    @staticmethod
    def _validate_request(request: GenerationRequest) -> None:
        if not request.backgrounds:
            raise InvalidRequestError("at least one background image is required")
        for label, source in (("face", request.face), ("outfit", request.outfit)):
            if source_text(source) is None and not isinstance(source, ImageSource):
                raise InvalidRequestError(f"the {label} needs a photo or a description")

    @staticmethod
    def _store_cleaned(session: GenerationSession, original: VisualAsset, cleaned: CleanedBackground) -> bool:
        """Write a cleaned scene back unless the stored asset was removed or replaced meanwhile."""
        stored = session.store.get(original.asset_id)
        if stored is None or stored.image != original.image:
            return False
        session.store.set_cleaned(original.asset_id, cleaned.image, cleaned.pose)
        return True

    @staticmethod
    def _dimensions(asset: VisualAsset) -> Tuple[int, int]:
        if asset.width and asset.height:
            return asset.width, asset.height
        return image_size(asset.image)

    @staticmethod
    def _report_standalone_failure(session: GenerationSession, sink: ProgressSink, message: str) -> None:
        session.error = message
        logger.error("%s", message)
        sink.on_error(message)

    @staticmethod
    def _new_item_id(prefix: str) -> str:
        return f"{prefix}-{uuid.uuid4().hex[:12]}"

    @staticmethod
    def _new_run_id(prefix: str = "run") -> str:
        """Return a unique run identifier."""
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        return f"{prefix}-{stamp}-{uuid.uuid4().hex[:6]}"
