"""Command-line entry point for the kulgen pipeline."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List

from .config import PipelineConfig
from .errors import GenerationError
from .export import load_prompt_text, save_prompt_text, save_results
from .pipeline import CharacterGenerator
from .session import GenerationSession
from .types import (
    ArtDirection,
    ArtStyle,
    CharacterProfile,
    ImageSource,
    OutfitColor,
    OutputQuality,
    ResultItem,
    RunStatus,
    Source,
    TextSource,
)
from .utils.images import load_asset

_DEFAULT_PROFILE = CharacterProfile()
_DEFAULT_ART = ArtDirection()


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(description="Generate composited character images.")
    parser.add_argument("backgrounds", nargs="+", help="Background photos to composite the character into.")

    face = parser.add_argument_group("face")
    face.add_argument("--face", help="Primary reference face photo.")
    face.add_argument("--extra-face", action="append", default=[], help="Additional face photo (repeatable).")
    face.add_argument("--face-text", help="Face description; skips face analysis.")
    face.add_argument("--face-text-file", help="File holding a saved face description.")

    outfit = parser.add_argument_group("outfit")
    outfit.add_argument("--outfit", help="Outfit photo.")
    outfit.add_argument("--outfit-text", help="Outfit description; skips outfit analysis.")
    outfit.add_argument("--outfit-text-file", help="File holding a saved outfit description.")
    outfit.add_argument("--outfit-color", help="Recolor the outfit to this hex color instead of keeping it.")

    profile = parser.add_argument_group("character profile")
    profile.add_argument("--gender", default=_DEFAULT_PROFILE.gender)
    profile.add_argument("--age", type=int, default=_DEFAULT_PROFILE.age)
    profile.add_argument("--height", default=_DEFAULT_PROFILE.height)
    profile.add_argument("--weight", default=_DEFAULT_PROFILE.weight)
    profile.add_argument("--build", default=_DEFAULT_PROFILE.build)

    art = parser.add_argument_group("art direction")
    art.add_argument("--pose", default=_DEFAULT_ART.pose)
    art.add_argument("--style", choices=[style.value for style in ArtStyle], default=ArtStyle.PHOTOGRAPHIC.value)
    art.add_argument(
        "--quality", choices=[quality.value for quality in OutputQuality], default=OutputQuality.DEFAULT.value
    )
    art.add_argument("--prompt", default="", help="Free-text addendum for compositing.")
    art.add_argument("--strictness", type=int, default=_DEFAULT_ART.identity_strictness, help="0-100.")
    art.add_argument("--expression", default=_DEFAULT_ART.expression)
    art.add_argument("--no-auto-clean", action="store_true", help="Do not remove people from backgrounds.")

    extras = parser.add_argument_group("follow-ups")
    extras.add_argument("--quick-background", help="After the run, composite into this background as well.")
    extras.add_argument("--variant-pose", help="After the run, re-pose the first successful image.")
    extras.add_argument("--save-prompts", action="store_true", help="Save AI-generated descriptions.")

    parser.add_argument("--output-dir", help="Where to write generated images.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def _face_source(args: argparse.Namespace) -> Source:
    text = args.face_text or (load_prompt_text(args.face_text_file) if args.face_text_file else None)
    if args.face:
        extras = tuple(load_asset(path) for path in args.extra_face)
        return ImageSource(primary=load_asset(args.face), extras=extras, description=text)
    if text:
        return TextSource(text)
    raise SystemExit("Provide --face or --face-text/--face-text-file.")


def _outfit_source(args: argparse.Namespace) -> Source:
    text = args.outfit_text or (load_prompt_text(args.outfit_text_file) if args.outfit_text_file else None)
    if args.outfit:
        return ImageSource(primary=load_asset(args.outfit), description=text)
    if text:
        return TextSource(text)
    raise SystemExit("Provide --outfit or --outfit-text/--outfit-text-file.")


async def _run(args: argparse.Namespace) -> int:
    config = PipelineConfig.from_env()
    output_dir = args.output_dir or config.output_dir
    generator = CharacterGenerator(config)
    session = GenerationSession()
    session.add_backgrounds(load_asset(path) for path in args.backgrounds)

    request = session.build_request(
        _face_source(args),
        _outfit_source(args),
        profile=CharacterProfile(
            gender=args.gender,
            age=args.age,
            height=args.height,
            weight=args.weight,
            build=args.build,
        ),
        art_direction=ArtDirection(
            pose=args.pose,
            style=ArtStyle(args.style),
            quality=OutputQuality(args.quality),
            additional_prompt=args.prompt,
            identity_strictness=args.strictness,
            expression=args.expression,
            auto_clean_backgrounds=not args.no_auto_clean,
        ),
        outfit_color=OutfitColor(keep_original=True)
        if not args.outfit_color
        else OutfitColor(keep_original=False, target_hex=args.outfit_color),
    )

    run = await generator.run(session, request)
    if run.status is RunStatus.FAILED:
        print(f"Generation failed: {run.error}", file=sys.stderr)
        return 1

    if args.save_prompts:
        for kind, text in session.ai_prompts.items():
            if text:
                print(f"Saved {kind} description to {save_prompt_text(text, kind, output_dir)}")

    extra_items: List[ResultItem] = []
    try:
        if args.quick_background:
            session.set_quick_background(load_asset(args.quick_background))
            item = await generator.quick_composite(session)
            if item is not None:
                extra_items.append(item)
        if args.variant_pose:
            base = next((item for item in run.results if item.ok), None)
            if base is None:
                print("No successful image to create a variant from.", file=sys.stderr)
            else:
                extra_items.append(await generator.generate_variant(session, base, args.variant_pose))
    except GenerationError as exc:
        print(str(exc), file=sys.stderr)

    saved = save_results(list(run.results) + extra_items, output_dir)
    failed = sum(1 for item in run.results if not item.ok)
    print("Generation completed.")
    print(f"Images written: {len(saved)} (failed backgrounds: {failed}) -> {output_dir}")
    print(f"Prompts and responses logged under {config.runs_dir}/{run.run_id}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point used by ``kulgen`` and ``python run.py``."""
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
