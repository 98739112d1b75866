"""Tests for the artifact store, session bookkeeping and local export helpers."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fakes import FAKE_POSE, make_asset, png_bytes

from kulgen.config import PipelineConfig
from kulgen.export import load_prompt_text, prompt_filename, save_prompt_text, save_results
from kulgen.session import GenerationSession
from kulgen.store import ArtifactStore
from kulgen.types import (
    ImageBlob,
    PipelineRun,
    PoseMetadata,
    ResultItem,
    ResultStatus,
    RunStatus,
    TextSource,
    new_asset_id,
)
from kulgen.utils.images import asset_from_bytes, image_size, load_asset, make_preview


class ArtifactStoreTest(unittest.TestCase):
    def setUp(self) -> None:
        self.store = ArtifactStore()
        self.asset = self.store.add(make_asset())

    def test_ids_are_unique(self) -> None:
        self.assertEqual(len({new_asset_id() for _ in range(100)}), 100)
        with self.assertRaises(ValueError):
            self.store.add(self.asset)

    def test_set_cleaned_and_get_pose(self) -> None:
        cleaned = ImageBlob(png_bytes(10, 10))
        pose = PoseMetadata(**FAKE_POSE)

        updated = self.store.set_cleaned(self.asset.asset_id, cleaned, pose)

        self.assertTrue(updated.cleaned)
        self.assertEqual(updated.image, cleaned)
        self.assertEqual(self.store.get_pose(self.asset.asset_id), pose)

    def test_replace_drops_cached_cleaning(self) -> None:
        self.store.set_cleaned(self.asset.asset_id, ImageBlob(png_bytes(10, 10)), PoseMetadata(**FAKE_POSE))
        upload = ImageBlob(png_bytes(20, 20))

        replaced = self.store.replace(self.asset.asset_id, upload, name="new.png")

        self.assertEqual(replaced.image, upload)
        self.assertEqual(replaced.name, "new.png")
        self.assertFalse(replaced.cleaned)
        self.assertIsNone(self.store.get_pose(self.asset.asset_id))

    def test_remove_and_require(self) -> None:
        self.store.remove(self.asset.asset_id)
        self.assertNotIn(self.asset.asset_id, self.store)
        self.assertIsNone(self.store.get_pose(self.asset.asset_id))
        with self.assertRaises(KeyError):
            self.store.require(self.asset.asset_id)

    def test_isolated_subject_slot(self) -> None:
        self.assertIsNone(self.store.get_isolated_subject())
        subject = ImageBlob(png_bytes(8, 8))
        self.store.set_isolated_subject(subject)
        self.assertEqual(self.store.get_isolated_subject(), subject)
        self.store.clear_isolated_subject()
        self.assertIsNone(self.store.get_isolated_subject())


class GenerationSessionTest(unittest.TestCase):
    def setUp(self) -> None:
        self.session = GenerationSession()

    def test_request_snapshots_backgrounds(self) -> None:
        first, second = self.session.add_backgrounds([make_asset(), make_asset()])
        request = self.session.build_request(TextSource("face"), TextSource("outfit"))

        self.session.set_background_pose(first.asset_id, "crouching")
        self.session.remove_background(second.asset_id)

        self.assertEqual([bg.asset_id for bg in request.backgrounds], [first.asset_id, second.asset_id])
        self.assertEqual(request.backgrounds[0].pose, "")
        self.assertEqual([bg.pose for bg in self.session.backgrounds], ["crouching"])
        self.assertFalse(request.needs_face_analysis)
        self.assertIsNone(request.face_reference)

    def test_quick_background_is_replaced(self) -> None:
        first = self.session.set_quick_background(make_asset())
        second = self.session.set_quick_background(make_asset())

        self.assertNotIn(first.asset_id, self.session.store)
        self.assertEqual(self.session.quick_background, second)
        self.session.remove_quick_background()
        self.assertIsNone(self.session.quick_background)

    def test_start_run_clears_previous_state(self) -> None:
        self.session.add_backgrounds([make_asset()])
        self.session.results.append(
            ResultItem("gen-1", ImageBlob(b"x"), "bg", ResultStatus.SUCCESS)
        )
        self.session.ai_prompts["face"] = "old"
        self.session.error = "old failure"
        run = PipelineRun(run_id="run-1", total=3)

        self.session.start_run(run, self.session.build_request(TextSource("a"), TextSource("b")))

        self.assertIs(run.status, RunStatus.RUNNING)
        self.assertEqual(self.session.results, [])
        self.assertEqual(self.session.ai_prompts, {"face": None, "outfit": None})
        self.assertIsNone(self.session.error)
        self.assertTrue(self.session.is_generating)

    def test_user_supplied_subject_replaces_generated_one(self) -> None:
        upload = ImageBlob(png_bytes(12, 24), "image/png")
        self.session.replace_isolated_subject(upload)
        self.assertEqual(self.session.isolated_subject, upload)
        self.assertTrue(upload.to_data_url().startswith("data:image/png;base64,iVBOR"))

    def test_unknown_result_id(self) -> None:
        with self.assertRaises(KeyError):
            self.session.result("missing")


class ExportAndIngestTest(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.tmp = Path(tmp.name)

    def test_save_results_skips_failures(self) -> None:
        items = [
            ResultItem("gen-a", ImageBlob(png_bytes()), "bg-1", ResultStatus.SUCCESS),
            ResultItem("fail-b", None, "bg-2", ResultStatus.FAILED, "Image generation failed: boom"),
        ]
        saved = save_results(items, self.tmp / "out")
        self.assertEqual(len(saved), 1)
        self.assertEqual(saved[0].suffix, ".png")
        self.assertTrue(saved[0].exists())

    def test_prompt_text_round_trip(self) -> None:
        path = save_prompt_text("round face", "face", self.tmp)
        self.assertEqual(path.name, prompt_filename("face"))
        self.assertEqual(load_prompt_text(path), "round face")
        with self.assertRaises(ValueError):
            prompt_filename("hair")

    def test_load_asset_normalises_images(self) -> None:
        path = self.tmp / "scene.png"
        path.write_bytes(png_bytes(120, 80))

        asset = load_asset(path, pose="waving")

        self.assertEqual((asset.width, asset.height), (120, 80))
        self.assertEqual(asset.pose, "waving")
        self.assertEqual(asset.name, "scene.png")
        self.assertEqual(image_size(make_preview(asset.image)), (120, 80))

    def test_asset_from_bytes_keeps_encoding(self) -> None:
        data = png_bytes(30, 20)
        asset = asset_from_bytes(data, "image/png", name="upload.png")
        self.assertEqual(asset.image.data, data)
        self.assertEqual((asset.width, asset.height), (30, 20))


class PipelineConfigTest(unittest.TestCase):
    def test_invalid_limits_are_rejected(self) -> None:
        with self.assertRaises(ValueError):
            PipelineConfig(max_concurrency=0)
        with self.assertRaises(ValueError):
            PipelineConfig(rate_limit_retries=-1)

    def test_from_env(self) -> None:
        env = {
            "KULGEN_RUNS_DIR": "/tmp/kulgen-runs",
            "KULGEN_ENABLE_MOCKS": "false",
            "KULGEN_MAX_CONCURRENCY": "3",
            "API_KEY": "secret",
        }
        with mock.patch.dict("os.environ", env, clear=True):
            config = PipelineConfig.from_env()
        self.assertEqual(config.runs_dir, "/tmp/kulgen-runs")
        self.assertFalse(config.enable_mock_generation)
        self.assertEqual(config.max_concurrency, 3)
        self.assertEqual(config.gemini_api_key, "secret")


if __name__ == "__main__":
    unittest.main()
