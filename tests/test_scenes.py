from __future__ import annotations

import threading
import time

import pytest

from clipdigest import constants as C
from clipdigest.core.types import CustomField
from clipdigest.engine.runner import StageRunner
from clipdigest.engine.scenes import (
    SceneAnalysisStage,
    ensure_artifacts,
    extract_scenes,
    fold_extracted_text,
    needs_screenshots,
)
from clipdigest.errors import MediaError, MissingInputError, ServiceError
from clipdigest.store import CsvTableStore

from conftest import FakeExtractor, FakeGenerator


def _seed_analysis(store, cfg, flags: dict[str, str]) -> None:
    store.append(
        cfg.transcript_analysis_table,
        [{C.COL_FILENAME: key, C.COL_NEEDS_SCREENSHOTS: flag} for key, flag in flags.items()],
        headers=[C.COL_FILENAME, C.COL_NEEDS_SCREENSHOTS],
    )


def test_fallback_threshold_tried_exactly_once(tmp_path, videos):
    folder = videos("a.mp4")
    extractor = FakeExtractor(frames=3, empty_at=(0.3,))

    group = ensure_artifacts(
        "a.mp4",
        folder / "a.mp4",
        artifact_root=tmp_path / "screenshots",
        extractor=extractor,
        threshold=0.3,
        fallback_threshold=0.1,
    )

    assert extractor.calls == [("a.mp4", 0.3), ("a.mp4", 0.1)]
    assert len(group) == 3
    assert group.extracted


def test_no_stills_even_at_fallback_yields_empty_group(tmp_path, videos):
    folder = videos("a.mp4")
    extractor = FakeExtractor(empty_at=(0.3, 0.1))

    group = ensure_artifacts(
        "a.mp4",
        folder / "a.mp4",
        artifact_root=tmp_path / "screenshots",
        extractor=extractor,
        threshold=0.3,
        fallback_threshold=0.1,
    )

    assert len(extractor.calls) == 2
    assert len(group) == 0


def test_existing_stills_skip_extraction(tmp_path):
    stills = tmp_path / "screenshots" / "a"
    stills.mkdir(parents=True)
    (stills / "a-frame-002.jpg").write_bytes(b"x")
    (stills / "a-frame-010.jpg").write_bytes(b"x")
    extractor = FakeExtractor()

    group = ensure_artifacts(
        "a.mp4",
        tmp_path / "videos" / "a.mp4",
        artifact_root=tmp_path / "screenshots",
        extractor=extractor,
        threshold=0.3,
        fallback_threshold=0.1,
    )

    assert extractor.calls == []
    assert [p.name for p in group.artifacts] == ["a-frame-002.jpg", "a-frame-010.jpg"]
    assert not group.extracted


def test_missing_video_is_media_error(tmp_path):
    with pytest.raises(MediaError):
        ensure_artifacts(
            "gone.mp4",
            tmp_path / "gone.mp4",
            artifact_root=tmp_path / "screenshots",
            extractor=FakeExtractor(),
            threshold=0.3,
            fallback_threshold=0.1,
        )


def test_fold_drops_failures_and_sentinel():
    texts = ["first", C.SCREENSHOT_ERROR, "N/A", "  ", "n/a", "second"]
    assert fold_extracted_text(texts) == "first\n\nsecond"


def test_scene_analysis_only_processes_flagged_videos(make_config, client, videos):
    videos("a.mp4", "b.mp4")
    cfg = make_config(screenshot_fields=(CustomField(name="Screenshot Products", prompt="PRODUCTS"),))
    store = CsvTableStore()
    _seed_analysis(store, cfg, {"a.mp4": "True", "b.mp4": "False"})
    generator = FakeGenerator(lambda prompt: "summary text")
    extractor = FakeExtractor(frames=2)

    stage = SceneAnalysisStage(cfg=cfg, generator=generator, extractor=extractor, client=client(), store=store)
    result = StageRunner(stage=stage, store=store).run()

    assert result.processed == 1
    rows = store.read_all(cfg.screenshots_table)
    assert rows == [
        {
            C.COL_FILENAME: "a.mp4",
            C.COL_SCREENSHOT_COUNT: "2",
            C.COL_EXTRACTED_TEXT: "text from a-frame-001.jpg\n\ntext from a-frame-002.jpg",
            C.COL_CONTENT_SUMMARY: "summary text",
            "Screenshot Products": "summary text",
        }
    ]
    assert len(generator.images) == 2


def test_failed_still_is_left_out_of_folded_text(make_config, client, videos):
    videos("a.mp4")
    cfg = make_config()
    store = CsvTableStore()
    _seed_analysis(store, cfg, {"a.mp4": "True"})

    def vision(path):
        if path.name.endswith("001.jpg"):
            raise ServiceError("vision down")
        return "readable"

    stage = SceneAnalysisStage(
        cfg=cfg,
        generator=FakeGenerator(vision_reply=vision),
        extractor=FakeExtractor(frames=2),
        client=client(max_attempts=1),
        store=store,
    )
    StageRunner(stage=stage, store=store).run()

    row = store.read_all(cfg.screenshots_table)[0]
    assert row[C.COL_SCREENSHOT_COUNT] == "2"
    assert row[C.COL_EXTRACTED_TEXT] == "readable"


def test_empty_extracted_text_skips_generation(make_config, client, videos):
    videos("a.mp4")
    cfg = make_config()
    store = CsvTableStore()
    _seed_analysis(store, cfg, {"a.mp4": "True"})
    generator = FakeGenerator(vision_reply=lambda path: "N/A")

    stage = SceneAnalysisStage(cfg=cfg, generator=generator, extractor=FakeExtractor(), client=client(), store=store)
    StageRunner(stage=stage, store=store).run()

    row = store.read_all(cfg.screenshots_table)[0]
    assert generator.prompts == []
    assert row[C.COL_EXTRACTED_TEXT] == ""
    assert row[C.COL_CONTENT_SUMMARY] == ""


def test_missing_video_writes_placeholder(make_config, client, videos):
    videos()
    cfg = make_config()
    store = CsvTableStore()
    _seed_analysis(store, cfg, {"gone.mp4": "True"})

    stage = SceneAnalysisStage(cfg=cfg, generator=FakeGenerator(), extractor=FakeExtractor(), client=client(), store=store)
    result = StageRunner(stage=stage, store=store).run()

    row = store.read_all(cfg.screenshots_table)[0]
    assert result.errors == 1
    assert row[C.COL_SCREENSHOT_COUNT] == "0"
    assert row[C.COL_EXTRACTED_TEXT] == C.SCREENSHOTS_ERROR


def test_all_videos_mode_ignores_flags(make_config, client, videos):
    videos("a.mp4", "b.mp4")
    cfg = make_config()
    store = CsvTableStore()

    stage = SceneAnalysisStage(
        cfg=cfg,
        generator=FakeGenerator(),
        extractor=FakeExtractor(),
        client=client(),
        store=store,
        all_videos=True,
    )

    assert [item.key for item in stage.load_items()] == ["a.mp4", "b.mp4"]


def test_flagged_mode_requires_analysis_table(make_config, client):
    cfg = make_config()
    stage = SceneAnalysisStage(cfg=cfg, generator=FakeGenerator(), extractor=FakeExtractor(), client=client(), store=CsvTableStore())
    with pytest.raises(MissingInputError):
        stage.load_items()


def test_extract_scenes_uses_folders_as_checkpoint(make_config, videos):
    videos("a.mp4", "b.mp4")
    cfg = make_config()
    store = CsvTableStore()
    _seed_analysis(store, cfg, {"a.mp4": "True", "b.mp4": "true", "c.mp4": "False"})
    extractor = FakeExtractor()

    first = extract_scenes(cfg, store, extractor)
    second = extract_scenes(cfg, store, extractor)

    assert first.processed == 2
    assert second.processed == 0
    assert second.skipped == 2
    assert len(extractor.calls) == 2


def test_needs_screenshots(make_config):
    cfg = make_config()
    store = CsvTableStore()
    assert not needs_screenshots(cfg, store)
    _seed_analysis(store, cfg, {"a.mp4": "False"})
    assert not needs_screenshots(cfg, store)
    _seed_analysis(store, cfg, {"b.mp4": "TRUE"})
    assert needs_screenshots(cfg, store)


def test_still_descriptions_stay_within_screenshot_limit(make_config, client, videos):
    videos("a.mp4")
    cfg = make_config(concurrent_screenshots=2)
    store = CsvTableStore()
    _seed_analysis(store, cfg, {"a.mp4": "True"})
    lock = threading.Lock()
    counts = {"active": 0, "peak": 0}

    def vision(path):
        with lock:
            counts["active"] += 1
            counts["peak"] = max(counts["peak"], counts["active"])
        time.sleep(0.05)
        with lock:
            counts["active"] -= 1
        return f"text from {path.name}"

    generator = FakeGenerator(vision_reply=vision)
    stage = SceneAnalysisStage(
        cfg=cfg,
        generator=generator,
        extractor=FakeExtractor(frames=6),
        client=client(capacity=10),
        store=store,
    )
    StageRunner(stage=stage, store=store).run()

    assert len(generator.images) == 6
    assert 1 < counts["peak"] <= 2
