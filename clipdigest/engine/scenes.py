from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from .. import constants as C
from ..client import RetryingClient
from ..config import AppConfig
from ..core.contracts import Generator, SceneExtractor
from ..core.types import ArtifactGroup, Outcome, StageRecord, StageResult, WorkItem
from ..errors import FatalError, MediaError, MissingInputError, StoreNotFound
from ..gates import run_bounded
from ..media import discover_videos, list_artifacts
from ..prompts import custom_field_prompt, screenshot_summary_prompt
from ..store import CsvTableStore
from .stages import build_headers, is_flag_true, read_required, row_value

logger = logging.getLogger(__name__)


def artifact_dir_for(root: Path, key: str) -> Path:
    return Path(root) / Path(key).stem


def ensure_artifacts(
    key: str,
    video_path: Path,
    *,
    artifact_root: Path,
    extractor: SceneExtractor,
    threshold: float,
    fallback_threshold: float,
) -> ArtifactGroup:
    """Return the stills for one video, extracting them only when none exist yet.

    A folder holding at least one still satisfies the item regardless of any
    table checkpoint. Zero stills at *threshold* triggers exactly one more
    extraction at *fallback_threshold*.
    """
    directory = artifact_dir_for(artifact_root, key)
    existing = list_artifacts(directory)
    if existing:
        logger.info("Skipping extraction for %s - %d screenshots already exist", key, len(existing))
        return ArtifactGroup(key=key, directory=directory, artifacts=tuple(existing), extracted=False)

    video_path = Path(video_path)
    if not video_path.is_file():
        raise MediaError(f"Video file not found: {video_path}")

    artifacts = extractor.extract(video_path, directory, threshold)
    if not artifacts:
        logger.warning(
            "No screenshots generated for %s at threshold %s; retrying with %s",
            key,
            threshold,
            fallback_threshold,
        )
        artifacts = extractor.extract(video_path, directory, fallback_threshold)
        if not artifacts:
            logger.warning("No screenshots generated for %s even at the fallback threshold", key)
    logger.info("Created %d screenshots for %s", len(artifacts), key)
    return ArtifactGroup(key=key, directory=directory, artifacts=tuple(artifacts), extracted=True)


def fold_extracted_text(texts: Iterable[str]) -> str:
    """Concatenate per-still text, dropping failures and the no-content sentinel."""
    kept = []
    for text in texts:
        cleaned = (text or "").strip()
        if not cleaned or cleaned == C.SCREENSHOT_ERROR or cleaned.upper() == C.NO_CONTENT_SENTINEL:
            continue
        kept.append(cleaned)
    return "\n\n".join(kept)


def flagged_video_items(cfg: AppConfig, store: CsvTableStore) -> list[WorkItem]:
    items = []
    for row in read_required(store, cfg.transcript_analysis_table):
        key = row_value(row, C.COL_FILENAME).strip()
        if key and is_flag_true(row_value(row, C.COL_NEEDS_SCREENSHOTS)):
            items.append(WorkItem(key=key, payload=cfg.videos_dir / key))
        elif key:
            logger.debug("Skipping %s (Needs Screenshots: False)", key)
    return items


def all_video_items(cfg: AppConfig) -> list[WorkItem]:
    if not cfg.videos_dir.is_dir():
        raise MissingInputError(f"Videos directory not found: {cfg.videos_dir}")
    return [WorkItem(key=video.name, payload=video) for video in discover_videos(cfg.videos_dir, cfg.video_extensions)]


def needs_screenshots(cfg: AppConfig, store: CsvTableStore) -> bool:
    try:
        rows = store.read_all(cfg.transcript_analysis_table)
    except StoreNotFound:
        return False
    return any(is_flag_true(row_value(row, C.COL_NEEDS_SCREENSHOTS)) for row in rows)


@dataclass
class SceneAnalysisStage:
    """Per video: ensure stills, read each still, fold, then summarize once."""

    cfg: AppConfig
    generator: Generator
    extractor: SceneExtractor
    client: RetryingClient
    store: CsvTableStore
    all_videos: bool = False
    name: str = "scene_analysis"
    key_column: str = C.COL_FILENAME

    @property
    def output_table(self) -> Path:
        return self.cfg.screenshots_table

    def headers(self) -> list[str]:
        return build_headers(
            [C.COL_FILENAME, C.COL_SCREENSHOT_COUNT, C.COL_EXTRACTED_TEXT, C.COL_CONTENT_SUMMARY],
            self.cfg.screenshot_fields,
        )

    def load_items(self) -> list[WorkItem]:
        if self.all_videos:
            return all_video_items(self.cfg)
        return flagged_video_items(self.cfg, self.store)

    def short_circuit(self, item: WorkItem) -> StageRecord | None:
        return None

    def _analyze_artifact(self, path: Path) -> str:
        try:
            return self.client.submit(
                lambda: self.generator.describe_image(self.cfg.vision_prompt, path),
                f"describe:{path.name}",
                metadata={"source_path": str(path)},
            )
        except FatalError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("Error processing screenshot %s: %s", path.name, exc)
            return C.SCREENSHOT_ERROR

    def _generate(self, prompt: str, max_tokens: int, operation: str, fallback: str) -> str:
        try:
            reply = self.client.submit(
                lambda: self.generator.generate_text(prompt, max_tokens=max_tokens, temperature=self.cfg.temperature),
                operation,
            )
        except FatalError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("%s failed: %s", operation, exc)
            return fallback
        return reply.strip()

    def process(self, item: WorkItem) -> StageRecord:
        group = ensure_artifacts(
            item.key,
            Path(item.payload),
            artifact_root=self.cfg.screenshots_dir,
            extractor=self.extractor,
            threshold=self.cfg.scene_threshold,
            fallback_threshold=self.cfg.fallback_scene_threshold,
        )
        logger.info("Processing %d screenshots for %s", len(group), item.key)
        texts = run_bounded(
            list(group.artifacts),
            max_workers=self.cfg.concurrent_screenshots,
            fn=self._analyze_artifact,
        )
        blob = fold_extracted_text(texts)

        record: StageRecord = {
            C.COL_FILENAME: item.key,
            C.COL_SCREENSHOT_COUNT: str(len(group)),
            C.COL_EXTRACTED_TEXT: blob,
            C.COL_CONTENT_SUMMARY: "",
        }
        if not blob:
            logger.warning("No text extracted from screenshots of %s", item.key)
            record.update({custom.name: "" for custom in self.cfg.screenshot_fields})
            return record

        record[C.COL_CONTENT_SUMMARY] = self._generate(
            screenshot_summary_prompt(self.cfg.screenshot_summary_prompt, blob),
            self.cfg.screenshot_summary_max_tokens,
            f"screenshot_summary:{item.key}",
            C.SUMMARY_ERROR,
        )
        for custom in self.cfg.screenshot_fields:
            record[custom.name] = self._generate(
                custom_field_prompt(custom.prompt, blob),
                self.cfg.custom_max_tokens,
                f"{custom.name}:{item.key}",
                C.CONTENT_ERROR,
            )
        logger.info("Completed analysis for %s", item.key)
        return record

    def placeholder(self, item: WorkItem, error: BaseException) -> StageRecord:
        record = {
            C.COL_FILENAME: item.key,
            C.COL_SCREENSHOT_COUNT: "0",
            C.COL_EXTRACTED_TEXT: C.SCREENSHOTS_ERROR,
            C.COL_CONTENT_SUMMARY: f"Error: {error}",
        }
        record.update({custom.name: C.CONTENT_ERROR for custom in self.cfg.screenshot_fields})
        return record


def extract_scenes(
    cfg: AppConfig,
    store: CsvTableStore,
    extractor: SceneExtractor,
    *,
    all_videos: bool = False,
    on_start: Callable[[int], None] | None = None,
    on_item: Callable[[WorkItem, Outcome], None] | None = None,
) -> StageResult:
    """Extraction only; the screenshot folders are the sole checkpoint."""
    items = all_video_items(cfg) if all_videos else flagged_video_items(cfg, store)
    logger.info("Found %d videos that need screenshots", len(items))
    if on_start is not None:
        on_start(len(items))

    def _extract(item: WorkItem) -> tuple[WorkItem, Outcome, bool]:
        try:
            group = ensure_artifacts(
                item.key,
                Path(item.payload),
                artifact_root=cfg.screenshots_dir,
                extractor=extractor,
                threshold=cfg.scene_threshold,
                fallback_threshold=cfg.fallback_scene_threshold,
            )
        except MediaError as exc:
            logger.error("Failed to process %s: %s", item.key, exc)
            entry = (item, Outcome.ERROR, False)
        else:
            entry = (item, Outcome.OK, group.extracted)
        if on_item is not None:
            on_item(item, entry[1])
        return entry

    outcomes = run_bounded(items, max_workers=cfg.concurrent_videos, fn=_extract)
    errors = sum(1 for _, outcome, _ in outcomes if outcome == Outcome.ERROR)
    extracted = sum(1 for _, _, did_extract in outcomes if did_extract)
    return StageResult(
        stage="scene_extraction",
        discovered=len(items),
        skipped=len(items) - extracted - errors,
        processed=extracted + errors,
        errors=errors,
    )
