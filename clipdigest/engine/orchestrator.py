from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from ..client import RetryingClient, RetryPolicy
from ..config import AppConfig
from ..core.contracts import Generator, SceneExtractor, Stage, Transcriber
from ..core.types import StageResult
from ..errors import ConfigError
from ..gates import AdmissionGate
from ..media import FfmpegSceneExtractor
from ..progress import ConsoleReporter
from ..store import CsvTableStore
from ..telemetry import RunMonitor
from .merge import MergeResult, combine_tables
from .runner import StageRunner
from .scenes import SceneAnalysisStage, extract_scenes, needs_screenshots
from .stages import TranscriptAnalysisStage, TranscriptionStage

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Orchestrator:
    """Runs the stages in their fixed order: transcribe, analyze, scenes, combine."""

    cfg: AppConfig
    store: CsvTableStore = field(default_factory=CsvTableStore)
    generator: Generator | None = None
    transcriber: Transcriber | None = None
    extractor: SceneExtractor = field(default_factory=FfmpegSceneExtractor)
    monitor: RunMonitor = field(default_factory=RunMonitor)
    reporter: ConsoleReporter | None = None
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self):
        cfg = self.cfg
        self.api_client = RetryingClient(
            gate=AdmissionGate(cfg.concurrent_api_calls, label="api"),
            policy=RetryPolicy(cfg.max_retries, cfg.retry_delay, cfg.rate_limit_delay),
            monitor=self.monitor,
            sleep=self.sleep,
        )
        self.transcription_client = RetryingClient(
            gate=AdmissionGate(cfg.concurrent_transcriptions, label="transcription"),
            policy=RetryPolicy(cfg.transcription_attempts, cfg.transcription_retry_delay, cfg.rate_limit_delay),
            monitor=self.monitor,
            sleep=self.sleep,
        )

    @staticmethod
    def _require(value: T | None, what: str) -> T:
        if value is None:
            raise ConfigError(f"No {what} configured for this run")
        return value

    def _run_stage(self, stage: Stage, max_workers: int) -> StageResult:
        runner = StageRunner(stage=stage, store=self.store, max_workers=max_workers, monitor=self.monitor)
        if self.reporter is None:
            return runner.run()
        with self.reporter.stage(stage.name) as tracker:
            runner.on_start = tracker.start
            runner.on_item = tracker.advance
            result = runner.run()
        self.reporter.banner(result)
        return result

    def transcribe(self) -> StageResult:
        stage = TranscriptionStage(
            cfg=self.cfg,
            transcriber=self._require(self.transcriber, "transcriber"),
            client=self.transcription_client,
        )
        return self._run_stage(stage, self.cfg.concurrent_transcriptions)

    def analyze_transcripts(self) -> StageResult:
        stage = TranscriptAnalysisStage(
            cfg=self.cfg,
            generator=self._require(self.generator, "generator"),
            client=self.api_client,
            store=self.store,
        )
        return self._run_stage(stage, self.cfg.concurrent_api_calls)

    def analyze_scenes(self, *, all_videos: bool = False) -> StageResult:
        stage = SceneAnalysisStage(
            cfg=self.cfg,
            generator=self._require(self.generator, "generator"),
            extractor=self.extractor,
            client=self.api_client,
            store=self.store,
            all_videos=all_videos,
        )
        return self._run_stage(stage, self.cfg.concurrent_videos)

    def extract_scenes(self, *, all_videos: bool = False) -> StageResult:
        if self.reporter is None:
            return extract_scenes(self.cfg, self.store, self.extractor, all_videos=all_videos)
        with self.reporter.stage("scene_extraction") as tracker:
            result = extract_scenes(
                self.cfg,
                self.store,
                self.extractor,
                all_videos=all_videos,
                on_start=tracker.start,
                on_item=tracker.advance,
            )
        self.reporter.banner(result)
        return result

    def combine(self) -> MergeResult:
        result = combine_tables(self.store, self.cfg.merge_tables(), self.cfg.combined_table)
        self.monitor.note_event("combine.finish", {"rows": result.rows, "output": str(result.output)})
        return result

    def run_all(self) -> list[StageResult]:
        results = [self.transcribe(), self.analyze_transcripts()]
        if not self.cfg.create_screenshots:
            logger.info("Screenshot creation and processing skipped based on configuration")
        elif needs_screenshots(self.cfg, self.store):
            results.append(self.analyze_scenes())
        else:
            logger.info("No videos need screenshots")
        self.combine()
        return results
