from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Sequence

from .. import constants as C
from ..client import RetryingClient
from ..config import AppConfig
from ..core.contracts import Generator, Transcriber
from ..core.types import CustomField, StageRecord, WorkItem
from ..errors import ConfigError, MissingInputError, NoWorkError, StoreNotFound
from ..media import discover_videos, extract_audio
from ..prompts import custom_field_prompt, transcript_prompt
from ..store import CsvTableStore, normalize_column

logger = logging.getLogger(__name__)


def is_flag_true(value: object) -> bool:
    """Missing or unparseable flags count as false."""
    if value is None:
        return False
    return str(value).strip().lower() == "true"


def normalize_flag(reply: str) -> str:
    cleaned = reply.strip().strip("'\".").strip().lower()
    if cleaned == "true":
        return C.FLAG_TRUE
    if cleaned == "false":
        return C.FLAG_FALSE
    return reply.strip()


def build_headers(base: Sequence[str], fields: Iterable[CustomField]) -> list[str]:
    headers = list(base)
    seen = {normalize_column(name) for name in headers}
    for custom in fields:
        key = normalize_column(custom.name)
        if key in seen:
            raise ConfigError(f"Custom field {custom.name!r} collides with an existing column")
        seen.add(key)
        headers.append(custom.name)
    return headers


def row_value(row: dict[str, str], column: str) -> str:
    if column in row:
        return row[column] or ""
    wanted = normalize_column(column)
    for key, value in row.items():
        if normalize_column(key) == wanted:
            return value or ""
    return ""


def _strip(text: str) -> str:
    return text.strip()


@dataclass(frozen=True)
class FieldSpec:
    column: str
    instruction: str
    max_tokens: int
    postprocess: Callable[[str], str] = _strip
    build_prompt: Callable[[str, str], str] = transcript_prompt


def read_required(store: CsvTableStore, table: Path) -> list[dict[str, str]]:
    try:
        return store.read_all(table)
    except StoreNotFound as exc:
        raise MissingInputError(f"Required table not found: {table}") from exc


@dataclass
class TranscriptionStage:
    """Videos folder -> (Filename, Transcription) rows."""

    cfg: AppConfig
    transcriber: Transcriber
    client: RetryingClient
    audio_extractor: Callable[..., Path] = field(default=extract_audio, repr=False)
    name: str = "transcription"
    key_column: str = C.COL_FILENAME

    @property
    def output_table(self) -> Path:
        return self.cfg.transcripts_table

    def headers(self) -> list[str]:
        return [C.COL_FILENAME, C.COL_TRANSCRIPTION]

    def load_items(self) -> list[WorkItem]:
        videos_dir = self.cfg.videos_dir
        if not videos_dir.is_dir():
            raise MissingInputError(f"Videos directory not found: {videos_dir}")
        videos = discover_videos(videos_dir, self.cfg.video_extensions)
        if not videos:
            raise NoWorkError(f"No supported videos found in {videos_dir}")
        return [WorkItem(key=video.name, payload=video) for video in videos]

    def short_circuit(self, item: WorkItem) -> StageRecord | None:
        return None

    def process(self, item: WorkItem) -> StageRecord:
        video = Path(item.payload)
        audio = self.audio_extractor(
            video,
            self.cfg.audio_dir / f"{video.stem}.wav",
            frequency=self.cfg.audio_frequency,
            channels=self.cfg.audio_channels,
        )
        transcript = self.client.submit(
            lambda: self.transcriber.transcribe(audio),
            f"transcribe:{item.key}",
            metadata={"source_path": str(video)},
        )
        logger.info("Transcribed and saved: %s", item.key)
        return {C.COL_FILENAME: item.key, C.COL_TRANSCRIPTION: transcript.strip()}

    def placeholder(self, item: WorkItem, error: BaseException) -> StageRecord:
        return {
            C.COL_FILENAME: item.key,
            C.COL_TRANSCRIPTION: f"{C.TRANSCRIPTION_ERROR_PREFIX} ({error})",
        }


@dataclass
class TranscriptAnalysisStage:
    """Transcripts -> summary, tags, needs-screenshots flag and custom fields."""

    cfg: AppConfig
    generator: Generator
    client: RetryingClient
    store: CsvTableStore
    name: str = "transcript_analysis"
    key_column: str = C.COL_FILENAME

    @property
    def output_table(self) -> Path:
        return self.cfg.transcript_analysis_table

    def headers(self) -> list[str]:
        return build_headers(
            [C.COL_FILENAME, C.COL_TRANSCRIPTION, C.COL_SUMMARY, C.COL_TAGS, C.COL_NEEDS_SCREENSHOTS],
            self.cfg.transcript_fields,
        )

    def load_items(self) -> list[WorkItem]:
        items: list[WorkItem] = []
        for row in read_required(self.store, self.cfg.transcripts_table):
            key = row_value(row, C.COL_FILENAME).strip()
            if not key:
                logger.warning("Skipping transcript row without a filename")
                continue
            items.append(WorkItem(key=key, payload=row_value(row, C.COL_TRANSCRIPTION)))
        return items

    def _too_short(self, text: str) -> bool:
        if not text.strip() or text.startswith(C.TRANSCRIPTION_ERROR_PREFIX):
            return True
        return len(text) < self.cfg.min_transcript_length

    def short_circuit(self, item: WorkItem) -> StageRecord | None:
        text = str(item.payload)
        if not self._too_short(text):
            return None
        logger.info("Skipping %s - transcription too short or empty", item.key)
        record = {
            C.COL_FILENAME: item.key,
            C.COL_TRANSCRIPTION: text,
            C.COL_SUMMARY: C.TOO_SHORT_SUMMARY,
            C.COL_TAGS: "",
            C.COL_NEEDS_SCREENSHOTS: C.FLAG_TRUE,
        }
        record.update({custom.name: "" for custom in self.cfg.transcript_fields})
        return record

    def field_plan(self) -> list[FieldSpec]:
        """Generated columns in evaluation order; custom fields come last."""
        cfg = self.cfg
        plan = [
            FieldSpec(C.COL_SUMMARY, cfg.summary_prompt, cfg.summary_max_tokens),
            FieldSpec(C.COL_TAGS, cfg.tags_prompt, cfg.tags_max_tokens),
            FieldSpec(C.COL_NEEDS_SCREENSHOTS, cfg.needs_screenshots_prompt, cfg.tags_max_tokens, normalize_flag),
        ]
        plan.extend(
            FieldSpec(custom.name, custom.prompt, cfg.custom_max_tokens, build_prompt=custom_field_prompt)
            for custom in cfg.transcript_fields
        )
        return plan

    def process(self, item: WorkItem) -> StageRecord:
        text = str(item.payload)
        record: StageRecord = {C.COL_FILENAME: item.key, C.COL_TRANSCRIPTION: text}
        for spec in self.field_plan():
            prompt = spec.build_prompt(spec.instruction, text)
            reply = self.client.submit(
                lambda prompt=prompt, spec=spec: self.generator.generate_text(
                    prompt, max_tokens=spec.max_tokens, temperature=self.cfg.temperature
                ),
                f"{normalize_column(spec.column)}:{item.key}",
            )
            record[spec.column] = spec.postprocess(reply)
        return record

    def placeholder(self, item: WorkItem, error: BaseException) -> StageRecord:
        record = {
            C.COL_FILENAME: item.key,
            C.COL_TRANSCRIPTION: str(item.payload),
            C.COL_SUMMARY: f"Error: {error}",
            C.COL_TAGS: C.TAGS_ERROR,
            C.COL_NEEDS_SCREENSHOTS: C.FLAG_TRUE,
        }
        record.update({custom.name: C.CONTENT_ERROR for custom in self.cfg.transcript_fields})
        return record
