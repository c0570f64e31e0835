from __future__ import annotations

from pathlib import Path
from typing import Protocol, Sequence

from .types import StageRecord, WorkItem


class Generator(Protocol):
    def generate_text(self, prompt: str, *, max_tokens: int | None = None, temperature: float | None = None) -> str:
        ...

    def describe_image(self, prompt: str, image_path: Path) -> str:
        ...


class Transcriber(Protocol):
    def transcribe(self, audio_path: Path) -> str:
        ...


class SceneExtractor(Protocol):
    def extract(self, video_path: Path, output_dir: Path, threshold: float) -> list[Path]:
        ...


class Stage(Protocol):
    """One named phase with its own input set and output table."""

    name: str
    output_table: Path
    key_column: str

    def headers(self) -> list[str]:
        ...

    def load_items(self) -> Sequence[WorkItem]:
        ...

    def short_circuit(self, item: WorkItem) -> StageRecord | None:
        ...

    def process(self, item: WorkItem) -> StageRecord:
        ...

    def placeholder(self, item: WorkItem, error: BaseException) -> StageRecord:
        ...
