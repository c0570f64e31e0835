from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Union

# Column title -> cell value. Always carries the stage's key column.
StageRecord = Dict[str, str]


class Outcome(str, Enum):
    OK = "ok"
    ERROR = "error"
    SHORT_CIRCUIT = "short_circuit"


@dataclass(frozen=True)
class WorkItem:
    key: str
    payload: Union[Path, str]


@dataclass(frozen=True)
class ArtifactGroup:
    key: str
    directory: Path
    artifacts: tuple[Path, ...]
    extracted: bool = False

    def __len__(self) -> int:
        return len(self.artifacts)


@dataclass(frozen=True)
class CustomField:
    name: str
    prompt: str


@dataclass(frozen=True)
class StageResult:
    stage: str
    discovered: int
    skipped: int
    processed: int
    errors: int
    short_circuited: int = 0

    @property
    def succeeded(self) -> int:
        return self.processed - self.errors - self.short_circuited

    def to_dict(self) -> Dict[str, object]:
        return {
            "stage": self.stage,
            "discovered": self.discovered,
            "skipped": self.skipped,
            "processed": self.processed,
            "errors": self.errors,
            "short_circuited": self.short_circuited,
            "succeeded": self.succeeded,
        }
