from .config import AppConfig
from .core.types import Outcome, StageResult, WorkItem
from .engine import Orchestrator, combine_tables
from .store import CsvTableStore

__all__ = [
    "AppConfig",
    "CsvTableStore",
    "Orchestrator",
    "Outcome",
    "StageResult",
    "WorkItem",
    "combine_tables",
]
