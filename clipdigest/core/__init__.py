"""Core domain types and contracts for the pipeline engine."""

from .types import ArtifactGroup, CustomField, Outcome, StageRecord, StageResult, WorkItem

__all__ = [
    "ArtifactGroup",
    "CustomField",
    "Outcome",
    "StageRecord",
    "StageResult",
    "WorkItem",
]
