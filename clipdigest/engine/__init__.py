from .merge import MergeResult, combine_tables
from .orchestrator import Orchestrator
from .runner import StageRunner
from .scenes import SceneAnalysisStage, ensure_artifacts, extract_scenes, fold_extracted_text, needs_screenshots
from .stages import TranscriptAnalysisStage, TranscriptionStage

__all__ = [
    "MergeResult",
    "Orchestrator",
    "SceneAnalysisStage",
    "StageRunner",
    "TranscriptAnalysisStage",
    "TranscriptionStage",
    "combine_tables",
    "ensure_artifacts",
    "extract_scenes",
    "fold_extracted_text",
    "needs_screenshots",
]
