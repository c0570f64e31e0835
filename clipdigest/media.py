from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Iterable, Sequence

from natsort import natsorted

from .constants import (
    ARTIFACT_EXTENSION,
    AUDIO_CHANNELS,
    AUDIO_FREQUENCY,
    SCENE_SCALE_WIDTH,
    SUPPORTED_VIDEO_EXTENSIONS,
)
from .errors import MediaError

logger = logging.getLogger(__name__)


def _run_ffmpeg(cmd: Sequence[str], *, action: str) -> None:
    logger.debug("ffmpeg: %s", " ".join(cmd))
    try:
        subprocess.run(list(cmd), check=True, capture_output=True)
    except FileNotFoundError as exc:
        raise MediaError("ffmpeg executable not found; install ffmpeg to process videos.") from exc
    except subprocess.CalledProcessError as exc:
        stderr = exc.stderr.decode(errors="replace") if isinstance(exc.stderr, bytes) else exc.stderr
        raise MediaError(f"ffmpeg failed while {action}: {stderr}") from exc


def discover_videos(directory: Path, extensions: Iterable[str] = SUPPORTED_VIDEO_EXTENSIONS) -> list[Path]:
    allowed = {ext.lower() for ext in extensions}
    return natsorted(
        (path for path in Path(directory).iterdir() if path.is_file() and path.suffix.lower() in allowed),
        key=lambda p: p.name,
    )


def list_artifacts(directory: Path) -> list[Path]:
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return natsorted(
        (path for path in directory.iterdir() if path.is_file() and path.suffix.lower() == ARTIFACT_EXTENSION),
        key=lambda p: p.name,
    )


def extract_audio(
    video_path: Path,
    audio_path: Path,
    *,
    frequency: int = AUDIO_FREQUENCY,
    channels: int = AUDIO_CHANNELS,
) -> Path:
    """Convert a video's soundtrack to wav; an existing wav is reused."""
    audio_path = Path(audio_path)
    if audio_path.exists() and audio_path.stat().st_size > 0:
        logger.debug("%s: reusing extracted audio %s", video_path.name, audio_path.name)
        return audio_path
    audio_path.parent.mkdir(parents=True, exist_ok=True)
    _run_ffmpeg(
        [
            "ffmpeg",
            "-y",
            "-i",
            str(video_path),
            "-vn",
            "-ar",
            str(frequency),
            "-ac",
            str(channels),
            str(audio_path),
        ],
        action=f"converting {video_path.name} to audio",
    )
    logger.info("Audio conversion completed: %s", audio_path)
    return audio_path


class FfmpegSceneExtractor:
    """Extracts one still per detected scene change using ffmpeg's scene score."""

    def __init__(self, *, scale_width: int = SCENE_SCALE_WIDTH) -> None:
        self._scale_width = scale_width

    def extract(self, video_path: Path, output_dir: Path, threshold: float) -> list[Path]:
        video_path = Path(video_path)
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        pattern = output_dir / f"{video_path.stem}-frame-%03d{ARTIFACT_EXTENSION}"
        _run_ffmpeg(
            [
                "ffmpeg",
                "-y",
                "-i",
                str(video_path),
                "-vf",
                f"select='gt(scene,{threshold})',scale={self._scale_width}:-1",
                "-vsync",
                "0",
                "-frame_pts",
                "1",
                str(pattern),
            ],
            action=f"extracting scenes from {video_path.name} at threshold {threshold}",
        )
        return list_artifacts(output_dir)
