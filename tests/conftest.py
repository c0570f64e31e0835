from __future__ import annotations

import sys
import threading
from dataclasses import replace
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from clipdigest.client import RetryingClient, RetryPolicy  # noqa: E402
from clipdigest.config import AppConfig  # noqa: E402
from clipdigest.gates import AdmissionGate  # noqa: E402


class FakeGenerator:
    """Answers prompts from a callable; records every call."""

    def __init__(self, reply=None, vision_reply=None) -> None:
        self._reply = reply or (lambda prompt: "generated")
        self._vision_reply = vision_reply or (lambda path: f"text from {Path(path).name}")
        self.prompts: list[str] = []
        self.images: list[Path] = []
        self._lock = threading.Lock()

    def generate_text(self, prompt, *, max_tokens=None, temperature=None):
        with self._lock:
            self.prompts.append(prompt)
        return self._reply(prompt)

    def describe_image(self, prompt, image_path):
        with self._lock:
            self.images.append(Path(image_path))
        return self._vision_reply(image_path)


class FakeTranscriber:
    def __init__(self, reply=None) -> None:
        self._reply = reply or (lambda path: f"transcript of {Path(path).stem} with enough words")
        self.calls: list[Path] = []
        self._lock = threading.Lock()

    def transcribe(self, audio_path):
        with self._lock:
            self.calls.append(Path(audio_path))
        return self._reply(audio_path)


class FakeExtractor:
    """Writes *frames* stills per call unless the threshold is listed in *empty_at*."""

    def __init__(self, frames: int = 2, empty_at: tuple[float, ...] = ()) -> None:
        self.frames = frames
        self.empty_at = empty_at
        self.calls: list[tuple[str, float]] = []

    def extract(self, video_path, output_dir, threshold):
        self.calls.append((Path(video_path).name, threshold))
        if threshold in self.empty_at:
            return []
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        stills = []
        for index in range(1, self.frames + 1):
            still = output_dir / f"{Path(video_path).stem}-frame-{index:03d}.jpg"
            still.write_bytes(b"jpg")
            stills.append(still)
        return stills


@pytest.fixture
def make_config(tmp_path):
    def _make(**overrides) -> AppConfig:
        base = AppConfig(
            root_dir=tmp_path,
            retry_delay=0.0,
            rate_limit_delay=0.0,
            transcription_retry_delay=0.0,
            transcript_fields=(),
            screenshot_fields=(),
        )
        return replace(base, **overrides)

    return _make


@pytest.fixture
def client():
    def _make(max_attempts: int = 3, capacity: int = 5) -> RetryingClient:
        return RetryingClient(
            gate=AdmissionGate(capacity),
            policy=RetryPolicy(max_attempts=max_attempts, retry_delay=0.0, rate_limit_delay=0.0),
            sleep=lambda _: None,
        )

    return _make


@pytest.fixture
def videos(tmp_path):
    def _make(*names: str) -> Path:
        folder = tmp_path / "videos"
        folder.mkdir(exist_ok=True)
        for name in names:
            (folder / name).write_bytes(b"video")
        return folder

    return _make
