from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from clipdigest import constants as C
from clipdigest import media
from clipdigest.engine import Orchestrator
from clipdigest.errors import AuthenticationError, ConfigError, NoWorkError
from clipdigest.store import CsvTableStore

from conftest import FakeExtractor, FakeGenerator, FakeTranscriber


@pytest.fixture
def fake_ffmpeg(monkeypatch):
    def fake_run(cmd, check, capture_output):
        out = Path(cmd[-1])
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(b"RIFF")
        return subprocess.CompletedProcess(cmd, 0)

    monkeypatch.setattr(media.subprocess, "run", fake_run)


def _orchestrator(cfg, **kwargs):
    kwargs.setdefault("generator", FakeGenerator(lambda prompt: "True"))
    kwargs.setdefault("transcriber", FakeTranscriber())
    kwargs.setdefault("extractor", FakeExtractor())
    return Orchestrator(cfg=cfg, store=CsvTableStore(), sleep=lambda _: None, **kwargs)


def test_run_all_produces_every_table(make_config, videos, fake_ffmpeg):
    videos("a.mp4", "b.mp4")
    cfg = make_config()
    orchestrator = _orchestrator(cfg)

    results = orchestrator.run_all()

    assert [r.stage for r in results] == ["transcription", "transcript_analysis", "scene_analysis"]
    assert all(r.processed == 2 for r in results)
    combined = orchestrator.store.first_by_key(cfg.combined_table, C.COL_FILENAME)
    assert set(combined) == {"a.mp4", "b.mp4"}
    assert combined["a.mp4"][C.COL_SCREENSHOT_COUNT] == "2"
    assert combined["a.mp4"][C.COL_NEEDS_SCREENSHOTS] == "True"


def test_second_run_makes_no_service_calls(make_config, videos, fake_ffmpeg):
    videos("a.mp4")
    cfg = make_config()
    _orchestrator(cfg).run_all()
    generator = FakeGenerator()
    transcriber = FakeTranscriber()

    results = _orchestrator(cfg, generator=generator, transcriber=transcriber).run_all()

    assert generator.prompts == []
    assert generator.images == []
    assert transcriber.calls == []
    assert all(r.processed == 0 for r in results)


def test_scene_stage_skipped_when_disabled(make_config, videos, fake_ffmpeg):
    videos("a.mp4")
    cfg = make_config(create_screenshots=False)
    extractor = FakeExtractor()

    results = _orchestrator(cfg, extractor=extractor).run_all()

    assert [r.stage for r in results] == ["transcription", "transcript_analysis"]
    assert extractor.calls == []
    assert not cfg.screenshots_table.exists()


def test_authentication_failure_stops_the_run(make_config, videos, fake_ffmpeg):
    videos("a.mp4")
    cfg = make_config()

    def rejected(_):
        raise AuthenticationError("API key not valid")

    with pytest.raises(AuthenticationError):
        _orchestrator(cfg, transcriber=FakeTranscriber(rejected)).run_all()
    assert not cfg.transcript_analysis_table.exists()


def test_empty_videos_folder_is_fatal(make_config, videos):
    videos()
    with pytest.raises(NoWorkError):
        _orchestrator(make_config()).transcribe()


def test_missing_generator_is_config_error(make_config):
    orchestrator = Orchestrator(cfg=make_config(), store=CsvTableStore())
    with pytest.raises(ConfigError):
        orchestrator.analyze_transcripts()


def test_clients_follow_configured_limits(make_config):
    cfg = make_config(concurrent_api_calls=2, concurrent_transcriptions=4, max_retries=5, transcription_attempts=2)
    orchestrator = Orchestrator(cfg=cfg, store=CsvTableStore())

    assert orchestrator.api_client.gate.capacity == 2
    assert orchestrator.api_client.policy.max_attempts == 5
    assert orchestrator.transcription_client.gate.capacity == 4
    assert orchestrator.transcription_client.policy.max_attempts == 2
