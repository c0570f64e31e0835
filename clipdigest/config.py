from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from . import constants as C
from .core.types import CustomField
from .errors import ConfigError
from .prompts import (
    NEEDS_SCREENSHOTS_PROMPT,
    SCREENSHOT_SUMMARY_PROMPT,
    SUMMARY_PROMPT,
    TAGS_PROMPT,
    TRANSCRIPTION_PROMPT,
    VISION_PROMPT,
    DEFAULT_SCREENSHOT_FIELDS,
    DEFAULT_TRANSCRIPT_FIELDS,
)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        return normalized in {"1", "true", "yes", "on"}
    return bool(value)


def _as_int(value: Any, *, minimum: int | None = None) -> int | None:
    if value is None:
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Expected integer value, got {value!r}") from exc
    if minimum is not None and parsed < minimum:
        raise ConfigError(f"Expected integer >= {minimum}, got {parsed}")
    return parsed


def _as_float(value: Any, *, minimum: float | None = None) -> float | None:
    if value is None:
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Expected number, got {value!r}") from exc
    if minimum is not None and parsed < minimum:
        raise ConfigError(f"Expected number >= {minimum}, got {parsed}")
    return parsed


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = data.get(name, {})
    return value if isinstance(value, Mapping) else {}


def _custom_fields(raw: Any, default: tuple[CustomField, ...]) -> tuple[CustomField, ...]:
    if raw is None:
        return default
    if not isinstance(raw, (list, tuple)):
        raise ConfigError("custom_fields must be a list of {name, prompt} entries")
    fields: list[CustomField] = []
    seen: set[str] = set()
    for entry in raw:
        if not isinstance(entry, Mapping) or not entry.get("name") or not entry.get("prompt"):
            raise ConfigError(f"Invalid custom field entry: {entry!r}")
        name = str(entry["name"]).strip()
        if name.lower() in seen:
            raise ConfigError(f"Duplicate custom field name: {name}")
        seen.add(name.lower())
        fields.append(CustomField(name=name, prompt=str(entry["prompt"]).strip()))
    return tuple(fields)


@dataclass(frozen=True)
class AppConfig:
    root_dir: Path = C.ROOT_DIR
    videos_dirname: str = C.VIDEOS_DIRNAME
    screenshots_dirname: str = C.SCREENSHOTS_DIRNAME
    audio_dirname: str = C.AUDIO_DIRNAME
    csv_dirname: str = C.CSV_DIRNAME
    logs_dirname: str = C.LOGS_DIRNAME
    provider: str = C.DEFAULT_PROVIDER
    api_key: str | None = None
    model: str = C.DEFAULT_MODEL
    vision_model: str = C.DEFAULT_VISION_MODEL
    transcription_model: str = C.DEFAULT_TRANSCRIPTION_MODEL
    max_retries: int = C.MAX_RETRIES
    retry_delay: float = C.RETRY_DELAY
    rate_limit_delay: float = C.RATE_LIMIT_DELAY
    transcription_attempts: int = C.TRANSCRIPTION_MAX_ATTEMPTS
    transcription_retry_delay: float = C.TRANSCRIPTION_RETRY_DELAY
    concurrent_api_calls: int = C.CONCURRENT_API_CALLS
    concurrent_transcriptions: int = C.CONCURRENT_TRANSCRIPTIONS
    concurrent_videos: int = C.CONCURRENT_VIDEOS
    concurrent_screenshots: int = C.CONCURRENT_SCREENSHOTS
    min_transcript_length: int = C.MIN_TRANSCRIPT_LENGTH
    scene_threshold: float = C.SCENE_THRESHOLD
    fallback_scene_threshold: float = C.FALLBACK_SCENE_THRESHOLD
    create_screenshots: bool = True
    video_extensions: tuple[str, ...] = C.SUPPORTED_VIDEO_EXTENSIONS
    audio_frequency: int = C.AUDIO_FREQUENCY
    audio_channels: int = C.AUDIO_CHANNELS
    summary_prompt: str = SUMMARY_PROMPT
    tags_prompt: str = TAGS_PROMPT
    needs_screenshots_prompt: str = NEEDS_SCREENSHOTS_PROMPT
    transcription_prompt: str = TRANSCRIPTION_PROMPT
    vision_prompt: str = VISION_PROMPT
    screenshot_summary_prompt: str = SCREENSHOT_SUMMARY_PROMPT
    summary_max_tokens: int = C.SUMMARY_MAX_TOKENS
    tags_max_tokens: int = C.TAGS_MAX_TOKENS
    custom_max_tokens: int = C.CUSTOM_MAX_TOKENS
    screenshot_summary_max_tokens: int = C.SCREENSHOT_SUMMARY_MAX_TOKENS
    temperature: float = C.DEFAULT_TEMPERATURE
    transcript_fields: tuple[CustomField, ...] = DEFAULT_TRANSCRIPT_FIELDS
    screenshot_fields: tuple[CustomField, ...] = DEFAULT_SCREENSHOT_FIELDS
    log_level: str = "INFO"
    config_path: Path | None = field(default=None, compare=False)

    @property
    def videos_dir(self) -> Path:
        return self.root_dir / self.videos_dirname

    @property
    def screenshots_dir(self) -> Path:
        return self.root_dir / self.screenshots_dirname

    @property
    def audio_dir(self) -> Path:
        return self.root_dir / self.audio_dirname

    @property
    def csv_dir(self) -> Path:
        return self.root_dir / self.csv_dirname

    @property
    def logs_dir(self) -> Path:
        return self.root_dir / self.logs_dirname

    @property
    def transcripts_table(self) -> Path:
        return self.csv_dir / C.TRANSCRIPTS_TABLE

    @property
    def transcript_analysis_table(self) -> Path:
        return self.csv_dir / C.TRANSCRIPT_ANALYSIS_TABLE

    @property
    def screenshots_table(self) -> Path:
        return self.csv_dir / C.SCREENSHOTS_TABLE

    @property
    def combined_table(self) -> Path:
        return self.csv_dir / C.COMBINED_TABLE

    def merge_tables(self) -> list[Path]:
        """Stage output tables in merge order; later tables overwrite earlier ones."""
        return [self.screenshots_table, self.transcripts_table, self.transcript_analysis_table]

    @staticmethod
    def from_sources(config_path: Path | None = None, *, root_dir: Path | None = None) -> "AppConfig":
        env_config = os.getenv("CLIPDIGEST_CONFIG")
        candidates: list[Path] = []
        if config_path is not None:
            candidates.append(Path(config_path).expanduser())
        elif env_config:
            candidates.append(Path(env_config).expanduser())
        else:
            candidates.extend([Path("clipdigest.yaml"), Path("clipdigest.yml")])

        resolved_config: Path | None = None
        data: dict[str, Any] = {}
        for candidate in candidates:
            if candidate.exists():
                resolved_config = candidate
                try:
                    data = yaml.safe_load(candidate.read_text()) or {}
                except yaml.YAMLError as exc:
                    raise ConfigError(f"Failed to parse configuration file {candidate}: {exc}") from exc
                break

        if config_path is not None and resolved_config is None:
            raise ConfigError(f"Configuration file not found: {config_path}")
        if not isinstance(data, Mapping):
            raise ConfigError("Configuration file must contain a mapping at the top level")

        paths_cfg = _section(data, "paths")
        models_cfg = _section(data, "models")
        retry_cfg = _section(data, "retry")
        concurrency_cfg = _section(data, "concurrency")
        transcripts_cfg = _section(data, "transcripts")
        screenshots_cfg = _section(data, "screenshots")
        whisper_cfg = _section(data, "transcription")

        def pick(section: Mapping[str, Any], key: str, env_var: str | None = None) -> Any:
            if env_var:
                raw = os.getenv(env_var)
                if raw not in (None, ""):
                    return raw
            return section.get(key)

        defaults = AppConfig()
        values: dict[str, Any] = {}

        root_raw = root_dir or pick(paths_cfg, "root", "CLIPDIGEST_ROOT")
        if root_raw:
            values["root_dir"] = Path(str(root_raw)).expanduser()
        for key in ("videos", "screenshots", "audio", "csv", "logs"):
            raw = paths_cfg.get(key)
            if raw:
                values[f"{key}_dirname"] = str(raw)

        provider = pick(data, "provider", "CLIPDIGEST_PROVIDER")
        if provider:
            values["provider"] = str(provider).strip().lower()
        api_key = os.getenv("GEMINI_API_KEY") or data.get("api_key")
        if api_key:
            values["api_key"] = str(api_key)
        for name, key, env_var in (
            ("model", "text", "CLIPDIGEST_MODEL"),
            ("vision_model", "vision", "CLIPDIGEST_VISION_MODEL"),
            ("transcription_model", "transcription", "CLIPDIGEST_TRANSCRIPTION_MODEL"),
        ):
            raw = pick(models_cfg, key, env_var)
            if raw:
                values[name] = str(raw)

        int_settings = (
            ("max_retries", retry_cfg, "max_retries", "CLIPDIGEST_MAX_RETRIES", 1),
            ("transcription_attempts", whisper_cfg, "max_attempts", "CLIPDIGEST_TRANSCRIPTION_ATTEMPTS", 1),
            ("concurrent_api_calls", concurrency_cfg, "api_calls", "CLIPDIGEST_CONCURRENT_API_CALLS", 1),
            ("concurrent_transcriptions", concurrency_cfg, "transcriptions", "CLIPDIGEST_CONCURRENT_TRANSCRIPTIONS", 1),
            ("concurrent_videos", concurrency_cfg, "videos", "CLIPDIGEST_CONCURRENT_VIDEOS", 1),
            ("concurrent_screenshots", concurrency_cfg, "screenshots", "CLIPDIGEST_CONCURRENT_SCREENSHOTS", 1),
            ("min_transcript_length", transcripts_cfg, "min_length", "CLIPDIGEST_MIN_TRANSCRIPT_LENGTH", 0),
            ("audio_frequency", whisper_cfg, "frequency", None, 1),
            ("audio_channels", whisper_cfg, "channels", None, 1),
        )
        for name, section, key, env_var, minimum in int_settings:
            parsed = _as_int(pick(section, key, env_var), minimum=minimum)
            if parsed is not None:
                values[name] = parsed

        float_settings = (
            ("retry_delay", retry_cfg, "retry_delay", "CLIPDIGEST_RETRY_DELAY"),
            ("rate_limit_delay", retry_cfg, "rate_limit_delay", "CLIPDIGEST_RATE_LIMIT_DELAY"),
            ("transcription_retry_delay", whisper_cfg, "retry_delay", "CLIPDIGEST_TRANSCRIPTION_RETRY_DELAY"),
            ("scene_threshold", screenshots_cfg, "scene_threshold", "CLIPDIGEST_SCENE_THRESHOLD"),
            ("fallback_scene_threshold", screenshots_cfg, "fallback_threshold", "CLIPDIGEST_FALLBACK_SCENE_THRESHOLD"),
            ("temperature", transcripts_cfg, "temperature", None),
        )
        for name, section, key, env_var in float_settings:
            parsed = _as_float(pick(section, key, env_var), minimum=0.0)
            if parsed is not None:
                values[name] = parsed

        create_raw = pick(data, "create_screenshots", "CLIPDIGEST_CREATE_SCREENSHOTS")
        if create_raw is not None:
            values["create_screenshots"] = _as_bool(create_raw)

        extensions = data.get("video_extensions")
        if isinstance(extensions, (list, tuple)) and extensions:
            values["video_extensions"] = tuple(
                ext.lower() if str(ext).startswith(".") else f".{str(ext).lower()}" for ext in map(str, extensions)
            )

        prompt_settings = (
            ("summary_prompt", transcripts_cfg, "summary_prompt"),
            ("tags_prompt", transcripts_cfg, "tags_prompt"),
            ("needs_screenshots_prompt", transcripts_cfg, "needs_screenshots_prompt"),
            ("transcription_prompt", whisper_cfg, "prompt"),
            ("vision_prompt", screenshots_cfg, "vision_prompt"),
            ("screenshot_summary_prompt", screenshots_cfg, "summary_prompt"),
        )
        for name, section, key in prompt_settings:
            raw = section.get(key)
            if raw:
                values[name] = str(raw).strip()

        values["transcript_fields"] = _custom_fields(transcripts_cfg.get("custom_fields"), defaults.transcript_fields)
        values["screenshot_fields"] = _custom_fields(screenshots_cfg.get("custom_fields"), defaults.screenshot_fields)

        log_level = pick(data, "log_level", "CLIPDIGEST_LOG_LEVEL")
        if log_level:
            values["log_level"] = str(log_level).upper()

        cfg = AppConfig(config_path=resolved_config, **values)
        if cfg.fallback_scene_threshold > cfg.scene_threshold:
            raise ConfigError("fallback_threshold must not exceed scene_threshold")
        return cfg
