from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

import typer

from .config import AppConfig
from .constants import RUN_SUMMARY_FILENAME
from .core.types import StageResult
from .engine import Orchestrator
from .errors import FatalError
from .logs import configure_logging
from .progress import ConsoleReporter
from .providers import get_provider
from .store import CsvTableStore
from .telemetry import RunMonitor

logger = logging.getLogger(__name__)

_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    context_settings=_CONTEXT_SETTINGS,
    help="Resumable transcription and scene analysis for a folder of videos.",
)

_CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to YAML configuration file")
_ROOT_OPTION = typer.Option(None, "--root", "-r", help="Project root holding videos/, csv/ and logs/")


def _load_config(config_path: Path | None, root: Path | None) -> AppConfig:
    try:
        return AppConfig.from_sources(config_path, root_dir=root)
    except FatalError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc


def _execute(
    title: str,
    *,
    config_path: Path | None,
    root: Path | None,
    needs_provider: bool,
    action: Callable[[Orchestrator], list[StageResult]],
) -> None:
    cfg = _load_config(config_path, root)
    reporter = ConsoleReporter()
    configure_logging(cfg.logs_dir, cfg.log_level, console=reporter.console)
    monitor = RunMonitor()
    results: list[StageResult] = []
    reporter.heading(title)
    try:
        provider = get_provider(cfg) if needs_provider else None
        orchestrator = Orchestrator(
            cfg=cfg,
            store=CsvTableStore(),
            generator=provider,
            transcriber=provider,
            monitor=monitor,
            reporter=reporter,
        )
        results = action(orchestrator)
    except FatalError as exc:
        logger.error("Fatal error: %s", exc)
        reporter.failure("An error occurred", str(exc))
        raise typer.Exit(code=1) from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected error during %s", title.lower())
        reporter.failure("An error occurred", str(exc))
        raise typer.Exit(code=1) from exc
    finally:
        summary = monitor.flush_summary(
            to=cfg.logs_dir / RUN_SUMMARY_FILENAME,
            stages=[result.to_dict() for result in results],
        )
        logger.debug("Run summary written to %s", summary)
    reporter.success(f"{title} complete")


def _combine_only(orchestrator: Orchestrator) -> list[StageResult]:
    result = orchestrator.combine()
    if result.output is None:
        typer.echo("No data to combine.")
    else:
        typer.echo(f"Wrote {result.output} ({result.rows} rows)")
    return []


@app.command(help="Run every stage: transcribe, analyze transcripts, analyze scenes, combine.")
def run(
    config: Optional[Path] = _CONFIG_OPTION,
    root: Optional[Path] = _ROOT_OPTION,
) -> None:
    _execute("Video processing", config_path=config, root=root, needs_provider=True, action=lambda o: o.run_all())


@app.command(help="Extract audio and transcribe every video not yet in the transcripts table.")
def transcribe(
    config: Optional[Path] = _CONFIG_OPTION,
    root: Optional[Path] = _ROOT_OPTION,
) -> None:
    _execute("Transcription", config_path=config, root=root, needs_provider=True, action=lambda o: [o.transcribe()])


@app.command("analyze-transcripts", help="Summarize, tag and flag transcripts not yet analyzed.")
def analyze_transcripts(
    config: Optional[Path] = _CONFIG_OPTION,
    root: Optional[Path] = _ROOT_OPTION,
) -> None:
    _execute(
        "Transcript analysis",
        config_path=config,
        root=root,
        needs_provider=True,
        action=lambda o: [o.analyze_transcripts()],
    )


@app.command("extract-scenes", help="Extract scene-change stills without describing them.")
def extract_scenes(
    all_videos: bool = typer.Option(False, "--all", help="Extract for every video, not only flagged ones"),
    config: Optional[Path] = _CONFIG_OPTION,
    root: Optional[Path] = _ROOT_OPTION,
) -> None:
    _execute(
        "Scene extraction",
        config_path=config,
        root=root,
        needs_provider=False,
        action=lambda o: [o.extract_scenes(all_videos=all_videos)],
    )


@app.command("analyze-scenes", help="Describe scene stills and summarize them per video.")
def analyze_scenes(
    all_videos: bool = typer.Option(False, "--all", help="Analyze every video, not only flagged ones"),
    config: Optional[Path] = _CONFIG_OPTION,
    root: Optional[Path] = _ROOT_OPTION,
) -> None:
    _execute(
        "Scene analysis",
        config_path=config,
        root=root,
        needs_provider=True,
        action=lambda o: [o.analyze_scenes(all_videos=all_videos)],
    )


@app.command(help="Merge stage tables into the combined analysis table.")
def combine(
    config: Optional[Path] = _CONFIG_OPTION,
    root: Optional[Path] = _ROOT_OPTION,
) -> None:
    _execute("Combine", config_path=config, root=root, needs_provider=False, action=_combine_only)


def main():
    app()


if __name__ == "__main__":
    main()
