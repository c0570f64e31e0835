from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from .core.types import Outcome, StageResult, WorkItem


def _progress(console: Console, *, transient: bool = False) -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}", justify="left"),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        BarColumn(bar_width=None),
        MofNCompleteColumn(),
        TextColumn("•"),
        TimeElapsedColumn(),
        TextColumn("•"),
        TimeRemainingColumn(),
        console=console,
        transient=transient,
        expand=True,
    )


@dataclass
class StageTracker:
    progress: Progress
    task: TaskID
    description: str

    def start(self, total: int) -> None:
        self.progress.update(self.task, total=total, completed=0)

    def advance(self, item: WorkItem, outcome: Outcome) -> None:
        suffix = "" if outcome == Outcome.OK else f" ({outcome.value}: {item.key})"
        self.progress.update(self.task, advance=1, description=f"{self.description}{suffix}")


class ConsoleReporter:
    """Progress bars and done/error banners for stage runs."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def heading(self, text: str) -> None:
        self.console.print(f"\n[bold magenta]{text}[/]")

    @contextmanager
    def stage(self, name: str) -> Iterator[StageTracker]:
        description = name.replace("_", " ").title()
        with _progress(self.console) as progress:
            task = progress.add_task(description, total=None)
            yield StageTracker(progress=progress, task=task, description=description)

    def banner(self, result: StageResult) -> None:
        label = result.stage.replace("_", " ")
        if result.processed == 0:
            self.console.print(f"[yellow]{label}: nothing to do ({result.skipped} already done)[/]")
        elif result.errors:
            self.console.print(
                f"[bold red]{label}: finished with {result.errors} error(s) out of {result.processed}. "
                "Check logs for details.[/]"
            )
        else:
            self.console.print(
                f"[bold green]{label}: done! {result.succeeded} succeeded, "
                f"{result.short_circuited} short-circuited, {result.skipped} skipped[/]"
            )

    def success(self, text: str) -> None:
        self.console.print(f"\n[black on green] {text} [/]")

    def failure(self, text: str, detail: str | None = None) -> None:
        self.console.print(f"\n[white on red] {text} [/]")
        if detail:
            self.console.print(f"[red]{detail}[/]")
