from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List


@dataclass(frozen=True)
class CallEvent:
    """One external-service call as seen by the retrying client."""

    operation: str
    attempts: int
    outcome: str
    started_at: datetime
    finished_at: datetime
    error: str | None = None
    metadata: Dict[str, object] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> float:
        return max((self.finished_at - self.started_at).total_seconds(), 0.0)

    def to_dict(self) -> Dict[str, object]:
        return {
            "operation": self.operation,
            "attempts": self.attempts,
            "outcome": self.outcome,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_seconds": self.duration_seconds,
            "error": self.error,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class RunSummary:
    total_calls: int
    total_attempts: int
    total_retries: int
    total_failures: int
    total_duration_seconds: float
    by_operation: Dict[str, Dict[str, float]]

    def to_dict(self) -> Dict[str, object]:
        return {
            "total_calls": self.total_calls,
            "total_attempts": self.total_attempts,
            "total_retries": self.total_retries,
            "total_failures": self.total_failures,
            "total_duration_seconds": self.total_duration_seconds,
            "by_operation": self.by_operation,
        }


class RunMonitor:
    """Collects call telemetry and stage notes for the lifetime of a run."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._events: List[CallEvent] = []
        self._notes: List[Dict[str, object]] = []

    def record(self, event: CallEvent) -> None:
        with self._lock:
            self._events.append(event)

    def note_event(self, name: str, payload: Dict[str, object] | None = None) -> None:
        with self._lock:
            self._notes.append(
                {
                    "name": name,
                    "payload": dict(payload or {}),
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                }
            )

    def events(self) -> List[CallEvent]:
        with self._lock:
            return list(self._events)

    def notes(self) -> List[Dict[str, object]]:
        with self._lock:
            return list(self._notes)

    def summarize(self) -> RunSummary:
        events = self.events()
        by_operation: Dict[str, Dict[str, float]] = {}
        for event in events:
            stats = by_operation.setdefault(
                event.operation,
                {"calls": 0, "attempts": 0, "failures": 0, "total_duration_seconds": 0.0},
            )
            stats["calls"] += 1
            stats["attempts"] += event.attempts
            stats["failures"] += 0 if event.outcome == "ok" else 1
            stats["total_duration_seconds"] += event.duration_seconds

        total_attempts = sum(e.attempts for e in events)
        return RunSummary(
            total_calls=len(events),
            total_attempts=total_attempts,
            total_retries=total_attempts - len(events),
            total_failures=sum(1 for e in events if e.outcome != "ok"),
            total_duration_seconds=sum(e.duration_seconds for e in events),
            by_operation=by_operation,
        )

    def flush_summary(self, *, to: Path, stages: Iterable[Dict[str, object]] = ()) -> Path:
        payload = {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "totals": self.summarize().to_dict(),
            "stages": list(stages),
            "notes": self.notes(),
        }
        target = Path(to)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(payload, indent=2, sort_keys=True))
        return target
