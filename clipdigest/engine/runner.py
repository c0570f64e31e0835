from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from threading import Event
from typing import Callable

from ..core.contracts import Stage
from ..core.types import Outcome, StageRecord, StageResult, WorkItem
from ..errors import FatalError, StoreNotFound
from ..store import CsvTableStore
from ..telemetry import RunMonitor

logger = logging.getLogger(__name__)

ProgressHook = Callable[[WorkItem, Outcome], None]


@dataclass
class StageRunner:
    """Drives one stage over its work set, skipping keys already in its output table.

    Every finished item, successful or not, is appended to the output table as
    soon as it completes so a crash loses at most the in-flight items.
    """

    stage: Stage
    store: CsvTableStore
    max_workers: int = 1
    monitor: RunMonitor | None = field(default=None, repr=False)
    on_start: Callable[[int], None] | None = field(default=None, repr=False)
    on_item: ProgressHook | None = field(default=None, repr=False)

    def completed_keys(self) -> set[str]:
        try:
            return self.store.keys_present(self.stage.output_table, self.stage.key_column)
        except StoreNotFound:
            return set()

    def pending(self) -> tuple[list[WorkItem], int, int]:
        """Return (remaining items, discovered count, skipped count)."""
        done = self.completed_keys()
        items = list(self.stage.load_items())
        remaining: list[WorkItem] = []
        seen: set[str] = set()
        skipped = 0
        for item in items:
            if item.key in done:
                skipped += 1
                continue
            if item.key in seen:
                logger.warning("%s: duplicate input key %s ignored", self.stage.name, item.key)
                continue
            seen.add(item.key)
            remaining.append(item)
        return remaining, len(items), skipped

    def run(self) -> StageResult:
        remaining, discovered, skipped = self.pending()
        logger.info(
            "%s: %d items found, %d already done, %d remaining",
            self.stage.name,
            discovered,
            skipped,
            len(remaining),
        )
        if self.monitor is not None:
            self.monitor.note_event(
                f"{self.stage.name}.start",
                {"discovered": discovered, "skipped": skipped, "remaining": len(remaining)},
            )
        if self.on_start is not None:
            self.on_start(len(remaining))
        if not remaining:
            logger.info("%s: nothing to do", self.stage.name)
            return StageResult(self.stage.name, discovered, skipped, 0, 0, 0)

        headers = self.stage.headers()
        counts = {outcome: 0 for outcome in Outcome}
        worker_count = max(1, min(self.max_workers, len(remaining)))
        abort = Event()
        executor = ThreadPoolExecutor(max_workers=worker_count, thread_name_prefix=self.stage.name)
        futures: dict[Future, WorkItem] = {
            executor.submit(self._process_one, item, headers, abort): item for item in remaining
        }
        try:
            for future in as_completed(futures):
                item = futures[future]
                outcome = future.result()
                if outcome is None:
                    continue
                counts[outcome] += 1
                if self.on_item is not None:
                    self.on_item(item, outcome)
        except BaseException:
            abort.set()
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown(wait=True)

        result = StageResult(
            stage=self.stage.name,
            discovered=discovered,
            skipped=skipped,
            processed=len(remaining),
            errors=counts[Outcome.ERROR],
            short_circuited=counts[Outcome.SHORT_CIRCUIT],
        )
        if self.monitor is not None:
            self.monitor.note_event(f"{self.stage.name}.finish", result.to_dict())
        logger.info(
            "%s: processed %d items (%d errors, %d short-circuited)",
            self.stage.name,
            result.processed,
            result.errors,
            result.short_circuited,
        )
        return result

    def _process_one(self, item: WorkItem, headers: list[str], abort: Event) -> Outcome | None:
        """Process and record one item; returns None when the stage was aborted first."""
        if abort.is_set():
            return None
        record: StageRecord | None = self.stage.short_circuit(item)
        if record is not None:
            outcome = Outcome.SHORT_CIRCUIT
            logger.info("%s: short-circuited %s", self.stage.name, item.key)
        else:
            try:
                record = self.stage.process(item)
                outcome = Outcome.OK
            except FatalError:
                abort.set()
                raise
            except Exception as exc:  # noqa: BLE001
                logger.error("%s: failed to process %s: %s", self.stage.name, item.key, exc)
                record = self.stage.placeholder(item, exc)
                outcome = Outcome.ERROR
        if abort.is_set():
            logger.warning("%s: run aborted; result for %s discarded", self.stage.name, item.key)
            return None
        record.setdefault(self.stage.key_column, item.key)
        self.store.append(self.stage.output_table, [record], headers=headers)
        return outcome
