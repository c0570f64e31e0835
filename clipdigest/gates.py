from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from threading import Condition, Lock
from typing import Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class AdmissionGate:
    """Static-capacity gate limiting simultaneous in-flight operations."""

    capacity: int
    label: str | None = None

    def __post_init__(self):
        if self.capacity <= 0:
            raise ValueError("capacity must be a positive integer")
        self._lock = Lock()
        self._cond = Condition(self._lock)
        self._in_flight = 0
        self._peak = 0

    def acquire(self) -> None:
        """Block until a slot is free, then take it."""
        with self._cond:
            while self._in_flight >= self.capacity:
                self._cond.wait()
            self._in_flight += 1
            self._peak = max(self._peak, self._in_flight)

    def release(self) -> None:
        with self._cond:
            if self._in_flight <= 0:
                raise RuntimeError("release() called without a matching acquire()")
            self._in_flight -= 1
            self._cond.notify()

    def __enter__(self) -> "AdmissionGate":
        self.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def peak(self) -> int:
        with self._lock:
            return self._peak


def run_bounded(work_items: Sequence[T], *, max_workers: int, fn: Callable[[T], R]) -> list[R]:
    """Apply *fn* to every item with a fixed-size worker pool; results keep input order."""
    if not work_items:
        return []
    worker_count = min(max(max_workers, 1), len(work_items))
    if worker_count <= 1:
        return [fn(item) for item in work_items]
    with ThreadPoolExecutor(max_workers=worker_count) as executor:
        futures = [executor.submit(fn, item) for item in work_items]
        try:
            return [future.result() for future in futures]
        except BaseException:
            for future in futures:
                future.cancel()
            raise
