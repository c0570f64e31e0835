from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, TypeVar

from .constants import MAX_RETRIES, RATE_LIMIT_DELAY, RETRY_DELAY
from .errors import AuthenticationError, FatalError, RateLimitError, RetriesExhausted
from .gates import AdmissionGate
from .telemetry import CallEvent, RunMonitor

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FailureKind(str, Enum):
    RATE_LIMIT = "rate_limit"
    TRANSIENT = "transient"
    AUTHENTICATION = "authentication"
    FATAL = "fatal"


def _status_of(exc: BaseException) -> int | None:
    for candidate in (
        getattr(exc, "status_code", None),
        getattr(exc, "code", None),
        getattr(getattr(exc, "response", None), "status_code", None),
    ):
        if isinstance(candidate, int):
            return candidate
    return None


def classify_failure(exc: BaseException) -> FailureKind:
    if isinstance(exc, AuthenticationError):
        return FailureKind.AUTHENTICATION
    if isinstance(exc, FatalError):
        return FailureKind.FATAL
    if isinstance(exc, RateLimitError):
        return FailureKind.RATE_LIMIT
    status = _status_of(exc)
    if status in (401, 403):
        return FailureKind.AUTHENTICATION
    if status == 429:
        return FailureKind.RATE_LIMIT
    message = str(exc).lower()
    if "rate limit" in message or "quota" in message:
        return FailureKind.RATE_LIMIT
    return FailureKind.TRANSIENT


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = MAX_RETRIES
    retry_delay: float = RETRY_DELAY
    rate_limit_delay: float = RATE_LIMIT_DELAY

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.retry_delay < 0 or self.rate_limit_delay < 0:
            raise ValueError("retry delays must be non-negative")

    def delay_for(self, kind: FailureKind) -> float:
        if kind == FailureKind.RATE_LIMIT:
            return self.rate_limit_delay
        return self.retry_delay


@dataclass
class RetryingClient:
    """Runs external-service calls behind an admission gate with fixed-delay retries.

    Rate-limit and transient failures are retried within one shared attempt
    budget. Authentication and other fatal errors propagate immediately.
    Exhausting the budget raises :class:`RetriesExhausted`.
    """

    gate: AdmissionGate
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    monitor: RunMonitor | None = field(default=None, repr=False)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def submit(self, operation: Callable[[], T], operation_name: str, *, metadata: dict[str, Any] | None = None) -> T:
        started = datetime.now(timezone.utc)
        attempt = 0
        with self.gate:
            while True:
                attempt += 1
                try:
                    result = operation()
                except Exception as exc:  # noqa: BLE001
                    kind = classify_failure(exc)
                    if kind in (FailureKind.AUTHENTICATION, FailureKind.FATAL):
                        self._record(operation_name, attempt, "fatal", started, exc, metadata)
                        if kind == FailureKind.AUTHENTICATION and not isinstance(exc, AuthenticationError):
                            raise AuthenticationError(f"{operation_name}: {exc}") from exc
                        raise
                    if attempt >= self.policy.max_attempts:
                        self._record(operation_name, attempt, "exhausted", started, exc, metadata)
                        logger.error("%s failed after %d attempts: %s", operation_name, attempt, exc)
                        raise RetriesExhausted(operation_name, attempt, exc) from exc
                    wait_for = self.policy.delay_for(kind)
                    logger.warning(
                        "Retrying %s (attempt %d/%d) in %.1fs due to %s: %s",
                        operation_name,
                        attempt + 1,
                        self.policy.max_attempts,
                        wait_for,
                        kind.value,
                        exc,
                    )
                    self.sleep(wait_for)
                    continue
                self._record(operation_name, attempt, "ok", started, None, metadata)
                return result

    def _record(
        self,
        operation_name: str,
        attempts: int,
        outcome: str,
        started: datetime,
        error: BaseException | None,
        metadata: dict[str, Any] | None,
    ) -> None:
        if self.monitor is None:
            return
        # "summary:a.mp4" is grouped under "summary"; the item lands in metadata.
        operation, _, subject = operation_name.partition(":")
        metadata = dict(metadata or {})
        if subject:
            metadata.setdefault("subject", subject)
        if self.gate.label:
            metadata.setdefault("gate", self.gate.label)
        self.monitor.record(
            CallEvent(
                operation=operation,
                attempts=attempts,
                outcome=outcome,
                started_at=started,
                finished_at=datetime.now(timezone.utc),
                error=str(error) if error is not None else None,
                metadata=metadata,
            )
        )
