from __future__ import annotations


class ClipdigestError(Exception):
    """Base error for clipdigest."""


class FatalError(ClipdigestError):
    """Ends the whole run; never converted into a placeholder row."""


class ConfigError(FatalError):
    """Invalid or incomplete configuration."""


class AuthenticationError(FatalError):
    """The external service rejected our credentials."""


class MissingInputError(FatalError):
    """A required directory or table does not exist."""


class NoWorkError(FatalError):
    """Input discovery found nothing where work was mandatory."""


class StoreNotFound(ClipdigestError):
    def __init__(self, table) -> None:
        super().__init__(f"Table not found: {table}")
        self.table = table


class ServiceError(ClipdigestError):
    """Transient or server-side failure of an external service."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(ServiceError):
    """The external service asked us to slow down."""


class MediaError(ClipdigestError):
    """ffmpeg failed or is unavailable."""


class RetriesExhausted(ClipdigestError):
    """All attempts for one operation failed; terminal for the current item."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"{operation} failed after {attempts} attempts: {last_error}")
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
