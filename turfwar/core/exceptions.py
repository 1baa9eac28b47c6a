"""
Exception hierarchy for turfwar.

`TurfwarError` is the common root. Domain errors (preconditions, cooldowns,
missing funds) live in `turfwar.modules.shared.exceptions`; this module holds
the root and the infrastructure errors: configuration, Redis, optimistic-lock
conflicts and ledger invariant violations.

Every error carries a stable `error_code`, a `details` dict for structured
logging, a `severity` and an `is_retryable` flag.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class TurfwarError(Exception):
    """Root of every error raised on purpose by turfwar."""

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        *,
        error_code: Optional[str] = None,
        is_retryable: Optional[bool] = None,
    ) -> None:
        self.message = message
        self.details: Dict[str, Any] = details or {}
        self.error_code = error_code or type(self).__name__
        self.severity = self.DEFAULT_SEVERITY
        self.is_retryable = self.DEFAULT_RETRYABLE if is_retryable is None else is_retryable
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.error_code}] {self.message}"
        return f"[{self.error_code}] {self.message} | {self.details}"


class TurfwarInfrastructureException(TurfwarError):
    """Something outside the game rules failed."""


class ConfigurationError(TurfwarInfrastructureException):
    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            {"config_key": config_key},
            error_code="CONFIG_ERROR",
        )


class RedisConnectionError(TurfwarInfrastructureException):
    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, original_error: Exception) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(
            f"Redis error during {operation}: {original_error}",
            {"operation": operation, "error_type": type(original_error).__name__},
            error_code="REDIS_ERROR",
        )


class ConcurrencyConflictError(TurfwarInfrastructureException):
    """
    A versioned gang or member row changed between read and flush.

    The command is safe to re-run from the top; DatabaseRetryPolicy does so.
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, entity: str, original_error: Optional[Exception] = None) -> None:
        self.entity = entity
        self.original_error = original_error
        super().__init__(
            f"Concurrent modification detected on {entity}",
            {"entity": entity, "error": str(original_error) if original_error else None},
            error_code="CONCURRENCY_CONFLICT",
        )


class InvariantViolationError(TurfwarInfrastructureException):
    """
    A write would break a ledger rule (vault past capacity, negative HP).

    Services check preconditions first, so this signals a logic bug and the
    transaction is rolled back.
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self, invariant: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.invariant = invariant
        super().__init__(
            f"Invariant violated: {invariant}",
            {"invariant": invariant, **(details or {})},
            error_code="INVARIANT_VIOLATION",
        )


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    if isinstance(exc, TurfwarError):
        return exc.severity
    return ErrorSeverity.ERROR
