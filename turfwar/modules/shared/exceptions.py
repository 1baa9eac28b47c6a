"""
Rule violations reported back to whoever issued the command.

They are raised before anything is written, so the transaction they abort
has only read. DatabaseRetryPolicy never retries them: the same call would
fail the same way. Messages are plain English for logs; presentation is the
caller's job.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from turfwar.core.exceptions import ErrorSeverity, TurfwarError


class TurfwarDomainException(TurfwarError):
    DEFAULT_SEVERITY = ErrorSeverity.INFO


class PreconditionFailedError(TurfwarDomainException):
    """
    The actor or target is in the wrong state for `action`.

    >>> PreconditionFailedError("kidnap", "target is at their base")
    """

    def __init__(
        self,
        action: str,
        reason: str,
        *,
        error_code: Optional[str] = None,
        **details: Any,
    ) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Cannot {action}: {reason}",
            {"action": action, "reason": reason, **details},
            error_code=error_code or f"PRECONDITION_{action.upper()}",
        )


class NotFoundError(PreconditionFailedError):
    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        what = resource_type if identifier is None else f"{resource_type} {identifier!r}"
        super().__init__(
            "find",
            f"{what} does not exist",
            error_code=f"{resource_type.upper()}_NOT_FOUND",
            resource_type=resource_type,
            identifier=identifier,
        )


class PermissionDeniedError(PreconditionFailedError):
    """The actor's gang role is not one of `required_roles`."""

    def __init__(self, action: str, required_roles: Sequence[str], actual_role: Optional[str]) -> None:
        self.required_roles = tuple(required_roles)
        self.actual_role = actual_role
        super().__init__(
            action,
            f"only {'/'.join(self.required_roles)} may do this",
            error_code="PERMISSION_DENIED",
            required_roles=list(self.required_roles),
            actual_role=actual_role,
        )


class ValidationError(PreconditionFailedError):
    """An argument is malformed or out of range."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            "validate",
            f"{field}: {message}",
            error_code=f"VALIDATION_{field.upper()}",
            field=field,
        )


class InsufficientResourcesError(TurfwarDomainException):
    """
    Not enough of `resource`: wallet balance, vault cash, vault room, or
    free personnel slots.
    """

    def __init__(self, resource: str, required: int, current: int) -> None:
        self.resource = resource
        self.required = required
        self.current = current
        super().__init__(
            f"Not enough {resource}: {current:,} of {required:,}",
            {"resource": resource, "required": required, "current": current, "short_by": required - current},
            error_code=f"INSUFFICIENT_{resource.upper()}",
        )


class CooldownActiveError(TurfwarDomainException):
    DEFAULT_SEVERITY = ErrorSeverity.DEBUG

    def __init__(self, action: str, remaining_seconds: float) -> None:
        self.action = action
        self.remaining_seconds = remaining_seconds
        super().__init__(
            f"{action} ready again in {remaining_seconds:.0f}s",
            {"action": action, "retry_after": remaining_seconds},
            error_code="COOLDOWN_ACTIVE",
        )
