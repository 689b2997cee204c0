"""
Service error hierarchy.

Every failure the service reports to a caller is a ``ServiceError``. The
subclasses name the failure kinds of the task lifecycle so callers and tests
can branch on type, while the HTTP layer only ever needs the base class.
"""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """Base error carrying a machine-readable code and an HTTP status."""

    def __init__(
        self,
        error: str,
        message: str,
        status_code: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error = error
        self.message = message
        self.status_code = status_code
        self.details: dict[str, Any] = details if details is not None else {}


class ValidationError(ServiceError):
    """Malformed or missing input. Raised before anything is persisted."""

    def __init__(
        self, message: str, status_code: int = 400, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__("VALIDATION_ERROR", message, status_code, details)


class AuthError(ServiceError):
    """The caller's identity could not be verified."""

    def __init__(
        self, message: str, status_code: int = 401, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__("AUTH_ERROR", message, status_code, details)


class AuthorizationError(ServiceError):
    """A verified identity lacks permission for the requested mutation."""

    def __init__(
        self, message: str, status_code: int = 403, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__("AUTHORIZATION_ERROR", message, status_code, details)


class NotFoundError(ServiceError):
    """A referenced task or user does not exist."""

    def __init__(
        self, message: str, status_code: int = 404, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__("NOT_FOUND", message, status_code, details)


class InvalidStateError(ServiceError):
    """The operation is not legal in the task's current lifecycle state."""

    def __init__(
        self, message: str, status_code: int = 409, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__("INVALID_STATE", message, status_code, details)


class ConflictError(ServiceError):
    """The caller lost a concurrency race or repeated a one-shot action."""

    def __init__(
        self, message: str, status_code: int = 409, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__("CONFLICT", message, status_code, details)


class InsufficientFundsError(ServiceError):
    """Settlement precondition failed: the requester cannot cover the fee."""

    def __init__(
        self, message: str, status_code: int = 402, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__("INSUFFICIENT_FUNDS", message, status_code, details)


class TransactionAbortedError(ServiceError):
    """The document store gave up retrying a conflicting transaction."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__("TRANSACTION_ABORTED", message, 409, details)


class IdentityServiceUnavailableError(ServiceError):
    """The identity oracle could not be reached or answered unexpectedly."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__("IDENTITY_SERVICE_UNAVAILABLE", message, 502, details)
