"""Unified error hierarchy for the Fruit ERP organization service.

All domain errors inherit from ErpError. Every error carries an ErrorKind
so callers branch on a typed value instead of inspecting messages.
"""

from __future__ import annotations

from enum import Enum, unique


@unique
class ErrorKind(Enum):
    """Classification of failures seen by the organization context layer."""

    ACCESS_DENIED = "access_denied"
    RLS_DENIED = "rls_denied"
    CONTEXT_NOT_SET = "context_not_set"
    NOT_ACCEPTABLE = "not_acceptable"
    AUTH_EXPIRED = "auth_expired"
    AUTH_FAILED = "auth_failed"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


# Kinds the retry wrapper may heal by re-binding the organization once.
RECOVERABLE_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.CONTEXT_NOT_SET,
        ErrorKind.RLS_DENIED,
        ErrorKind.NOT_ACCEPTABLE,
    }
)


class ErpError(Exception):
    """Base error for all Fruit ERP exceptions."""

    def __init__(
        self,
        message: str,
        code: str = "ERP_ERROR",
        kind: ErrorKind = ErrorKind.UNKNOWN,
    ) -> None:
        self.code = code
        self.kind = kind
        super().__init__(message)

    @property
    def recoverable(self) -> bool:
        return self.kind in RECOVERABLE_KINDS


# -- Port errors (raised by Port implementations) --


class PortUnavailableError(ErpError):
    """A Port dependency is temporarily unavailable."""

    def __init__(self, port_name: str, message: str = "") -> None:
        self.port_name = port_name
        super().__init__(
            message or f"Port {port_name} is unavailable",
            code="PORT_UNAVAILABLE",
            kind=ErrorKind.UNAVAILABLE,
        )


class PortTimeoutError(ErpError):
    """A Port operation timed out."""

    def __init__(self, port_name: str, timeout_ms: int) -> None:
        self.port_name = port_name
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Port {port_name} timed out after {timeout_ms}ms",
            code="PORT_TIMEOUT",
            kind=ErrorKind.TIMEOUT,
        )


class BackendError(ErpError):
    """A backend call failed; kind is derived from the driver's error code."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        backend_code: str = "",
    ) -> None:
        self.backend_code = backend_code
        super().__init__(message, code="BACKEND_ERROR", kind=kind)


# -- Auth / Org errors --


class AuthenticationError(ErpError):
    """Authentication failed (invalid credentials, missing token, etc.)."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message, code="AUTH_FAILED", kind=ErrorKind.AUTH_FAILED)


class SessionExpiredError(ErpError):
    """Backend rejected the caller's auth session. Not retried."""

    def __init__(self, message: str = "Authentication required. Please log in again.") -> None:
        super().__init__(message, code="SESSION_EXPIRED", kind=ErrorKind.AUTH_EXPIRED)


class AuthorizationError(ErpError):
    """Authorization denied (insufficient permissions)."""

    def __init__(self, required_permission: str = "") -> None:
        msg = (
            f"Permission denied: {required_permission}"
            if required_permission
            else "Permission denied"
        )
        self.required_permission = required_permission
        super().__init__(msg, code="AUTH_DENIED", kind=ErrorKind.ACCESS_DENIED)


class AccessDeniedError(ErpError):
    """Membership absent or inactive, or the backend's RLS refused the row."""

    def __init__(
        self,
        message: str = (
            "Access denied. You do not have permission to access this organization."
        ),
        *,
        organization_id: str = "",
        kind: ErrorKind = ErrorKind.ACCESS_DENIED,
    ) -> None:
        self.organization_id = organization_id
        super().__init__(message, code="ACCESS_DENIED", kind=kind)


class ContextNotSetError(ErpError):
    """An organization-scoped call was made without a bound organization."""

    def __init__(
        self,
        message: str = "Organization context not set. Please select an organization first.",
        *,
        kind: ErrorKind = ErrorKind.CONTEXT_NOT_SET,
    ) -> None:
        super().__init__(message, code="CONTEXT_NOT_SET", kind=kind)


# -- Domain errors --


class NotFoundError(ErpError):
    """Requested resource not found."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            code="NOT_FOUND",
            kind=ErrorKind.NOT_FOUND,
        )


class ConflictError(ErpError):
    """Resource state conflict (duplicate slug, duplicate membership, etc.)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CONFLICT", kind=ErrorKind.CONFLICT)


class ValidationError(ErpError):
    """Input validation failed."""

    def __init__(self, message: str, field: str = "") -> None:
        self.field = field
        super().__init__(message, code="VALIDATION", kind=ErrorKind.VALIDATION)


class ServiceUnavailableError(ErpError):
    """A backing service (database, cache) cannot be reached."""

    def __init__(self, service: str, message: str = "") -> None:
        self.service = service
        super().__init__(
            message or f"Service temporarily unavailable: {service}",
            code="SERVICE_UNAVAILABLE",
            kind=ErrorKind.UNAVAILABLE,
        )


__all__ = [
    "RECOVERABLE_KINDS",
    "AccessDeniedError",
    "AuthenticationError",
    "AuthorizationError",
    "BackendError",
    "ConflictError",
    "ContextNotSetError",
    "ErpError",
    "ErrorKind",
    "NotFoundError",
    "PortTimeoutError",
    "PortUnavailableError",
    "ServiceUnavailableError",
    "SessionExpiredError",
    "ValidationError",
]
