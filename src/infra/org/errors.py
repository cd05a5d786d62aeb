"""Error classification for organization-scoped backend calls.

The backend reports failures through three code spaces: PostgreSQL
SQLSTATE, PostgREST-style codes, and HTTP statuses. They are mapped onto
ErrorKind once, here; everything downstream branches on the kind.
"""

from __future__ import annotations

from src.shared.errors import (
    AccessDeniedError,
    ConflictError,
    ContextNotSetError,
    ErpError,
    ErrorKind,
    PortTimeoutError,
    PortUnavailableError,
    SessionExpiredError,
)

_CODE_KINDS: dict[str, ErrorKind] = {
    # PostgreSQL SQLSTATE
    "42501": ErrorKind.RLS_DENIED,  # insufficient_privilege / RLS policy violation
    "42704": ErrorKind.CONTEXT_NOT_SET,  # unrecognized configuration parameter
    "22023": ErrorKind.CONTEXT_NOT_SET,  # invalid_parameter_value from the bind function
    "23505": ErrorKind.CONFLICT,  # unique_violation
    "23503": ErrorKind.CONFLICT,  # foreign_key_violation
    "28000": ErrorKind.AUTH_EXPIRED,  # invalid_authorization_specification
    "08006": ErrorKind.UNAVAILABLE,  # connection_failure
    "08001": ErrorKind.UNAVAILABLE,  # unable to establish connection
    "57014": ErrorKind.TIMEOUT,  # query_canceled (statement_timeout)
    # PostgREST
    "PGRST301": ErrorKind.AUTH_EXPIRED,  # JWT expired / invalid
    "PGRST116": ErrorKind.NOT_FOUND,  # zero rows for .single()
    # HTTP
    "401": ErrorKind.AUTH_EXPIRED,
    "403": ErrorKind.RLS_DENIED,
    "404": ErrorKind.NOT_FOUND,
    "406": ErrorKind.NOT_ACCEPTABLE,
    "409": ErrorKind.CONFLICT,
    "503": ErrorKind.UNAVAILABLE,
}

ACCESS_DENIED_MESSAGE = "Access denied. Please check your organization permissions."
CONTEXT_REQUIRED_MESSAGE = (
    "Organization context required. Please select an organization and try again."
)


def kind_for_code(code: str | int | None) -> ErrorKind:
    """Return the ErrorKind for a backend code, UNKNOWN when unmapped."""
    if code is None or code == "":
        return ErrorKind.UNKNOWN
    return _CODE_KINDS.get(str(code).upper(), ErrorKind.UNKNOWN)


def classify_error(exc: BaseException) -> ErrorKind:
    """Return the ErrorKind of any exception raised by a scoped call.

    ErpError instances report their own kind; timeouts and connection
    errors are recognized by type; everything else is UNKNOWN.
    """
    if isinstance(exc, ErpError):
        return exc.kind
    if isinstance(exc, TimeoutError):
        return ErrorKind.TIMEOUT
    if isinstance(exc, (ConnectionError, OSError)):
        return ErrorKind.UNAVAILABLE
    return ErrorKind.UNKNOWN


def normalize_error(exc: BaseException) -> ErpError:
    """Convert a failure into the ErpError surfaced to callers.

    Context and authorization failures get the user-facing wording of the
    web client; conflicts and already-typed domain errors pass through.
    """
    kind = classify_error(exc)

    if kind is ErrorKind.RLS_DENIED:
        return AccessDeniedError(ACCESS_DENIED_MESSAGE, kind=ErrorKind.RLS_DENIED)
    if kind is ErrorKind.NOT_ACCEPTABLE:
        return ContextNotSetError(CONTEXT_REQUIRED_MESSAGE, kind=ErrorKind.NOT_ACCEPTABLE)
    if kind is ErrorKind.CONTEXT_NOT_SET and not isinstance(exc, ContextNotSetError):
        return ContextNotSetError(CONTEXT_REQUIRED_MESSAGE)
    if kind is ErrorKind.AUTH_EXPIRED and not isinstance(exc, SessionExpiredError):
        return SessionExpiredError()
    if kind is ErrorKind.CONFLICT and not isinstance(exc, ConflictError):
        return ConflictError(str(exc))

    if isinstance(exc, ErpError):
        return exc
    if kind is ErrorKind.TIMEOUT:
        return PortTimeoutError(port_name="organization_backend", timeout_ms=0)
    if kind is ErrorKind.UNAVAILABLE:
        return PortUnavailableError(port_name="organization_backend", message=str(exc))
    return ErpError(str(exc) or type(exc).__name__)
