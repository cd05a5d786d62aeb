"""Structured error records for tenant-scoped failures.

Each record carries the ErpError code and kind, whether the retry wrapper
treats it as recoverable, the backend error code when one exists, and the
organization / user the failure happened under. Context values under
credential-like keys are masked before the record reaches a log handler.
"""

from __future__ import annotations

import logging
import traceback
from dataclasses import asdict, dataclass, field
from typing import Any

from src.shared.errors import RECOVERABLE_KINDS, ErrorKind

_MASK = "[REDACTED]"

_SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "cookie",
        "credential",
        "jwt",
        "password",
        "password_hash",
        "secret",
        "token",
    }
)


@dataclass(frozen=True)
class StructuredError:
    error_code: str
    error_kind: str
    message: str
    stack_trace: str
    recoverable: bool = False
    backend_code: str = ""
    context: dict[str, Any] = field(default_factory=dict)
    organization_id: str = ""
    user_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        record = asdict(self)
        record["context"] = _redact_sensitive(self.context)
        return record


def _redact_value(value: Any) -> Any:
    if isinstance(value, dict):
        return _redact_sensitive(value)
    if isinstance(value, list | tuple):
        return [_redact_value(v) for v in value]
    return value


def _redact_sensitive(data: dict[str, Any]) -> dict[str, Any]:
    """Copy of data with credential-like keys masked, at any depth."""
    return {
        key: _MASK if str(key).lower() in _SENSITIVE_KEYS else _redact_value(value)
        for key, value in data.items()
    }


def _id_text(value: object) -> str:
    return str(value) if value else ""


def create_structured_error(
    exc: BaseException,
    *,
    error_code: str = "",
    organization_id: object = None,
    user_id: object = None,
    context: dict[str, Any] | None = None,
) -> StructuredError:
    """Describe an exception; non-ErpError exceptions report kind "unknown"."""
    kind = getattr(exc, "kind", None)
    if not isinstance(kind, ErrorKind):
        kind = ErrorKind.UNKNOWN
    return StructuredError(
        error_code=error_code or getattr(exc, "code", None) or type(exc).__name__,
        error_kind=kind.value,
        message=str(exc),
        stack_trace="".join(traceback.format_exception(exc)),
        recoverable=kind in RECOVERABLE_KINDS,
        backend_code=str(getattr(exc, "backend_code", "") or ""),
        context=dict(context or {}),
        organization_id=_id_text(organization_id),
        user_id=_id_text(user_id),
    )


def log_structured_error(
    logger: logging.Logger,
    exc: BaseException,
    *,
    error_code: str = "",
    organization_id: object = None,
    user_id: object = None,
    context: dict[str, Any] | None = None,
    level: int = logging.ERROR,
) -> StructuredError:
    structured = create_structured_error(
        exc,
        error_code=error_code,
        organization_id=organization_id,
        user_id=user_id,
        context=context,
    )
    logger.log(
        level,
        "structured_error",
        extra={"structured_error": structured.to_dict()},
        exc_info=exc if level >= logging.ERROR else None,
    )
    return structured
