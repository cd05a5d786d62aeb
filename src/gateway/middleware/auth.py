"""Bearer tokens for the ERP API (PyJWT, HS256).

Claims: sub (user id), role (global users.role_id), iat, exp. There is no
organization claim; the active organization lives in the server-side
OrganizationContext, so switching organizations never re-issues a token.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

import jwt

from src.shared.errors import AuthenticationError

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ["sub", "exp"]
DEFAULT_ROLE = "viewer"


@dataclass(frozen=True)
class TokenPayload:
    user_id: UUID
    role: str = DEFAULT_ROLE
    expires_at: datetime | None = None


def encode_token(
    *,
    user_id: UUID,
    secret: str,
    role: str = DEFAULT_ROLE,
    ttl_seconds: int = 3600,
) -> str:
    issued = datetime.now(UTC)
    claims = {
        "sub": str(user_id),
        "role": role,
        "iat": issued,
        "exp": issued + timedelta(seconds=ttl_seconds),
    }
    return jwt.encode(claims, secret, algorithm=_ALGORITHM)


def decode_token(token: str, *, secret: str, leeway: int = 0) -> TokenPayload:
    """Verify signature and expiry.

    Raises:
        AuthenticationError: "Token expired", or "Invalid token: ..." for a
            bad signature, missing claims or a non-UUID subject.
    """
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[_ALGORITHM],
            leeway=leeway,
            options={"require": _REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError(f"Invalid token: {exc}") from exc

    try:
        user_id = UUID(str(claims["sub"]))
    except ValueError as exc:
        raise AuthenticationError(f"Invalid token: bad subject {claims['sub']!r}") from exc

    return TokenPayload(
        user_id=user_id,
        role=claims.get("role") or DEFAULT_ROLE,
        expires_at=datetime.fromtimestamp(claims["exp"], tz=UTC),
    )
