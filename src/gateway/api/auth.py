"""Authentication endpoints (login / logout).

POST /api/v1/auth/login is exempt from JWT auth and returns a token plus
the cached user object; POST /api/v1/auth/logout clears the caller's
organization context and cached user.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Request
from pydantic import BaseModel, EmailStr

from src.gateway.api.organizations import OrganizationSummaryResponse
from src.gateway.middleware.auth import encode_token

if TYPE_CHECKING:
    from src.infra.auth.session import AuthSession

logger = logging.getLogger(__name__)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: str
    organizations: list[OrganizationSummaryResponse]
    current_organization: OrganizationSummaryResponse | None = None


class LoginResponse(BaseModel):
    """JWT token returned on successful login."""

    token: str
    user: UserResponse


class LogoutResponse(BaseModel):
    status: str = "ok"


def create_auth_router(*, auth_session: AuthSession, token_ttl_seconds: int = 3600) -> APIRouter:
    """Create auth API router. The JWT secret comes from app.state."""
    router = APIRouter(prefix="/api/v1/auth", tags=["auth"])

    @router.post("/login", response_model=LoginResponse)
    async def login(body: LoginRequest, request: Request) -> LoginResponse:
        """Authenticate with email + password, return JWT."""
        secret: str = request.app.state.jwt_secret
        user = await auth_session.login(body.email, body.password)
        token = encode_token(
            user_id=user.id,
            secret=secret,
            role=user.role,
            ttl_seconds=token_ttl_seconds,
        )
        return LoginResponse(
            token=token,
            user=UserResponse(
                id=str(user.id),
                name=user.name,
                email=user.email,
                role=user.role,
                organizations=[
                    OrganizationSummaryResponse.from_summary(o) for o in user.organizations
                ],
                current_organization=(
                    OrganizationSummaryResponse.from_summary(user.current_organization)
                    if user.current_organization
                    else None
                ),
            ),
        )

    @router.post("/logout", response_model=LogoutResponse)
    async def logout(request: Request) -> LogoutResponse:
        await auth_session.logout(request.state.user_id)
        return LogoutResponse()

    return router
