"""Organization and context endpoints for the signed-in user.

- GET    /api/v1/organizations     -> the caller's organizations (fetch chain)
- GET    /api/v1/context           -> current organization context
- PUT    /api/v1/context           -> switch organization (null clears)
- DELETE /api/v1/context           -> clear the context
- GET    /api/v1/context/members   -> members of the current organization
- GET    /api/v1/me/permissions    -> resolved role and permissions
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003 - needed at runtime by FastAPI

from fastapi import APIRouter, Request
from pydantic import BaseModel

if TYPE_CHECKING:
    from src.infra.auth.rbac import RoleResolver
    from src.infra.auth.session import AuthSession
    from src.infra.org.context import OrganizationContext
    from src.infra.org.fetch import OrganizationFetcher
    from src.shared.types import Membership, OrganizationSummary

logger = logging.getLogger(__name__)


class OrganizationSummaryResponse(BaseModel):
    id: str
    name: str
    slug: str
    role: str

    @classmethod
    def from_summary(cls, org: OrganizationSummary) -> OrganizationSummaryResponse:
        return cls(id=str(org.id), name=org.name, slug=org.slug, role=org.role)


class OrganizationListResponse(BaseModel):
    organizations: list[OrganizationSummaryResponse]
    total: int


class ContextResponse(BaseModel):
    organization_id: str | None
    is_set: bool
    state: str


class SetContextRequest(BaseModel):
    organization_id: UUID | None = None


class MemberResponse(BaseModel):
    id: str
    user_id: str
    role: str
    status: str

    @classmethod
    def from_membership(cls, membership: Membership) -> MemberResponse:
        return cls(
            id=str(membership.id),
            user_id=str(membership.user_id),
            role=membership.role,
            status=membership.status,
        )


class MemberListResponse(BaseModel):
    organization_id: str
    members: list[MemberResponse]
    total: int


class RoleResponse(BaseModel):
    id: str
    name: str
    description: str
    permissions: list[str]


class PermissionsResponse(BaseModel):
    role_id: str | None
    role_name: str | None
    permissions: list[str]
    roles: list[RoleResponse]


def _context_response(context: OrganizationContext) -> ContextResponse:
    current = context.get_current_organization()
    return ContextResponse(
        organization_id=str(current) if current else None,
        is_set=context.is_context_set(),
        state=context.state.value,
    )


def create_organization_router(
    *,
    fetcher: OrganizationFetcher,
    auth_session: AuthSession,
    role_resolver: RoleResolver,
) -> APIRouter:
    """Create organization/context API router."""
    router = APIRouter(prefix="/api/v1", tags=["organizations"])

    @router.get("/organizations", response_model=OrganizationListResponse)
    async def list_organizations(request: Request) -> OrganizationListResponse:
        user_id: UUID = request.state.user_id
        organizations = await fetcher.fetch_user_organizations(user_id)
        return OrganizationListResponse(
            organizations=[OrganizationSummaryResponse.from_summary(o) for o in organizations],
            total=len(organizations),
        )

    @router.get("/context", response_model=ContextResponse)
    async def get_context(request: Request) -> ContextResponse:
        return _context_response(request.state.org_context)

    @router.put("/context", response_model=ContextResponse)
    async def set_context(body: SetContextRequest, request: Request) -> ContextResponse:
        """Switch to one of the organizations the user logged in with."""
        context: OrganizationContext = request.state.org_context
        if body.organization_id is None:
            await auth_session.clear_organization(request.state.user_id)
        else:
            await auth_session.switch_organization(request.state.user_id, body.organization_id)
        return _context_response(context)

    @router.delete("/context", response_model=ContextResponse)
    async def clear_context(request: Request) -> ContextResponse:
        await auth_session.clear_organization(request.state.user_id)
        return _context_response(request.state.org_context)

    @router.get("/context/members", response_model=MemberListResponse)
    async def list_members(request: Request) -> MemberListResponse:
        context: OrganizationContext = request.state.org_context
        members = await fetcher.fetch_organization_members(context)
        return MemberListResponse(
            organization_id=str(context.get_current_organization()),
            members=[MemberResponse.from_membership(m) for m in members],
            total=len(members),
        )

    @router.get("/me/permissions", response_model=PermissionsResponse)
    async def my_permissions(request: Request) -> PermissionsResponse:
        resolved = await role_resolver.resolve(request.state.user_id)
        details = resolved.details
        return PermissionsResponse(
            role_id=details.role_id if details else None,
            role_name=details.role_name if details else None,
            permissions=sorted(resolved.permissions),
            roles=[
                RoleResponse(
                    id=r.id,
                    name=r.name,
                    description=r.description,
                    permissions=sorted(r.permissions),
                )
                for r in resolved.roles
            ],
        )

    return router
