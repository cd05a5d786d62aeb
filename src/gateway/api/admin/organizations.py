"""Superadmin console API -- all organizations and memberships.

Gated by RBACMiddleware (active superadmin membership). Organizations
cannot be deleted through this API; deactivate them via status instead.

- GET    /api/v1/admin/organizations
- POST   /api/v1/admin/organizations
- PATCH  /api/v1/admin/organizations/{organization_id}
- GET    /api/v1/admin/memberships
- POST   /api/v1/admin/memberships
- PATCH  /api/v1/admin/memberships/{membership_id}
- DELETE /api/v1/admin/memberships/{membership_id}
- GET    /api/v1/admin/statistics
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003 - needed at runtime by FastAPI

from fastapi import APIRouter, Response
from pydantic import BaseModel

from src.shared.types import ACTIVE, DEFAULT_MEMBERSHIP_ROLE

if TYPE_CHECKING:
    from src.infra.org.admin import SuperAdminService
    from src.shared.types import Membership, Organization

logger = logging.getLogger(__name__)


class OrganizationResponse(BaseModel):
    id: str
    name: str
    slug: str
    status: str
    created_at: str | None = None
    updated_at: str | None = None


class CreateOrganizationRequest(BaseModel):
    name: str
    slug: str
    status: str = ACTIVE


class UpdateOrganizationRequest(BaseModel):
    name: str | None = None
    slug: str | None = None
    status: str | None = None


class MembershipResponse(BaseModel):
    id: str
    user_id: str
    organization_id: str
    role: str
    status: str
    created_at: str | None = None
    organization: OrganizationResponse | None = None


class CreateMembershipRequest(BaseModel):
    user_id: UUID
    organization_id: UUID
    role: str = DEFAULT_MEMBERSHIP_ROLE
    status: str = ACTIVE


class UpdateMembershipRequest(BaseModel):
    role: str | None = None
    status: str | None = None


class StatisticsResponse(BaseModel):
    total_organizations: int
    active_organizations: int
    total_memberships: int
    active_memberships: int


def _org_response(org: Organization) -> OrganizationResponse:
    return OrganizationResponse(
        id=str(org.id),
        name=org.name,
        slug=org.slug,
        status=org.status,
        created_at=org.created_at.isoformat() if org.created_at else None,
        updated_at=org.updated_at.isoformat() if org.updated_at else None,
    )


def _membership_response(m: Membership) -> MembershipResponse:
    return MembershipResponse(
        id=str(m.id),
        user_id=str(m.user_id),
        organization_id=str(m.organization_id),
        role=m.role,
        status=m.status,
        created_at=m.created_at.isoformat() if m.created_at else None,
        organization=_org_response(m.organization) if m.organization else None,
    )


def create_superadmin_router(*, service: SuperAdminService) -> APIRouter:
    """Create superadmin console router."""
    router = APIRouter(prefix="/api/v1/admin", tags=["admin"])

    @router.get("/organizations", response_model=list[OrganizationResponse])
    async def list_organizations() -> list[OrganizationResponse]:
        return [_org_response(o) for o in await service.list_organizations()]

    @router.post("/organizations", response_model=OrganizationResponse, status_code=201)
    async def create_organization(body: CreateOrganizationRequest) -> OrganizationResponse:
        org = await service.create_organization(
            name=body.name, slug=body.slug, status=body.status
        )
        return _org_response(org)

    @router.patch("/organizations/{organization_id}", response_model=OrganizationResponse)
    async def update_organization(
        organization_id: UUID, body: UpdateOrganizationRequest
    ) -> OrganizationResponse:
        org = await service.update_organization(
            organization_id, name=body.name, slug=body.slug, status=body.status
        )
        return _org_response(org)

    @router.get("/memberships", response_model=list[MembershipResponse])
    async def list_memberships() -> list[MembershipResponse]:
        return [_membership_response(m) for m in await service.list_memberships()]

    @router.post("/memberships", response_model=MembershipResponse, status_code=201)
    async def create_membership(body: CreateMembershipRequest) -> MembershipResponse:
        membership = await service.create_membership(
            user_id=body.user_id,
            organization_id=body.organization_id,
            role=body.role,
            status=body.status,
        )
        return _membership_response(membership)

    @router.patch("/memberships/{membership_id}", response_model=MembershipResponse)
    async def update_membership(
        membership_id: UUID, body: UpdateMembershipRequest
    ) -> MembershipResponse:
        membership = await service.update_membership(
            membership_id, role=body.role, status=body.status
        )
        return _membership_response(membership)

    @router.delete("/memberships/{membership_id}", status_code=204)
    async def delete_membership(membership_id: UUID) -> Response:
        await service.delete_membership(membership_id)
        return Response(status_code=204)

    @router.get("/statistics", response_model=StatisticsResponse)
    async def statistics() -> StatisticsResponse:
        stats = await service.system_statistics()
        return StatisticsResponse(**stats.to_dict())

    return router
