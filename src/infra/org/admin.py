"""Superadmin console operations across all organizations.

These calls are not scoped by the organization context: they run with the
superadmin's rights and see every tenant. Organizations can be created and
edited but never deleted; memberships support full CRUD.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from src.infra.org.errors import normalize_error
from src.shared.errors import ErpError, ValidationError
from src.shared.types import ACTIVE, DEFAULT_MEMBERSHIP_ROLE, STATUSES

if TYPE_CHECKING:
    from uuid import UUID

    from src.ports.organization_backend import OrganizationAdminBackend
    from src.shared.types import Membership, Organization

logger = logging.getLogger(__name__)

MEMBERSHIP_ROLES = frozenset({DEFAULT_MEMBERSHIP_ROLE, "admin", "superadmin"})

_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
_MAX_NAME_LENGTH = 255


@dataclass(frozen=True)
class SystemStatistics:
    total_organizations: int
    active_organizations: int
    total_memberships: int
    active_memberships: int

    def to_dict(self) -> dict[str, int]:
        return {
            "total_organizations": self.total_organizations,
            "active_organizations": self.active_organizations,
            "total_memberships": self.total_memberships,
            "active_memberships": self.active_memberships,
        }


def _validate_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise ValidationError("Organization name must not be empty", field="name")
    if len(name) > _MAX_NAME_LENGTH:
        raise ValidationError(
            f"Organization name exceeds {_MAX_NAME_LENGTH} characters", field="name"
        )
    return name


def _validate_slug(slug: str) -> str:
    slug = slug.strip().lower()
    if not _SLUG_RE.match(slug):
        raise ValidationError(
            "Slug must contain lowercase letters, digits and single hyphens", field="slug"
        )
    return slug


def _validate_status(status: str) -> str:
    if status not in STATUSES:
        raise ValidationError(f"Invalid status: {status}", field="status")
    return status


def _validate_role(role: str) -> str:
    if role not in MEMBERSHIP_ROLES:
        raise ValidationError(f"Invalid membership role: {role}", field="role")
    return role


class SuperAdminService:
    """Validated organization and membership management for superadmins."""

    def __init__(self, backend: OrganizationAdminBackend) -> None:
        self._backend = backend

    async def _call(self, action: str, coro: Any) -> Any:
        try:
            return await coro
        except ErpError:
            raise
        except Exception as exc:
            logger.error("Superadmin %s failed: %s", action, exc)
            raise normalize_error(exc) from exc

    # -- Organizations --

    async def list_organizations(self) -> list[Organization]:
        return await self._call("list_organizations", self._backend.list_all_organizations())

    async def create_organization(
        self, *, name: str, slug: str, status: str = ACTIVE
    ) -> Organization:
        name = _validate_name(name)
        slug = _validate_slug(slug)
        status = _validate_status(status)
        org = await self._call(
            "create_organization",
            self._backend.create_organization(name=name, slug=slug, status=status),
        )
        logger.info("Organization created: id=%s slug=%s", org.id, org.slug)
        return org

    async def update_organization(
        self,
        organization_id: UUID,
        *,
        name: str | None = None,
        slug: str | None = None,
        status: str | None = None,
    ) -> Organization:
        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = _validate_name(name)
        if slug is not None:
            changes["slug"] = _validate_slug(slug)
        if status is not None:
            changes["status"] = _validate_status(status)
        if not changes:
            raise ValidationError("No organization fields to update")

        org = await self._call(
            "update_organization",
            self._backend.update_organization(organization_id, changes),
        )
        logger.info("Organization updated: id=%s fields=%s", organization_id, sorted(changes))
        return org

    # -- Memberships --

    async def list_memberships(self) -> list[Membership]:
        return await self._call("list_memberships", self._backend.list_all_memberships())

    async def create_membership(
        self,
        *,
        user_id: UUID,
        organization_id: UUID,
        role: str = DEFAULT_MEMBERSHIP_ROLE,
        status: str = ACTIVE,
    ) -> Membership:
        membership = await self._call(
            "create_membership",
            self._backend.create_membership(
                user_id=user_id,
                organization_id=organization_id,
                role=_validate_role(role),
                status=_validate_status(status),
            ),
        )
        logger.info(
            "Membership created: user_id=%s organization_id=%s role=%s",
            user_id,
            organization_id,
            role,
        )
        return membership

    async def update_membership(
        self,
        membership_id: UUID,
        *,
        role: str | None = None,
        status: str | None = None,
    ) -> Membership:
        changes: dict[str, Any] = {}
        if role is not None:
            changes["role"] = _validate_role(role)
        if status is not None:
            changes["status"] = _validate_status(status)
        if not changes:
            raise ValidationError("No membership fields to update")

        return await self._call(
            "update_membership",
            self._backend.update_membership(membership_id, changes),
        )

    async def delete_membership(self, membership_id: UUID) -> None:
        await self._call("delete_membership", self._backend.delete_membership(membership_id))
        logger.info("Membership deleted: id=%s", membership_id)

    # -- Statistics --

    async def system_statistics(self) -> SystemStatistics:
        organizations = await self.list_organizations()
        memberships = await self.list_memberships()
        return SystemStatistics(
            total_organizations=len(organizations),
            active_organizations=sum(1 for o in organizations if o.is_active),
            total_memberships=len(memberships),
            active_memberships=sum(1 for m in memberships if m.is_active),
        )
