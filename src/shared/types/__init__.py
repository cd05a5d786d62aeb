"""Shared domain types used across layers.

These types flow through Port interfaces and must remain stable.
Infrastructure adapters map ORM rows onto them; the gateway maps them onto
pydantic response models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from datetime import datetime

ACTIVE = "active"
INACTIVE = "inactive"
STATUSES = frozenset({ACTIVE, INACTIVE})

# Role synthesized for organizations listed without a membership row.
DEFAULT_MEMBERSHIP_ROLE = "user"

# -- Tenancy --


@dataclass(frozen=True)
class Organization:
    """Tenant boundary. Created and edited by the superadmin console."""

    id: UUID
    name: str
    slug: str
    status: str = ACTIVE
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE


@dataclass(frozen=True)
class Membership:
    """A user's membership in one organization (user_organizations row)."""

    id: UUID
    user_id: UUID
    organization_id: UUID
    role: str = DEFAULT_MEMBERSHIP_ROLE
    status: str = ACTIVE
    created_at: datetime | None = None
    organization: Organization | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE


@dataclass(frozen=True)
class OrganizationSummary:
    """An organization as seen by one user: identity plus that user's role."""

    id: UUID
    name: str
    slug: str
    role: str = DEFAULT_MEMBERSHIP_ROLE

    def to_dict(self) -> dict[str, Any]:
        return {"id": str(self.id), "name": self.name, "slug": self.slug, "role": self.role}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OrganizationSummary:
        return cls(
            id=UUID(str(data["id"])),
            name=data.get("name", ""),
            slug=data.get("slug", ""),
            role=data.get("role", DEFAULT_MEMBERSHIP_ROLE),
        )


# -- Users and roles --


@dataclass(frozen=True)
class UserProfile:
    """Row of the users table without credentials."""

    id: UUID
    email: str
    full_name: str
    role_id: str = "viewer"
    status: str = ACTIVE


@dataclass(frozen=True)
class UserCredentials:
    """Login lookup result. password_hash is a bcrypt hash or None."""

    profile: UserProfile
    password_hash: str | None = None


@dataclass(frozen=True)
class RoleDefinition:
    """Row of the roles table."""

    id: str
    name: str
    description: str = ""
    permissions: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class UserDetails:
    """user_details view: profile joined with its role."""

    id: UUID
    email: str
    full_name: str
    role_id: str
    role_name: str = ""
    role_description: str = ""
    permissions: frozenset[str] = field(default_factory=frozenset)
    status: str = ACTIVE


# -- Local persisted state --


@dataclass(frozen=True)
class StoredUser:
    """The client's cached "current user" object.

    Serialized with the camelCase `currentOrganization` key the web client
    writes, so a cache populated by either side can be read by the other.
    Only ever used for best-effort recovery of the organization context.
    """

    id: UUID
    name: str
    email: str
    role: str
    organizations: tuple[OrganizationSummary, ...] = ()
    current_organization: OrganizationSummary | None = None

    def find_organization(self, organization_id: UUID) -> OrganizationSummary | None:
        for org in self.organizations:
            if org.id == organization_id:
                return org
        return None

    def with_current(self, organization: OrganizationSummary | None) -> StoredUser:
        return StoredUser(
            id=self.id,
            name=self.name,
            email=self.email,
            role=self.role,
            organizations=self.organizations,
            current_organization=organization,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "organizations": [o.to_dict() for o in self.organizations],
            "currentOrganization": (
                self.current_organization.to_dict() if self.current_organization else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoredUser:
        current = data.get("currentOrganization")
        return cls(
            id=UUID(str(data["id"])),
            name=data.get("name", ""),
            email=data.get("email", ""),
            role=data.get("role", "viewer"),
            organizations=tuple(
                OrganizationSummary.from_dict(o) for o in data.get("organizations") or []
            ),
            current_organization=OrganizationSummary.from_dict(current) if current else None,
        )


__all__ = [
    "ACTIVE",
    "DEFAULT_MEMBERSHIP_ROLE",
    "INACTIVE",
    "STATUSES",
    "Membership",
    "Organization",
    "OrganizationSummary",
    "RoleDefinition",
    "StoredUser",
    "UserCredentials",
    "UserDetails",
    "UserProfile",
]
