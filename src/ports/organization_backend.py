"""OrganizationBackend - tenancy queries and session binding.

Hard dependency of the organization context layer. The relational store
enforces row-level security keyed on a session variable set by the
set_session_organization() procedure, once per database session.

Implementations raise ErpError subclasses (usually BackendError with an
ErrorKind) rather than driver exceptions.

Real implementation: src/infra/org/backend.py (PostgreSQL via SQLAlchemy).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from uuid import UUID

    from src.shared.types import (
        Membership,
        Organization,
        OrganizationSummary,
        RoleDefinition,
        UserCredentials,
        UserDetails,
        UserProfile,
    )


class OrganizationBackend(ABC):
    """Port: tenancy reads plus the session-binding RPC."""

    @abstractmethod
    async def find_active_membership(
        self,
        user_id: UUID,
        organization_id: UUID,
    ) -> Membership | None:
        """Return the user's active membership in the organization, or None."""

    @abstractmethod
    async def bind_session_organization(self, organization_id: UUID) -> None:
        """Check that the bind procedure accepts the organization.

        Pooled sessions do not keep the binding, so scoped reads such as
        list_organization_members() re-apply it on their own session.

        Raises:
            BackendError: If the remote procedure rejects the call.
        """

    @abstractmethod
    async def list_user_organizations(
        self,
        user_id: UUID,
        *,
        active_only: bool = True,
        limit: int = 50,
    ) -> list[OrganizationSummary]:
        """List organizations joined through the user's memberships.

        Args:
            user_id: Member whose organizations are listed.
            active_only: Filter memberships on status = 'active'.
            limit: Maximum number of rows.
        """

    @abstractmethod
    async def list_organizations(self, *, limit: int = 50) -> list[Organization]:
        """List organizations without any membership join."""

    @abstractmethod
    async def list_organization_members(self, organization_id: UUID) -> list[Membership]:
        """List the organization's memberships on a session bound to it.

        Row-level security applies, so a missing or mismatched binding
        surfaces as a CONTEXT_NOT_SET or RLS_DENIED BackendError.
        """

    @abstractmethod
    async def has_active_role(self, user_id: UUID, role: str) -> bool:
        """Whether the user holds an active membership with the given role anywhere."""

    @abstractmethod
    async def get_user_profile(self, user_id: UUID) -> UserProfile | None:
        """Return the users-table profile, or None."""

    @abstractmethod
    async def find_user_by_email(self, email: str) -> UserCredentials | None:
        """Return profile and password hash for login, or None."""

    @abstractmethod
    async def record_login(self, user_id: UUID) -> None:
        """Stamp users.last_login with the current time."""

    @abstractmethod
    async def get_user_details(self, user_id: UUID) -> UserDetails | None:
        """Return the user joined with role and permissions, or None."""

    @abstractmethod
    async def list_roles(self) -> list[RoleDefinition]:
        """Return the roles table ordered by id."""


class OrganizationAdminBackend(ABC):
    """Port: superadmin console writes. Bypasses organization scoping."""

    @abstractmethod
    async def list_all_organizations(self) -> list[Organization]:
        """All organizations ordered by name."""

    @abstractmethod
    async def create_organization(self, *, name: str, slug: str, status: str) -> Organization:
        """Insert an organization. Raises ConflictError on duplicate slug."""

    @abstractmethod
    async def update_organization(
        self, organization_id: UUID, changes: dict[str, Any]
    ) -> Organization:
        """Apply changes. Raises NotFoundError when absent."""

    @abstractmethod
    async def list_all_memberships(self) -> list[Membership]:
        """All memberships with their organization, newest first."""

    @abstractmethod
    async def create_membership(
        self,
        *,
        user_id: UUID,
        organization_id: UUID,
        role: str,
        status: str,
    ) -> Membership:
        """Insert a membership. Raises ConflictError on duplicate pair."""

    @abstractmethod
    async def update_membership(self, membership_id: UUID, changes: dict[str, Any]) -> Membership:
        """Apply changes. Raises NotFoundError when absent."""

    @abstractmethod
    async def delete_membership(self, membership_id: UUID) -> None:
        """Remove a membership. Raises NotFoundError when absent."""
