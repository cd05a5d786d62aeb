"""RBAC for the fruit ERP: 4 ranked roles x 18 permission codes.

- Roles are ranked viewer < staff < manager < admin
- Permissions are "<resource>:<read|write>" strings
- The matrix below is the built-in default, used when the roles table
  cannot be read
- RoleResolver loads a user's effective role and permissions
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, unique
from typing import TYPE_CHECKING

from src.shared.types import RoleDefinition

if TYPE_CHECKING:
    from uuid import UUID

    from src.ports.organization_backend import OrganizationBackend
    from src.shared.types import UserDetails

logger = logging.getLogger(__name__)


@unique
class Permission(Enum):
    """Permission codes checked by the ERP screens."""

    DASHBOARD_READ = "dashboard:read"
    INVENTORY_READ = "inventory:read"
    VEHICLE_ARRIVAL_READ = "vehicle_arrival:read"
    VEHICLE_ARRIVAL_WRITE = "vehicle_arrival:write"
    PURCHASE_RECORDS_READ = "purchase_records:read"
    PURCHASE_RECORDS_WRITE = "purchase_records:write"
    SALES_READ = "sales:read"
    SALES_WRITE = "sales:write"
    PARTNERS_READ = "partners:read"
    PARTNERS_WRITE = "partners:write"
    DISPATCH_READ = "dispatch:read"
    DISPATCH_WRITE = "dispatch:write"
    PAYMENTS_READ = "payments:read"
    PAYMENTS_WRITE = "payments:write"
    SETTINGS_READ = "settings:read"
    SETTINGS_WRITE = "settings:write"
    USERS_READ = "users:read"
    USERS_WRITE = "users:write"


@unique
class Role(Enum):
    VIEWER = "viewer"
    STAFF = "staff"
    MANAGER = "manager"
    ADMIN = "admin"


ROLE_HIERARCHY: dict[str, int] = {
    Role.VIEWER.value: 1,
    Role.STAFF.value: 2,
    Role.MANAGER.value: 3,
    Role.ADMIN.value: 4,
}

_VIEWER = frozenset({Permission.DASHBOARD_READ, Permission.INVENTORY_READ})
_STAFF = _VIEWER | {
    Permission.VEHICLE_ARRIVAL_READ,
    Permission.VEHICLE_ARRIVAL_WRITE,
    Permission.PURCHASE_RECORDS_READ,
    Permission.PURCHASE_RECORDS_WRITE,
    Permission.SALES_READ,
    Permission.SALES_WRITE,
}
_MANAGER = _STAFF | {
    Permission.PARTNERS_READ,
    Permission.PARTNERS_WRITE,
    Permission.DISPATCH_READ,
    Permission.DISPATCH_WRITE,
    Permission.PAYMENTS_READ,
    Permission.PAYMENTS_WRITE,
}

ROLE_PERMISSION_MATRIX: dict[Role, frozenset[Permission]] = {
    Role.VIEWER: _VIEWER,
    Role.STAFF: frozenset(_STAFF),
    Role.MANAGER: frozenset(_MANAGER),
    Role.ADMIN: frozenset(Permission),
}

_ROLE_TEXT: dict[Role, tuple[str, str]] = {
    Role.VIEWER: ("Viewer", "Read-only access to dashboard and inventory"),
    Role.STAFF: (
        "Staff",
        "Basic operations including vehicle arrival, purchases, and sales",
    ),
    Role.MANAGER: (
        "Manager",
        "Department management including partners, dispatch, and payments",
    ),
    Role.ADMIN: (
        "Admin",
        "Full system access including user management and settings",
    ),
}


def default_roles() -> list[RoleDefinition]:
    """The built-in role definitions, ordered by rank."""
    return [
        RoleDefinition(
            id=role.value,
            name=_ROLE_TEXT[role][0],
            description=_ROLE_TEXT[role][1],
            permissions=frozenset(p.value for p in ROLE_PERMISSION_MATRIX[role]),
        )
        for role in Role
    ]


def role_level(role_id: str | None) -> int:
    """Rank of a role id; unknown roles rank 0."""
    return ROLE_HIERARCHY.get(role_id or "", 0)


def resolve_role(role_str: str) -> Role | None:
    """Parse a role string into a Role enum, returning None if invalid."""
    try:
        return Role(role_str)
    except ValueError:
        return None


@dataclass(frozen=True)
class ResolvedRoles:
    """A user's effective role and permissions plus the role catalogue."""

    details: UserDetails | None
    roles: list[RoleDefinition] = field(default_factory=list)
    roles_from_defaults: bool = False

    @property
    def permissions(self) -> frozenset[str]:
        return self.details.permissions if self.details is not None else frozenset()

    def has_permission(self, permission: str | Permission) -> bool:
        code = permission.value if isinstance(permission, Permission) else permission
        return code in self.permissions

    def has_role(self, role_id: str) -> bool:
        return self.details is not None and self.details.role_id == role_id

    def has_min_role(self, min_role_id: str) -> bool:
        if self.details is None:
            return False
        return role_level(self.details.role_id) >= role_level(min_role_id)


class RoleResolver:
    """Loads user details and the role catalogue from the backend.

    A failed user-details read yields a user without permissions; a failed
    roles read falls back to the built-in matrix.
    """

    def __init__(self, backend: OrganizationBackend) -> None:
        self._backend = backend

    async def resolve(self, user_id: UUID) -> ResolvedRoles:
        try:
            details = await self._backend.get_user_details(user_id)
        except Exception as exc:
            logger.error("Error fetching user details for user_id=%s: %s", user_id, exc)
            details = None

        try:
            roles = await self._backend.list_roles()
            from_defaults = False
        except Exception as exc:
            logger.warning("Error fetching roles, using built-in defaults: %s", exc)
            roles = default_roles()
            from_defaults = True

        return ResolvedRoles(details=details, roles=roles, roles_from_defaults=from_defaults)
