"""Port interfaces - Layer boundary contracts.

    OrganizationBackend      - tenancy reads + set_session_organization bind
    OrganizationAdminBackend - superadmin writes across all organizations
    LocalStatePort           - per-session cached user object (soft dep)
"""

from src.ports.local_state import LocalStatePort
from src.ports.organization_backend import OrganizationAdminBackend, OrganizationBackend

__all__ = [
    "LocalStatePort",
    "OrganizationAdminBackend",
    "OrganizationBackend",
]
