"""Login, logout and organization switching for one user session.

Credentials are bcrypt hashes on the users row. A successful login leaves
behind the cached StoredUser (organizations + current organization) that
the organization context recovers from, and binds the first organization.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import bcrypt

from src.shared.errors import AccessDeniedError, AuthenticationError, ErpError
from src.shared.types import ACTIVE, StoredUser

if TYPE_CHECKING:
    from uuid import UUID

    from src.infra.org.context import OrganizationContext
    from src.infra.org.fetch import OrganizationFetcher
    from src.infra.org.registry import SessionRegistry
    from src.ports.organization_backend import OrganizationBackend

logger = logging.getLogger(__name__)

_INVALID_CREDENTIALS = "Invalid email or password"


def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        # Malformed hash in the users table.
        return False


class AuthSession:
    """Authentication flows wired to the per-user organization contexts."""

    def __init__(
        self,
        *,
        backend: OrganizationBackend,
        fetcher: OrganizationFetcher,
        registry: SessionRegistry,
    ) -> None:
        self._backend = backend
        self._fetcher = fetcher
        self._registry = registry

    async def login(self, email: str, password: str) -> StoredUser:
        """Verify credentials and establish the user's organization context.

        The context bind is attempted but not required: when it fails the
        context stays unset and the guard recovers it on the next scoped call.

        Raises:
            AuthenticationError: Unknown email, wrong password or inactive user.
            AccessDeniedError: The user belongs to no organization.
        """
        credentials = await self._backend.find_user_by_email(email)
        if credentials is None or not credentials.password_hash:
            raise AuthenticationError(_INVALID_CREDENTIALS)
        if not verify_password(password, credentials.password_hash):
            raise AuthenticationError(_INVALID_CREDENTIALS)

        profile = credentials.profile
        if profile.status != ACTIVE:
            raise AuthenticationError("User profile not found or inactive")

        organizations = await self._fetcher.fetch_user_organizations(profile.id)
        if not organizations:
            logger.warning("Login rejected, no organizations: user_id=%s", profile.id)
            raise AccessDeniedError("User has no access to any organizations")

        user = StoredUser(
            id=profile.id,
            name=profile.full_name,
            email=profile.email,
            role=profile.role_id,
            organizations=tuple(organizations),
            current_organization=organizations[0],
        )

        context = self._registry.get(profile.id)
        context.authenticate(profile.id)
        await context.save_stored_user(user)
        try:
            await context.set_current_organization(organizations[0].id)
        except ErpError as exc:
            logger.warning(
                "Login succeeded but organization context was not set: user_id=%s error=%s",
                profile.id,
                exc,
            )

        try:
            await self._backend.record_login(profile.id)
        except Exception as exc:
            logger.warning("Failed to record last login for user_id=%s: %s", profile.id, exc)

        logger.info("User login: email=%s user_id=%s", email, profile.id)
        return user

    async def logout(self, user_id: UUID) -> None:
        """Clear the context and forget the cached user. Never raises."""
        context = self._registry.peek(user_id)
        if context is None:
            return
        try:
            await context.forget_stored_user()
        except Exception as exc:
            logger.warning("Failed to delete stored user for user_id=%s: %s", user_id, exc)
        self._registry.discard(user_id)
        logger.info("User logout: user_id=%s", user_id)

    async def switch_organization(self, user_id: UUID, organization_id: UUID) -> StoredUser:
        """Switch the current organization to one the user logged in with.

        The context is bound first; the cached user only records the new
        organization once the bind succeeded. A failed bind leaves the
        context unset.

        Raises:
            AuthenticationError: No cached user for this session.
            AccessDeniedError: The organization is not in the user's list.
            ErpError: The bind failed (normalized).
        """
        context = self.context_for(user_id)
        user = await context.load_stored_user()
        if user is None or user.id != user_id:
            raise AuthenticationError("User not authenticated")

        target = user.find_organization(organization_id)
        if target is None:
            raise AccessDeniedError(organization_id=str(organization_id))

        await context.set_current_organization(target.id)

        updated = user.with_current(target)
        await context.save_stored_user(updated)
        logger.info(
            "Organization switched: user_id=%s organization_id=%s", user_id, organization_id
        )
        return updated

    async def clear_organization(self, user_id: UUID) -> None:
        """Clear the context and the cached current organization.

        The cached user no longer names an organization, so the guard has
        nothing to recover until the user switches again.
        """
        context = self.context_for(user_id)
        await context.set_current_organization(None)

        user = await context.load_stored_user()
        if user is not None and user.current_organization is not None:
            await context.save_stored_user(user.with_current(None))
        logger.info("Organization cleared: user_id=%s", user_id)

    def context_for(self, user_id: UUID) -> OrganizationContext:
        context = self._registry.get(user_id)
        context.authenticate(user_id)
        return context
