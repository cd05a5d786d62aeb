"""Organization fetch chain and profile loading with degrading fallbacks.

Listing a user's organizations must keep working when RLS policies or
relational joins misbehave, so the query degrades through three tiers:

    1. scoped_join       memberships (status = active) joined to organizations
    2. unscoped_join     the same join without the status filter
    3. all_organizations every organization, each with the default role

Each tier has its own timeout. The first tier that returns wins, even with
an empty list; a tier is skipped only when it raises or times out. When
every tier fails the result is empty rather than an error.

fetch_organization_members() is the organization-scoped read; it runs
through OrganizationContext.run() instead of degrading.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from src.infra.org.metrics import ORG_FETCH_TIER_TOTAL
from src.shared.errors import ServiceUnavailableError
from src.shared.types import DEFAULT_MEMBERSHIP_ROLE, OrganizationSummary, UserProfile

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from uuid import UUID

    from src.infra.org.context import OrganizationContext
    from src.ports.organization_backend import OrganizationBackend
    from src.shared.types import Membership

logger = logging.getLogger(__name__)

SUPERADMIN_ROLE = "superadmin"


@dataclass(frozen=True)
class FetchTimeouts:
    """Per-attempt timeouts in seconds."""

    scoped_join: float = 10.0
    unscoped_join: float = 8.0
    all_organizations: float = 5.0
    profile: float = 30.0
    organizations_with_profile: float = 15.0
    organizations_on_fallback: float = 8.0
    profile_fallback: float = 5.0
    superadmin_check: float = 5.0

    @classmethod
    def from_csv(cls, raw: str) -> FetchTimeouts:
        """Parse "scoped,unscoped,all" seconds; blank keeps the defaults."""
        if not raw.strip():
            return cls()
        parts = [float(p) for p in raw.split(",") if p.strip()]
        if len(parts) != 3 or any(p <= 0 for p in parts):
            msg = f"Expected three positive timeouts, got {raw!r}"
            raise ValueError(msg)
        return cls(scoped_join=parts[0], unscoped_join=parts[1], all_organizations=parts[2])


@dataclass(frozen=True)
class ProfileResult:
    """Profile plus organizations; fallback marks a degraded profile."""

    profile: UserProfile
    organizations: list[OrganizationSummary] = field(default_factory=list)
    fallback: bool = False


class OrganizationFetcher:
    """Runs the organization fetch chain against an OrganizationBackend."""

    def __init__(
        self,
        backend: OrganizationBackend,
        *,
        timeouts: FetchTimeouts | None = None,
        default_role: str = DEFAULT_MEMBERSHIP_ROLE,
        page_size: int = 50,
    ) -> None:
        self._backend = backend
        self._timeouts = timeouts or FetchTimeouts()
        self._default_role = default_role
        self._page_size = page_size

    @property
    def timeouts(self) -> FetchTimeouts:
        return self._timeouts

    async def fetch_user_organizations(self, user_id: UUID) -> list[OrganizationSummary]:
        """Return the user's organizations from the first tier that answers."""
        tiers: list[tuple[str, Callable[[], Awaitable[list[OrganizationSummary]]], float]] = [
            (
                "scoped_join",
                lambda: self._backend.list_user_organizations(
                    user_id, active_only=True, limit=self._page_size
                ),
                self._timeouts.scoped_join,
            ),
            (
                "unscoped_join",
                lambda: self._backend.list_user_organizations(
                    user_id, active_only=False, limit=self._page_size
                ),
                self._timeouts.unscoped_join,
            ),
            (
                "all_organizations",
                self._all_organizations_with_default_role,
                self._timeouts.all_organizations,
            ),
        ]

        for name, call, timeout in tiers:
            try:
                result = await asyncio.wait_for(call(), timeout=timeout)
            except TimeoutError:
                ORG_FETCH_TIER_TOTAL.labels(tier=name, outcome="timeout").inc()
                logger.warning("Organization fetch tier %s timed out after %.1fs", name, timeout)
                continue
            except Exception as exc:
                ORG_FETCH_TIER_TOTAL.labels(tier=name, outcome="error").inc()
                logger.warning("Organization fetch tier %s failed: %s", name, exc)
                continue

            ORG_FETCH_TIER_TOTAL.labels(tier=name, outcome="ok").inc()
            logger.info(
                "Fetched %d organizations for user_id=%s via %s", len(result), user_id, name
            )
            return result

        logger.warning("All organization fetch attempts failed for user_id=%s", user_id)
        return []

    async def _all_organizations_with_default_role(self) -> list[OrganizationSummary]:
        organizations = await self._backend.list_organizations(limit=self._page_size)
        return [
            OrganizationSummary(id=o.id, name=o.name, slug=o.slug, role=self._default_role)
            for o in organizations
        ]

    async def fetch_organizations_bounded(
        self, user_id: UUID, timeout: float
    ) -> list[OrganizationSummary]:
        """Run the whole chain under one overall deadline; empty on expiry."""
        try:
            return await asyncio.wait_for(self.fetch_user_organizations(user_id), timeout=timeout)
        except TimeoutError:
            logger.warning(
                "Organizations fetch timed out after %.1fs, returning empty list", timeout
            )
            return []

    async def fetch_user_profile(self, user_id: UUID) -> ProfileResult:
        """Load the user's profile and organizations.

        When the profile query fails, a minimal viewer profile is synthesized
        from the bare user row and organizations get a shorter deadline.

        Raises:
            ServiceUnavailableError: Neither the profile nor the fallback loaded.
        """
        try:
            profile = await asyncio.wait_for(
                self._backend.get_user_profile(user_id), timeout=self._timeouts.profile
            )
        except Exception as exc:
            logger.warning("Profile fetch failed for user_id=%s: %s", user_id, exc)
            profile = None

        if profile is not None:
            organizations = await self.fetch_organizations_bounded(
                user_id, self._timeouts.organizations_with_profile
            )
            return ProfileResult(profile=profile, organizations=organizations)

        fallback = await self._fallback_profile(user_id)
        organizations = await self.fetch_organizations_bounded(
            user_id, self._timeouts.organizations_on_fallback
        )
        logger.info("Using fallback profile for user_id=%s", user_id)
        return ProfileResult(profile=fallback, organizations=organizations, fallback=True)

    async def _fallback_profile(self, user_id: UUID) -> UserProfile:
        try:
            details = await asyncio.wait_for(
                self._backend.get_user_details(user_id),
                timeout=self._timeouts.profile_fallback,
            )
        except Exception as exc:
            logger.error("Fallback profile fetch failed for user_id=%s: %s", user_id, exc)
            details = None

        if details is None:
            raise ServiceUnavailableError(
                "database",
                "Unable to load user profile. Please try refreshing the page.",
            )

        return UserProfile(
            id=details.id,
            email=details.email,
            full_name=details.full_name or details.email.split("@")[0] or "User",
            role_id="viewer",
            status="active",
        )

    async def check_superadmin_access(self, user_id: UUID) -> bool:
        """Whether the user has an active superadmin membership. Never raises."""
        try:
            return await asyncio.wait_for(
                self._backend.has_active_role(user_id, SUPERADMIN_ROLE),
                timeout=self._timeouts.superadmin_check,
            )
        except Exception as exc:
            logger.warning("Superadmin check failed for user_id=%s: %s", user_id, exc)
            return False

    async def fetch_organization_members(self, context: OrganizationContext) -> list[Membership]:
        """List the members of the context's organization.

        The read runs through the context's retry wrapper, so a missing or
        stale binding is recovered once from the cached user.

        Raises:
            ContextNotSetError: No context and none recoverable.
            ErpError: The normalized failure of the last attempt.
        """

        async def read() -> list[Membership]:
            organization_id = await context.ensure_context(recover=False)
            return await self._backend.list_organization_members(organization_id)

        return await context.run(read)
