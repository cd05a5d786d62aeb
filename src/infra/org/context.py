"""Organization context: the session's current tenant binding.

One OrganizationContext exists per authenticated client session. It owns:
  - the current organization id and the "context set" flag
  - the setter (membership check + set_session_organization bind)
  - the guard (one-shot recovery from the locally cached user object)
  - the retry wrapper (re-bind once on context-related failures)

State machine:
    UNSET --set(valid member, bind ok)--> SET(org)
    SET(a) --set(b)--> UNSET --bind ok--> SET(b)
    SET --bind failure | clear() | sign_out()--> UNSET

A rejected membership check never touches the state.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum, unique
from typing import TYPE_CHECKING, TypeVar

from src.infra.org.errors import classify_error, normalize_error
from src.infra.org.metrics import CONTEXT_BIND_TOTAL, CONTEXT_RETRY_TOTAL
from src.shared.errors import (
    RECOVERABLE_KINDS,
    AccessDeniedError,
    AuthenticationError,
    ContextNotSetError,
    ErpError,
    PortTimeoutError,
)
from src.shared.logging.error_handler import log_structured_error
from src.shared.types import StoredUser

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from uuid import UUID

    from src.ports.local_state import LocalStatePort
    from src.ports.organization_backend import OrganizationBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Key of the serialized current-user object in local state.
STORED_USER_KEY = "user"


@unique
class ContextState(Enum):
    UNSET = "unset"
    SET = "set"


class OrganizationContext:
    """Per-session organization context.

    Setter calls, clearing included, are serialized on an asyncio.Lock, so
    concurrent switches resolve to the last caller and a half-applied state
    is never visible.
    """

    def __init__(
        self,
        *,
        backend: OrganizationBackend,
        local_state: LocalStatePort | None = None,
        user_id: UUID | None = None,
        bind_timeout: float = 5.0,
    ) -> None:
        self._backend = backend
        self._local_state = local_state
        self._user_id = user_id
        self._bind_timeout = bind_timeout
        self._organization_id: UUID | None = None
        self._context_set = False
        self._lock = asyncio.Lock()

    # -- Identity --

    @property
    def user_id(self) -> UUID | None:
        return self._user_id

    def authenticate(self, user_id: UUID) -> None:
        """Attach the authenticated user. A different user starts unset."""
        if self._user_id != user_id:
            self._reset()
        self._user_id = user_id

    def sign_out(self) -> None:
        """Forget the user and clear the context (logout)."""
        self.clear()
        self._user_id = None

    # -- Store --

    @property
    def state(self) -> ContextState:
        return ContextState.SET if self.is_context_set() else ContextState.UNSET

    def get_current_organization(self) -> UUID | None:
        return self._organization_id

    def is_context_set(self) -> bool:
        return self._context_set and self._organization_id is not None

    def clear(self) -> None:
        self._reset()
        CONTEXT_BIND_TOTAL.labels(outcome="cleared").inc()
        logger.info("Organization context cleared: user_id=%s", self._user_id)

    def _reset(self) -> None:
        self._organization_id = None
        self._context_set = False

    # -- Setter --

    async def set_current_organization(self, organization_id: UUID | None) -> None:
        """Bind the session to an organization, or clear it with None.

        Raises:
            AuthenticationError: No user is attached to this session.
            AccessDeniedError: No active membership; state is left untouched.
            PortTimeoutError: The bind procedure did not answer in time.
            ErpError: Any other backend failure, normalized; state is unset.
        """
        async with self._lock:
            if organization_id is None:
                self.clear()
            else:
                await self._bind(organization_id)

    async def _bind(self, organization_id: UUID) -> None:
        user_id = self._user_id
        if user_id is None:
            raise AuthenticationError("User not authenticated")

        logger.info(
            "Setting organization context: user_id=%s organization_id=%s",
            user_id,
            organization_id,
        )

        try:
            membership = await self._backend.find_active_membership(user_id, organization_id)
        except Exception as exc:
            self._reset()
            CONTEXT_BIND_TOTAL.labels(outcome="failed").inc()
            logger.warning("Organization access validation failed: %s", exc)
            raise normalize_error(exc) from exc

        if membership is None or not membership.is_active:
            CONTEXT_BIND_TOTAL.labels(outcome="denied").inc()
            logger.warning(
                "User has no active membership: user_id=%s organization_id=%s",
                user_id,
                organization_id,
            )
            raise AccessDeniedError(organization_id=str(organization_id))

        # Switching is clear-then-set: a failed bind must not leave the old org.
        self._reset()
        try:
            await asyncio.wait_for(
                self._backend.bind_session_organization(organization_id),
                timeout=self._bind_timeout,
            )
        except TimeoutError as exc:
            CONTEXT_BIND_TOTAL.labels(outcome="failed").inc()
            logger.error("Binding organization %s timed out", organization_id)
            raise PortTimeoutError(
                port_name="set_session_organization",
                timeout_ms=int(self._bind_timeout * 1000),
            ) from exc
        except Exception as exc:
            CONTEXT_BIND_TOTAL.labels(outcome="failed").inc()
            logger.error("Failed to bind organization %s: %s", organization_id, exc)
            raise normalize_error(exc) from exc

        self._organization_id = organization_id
        self._context_set = True
        CONTEXT_BIND_TOTAL.labels(outcome="bound").inc()
        logger.info("Organization context set: organization_id=%s", organization_id)

    async def validate_access(self, organization_id: UUID) -> bool:
        """Whether the current user is an active member. Never raises."""
        if self._user_id is None:
            return False
        try:
            membership = await self._backend.find_active_membership(
                self._user_id, organization_id
            )
        except Exception as exc:
            logger.warning("Error validating organization access: %s", exc)
            return False
        return membership is not None and membership.is_active

    # -- Guard --

    async def ensure_context(self, *, recover: bool = True) -> UUID:
        """Return the bound organization id or raise ContextNotSetError.

        With recover=True a missing context is re-established once from the
        cached user object before giving up.
        """
        if self.is_context_set():
            return self._organization_id  # type: ignore[return-value]

        if recover:
            cached = await self.cached_organization_id()
            if cached is not None:
                logger.info("Attempting to recover organization context from local state")
                try:
                    await self.set_current_organization(cached)
                except ErpError as exc:
                    logger.warning("Failed to recover organization context: %s", exc)
                else:
                    return cached

        raise ContextNotSetError()

    # -- Retry wrapper --

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:  # noqa: UP047
        """Run an organization-scoped operation with one context recovery.

        The operation is awaited at most twice. A second attempt happens only
        when the first failure is context-related and this call has not yet
        spent its recovery (the guard spends it when it has to re-bind).

        Raises:
            ContextNotSetError: No context and none recoverable.
            ErpError: The normalized failure of the last attempt.
        """
        guard_recovered = not self.is_context_set()
        await self.ensure_context()

        try:
            return await operation()
        except Exception as exc:
            kind = classify_error(exc)
            if kind not in RECOVERABLE_KINDS:
                raise self._surface(exc) from exc
            if guard_recovered:
                CONTEXT_RETRY_TOTAL.labels(outcome="skipped").inc()
                raise self._surface(exc) from exc
            if not await self._refresh_from_cache():
                raise self._surface(exc) from exc

        try:
            return await operation()
        except Exception as retry_exc:
            logger.warning("Operation failed after context refresh: %s", retry_exc)
            raise self._surface(retry_exc) from retry_exc

    async def _refresh_from_cache(self) -> bool:
        cached = await self.cached_organization_id()
        if cached is None:
            CONTEXT_RETRY_TOTAL.labels(outcome="skipped").inc()
            return False

        logger.info("Attempting to refresh organization context: organization_id=%s", cached)
        try:
            await self.set_current_organization(cached)
        except ErpError as exc:
            CONTEXT_RETRY_TOTAL.labels(outcome="failed").inc()
            logger.warning("Failed to refresh organization context: %s", exc)
            return False

        CONTEXT_RETRY_TOTAL.labels(outcome="recovered").inc()
        return True

    def _surface(self, exc: BaseException) -> ErpError:
        normalized = normalize_error(exc)
        log_structured_error(
            logger,
            exc,
            error_code=normalized.code,
            organization_id=self._organization_id,
            user_id=self._user_id,
            level=logging.WARNING,
        )
        return normalized

    # -- Local state --

    async def load_stored_user(self) -> StoredUser | None:
        """Read the cached user object; unreadable or malformed data is None."""
        if self._local_state is None:
            return None
        try:
            raw = await self._local_state.get(STORED_USER_KEY)
        except Exception as exc:
            logger.warning("Local state read failed: %s", exc)
            return None
        if not raw:
            return None
        try:
            return StoredUser.from_dict(raw)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Failed to parse stored user data: %s", exc)
            return None

    async def save_stored_user(self, user: StoredUser) -> None:
        if self._local_state is not None:
            await self._local_state.put(STORED_USER_KEY, user.to_dict())

    async def forget_stored_user(self) -> None:
        if self._local_state is not None:
            await self._local_state.delete(STORED_USER_KEY)

    async def cached_organization_id(self) -> UUID | None:
        stored = await self.load_stored_user()
        if stored is None or stored.current_organization is None:
            return None
        return stored.current_organization.id

    # -- Startup --

    async def initialize(self) -> UUID | None:
        """Bind the context on app load. Never raises.

        Prefers the cached current organization; otherwise the user's first
        active organization. Returns the bound id, or None.
        """
        if self._user_id is None:
            logger.info("User not authenticated, skipping organization context initialization")
            return None

        try:
            cached = await self.cached_organization_id()
            if cached is not None:
                logger.info("Initializing organization context from local state")
                await self.set_current_organization(cached)
                return cached

            organizations = await self._backend.list_user_organizations(
                self._user_id, active_only=True
            )
            if organizations:
                logger.info("Setting default organization context")
                await self.set_current_organization(organizations[0].id)
                return organizations[0].id

            logger.warning("User has no available organizations: user_id=%s", self._user_id)
        except Exception as exc:
            logger.error("Failed to initialize organization context: %s", exc)
        return None
