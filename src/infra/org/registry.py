"""Per-user organization contexts for a multi-user server process.

The web client keeps one context per browser tab. Behind the gateway the
same process serves many users, so every user id gets its own
OrganizationContext (and its own local-state namespace) from here.

The registry holds at most max_sessions contexts and evicts the least
recently used one. An evicted user's next request starts unset, and the
guard re-binds from the user's local state.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import TYPE_CHECKING

from src.infra.org.context import OrganizationContext

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from src.ports.local_state import LocalStatePort
    from src.ports.organization_backend import OrganizationBackend

logger = logging.getLogger(__name__)

DEFAULT_MAX_SESSIONS = 10_000


class SessionRegistry:
    """Creates and caches one OrganizationContext per user."""

    def __init__(
        self,
        *,
        backend: OrganizationBackend,
        local_state_factory: Callable[[UUID], LocalStatePort] | None = None,
        bind_timeout: float = 5.0,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
    ) -> None:
        if max_sessions < 1:
            msg = f"max_sessions must be positive, got {max_sessions}"
            raise ValueError(msg)
        self._backend = backend
        self._local_state_factory = local_state_factory
        self._bind_timeout = bind_timeout
        self._max_sessions = max_sessions
        self._contexts: OrderedDict[UUID, OrganizationContext] = OrderedDict()

    def get(self, user_id: UUID) -> OrganizationContext:
        """Return the user's context, creating it (unset) on first use."""
        context = self._contexts.get(user_id)
        if context is not None:
            self._contexts.move_to_end(user_id)
            return context

        local_state = self._local_state_factory(user_id) if self._local_state_factory else None
        context = OrganizationContext(
            backend=self._backend,
            local_state=local_state,
            user_id=user_id,
            bind_timeout=self._bind_timeout,
        )
        self._contexts[user_id] = context
        logger.debug("Created organization context for user_id=%s", user_id)

        while len(self._contexts) > self._max_sessions:
            evicted, _ = self._contexts.popitem(last=False)
            logger.debug("Evicted organization context for user_id=%s", evicted)
        return context

    def peek(self, user_id: UUID) -> OrganizationContext | None:
        return self._contexts.get(user_id)

    def discard(self, user_id: UUID) -> None:
        """Sign the user's context out and drop it."""
        context = self._contexts.pop(user_id, None)
        if context is not None:
            context.sign_out()

    def __len__(self) -> int:
        return len(self._contexts)
