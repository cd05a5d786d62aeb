"""Attach the caller's OrganizationContext to the request.

After JWT authentication has set request.state.user_id, this middleware
looks up the user's context in the SessionRegistry and exposes it as
request.state.org_context. It does not require the context to be set;
scoped handlers go through OrganizationContext.run(), which guards.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from fastapi import Request
    from fastapi.responses import Response

    from src.infra.org.registry import SessionRegistry


class OrgContextMiddleware:
    """PostAuthMiddleware resolving request.state.org_context."""

    def __init__(self, *, registry: SessionRegistry) -> None:
        self._registry = registry

    async def __call__(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        user_id = request.state.user_id
        context = self._registry.get(user_id)
        context.authenticate(user_id)
        request.state.org_context = context
        return await call_next(request)
