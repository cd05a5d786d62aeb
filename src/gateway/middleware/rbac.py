"""Superadmin gate for the admin console.

- Admin path + no active superadmin membership -> 403
- Admin path + superadmin -> allowed
- Regular paths -> no check

Superadmin is a membership role (user_organizations.role = 'superadmin'),
not a JWT claim, so it is re-checked against the backend on every admin
request and revocation takes effect immediately.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi.responses import JSONResponse, Response

from src.shared.errors import AuthorizationError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from uuid import UUID

    from fastapi import Request

logger = logging.getLogger(__name__)

SUPERADMIN_PERMISSION = "superadmin:access"


class RBACMiddleware:
    """PostAuthMiddleware enforcing superadmin access on admin paths."""

    def __init__(
        self,
        *,
        superadmin_check: Callable[[UUID], Awaitable[bool]],
        admin_path_prefix: str = "/api/v1/admin/",
    ) -> None:
        self._superadmin_check = superadmin_check
        self._admin_prefix = admin_path_prefix

    async def __call__(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        path = request.url.path
        user_id: UUID = request.state.user_id

        try:
            await self.check_access(path=path, user_id=user_id)
        except AuthorizationError as exc:
            logger.warning("Admin access denied: user_id=%s path=%s", user_id, path)
            return JSONResponse(
                status_code=403,
                content={"error": exc.code, "message": "Superadmin access required"},
            )

        return await call_next(request)

    async def check_access(self, *, path: str, user_id: UUID) -> None:
        """Raises AuthorizationError if an admin path is requested without superadmin."""
        if not path.startswith(self._admin_prefix):
            return
        if not await self._superadmin_check(user_id):
            raise AuthorizationError(SUPERADMIN_PERMISSION)
