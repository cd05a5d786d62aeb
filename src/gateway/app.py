"""FastAPI application factory.

- User API:  /api/v1/*  (JWT-authenticated)
- Admin API: /api/v1/admin/*  (superadmin, enforced post-auth)
- healthz, metrics and login: exempt from auth

Errors leave the app as {"error": <code>, "message": <text>, "kind": <kind>}.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable
from functools import partial
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.routing import Match

from src.gateway.middleware.auth import decode_token
from src.shared.errors import (
    AccessDeniedError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ContextNotSetError,
    ErpError,
    NotFoundError,
    PortTimeoutError,
    PortUnavailableError,
    ServiceUnavailableError,
    SessionExpiredError,
    ValidationError,
)
from src.shared.logging.error_handler import log_structured_error

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager

logger = logging.getLogger(__name__)

_EXEMPT_PATHS = frozenset(
    {
        "/healthz",
        "/metrics",
        "/docs",
        "/openapi.json",
        "/redoc",
        "/api/v1/auth/login",
    }
)

# Looked up along the exception's MRO, so subclasses win over ErpError.
_ERROR_STATUS: dict[type[ErpError], int] = {
    AuthenticationError: 401,
    SessionExpiredError: 401,
    AccessDeniedError: 403,
    AuthorizationError: 403,
    NotFoundError: 404,
    ConflictError: 409,
    ValidationError: 422,
    ContextNotSetError: 428,
    PortTimeoutError: 503,
    PortUnavailableError: 503,
    ServiceUnavailableError: 503,
    ErpError: 500,
}

# Type alias for post-auth middleware callables
PostAuthMiddleware = Callable[
    [Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]
]


def _status_for(exc: ErpError) -> int:
    for cls in type(exc).__mro__:
        if cls in _ERROR_STATUS:
            return _ERROR_STATUS[cls]
    return 500


def _error_body(exc: ErpError) -> dict[str, str]:
    return {"error": exc.code, "message": str(exc), "kind": exc.kind.value}


def create_app(
    *,
    jwt_secret: str | None = None,
    cors_origins: list[str] | None = None,
    post_auth_middlewares: list[PostAuthMiddleware] | None = None,
    lifespan: Callable[[FastAPI], AbstractAsyncContextManager[None]] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        jwt_secret: JWT signing secret. Falls back to JWT_SECRET_KEY env var.
        cors_origins: Allowed CORS origins. Falls back to CORS_ORIGINS env var.
        post_auth_middlewares: Middleware callables that run after JWT auth,
            in order. Each has signature (request, call_next) -> Response.
        lifespan: Async context manager factory for startup/shutdown lifecycle.
    """
    secret = jwt_secret or os.environ.get("JWT_SECRET_KEY", "")
    if not secret:
        msg = "JWT_SECRET_KEY must be provided via argument or environment variable"
        raise ValueError(msg)

    origins = cors_origins or [
        o.strip() for o in os.environ.get("CORS_ORIGINS", "").split(",") if o.strip()
    ]
    _post_auth = post_auth_middlewares or []

    app = FastAPI(
        title="Fruit ERP Organization API",
        description="Multi-tenant organization context for the fruit trading ERP",
        version="0.1.0",
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.jwt_secret = secret

    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
            allow_headers=["Authorization", "Content-Type"],
        )

    # -- Error handlers --

    async def _erp_error(request: Request, exc: ErpError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            log_structured_error(
                logger,
                exc,
                user_id=getattr(request.state, "user_id", None),
                context={"path": request.url.path},
            )
        return JSONResponse(status_code=status, content=_error_body(exc))

    app.add_exception_handler(ErpError, _erp_error)  # type: ignore[arg-type]

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        code_map = {
            404: "NOT_FOUND",
            405: "METHOD_NOT_ALLOWED",
        }
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": code_map.get(exc.status_code, "HTTP_ERROR"),
                "message": exc.detail or f"HTTP {exc.status_code}",
            },
        )

    # -- Auth middleware (ASGI) --

    def _routed(request: Request) -> bool:
        return any(route.matches(request.scope)[0] != Match.NONE for route in app.routes)

    @app.middleware("http")
    async def jwt_auth_middleware(request: Request, call_next: Any) -> Response:
        # Preflight goes to CORSMiddleware; unrouted paths fall through to 404.
        if request.method == "OPTIONS" or request.url.path in _EXEMPT_PATHS:
            return await call_next(request)
        if not _routed(request):
            return await call_next(request)

        try:
            payload = decode_token(_bearer_token(request), secret=secret)
        except AuthenticationError as exc:
            return JSONResponse(status_code=401, content=_error_body(exc))

        request.state.user_id = payload.user_id
        request.state.role = payload.role

        try:
            return await _chain(_post_auth, call_next)(request)
        except ErpError as exc:
            return await _erp_error(request, exc)

    # -- Exempt routes --

    @app.get("/healthz", tags=["system"])
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/metrics", tags=["system"], include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


def _bearer_token(request: Request) -> str:
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme != "Bearer" or not token:
        raise AuthenticationError("Missing or malformed Authorization header")
    return token


def _chain(
    middlewares: list[PostAuthMiddleware],
    endpoint: Callable[[Request], Awaitable[Response]],
) -> Callable[[Request], Awaitable[Response]]:
    """Compose post-auth middlewares so the first one runs outermost."""
    handler = endpoint
    for mw in reversed(middlewares):
        handler = partial(mw, call_next=handler)
    return handler
