# ruff: noqa: S105, S106  -- test fixtures require hardcoded secret values
"""Gateway fixtures: the full app wired to in-memory fakes."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

import bcrypt
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.gateway.api.admin.organizations import create_superadmin_router
from src.gateway.api.auth import create_auth_router
from src.gateway.api.organizations import create_organization_router
from src.gateway.app import create_app
from src.gateway.middleware.auth import encode_token
from src.gateway.middleware.org_context import OrgContextMiddleware
from src.gateway.middleware.rbac import RBACMiddleware
from src.infra.auth.rbac import RoleResolver
from src.infra.auth.session import AuthSession
from src.infra.org.admin import SuperAdminService
from src.infra.org.fetch import FetchTimeouts, OrganizationFetcher
from src.infra.org.registry import SessionRegistry
from src.shared.types import Organization, UserProfile
from tests.fakes import FakeLocalState, FakeOrganizationBackend

JWT_SECRET = "test-secret-key-for-unit-tests-only"
PASSWORD = "pear-and-plum"
PASSWORD_HASH = bcrypt.hashpw(PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()


@dataclass
class Gateway:
    app: FastAPI
    client: TestClient
    backend: FakeOrganizationBackend
    registry: SessionRegistry
    stores: dict[UUID, FakeLocalState]

    password: str = PASSWORD

    def add_member(self, email: str, *org_names: str) -> tuple[UserProfile, list[Organization]]:
        """A user with PASSWORD who is an active member of each named organization."""
        profile = self.backend.add_user(email, password_hash=PASSWORD_HASH)
        orgs = [self.backend.add_organization(name) for name in org_names]
        for org in orgs:
            self.backend.add_membership(profile.id, org.id)
        return profile, orgs

    def auth_headers(self, user_id: UUID, role: str = "staff") -> dict[str, str]:
        token = encode_token(user_id=user_id, secret=JWT_SECRET, role=role)
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def gateway() -> Gateway:
    backend = FakeOrganizationBackend()
    stores: dict[UUID, FakeLocalState] = {}
    fetcher = OrganizationFetcher(
        backend,
        timeouts=FetchTimeouts(scoped_join=0.5, unscoped_join=0.5, all_organizations=0.5),
    )
    registry = SessionRegistry(
        backend=backend,
        local_state_factory=lambda user_id: stores.setdefault(user_id, FakeLocalState()),
        bind_timeout=0.5,
    )
    auth_session = AuthSession(backend=backend, fetcher=fetcher, registry=registry)

    app = create_app(
        jwt_secret=JWT_SECRET,
        post_auth_middlewares=[
            RBACMiddleware(superadmin_check=fetcher.check_superadmin_access),
            OrgContextMiddleware(registry=registry),
        ],
    )
    app.include_router(create_auth_router(auth_session=auth_session))
    app.include_router(
        create_organization_router(
            fetcher=fetcher,
            auth_session=auth_session,
            role_resolver=RoleResolver(backend),
        )
    )
    app.include_router(create_superadmin_router(service=SuperAdminService(backend)))

    return Gateway(
        app=app,
        client=TestClient(app),
        backend=backend,
        registry=registry,
        stores=stores,
    )
