"""Tests for AuthSession login / logout / organization switching."""

from __future__ import annotations

from uuid import UUID, uuid4

import bcrypt
import pytest

from src.infra.auth.session import AuthSession, hash_password, verify_password
from src.infra.org.context import STORED_USER_KEY, ContextState
from src.infra.org.fetch import FetchTimeouts, OrganizationFetcher
from src.infra.org.registry import SessionRegistry
from src.shared.errors import (
    AccessDeniedError,
    AuthenticationError,
    BackendError,
    ContextNotSetError,
    ErpError,
    ErrorKind,
)
from src.shared.types import StoredUser, UserProfile
from tests.fakes import FakeLocalState, FakeOrganizationBackend

_PASSWORD = "correct horse battery staple"
_HASH = bcrypt.hashpw(_PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()
_FAST = FetchTimeouts(scoped_join=0.2, unscoped_join=0.2, all_organizations=0.2)


class _Harness:
    def __init__(self, backend: FakeOrganizationBackend) -> None:
        self.backend = backend
        self.stores: dict[UUID, FakeLocalState] = {}
        self.registry = SessionRegistry(
            backend=backend, local_state_factory=self._store, bind_timeout=0.5
        )
        self.auth = AuthSession(
            backend=backend,
            fetcher=OrganizationFetcher(backend, timeouts=_FAST),
            registry=self.registry,
        )

    def _store(self, user_id: UUID) -> FakeLocalState:
        return self.stores.setdefault(user_id, FakeLocalState())


@pytest.fixture
def harness(backend: FakeOrganizationBackend) -> _Harness:
    return _Harness(backend)


@pytest.fixture
def member(backend: FakeOrganizationBackend) -> UserProfile:
    profile = backend.add_user("buyer@example.com", password_hash=_HASH)
    for name in ("Apple Barn", "Berry Fields"):
        org = backend.add_organization(name)
        backend.add_membership(profile.id, org.id)
    return profile


@pytest.mark.unit
class TestPasswords:
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("s3cret")
        assert hashed != "s3cret"
        assert verify_password("s3cret", hashed) is True
        assert verify_password("wrong", hashed) is False

    def test_malformed_hash_is_rejected(self) -> None:
        assert verify_password("s3cret", "not-a-bcrypt-hash") is False


@pytest.mark.unit
class TestLogin:
    @pytest.mark.asyncio
    async def test_login_binds_first_organization(
        self, harness: _Harness, member: UserProfile
    ) -> None:
        user = await harness.auth.login("buyer@example.com", _PASSWORD)

        assert user.id == member.id
        assert user.role == "staff"
        assert len(user.organizations) == 2
        assert user.current_organization == user.organizations[0]

        context = harness.registry.get(member.id)
        assert context.get_current_organization() == user.organizations[0].id
        assert harness.stores[member.id].data[STORED_USER_KEY]["currentOrganization"]["id"] == str(
            user.organizations[0].id
        )
        assert harness.backend.logins == [member.id]

    @pytest.mark.asyncio
    async def test_wrong_password(self, harness: _Harness, member: UserProfile) -> None:
        with pytest.raises(AuthenticationError, match="Invalid email or password"):
            await harness.auth.login("buyer@example.com", "nope")
        assert len(harness.registry) == 0

    @pytest.mark.asyncio
    async def test_unknown_email(self, harness: _Harness) -> None:
        with pytest.raises(AuthenticationError, match="Invalid email or password"):
            await harness.auth.login("ghost@example.com", _PASSWORD)

    @pytest.mark.asyncio
    async def test_user_without_password(
        self, harness: _Harness, backend: FakeOrganizationBackend
    ) -> None:
        backend.add_user("sso@example.com")
        with pytest.raises(AuthenticationError):
            await harness.auth.login("sso@example.com", _PASSWORD)

    @pytest.mark.asyncio
    async def test_inactive_user(
        self, harness: _Harness, backend: FakeOrganizationBackend
    ) -> None:
        backend.add_user("left@example.com", status="inactive", password_hash=_HASH)
        with pytest.raises(AuthenticationError, match="inactive"):
            await harness.auth.login("left@example.com", _PASSWORD)

    @pytest.mark.asyncio
    async def test_no_organizations(
        self, harness: _Harness, backend: FakeOrganizationBackend
    ) -> None:
        backend.add_user("lonely@example.com", password_hash=_HASH)
        with pytest.raises(AccessDeniedError, match="no access to any organizations"):
            await harness.auth.login("lonely@example.com", _PASSWORD)

    @pytest.mark.asyncio
    async def test_bind_failure_does_not_fail_login(
        self, harness: _Harness, backend: FakeOrganizationBackend, member: UserProfile
    ) -> None:
        backend.bind_errors = [BackendError("rls", kind=ErrorKind.RLS_DENIED)]

        user = await harness.auth.login("buyer@example.com", _PASSWORD)

        context = harness.registry.get(member.id)
        assert context.state is ContextState.UNSET
        # The guard recovers from the cached current organization.
        assert await context.ensure_context() == user.organizations[0].id

    @pytest.mark.asyncio
    async def test_record_login_failure_ignored(
        self, harness: _Harness, backend: FakeOrganizationBackend, member: UserProfile
    ) -> None:
        backend.record_login_error = ConnectionError("db down")
        user = await harness.auth.login("buyer@example.com", _PASSWORD)
        assert user.id == member.id


@pytest.mark.unit
class TestSwitchOrganization:
    @pytest.mark.asyncio
    async def test_switch_updates_context_and_cache(
        self, harness: _Harness, member: UserProfile
    ) -> None:
        user = await harness.auth.login("buyer@example.com", _PASSWORD)
        target = user.organizations[1]

        updated = await harness.auth.switch_organization(member.id, target.id)

        assert updated.current_organization == target
        assert harness.registry.get(member.id).get_current_organization() == target.id
        stored = StoredUser.from_dict(harness.stores[member.id].data[STORED_USER_KEY])
        assert stored.current_organization == target

    @pytest.mark.asyncio
    async def test_switch_to_foreign_organization_denied(
        self, harness: _Harness, member: UserProfile
    ) -> None:
        user = await harness.auth.login("buyer@example.com", _PASSWORD)

        with pytest.raises(AccessDeniedError):
            await harness.auth.switch_organization(member.id, uuid4())

        context = harness.registry.get(member.id)
        assert context.get_current_organization() == user.organizations[0].id

    @pytest.mark.asyncio
    async def test_switch_without_login(self, harness: _Harness) -> None:
        with pytest.raises(AuthenticationError, match="not authenticated"):
            await harness.auth.switch_organization(uuid4(), uuid4())

    @pytest.mark.asyncio
    async def test_failed_bind_keeps_cached_organization(
        self, harness: _Harness, backend: FakeOrganizationBackend, member: UserProfile
    ) -> None:
        user = await harness.auth.login("buyer@example.com", _PASSWORD)
        backend.bind_errors = [BackendError("boom", kind=ErrorKind.UNKNOWN)]

        with pytest.raises(ErpError):
            await harness.auth.switch_organization(member.id, user.organizations[1].id)

        context = harness.registry.get(member.id)
        assert context.state is ContextState.UNSET
        assert await context.cached_organization_id() == user.organizations[0].id


@pytest.mark.unit
class TestClearOrganization:
    @pytest.mark.asyncio
    async def test_clear_forgets_cached_organization(
        self, harness: _Harness, member: UserProfile
    ) -> None:
        user = await harness.auth.login("buyer@example.com", _PASSWORD)

        await harness.auth.clear_organization(member.id)

        context = harness.registry.get(member.id)
        assert context.state is ContextState.UNSET
        stored = StoredUser.from_dict(harness.stores[member.id].data[STORED_USER_KEY])
        assert stored.current_organization is None
        assert stored.organizations == user.organizations
        with pytest.raises(ContextNotSetError):
            await context.ensure_context()

    @pytest.mark.asyncio
    async def test_clear_without_login(self, harness: _Harness) -> None:
        user_id = uuid4()
        await harness.auth.clear_organization(user_id)
        assert harness.registry.get(user_id).state is ContextState.UNSET


@pytest.mark.unit
class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_clears_everything(self, harness: _Harness, member: UserProfile) -> None:
        await harness.auth.login("buyer@example.com", _PASSWORD)
        context = harness.registry.get(member.id)

        await harness.auth.logout(member.id)

        assert context.state is ContextState.UNSET
        assert STORED_USER_KEY not in harness.stores[member.id].data
        assert harness.registry.peek(member.id) is None

    @pytest.mark.asyncio
    async def test_logout_unknown_user(self, harness: _Harness) -> None:
        await harness.auth.logout(uuid4())
