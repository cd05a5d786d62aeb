"""Tests for SessionRegistry per-user contexts."""

from __future__ import annotations

from uuid import UUID, uuid4

import pytest

from src.infra.org.context import ContextState
from src.infra.org.registry import SessionRegistry
from src.shared.types import Organization, OrganizationSummary, StoredUser
from tests.fakes import FakeLocalState, FakeOrganizationBackend


@pytest.mark.unit
class TestSessionRegistry:
    def test_same_user_same_context(self, backend: FakeOrganizationBackend) -> None:
        registry = SessionRegistry(backend=backend)
        user_id = uuid4()

        first = registry.get(user_id)

        assert registry.get(user_id) is first
        assert first.user_id == user_id
        assert first.state is ContextState.UNSET
        assert len(registry) == 1

    def test_users_isolated(self, backend: FakeOrganizationBackend) -> None:
        registry = SessionRegistry(backend=backend)
        assert registry.get(uuid4()) is not registry.get(uuid4())
        assert len(registry) == 2

    def test_local_state_per_user(self, backend: FakeOrganizationBackend) -> None:
        created: dict[UUID, FakeLocalState] = {}

        def factory(user_id: UUID) -> FakeLocalState:
            created[user_id] = FakeLocalState()
            return created[user_id]

        registry = SessionRegistry(backend=backend, local_state_factory=factory)
        user_id = uuid4()
        registry.get(user_id)
        registry.get(user_id)

        assert list(created) == [user_id]

    def test_peek_does_not_create(self, backend: FakeOrganizationBackend) -> None:
        registry = SessionRegistry(backend=backend)
        assert registry.peek(uuid4()) is None
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_discard_signs_out(
        self,
        backend: FakeOrganizationBackend,
        sample_user_id: UUID,
        member_org: Organization,
    ) -> None:
        registry = SessionRegistry(backend=backend)
        context = registry.get(sample_user_id)
        await context.set_current_organization(member_org.id)

        registry.discard(sample_user_id)

        assert context.state is ContextState.UNSET
        assert context.user_id is None
        assert registry.peek(sample_user_id) is None

    def test_discard_unknown_is_noop(self, backend: FakeOrganizationBackend) -> None:
        SessionRegistry(backend=backend).discard(uuid4())

    def test_least_recently_used_evicted(self, backend: FakeOrganizationBackend) -> None:
        registry = SessionRegistry(backend=backend, max_sessions=2)
        first, second, third = uuid4(), uuid4(), uuid4()
        registry.get(first)
        registry.get(second)
        registry.get(first)

        registry.get(third)

        assert len(registry) == 2
        assert registry.peek(second) is None
        assert registry.peek(first) is not None
        assert registry.peek(third) is not None

    @pytest.mark.asyncio
    async def test_evicted_user_recovers_from_local_state(
        self,
        backend: FakeOrganizationBackend,
        sample_user_id: UUID,
        member_org: Organization,
    ) -> None:
        stores: dict[UUID, FakeLocalState] = {}
        registry = SessionRegistry(
            backend=backend,
            local_state_factory=lambda user_id: stores.setdefault(user_id, FakeLocalState()),
            max_sessions=1,
        )
        context = registry.get(sample_user_id)
        summary = OrganizationSummary(
            id=member_org.id, name=member_org.name, slug=member_org.slug, role="user"
        )
        await context.save_stored_user(
            StoredUser(
                id=sample_user_id,
                name="Fruit Buyer",
                email="buyer@example.com",
                role="staff",
                current_organization=summary,
            )
        )
        await context.set_current_organization(member_org.id)

        registry.get(uuid4())
        fresh = registry.get(sample_user_id)

        assert fresh is not context
        assert fresh.state is ContextState.UNSET
        assert await fresh.ensure_context() == member_org.id

    def test_rejects_non_positive_bound(self, backend: FakeOrganizationBackend) -> None:
        with pytest.raises(ValueError, match="max_sessions"):
            SessionRegistry(backend=backend, max_sessions=0)
