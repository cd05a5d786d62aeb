"""Root conftest - shared fixtures for all test layers.

Markers:
    @pytest.mark.unit       - No external deps
    @pytest.mark.smoke      - Fast subset
"""

from __future__ import annotations

from uuid import UUID, uuid4

import pytest

from src.infra.org.context import OrganizationContext
from src.shared.types import Organization
from tests.fakes import FakeLocalState, FakeOrganizationBackend


@pytest.fixture
def sample_user_id() -> UUID:
    return uuid4()


@pytest.fixture
def backend() -> FakeOrganizationBackend:
    return FakeOrganizationBackend()


@pytest.fixture
def local_state() -> FakeLocalState:
    return FakeLocalState()


@pytest.fixture
def member_org(backend: FakeOrganizationBackend, sample_user_id: UUID) -> Organization:
    """An organization the sample user is an active member of."""
    org = backend.add_organization("Green Valley Orchards")
    backend.add_membership(sample_user_id, org.id)
    return org


@pytest.fixture
def org_context(
    backend: FakeOrganizationBackend,
    local_state: FakeLocalState,
    sample_user_id: UUID,
) -> OrganizationContext:
    return OrganizationContext(
        backend=backend,
        local_state=local_state,
        user_id=sample_user_id,
        bind_timeout=0.5,
    )
