"""PostgreSQL implementation of the organization ports.

Every public method opens its own session from the factory and converts
SQLAlchemy errors into BackendError (see src.infra.db.translate_db_error),
so callers only ever see ErpError subclasses. Organization-scoped reads go
through get_db_session(), which binds the organization on their session
before the query runs.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import sqlalchemy as sa
from sqlalchemy import exc as sa_exc

from src.infra.db import bind_organization, get_db_session, translate_db_error
from src.infra.models import Organization as OrganizationRow
from src.infra.models import Role as RoleRow
from src.infra.models import User as UserRow
from src.infra.models import UserDetailsView
from src.infra.models import UserOrganization as MembershipRow
from src.ports.organization_backend import OrganizationAdminBackend, OrganizationBackend
from src.shared.errors import BackendError, ConflictError, ErrorKind, NotFoundError
from src.shared.types import (
    ACTIVE,
    Membership,
    Organization,
    OrganizationSummary,
    RoleDefinition,
    UserCredentials,
    UserDetails,
    UserProfile,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

_ORGANIZATION_FIELDS = frozenset({"name", "slug", "status"})
_MEMBERSHIP_FIELDS = frozenset({"role", "status"})

_organization_session = asynccontextmanager(get_db_session)


def _organization(row: Any) -> Organization:
    return Organization(
        id=row.id,
        name=row.name,
        slug=row.slug,
        status=row.status,
        created_at=getattr(row, "created_at", None),
        updated_at=getattr(row, "updated_at", None),
    )


def _membership(row: Any, *, with_organization: bool = False) -> Membership:
    org_row = getattr(row, "organization", None) if with_organization else None
    return Membership(
        id=row.id,
        user_id=row.user_id,
        organization_id=row.organization_id,
        role=row.role,
        status=row.status,
        created_at=getattr(row, "created_at", None),
        organization=_organization(org_row) if org_row is not None else None,
    )


def _profile(row: Any) -> UserProfile:
    return UserProfile(
        id=row.id,
        email=row.email,
        full_name=row.full_name,
        role_id=row.role_id,
        status=row.status,
    )


class PgOrganizationBackend(OrganizationBackend, OrganizationAdminBackend):
    """SQLAlchemy adapter over organizations / user_organizations / users / roles."""

    def __init__(self, *, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except sa_exc.SQLAlchemyError as exc:
            raise translate_db_error(exc) from exc

    @asynccontextmanager
    async def _scoped_session(self, organization_id: UUID) -> AsyncIterator[AsyncSession]:
        try:
            async with _organization_session(
                session_factory=self._session_factory, organization_id=organization_id
            ) as session:
                yield session
        except sa_exc.SQLAlchemyError as exc:
            raise translate_db_error(exc) from exc

    # -- OrganizationBackend --

    async def find_active_membership(
        self,
        user_id: UUID,
        organization_id: UUID,
    ) -> Membership | None:
        stmt = (
            sa.select(MembershipRow)
            .where(
                MembershipRow.user_id == user_id,
                MembershipRow.organization_id == organization_id,
                MembershipRow.status == ACTIVE,
            )
            .limit(1)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()
        return _membership(row) if row is not None else None

    async def bind_session_organization(self, organization_id: UUID) -> None:
        async with self._session() as session:
            await bind_organization(session, organization_id)
            await session.commit()

    async def list_user_organizations(
        self,
        user_id: UUID,
        *,
        active_only: bool = True,
        limit: int = 50,
    ) -> list[OrganizationSummary]:
        stmt = (
            sa.select(
                MembershipRow.role,
                OrganizationRow.id,
                OrganizationRow.name,
                OrganizationRow.slug,
            )
            .join(OrganizationRow, OrganizationRow.id == MembershipRow.organization_id)
            .where(MembershipRow.user_id == user_id)
        )
        if active_only:
            stmt = stmt.where(MembershipRow.status == ACTIVE)
        stmt = stmt.order_by(MembershipRow.created_at.desc()).limit(limit)

        async with self._session() as session:
            result = await session.execute(stmt)
            rows = result.fetchall()
        return [OrganizationSummary(id=r.id, name=r.name, slug=r.slug, role=r.role) for r in rows]

    async def list_organizations(self, *, limit: int = 50) -> list[Organization]:
        stmt = sa.select(OrganizationRow).order_by(OrganizationRow.name).limit(limit)
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
        return [_organization(r) for r in rows]

    async def list_organization_members(self, organization_id: UUID) -> list[Membership]:
        stmt = (
            sa.select(MembershipRow)
            .where(MembershipRow.organization_id == organization_id)
            .order_by(MembershipRow.created_at)
        )
        async with self._scoped_session(organization_id) as session:
            rows = (await session.scalars(stmt)).all()
        return [_membership(r) for r in rows]

    async def has_active_role(self, user_id: UUID, role: str) -> bool:
        stmt = (
            sa.select(MembershipRow.id)
            .where(
                MembershipRow.user_id == user_id,
                MembershipRow.role == role,
                MembershipRow.status == ACTIVE,
            )
            .limit(1)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None

    async def get_user_profile(self, user_id: UUID) -> UserProfile | None:
        stmt = sa.select(UserRow).where(UserRow.id == user_id)
        async with self._session() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        return _profile(row) if row is not None else None

    async def find_user_by_email(self, email: str) -> UserCredentials | None:
        stmt = sa.select(UserRow).where(UserRow.email == email)
        async with self._session() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return UserCredentials(profile=_profile(row), password_hash=row.password_hash)

    async def record_login(self, user_id: UUID) -> None:
        stmt = sa.update(UserRow).where(UserRow.id == user_id).values(last_login=sa.func.now())
        async with self._session() as session:
            await session.execute(stmt)
            await session.commit()

    async def get_user_details(self, user_id: UUID) -> UserDetails | None:
        stmt = sa.select(UserDetailsView).where(UserDetailsView.id == user_id)
        async with self._session() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return UserDetails(
            id=row.id,
            email=row.email,
            full_name=row.full_name,
            role_id=row.role_id,
            role_name=row.role_name or "",
            role_description=row.role_description or "",
            permissions=frozenset(row.permissions or []),
            status=row.status,
        )

    async def list_roles(self) -> list[RoleDefinition]:
        stmt = sa.select(RoleRow).order_by(RoleRow.id)
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
        return [
            RoleDefinition(
                id=r.id,
                name=r.name,
                description=r.description,
                permissions=frozenset(r.permissions or []),
            )
            for r in rows
        ]

    # -- OrganizationAdminBackend --

    async def list_all_organizations(self) -> list[Organization]:
        stmt = sa.select(OrganizationRow).order_by(OrganizationRow.name)
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
        return [_organization(r) for r in rows]

    async def create_organization(self, *, name: str, slug: str, status: str) -> Organization:
        now = datetime.now(UTC)
        row = OrganizationRow(
            id=uuid4(), name=name, slug=slug, status=status, created_at=now, updated_at=now
        )
        try:
            async with self._session() as session:
                session.add(row)
                await session.commit()
        except BackendError as exc:
            if exc.kind is ErrorKind.CONFLICT:
                raise ConflictError(f"Organization slug already exists: {slug}") from exc
            raise
        return _organization(row)

    async def update_organization(
        self, organization_id: UUID, changes: dict[str, Any]
    ) -> Organization:
        stmt = sa.select(OrganizationRow).where(OrganizationRow.id == organization_id)
        try:
            async with self._session() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
                if row is None:
                    raise NotFoundError("Organization", str(organization_id))
                for key, value in changes.items():
                    if key in _ORGANIZATION_FIELDS:
                        setattr(row, key, value)
                row.updated_at = datetime.now(UTC)
                await session.commit()
        except BackendError as exc:
            if exc.kind is ErrorKind.CONFLICT:
                raise ConflictError(f"Organization slug already exists: {changes.get('slug')}") from exc
            raise
        return _organization(row)

    async def list_all_memberships(self) -> list[Membership]:
        stmt = sa.select(MembershipRow).order_by(MembershipRow.created_at.desc())
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
        return [_membership(r, with_organization=True) for r in rows]

    async def create_membership(
        self,
        *,
        user_id: UUID,
        organization_id: UUID,
        role: str,
        status: str,
    ) -> Membership:
        row = MembershipRow(
            id=uuid4(),
            user_id=user_id,
            organization_id=organization_id,
            role=role,
            status=status,
            created_at=datetime.now(UTC),
        )
        try:
            async with self._session() as session:
                session.add(row)
                await session.commit()
        except BackendError as exc:
            if exc.kind is ErrorKind.CONFLICT:
                raise ConflictError(
                    f"User {user_id} is already a member of organization {organization_id}"
                ) from exc
            raise
        return _membership(row)

    async def update_membership(self, membership_id: UUID, changes: dict[str, Any]) -> Membership:
        stmt = sa.select(MembershipRow).where(MembershipRow.id == membership_id)
        async with self._session() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                raise NotFoundError("Membership", str(membership_id))
            for key, value in changes.items():
                if key in _MEMBERSHIP_FIELDS:
                    setattr(row, key, value)
            await session.commit()
        return _membership(row)

    async def delete_membership(self, membership_id: UUID) -> None:
        stmt = sa.delete(MembershipRow).where(MembershipRow.id == membership_id)
        async with self._session() as session:
            result = await session.execute(stmt)
            await session.commit()
        if result.rowcount == 0:
            raise NotFoundError("Membership", str(membership_id))
