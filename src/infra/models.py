"""SQLAlchemy ORM models for the Fruit ERP tenancy tables.

Maps the externally managed schema:
  organizations       -> Organization
  users               -> User
  user_organizations  -> UserOrganization
  roles               -> Role
  user_details (view) -> UserDetailsView

RLS policies on business tables read current_setting('app.current_organization_id'),
which the set_session_organization(org_id uuid) function assigns.

These models live in the Infrastructure layer. Gateway code receives
domain dataclasses from src.shared.types, never ORM rows.
"""

from __future__ import annotations

import uuid as _uuid  # noqa: TC003 -- SQLAlchemy resolves Mapped[] annotations at runtime
from datetime import datetime  # noqa: TC003
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

_UUID = postgresql.UUID(as_uuid=True)
_NOW = sa.text("now()")
_GEN_UUID = sa.text("gen_random_uuid()")


class Base(DeclarativeBase):
    """Declarative base for all Fruit ERP ORM models."""


class Organization(Base):
    """Tenant organization."""

    __tablename__ = "organizations"

    id: Mapped[_uuid.UUID] = mapped_column(
        _UUID,
        primary_key=True,
        server_default=_GEN_UUID,
    )
    name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    slug: Mapped[str] = mapped_column(sa.String(128), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        sa.String(16),
        nullable=False,
        server_default="active",
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=_NOW,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=_NOW,
    )

    memberships: Mapped[list[UserOrganization]] = relationship(
        "UserOrganization",
        back_populates="organization",
        lazy="select",
    )

    __table_args__ = (
        sa.Index("ix_organizations_slug", "slug", unique=True),
        sa.Index("ix_organizations_status", "status"),
    )


class User(Base):
    """Platform user (cross-organization identity)."""

    __tablename__ = "users"

    id: Mapped[_uuid.UUID] = mapped_column(
        _UUID,
        primary_key=True,
        server_default=_GEN_UUID,
    )
    email: Mapped[str] = mapped_column(sa.String(320), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(sa.String(255), nullable=False, server_default="")
    password_hash: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    role_id: Mapped[str] = mapped_column(
        sa.String(32),
        sa.ForeignKey("roles.id"),
        nullable=False,
        server_default="viewer",
    )
    status: Mapped[str] = mapped_column(
        sa.String(16),
        nullable=False,
        server_default="active",
    )
    last_login: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=_NOW,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=_NOW,
    )

    memberships: Mapped[list[UserOrganization]] = relationship(
        "UserOrganization",
        back_populates="user",
        lazy="select",
    )

    __table_args__ = (sa.Index("ix_users_email", "email", unique=True),)


class UserOrganization(Base):
    """Membership: user <-> organization with role and status."""

    __tablename__ = "user_organizations"

    id: Mapped[_uuid.UUID] = mapped_column(
        _UUID,
        primary_key=True,
        server_default=_GEN_UUID,
    )
    user_id: Mapped[_uuid.UUID] = mapped_column(
        _UUID,
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    organization_id: Mapped[_uuid.UUID] = mapped_column(
        _UUID,
        sa.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(
        sa.String(32),
        nullable=False,
        server_default="user",
    )
    status: Mapped[str] = mapped_column(
        sa.String(16),
        nullable=False,
        server_default="active",
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=_NOW,
    )

    user: Mapped[User] = relationship("User", back_populates="memberships", lazy="select")
    organization: Mapped[Organization] = relationship(
        "Organization",
        back_populates="memberships",
        lazy="joined",
    )

    __table_args__ = (
        sa.UniqueConstraint("user_id", "organization_id", name="uq_user_organizations_pair"),
        sa.Index("ix_user_organizations_user_id", "user_id"),
        sa.Index("ix_user_organizations_organization_id", "organization_id"),
    )


class Role(Base):
    """Role with its permission list."""

    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(sa.String(32), primary_key=True)
    name: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    description: Mapped[str] = mapped_column(sa.Text(), nullable=False, server_default="")
    permissions: Mapped[list[Any]] = mapped_column(
        postgresql.JSONB(),
        nullable=False,
        server_default=sa.text("'[]'::jsonb"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=_NOW,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=_NOW,
    )


class UserDetailsView(Base):
    """Read-only mapping of the user_details view (users joined with roles)."""

    __tablename__ = "user_details"
    __table_args__ = {"info": {"is_view": True}}

    id: Mapped[_uuid.UUID] = mapped_column(_UUID, primary_key=True)
    email: Mapped[str] = mapped_column(sa.String(320))
    full_name: Mapped[str] = mapped_column(sa.String(255))
    role_id: Mapped[str] = mapped_column(sa.String(32))
    role_name: Mapped[str | None] = mapped_column(sa.String(64), nullable=True)
    role_description: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    permissions: Mapped[list[Any] | None] = mapped_column(postgresql.JSONB(), nullable=True)
    status: Mapped[str] = mapped_column(sa.String(16))
