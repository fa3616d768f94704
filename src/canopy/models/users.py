"""User model — identities that own nodes and receive shares.

Provides ``UserBase`` (non-table) and ``User`` (concrete table).
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class Role(str, Enum):
    """Account role. Admins bypass node-level access control."""

    USER = "user"
    ADMIN = "admin"


class UserBase(SQLModel):
    """Base fields for a user record. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    email: str = Field(index=True, unique=True)
    password_hash: str | None = Field(default=None)
    name: str = Field(default="")
    external_id: str | None = Field(default=None, index=True, unique=True)
    avatar_url: str | None = Field(default=None)
    role: str = Field(default=Role.USER.value)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


class User(UserBase, table=True):
    """Default user table — ``canopy_users``."""

    __tablename__ = "canopy_users"
