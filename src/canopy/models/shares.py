"""FolderShare model — grants a user access to a folder subtree.

Provides ``FolderShareBase`` (non-table) and ``FolderShare`` (concrete
table).  One row per (folder, grantee); re-sharing overwrites the
permission in place.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


class FolderShareBase(SQLModel):
    """Base fields for a folder share. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    folder_id: str = Field(index=True)
    grantee_id: str = Field(index=True)
    permission: str = Field(default="read")
    granted_by: str = Field(default="")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class FolderShare(FolderShareBase, table=True):
    """Default share table — ``canopy_shares``."""

    __tablename__ = "canopy_shares"
    __table_args__ = (
        UniqueConstraint("folder_id", "grantee_id", name="uq_canopy_shares_folder_grantee"),
    )
