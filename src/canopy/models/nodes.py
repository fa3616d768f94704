"""Node model — files and folders arranged by parent pointers.

Provides ``NodeBase`` (non-table) and ``Node`` (concrete table).  A node
with ``parent_id is None`` sits at the root of its owner's drive.  Content
lives in the blob store; ``blob_ref`` is the opaque handle into it.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class NodeKind(str, Enum):
    """Node type."""

    FILE = "file"
    FOLDER = "folder"


class NodeBase(SQLModel):
    """Base fields for a tree node. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str
    kind: str = Field(default=NodeKind.FILE.value, index=True)
    parent_id: str | None = Field(default=None, index=True)
    owner_id: str = Field(index=True)
    size: int | None = Field(default=None)
    mime_type: str | None = Field(default=None)
    extension: str | None = Field(default=None)
    blob_ref: str | None = Field(default=None)
    thumbnail_ref: str | None = Field(default=None)
    deleted: bool = Field(default=False, index=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )

    @property
    def is_folder(self) -> bool:
        return self.kind == NodeKind.FOLDER.value

    @property
    def is_file(self) -> bool:
        return self.kind == NodeKind.FILE.value

    def touch(self) -> None:
        """Bump ``updated_at`` to now."""
        self.updated_at = datetime.now(UTC)


class Node(NodeBase, table=True):
    """Default node table — ``canopy_nodes``."""

    __tablename__ = "canopy_nodes"
