"""Value types exchanged with callers: principals, node views, results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from canopy.models.users import Role

if TYPE_CHECKING:
    from datetime import datetime

    from canopy.models.nodes import NodeBase

    from .permissions import Permission


@dataclass(frozen=True, slots=True)
class Principal:
    """The authenticated caller, as supplied by the auth collaborator."""

    user_id: str
    role: Role = Role.USER

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", Role(self.role))

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @classmethod
    def admin(cls, user_id: str) -> Principal:
        return cls(user_id=user_id, role=Role.ADMIN)


@dataclass
class NodeInfo:
    """Node metadata as returned to callers.  URLs are derived, never stored."""

    id: str
    name: str
    kind: str
    owner_id: str
    created_at: datetime
    updated_at: datetime
    parent_id: str | None = None
    size: int | None = None
    mime_type: str | None = None
    extension: str | None = None
    download_url: str | None = None
    thumbnail_url: str | None = None
    permission: str | None = None
    deleted: bool = False

    @property
    def is_folder(self) -> bool:
        return self.kind == "folder"


@dataclass
class ResolvedNode:
    """A node together with the permission the principal holds on it."""

    node: NodeBase
    permission: Permission


@dataclass
class UploadItem:
    """One file in an upload request."""

    name: str
    data: bytes
    content_type: str | None = None


@dataclass
class DownloadResult:
    """Content of a file node."""

    node: NodeInfo
    data: bytes

    @property
    def filename(self) -> str:
        return self.node.name

    @property
    def content_type(self) -> str:
        return self.node.mime_type or "application/octet-stream"


@dataclass
class DeleteResult:
    """Result of a delete or trash-empty operation."""

    node_id: str | None
    permanent: bool
    total_deleted: int = 0
    blobs_removed: int = 0
    deleted_ids: list[str] = field(default_factory=list)


@dataclass
class ShareInfo:
    """A share on a folder, joined with the grantee's identity."""

    folder_id: str
    grantee_id: str
    permission: str
    granted_by: str
    grantee_email: str | None = None
    grantee_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class SharedFolderInfo:
    """A folder shared with the principal, joined with its owner's identity."""

    folder: NodeInfo
    permission: str
    owner_id: str
    owner_name: str | None = None
    owner_email: str | None = None
    shared_at: datetime | None = None


@dataclass
class UserInfo:
    """Public view of a user (no credential material)."""

    id: str
    email: str
    name: str
    role: str
    created_at: datetime
    updated_at: datetime
    avatar_url: str | None = None
    external_id: str | None = None
