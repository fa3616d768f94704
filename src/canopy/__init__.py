"""Canopy: ownership, sharing and recursive tree operations for hierarchical file storage."""

__version__ = "0.1.0"

from canopy._canopy import Canopy
from canopy._canopy_async import CanopyAsync
from canopy.config import CanopySettings
from canopy.events import EventBus, EventType, NodeEvent
from canopy.exceptions import (
    CanopyError,
    ConflictError,
    ConsistencyError,
    ForbiddenError,
    InvalidOperationError,
    NodeNotFoundError,
    NotFoundError,
    ShareNotFoundError,
    StorageError,
    UnauthenticatedError,
    UserNotFoundError,
)
from canopy.models import FolderShare, Node, NodeKind, Role, User
from canopy.tree import (
    BlobStore,
    DeleteResult,
    DownloadResult,
    LocalBlobStore,
    NodeInfo,
    Permission,
    Principal,
    SharedFolderInfo,
    ShareInfo,
    UploadItem,
    UserInfo,
)

__all__ = [
    "BlobStore",
    "Canopy",
    "CanopyAsync",
    "CanopyError",
    "CanopySettings",
    "ConflictError",
    "ConsistencyError",
    "DeleteResult",
    "DownloadResult",
    "EventBus",
    "EventType",
    "FolderShare",
    "ForbiddenError",
    "InvalidOperationError",
    "LocalBlobStore",
    "Node",
    "NodeEvent",
    "NodeInfo",
    "NodeKind",
    "NodeNotFoundError",
    "NotFoundError",
    "Permission",
    "Principal",
    "Role",
    "ShareInfo",
    "ShareNotFoundError",
    "SharedFolderInfo",
    "StorageError",
    "UnauthenticatedError",
    "UploadItem",
    "User",
    "UserInfo",
    "UserNotFoundError",
    "__version__",
]
