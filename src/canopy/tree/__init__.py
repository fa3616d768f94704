"""Tree layer — access resolution, tree operations, sharing, trash, blobs."""

from canopy.tree.access import AccessResolver
from canopy.tree.blobs import BlobStore, LocalBlobStore
from canopy.tree.metadata import MetadataService
from canopy.tree.permissions import Permission
from canopy.tree.sharing import SharingService
from canopy.tree.trash import TrashService
from canopy.tree.traversal import DEFAULT_MAX_DEPTH, TreeWalker
from canopy.tree.types import (
    DeleteResult,
    DownloadResult,
    NodeInfo,
    Principal,
    ResolvedNode,
    SharedFolderInfo,
    ShareInfo,
    UploadItem,
    UserInfo,
)

__all__ = [
    "DEFAULT_MAX_DEPTH",
    "AccessResolver",
    "BlobStore",
    "DeleteResult",
    "DownloadResult",
    "LocalBlobStore",
    "MetadataService",
    "NodeInfo",
    "Permission",
    "Principal",
    "ResolvedNode",
    "ShareInfo",
    "SharedFolderInfo",
    "SharingService",
    "TrashService",
    "TreeWalker",
    "UploadItem",
    "UserInfo",
]
