"""Standalone orchestration functions for tree operations.

Each function takes a session plus the composed services as keyword
arguments.  Functions flush but never commit: the caller owns the
transaction, so a failure anywhere in a recursive copy or delete rolls
back every row it touched.  Blob writes happen before the rows that
reference them; blobs created by a failed operation are discarded.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from sqlalchemy import delete
from sqlmodel import select

from canopy.exceptions import (
    ConsistencyError,
    InvalidOperationError,
    NodeNotFoundError,
)
from canopy.models.nodes import NodeKind

from .blobs import discard_blobs
from .filters import and_, at_root, children_of, in_, live, or_, owned_by
from .permissions import Permission
from .types import DeleteResult, DownloadResult
from .utils import copy_name, file_extension, guess_mime_type, validate_name

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from canopy.models.nodes import NodeBase
    from canopy.models.shares import FolderShareBase

    from .access import AccessResolver
    from .blobs import BlobStore
    from .filters import FilterExpression
    from .metadata import MetadataService
    from .traversal import TreeWalker
    from .types import NodeInfo, Principal, UploadItem

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


async def resolve_destination(
    session: AsyncSession,
    principal: Principal,
    destination_id: str,
    *,
    access: AccessResolver,
    label: str = "Destination",
) -> NodeBase:
    """Resolve a folder that will receive new children (write required)."""
    resolved = await access.resolve(session, principal, destination_id, Permission.WRITE)
    folder = resolved.node
    if not folder.is_folder:
        raise InvalidOperationError(f"{label} must be a folder")
    if folder.deleted:
        raise InvalidOperationError(f"{label} folder is in the trash")
    return folder


def _restrict(expr: FilterExpression, owner_id: str | None) -> FilterExpression:
    if owner_id is None:
        return expr
    return and_(expr, owned_by(owner_id))


# ------------------------------------------------------------------
# Create
# ------------------------------------------------------------------


async def create_folder(
    session: AsyncSession,
    principal: Principal,
    name: str,
    parent_id: str | None,
    *,
    metadata: MetadataService,
    access: AccessResolver,
) -> NodeInfo:
    """Create a folder owned by *principal* under *parent_id* (or at root)."""
    name = validate_name(name)
    if parent_id is not None:
        await resolve_destination(session, principal, parent_id, access=access, label="Parent")

    folder = metadata.node_model(
        name=name,
        kind=NodeKind.FOLDER.value,
        parent_id=parent_id,
        owner_id=principal.user_id,
    )
    session.add(folder)
    await session.flush()
    return metadata.node_to_info(folder, Permission.WRITE)


async def upload_files(
    session: AsyncSession,
    principal: Principal,
    parent_id: str | None,
    items: list[UploadItem],
    *,
    metadata: MetadataService,
    access: AccessResolver,
    blobs: BlobStore,
) -> list[NodeInfo]:
    """Store each item's bytes, then insert a file node referencing them.

    If anything fails, blobs written so far are discarded before the
    error propagates; the caller's rollback removes the rows.
    """
    if not items:
        raise InvalidOperationError("No files uploaded")
    if parent_id is not None:
        await resolve_destination(session, principal, parent_id, access=access, label="Parent")

    names = [validate_name(item.name) for item in items]
    written: list[str] = []
    created: list[NodeBase] = []
    try:
        for item, name in zip(items, names, strict=True):
            extension = file_extension(name)
            ref = await blobs.create(item.data, extension=extension)
            written.append(ref)
            node = metadata.node_model(
                name=name,
                kind=NodeKind.FILE.value,
                parent_id=parent_id,
                owner_id=principal.user_id,
                size=len(item.data),
                mime_type=guess_mime_type(name, item.content_type),
                extension=extension,
                blob_ref=ref,
            )
            session.add(node)
            created.append(node)
        await session.flush()
    except Exception:
        logger.error("Upload into %s failed; discarding blobs", parent_id, exc_info=True)
        await discard_blobs(blobs, written)
        raise

    return [metadata.node_to_info(node, Permission.WRITE) for node in created]


# ------------------------------------------------------------------
# Read
# ------------------------------------------------------------------


async def get_node(
    session: AsyncSession,
    principal: Principal,
    node_id: str,
    *,
    metadata: MetadataService,
    access: AccessResolver,
) -> NodeInfo:
    resolved = await access.resolve(session, principal, node_id, Permission.READ)
    return metadata.node_to_info(resolved.node, resolved.permission)


async def list_nodes(
    session: AsyncSession,
    principal: Principal,
    parent_id: str | None = None,
    *,
    owner_id: str | None = None,
    metadata: MetadataService,
    access: AccessResolver,
) -> list[NodeInfo]:
    """List a folder's children, or the principal's top level.

    Top level for a user is their own live root nodes plus every live
    node shared with them directly.  Inside a folder, visibility is
    inherited from the folder: all live children are returned no matter
    who owns them.  Admins see everything, soft-deleted nodes included;
    *owner_id* narrows any listing.
    """
    if principal.is_admin:
        if parent_id is not None:
            parent = await metadata.get_node(session, parent_id)
            if parent is None:
                raise NodeNotFoundError(f"Node not found: {parent_id}")
            expr: FilterExpression = children_of(parent_id)
        else:
            expr = at_root()
        nodes = await metadata.find(session, _restrict(expr, owner_id))
        return [metadata.node_to_info(n, Permission.WRITE) for n in nodes]

    shares = await access.load_share_map(session, principal.user_id)

    if parent_id is not None:
        resolved = await access.resolve(session, principal, parent_id, Permission.READ)
        if not resolved.node.is_folder:
            raise InvalidOperationError("Parent must be a folder")
        nodes = await metadata.find(
            session, _restrict(and_(children_of(parent_id), live()), owner_id)
        )
        return [
            metadata.node_to_info(
                n, access.direct_permission(principal, n, shares) or resolved.permission
            )
            for n in nodes
        ]

    visible: FilterExpression = and_(at_root(), owned_by(principal.user_id))
    if shares:
        visible = or_(visible, in_("id", list(shares)))
    nodes = await metadata.find(session, _restrict(and_(live(), visible), owner_id))
    return [
        metadata.node_to_info(n, access.direct_permission(principal, n, shares))
        for n in nodes
    ]


async def download_node(
    session: AsyncSession,
    principal: Principal,
    node_id: str,
    *,
    metadata: MetadataService,
    access: AccessResolver,
    blobs: BlobStore,
) -> DownloadResult:
    resolved = await access.resolve(session, principal, node_id, Permission.READ)
    node = resolved.node
    if not node.is_file:
        raise InvalidOperationError("Not a file")
    if not node.blob_ref:
        raise NodeNotFoundError(f"File content not found: {node_id}")
    try:
        data = await blobs.read(node.blob_ref)
    except FileNotFoundError:
        logger.warning("Blob %s missing for node %s", node.blob_ref, node.id)
        raise NodeNotFoundError(f"File content not found: {node_id}") from None
    return DownloadResult(node=metadata.node_to_info(node, resolved.permission), data=data)


# ------------------------------------------------------------------
# Mutate
# ------------------------------------------------------------------


async def rename_node(
    session: AsyncSession,
    principal: Principal,
    node_id: str,
    name: str,
    *,
    metadata: MetadataService,
    access: AccessResolver,
) -> NodeInfo:
    name = validate_name(name)
    resolved = await access.resolve(session, principal, node_id, Permission.WRITE)
    node = resolved.node
    node.name = name
    node.touch()
    await session.flush()
    return metadata.node_to_info(node, resolved.permission)


async def move_node(
    session: AsyncSession,
    principal: Principal,
    node_id: str,
    destination_id: str | None,
    *,
    metadata: MetadataService,
    access: AccessResolver,
    walker: TreeWalker,
) -> NodeInfo:
    """Re-parent *node_id* under *destination_id*, or to the root when None.

    Moving a node into itself or into any of its descendants is rejected.
    The check walks parent pointers from the destination up to the root.
    """
    resolved = await access.resolve(session, principal, node_id, Permission.WRITE)
    node = resolved.node

    if destination_id is not None:
        await resolve_destination(session, principal, destination_id, access=access)
        if await walker.is_descendant(session, destination_id, node.id):
            raise InvalidOperationError("Cannot move a node into itself or its own descendant")

    node.parent_id = destination_id
    node.touch()
    await session.flush()

    permission = await access.permission_for(session, principal, node)
    return metadata.node_to_info(node, permission)


async def copy_node(
    session: AsyncSession,
    principal: Principal,
    node_id: str,
    destination_id: str | None,
    *,
    metadata: MetadataService,
    access: AccessResolver,
    walker: TreeWalker,
    blobs: BlobStore,
) -> NodeInfo:
    """Clone *node_id* (recursively for folders) into *destination_id*.

    Every clone is owned by *principal* and named ``"<name> (copy)"``.
    File content is duplicated, never shared between nodes.  Inside a
    folder only live children owned by *principal* are cloned (admins
    clone every live child).  Nodes created by this copy are never
    copied again, so copying a folder into its own subtree terminates.
    """
    source = (await access.resolve(session, principal, node_id, Permission.READ)).node
    if not destination_id:
        raise InvalidOperationError("Destination is required")
    destination = await resolve_destination(session, principal, destination_id, access=access)

    model = metadata.node_model
    created_refs: list[str] = []
    created_ids: set[str] = set()
    clones: list[NodeBase] = []

    queue: deque[tuple[NodeBase, str, int]] = deque([(source, destination.id, 0)])
    try:
        while queue:
            original, parent_id, depth = queue.popleft()
            if depth > walker.max_depth:
                raise ConsistencyError(f"Copy of {source.id} exceeds max depth {walker.max_depth}")

            clone = model(
                name=copy_name(original.name),
                kind=original.kind,
                parent_id=parent_id,
                owner_id=principal.user_id,
                size=original.size,
                mime_type=original.mime_type,
                extension=original.extension,
            )
            if original.is_file:
                if original.blob_ref:
                    clone.blob_ref = await blobs.copy(
                        original.blob_ref, extension=original.extension
                    )
                    created_refs.append(clone.blob_ref)
                if original.thumbnail_ref:
                    clone.thumbnail_ref = await blobs.copy(original.thumbnail_ref)
                    created_refs.append(clone.thumbnail_ref)
            session.add(clone)
            await session.flush()
            created_ids.add(clone.id)
            clones.append(clone)

            if original.is_folder:
                expr: FilterExpression = and_(children_of(original.id), live())
                if not principal.is_admin:
                    expr = and_(expr, owned_by(principal.user_id))
                for child in await metadata.find(session, expr):
                    if child.id not in created_ids:
                        queue.append((child, clone.id, depth + 1))
    except Exception:
        logger.error("Copy of %s failed; discarding %d blobs", node_id, len(created_refs), exc_info=True)
        await discard_blobs(blobs, created_refs)
        raise

    return metadata.node_to_info(clones[0], Permission.WRITE)


# ------------------------------------------------------------------
# Delete
# ------------------------------------------------------------------


async def hard_delete_subtree(
    session: AsyncSession,
    root: NodeBase,
    *,
    walker: TreeWalker,
    blobs: BlobStore,
    share_model: type[FolderShareBase],
    owner_id: str | None = None,
) -> DeleteResult:
    """Permanently remove *root* and everything beneath it.

    With *owner_id*, only that owner's soft-deleted nodes are removed.
    Any other node whose parent goes away is moved to the top level of
    its owner's drive, live or trashed as it was.

    Blob cleanup is best-effort and runs first; a blob that is already
    gone is not an error.  Shares on removed folders go next, then the
    rows deepest-first so *root* is deleted last.
    """
    subtree = await walker.collect_subtree(session, root, include_deleted=True)
    if owner_id is not None:
        subtree = [(n, d) for n, d in subtree if n.owner_id == owner_id and n.deleted]
    model = type(root)
    ids = [node.id for node, _ in subtree]
    if not ids:
        return DeleteResult(node_id=root.id, permanent=True)

    refs: list[str] = []
    for node, _ in subtree:
        if node.blob_ref:
            refs.append(node.blob_ref)
        if node.thumbnail_ref:
            refs.append(node.thumbnail_ref)
    removed = await discard_blobs(blobs, refs)

    if owner_id is not None:
        result = await session.execute(
            select(model).where(
                model.parent_id.in_(ids),  # type: ignore[union-attr]
                model.id.not_in(ids),  # type: ignore[union-attr]
            )
        )
        for orphan in result.scalars().all():
            logger.debug("Moving %s to the top level of %s", orphan.id, orphan.owner_id)
            orphan.parent_id = None
            orphan.touch()
        await session.flush()

    await session.execute(
        delete(share_model).where(share_model.folder_id.in_(ids))  # type: ignore[union-attr]
    )

    by_depth: dict[int, list[str]] = {}
    for node, depth in subtree:
        by_depth.setdefault(depth, []).append(node.id)
    for depth in sorted(by_depth, reverse=True):
        await session.execute(
            delete(model).where(model.id.in_(by_depth[depth]))  # type: ignore[union-attr]
        )
    await session.flush()

    logger.info(
        "Hard-deleted %s: %d nodes, %d/%d blobs removed", root.id, len(ids), removed, len(refs)
    )
    return DeleteResult(
        node_id=root.id,
        permanent=True,
        total_deleted=len(ids),
        blobs_removed=removed,
        deleted_ids=ids,
    )


async def soft_delete_subtree(
    session: AsyncSession,
    root: NodeBase,
    owner_id: str,
    *,
    walker: TreeWalker,
) -> DeleteResult:
    """Flag *root* and every live descendant owned by *owner_id* as deleted.

    Blobs are untouched so the nodes can be restored from the trash.
    """
    subtree = await walker.collect_subtree(session, root, include_deleted=False)
    targets = [root] + [node for node, depth in subtree if depth > 0 and node.owner_id == owner_id]
    for node in targets:
        node.deleted = True
        node.touch()
    await session.flush()
    return DeleteResult(
        node_id=root.id,
        permanent=False,
        total_deleted=len(targets),
        deleted_ids=[node.id for node in targets],
    )


async def delete_node(
    session: AsyncSession,
    principal: Principal,
    node_id: str,
    *,
    access: AccessResolver,
    walker: TreeWalker,
    blobs: BlobStore,
    share_model: type[FolderShareBase],
) -> DeleteResult:
    """Soft-delete for users (write required), hard-delete for admins."""
    resolved = await access.resolve(session, principal, node_id, Permission.WRITE)
    if principal.is_admin:
        return await hard_delete_subtree(
            session, resolved.node, walker=walker, blobs=blobs, share_model=share_model
        )
    return await soft_delete_subtree(session, resolved.node, principal.user_id, walker=walker)


async def nodes_owned_by(
    session: AsyncSession, node_model: type[NodeBase], owner_id: str
) -> list[NodeBase]:
    """Every node owned by *owner_id*, soft-deleted included."""
    result = await session.execute(select(node_model).where(node_model.owner_id == owner_id))
    return list(result.scalars().all())
