"""TrashService — soft-delete listing, restore, and empty."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlmodel import select

from canopy.exceptions import NodeNotFoundError

from .operations import hard_delete_subtree
from .permissions import Permission
from .types import DeleteResult

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from canopy.models.nodes import NodeBase
    from canopy.models.shares import FolderShareBase

    from .blobs import BlobStore
    from .metadata import MetadataService
    from .traversal import TreeWalker
    from .types import NodeInfo, Principal

logger = logging.getLogger(__name__)


class TrashService:
    """Trash management: list, restore, and empty.

    A trash root is a soft-deleted node whose parent is absent, live, or
    trashed but owned by someone else.  Everything else in the trash
    hangs beneath a root of the same owner and travels with it on
    restore or empty.
    """

    def __init__(
        self,
        node_model: type[NodeBase],
        share_model: type[FolderShareBase],
        walker: TreeWalker,
    ) -> None:
        self._node_model = node_model
        self._share_model = share_model
        self._walker = walker

    async def trash_roots(
        self, session: AsyncSession, *, owner_id: str | None = None
    ) -> list[NodeBase]:
        """Soft-deleted nodes whose parent is not a trashed node of the same owner."""
        model = self._node_model
        query = select(model).where(model.deleted == True)  # noqa: E712
        if owner_id is not None:
            query = query.where(model.owner_id == owner_id)
        result = await session.execute(query.order_by(model.updated_at, model.name))  # type: ignore[arg-type]
        trashed = list(result.scalars().all())

        parent_ids = {n.parent_id for n in trashed if n.parent_id is not None}
        trashed_parents: set[tuple[str, str]] = set()
        if parent_ids:
            parents = await session.execute(
                select(model.id, model.owner_id).where(  # type: ignore[call-overload]
                    model.id.in_(parent_ids),  # type: ignore[union-attr]
                    model.deleted == True,  # noqa: E712
                )
            )
            trashed_parents = {(row.id, row.owner_id) for row in parents.all()}
        return [n for n in trashed if (n.parent_id, n.owner_id) not in trashed_parents]

    async def list_trash(
        self,
        session: AsyncSession,
        principal: Principal,
        *,
        metadata: MetadataService,
        owner_id: str | None = None,
    ) -> list[NodeInfo]:
        """Trash roots of *principal*; admins see everyone's unless *owner_id* is given."""
        if not principal.is_admin:
            owner_id = principal.user_id
        roots = await self.trash_roots(session, owner_id=owner_id)
        return [metadata.node_to_info(n, Permission.WRITE) for n in roots]

    async def restore(
        self,
        session: AsyncSession,
        principal: Principal,
        node_id: str,
        *,
        metadata: MetadataService,
    ) -> NodeInfo:
        """Bring *node_id* and its trashed descendants (same owner) back.

        When the former parent is gone or still in the trash, the node
        is restored at the root instead.
        """
        node = await metadata.get_node(session, node_id)
        if node is None or not node.deleted:
            raise NodeNotFoundError(f"Not in trash: {node_id}")
        if not principal.is_admin and node.owner_id != principal.user_id:
            raise NodeNotFoundError(f"Not in trash: {node_id}")

        subtree = await self._walker.collect_subtree(session, node, include_deleted=True)
        for member, depth in subtree:
            if depth == 0 or (member.deleted and member.owner_id == node.owner_id):
                member.deleted = False
                member.touch()

        if node.parent_id is not None:
            parent = await metadata.get_node(session, node.parent_id)
            if parent is None or parent.deleted:
                logger.debug("Parent of %s unavailable; restoring at root", node.id)
                node.parent_id = None

        await session.flush()
        return metadata.node_to_info(node, Permission.WRITE)

    async def empty_trash(
        self,
        session: AsyncSession,
        principal: Principal,
        *,
        blobs: BlobStore,
        owner_id: str | None = None,
    ) -> DeleteResult:
        """Permanently delete the trash of *principal* (or everyone's, for admins).

        Admins remove each trash root with its whole subtree.  Anyone else
        removes only their own trashed nodes; nodes of other users found
        beneath them survive at the top level of their owner's drive.
        """
        if not principal.is_admin:
            owner_id = principal.user_id
        roots = await self.trash_roots(session, owner_id=owner_id)

        removed_ids: list[str] = []
        gone: set[str] = set()
        blobs_removed = 0
        for root in roots:
            if root.id in gone:
                continue
            result = await hard_delete_subtree(
                session,
                root,
                walker=self._walker,
                blobs=blobs,
                share_model=self._share_model,
                owner_id=None if principal.is_admin else principal.user_id,
            )
            gone.update(result.deleted_ids)
            removed_ids.extend(result.deleted_ids)
            blobs_removed += result.blobs_removed

        return DeleteResult(
            node_id=None,
            permanent=True,
            total_deleted=len(removed_ids),
            blobs_removed=blobs_removed,
            deleted_ids=removed_ids,
        )
