"""AccessResolver — who may see or change a node, and at what level.

Resolution order for a non-admin principal on a live node:

1. the principal owns the node → write
2. a share on this exact node → that share's permission
3. the nearest ancestor that is owned by, or shared with, the principal
   → write for ownership, the share's permission otherwise

Admins resolve every node, soft-deleted ones included, with write.
A node the principal cannot see is reported as not found so that
tree structure does not leak.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlmodel import select

from canopy.exceptions import ConsistencyError, ForbiddenError, NodeNotFoundError

from .permissions import Permission
from .types import ResolvedNode

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from canopy.models.nodes import NodeBase
    from canopy.models.shares import FolderShareBase

    from .traversal import TreeWalker
    from .types import Principal

logger = logging.getLogger(__name__)

ShareMap = dict[str, Permission]


class AccessResolver:
    """Stateless access checks over the node and share tables."""

    def __init__(
        self,
        node_model: type[NodeBase],
        share_model: type[FolderShareBase],
        walker: TreeWalker,
    ) -> None:
        self._node_model = node_model
        self._share_model = share_model
        self._walker = walker

    async def load_share_map(self, session: AsyncSession, user_id: str) -> ShareMap:
        """Map of folder id → permission for every share granted to *user_id*."""
        model = self._share_model
        result = await session.execute(
            select(model.folder_id, model.permission).where(  # type: ignore[call-overload]
                model.grantee_id == user_id
            )
        )
        return {folder_id: Permission(permission) for folder_id, permission in result.all()}

    @staticmethod
    def direct_permission(
        principal: Principal, node: NodeBase, shares: ShareMap
    ) -> Permission | None:
        """Permission from ownership of, or a share on, *node* itself."""
        if node.owner_id == principal.user_id:
            return Permission.WRITE
        return shares.get(node.id)

    async def permission_for(
        self,
        session: AsyncSession,
        principal: Principal,
        node: NodeBase,
        *,
        shares: ShareMap | None = None,
    ) -> Permission | None:
        """Effective permission of *principal* on *node*, or None for no access."""
        if principal.is_admin:
            return Permission.WRITE
        if node.deleted:
            return None
        if shares is None:
            shares = await self.load_share_map(session, principal.user_id)

        direct = self.direct_permission(principal, node, shares)
        if direct is not None:
            return direct

        try:
            async for ancestor in self._walker.iter_ancestors(session, node):
                if ancestor.deleted:
                    return None
                inherited = self.direct_permission(principal, ancestor, shares)
                if inherited is not None:
                    return inherited
        except ConsistencyError:
            logger.warning(
                "Denying access to %s: parent chain is inconsistent", node.id, exc_info=True
            )
            return None
        return None

    async def resolve(
        self,
        session: AsyncSession,
        principal: Principal,
        node_id: str,
        required: Permission = Permission.READ,
    ) -> ResolvedNode:
        """Load *node_id* and check *principal* holds *required* on it.

        Raises ``NodeNotFoundError`` when the node is absent or invisible,
        ``ForbiddenError`` when it is visible at a lower permission.
        """
        node = await session.get(self._node_model, node_id)
        if node is None:
            raise NodeNotFoundError(f"Node not found: {node_id}")

        permission = await self.permission_for(session, principal, node)
        if permission is None:
            raise NodeNotFoundError(f"Node not found: {node_id}")
        if not permission.allows(required):
            raise ForbiddenError(
                f"Access denied: {required.value!r} permission required on {node_id}"
            )
        return ResolvedNode(node=node, permission=permission)
