"""Bounded walks over the parent-pointer tree.

The tree is acyclic by invariant, but every walk here still carries a
visited set and a depth cap so a corrupted parent chain cannot hang a
request.  Walks are plain iterative loops over indexed lookups and do
not depend on recursive-CTE support in the backing store.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlmodel import select

from canopy.exceptions import ConsistencyError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncSession

    from canopy.models.nodes import NodeBase

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 1024


class TreeWalker:
    """Ancestor and descendant walks for a concrete node model."""

    def __init__(self, node_model: type[NodeBase], max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self._node_model = node_model
        self.max_depth = max_depth

    async def _parent_id_of(self, session: AsyncSession, node_id: str) -> tuple[bool, str | None]:
        model = self._node_model
        result = await session.execute(
            select(model.parent_id).where(model.id == node_id)  # type: ignore[arg-type]
        )
        row = result.first()
        if row is None:
            return False, None
        return True, row[0]

    async def iter_ancestors(
        self, session: AsyncSession, node: NodeBase
    ) -> AsyncIterator[NodeBase]:
        """Yield *node*'s ancestors, nearest first, up to the root.

        Raises ``ConsistencyError`` on a cycle or when ``max_depth`` is
        exceeded.  A dangling parent pointer ends the walk.
        """
        model = self._node_model
        visited = {node.id}
        parent_id = node.parent_id
        depth = 0
        while parent_id is not None:
            if parent_id in visited:
                raise ConsistencyError(f"Cycle in parent chain at node {parent_id}")
            depth += 1
            if depth > self.max_depth:
                raise ConsistencyError(
                    f"Parent chain of {node.id} exceeds max depth {self.max_depth}"
                )
            visited.add(parent_id)
            parent = await session.get(model, parent_id)
            if parent is None:
                logger.debug("Dangling parent pointer %s under %s", parent_id, node.id)
                return
            yield parent
            parent_id = parent.parent_id

    async def is_descendant(
        self, session: AsyncSession, candidate_id: str, ancestor_id: str
    ) -> bool:
        """True if *candidate_id* is *ancestor_id* or lies anywhere beneath it.

        Walks parent pointers up from the candidate, comparing each id
        against *ancestor_id*.  Raises ``ConsistencyError`` on a cycle.
        """
        if candidate_id == ancestor_id:
            return True
        visited = {candidate_id}
        current = candidate_id
        for _ in range(self.max_depth):
            found, parent_id = await self._parent_id_of(session, current)
            if not found or parent_id is None:
                return False
            if parent_id == ancestor_id:
                return True
            if parent_id in visited:
                raise ConsistencyError(f"Cycle in parent chain at node {parent_id}")
            visited.add(parent_id)
            current = parent_id
        raise ConsistencyError(
            f"Parent chain of {candidate_id} exceeds max depth {self.max_depth}"
        )

    async def collect_subtree(
        self,
        session: AsyncSession,
        root: NodeBase,
        *,
        include_deleted: bool = True,
    ) -> list[tuple[NodeBase, int]]:
        """Breadth-first list of ``(node, depth)`` for *root* and all descendants.

        *root* itself is returned at depth 0.  Children already seen are
        skipped, so a corrupted chain cannot loop.
        """
        model = self._node_model
        collected: list[tuple[NodeBase, int]] = [(root, 0)]
        seen = {root.id}
        frontier = [root.id] if root.is_folder else []
        depth = 0
        while frontier:
            depth += 1
            if depth > self.max_depth:
                logger.warning(
                    "Subtree of %s exceeds max depth %d; truncating walk",
                    root.id,
                    self.max_depth,
                )
                break
            query = select(model).where(model.parent_id.in_(frontier))  # type: ignore[union-attr]
            if not include_deleted:
                query = query.where(model.deleted == False)  # noqa: E712
            result = await session.execute(query)
            next_frontier: list[str] = []
            for child in result.scalars().all():
                if child.id in seen:
                    logger.warning("Node %s reached twice during subtree walk", child.id)
                    continue
                seen.add(child.id)
                collected.append((child, depth))
                if child.is_folder:
                    next_frontier.append(child.id)
            frontier = next_frontier
        return collected
