"""MetadataService — node lookup, filtered queries, and info conversion."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlmodel import select

from .filters import compile_sql, listing_order
from .types import NodeInfo

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from canopy.models.nodes import NodeBase

    from .filters import FilterExpression
    from .permissions import Permission


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class MetadataService:
    """Stateless helpers for node record lookup and conversion.

    Receives the concrete node model at construction so callers can
    use custom SQLModel subclasses.  ``base_url`` prefixes the derived
    download and thumbnail URLs; empty means relative URLs.
    """

    def __init__(self, node_model: type[NodeBase], base_url: str = "") -> None:
        self._node_model = node_model
        self.base_url = base_url.rstrip("/")

    @property
    def node_model(self) -> type[NodeBase]:
        return self._node_model

    async def get_node(self, session: AsyncSession, node_id: str) -> NodeBase | None:
        """Get a node by id, soft-deleted or not."""
        return await session.get(self._node_model, node_id)

    async def find(
        self,
        session: AsyncSession,
        expr: FilterExpression,
        *,
        ordered: bool = True,
    ) -> list[NodeBase]:
        """Return nodes matching *expr*, in listing order unless ``ordered=False``."""
        model = self._node_model
        query = select(model).where(compile_sql(expr, model))
        if ordered:
            query = query.order_by(*listing_order(model))
        result = await session.execute(query)
        return list(result.scalars().all())

    def download_url(self, node: NodeBase) -> str | None:
        if not node.is_file or not node.blob_ref:
            return None
        return f"{self.base_url}/api/files/{node.id}/download"

    def thumbnail_url(self, node: NodeBase) -> str | None:
        download = self.download_url(node)
        if download is None:
            return None
        if node.mime_type and node.mime_type.startswith("image/"):
            return download
        if node.thumbnail_ref:
            return f"{self.base_url}/api/files/{node.id}/thumbnail"
        return None

    def node_to_info(self, node: NodeBase, permission: Permission | None = None) -> NodeInfo:
        info = NodeInfo(
            id=node.id,
            name=node.name,
            kind=node.kind,
            owner_id=node.owner_id,
            parent_id=node.parent_id,
            created_at=ensure_utc(node.created_at),
            updated_at=ensure_utc(node.updated_at),
            permission=permission.value if permission is not None else None,
            deleted=node.deleted,
        )
        if node.is_file:
            info.size = node.size
            info.mime_type = node.mime_type
            info.extension = node.extension
            info.download_url = self.download_url(node)
            info.thumbnail_url = self.thumbnail_url(node)
        return info
