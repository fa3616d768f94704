"""CanopyAsync — primary async class wiring the tree, sharing and user services."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from canopy.events import EventBus, EventType, NodeEvent
from canopy.exceptions import UnauthenticatedError
from canopy.models.nodes import Node
from canopy.models.shares import FolderShare
from canopy.models.users import Role, User
from canopy.tree import operations
from canopy.tree.access import AccessResolver
from canopy.tree.blobs import LocalBlobStore
from canopy.tree.metadata import MetadataService
from canopy.tree.sharing import SharingService
from canopy.tree.trash import TrashService
from canopy.tree.traversal import DEFAULT_MAX_DEPTH, TreeWalker
from canopy.tree.types import Principal, UploadItem
from canopy.users import UserService

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable

    from sqlalchemy.ext.asyncio import AsyncEngine

    from canopy.config import CanopySettings
    from canopy.models.nodes import NodeBase
    from canopy.models.shares import FolderShareBase
    from canopy.models.users import UserBase
    from canopy.tree.blobs import BlobStore
    from canopy.tree.permissions import Permission
    from canopy.tree.types import (
        DeleteResult,
        DownloadResult,
        NodeInfo,
        SharedFolderInfo,
        ShareInfo,
        UserInfo,
    )

logger = logging.getLogger(__name__)


class CanopyAsync:
    """Async facade over node metadata, access control, sharing and users.

    Every public operation runs in its own session: committed on
    success, rolled back on any exception.  Events are emitted only
    after the commit.

    Engine-based (primary API)::

        engine = create_async_engine("postgresql+asyncpg://...")
        async with CanopyAsync(engine=engine, blob_store=LocalBlobStore("/srv/blobs")) as c:
            folder = await c.create_folder(principal, "Docs")
            await c.upload(principal, folder.id, [UploadItem("a.txt", b"hello")])

    From settings (reads ``CANOPY_*`` with ``CanopySettings.from_env()``)::

        c = CanopyAsync.from_settings(CanopySettings.from_env())
        await c.open()
    """

    def __init__(
        self,
        *,
        engine: AsyncEngine | None = None,
        session_factory: Callable[..., AsyncSession] | None = None,
        blob_store: BlobStore,
        base_url: str = "",
        max_depth: int = DEFAULT_MAX_DEPTH,
        node_model: type[NodeBase] | None = None,
        user_model: type[UserBase] | None = None,
        share_model: type[FolderShareBase] | None = None,
    ) -> None:
        if engine is None and session_factory is None:
            raise ValueError("Either engine or session_factory is required")

        self._engine = engine
        self._owns_engine = False
        self._session_factory = session_factory or async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
        self._blobs = blob_store
        self._closed = False

        self._node_model: type[NodeBase] = node_model or Node
        self._user_model: type[UserBase] = user_model or User
        self._share_model: type[FolderShareBase] = share_model or FolderShare

        self._event_bus = EventBus()
        self._walker = TreeWalker(self._node_model, max_depth)
        self._metadata = MetadataService(self._node_model, base_url)
        self._access = AccessResolver(self._node_model, self._share_model, self._walker)
        self._sharing = SharingService(self._node_model, self._share_model, self._user_model)
        self._trash = TrashService(self._node_model, self._share_model, self._walker)
        self._users = UserService(self._user_model)

    @classmethod
    def from_settings(cls, settings: CanopySettings) -> CanopyAsync:
        """Build an instance that owns its engine and a local blob store."""
        engine = create_async_engine(settings.database_url, echo=settings.echo_sql)
        canopy = cls(
            engine=engine,
            blob_store=LocalBlobStore(settings.blob_dir),
            base_url=settings.base_url,
            max_depth=settings.max_depth,
        )
        canopy._owns_engine = True
        return canopy

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Create missing tables (engine mode only) and open the blob store."""
        if self._engine is not None:
            async with self._engine.begin() as conn:
                for model in (self._user_model, self._node_model, self._share_model):
                    await conn.run_sync(
                        lambda c, m=model: m.__table__.create(c, checkfirst=True)  # type: ignore[attr-defined]
                    )
        await self._blobs.open()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        try:
            await self._blobs.close()
        except Exception:
            logger.warning("Blob store close failed", exc_info=True)
        if self._owns_engine and self._engine is not None:
            await self._engine.dispose()

    async def __aenter__(self) -> CanopyAsync:
        await self.open()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession]:
        """Yield a session that commits on success and rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    @staticmethod
    def _require_principal(principal: Principal | None) -> Principal:
        if principal is None:
            raise UnauthenticatedError("Authentication required")
        if not isinstance(principal, Principal) or not principal.user_id:
            raise UnauthenticatedError("Malformed principal")
        return principal

    async def _emit(self, event_type: EventType, principal: Principal, **fields: object) -> None:
        await self._event_bus.emit(
            NodeEvent(event_type=event_type, user_id=principal.user_id, **fields)  # type: ignore[arg-type]
        )

    # ------------------------------------------------------------------
    # Tree operations
    # ------------------------------------------------------------------

    async def list(
        self,
        principal: Principal | None,
        parent_id: str | None = None,
        *,
        owner_id: str | None = None,
    ) -> list[NodeInfo]:
        """Children of *parent_id*, or the principal's top level when None."""
        principal = self._require_principal(principal)
        async with self._session() as session:
            return await operations.list_nodes(
                session,
                principal,
                parent_id,
                owner_id=owner_id,
                metadata=self._metadata,
                access=self._access,
            )

    async def get(self, principal: Principal | None, node_id: str) -> NodeInfo:
        principal = self._require_principal(principal)
        async with self._session() as session:
            return await operations.get_node(
                session, principal, node_id, metadata=self._metadata, access=self._access
            )

    async def create_folder(
        self, principal: Principal | None, name: str, parent_id: str | None = None
    ) -> NodeInfo:
        principal = self._require_principal(principal)
        async with self._session() as session:
            info = await operations.create_folder(
                session, principal, name, parent_id, metadata=self._metadata, access=self._access
            )
        await self._emit(EventType.NODE_CREATED, principal, node_id=info.id, parent_id=parent_id)
        return info

    async def upload(
        self,
        principal: Principal | None,
        parent_id: str | None,
        items: list[UploadItem] | UploadItem,
    ) -> list[NodeInfo]:
        principal = self._require_principal(principal)
        if isinstance(items, UploadItem):
            items = [items]
        async with self._session() as session:
            infos = await operations.upload_files(
                session,
                principal,
                parent_id,
                items,
                metadata=self._metadata,
                access=self._access,
                blobs=self._blobs,
            )
        for info in infos:
            await self._emit(EventType.NODE_CREATED, principal, node_id=info.id, parent_id=parent_id)
        return infos

    async def rename(self, principal: Principal | None, node_id: str, name: str) -> NodeInfo:
        principal = self._require_principal(principal)
        async with self._session() as session:
            info = await operations.rename_node(
                session, principal, node_id, name, metadata=self._metadata, access=self._access
            )
        await self._emit(EventType.NODE_RENAMED, principal, node_id=node_id)
        return info

    async def move(
        self, principal: Principal | None, node_id: str, destination_id: str | None = None
    ) -> NodeInfo:
        """Move *node_id* under *destination_id*, or to the root when None."""
        principal = self._require_principal(principal)
        async with self._session() as session:
            node = await self._metadata.get_node(session, node_id)
            previous_parent = node.parent_id if node is not None else None
            info = await operations.move_node(
                session,
                principal,
                node_id,
                destination_id,
                metadata=self._metadata,
                access=self._access,
                walker=self._walker,
            )
        await self._emit(
            EventType.NODE_MOVED,
            principal,
            node_id=node_id,
            parent_id=destination_id,
            source_id=previous_parent,
        )
        return info

    async def copy(
        self, principal: Principal | None, node_id: str, destination_id: str
    ) -> NodeInfo:
        """Clone *node_id* into *destination_id*; returns the root of the clone."""
        principal = self._require_principal(principal)
        async with self._session() as session:
            info = await operations.copy_node(
                session,
                principal,
                node_id,
                destination_id,
                metadata=self._metadata,
                access=self._access,
                walker=self._walker,
                blobs=self._blobs,
            )
        await self._emit(
            EventType.NODE_COPIED,
            principal,
            node_id=info.id,
            parent_id=destination_id,
            source_id=node_id,
        )
        return info

    async def delete(self, principal: Principal | None, node_id: str) -> DeleteResult:
        """Soft delete for users, hard delete (rows and blobs) for admins."""
        principal = self._require_principal(principal)
        async with self._session() as session:
            result = await operations.delete_node(
                session,
                principal,
                node_id,
                access=self._access,
                walker=self._walker,
                blobs=self._blobs,
                share_model=self._share_model,
            )
        await self._emit(
            EventType.NODE_DELETED, principal, node_id=node_id, permanent=result.permanent
        )
        return result

    async def download(self, principal: Principal | None, node_id: str) -> DownloadResult:
        principal = self._require_principal(principal)
        async with self._session() as session:
            return await operations.download_node(
                session,
                principal,
                node_id,
                metadata=self._metadata,
                access=self._access,
                blobs=self._blobs,
            )

    # ------------------------------------------------------------------
    # Share operations
    # ------------------------------------------------------------------

    async def share(
        self,
        principal: Principal | None,
        folder_id: str,
        grantee_id: str,
        permission: str | Permission = "read",
    ) -> ShareInfo:
        """Share a folder with another user; re-sharing overwrites the permission."""
        principal = self._require_principal(principal)
        async with self._session() as session:
            info = await self._sharing.share(
                session, principal, folder_id, grantee_id, permission, access=self._access
            )
        await self._emit(
            EventType.SHARE_GRANTED, principal, node_id=folder_id, target_user_id=grantee_id
        )
        return info

    async def unshare(self, principal: Principal | None, folder_id: str, grantee_id: str) -> None:
        principal = self._require_principal(principal)
        async with self._session() as session:
            await self._sharing.unshare(
                session, principal, folder_id, grantee_id, access=self._access
            )
        await self._emit(
            EventType.SHARE_REVOKED, principal, node_id=folder_id, target_user_id=grantee_id
        )

    async def list_shares(self, principal: Principal | None, folder_id: str) -> list[ShareInfo]:
        principal = self._require_principal(principal)
        async with self._session() as session:
            return await self._sharing.list_shares(
                session, principal, folder_id, access=self._access
            )

    async def list_shared_with_me(self, principal: Principal | None) -> list[SharedFolderInfo]:
        principal = self._require_principal(principal)
        async with self._session() as session:
            return await self._sharing.list_shared_with(
                session, principal, metadata=self._metadata
            )

    # ------------------------------------------------------------------
    # Trash operations
    # ------------------------------------------------------------------

    async def list_trash(
        self, principal: Principal | None, *, owner_id: str | None = None
    ) -> list[NodeInfo]:
        principal = self._require_principal(principal)
        async with self._session() as session:
            return await self._trash.list_trash(
                session, principal, metadata=self._metadata, owner_id=owner_id
            )

    async def restore(self, principal: Principal | None, node_id: str) -> NodeInfo:
        principal = self._require_principal(principal)
        async with self._session() as session:
            info = await self._trash.restore(session, principal, node_id, metadata=self._metadata)
        await self._emit(
            EventType.NODE_RESTORED, principal, node_id=node_id, parent_id=info.parent_id
        )
        return info

    async def empty_trash(
        self, principal: Principal | None, *, owner_id: str | None = None
    ) -> DeleteResult:
        principal = self._require_principal(principal)
        async with self._session() as session:
            result = await self._trash.empty_trash(
                session, principal, blobs=self._blobs, owner_id=owner_id
            )
        for node_id in result.deleted_ids:
            await self._emit(EventType.NODE_DELETED, principal, node_id=node_id, permanent=True)
        return result

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    async def register_user(
        self,
        email: str,
        name: str,
        *,
        password_hash: str | None = None,
        external_id: str | None = None,
        avatar_url: str | None = None,
        role: str | Role = Role.USER,
    ) -> UserInfo:
        async with self._session() as session:
            return await self._users.register(
                session,
                email,
                name,
                password_hash=password_hash,
                external_id=external_id,
                avatar_url=avatar_url,
                role=role,
            )

    async def get_user(self, user_id: str) -> UserInfo:
        async with self._session() as session:
            return await self._users.get_user(session, user_id)

    async def get_user_by_email(self, email: str) -> UserInfo | None:
        async with self._session() as session:
            return await self._users.get_by_email(session, email)

    async def password_hash_for(self, email: str) -> str | None:
        async with self._session() as session:
            return await self._users.password_hash_for(session, email)

    async def upsert_external_user(
        self,
        external_id: str,
        email: str,
        name: str,
        *,
        avatar_url: str | None = None,
    ) -> UserInfo:
        async with self._session() as session:
            return await self._users.upsert_external_user(
                session, external_id, email, name, avatar_url=avatar_url
            )

    async def list_users(self, principal: Principal | None) -> list[UserInfo]:
        principal = self._require_principal(principal)
        async with self._session() as session:
            return await self._users.list_users(session, principal)

    async def set_role(
        self, principal: Principal | None, user_id: str, role: str | Role
    ) -> UserInfo:
        principal = self._require_principal(principal)
        async with self._session() as session:
            return await self._users.set_role(session, principal, user_id, role)

    async def delete_user(self, principal: Principal | None, user_id: str) -> DeleteResult:
        """Admin only: remove *user_id* with all their nodes, blobs and shares."""
        principal = self._require_principal(principal)
        async with self._session() as session:
            result = await self._users.delete_user(
                session,
                principal,
                user_id,
                node_model=self._node_model,
                share_model=self._share_model,
                walker=self._walker,
                blobs=self._blobs,
                sharing=self._sharing,
            )
        await self._emit(EventType.USER_DELETED, principal, target_user_id=user_id)
        return result

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def events(self) -> EventBus:
        return self._event_bus

    @property
    def blob_store(self) -> BlobStore:
        return self._blobs

    @property
    def session_factory(self) -> Callable[..., AsyncSession]:
        return self._session_factory
