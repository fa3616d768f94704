"""SharingService — folder share CRUD with ownership checks.

Stateless service that receives the node, share and user models at
construction and a session at call time, following the MetadataService
pattern.  Only a folder's owner (or an admin) manages its shares.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlmodel import select

from canopy.exceptions import (
    ForbiddenError,
    InvalidOperationError,
    ShareNotFoundError,
    UserNotFoundError,
)

from .metadata import ensure_utc
from .permissions import Permission
from .types import ShareInfo, SharedFolderInfo

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from canopy.models.nodes import NodeBase
    from canopy.models.shares import FolderShareBase
    from canopy.models.users import UserBase

    from .access import AccessResolver
    from .metadata import MetadataService
    from .types import Principal


class SharingService:
    """Manages folder shares between users.

    Constructor receives the concrete models so callers can use custom
    SQLModel subclasses with different table names.
    """

    def __init__(
        self,
        node_model: type[NodeBase],
        share_model: type[FolderShareBase],
        user_model: type[UserBase],
    ) -> None:
        self._node_model = node_model
        self._share_model = share_model
        self._user_model = user_model

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _owned_folder(
        self,
        session: AsyncSession,
        principal: Principal,
        folder_id: str,
        access: AccessResolver,
    ) -> NodeBase:
        """Resolve *folder_id* and require the principal to own it (or be admin)."""
        folder = (await access.resolve(session, principal, folder_id, Permission.READ)).node
        if not principal.is_admin and folder.owner_id != principal.user_id:
            raise ForbiddenError("Only the folder owner can manage its shares")
        if not folder.is_folder:
            raise InvalidOperationError("Only folders can be shared")
        return folder

    async def _find_share(
        self, session: AsyncSession, folder_id: str, grantee_id: str
    ) -> FolderShareBase | None:
        model = self._share_model
        result = await session.execute(
            select(model).where(
                model.folder_id == folder_id,
                model.grantee_id == grantee_id,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _to_info(share: FolderShareBase, grantee: UserBase | None) -> ShareInfo:
        return ShareInfo(
            folder_id=share.folder_id,
            grantee_id=share.grantee_id,
            permission=share.permission,
            granted_by=share.granted_by,
            grantee_email=grantee.email if grantee is not None else None,
            grantee_name=grantee.name if grantee is not None else None,
            created_at=ensure_utc(share.created_at),
            updated_at=ensure_utc(share.updated_at),
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def share(
        self,
        session: AsyncSession,
        principal: Principal,
        folder_id: str,
        grantee_id: str,
        permission: str | Permission,
        *,
        access: AccessResolver,
    ) -> ShareInfo:
        """Grant *grantee_id* access to *folder_id*.  Flushes but does not commit.

        Re-sharing with the same grantee overwrites the permission.
        """
        folder = await self._owned_folder(session, principal, folder_id, access)
        level = Permission.parse(permission)

        if grantee_id == principal.user_id or grantee_id == folder.owner_id:
            raise InvalidOperationError("Cannot share a folder with its owner or yourself")
        grantee = await session.get(self._user_model, grantee_id)
        if grantee is None:
            raise UserNotFoundError(f"User not found: {grantee_id}")

        share = await self._find_share(session, folder_id, grantee_id)
        if share is None:
            share = self._share_model(
                folder_id=folder_id,
                grantee_id=grantee_id,
                permission=level.value,
                granted_by=principal.user_id,
            )
            session.add(share)
        else:
            share.permission = level.value
            share.granted_by = principal.user_id
            share.updated_at = datetime.now(UTC)
        await session.flush()
        return self._to_info(share, grantee)

    async def unshare(
        self,
        session: AsyncSession,
        principal: Principal,
        folder_id: str,
        grantee_id: str,
        *,
        access: AccessResolver,
    ) -> None:
        """Remove the share on *folder_id* for *grantee_id*."""
        await self._owned_folder(session, principal, folder_id, access)
        share = await self._find_share(session, folder_id, grantee_id)
        if share is None:
            raise ShareNotFoundError(f"No share on {folder_id} for {grantee_id}")
        await session.delete(share)
        await session.flush()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_shares(
        self,
        session: AsyncSession,
        principal: Principal,
        folder_id: str,
        *,
        access: AccessResolver,
    ) -> list[ShareInfo]:
        """All shares on *folder_id* with grantee identity, oldest first."""
        await self._owned_folder(session, principal, folder_id, access)
        share_model = self._share_model
        user_model = self._user_model
        result = await session.execute(
            select(share_model, user_model)
            .outerjoin(user_model, user_model.id == share_model.grantee_id)  # type: ignore[arg-type]
            .where(share_model.folder_id == folder_id)
            .order_by(share_model.created_at, share_model.id)  # type: ignore[arg-type]
        )
        return [self._to_info(share, grantee) for share, grantee in result.all()]

    async def list_shared_with(
        self,
        session: AsyncSession,
        principal: Principal,
        *,
        metadata: MetadataService,
    ) -> list[SharedFolderInfo]:
        """Live folders shared with *principal*, joined with their owners."""
        share_model = self._share_model
        node_model = self._node_model
        user_model = self._user_model
        result = await session.execute(
            select(share_model, node_model, user_model)
            .join(node_model, node_model.id == share_model.folder_id)  # type: ignore[arg-type]
            .outerjoin(user_model, user_model.id == node_model.owner_id)  # type: ignore[arg-type]
            .where(
                share_model.grantee_id == principal.user_id,
                node_model.deleted == False,  # noqa: E712
            )
            .order_by(share_model.created_at, node_model.name)  # type: ignore[arg-type]
        )
        shared: list[SharedFolderInfo] = []
        for share, folder, owner in result.all():
            level = Permission(share.permission)
            shared.append(
                SharedFolderInfo(
                    folder=metadata.node_to_info(folder, level),
                    permission=level.value,
                    owner_id=folder.owner_id,
                    owner_name=owner.name if owner is not None else None,
                    owner_email=owner.email if owner is not None else None,
                    shared_at=ensure_utc(share.created_at),
                )
            )
        return shared

    async def delete_for_user(self, session: AsyncSession, user_id: str) -> int:
        """Remove every share *user_id* granted or received.  Returns the count."""
        model = self._share_model
        result = await session.execute(
            select(model).where(
                (model.grantee_id == user_id) | (model.granted_by == user_id)  # type: ignore[operator]
            )
        )
        shares = list(result.scalars().all())
        for share in shares:
            await session.delete(share)
        if shares:
            await session.flush()
        return len(shares)
