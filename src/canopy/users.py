"""UserService — registration, external-identity linking, and admin actions.

Credential handling stays with the caller: ``password_hash`` is stored
as given and never returned.  Admin actions take the acting
``Principal`` and raise ``ForbiddenError`` for everyone else.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from canopy.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidOperationError,
    UserNotFoundError,
)
from canopy.models.users import Role
from canopy.tree.metadata import ensure_utc
from canopy.tree.operations import hard_delete_subtree, nodes_owned_by
from canopy.tree.types import DeleteResult, UserInfo

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from canopy.models.nodes import NodeBase
    from canopy.models.shares import FolderShareBase
    from canopy.models.users import UserBase
    from canopy.tree.blobs import BlobStore
    from canopy.tree.sharing import SharingService
    from canopy.tree.traversal import TreeWalker
    from canopy.tree.types import Principal

logger = logging.getLogger(__name__)


def normalize_email(email: str | None) -> str:
    """Trim and lower-case *email*; raise if it is obviously malformed."""
    email = (email or "").strip().lower()
    if not email:
        raise InvalidOperationError("Email is required")
    if "@" not in email:
        raise InvalidOperationError(f"Invalid email: {email!r}")
    return email


def parse_role(value: str | Role) -> Role:
    try:
        return Role(value)
    except ValueError:
        raise InvalidOperationError(f"Invalid role: {value!r}. Must be 'user' or 'admin'.") from None


def user_to_info(user: UserBase) -> UserInfo:
    return UserInfo(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        created_at=ensure_utc(user.created_at),
        updated_at=ensure_utc(user.updated_at),
        avatar_url=user.avatar_url,
        external_id=user.external_id,
    )


class UserService:
    """Stateless user management over the user table.

    Receives the concrete user model at construction so callers can
    use custom SQLModel subclasses.
    """

    def __init__(self, user_model: type[UserBase]) -> None:
        self._user_model = user_model

    @staticmethod
    def _require_admin(principal: Principal) -> None:
        if not principal.is_admin:
            raise ForbiddenError("Admin role required")

    async def _get(self, session: AsyncSession, user_id: str) -> UserBase:
        user = await session.get(self._user_model, user_id)
        if user is None:
            raise UserNotFoundError(f"User not found: {user_id}")
        return user

    async def _find_by(self, session: AsyncSession, **criteria: str) -> UserBase | None:
        model = self._user_model
        query = select(model)
        for column, value in criteria.items():
            query = query.where(getattr(model, column) == value)
        result = await session.execute(query)
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Registration and lookup
    # ------------------------------------------------------------------

    async def register(
        self,
        session: AsyncSession,
        email: str,
        name: str,
        *,
        password_hash: str | None = None,
        external_id: str | None = None,
        avatar_url: str | None = None,
        role: str | Role = Role.USER,
    ) -> UserInfo:
        """Create a user.  Flushes but does not commit."""
        email = normalize_email(email)
        name = (name or "").strip()
        if not name:
            raise InvalidOperationError("Name is required")
        level = parse_role(role)

        if await self._find_by(session, email=email) is not None:
            raise ConflictError(f"Email already registered: {email}")
        if external_id is not None and await self._find_by(session, external_id=external_id):
            raise ConflictError(f"External id already linked: {external_id}")

        user = self._user_model(
            email=email,
            name=name,
            password_hash=password_hash,
            external_id=external_id,
            avatar_url=avatar_url,
            role=level.value,
        )
        session.add(user)
        try:
            await session.flush()
        except IntegrityError:
            raise ConflictError(f"Email or external id already registered: {email}") from None
        return user_to_info(user)

    async def get_user(self, session: AsyncSession, user_id: str) -> UserInfo:
        return user_to_info(await self._get(session, user_id))

    async def get_by_email(self, session: AsyncSession, email: str) -> UserInfo | None:
        user = await self._find_by(session, email=normalize_email(email))
        return user_to_info(user) if user is not None else None

    async def password_hash_for(self, session: AsyncSession, email: str) -> str | None:
        """Stored hash for *email*, for the caller's credential check."""
        user = await self._find_by(session, email=normalize_email(email))
        return user.password_hash if user is not None else None

    async def upsert_external_user(
        self,
        session: AsyncSession,
        external_id: str,
        email: str,
        name: str,
        *,
        avatar_url: str | None = None,
    ) -> UserInfo:
        """Find or create the user behind an external (OAuth) identity.

        Lookup order: external id, then email (linking the external id
        to that account), then a fresh registration.
        """
        if not external_id:
            raise InvalidOperationError("External id is required")

        user = await self._find_by(session, external_id=external_id)
        if user is None:
            user = await self._find_by(session, email=normalize_email(email))
            if user is None:
                return await self.register(
                    session, email, name, external_id=external_id, avatar_url=avatar_url
                )
            user.external_id = external_id
            logger.debug("Linked external id to existing user %s", user.id)

        if avatar_url and user.avatar_url != avatar_url:
            user.avatar_url = avatar_url
        user.updated_at = datetime.now(UTC)
        await session.flush()
        return user_to_info(user)

    # ------------------------------------------------------------------
    # Admin actions
    # ------------------------------------------------------------------

    async def list_users(self, session: AsyncSession, principal: Principal) -> list[UserInfo]:
        self._require_admin(principal)
        model = self._user_model
        result = await session.execute(select(model).order_by(model.name, model.email))  # type: ignore[arg-type]
        return [user_to_info(u) for u in result.scalars().all()]

    async def set_role(
        self,
        session: AsyncSession,
        principal: Principal,
        user_id: str,
        role: str | Role,
    ) -> UserInfo:
        self._require_admin(principal)
        level = parse_role(role)
        user = await self._get(session, user_id)
        user.role = level.value
        user.updated_at = datetime.now(UTC)
        await session.flush()
        return user_to_info(user)

    async def delete_user(
        self,
        session: AsyncSession,
        principal: Principal,
        user_id: str,
        *,
        node_model: type[NodeBase],
        share_model: type[FolderShareBase],
        walker: TreeWalker,
        blobs: BlobStore,
        sharing: SharingService,
    ) -> DeleteResult:
        """Remove a user together with their nodes, blobs and shares.

        Every node the user owns is hard-deleted with its whole subtree,
        including nodes other users placed inside those folders.
        """
        self._require_admin(principal)
        if user_id == principal.user_id:
            raise InvalidOperationError("Admins cannot delete their own account")
        user = await self._get(session, user_id)

        removed_ids: list[str] = []
        gone: set[str] = set()
        blobs_removed = 0
        for node in await nodes_owned_by(session, node_model, user_id):
            if node.id in gone:
                continue
            result = await hard_delete_subtree(
                session, node, walker=walker, blobs=blobs, share_model=share_model
            )
            gone.update(result.deleted_ids)
            removed_ids.extend(result.deleted_ids)
            blobs_removed += result.blobs_removed

        shares_removed = await sharing.delete_for_user(session, user_id)
        await session.delete(user)
        await session.flush()

        logger.info(
            "Deleted user %s: %d nodes, %d blobs, %d shares",
            user_id,
            len(removed_ids),
            blobs_removed,
            shares_removed,
        )
        return DeleteResult(
            node_id=None,
            permanent=True,
            total_deleted=len(removed_ids),
            blobs_removed=blobs_removed,
            deleted_ids=removed_ids,
        )
