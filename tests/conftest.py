"""Shared fixtures for Canopy tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from canopy import CanopyAsync, LocalBlobStore, Principal, Role
from canopy.models import FolderShare, Node, NodeKind, User

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine

    from canopy import UserInfo

    NodeFactory = Callable[..., Awaitable[Node]]


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with all tables created."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Async session for service-level tests, rolled back after each test."""
    factory = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def blob_store(tmp_path: Path) -> LocalBlobStore:
    store = LocalBlobStore(tmp_path / "blobs")
    await store.open()
    return store


# ---------------------------------------------------------------------------
# Service-level seeding
# ---------------------------------------------------------------------------


@pytest.fixture
def make_node(async_session: AsyncSession) -> NodeFactory:
    """Insert a node directly, bypassing access checks."""

    async def _make(
        name: str,
        owner_id: str,
        *,
        parent: Node | None = None,
        kind: NodeKind = NodeKind.FOLDER,
        deleted: bool = False,
        blob_ref: str | None = None,
        mime_type: str | None = None,
    ) -> Node:
        node = Node(
            name=name,
            kind=kind.value,
            owner_id=owner_id,
            parent_id=parent.id if parent is not None else None,
            deleted=deleted,
            blob_ref=blob_ref,
            mime_type=mime_type,
        )
        if kind is NodeKind.FILE and blob_ref is None:
            node.blob_ref = f"{node.id}.bin"
        async_session.add(node)
        await async_session.flush()
        return node

    return _make


@pytest.fixture
async def share_folder(async_session: AsyncSession) -> Callable[..., Awaitable[FolderShare]]:
    async def _share(folder: Node, grantee_id: str, permission: str = "read") -> FolderShare:
        share = FolderShare(
            folder_id=folder.id,
            grantee_id=grantee_id,
            permission=permission,
            granted_by=folder.owner_id,
        )
        async_session.add(share)
        await async_session.flush()
        return share

    return _share


@pytest.fixture
async def seeded_users(async_session: AsyncSession) -> dict[str, User]:
    users = {
        "alice": User(id="alice", email="alice@example.com", name="Alice"),
        "bob": User(id="bob", email="bob@example.com", name="Bob"),
        "carol": User(id="carol", email="carol@example.com", name="Carol"),
        "admin": User(id="admin", email="admin@example.com", name="Admin", role="admin"),
    }
    async_session.add_all(users.values())
    await async_session.flush()
    return users


# ---------------------------------------------------------------------------
# Facade
# ---------------------------------------------------------------------------


@pytest.fixture
async def canopy(
    async_engine: AsyncEngine, blob_store: LocalBlobStore
) -> AsyncIterator[CanopyAsync]:
    c = CanopyAsync(engine=async_engine, blob_store=blob_store, base_url="https://files.test")
    await c.open()
    yield c
    await c.close()


@pytest.fixture
async def users(canopy: CanopyAsync) -> dict[str, UserInfo]:
    return {
        "alice": await canopy.register_user("alice@example.com", "Alice"),
        "bob": await canopy.register_user("bob@example.com", "Bob"),
        "carol": await canopy.register_user("carol@example.com", "Carol"),
        "admin": await canopy.register_user("admin@example.com", "Admin", role=Role.ADMIN),
    }


@pytest.fixture
def alice(users: dict[str, UserInfo]) -> Principal:
    return Principal(users["alice"].id)


@pytest.fixture
def bob(users: dict[str, UserInfo]) -> Principal:
    return Principal(users["bob"].id)


@pytest.fixture
def carol(users: dict[str, UserInfo]) -> Principal:
    return Principal(users["carol"].id)


@pytest.fixture
def admin(users: dict[str, UserInfo]) -> Principal:
    return Principal.admin(users["admin"].id)
