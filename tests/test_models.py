"""Tests for database models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from canopy import CanopyAsync, Principal
from canopy.models import FolderShare, Node, NodeBase, NodeKind, Role, User

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

    from canopy import LocalBlobStore

# ---------------------------------------------------------------------------
# Table creation
# ---------------------------------------------------------------------------


class TestTableCreation:
    async def test_tables_exist(self, async_engine: AsyncEngine):
        async with async_engine.connect() as conn:
            names = await conn.run_sync(lambda c: inspect(c).get_table_names())
        assert {"canopy_users", "canopy_nodes", "canopy_shares"} <= set(names)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


class TestDefaultFactories:
    async def test_node_defaults(self, async_session: AsyncSession):
        node = Node(name="Docs", kind=NodeKind.FOLDER.value, owner_id="alice")
        async_session.add(node)
        await async_session.flush()

        assert node.id
        assert node.parent_id is None
        assert node.deleted is False
        assert node.blob_ref is None
        assert node.is_folder
        assert not node.is_file
        assert node.created_at is not None

    async def test_user_defaults(self, async_session: AsyncSession):
        user = User(email="a@example.com", name="A")
        async_session.add(user)
        await async_session.flush()

        assert user.id
        assert user.role == Role.USER.value
        assert not user.is_admin
        assert user.password_hash is None
        assert user.external_id is None

    def test_unique_ids(self):
        a = Node(name="a", owner_id="u")
        b = Node(name="b", owner_id="u")
        assert a.id != b.id

    def test_touch_bumps_updated_at(self):
        node = Node(name="a", owner_id="u")
        before = node.updated_at
        node.touch()
        assert node.updated_at >= before


# ---------------------------------------------------------------------------
# Constraints
# ---------------------------------------------------------------------------


class TestConstraints:
    async def test_duplicate_email_rejected(self, async_session: AsyncSession):
        async_session.add(User(email="dup@example.com", name="One"))
        await async_session.flush()
        async_session.add(User(email="dup@example.com", name="Two"))
        with pytest.raises(IntegrityError):
            await async_session.flush()

    async def test_one_share_per_folder_and_grantee(self, async_session: AsyncSession):
        async_session.add(FolderShare(folder_id="f1", grantee_id="bob", permission="read"))
        await async_session.flush()
        async_session.add(FolderShare(folder_id="f1", grantee_id="bob", permission="write"))
        with pytest.raises(IntegrityError):
            await async_session.flush()

    async def test_same_grantee_on_two_folders(self, async_session: AsyncSession):
        async_session.add(FolderShare(folder_id="f1", grantee_id="bob"))
        async_session.add(FolderShare(folder_id="f2", grantee_id="bob"))
        await async_session.flush()
        result = await async_session.execute(
            select(FolderShare).where(FolderShare.grantee_id == "bob")
        )
        assert len(result.scalars().all()) == 2


# ---------------------------------------------------------------------------
# Custom tables
# ---------------------------------------------------------------------------


class CustomNode(NodeBase, table=True):
    __tablename__ = "custom_nodes"


class TestCustomTableName:
    def test_subclass_uses_own_table(self):
        assert CustomNode.__tablename__ == "custom_nodes"
        assert "custom_nodes" in CustomNode.metadata.tables

    async def test_facade_with_custom_node_model(
        self, async_engine: AsyncEngine, blob_store: LocalBlobStore
    ):
        c = CanopyAsync(engine=async_engine, blob_store=blob_store, node_model=CustomNode)
        await c.open()
        try:
            folder = await c.create_folder(Principal("alice"), "Docs")
            async with c.session_factory() as session:
                assert await session.get(CustomNode, folder.id) is not None
                assert await session.get(Node, folder.id) is None
        finally:
            await c.close()
