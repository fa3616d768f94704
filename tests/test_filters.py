"""Tests for the node filter AST and its SQL compilation."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from canopy.models import Node, NodeKind
from canopy.tree.filters import (
    Comparison,
    FilterOp,
    LogicalGroup,
    LogicalOp,
    and_,
    at_root,
    children_of,
    eq,
    in_,
    is_null,
    live,
    ne,
    not_in,
    or_,
    owned_by,
)
from canopy.tree.metadata import MetadataService

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from .conftest import NodeFactory


@pytest.fixture
def metadata() -> MetadataService:
    return MetadataService(Node)


# ---------------------------------------------------------------------------
# AST construction
# ---------------------------------------------------------------------------


class TestBuilders:
    def test_eq(self):
        assert eq("name", "a") == Comparison(field="name", op=FilterOp.EQ, value="a")

    def test_in_copies_values(self):
        values = ["a"]
        expr = in_("id", values)
        values.append("b")
        assert expr.value == ["a"]

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="Unknown node field"):
            eq("password_hash", "x")

    def test_groups(self):
        expr = and_(live(), or_(at_root(), owned_by("u")))
        assert isinstance(expr, LogicalGroup)
        assert expr.op is LogicalOp.AND
        assert isinstance(expr.expressions[1], LogicalGroup)
        assert expr.expressions[1].op is LogicalOp.OR

    def test_shorthands(self):
        assert live() == eq("deleted", False)
        assert at_root() == is_null("parent_id")
        assert children_of("p") == eq("parent_id", "p")


# ---------------------------------------------------------------------------
# Compilation against a real table
# ---------------------------------------------------------------------------


class TestCompile:
    async def test_children_and_live(
        self, async_session: AsyncSession, make_node: NodeFactory, metadata: MetadataService
    ):
        root = await make_node("root", "alice")
        await make_node("a", "alice", parent=root)
        await make_node("gone", "alice", parent=root, deleted=True)

        nodes = await metadata.find(async_session, and_(children_of(root.id), live()))
        assert [n.name for n in nodes] == ["a"]

    async def test_or_across_owners(
        self, async_session: AsyncSession, make_node: NodeFactory, metadata: MetadataService
    ):
        a = await make_node("a", "alice")
        await make_node("b", "bob")
        c = await make_node("c", "carol")

        nodes = await metadata.find(
            async_session, or_(owned_by("alice"), in_("id", [c.id]))
        )
        assert {n.id for n in nodes} == {a.id, c.id}

    async def test_empty_in_matches_nothing(
        self, async_session: AsyncSession, make_node: NodeFactory, metadata: MetadataService
    ):
        await make_node("a", "alice")
        assert await metadata.find(async_session, in_("id", [])) == []

    async def test_empty_not_in_matches_everything(
        self, async_session: AsyncSession, make_node: NodeFactory, metadata: MetadataService
    ):
        await make_node("a", "alice")
        await make_node("b", "alice")
        assert len(await metadata.find(async_session, not_in("id", []))) == 2

    async def test_ne_and_is_not_null(
        self, async_session: AsyncSession, make_node: NodeFactory, metadata: MetadataService
    ):
        root = await make_node("root", "alice")
        child = await make_node("child", "bob", parent=root)

        nodes = await metadata.find(
            async_session, and_(ne("owner_id", "alice"), is_null("parent_id", null=False))
        )
        assert [n.id for n in nodes] == [child.id]

    async def test_values_are_bound_not_interpolated(
        self, async_session: AsyncSession, make_node: NodeFactory, metadata: MetadataService
    ):
        await make_node("a", "alice")
        nodes = await metadata.find(async_session, owned_by("alice' OR '1'='1"))
        assert nodes == []


class TestListingOrder:
    async def test_folders_first_then_created(
        self, async_session: AsyncSession, make_node: NodeFactory, metadata: MetadataService
    ):
        root = await make_node("root", "alice")
        f1 = await make_node("z-file", "alice", parent=root, kind=NodeKind.FILE)
        d1 = await make_node("b-folder", "alice", parent=root)
        d2 = await make_node("a-folder", "alice", parent=root)

        nodes = await metadata.find(async_session, children_of(root.id))
        assert [n.id for n in nodes] == [d1.id, d2.id, f1.id]
