"""Tests for TrashService — listing trash roots, restore and empty."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from canopy import UploadItem
from canopy.exceptions import NodeNotFoundError

if TYPE_CHECKING:
    from canopy import CanopyAsync, LocalBlobStore, NodeInfo, Principal


@pytest.fixture
async def tree(canopy: CanopyAsync, alice: Principal) -> dict[str, NodeInfo]:
    docs = await canopy.create_folder(alice, "Docs")
    sub = await canopy.create_folder(alice, "Sub", docs.id)
    [a] = await canopy.upload(alice, sub.id, [UploadItem("a.txt", b"a")])
    return {"docs": docs, "sub": sub, "a": a}


class TestListTrash:
    async def test_only_roots(self, canopy: CanopyAsync, alice: Principal, tree: dict):
        await canopy.delete(alice, tree["docs"].id)
        trash = await canopy.list_trash(alice)
        assert [n.id for n in trash] == [tree["docs"].id]
        assert trash[0].deleted is True

    async def test_separately_trashed_child_is_own_root(
        self, canopy: CanopyAsync, alice: Principal, tree: dict
    ):
        await canopy.delete(alice, tree["a"].id)
        assert [n.id for n in await canopy.list_trash(alice)] == [tree["a"].id]

    async def test_scoped_to_owner(
        self, canopy: CanopyAsync, alice: Principal, bob: Principal, tree: dict
    ):
        await canopy.delete(alice, tree["docs"].id)
        assert await canopy.list_trash(bob) == []

    async def test_admin_sees_all(
        self, canopy: CanopyAsync, alice: Principal, bob: Principal, admin: Principal, tree: dict
    ):
        mine = await canopy.create_folder(bob, "Mine")
        await canopy.delete(alice, tree["docs"].id)
        await canopy.delete(bob, mine.id)
        assert {n.id for n in await canopy.list_trash(admin)} == {tree["docs"].id, mine.id}
        only_bob = await canopy.list_trash(admin, owner_id=bob.user_id)
        assert [n.id for n in only_bob] == [mine.id]


class TestRestore:
    async def test_restores_subtree(self, canopy: CanopyAsync, alice: Principal, tree: dict):
        await canopy.delete(alice, tree["docs"].id)
        restored = await canopy.restore(alice, tree["docs"].id)
        assert restored.deleted is False
        assert restored.parent_id is None
        assert [n.name for n in await canopy.list(alice, tree["sub"].id)] == ["a.txt"]
        assert await canopy.list_trash(alice) == []

    async def test_reparents_to_root_when_parent_trashed(
        self, canopy: CanopyAsync, alice: Principal, tree: dict
    ):
        await canopy.delete(alice, tree["a"].id)
        await canopy.delete(alice, tree["docs"].id)
        restored = await canopy.restore(alice, tree["a"].id)
        assert restored.parent_id is None
        assert [n.name for n in await canopy.list(alice)] == ["a.txt"]

    async def test_keeps_parent_when_live(
        self, canopy: CanopyAsync, alice: Principal, tree: dict
    ):
        await canopy.delete(alice, tree["a"].id)
        restored = await canopy.restore(alice, tree["a"].id)
        assert restored.parent_id == tree["sub"].id

    async def test_only_owner(
        self, canopy: CanopyAsync, alice: Principal, bob: Principal, tree: dict
    ):
        await canopy.delete(alice, tree["docs"].id)
        with pytest.raises(NodeNotFoundError):
            await canopy.restore(bob, tree["docs"].id)

    async def test_admin_restores_anyones(
        self, canopy: CanopyAsync, alice: Principal, admin: Principal, tree: dict
    ):
        await canopy.delete(alice, tree["docs"].id)
        await canopy.restore(admin, tree["docs"].id)
        assert [n.name for n in await canopy.list(alice)] == ["Docs"]

    async def test_live_node_not_in_trash(
        self, canopy: CanopyAsync, alice: Principal, tree: dict
    ):
        with pytest.raises(NodeNotFoundError, match="Not in trash"):
            await canopy.restore(alice, tree["docs"].id)


class TestEmptyTrash:
    async def test_hard_deletes_roots(
        self,
        canopy: CanopyAsync,
        alice: Principal,
        admin: Principal,
        tree: dict,
        blob_store: LocalBlobStore,
    ):
        keep = await canopy.create_folder(alice, "Keep")
        await canopy.delete(alice, tree["docs"].id)

        result = await canopy.empty_trash(alice)
        assert result.permanent
        assert result.total_deleted == 3
        assert result.blobs_removed == 1
        assert list(blob_store.root.iterdir()) == []

        assert await canopy.list_trash(alice) == []
        assert [n.id for n in await canopy.list(admin)] == [keep.id]

    async def test_leaves_other_users_trash(
        self, canopy: CanopyAsync, alice: Principal, bob: Principal, tree: dict
    ):
        mine = await canopy.create_folder(bob, "Mine")
        await canopy.delete(bob, mine.id)
        await canopy.delete(alice, tree["docs"].id)

        await canopy.empty_trash(alice)
        assert [n.id for n in await canopy.list_trash(bob)] == [mine.id]

    async def test_nested_roots_deleted_once(
        self, canopy: CanopyAsync, alice: Principal, bob: Principal, tree: dict
    ):
        # alice's trashed file sits under bob's live folder inside alice's trashed Docs
        await canopy.share(alice, tree["docs"].id, bob.user_id, "write")
        bobs = await canopy.create_folder(bob, "Bob's", tree["docs"].id)
        [inner] = await canopy.upload(alice, bobs.id, [UploadItem("inner.txt", b"i")])
        await canopy.delete(alice, inner.id)
        await canopy.delete(alice, tree["docs"].id)

        roots = {n.id for n in await canopy.list_trash(alice)}
        assert roots == {tree["docs"].id, inner.id}

        result = await canopy.empty_trash(alice)
        assert len(result.deleted_ids) == len(set(result.deleted_ids))
        assert inner.id in result.deleted_ids


class TestOtherOwnersContent:
    async def test_empty_keeps_other_users_files(
        self,
        canopy: CanopyAsync,
        alice: Principal,
        carol: Principal,
        tree: dict,
        blob_store: LocalBlobStore,
    ):
        await canopy.share(alice, tree["docs"].id, carol.user_id, "write")
        [theirs] = await canopy.upload(carol, tree["sub"].id, [UploadItem("carol.txt", b"c")])
        await canopy.delete(alice, tree["docs"].id)

        result = await canopy.empty_trash(alice)
        assert theirs.id not in result.deleted_ids
        assert set(result.deleted_ids) == {tree["docs"].id, tree["sub"].id, tree["a"].id}
        assert result.blobs_removed == 1

        survivor = await canopy.get(carol, theirs.id)
        assert survivor.parent_id is None
        assert survivor.deleted is False
        assert [n.name for n in await canopy.list(carol)] == ["carol.txt"]
        assert (await canopy.download(carol, theirs.id)).data == b"c"
        assert len(list(blob_store.root.iterdir())) == 1

    async def test_admin_empty_removes_everything(
        self,
        canopy: CanopyAsync,
        alice: Principal,
        carol: Principal,
        admin: Principal,
        tree: dict,
    ):
        await canopy.share(alice, tree["docs"].id, carol.user_id, "write")
        [theirs] = await canopy.upload(carol, tree["sub"].id, [UploadItem("carol.txt", b"c")])
        await canopy.delete(alice, tree["docs"].id)

        result = await canopy.empty_trash(admin)
        assert theirs.id in result.deleted_ids
        assert await canopy.list(carol) == []

    async def test_grantee_trash_under_shared_folder(
        self, canopy: CanopyAsync, alice: Principal, bob: Principal, tree: dict
    ):
        await canopy.share(alice, tree["docs"].id, bob.user_id, "write")
        [mine] = await canopy.upload(bob, tree["docs"].id, [UploadItem("bob.txt", b"b")])
        await canopy.delete(bob, tree["docs"].id)

        assert [n.id for n in await canopy.list_trash(bob)] == [mine.id]
        assert [n.id for n in await canopy.list_trash(alice)] == [tree["docs"].id]

        restored = await canopy.restore(bob, mine.id)
        assert restored.parent_id is None
        assert [n.name for n in await canopy.list(bob)] == ["bob.txt"]

    async def test_owner_empty_leaves_grantee_trash(
        self, canopy: CanopyAsync, alice: Principal, bob: Principal, tree: dict
    ):
        await canopy.share(alice, tree["docs"].id, bob.user_id, "write")
        [mine] = await canopy.upload(bob, tree["docs"].id, [UploadItem("bob.txt", b"b")])
        await canopy.delete(bob, tree["docs"].id)

        await canopy.empty_trash(alice)
        [left] = await canopy.list_trash(bob)
        assert left.id == mine.id
        assert left.parent_id is None
