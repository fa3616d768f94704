"""Canopy — synchronous wrapper over ``CanopyAsync``."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any

from canopy._canopy_async import CanopyAsync

if TYPE_CHECKING:
    from canopy.config import CanopySettings
    from canopy.events import EventBus
    from canopy.models.users import Role
    from canopy.tree.permissions import Permission
    from canopy.tree.types import (
        DeleteResult,
        DownloadResult,
        NodeInfo,
        Principal,
        SharedFolderInfo,
        ShareInfo,
        UploadItem,
        UserInfo,
    )

logger = logging.getLogger(__name__)


class Canopy:
    """Synchronous facade backed by a private event loop in a daemon thread.

    Every method submits the matching ``CanopyAsync`` coroutine to the
    loop and blocks for its result, so callers can use Canopy from plain
    sync code or from inside an unrelated running loop.

    Usage::

        with Canopy(engine=engine, blob_store=LocalBlobStore("/srv/blobs")) as c:
            docs = c.create_folder(alice, "Docs")
            c.share(alice, docs.id, bob_id, "read")
    """

    def __init__(self, **kwargs: Any) -> None:
        self._closed = False
        self._start_loop()
        try:
            self._async = CanopyAsync(**kwargs)
            self._run(self._async.open())
        except BaseException:
            self._stop_loop()
            raise

    @classmethod
    def from_settings(cls, settings: CanopySettings) -> Canopy:
        instance = cls.__new__(cls)
        instance._closed = False
        instance._start_loop()
        try:
            instance._async = CanopyAsync.from_settings(settings)
            instance._run(instance._async.open())
        except BaseException:
            instance._stop_loop()
            raise
        return instance

    # ------------------------------------------------------------------
    # Loop plumbing
    # ------------------------------------------------------------------

    def _start_loop(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)
        self._thread.start()

    def _stop_loop(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
        if not self._thread.is_alive():
            self._loop.close()

    def _run(self, coro: Any) -> Any:
        """Submit *coro* to the private loop and block for the result."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the async facade, stop the event loop and join the thread."""
        if self._closed:
            return
        self._closed = True

        try:
            self._run(self._async.close())
        finally:
            self._stop_loop()

    def __enter__(self) -> Canopy:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Tree operations
    # ------------------------------------------------------------------

    def list(
        self,
        principal: Principal | None,
        parent_id: str | None = None,
        *,
        owner_id: str | None = None,
    ) -> list[NodeInfo]:
        return self._run(self._async.list(principal, parent_id, owner_id=owner_id))

    def get(self, principal: Principal | None, node_id: str) -> NodeInfo:
        return self._run(self._async.get(principal, node_id))

    def create_folder(
        self, principal: Principal | None, name: str, parent_id: str | None = None
    ) -> NodeInfo:
        return self._run(self._async.create_folder(principal, name, parent_id))

    def upload(
        self,
        principal: Principal | None,
        parent_id: str | None,
        items: list[UploadItem] | UploadItem,
    ) -> list[NodeInfo]:
        return self._run(self._async.upload(principal, parent_id, items))

    def rename(self, principal: Principal | None, node_id: str, name: str) -> NodeInfo:
        return self._run(self._async.rename(principal, node_id, name))

    def move(
        self, principal: Principal | None, node_id: str, destination_id: str | None = None
    ) -> NodeInfo:
        return self._run(self._async.move(principal, node_id, destination_id))

    def copy(self, principal: Principal | None, node_id: str, destination_id: str) -> NodeInfo:
        return self._run(self._async.copy(principal, node_id, destination_id))

    def delete(self, principal: Principal | None, node_id: str) -> DeleteResult:
        return self._run(self._async.delete(principal, node_id))

    def download(self, principal: Principal | None, node_id: str) -> DownloadResult:
        return self._run(self._async.download(principal, node_id))

    # ------------------------------------------------------------------
    # Share operations
    # ------------------------------------------------------------------

    def share(
        self,
        principal: Principal | None,
        folder_id: str,
        grantee_id: str,
        permission: str | Permission = "read",
    ) -> ShareInfo:
        return self._run(self._async.share(principal, folder_id, grantee_id, permission))

    def unshare(self, principal: Principal | None, folder_id: str, grantee_id: str) -> None:
        self._run(self._async.unshare(principal, folder_id, grantee_id))

    def list_shares(self, principal: Principal | None, folder_id: str) -> list[ShareInfo]:
        return self._run(self._async.list_shares(principal, folder_id))

    def list_shared_with_me(self, principal: Principal | None) -> list[SharedFolderInfo]:
        return self._run(self._async.list_shared_with_me(principal))

    # ------------------------------------------------------------------
    # Trash operations
    # ------------------------------------------------------------------

    def list_trash(
        self, principal: Principal | None, *, owner_id: str | None = None
    ) -> list[NodeInfo]:
        return self._run(self._async.list_trash(principal, owner_id=owner_id))

    def restore(self, principal: Principal | None, node_id: str) -> NodeInfo:
        return self._run(self._async.restore(principal, node_id))

    def empty_trash(
        self, principal: Principal | None, *, owner_id: str | None = None
    ) -> DeleteResult:
        return self._run(self._async.empty_trash(principal, owner_id=owner_id))

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    def register_user(self, email: str, name: str, **kwargs: Any) -> UserInfo:
        return self._run(self._async.register_user(email, name, **kwargs))

    def get_user(self, user_id: str) -> UserInfo:
        return self._run(self._async.get_user(user_id))

    def get_user_by_email(self, email: str) -> UserInfo | None:
        return self._run(self._async.get_user_by_email(email))

    def password_hash_for(self, email: str) -> str | None:
        return self._run(self._async.password_hash_for(email))

    def upsert_external_user(
        self, external_id: str, email: str, name: str, *, avatar_url: str | None = None
    ) -> UserInfo:
        return self._run(
            self._async.upsert_external_user(external_id, email, name, avatar_url=avatar_url)
        )

    def list_users(self, principal: Principal | None) -> list[UserInfo]:
        return self._run(self._async.list_users(principal))

    def set_role(self, principal: Principal | None, user_id: str, role: str | Role) -> UserInfo:
        return self._run(self._async.set_role(principal, user_id, role))

    def delete_user(self, principal: Principal | None, user_id: str) -> DeleteResult:
        return self._run(self._async.delete_user(principal, user_id))

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def events(self) -> EventBus:
        """The event bus (handlers run on the private loop)."""
        return self._async.events

    @property
    def aio(self) -> CanopyAsync:
        """The underlying ``CanopyAsync`` (for advanced async use)."""
        return self._async
