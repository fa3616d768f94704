"""Blob store — opaque content storage keyed by generated names.

Blob refs are flat, generated names (``uuid4().hex`` plus the original
extension).  They carry no relation to the logical tree path, so rename
and move never touch content.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import Protocol, runtime_checkable

from canopy.exceptions import StorageError

logger = logging.getLogger(__name__)


@runtime_checkable
class BlobStore(Protocol):
    """Content store consumed by the tree operations."""

    async def open(self) -> None:
        """Called when the facade opens.  No-op if not needed."""
        ...

    async def close(self) -> None:
        """Called on shutdown."""
        ...

    async def create(self, data: bytes, *, extension: str | None = None) -> str:
        """Store *data* under a new generated ref and return the ref."""
        ...

    async def copy(self, ref: str, *, extension: str | None = None) -> str:
        """Duplicate the content at *ref* under a new ref and return it."""
        ...

    async def delete(self, ref: str) -> bool:
        """Remove *ref*.  Returns False if it was already missing."""
        ...

    async def exists(self, ref: str) -> bool: ...

    async def read(self, ref: str) -> bytes:
        """Return the content at *ref*.  Raises ``FileNotFoundError`` if missing."""
        ...


def generate_ref(extension: str | None = None) -> str:
    """Return a new unique blob name, keeping the extension for readability."""
    suffix = f".{extension.lstrip('.')}" if extension else ""
    return f"{uuid.uuid4().hex}{suffix}"


class LocalBlobStore:
    """Blob store backed by a single flat directory on local disk.

    Writes go to a temp file in the same directory and are moved into
    place, so a crash never leaves a half-written blob under a real ref.

    Security: ``_resolve`` rejects refs containing separators or that
    would resolve outside ``root``.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser().resolve()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        await asyncio.to_thread(self.root.mkdir, parents=True, exist_ok=True)

    async def close(self) -> None:
        """No-op — nothing held open between calls."""

    async def __aenter__(self) -> LocalBlobStore:
        await self.open()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Path resolution
    # ------------------------------------------------------------------

    def _resolve(self, ref: str) -> Path:
        if not ref or "/" in ref or "\\" in ref or "\0" in ref or ref in (".", ".."):
            raise StorageError(f"Invalid blob ref: {ref!r}")
        candidate = (self.root / ref).resolve()
        if candidate.parent != self.root:
            raise StorageError(f"Blob ref escapes store root: {ref!r}")
        return candidate

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create(self, data: bytes, *, extension: str | None = None) -> str:
        ref = generate_ref(extension)
        target = self._resolve(ref)

        def _do_write() -> None:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.root, prefix=".tmp_")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                Path(tmp_path).replace(target)
            except BaseException:
                tmp = Path(tmp_path)
                if tmp.exists():
                    tmp.unlink()
                raise

        try:
            await asyncio.to_thread(_do_write)
        except OSError as e:
            raise StorageError(f"Failed to write blob: {e}") from e
        return ref

    async def copy(self, ref: str, *, extension: str | None = None) -> str:
        source = self._resolve(ref)
        if extension is None:
            extension = source.suffix.lstrip(".") or None
        new_ref = generate_ref(extension)
        target = self._resolve(new_ref)

        def _do_copy() -> None:
            fd, tmp_path = tempfile.mkstemp(dir=self.root, prefix=".tmp_")
            os.close(fd)
            try:
                shutil.copyfile(source, tmp_path)
                Path(tmp_path).replace(target)
            except BaseException:
                tmp = Path(tmp_path)
                if tmp.exists():
                    tmp.unlink()
                raise

        try:
            await asyncio.to_thread(_do_copy)
        except FileNotFoundError as e:
            raise StorageError(f"Blob not found: {ref}") from e
        except OSError as e:
            raise StorageError(f"Failed to copy blob {ref}: {e}") from e
        return new_ref

    async def delete(self, ref: str) -> bool:
        target = self._resolve(ref)

        def _do_delete() -> bool:
            try:
                target.unlink()
            except FileNotFoundError:
                return False
            return True

        return await asyncio.to_thread(_do_delete)

    async def exists(self, ref: str) -> bool:
        try:
            target = self._resolve(ref)
        except StorageError:
            return False
        return await asyncio.to_thread(target.is_file)

    async def read(self, ref: str) -> bytes:
        target = self._resolve(ref)
        return await asyncio.to_thread(target.read_bytes)


async def discard_blobs(store: BlobStore, refs: list[str]) -> int:
    """Best-effort delete of *refs*.  Failures are logged, never raised.

    Returns the number of blobs actually removed.
    """
    removed = 0
    for ref in refs:
        try:
            if await store.delete(ref):
                removed += 1
            else:
                logger.debug("Blob already missing: %s", ref)
        except Exception:
            logger.warning("Failed to delete blob %s", ref, exc_info=True)
    return removed

