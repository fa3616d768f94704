"""Name validation, extension and MIME helpers."""

from __future__ import annotations

import mimetypes
import posixpath

from canopy.exceptions import InvalidOperationError

MAX_NAME_LENGTH = 255
MAX_EXTENSION_LENGTH = 10
DEFAULT_MIME_TYPE = "application/octet-stream"
COPY_SUFFIX = " (copy)"


def validate_name(name: str | None) -> str:
    """Return *name* trimmed, or raise ``InvalidOperationError``.

    Names are display labels, not paths: separators, null bytes,
    control characters and the ``.``/``..`` entries are rejected.
    """
    if name is None:
        raise InvalidOperationError("Name is required")
    name = name.strip()
    if not name:
        raise InvalidOperationError("Name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidOperationError(f"Name too long (max {MAX_NAME_LENGTH} characters)")
    if name in (".", ".."):
        raise InvalidOperationError(f"Invalid name: {name!r}")
    if "/" in name or "\\" in name:
        raise InvalidOperationError("Name must not contain path separators")
    for ch in name:
        if ord(ch) < 0x20 or ch == "\x7f":
            raise InvalidOperationError(f"Name contains control character: 0x{ord(ch):02x}")
    return name


def file_extension(name: str) -> str | None:
    """Lower-cased extension without the dot, or None.

    ``"Report.PDF"`` → ``"pdf"``; dotfiles and extensionless names → None.
    """
    _, ext = posixpath.splitext(name)
    if not ext or len(ext) == 1:
        return None
    ext = ext[1:].lower()
    if len(ext) > MAX_EXTENSION_LENGTH:
        return None
    return ext


def guess_mime_type(name: str, declared: str | None = None) -> str:
    """MIME type with priority: declared (if specific) > filename > default."""
    if declared and declared != DEFAULT_MIME_TYPE:
        return declared
    guessed, _ = mimetypes.guess_type(name)
    if guessed:
        return guessed
    return declared or DEFAULT_MIME_TYPE


def copy_name(name: str) -> str:
    """Name given to a cloned node: ``"a.txt"`` → ``"a.txt (copy)"``."""
    candidate = f"{name}{COPY_SUFFIX}"
    if len(candidate) > MAX_NAME_LENGTH:
        candidate = name[: MAX_NAME_LENGTH - len(COPY_SUFFIX)] + COPY_SUFFIX
    return candidate
