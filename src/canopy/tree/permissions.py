"""Permission levels and the ordering between them."""

from __future__ import annotations

from enum import Enum

from canopy.exceptions import InvalidOperationError


class Permission(str, Enum):
    """Access level granted on a node.  Write implies read."""

    READ = "read"
    WRITE = "write"

    def allows(self, required: Permission) -> bool:
        """True if holding this permission satisfies *required*."""
        return self is Permission.WRITE or required is Permission.READ

    @classmethod
    def parse(cls, value: str | Permission) -> Permission:
        """Coerce *value* to a ``Permission``, raising on anything else."""
        if isinstance(value, Permission):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidOperationError(
                f"Invalid permission: {value!r}. Must be 'read' or 'write'."
            ) from None
