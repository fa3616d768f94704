"""Custom exception hierarchy for the Canopy tree and access layer."""


class CanopyError(Exception):
    """Base exception for all Canopy errors."""


class UnauthenticatedError(CanopyError):
    """Raised when an operation is attempted without a principal."""


class NotFoundError(CanopyError):
    """Base for lookups that resolve to nothing the caller may see."""


class NodeNotFoundError(NotFoundError):
    """Raised when a node does not exist or is not visible to the principal."""


class UserNotFoundError(NotFoundError):
    """Raised when a user id or grantee does not exist."""


class ShareNotFoundError(NotFoundError):
    """Raised when no share matches a (folder, grantee) pair."""


class ForbiddenError(CanopyError):
    """Raised when a visible node is accessed above the granted permission."""


class InvalidOperationError(CanopyError):
    """Raised for structurally invalid requests (bad names, cycles, self-share)."""


class ConflictError(CanopyError):
    """Raised when a unique identity (email, external id) is already taken."""


class StorageError(CanopyError):
    """Raised on blob store failures while writing content."""


class ConsistencyError(CanopyError):
    """Raised when data integrity is compromised (e.g. a cycle in the parent chain)."""
