"""SQLModel database models for Canopy."""

from canopy.models.nodes import Node, NodeBase, NodeKind
from canopy.models.shares import FolderShare, FolderShareBase
from canopy.models.users import Role, User, UserBase

__all__ = [
    "FolderShare",
    "FolderShareBase",
    "Node",
    "NodeBase",
    "NodeKind",
    "Role",
    "User",
    "UserBase",
]
