"""EventBus and event types emitted after committed mutations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Kinds of committed changes that subscribers can react to."""

    NODE_CREATED = "node_created"
    NODE_RENAMED = "node_renamed"
    NODE_MOVED = "node_moved"
    NODE_COPIED = "node_copied"
    NODE_DELETED = "node_deleted"
    NODE_RESTORED = "node_restored"
    SHARE_GRANTED = "share_granted"
    SHARE_REVOKED = "share_revoked"
    USER_DELETED = "user_deleted"


@dataclass(frozen=True, slots=True)
class NodeEvent:
    """Immutable record of a committed change.

    Attributes:
        event_type: The kind of change that occurred.
        node_id: Affected node (the clone for copies, the folder for
            share events).  None for user and trash-wide events.
        user_id: The acting principal.
        parent_id: New parent for creates, moves and copies.
        source_id: Original node for copies, previous parent for moves.
        target_user_id: Grantee for share events, removed user for
            ``USER_DELETED``.
        permanent: True when a delete removed rows rather than flagging them.
    """

    event_type: EventType
    node_id: str | None = None
    user_id: str | None = None
    parent_id: str | None = None
    source_id: str | None = None
    target_user_id: str | None = None
    permanent: bool = False

    @property
    def subject(self) -> str | None:
        """The node acted on, or the affected user for user-wide events."""
        if self.node_id is not None:
            return self.node_id
        return self.target_user_id


class EventBus:
    """Dispatches events to registered async handlers.

    Handlers are called sequentially in registration order.
    Exceptions are logged but never propagated; the change they
    describe is already committed.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[Callable[..., Any]]] = {et: [] for et in EventType}

    def register(self, event_type: EventType, handler: Callable[..., Any]) -> None:
        """Append *handler* to the list for *event_type*."""
        self._handlers[event_type].append(handler)

    def unregister(self, event_type: EventType, handler: Callable[..., Any]) -> bool:
        """Remove first occurrence of *handler*. Return True if found."""
        handlers = self._handlers[event_type]
        try:
            handlers.remove(handler)
            return True
        except ValueError:
            return False

    async def emit(self, event: NodeEvent) -> None:
        """Dispatch *event* to all registered handlers for its type."""
        for handler in self._handlers[event.event_type]:
            try:
                await handler(event)
            except Exception:
                logger.warning(
                    "Handler %r failed for %s on %s (by %s)",
                    handler,
                    event.event_type.value,
                    event.subject,
                    event.user_id,
                    exc_info=True,
                )

    @property
    def handler_count(self) -> int:
        """Total number of registered handlers across all event types."""
        return sum(len(h) for h in self._handlers.values())

    def clear(self) -> None:
        for handlers in self._handlers.values():
            handlers.clear()
