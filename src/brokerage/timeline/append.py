"""Timeline event construction and append.

Timeline append is split in two steps:
- create_timeline_event(): pure construction (id, timestamp, author)
- append_timeline_event(): returns a copy of the client with the event
  placed at the head of its timeline

Existing events are never reordered or removed. Authors come from the
IdentityContext of the caller; when there is no identity (for example an
automated action) the fixed "System" author is used.
"""

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional, Protocol, Type, TypeVar, runtime_checkable

from src.brokerage.timeline.models import SYSTEM_AUTHOR, TimelineEventBase

if TYPE_CHECKING:
    from src.brokerage.clients.models import Client


EventT = TypeVar("EventT", bound=TimelineEventBase)


@runtime_checkable
class IdentityContext(Protocol):
    """Protocol for resolving the display name of the acting user."""

    def current_actor_name(self) -> str:
        """Get the acting user's display name, or "System" if unknown."""
        ...


class StaticIdentityContext:
    """Identity context with a fixed actor name.

    Used per request by the HTTP layer and directly by tests. A blank name
    resolves to the system author.
    """

    def __init__(self, actor_name: Optional[str] = None):
        self.actor_name = actor_name

    def current_actor_name(self) -> str:
        if self.actor_name and self.actor_name.strip():
            return self.actor_name.strip()
        return SYSTEM_AUTHOR


SYSTEM_IDENTITY = StaticIdentityContext(None)


def resolve_author(identity: Optional[IdentityContext]) -> str:
    """Resolve the author name for a new event.

    Falls back to "System" when no identity is given or the identity
    cannot name its actor.
    """
    if identity is None:
        return SYSTEM_AUTHOR
    name = identity.current_actor_name()
    return name.strip() if name and name.strip() else SYSTEM_AUTHOR


def new_event_id() -> str:
    """Generate a unique timeline event id."""
    return uuid.uuid4().hex


def create_timeline_event(
    event_cls: Type[EventT],
    client_id: str,
    title: str,
    description: str = "",
    identity: Optional[IdentityContext] = None,
    **fields: Any,
) -> EventT:
    """Build a new timeline event.

    Args:
        event_cls: The event variant to build (e.g. StageMovedEvent).
        client_id: The client the event belongs to.
        title: Event title.
        description: Event description.
        identity: Identity context of the acting user.
        **fields: Variant-specific fields (e.g. from_stage, to_stage).

    Returns:
        The new, immutable event.

    Example:
        >>> event = create_timeline_event(
        ...     StageMovedEvent,
        ...     "client-1",
        ...     "Moved to Client Onboarding",
        ...     from_stage="lead-intake",
        ...     to_stage="client-onboarding",
        ... )
        >>> event.author
        'System'
    """
    return event_cls(
        id=new_event_id(),
        client_id=client_id,
        title=title,
        description=description,
        date=datetime.now(timezone.utc),
        author=resolve_author(identity),
        **fields,
    )


def append_timeline_event(client: "Client", event: TimelineEventBase) -> "Client":
    """Return a copy of the client with the event at the head of its timeline.

    The client passed in is left untouched.

    Raises:
        ValueError: If the event belongs to a different client.
    """
    if event.client_id != client.id:
        raise ValueError(
            f"Timeline event for client {event.client_id} cannot be appended "
            f"to client {client.id}"
        )
    return client.model_copy(update={"timeline": [event, *client.timeline]})
