"""Append-only client timelines."""

from src.brokerage.timeline.append import (
    SYSTEM_IDENTITY,
    IdentityContext,
    StaticIdentityContext,
    append_timeline_event,
    create_timeline_event,
    resolve_author,
)
from src.brokerage.timeline.models import (
    SYSTEM_AUTHOR,
    NoteAddedEvent,
    PipelineAssignedEvent,
    RecordEvent,
    StageMovedEvent,
    StatusChangedEvent,
    TimelineEvent,
    TimelineEventBase,
    TimelineEventType,
)

__all__ = [
    "IdentityContext",
    "NoteAddedEvent",
    "PipelineAssignedEvent",
    "RecordEvent",
    "SYSTEM_AUTHOR",
    "SYSTEM_IDENTITY",
    "StageMovedEvent",
    "StaticIdentityContext",
    "StatusChangedEvent",
    "TimelineEvent",
    "TimelineEventBase",
    "TimelineEventType",
    "append_timeline_event",
    "create_timeline_event",
    "resolve_author",
]
