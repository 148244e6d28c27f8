"""Client timeline event models.

Timeline events form a closed set of variants discriminated by their
`type` field:
- StageMovedEvent: client moved between pipeline stages
- PipelineAssignedEvent: client assigned to a (different) pipeline
- StatusChangedEvent: client status changed, including archive/unarchive
- NoteAddedEvent: case note added
- RecordEvent: other record-keeping entries (creation, uploads, meetings)

Events are immutable once created. A client's timeline is ordered newest
first.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


SYSTEM_AUTHOR = "System"


class TimelineEventType(str, Enum):
    """Type tags of timeline events."""

    CLIENT_CREATED = "client-created"
    STATUS_CHANGED = "status-changed"
    STAGE_MOVED = "stage-moved"
    PIPELINE_ASSIGNED = "pipeline-assigned"
    DOCUMENT_UPLOADED = "document-uploaded"
    BUDGET_SUBMITTED = "budget-submitted"
    MEETING_SCHEDULED = "meeting-scheduled"
    NOTE_ADDED = "note-added"
    MILESTONE_COMPLETED = "milestone-completed"


class TimelineEventBase(BaseModel):
    """Fields shared by every timeline event.

    Attributes:
        id: Event identifier.
        client_id: The client this event belongs to.
        title: Short title shown on the timeline.
        description: Free-text description.
        date: When the event occurred (UTC).
        author: Display name of the acting user, or "System".
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1)
    title: str
    description: str = ""
    date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    author: str = SYSTEM_AUTHOR


class StageMovedEvent(TimelineEventBase):
    type: Literal["stage-moved"] = "stage-moved"
    from_stage: str
    to_stage: str


class PipelineAssignedEvent(TimelineEventBase):
    type: Literal["pipeline-assigned"] = "pipeline-assigned"
    pipeline_id: str
    previous_pipeline_id: Optional[str] = None


class StatusChangedEvent(TimelineEventBase):
    type: Literal["status-changed"] = "status-changed"
    from_status: Optional[str] = None
    to_status: Optional[str] = None


class NoteAddedEvent(TimelineEventBase):
    type: Literal["note-added"] = "note-added"
    note_id: str


class RecordEvent(TimelineEventBase):
    """Record-keeping event without variant-specific fields."""

    type: Literal[
        "client-created",
        "document-uploaded",
        "budget-submitted",
        "meeting-scheduled",
        "milestone-completed",
    ]


TimelineEvent = Annotated[
    Union[
        StageMovedEvent,
        PipelineAssignedEvent,
        StatusChangedEvent,
        NoteAddedEvent,
        RecordEvent,
    ],
    Field(discriminator="type"),
]
