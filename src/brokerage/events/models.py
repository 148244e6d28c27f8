"""Brokerage event models for observability.

This module defines the data models for service events, including:
- EventType: Enum of all event types emitted by the services
- BrokerageEvent: Structured event with all required metadata

Events are emitted for monitoring, alerting, and debugging. They are
separate from client timeline events: a timeline event is part of the
client record, a BrokerageEvent is only telemetry.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by the brokerage services.

    Attributes:
        STAGE_MOVED: A client moved from one pipeline stage to another.
        MOVE_REJECTED: A move was refused (illegal transition, missing
            client, version conflict, storage failure).
        CLIENT_CREATED: A new client was created.
        CLIENT_ARCHIVED: A client was archived.
        ACTION_FAILED: An automated stage action failed to dispatch.
    """

    STAGE_MOVED = "stage_moved"
    MOVE_REJECTED = "move_rejected"
    CLIENT_CREATED = "client_created"
    CLIENT_ARCHIVED = "client_archived"
    ACTION_FAILED = "action_failed"


class BrokerageEvent(BaseModel):
    """Structured event emitted by the brokerage services.

    Attributes:
        event_type: The category of event.
        organization_id: Organization the event belongs to.
        client_id: Affected client, if any.
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        For STAGE_MOVED events:
            - from_stage: Previous stage id
            - to_stage: New stage id
            - author: Display name of the acting user

        For MOVE_REJECTED events:
            - reason: Exception class name
            - target_stage: Requested stage id
            - error_message: Human-readable description

        For ACTION_FAILED events:
            - action: Automated action name
            - error_message: Human-readable description
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    organization_id: str = Field(
        ...,
        min_length=1,
        description="Organization the event belongs to",
    )

    client_id: Optional[str] = Field(
        default=None,
        description="Affected client, if any",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Convert event to a flat dictionary suitable for structured logging.

        Example:
            >>> event = BrokerageEvent(
            ...     event_type=EventType.MOVE_REJECTED,
            ...     organization_id="org-1",
            ...     client_id="client-1",
            ...     details={"reason": "IllegalTransitionError"},
            ... )
            >>> event.to_log_dict()["event_type"]
            'move_rejected'
        """
        return {
            "event_type": self.event_type.value,
            "organization_id": self.organization_id,
            "client_id": self.client_id,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
