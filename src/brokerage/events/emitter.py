"""Sinks for BrokerageEvents.

Services hold one EventEmitter and never care where events end up. A
log sink, a discard sink and a fan-out sink live here; the Prometheus
sink lives in metrics.py.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from prometheus_client import CollectorRegistry

from src.brokerage.events.models import BrokerageEvent, EventType


logger = logging.getLogger(__name__)


class EventSinkType(str, Enum):
    """Event sinks that create_event_emitter can build.

    Attributes:
        LOGGING: LoggingEventEmitter.
        METRICS: MetricsEventEmitter (Prometheus counters).
    """

    LOGGING = "logging"
    METRICS = "metrics"


class EventEmitter(ABC):
    """Abstract base class for brokerage event emitters.

    emit() is awaited from request handlers and background tasks. Callers
    wrap it so that a failing sink never fails the operation behind the
    event.
    """

    @abstractmethod
    async def emit(self, event: BrokerageEvent) -> None:
        """Emit a brokerage event.

        Args:
            event: The event to emit.
        """
        pass

    async def close(self) -> None:
        """Close the emitter and release resources."""
        pass


class LoggingEventEmitter(EventEmitter):
    """Writes each event as one log record with the event fields in `extra`.

    Levels per event type:

    - STAGE_MOVED, CLIENT_CREATED, CLIENT_ARCHIVED: INFO level
    - MOVE_REJECTED: WARNING level
    - ACTION_FAILED: ERROR level

    Example:
        >>> emitter = LoggingEventEmitter()
        >>> await emitter.emit(BrokerageEvent(
        ...     event_type=EventType.STAGE_MOVED,
        ...     organization_id="org-1",
        ...     client_id="client-1",
        ...     details={"from_stage": "lead-intake", "to_stage": "client-onboarding"},
        ... ))
        # Logs: INFO - Brokerage event: stage_moved for client-1
    """

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger
        self._log_level_map = {
            EventType.STAGE_MOVED: logging.INFO,
            EventType.CLIENT_CREATED: logging.INFO,
            EventType.CLIENT_ARCHIVED: logging.INFO,
            EventType.MOVE_REJECTED: logging.WARNING,
            EventType.ACTION_FAILED: logging.ERROR,
        }

    async def emit(self, event: BrokerageEvent) -> None:
        log_level = self._log_level_map.get(event.event_type, logging.INFO)
        self._logger.log(
            log_level,
            "Brokerage event: %s for %s",
            event.event_type.value,
            event.client_id or event.organization_id,
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Fans each event out to several emitters.

    A child that raises is logged and skipped; the rest still receive
    the event.

    Example:
        >>> composite = CompositeEventEmitter(
        ...     [LoggingEventEmitter(), MetricsEventEmitter()]
        ... )
        >>> await composite.emit(event)  # Emits to both sinks
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self._emitters: List[EventEmitter] = emitters or []

    def add_emitter(self, emitter: EventEmitter) -> None:
        self._emitters.append(emitter)

    @property
    def emitters(self) -> List[EventEmitter]:
        """Get a copy of the child emitters."""
        return list(self._emitters)

    async def emit(self, event: BrokerageEvent) -> None:
        for emitter in self._emitters:
            try:
                await emitter.emit(event)
            except Exception as e:
                logger.error(
                    "Event sink %s raised: %s",
                    type(emitter).__name__,
                    str(e),
                    extra={
                        "emitter_type": type(emitter).__name__,
                        "event_type": event.event_type.value,
                        "client_id": event.client_id,
                        "error": str(e),
                    },
                )

    async def close(self) -> None:
        for emitter in self._emitters:
            try:
                await emitter.close()
            except Exception as e:
                logger.error(
                    "Closing event sink %s failed: %s",
                    type(emitter).__name__,
                    str(e),
                )


class NullEventEmitter(EventEmitter):
    """Event emitter that discards all events. Useful for tests."""

    async def emit(self, event: BrokerageEvent) -> None:
        pass


def create_event_emitter(
    sink_types: Optional[List[EventSinkType]] = None,
    logger_name: Optional[str] = None,
    registry: Optional[CollectorRegistry] = None,
) -> EventEmitter:
    """Create an event emitter for the requested sinks.

    Args:
        sink_types: Event sink types to enable. If None or empty,
            returns a LoggingEventEmitter.
        logger_name: Optional logger name for the LoggingEventEmitter.
        registry: Optional Prometheus registry for the metrics sink.

    Returns:
        A single emitter, or a CompositeEventEmitter when more than one
        sink is requested.

    Example:
        >>> emitter = create_event_emitter(
        ...     [EventSinkType.LOGGING, EventSinkType.METRICS]
        ... )
        >>> isinstance(emitter, CompositeEventEmitter)
        True
    """
    if not sink_types:
        return LoggingEventEmitter(logger_name=logger_name)

    emitters: List[EventEmitter] = []

    for sink_type in sink_types:
        if sink_type == EventSinkType.LOGGING:
            emitters.append(LoggingEventEmitter(logger_name=logger_name))
        elif sink_type == EventSinkType.METRICS:
            # metrics.py imports EventEmitter from this module
            from src.brokerage.events.metrics import MetricsEventEmitter

            emitters.append(MetricsEventEmitter(registry=registry))
        else:
            logger.warning("Unknown event sink type: %s, skipping", sink_type)

    if not emitters:
        return LoggingEventEmitter(logger_name=logger_name)

    if len(emitters) == 1:
        return emitters[0]

    return CompositeEventEmitter(emitters)
