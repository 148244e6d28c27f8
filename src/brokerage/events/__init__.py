"""Observability events and Prometheus metrics."""

from src.brokerage.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    EventSinkType,
    LoggingEventEmitter,
    NullEventEmitter,
    create_event_emitter,
)
from src.brokerage.events.metrics import (
    BrokerageMetrics,
    MetricsEventEmitter,
    generate_metrics_output,
    get_metrics,
)
from src.brokerage.events.models import BrokerageEvent, EventType

__all__ = [
    "BrokerageEvent",
    "BrokerageMetrics",
    "CompositeEventEmitter",
    "EventEmitter",
    "EventSinkType",
    "EventType",
    "LoggingEventEmitter",
    "MetricsEventEmitter",
    "NullEventEmitter",
    "create_event_emitter",
    "generate_metrics_output",
    "get_metrics",
]
