"""Prometheus metrics for brokerage observability.

Metrics are exposed at the `/metrics` endpoint in Prometheus format.

Metrics Defined:
- brokerage_stage_moves_total: Counter of committed stage moves
- brokerage_moves_rejected_total: Counter of rejected moves by reason
- brokerage_clients_created_total: Counter of created clients
- brokerage_clients_archived_total: Counter of archived clients
- brokerage_actions_failed_total: Counter of failed automated actions

The MetricsEventEmitter updates these counters from BrokerageEvents.
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    generate_latest,
)

from src.brokerage.events.emitter import EventEmitter
from src.brokerage.events.models import BrokerageEvent, EventType


logger = logging.getLogger(__name__)


class BrokerageMetrics:
    """Container for all brokerage Prometheus metrics.

    Supports custom registries so tests do not collide on the default one.

    Example:
        >>> metrics = BrokerageMetrics(registry=CollectorRegistry())
        >>> metrics.record_stage_move("lead-intake", "client-onboarding")
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.stage_moves_total = Counter(
            "brokerage_stage_moves_total",
            "Total number of committed client stage moves",
            labelnames=["from_stage", "to_stage"],
            registry=self.registry,
        )

        self.moves_rejected_total = Counter(
            "brokerage_moves_rejected_total",
            "Total number of rejected client stage moves",
            labelnames=["reason"],
            registry=self.registry,
        )

        self.clients_created_total = Counter(
            "brokerage_clients_created_total",
            "Total number of clients created",
            registry=self.registry,
        )

        self.clients_archived_total = Counter(
            "brokerage_clients_archived_total",
            "Total number of clients archived",
            registry=self.registry,
        )

        self.actions_failed_total = Counter(
            "brokerage_actions_failed_total",
            "Total number of automated stage actions that failed",
            labelnames=["action"],
            registry=self.registry,
        )

    def record_stage_move(self, from_stage: str, to_stage: str) -> None:
        self.stage_moves_total.labels(from_stage=from_stage, to_stage=to_stage).inc()

    def record_move_rejected(self, reason: str) -> None:
        self.moves_rejected_total.labels(reason=reason).inc()

    def record_client_created(self) -> None:
        self.clients_created_total.inc()

    def record_client_archived(self) -> None:
        self.clients_archived_total.inc()

    def record_action_failed(self, action: str) -> None:
        self.actions_failed_total.labels(action=action).inc()


# Global metrics instance for the default registry
_default_metrics: Optional[BrokerageMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> BrokerageMetrics:
    """Get the metrics instance for the default registry, or a new one for a custom registry."""
    global _default_metrics

    if registry is not None:
        return BrokerageMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = BrokerageMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus text output for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    - STAGE_MOVED: Increments stage_moves_total
    - MOVE_REJECTED: Increments moves_rejected_total by reason
    - CLIENT_CREATED: Increments clients_created_total
    - CLIENT_ARCHIVED: Increments clients_archived_total
    - ACTION_FAILED: Increments actions_failed_total by action
    """

    def __init__(
        self,
        metrics: Optional[BrokerageMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        self._metrics = metrics if metrics is not None else get_metrics(registry)

    @property
    def metrics(self) -> BrokerageMetrics:
        return self._metrics

    async def emit(self, event: BrokerageEvent) -> None:
        try:
            details = event.details
            if event.event_type == EventType.STAGE_MOVED:
                self._metrics.record_stage_move(
                    str(details.get("from_stage", "unknown")),
                    str(details.get("to_stage", "unknown")),
                )
            elif event.event_type == EventType.MOVE_REJECTED:
                self._metrics.record_move_rejected(str(details.get("reason", "unknown")))
            elif event.event_type == EventType.CLIENT_CREATED:
                self._metrics.record_client_created()
            elif event.event_type == EventType.CLIENT_ARCHIVED:
                self._metrics.record_client_archived()
            elif event.event_type == EventType.ACTION_FAILED:
                self._metrics.record_action_failed(str(details.get("action", "unknown")))
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={
                    "event_type": event.event_type.value,
                    "client_id": event.client_id,
                    "error": str(e),
                },
            )
