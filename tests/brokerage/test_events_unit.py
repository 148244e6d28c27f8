"""Unit tests for brokerage events, emitters and metrics."""

import asyncio
import logging
from typing import List

import pytest
from prometheus_client import CollectorRegistry
from pydantic import ValidationError

from src.brokerage.events import (
    BrokerageEvent,
    BrokerageMetrics,
    CompositeEventEmitter,
    EventEmitter,
    EventSinkType,
    EventType,
    LoggingEventEmitter,
    MetricsEventEmitter,
    NullEventEmitter,
    create_event_emitter,
    generate_metrics_output,
)


def run_async(coro):
    return asyncio.run(coro)


def _event(event_type: EventType = EventType.STAGE_MOVED, **details) -> BrokerageEvent:
    return BrokerageEvent(
        event_type=event_type,
        organization_id="org-1",
        client_id="client-1",
        details=details,
    )


class CollectingEmitter(EventEmitter):
    def __init__(self):
        self.events: List[BrokerageEvent] = []

    async def emit(self, event: BrokerageEvent) -> None:
        self.events.append(event)


class BrokenEmitter(EventEmitter):
    async def emit(self, event: BrokerageEvent) -> None:
        raise RuntimeError("down")


class TestBrokerageEvent:
    def test_to_log_dict_flattens_details(self):
        event = _event(from_stage="lead-intake", to_stage="client-onboarding")

        data = event.to_log_dict()

        assert data["event_type"] == "stage_moved"
        assert data["organization_id"] == "org-1"
        assert data["from_stage"] == "lead-intake"
        assert data["timestamp"].endswith("+00:00")

    def test_organization_is_required(self):
        with pytest.raises(ValidationError):
            BrokerageEvent(event_type=EventType.STAGE_MOVED, organization_id="")


class TestEmitters:
    def test_logging_levels(self, caplog):
        caplog.set_level(logging.INFO)
        emitter = LoggingEventEmitter()

        run_async(emitter.emit(_event(EventType.STAGE_MOVED)))
        run_async(emitter.emit(_event(EventType.MOVE_REJECTED, reason="IllegalTransitionError")))
        run_async(emitter.emit(_event(EventType.ACTION_FAILED, action="create-budget")))

        levels = [r.levelno for r in caplog.records if r.getMessage().startswith("Brokerage event")]
        assert levels == [logging.INFO, logging.WARNING, logging.ERROR]
        rejected = [r for r in caplog.records if getattr(r, "event_type", None) == "move_rejected"]
        assert rejected[0].reason == "IllegalTransitionError"

    def test_composite_isolates_failures(self):
        collector = CollectingEmitter()
        composite = CompositeEventEmitter([BrokenEmitter()])
        composite.add_emitter(collector)

        run_async(composite.emit(_event()))

        assert len(collector.events) == 1
        assert len(composite.emitters) == 2

    def test_null_emitter(self):
        run_async(NullEventEmitter().emit(_event()))


class TestCreateEventEmitter:
    def test_default_is_logging(self):
        assert isinstance(create_event_emitter(), LoggingEventEmitter)

    def test_single_sink(self):
        emitter = create_event_emitter(
            [EventSinkType.METRICS], registry=CollectorRegistry()
        )

        assert isinstance(emitter, MetricsEventEmitter)

    def test_multiple_sinks(self):
        emitter = create_event_emitter(
            [EventSinkType.LOGGING, EventSinkType.METRICS],
            registry=CollectorRegistry(),
        )

        assert isinstance(emitter, CompositeEventEmitter)
        assert [type(e) for e in emitter.emitters] == [LoggingEventEmitter, MetricsEventEmitter]


class TestMetricsEventEmitter:
    def test_counters_follow_events(self):
        registry = CollectorRegistry()
        emitter = MetricsEventEmitter(registry=registry)

        async def emit_all():
            await emitter.emit(_event(from_stage="lead-intake", to_stage="client-onboarding"))
            await emitter.emit(_event(from_stage="lead-intake", to_stage="client-onboarding"))
            await emitter.emit(_event(EventType.MOVE_REJECTED, reason="ClientNotFoundError"))
            await emitter.emit(_event(EventType.CLIENT_CREATED))
            await emitter.emit(_event(EventType.CLIENT_ARCHIVED))
            await emitter.emit(_event(EventType.ACTION_FAILED, action="submit-billing"))

        run_async(emit_all())

        assert registry.get_sample_value(
            "brokerage_stage_moves_total",
            {"from_stage": "lead-intake", "to_stage": "client-onboarding"},
        ) == 2
        assert registry.get_sample_value(
            "brokerage_moves_rejected_total", {"reason": "ClientNotFoundError"}
        ) == 1
        assert registry.get_sample_value("brokerage_clients_created_total") == 1
        assert registry.get_sample_value("brokerage_clients_archived_total") == 1
        assert registry.get_sample_value(
            "brokerage_actions_failed_total", {"action": "submit-billing"}
        ) == 1

    def test_missing_details_use_unknown_label(self):
        registry = CollectorRegistry()
        emitter = MetricsEventEmitter(metrics=BrokerageMetrics(registry=registry))

        run_async(emitter.emit(_event(EventType.MOVE_REJECTED)))

        assert registry.get_sample_value(
            "brokerage_moves_rejected_total", {"reason": "unknown"}
        ) == 1

    def test_metrics_output(self):
        registry = CollectorRegistry()
        BrokerageMetrics(registry=registry).record_client_created()

        output = generate_metrics_output(registry)

        assert b"brokerage_clients_created_total 1.0" in output
