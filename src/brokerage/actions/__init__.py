"""Automated stage action dispatch."""

from src.brokerage.actions.dispatcher import (
    ActionDispatcher,
    CompositeActionDispatcher,
    LoggingActionDispatcher,
    NullActionDispatcher,
    WebhookActionDispatcher,
    create_action_dispatcher,
)

__all__ = [
    "ActionDispatcher",
    "CompositeActionDispatcher",
    "LoggingActionDispatcher",
    "NullActionDispatcher",
    "WebhookActionDispatcher",
    "create_action_dispatcher",
]
