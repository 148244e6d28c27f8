"""Pipeline service: moving clients between stages.

This module is the only place that changes a client's stage. A move:

1. Loads the client, scoped to the caller's organization
2. Validates the move against the stage graph of the client's pipeline
3. Prepends a stage-moved timeline event and bumps the version
4. Writes the whole document once, guarded by the version it read
5. Starts the target stage's automated actions in the background

Validation happens before any write, so a rejected move leaves the
stored client untouched. Actions run after the write and their outcome
never affects the committed move.
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Union

from pydantic import BaseModel, Field, computed_field

from src.brokerage.actions.dispatcher import ActionDispatcher, NullActionDispatcher
from src.brokerage.clients.manager import load_client_for_organization
from src.brokerage.clients.models import Client
from src.brokerage.clients.store import ClientStore
from src.brokerage.errors import (
    BrokerageError,
    IllegalTransitionError,
    InvalidStageError,
    PipelineNotFoundError,
)
from src.brokerage.events.emitter import EventEmitter, NullEventEmitter
from src.brokerage.events.models import BrokerageEvent, EventType
from src.brokerage.stages.models import stage_value
from src.brokerage.stages.registry import PipelineRegistry
from src.brokerage.stages.validator import StageTransitionValidator
from src.brokerage.timeline.append import (
    IdentityContext,
    append_timeline_event,
    create_timeline_event,
)
from src.brokerage.timeline.models import StageMovedEvent


logger = logging.getLogger(__name__)


DEFAULT_BULK_MOVE_CONCURRENCY = 10


class BulkMoveFailure(BaseModel):
    """Why one client of a bulk move was not moved.

    Attributes:
        reason: Human-readable error message.
        error_type: Exception class name (e.g. IllegalTransitionError).
    """

    reason: str
    error_type: str


class BulkMoveResult(BaseModel):
    """Outcome of a bulk move.

    Attributes:
        target_stage: The requested stage.
        succeeded: Ids of the clients that were moved, in request order.
        failed: Failure per client id that was not moved.
    """

    target_stage: str
    succeeded: List[str] = Field(default_factory=list)
    failed: Dict[str, BulkMoveFailure] = Field(default_factory=dict)

    @computed_field
    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @computed_field
    @property
    def failure_count(self) -> int:
        return len(self.failed)


class PipelineService:
    """Moves clients between pipeline stages.

    Attributes:
        store: The client document store.
        registry: Registry of pipelines and their stage graphs.
        dispatcher: Receives the automated actions of entered stages.
        event_emitter: Observability event sink.
        identity: Default identity of the acting user.
        bulk_move_concurrency: Maximum moves in flight during a bulk move.

    Example:
        >>> service = PipelineService(store, PipelineRegistry())
        >>> client = await service.move_client_to_stage(
        ...     "org-1", "client-1", "client-onboarding"
        ... )
        >>> client.timeline[0].title
        'Moved to Client Onboarding'
    """

    def __init__(
        self,
        store: ClientStore,
        registry: PipelineRegistry,
        dispatcher: Optional[ActionDispatcher] = None,
        event_emitter: Optional[EventEmitter] = None,
        identity: Optional[IdentityContext] = None,
        bulk_move_concurrency: int = DEFAULT_BULK_MOVE_CONCURRENCY,
    ):
        if bulk_move_concurrency < 1:
            raise ValueError("bulk_move_concurrency must be at least 1")
        self.store = store
        self.registry = registry
        self.dispatcher = dispatcher or NullActionDispatcher()
        self.event_emitter = event_emitter or NullEventEmitter()
        self.identity = identity
        self.bulk_move_concurrency = bulk_move_concurrency
        self._action_tasks: Set[asyncio.Task] = set()

    @property
    def pending_actions(self) -> int:
        """Number of automated action tasks still running."""
        return len(self._action_tasks)

    async def move_client_to_stage(
        self,
        organization_id: str,
        client_id: str,
        target_stage: Union[str, Enum],
        identity: Optional[IdentityContext] = None,
    ) -> Client:
        """Move a client to a new stage.

        Args:
            organization_id: Organization of the caller.
            client_id: The client to move.
            target_stage: Stage id (or stage enum) to move to.
            identity: Identity of the acting user. Defaults to the
                service's identity, then to "System".

        Returns:
            The updated client as stored.

        Raises:
            ClientNotFoundError: If the client is missing, archived, or
                owned by another organization.
            IllegalTransitionError: If the move is not allowed, or either
                stage is unknown to the client's pipeline.
            ConcurrentModificationError: If the client changed since it
                was read.
            StorageError: If the store fails.
        """
        target = stage_value(target_stage)
        try:
            client = await load_client_for_organization(
                self.store, organization_id, client_id
            )
            updated = self._apply_move(
                client, target, identity if identity is not None else self.identity
            )
            await self.store.put(updated, expected_version=client.version)
        except BrokerageError as e:
            logger.warning(
                "Rejected stage move",
                extra={
                    "client_id": client_id,
                    "organization_id": organization_id,
                    "target_stage": target,
                    "reason": type(e).__name__,
                    "error": str(e),
                },
            )
            await self._safe_emit(
                BrokerageEvent(
                    event_type=EventType.MOVE_REJECTED,
                    organization_id=organization_id,
                    client_id=client_id,
                    details={
                        "reason": type(e).__name__,
                        "target_stage": target,
                        "error_message": str(e),
                    },
                )
            )
            raise

        from_stage = client.pipeline_stage
        logger.info(
            "Moved client to stage",
            extra={
                "client_id": client_id,
                "organization_id": organization_id,
                "from_stage": from_stage,
                "to_stage": target,
                "version": updated.version,
            },
        )
        await self._safe_emit(
            BrokerageEvent(
                event_type=EventType.STAGE_MOVED,
                organization_id=organization_id,
                client_id=client_id,
                details={
                    "from_stage": from_stage,
                    "to_stage": target,
                    "author": updated.timeline[0].author,
                },
            )
        )

        graph = self.registry.graph_for(updated.pipeline_id)
        for action in graph.lookup(target).automated_actions:
            self._schedule_action(action, updated)

        return updated

    def _apply_move(
        self,
        client: Client,
        target: str,
        identity: Optional[IdentityContext],
    ) -> Client:
        """Validate a move and build the moved client without writing it."""
        current = client.pipeline_stage
        try:
            graph = self.registry.graph_for(client.pipeline_id)
        except PipelineNotFoundError as e:
            raise IllegalTransitionError(
                client.id,
                current,
                target,
                message=(
                    f"Cannot move client {client.id} from {current} to {target}: "
                    f"unknown pipeline {e.pipeline_id}"
                ),
            ) from e
        validator = StageTransitionValidator(graph)

        try:
            allowed = validator.can_transition(current, target)
        except InvalidStageError as e:
            raise IllegalTransitionError(
                client.id,
                current,
                target,
                message=(
                    f"Cannot move client {client.id} from {current} to {target}: "
                    f"unknown stage {e.stage_id}"
                ),
            ) from e

        if not allowed:
            raise IllegalTransitionError(client.id, current, target)

        source_title = graph.lookup(current).title
        target_title = graph.lookup(target).title
        event = create_timeline_event(
            StageMovedEvent,
            client.id,
            f"Moved to {target_title}",
            f"Client moved from {source_title} to {target_title}",
            identity=identity,
            from_stage=current,
            to_stage=target,
        )
        moved = append_timeline_event(client, event)
        return moved.model_copy(
            update={
                "pipeline_stage": target,
                "updated_at": datetime.now(timezone.utc),
                "version": client.version + 1,
            }
        )

    async def bulk_move(
        self,
        organization_id: str,
        client_ids: Iterable[str],
        target_stage: Union[str, Enum],
        identity: Optional[IdentityContext] = None,
    ) -> BulkMoveResult:
        """Move several clients to one stage.

        Each distinct id is moved independently and concurrently; a failed
        move never stops the others. Duplicate ids are moved once.

        Returns:
            The ids that moved and the failure of each id that did not.
        """
        target = stage_value(target_stage)
        ids = list(dict.fromkeys(client_ids))
        semaphore = asyncio.Semaphore(self.bulk_move_concurrency)

        async def move_one(client_id: str) -> Client:
            async with semaphore:
                return await self.move_client_to_stage(
                    organization_id, client_id, target, identity=identity
                )

        outcomes = await asyncio.gather(
            *(move_one(client_id) for client_id in ids),
            return_exceptions=True,
        )

        result = BulkMoveResult(target_stage=target)
        for client_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, Exception):
                result.failed[client_id] = BulkMoveFailure(
                    reason=str(outcome),
                    error_type=type(outcome).__name__,
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                result.succeeded.append(client_id)

        logger.info(
            "Bulk move finished",
            extra={
                "organization_id": organization_id,
                "target_stage": target,
                "success_count": result.success_count,
                "failure_count": result.failure_count,
            },
        )
        return result

    def _schedule_action(self, action: str, client: Client) -> None:
        task = asyncio.create_task(
            self._run_action(action, client),
            name=f"action:{action}:{client.id}",
        )
        self._action_tasks.add(task)
        task.add_done_callback(self._action_tasks.discard)

    async def _run_action(self, action: str, client: Client) -> None:
        try:
            await self.dispatcher.dispatch(action, client)
        except asyncio.CancelledError:
            logger.warning(
                "Automated action cancelled",
                extra={"action": action, "client_id": client.id},
            )
            raise
        except Exception as e:
            logger.exception(
                "Automated action failed",
                extra={
                    "action": action,
                    "client_id": client.id,
                    "stage": client.pipeline_stage,
                },
            )
            await self._safe_emit(
                BrokerageEvent(
                    event_type=EventType.ACTION_FAILED,
                    organization_id=client.organization_id,
                    client_id=client.id,
                    details={"action": action, "error_message": str(e)},
                )
            )

    async def drain_actions(self, timeout: Optional[float] = None) -> int:
        """Wait for running automated actions to finish.

        Args:
            timeout: Seconds to wait. Actions still running afterwards are
                cancelled.

        Returns:
            The number of actions that were waited on.
        """
        tasks: List[asyncio.Task] = list(self._action_tasks)
        if not tasks:
            return 0

        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(
                "Cancelled automated actions still running at drain timeout",
                extra={"cancelled": len(pending)},
            )
            await asyncio.gather(*pending, return_exceptions=True)
        return len(tasks)

    async def cancel_actions(self) -> int:
        """Cancel all running automated actions.

        Returns:
            The number of actions that were cancelled.
        """
        tasks = list(self._action_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        return len(tasks)

    async def _safe_emit(self, event: BrokerageEvent) -> None:
        """Emit an event, swallowing exceptions so the move still completes."""
        try:
            await self.event_emitter.emit(event)
        except Exception:
            logger.exception(
                "Failed to emit brokerage event",
                extra={
                    "event_type": event.event_type.value,
                    "client_id": event.client_id,
                },
            )
