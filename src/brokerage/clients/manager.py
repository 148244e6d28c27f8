"""Client CRUD service.

ClientService creates, reads, updates and archives client documents.
It never changes a client's stage; stage moves belong to PipelineService.

Every method takes the organization id of the caller. A client owned by
another organization is reported as missing.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from src.brokerage.clients.models import (
    CareManager,
    CaseMilestone,
    CaseNote,
    Client,
    ClientCase,
    ClientStatus,
    NoteType,
    PersonalInfo,
    ServiceType,
)
from src.brokerage.clients.store import ClientStore
from src.brokerage.errors import ClientNotFoundError
from src.brokerage.events.emitter import EventEmitter, NullEventEmitter
from src.brokerage.events.models import BrokerageEvent, EventType
from src.brokerage.stages.registry import PipelineRegistry
from src.brokerage.timeline.append import (
    IdentityContext,
    append_timeline_event,
    create_timeline_event,
    resolve_author,
)
from src.brokerage.timeline.models import (
    NoteAddedEvent,
    PipelineAssignedEvent,
    RecordEvent,
    StatusChangedEvent,
    TimelineEventType,
)


logger = logging.getLogger(__name__)


# (title, description, days after case start)
DEFAULT_MILESTONES = (
    ("Initial Contact", "Complete initial client contact and assessment", 7),
    ("Broker Agreement Signed", "Client signs broker services agreement", 14),
    ("Budget Approval", "Initial budget approved by fiscal intermediary", 30),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


async def load_client_for_organization(
    store: ClientStore,
    organization_id: str,
    client_id: str,
    allow_archived: bool = False,
) -> Client:
    """Load a client owned by the given organization.

    Raises:
        ClientNotFoundError: If the client is missing, owned by another
            organization, or archived (unless allow_archived is set).
        StorageError: If the read fails.
    """
    client = await store.get(client_id)
    if client is None:
        raise ClientNotFoundError(client_id, reason="missing")
    if client.organization_id != organization_id:
        raise ClientNotFoundError(client_id, reason="foreign")
    if client.is_archived and not allow_archived:
        raise ClientNotFoundError(client_id, reason="archived")
    return client


def build_default_case(client_id: str, full_name: str, broker_name: str, start: datetime) -> ClientCase:
    """Build the case every new client starts with."""
    return ClientCase(
        id=_new_id(),
        client_id=client_id,
        title=f"{full_name} - Broker Services Case",
        description="Initial broker services case",
        assigned_broker=broker_name,
        start_date=start,
        milestones=[
            CaseMilestone(
                id=_new_id(),
                title=title,
                description=description,
                target_date=start + timedelta(days=days),
            )
            for title, description, days in DEFAULT_MILESTONES
        ],
    )


class ClientService:
    """Create, read, update and archive clients.

    Attributes:
        store: The client document store.
        registry: Registry of available pipelines.
    """

    def __init__(
        self,
        store: ClientStore,
        registry: PipelineRegistry,
        event_emitter: Optional[EventEmitter] = None,
        identity: Optional[IdentityContext] = None,
    ):
        self.store = store
        self.registry = registry
        self.event_emitter = event_emitter or NullEventEmitter()
        self.identity = identity

    async def create_client(
        self,
        organization_id: str,
        personal_info: PersonalInfo,
        care_manager: Optional[CareManager] = None,
        services: Optional[List[ServiceType]] = None,
        pipeline_id: Optional[str] = None,
        identity: Optional[IdentityContext] = None,
    ) -> Client:
        """Create a client at the entry stage of its pipeline.

        Args:
            organization_id: Owning organization.
            personal_info: Personal details.
            care_manager: External care manager.
            services: Services the client receives.
            pipeline_id: Pipeline to use; None uses the default pipeline.
            identity: Identity of the acting user.

        Returns:
            The stored client.

        Raises:
            PipelineNotFoundError: If pipeline_id is not registered.
            StorageError: If the write fails.
        """
        identity = identity or self.identity
        graph = self.registry.graph_for(pipeline_id)
        now = _utcnow()
        client_id = _new_id()
        author = resolve_author(identity)

        client = Client(
            id=client_id,
            organization_id=organization_id,
            personal_info=personal_info,
            care_manager=care_manager or CareManager(),
            services=list(services or []),
            status=ClientStatus.ACTIVE,
            pipeline_stage=graph.entry_stage(),
            pipeline_id=pipeline_id,
            case=build_default_case(client_id, personal_info.full_name, author, now),
            created_at=now,
            updated_at=now,
        )
        event = create_timeline_event(
            RecordEvent,
            client_id,
            "Client created",
            f"{personal_info.full_name} was added as a new client",
            identity=identity,
            type=TimelineEventType.CLIENT_CREATED.value,
        )
        client = append_timeline_event(client, event)

        await self.store.create(client)

        logger.info(
            "Created client",
            extra={
                "client_id": client_id,
                "organization_id": organization_id,
                "stage": client.pipeline_stage,
                "pipeline_id": pipeline_id,
            },
        )
        await self._safe_emit(
            BrokerageEvent(
                event_type=EventType.CLIENT_CREATED,
                organization_id=organization_id,
                client_id=client_id,
                details={"stage": client.pipeline_stage, "author": author},
            )
        )
        return client

    async def get_client(self, organization_id: str, client_id: str) -> Client:
        """Get a client, archived or not.

        Raises:
            ClientNotFoundError: If missing or owned by another organization.
        """
        return await load_client_for_organization(
            self.store, organization_id, client_id, allow_archived=True
        )

    async def list_clients(
        self,
        organization_id: str,
        include_archived: bool = False,
    ) -> List[Client]:
        """List the organization's clients, newest first."""
        clients = await self.store.list_by_organization(organization_id)
        if not include_archived:
            clients = [c for c in clients if not c.is_archived]
        return sorted(clients, key=lambda c: c.created_at, reverse=True)

    async def search_clients(
        self,
        organization_id: str,
        query: str = "",
        status: Optional[ClientStatus] = None,
        stage: Optional[str] = None,
        include_archived: bool = False,
    ) -> List[Client]:
        """Search clients by name or email, case-insensitively.

        status and stage narrow the results further. Archived clients are
        left out unless include_archived is set.
        """
        needle = query.strip().lower()
        results = []
        for client in await self.list_clients(organization_id, include_archived=include_archived):
            if status is not None and client.status != status:
                continue
            if stage is not None and client.pipeline_stage != stage:
                continue
            info = client.personal_info
            if needle and needle not in info.full_name.lower() and needle not in info.email.lower():
                continue
            results.append(client)
        return results

    async def clients_by_stage(self, organization_id: str, stage: str) -> List[Client]:
        """List non-archived clients currently in a stage."""
        return [
            c for c in await self.list_clients(organization_id)
            if c.pipeline_stage == stage
        ]

    async def pipeline_statistics(
        self,
        organization_id: str,
        pipeline_id: Optional[str] = None,
    ) -> Dict[str, int]:
        """Count non-archived clients per stage of one pipeline.

        Every stage of the pipeline is present in the result, with zero
        for empty stages.

        Raises:
            PipelineNotFoundError: If pipeline_id is not registered.
        """
        graph = self.registry.graph_for(pipeline_id)
        default_id = self.registry.default_pipeline().id
        counts = {stage.id: 0 for stage in graph.all_stages()}
        for client in await self.list_clients(organization_id):
            if (client.pipeline_id or default_id) != graph.pipeline_id:
                continue
            if client.pipeline_stage in counts:
                counts[client.pipeline_stage] += 1
        return counts

    async def update_client(
        self,
        organization_id: str,
        client_id: str,
        personal_info: Optional[PersonalInfo] = None,
        care_manager: Optional[CareManager] = None,
        services: Optional[List[ServiceType]] = None,
        status: Optional[ClientStatus] = None,
        identity: Optional[IdentityContext] = None,
    ) -> Client:
        """Update a client's details. The stage is never changed here.

        A status change appends a status-changed timeline event.

        Raises:
            ClientNotFoundError: If missing, archived or foreign.
            ConcurrentModificationError: If the client changed concurrently.
            StorageError: If the write fails.
        """
        client = await load_client_for_organization(self.store, organization_id, client_id)

        update: Dict[str, object] = {}
        if personal_info is not None:
            update["personal_info"] = personal_info
        if care_manager is not None:
            update["care_manager"] = care_manager
        if services is not None:
            update["services"] = list(services)
        updated = client.model_copy(update=update)

        if status is not None and status != client.status:
            updated = updated.model_copy(update={"status": status})
            updated = append_timeline_event(
                updated,
                create_timeline_event(
                    StatusChangedEvent,
                    client_id,
                    "Status changed",
                    f"Client status changed from {client.status.value} to {status.value}",
                    identity=identity or self.identity,
                    from_status=client.status.value,
                    to_status=status.value,
                ),
            )

        return await self._write(client, updated)

    async def archive_client(
        self,
        organization_id: str,
        client_id: str,
        identity: Optional[IdentityContext] = None,
    ) -> Client:
        """Archive a client. Nothing is deleted; see unarchive_client.

        Raises:
            ClientNotFoundError: If missing, already archived or foreign.
        """
        client = await load_client_for_organization(self.store, organization_id, client_id)
        updated = client.model_copy(
            update={
                "is_archived": True,
                "archived_at": _utcnow(),
                "status": ClientStatus.INACTIVE,
            }
        )
        updated = append_timeline_event(
            updated,
            create_timeline_event(
                StatusChangedEvent,
                client_id,
                "Client archived",
                "Client was archived",
                identity=identity or self.identity,
                from_status=client.status.value,
                to_status=ClientStatus.INACTIVE.value,
            ),
        )
        result = await self._write(client, updated)
        logger.info(
            "Archived client",
            extra={"client_id": client_id, "organization_id": organization_id},
        )
        await self._safe_emit(
            BrokerageEvent(
                event_type=EventType.CLIENT_ARCHIVED,
                organization_id=organization_id,
                client_id=client_id,
            )
        )
        return result

    async def unarchive_client(
        self,
        organization_id: str,
        client_id: str,
        identity: Optional[IdentityContext] = None,
    ) -> Client:
        """Restore an archived client to active.

        Raises:
            ClientNotFoundError: If missing or foreign.
        """
        client = await load_client_for_organization(
            self.store, organization_id, client_id, allow_archived=True
        )
        if not client.is_archived:
            return client

        updated = client.model_copy(
            update={
                "is_archived": False,
                "archived_at": None,
                "status": ClientStatus.ACTIVE,
            }
        )
        updated = append_timeline_event(
            updated,
            create_timeline_event(
                StatusChangedEvent,
                client_id,
                "Client restored",
                "Client was restored from the archive",
                identity=identity or self.identity,
                from_status=client.status.value,
                to_status=ClientStatus.ACTIVE.value,
            ),
        )
        result = await self._write(client, updated)
        logger.info(
            "Unarchived client",
            extra={"client_id": client_id, "organization_id": organization_id},
        )
        return result

    async def add_case_note(
        self,
        organization_id: str,
        client_id: str,
        content: str,
        note_type: NoteType = NoteType.GENERAL,
        identity: Optional[IdentityContext] = None,
    ) -> Client:
        """Add a note to the client's case and record it on the timeline.

        Raises:
            ValueError: If content is blank.
            ClientNotFoundError: If missing, archived or foreign.
        """
        if not content or not content.strip():
            raise ValueError("Note content must not be empty")

        identity = identity or self.identity
        client = await load_client_for_organization(self.store, organization_id, client_id)
        note = CaseNote(
            id=_new_id(),
            content=content.strip(),
            author=resolve_author(identity),
            type=note_type,
        )
        case = client.case.model_copy(update={"notes": [note, *client.case.notes]})
        updated = append_timeline_event(
            client.model_copy(update={"case": case}),
            create_timeline_event(
                NoteAddedEvent,
                client_id,
                "Note added",
                note.content[:200],
                identity=identity,
                note_id=note.id,
            ),
        )
        return await self._write(client, updated)

    async def assign_pipeline(
        self,
        organization_id: str,
        client_id: str,
        pipeline_id: str,
        identity: Optional[IdentityContext] = None,
    ) -> Client:
        """Move a client to another pipeline, at that pipeline's entry stage.

        Raises:
            PipelineNotFoundError: If pipeline_id is not registered.
            ClientNotFoundError: If missing, archived or foreign.
        """
        pipeline = self.registry.get(pipeline_id)
        graph = self.registry.graph_for(pipeline_id)
        client = await load_client_for_organization(self.store, organization_id, client_id)

        updated = client.model_copy(
            update={"pipeline_id": pipeline_id, "pipeline_stage": graph.entry_stage()}
        )
        updated = append_timeline_event(
            updated,
            create_timeline_event(
                PipelineAssignedEvent,
                client_id,
                f"Assigned to {pipeline.name}",
                f"Client assigned to pipeline {pipeline.name}",
                identity=identity or self.identity,
                pipeline_id=pipeline_id,
                previous_pipeline_id=client.pipeline_id,
            ),
        )
        result = await self._write(client, updated)
        logger.info(
            "Assigned client pipeline",
            extra={
                "client_id": client_id,
                "pipeline_id": pipeline_id,
                "stage": result.pipeline_stage,
            },
        )
        return result

    async def _write(self, original: Client, updated: Client) -> Client:
        updated = updated.model_copy(
            update={"updated_at": _utcnow(), "version": original.version + 1}
        )
        await self.store.put(updated, expected_version=original.version)
        return updated

    async def _safe_emit(self, event: BrokerageEvent) -> None:
        """Emit an event, swallowing exceptions so the operation still succeeds."""
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
