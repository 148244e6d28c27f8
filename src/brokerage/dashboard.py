"""Dashboard aggregate counts.

Counts are computed from the organization's client documents on every
call. Each client is measured against the stage graph of its own
pipeline: a lead is a client in its pipeline's entry stage, a completed
client is one in a stage with no outgoing transitions. Clients whose
pipeline is no longer registered count toward the totals only.
"""

import logging
from typing import Dict

from pydantic import BaseModel, Field

from src.brokerage.clients.models import ClientStatus
from src.brokerage.clients.store import ClientStore
from src.brokerage.errors import PipelineNotFoundError
from src.brokerage.stages.registry import PipelineRegistry


logger = logging.getLogger(__name__)


class DashboardMetrics(BaseModel):
    """Aggregate counts for one organization.

    Attributes:
        total_clients: Non-archived clients.
        active_leads: Non-archived clients in their pipeline's entry stage.
        active_clients: Non-archived clients with status active.
        completed_clients: Non-archived clients in a terminal stage.
        completion_rate: completed_clients as a percentage of total_clients.
        archived_clients: Archived clients.
        stage_counts: Non-archived clients per stage id.
    """

    organization_id: str
    total_clients: int = 0
    active_leads: int = 0
    active_clients: int = 0
    completed_clients: int = 0
    completion_rate: float = 0.0
    archived_clients: int = 0
    stage_counts: Dict[str, int] = Field(default_factory=dict)


def calculate_growth_rate(current: float, previous: float) -> float:
    """Percentage change from previous to current; 0 when previous is 0."""
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100


class DashboardService:
    """Compute dashboard metrics from client documents."""

    def __init__(self, store: ClientStore, registry: PipelineRegistry):
        self.store = store
        self.registry = registry

    async def metrics(self, organization_id: str) -> DashboardMetrics:
        """Compute the dashboard metrics of an organization.

        Raises:
            StorageError: If the store fails.
        """
        result = DashboardMetrics(organization_id=organization_id)
        clients = await self.store.list_by_organization(organization_id)

        for client in clients:
            if client.is_archived:
                result.archived_clients += 1
                continue

            result.total_clients += 1
            result.stage_counts[client.pipeline_stage] = (
                result.stage_counts.get(client.pipeline_stage, 0) + 1
            )
            if client.status == ClientStatus.ACTIVE:
                result.active_clients += 1

            try:
                graph = self.registry.graph_for(client.pipeline_id)
            except PipelineNotFoundError:
                logger.warning(
                    "Client references an unregistered pipeline",
                    extra={
                        "organization_id": organization_id,
                        "client_id": client.id,
                        "pipeline_id": client.pipeline_id,
                    },
                )
                continue
            if client.pipeline_stage == graph.entry_stage():
                result.active_leads += 1
            if client.pipeline_stage in graph.terminal_stages():
                result.completed_clients += 1

        if result.total_clients:
            result.completion_rate = round(
                result.completed_clients / result.total_clients * 100, 1
            )

        logger.debug(
            "Computed dashboard metrics",
            extra={
                "organization_id": organization_id,
                "total_clients": result.total_clients,
            },
        )
        return result
