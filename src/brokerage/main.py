"""FastAPI application entry point for the brokerage service.

Startup wires settings → pipeline registry → client store → services.
The acting user's display name is taken from the X-Actor-Name header
and recorded as the author of timeline events.
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from .actions.dispatcher import ActionDispatcher, create_action_dispatcher
from .clients.manager import ClientService
from .clients.models import CareManager, Client, ClientStatus, NoteType, PersonalInfo, ServiceType
from .clients.store import ClientStore, InMemoryClientStore
from .config import BrokerageSettings, get_settings
from .dashboard import DashboardMetrics, DashboardService
from .errors import (
    ClientNotFoundError,
    ConcurrentModificationError,
    IllegalTransitionError,
    PipelineNotFoundError,
    StorageError,
)
from .events.emitter import EventEmitter, EventSinkType, create_event_emitter
from .events.metrics import generate_metrics_output
from .service import BulkMoveResult, PipelineService
from .stages.models import CustomPipeline
from .stages.registry import PipelineRegistry, build_registry
from .timeline.append import StaticIdentityContext

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global instances, initialized during lifespan startup
settings: Optional[BrokerageSettings] = None
registry: Optional[PipelineRegistry] = None
client_store: Optional[ClientStore] = None
client_service: Optional[ClientService] = None
pipeline_service: Optional[PipelineService] = None
dashboard_service: Optional[DashboardService] = None
action_dispatcher: Optional[ActionDispatcher] = None
event_emitter: Optional[EventEmitter] = None


def _redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(cfg: BrokerageSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Brokerage configuration:")
    logger.info(
        f"  Database URL: {_redact_secret(cfg.database_url) if cfg.database_url else 'in-memory'}"
    )
    logger.info(f"  Pipelines File: {cfg.pipelines_file or 'built-in only'}")
    logger.info(f"  Default Actor Name: {cfg.default_actor_name}")
    logger.info(f"  Bulk Move Concurrency: {cfg.bulk_move_concurrency}")
    logger.info(
        f"  Action Webhook URL: {_redact_secret(cfg.action_webhook_url, 12) if cfg.action_webhook_url else 'log only'}"
    )
    logger.info(f"  Action Timeout Seconds: {cfg.action_timeout_seconds}")
    logger.info(f"  Action Max Retries: {cfg.action_max_retries}")
    logger.info(f"  Metrics Enabled: {cfg.enable_metrics}")
    logger.info(f"  Host: {cfg.host}")
    logger.info(f"  Port: {cfg.port}")


async def _create_client_store(cfg: BrokerageSettings) -> ClientStore:
    """Create the PostgreSQL store when a database is configured, else an in-memory one."""
    if not cfg.database_url:
        logger.warning("No database configured, using in-memory client store")
        return InMemoryClientStore()

    from .clients.repository import PostgresClientStore

    store = PostgresClientStore(
        cfg.database_url,
        min_pool_size=cfg.database_min_pool_size,
        max_pool_size=cfg.database_max_pool_size,
    )
    await store.connect()
    return store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown.

    Handles:
    - Configuration loading and validation
    - Pipeline registry and client store setup
    - Service wiring
    - Draining automated actions and closing connections on shutdown
    """
    global settings, registry, client_store, client_service
    global pipeline_service, dashboard_service, action_dispatcher, event_emitter

    logger.info("Brokerage service starting up...")

    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level)
    _log_configuration(settings)

    registry = build_registry(settings.pipelines_file)
    client_store = await _create_client_store(settings)

    sinks = [EventSinkType.LOGGING]
    if settings.enable_metrics:
        sinks.append(EventSinkType.METRICS)
    event_emitter = create_event_emitter(sinks)

    action_dispatcher = create_action_dispatcher(
        settings.action_webhook_url,
        max_retries=settings.action_max_retries,
        timeout=settings.action_timeout_seconds,
    )

    client_service = ClientService(client_store, registry, event_emitter=event_emitter)
    pipeline_service = PipelineService(
        client_store,
        registry,
        dispatcher=action_dispatcher,
        event_emitter=event_emitter,
        bulk_move_concurrency=settings.bulk_move_concurrency,
    )
    dashboard_service = DashboardService(client_store, registry)

    logger.info("Brokerage service started successfully")

    yield

    logger.info("Brokerage service shutting down...")

    drained = await pipeline_service.drain_actions(timeout=settings.action_timeout_seconds)
    if drained:
        logger.info(f"Drained {drained} automated actions")
    await action_dispatcher.close()
    await event_emitter.close()
    disconnect = getattr(client_store, "disconnect", None)
    if disconnect is not None:
        await disconnect()

    logger.info("Brokerage service shutdown complete")


app = FastAPI(
    title="Brokerage Pipeline Service",
    description="Client records and stage pipeline for disability-services brokerages",
    version="1.0.0",
    lifespan=lifespan,
)


# -----------------------------------------------------------------------------
# Error mapping
# -----------------------------------------------------------------------------
def _error_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


@app.exception_handler(ClientNotFoundError)
async def client_not_found_handler(request: Request, exc: ClientNotFoundError):
    return _error_response(404, exc)


@app.exception_handler(PipelineNotFoundError)
async def pipeline_not_found_handler(request: Request, exc: PipelineNotFoundError):
    return _error_response(404, exc)


@app.exception_handler(IllegalTransitionError)
async def illegal_transition_handler(request: Request, exc: IllegalTransitionError):
    return _error_response(409, exc)


@app.exception_handler(ConcurrentModificationError)
async def concurrent_modification_handler(request: Request, exc: ConcurrentModificationError):
    return _error_response(409, exc)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return _error_response(422, exc)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(
        "Storage failure while handling request",
        extra={"path": request.url.path, "error": str(exc)},
    )
    return _error_response(503, exc)


# -----------------------------------------------------------------------------
# Request models
# -----------------------------------------------------------------------------
class CreateClientRequest(BaseModel):
    personal_info: PersonalInfo
    care_manager: Optional[CareManager] = None
    services: List[ServiceType] = Field(default_factory=list)
    pipeline_id: Optional[str] = None


class UpdateClientRequest(BaseModel):
    personal_info: Optional[PersonalInfo] = None
    care_manager: Optional[CareManager] = None
    services: Optional[List[ServiceType]] = None
    status: Optional[ClientStatus] = None


class MoveRequest(BaseModel):
    target_stage: str = Field(..., min_length=1)


class BulkMoveRequest(BaseModel):
    client_ids: List[str] = Field(..., min_length=1)
    target_stage: str = Field(..., min_length=1)


class NoteRequest(BaseModel):
    content: str = Field(..., min_length=1)
    type: NoteType = NoteType.GENERAL


def _identity(actor_name: Optional[str]) -> StaticIdentityContext:
    default = settings.default_actor_name if settings is not None else None
    return StaticIdentityContext(actor_name or default)


def _require_services():
    if client_service is None or pipeline_service is None or dashboard_service is None:
        logger.error("Brokerage service not initialized")
        raise HTTPException(status_code=503, detail="Service not initialized")
    return client_service, pipeline_service, dashboard_service


# -----------------------------------------------------------------------------
# Probes and metrics
# -----------------------------------------------------------------------------
@app.get("/health")
async def health():
    """Liveness probe endpoint."""
    return {"status": "healthy"}


@app.get("/ready")
async def ready():
    """Readiness probe endpoint.

    Reports not_ready with a 503 when the client store is unavailable.
    """
    store_status = "unavailable"
    if client_store is not None:
        check = getattr(client_store, "health_check", None)
        healthy = await check() if check is not None else True
        store_status = "healthy" if healthy else "unhealthy"

    body = {
        "status": "ready" if store_status == "healthy" else "not_ready",
        "dependencies": {"client_store": store_status},
    }
    if store_status != "healthy":
        return JSONResponse(status_code=503, content=body)
    return body


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    """Prometheus metrics endpoint."""
    return PlainTextResponse(generate_metrics_output())


# -----------------------------------------------------------------------------
# Pipelines
# -----------------------------------------------------------------------------
@app.get("/pipelines", response_model=List[CustomPipeline])
async def list_pipelines():
    if registry is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return registry.list_pipelines()


# -----------------------------------------------------------------------------
# Clients
# -----------------------------------------------------------------------------
@app.get("/organizations/{organization_id}/clients", response_model=List[Client])
async def list_clients(
    organization_id: str,
    include_archived: bool = False,
    q: Optional[str] = None,
    status: Optional[ClientStatus] = None,
    stage: Optional[str] = None,
):
    clients, _, _ = _require_services()
    return await clients.search_clients(
        organization_id,
        q or "",
        status,
        stage=stage,
        include_archived=include_archived,
    )


@app.post("/organizations/{organization_id}/clients", response_model=Client, status_code=201)
async def create_client(
    organization_id: str,
    body: CreateClientRequest,
    x_actor_name: Optional[str] = Header(default=None),
):
    clients, _, _ = _require_services()
    return await clients.create_client(
        organization_id,
        body.personal_info,
        care_manager=body.care_manager,
        services=body.services,
        pipeline_id=body.pipeline_id,
        identity=_identity(x_actor_name),
    )


@app.post("/organizations/{organization_id}/clients/bulk-move", response_model=BulkMoveResult)
async def bulk_move(
    organization_id: str,
    body: BulkMoveRequest,
    x_actor_name: Optional[str] = Header(default=None),
):
    _, pipeline, _ = _require_services()
    return await pipeline.bulk_move(
        organization_id,
        body.client_ids,
        body.target_stage,
        identity=_identity(x_actor_name),
    )


@app.get("/organizations/{organization_id}/clients/{client_id}", response_model=Client)
async def get_client(organization_id: str, client_id: str):
    clients, _, _ = _require_services()
    return await clients.get_client(organization_id, client_id)


@app.patch("/organizations/{organization_id}/clients/{client_id}", response_model=Client)
async def update_client(
    organization_id: str,
    client_id: str,
    body: UpdateClientRequest,
    x_actor_name: Optional[str] = Header(default=None),
):
    clients, _, _ = _require_services()
    return await clients.update_client(
        organization_id,
        client_id,
        personal_info=body.personal_info,
        care_manager=body.care_manager,
        services=body.services,
        status=body.status,
        identity=_identity(x_actor_name),
    )


@app.post("/organizations/{organization_id}/clients/{client_id}/move", response_model=Client)
async def move_client(
    organization_id: str,
    client_id: str,
    body: MoveRequest,
    x_actor_name: Optional[str] = Header(default=None),
):
    _, pipeline, _ = _require_services()
    return await pipeline.move_client_to_stage(
        organization_id,
        client_id,
        body.target_stage,
        identity=_identity(x_actor_name),
    )


@app.post("/organizations/{organization_id}/clients/{client_id}/archive", response_model=Client)
async def archive_client(
    organization_id: str,
    client_id: str,
    x_actor_name: Optional[str] = Header(default=None),
):
    clients, _, _ = _require_services()
    return await clients.archive_client(
        organization_id, client_id, identity=_identity(x_actor_name)
    )


@app.post("/organizations/{organization_id}/clients/{client_id}/unarchive", response_model=Client)
async def unarchive_client(
    organization_id: str,
    client_id: str,
    x_actor_name: Optional[str] = Header(default=None),
):
    clients, _, _ = _require_services()
    return await clients.unarchive_client(
        organization_id, client_id, identity=_identity(x_actor_name)
    )


@app.post("/organizations/{organization_id}/clients/{client_id}/notes", response_model=Client)
async def add_note(
    organization_id: str,
    client_id: str,
    body: NoteRequest,
    x_actor_name: Optional[str] = Header(default=None),
):
    clients, _, _ = _require_services()
    return await clients.add_case_note(
        organization_id,
        client_id,
        body.content,
        note_type=body.type,
        identity=_identity(x_actor_name),
    )


# -----------------------------------------------------------------------------
# Dashboard
# -----------------------------------------------------------------------------
@app.get("/organizations/{organization_id}/dashboard", response_model=DashboardMetrics)
async def dashboard(organization_id: str):
    _, _, dashboards = _require_services()
    return await dashboards.metrics(organization_id)


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.brokerage.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
        reload=True,
    )
