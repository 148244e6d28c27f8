"""Pipeline stage models.

This module defines the data models for client pipelines, including:
- DefaultStage: Enum of the stages in the standard brokerage pipeline
- StageConfig: Display metadata and transition rules for one stage
- CustomPipeline: A named, organization-selectable set of stages
- DEFAULT_STAGE_CONFIGS / DEFAULT_PIPELINES: Built-in tables

Stage ids are plain strings so that custom pipelines can introduce their
own stages. The default pipeline's ids are also available as DefaultStage
members, which compare equal to their string values.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class DefaultStage(str, Enum):
    """Stages of the standard disability-services brokerage workflow.

    Stage Flow:
        lead-intake → client-onboarding → {budget-processing ↔ document-management}
        → billing-automation → completed

    Attributes:
        LEAD_INTAKE: Initial contact and form collection.
        CLIENT_ONBOARDING: Broker agreement and documentation.
        BUDGET_PROCESSING: Start-up, initial and CNBA budgets.
        DOCUMENT_MANAGEMENT: Life plans, LOC forms and evaluations.
        BILLING_AUTOMATION: Invoice generation and submission.
        COMPLETED: Process completed successfully.
    """

    LEAD_INTAKE = "lead-intake"
    CLIENT_ONBOARDING = "client-onboarding"
    BUDGET_PROCESSING = "budget-processing"
    DOCUMENT_MANAGEMENT = "document-management"
    BILLING_AUTOMATION = "billing-automation"
    COMPLETED = "completed"


def stage_value(stage: Union[str, Enum]) -> str:
    """Normalize a stage id given as a plain string or an enum member."""
    if isinstance(stage, Enum):
        return str(stage.value)
    return str(stage)


class DocumentType(str, Enum):
    """Document type tags a stage may require."""

    LIFE_PLAN = "life-plan"
    LOC_FORM = "loc-form"
    NOD = "nod"
    DDP2_PROFILE = "ddp2-profile"
    SERVICE_AUTH = "service-auth"
    SAFEGUARDS = "safeguards"
    PSYCH_EVAL = "psych-eval"
    BROKER_AGREEMENT = "broker-agreement"
    SAP = "sap"


class StageConfig(BaseModel):
    """Static metadata and transition rules for one pipeline stage.

    Attributes:
        id: Stage identifier, unique within its pipeline.
        title: Display title (e.g. "Client Onboarding").
        description: Short description of the work done in the stage.
        color: Foreground color used by the board.
        bg_color: Optional background color used by the board.
        order: Ordering index on the board.
        allowed_transitions: Stage ids a client may move to from here.
        required_documents: Document types expected in this stage.
        automated_actions: Side-effect action names run on entry.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    description: str = ""
    color: str = "#6B7280"
    bg_color: Optional[str] = None
    order: int = 0
    allowed_transitions: Tuple[str, ...] = ()
    required_documents: Tuple[DocumentType, ...] = ()
    automated_actions: Tuple[str, ...] = ()


class CustomPipeline(BaseModel):
    """A named set of stages an organization can assign clients to.

    Attributes:
        id: Pipeline identifier.
        name: Display name.
        description: What the pipeline is for.
        is_default: Whether this pipeline is used when a client has none.
        stages: Stage configurations making up the pipeline.
        created_at: When the pipeline was defined (UTC).
        updated_at: When the pipeline was last changed (UTC).
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = ""
    is_default: bool = False
    stages: Tuple[StageConfig, ...] = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


DEFAULT_PIPELINE_ID = "disability-services"


# Standard brokerage pipeline
#
# budget-processing and document-management allow moves in both directions.
# COMPLETED has no outgoing transitions.
DEFAULT_STAGE_CONFIGS: Tuple[StageConfig, ...] = (
    StageConfig(
        id=DefaultStage.LEAD_INTAKE.value,
        title="Lead Intake",
        description="Initial contact and form collection",
        color="#3B82F6",
        bg_color="#EFF6FF",
        order=1,
        allowed_transitions=(DefaultStage.CLIENT_ONBOARDING.value,),
        automated_actions=("send-intake-form", "create-google-sheet-entry"),
    ),
    StageConfig(
        id=DefaultStage.CLIENT_ONBOARDING.value,
        title="Client Onboarding",
        description="Broker agreement and documentation",
        color="#10B981",
        bg_color="#ECFDF5",
        order=2,
        allowed_transitions=(
            DefaultStage.BUDGET_PROCESSING.value,
            DefaultStage.DOCUMENT_MANAGEMENT.value,
        ),
        required_documents=(DocumentType.BROKER_AGREEMENT,),
        automated_actions=("send-broker-agreement", "schedule-intake-meeting"),
    ),
    StageConfig(
        id=DefaultStage.BUDGET_PROCESSING.value,
        title="Budget Processing",
        description="Start-up, Initial & CNBA budgets",
        color="#F59E0B",
        bg_color="#FFFBEB",
        order=3,
        allowed_transitions=(
            DefaultStage.DOCUMENT_MANAGEMENT.value,
            DefaultStage.BILLING_AUTOMATION.value,
        ),
        required_documents=(
            DocumentType.LIFE_PLAN,
            DocumentType.LOC_FORM,
            DocumentType.DDP2_PROFILE,
        ),
        automated_actions=("create-budget", "submit-to-fi"),
    ),
    StageConfig(
        id=DefaultStage.DOCUMENT_MANAGEMENT.value,
        title="Document Management",
        description="Life plans, LOC forms & evaluations",
        color="#8B5CF6",
        bg_color="#F5F3FF",
        order=4,
        allowed_transitions=(
            DefaultStage.BILLING_AUTOMATION.value,
            DefaultStage.BUDGET_PROCESSING.value,
        ),
        required_documents=(
            DocumentType.LIFE_PLAN,
            DocumentType.SAP,
            DocumentType.SAFEGUARDS,
        ),
        automated_actions=("request-documents", "validate-documents"),
    ),
    StageConfig(
        id=DefaultStage.BILLING_AUTOMATION.value,
        title="Billing Automation",
        description="Invoice generation & submission",
        color="#EF4444",
        bg_color="#FEF2F2",
        order=5,
        allowed_transitions=(DefaultStage.COMPLETED.value,),
        automated_actions=("generate-invoices", "submit-billing"),
    ),
    StageConfig(
        id=DefaultStage.COMPLETED.value,
        title="Completed",
        description="Process completed successfully",
        color="#6B7280",
        bg_color="#F9FAFB",
        order=6,
        allowed_transitions=(),
        automated_actions=("archive-case", "send-completion-notice"),
    ),
)


SIMPLE_STAGE_CONFIGS: Tuple[StageConfig, ...] = (
    StageConfig(
        id="new-lead",
        title="New Lead",
        description="New potential client",
        color="#3B82F6",
        order=1,
        allowed_transitions=("in-progress",),
    ),
    StageConfig(
        id="in-progress",
        title="In Progress",
        description="Active client processing",
        color="#F59E0B",
        order=2,
        allowed_transitions=("completed",),
    ),
    StageConfig(
        id="completed",
        title="Completed",
        description="Process finished",
        color="#10B981",
        order=3,
    ),
)


DEFAULT_PIPELINES: List[CustomPipeline] = [
    CustomPipeline(
        id=DEFAULT_PIPELINE_ID,
        name="Disability Services",
        description="Standard disability services brokerage workflow",
        is_default=True,
        stages=DEFAULT_STAGE_CONFIGS,
    ),
    CustomPipeline(
        id="simple-workflow",
        name="Simple Workflow",
        description="Simplified 3-stage workflow",
        is_default=False,
        stages=SIMPLE_STAGE_CONFIGS,
    ),
]
