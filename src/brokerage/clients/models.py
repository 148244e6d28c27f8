"""Client record models.

This module defines the data models for brokerage clients, including:
- Client: The client document, owned by exactly one organization
- PersonalInfo / Address / EmergencyContact: Personal details
- CareManager: The client's external care manager
- ClientCase: Case sub-record with notes and milestones
- ClientDocument / Budget: Document and budget records attached to a client

A client document is stored and replaced as a whole. Services never
mutate a loaded Client in place; they build an updated copy and write it
back with the version they read.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from src.brokerage.stages.models import DocumentType
from src.brokerage.timeline.models import TimelineEvent


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClientStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    COMPLETED = "completed"


class ServiceType(str, Enum):
    START_UP_BROKER = "start-up-broker"
    COMMUNITY_HABILITATION = "community-habilitation"
    SAP = "sap"
    BUDGETING = "budgeting"
    CASE_MANAGEMENT = "case-management"


class CasePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class CaseStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    WAITING_CLIENT = "waiting-client"
    WAITING_APPROVAL = "waiting-approval"
    COMPLETED = "completed"
    ON_HOLD = "on-hold"
    CANCELLED = "cancelled"


class NoteType(str, Enum):
    GENERAL = "general"
    MEETING = "meeting"
    PHONE_CALL = "phone-call"
    EMAIL = "email"
    DOCUMENT = "document"
    MILESTONE = "milestone"


class MilestoneStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"


class DocumentStatus(str, Enum):
    PENDING = "pending"
    RECEIVED = "received"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class BudgetType(str, Enum):
    START_UP = "start-up"
    INITIAL = "initial"
    CNBA = "cnba"


class BudgetStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REVISION_REQUESTED = "revision-requested"
    REJECTED = "rejected"


class Address(BaseModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = "USA"


class EmergencyContact(BaseModel):
    name: str
    relationship: str
    phone: str
    email: Optional[str] = None


class PersonalInfo(BaseModel):
    """Personal details of a client.

    `full_name` is derived from the first and last name when omitted.
    """

    first_name: str = Field(..., min_length=1)
    last_name: str = ""
    full_name: str = ""
    email: str = ""
    phone: str = ""
    address: Address = Field(default_factory=Address)
    date_of_birth: Optional[date] = None
    emergency_contact: Optional[EmergencyContact] = None
    disabilities: List[str] = Field(default_factory=list)
    special_needs: List[str] = Field(default_factory=list)

    def model_post_init(self, __context) -> None:
        if not self.full_name:
            self.full_name = f"{self.first_name} {self.last_name}".strip()


class CareManager(BaseModel):
    id: str = ""
    name: str = ""
    email: str = ""
    phone: str = ""
    organization: str = ""
    title: str = ""


class CaseNote(BaseModel):
    id: str
    content: str = Field(..., min_length=1)
    author: str
    created_at: datetime = Field(default_factory=_utcnow)
    type: NoteType = NoteType.GENERAL


class CaseMilestone(BaseModel):
    id: str
    title: str
    description: str = ""
    target_date: datetime
    completed_date: Optional[datetime] = None
    status: MilestoneStatus = MilestoneStatus.PENDING


class ClientCase(BaseModel):
    """Case sub-record of a client.

    Attributes:
        id: Case identifier.
        client_id: Owning client.
        title: Case title, e.g. "<name> - Broker Services Case".
        description: Case description.
        priority: Case priority.
        status: Case status.
        assigned_broker: Display name of the broker handling the case.
        start_date: When the case was opened.
        target_completion_date: Planned completion, if any.
        completed_date: Actual completion, if any.
        notes: Case notes, newest first.
        milestones: Case milestones in creation order.
    """

    id: str
    client_id: str
    title: str
    description: str = ""
    priority: CasePriority = CasePriority.MEDIUM
    status: CaseStatus = CaseStatus.OPEN
    assigned_broker: str = ""
    start_date: datetime = Field(default_factory=_utcnow)
    target_completion_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    notes: List[CaseNote] = Field(default_factory=list)
    milestones: List[CaseMilestone] = Field(default_factory=list)


class ClientDocument(BaseModel):
    id: str
    client_id: str
    name: str
    type: DocumentType
    url: str = ""
    upload_date: datetime = Field(default_factory=_utcnow)
    uploaded_by: str = ""
    required: bool = False
    received: bool = False
    expiration_date: Optional[datetime] = None
    status: DocumentStatus = DocumentStatus.PENDING


class Budget(BaseModel):
    id: str
    client_id: str
    type: BudgetType
    amount: float = Field(..., ge=0)
    status: BudgetStatus = BudgetStatus.DRAFT
    submission_date: datetime = Field(default_factory=_utcnow)
    approval_date: Optional[datetime] = None
    fiscal_year: str = ""
    fiscal_intermediary: str = ""
    notes: Optional[str] = None


class Client(BaseModel):
    """A brokerage client and its pipeline position.

    The client's stage changes only through the pipeline service's move
    operation. Clients are never deleted; archiving flips `is_archived`
    and can be reversed.

    Attributes:
        id: Client identifier.
        organization_id: The organization that owns this client.
        personal_info: Personal details.
        care_manager: External care manager.
        services: Services the client receives.
        status: Client status.
        pipeline_stage: Current stage id within the client's pipeline.
        pipeline_id: Pipeline the client belongs to; None means the default.
        case: The client's case.
        documents: Documents on file.
        budgets: Budgets on file.
        timeline: Timeline events, newest first.
        created_at: When the client was created (UTC).
        updated_at: When the client was last updated (UTC).
        archived_at: When the client was archived, if archived.
        is_archived: Whether the client is archived.
        version: Optimistic locking version, incremented on every write.
    """

    id: str = Field(..., min_length=1)
    organization_id: str = Field(..., min_length=1)
    personal_info: PersonalInfo
    care_manager: CareManager = Field(default_factory=CareManager)
    services: List[ServiceType] = Field(default_factory=list)
    status: ClientStatus = ClientStatus.ACTIVE
    pipeline_stage: str = Field(..., min_length=1)
    pipeline_id: Optional[str] = None
    case: ClientCase
    documents: List[ClientDocument] = Field(default_factory=list)
    budgets: List[Budget] = Field(default_factory=list)
    timeline: List[TimelineEvent] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    archived_at: Optional[datetime] = None
    is_archived: bool = False
    version: int = Field(default=1, ge=1)
