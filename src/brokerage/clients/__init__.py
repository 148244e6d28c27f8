"""Client records, their stores and the client CRUD service."""

from src.brokerage.clients.manager import ClientService, load_client_for_organization
from src.brokerage.clients.models import (
    Address,
    Budget,
    CareManager,
    CaseMilestone,
    CaseNote,
    Client,
    ClientCase,
    ClientDocument,
    ClientStatus,
    EmergencyContact,
    NoteType,
    PersonalInfo,
    ServiceType,
)
from src.brokerage.clients.store import ClientStore, InMemoryClientStore

__all__ = [
    "Address",
    "Budget",
    "CareManager",
    "CaseMilestone",
    "CaseNote",
    "Client",
    "ClientCase",
    "ClientDocument",
    "ClientService",
    "ClientStatus",
    "ClientStore",
    "EmergencyContact",
    "InMemoryClientStore",
    "NoteType",
    "PersonalInfo",
    "ServiceType",
    "load_client_for_organization",
]
