"""Client record store interface and in-memory implementation.

The ClientStore protocol is the only way services reach client
documents. Every client document is written as a whole; a write may carry
the version the writer read, and the store rejects it with
ConcurrentModificationError when the stored version has moved on.

The store itself is shared across organizations. Scoping reads and
writes to one organization is the job of the calling service.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Protocol, runtime_checkable

from src.brokerage.clients.models import Client
from src.brokerage.errors import ConcurrentModificationError, StorageError


logger = logging.getLogger(__name__)


@runtime_checkable
class ClientStore(Protocol):
    """Protocol defining the interface for client document persistence.

    The PostgreSQL implementation is in repository.py.
    """

    async def get(self, client_id: str) -> Optional[Client]:
        """Get a client by id.

        Args:
            client_id: The client identifier.

        Returns:
            The client if found, None otherwise.

        Raises:
            StorageError: If the read fails.
        """
        ...

    async def create(self, client: Client) -> None:
        """Store a new client.

        Raises:
            StorageError: If the client already exists or the write fails.
        """
        ...

    async def put(self, client: Client, expected_version: Optional[int] = None) -> None:
        """Replace a stored client document.

        Args:
            client: The full client document to store.
            expected_version: Version the caller read. When given, the
                write only succeeds if the stored version still matches.

        Raises:
            ConcurrentModificationError: If the stored version differs.
            StorageError: If the write fails.
        """
        ...

    async def list_by_organization(self, organization_id: str) -> List[Client]:
        """List all clients (archived included) of an organization.

        Raises:
            StorageError: If the read fails.
        """
        ...


class InMemoryClientStore:
    """In-memory implementation of the ClientStore protocol.

    Documents are copied on the way in and out, so callers never share
    an object with the store. An asyncio.Lock makes the version check and
    the write of put() a single step.
    """

    def __init__(self) -> None:
        self._clients: Dict[str, Client] = {}
        self._lock = asyncio.Lock()

    async def get(self, client_id: str) -> Optional[Client]:
        client = self._clients.get(client_id)
        return client.model_copy(deep=True) if client is not None else None

    async def create(self, client: Client) -> None:
        async with self._lock:
            if client.id in self._clients:
                raise StorageError(f"Client already exists: {client.id}")
            self._clients[client.id] = client.model_copy(deep=True)

        logger.debug(
            "Created client document",
            extra={"client_id": client.id, "organization_id": client.organization_id},
        )

    async def put(self, client: Client, expected_version: Optional[int] = None) -> None:
        async with self._lock:
            existing = self._clients.get(client.id)
            if expected_version is not None:
                actual = existing.version if existing is not None else None
                if actual != expected_version:
                    logger.warning(
                        "Version conflict during client update",
                        extra={
                            "client_id": client.id,
                            "expected_version": expected_version,
                            "actual_version": actual,
                        },
                    )
                    raise ConcurrentModificationError(
                        client.id, expected_version, actual
                    )
            self._clients[client.id] = client.model_copy(deep=True)

    async def list_by_organization(self, organization_id: str) -> List[Client]:
        return [
            client.model_copy(deep=True)
            for client in sorted(self._clients.values(), key=lambda c: c.created_at)
            if client.organization_id == organization_id
        ]

    async def health_check(self) -> bool:
        return True

    def clear(self) -> None:
        """Remove all clients from the store."""
        self._clients.clear()
