"""PostgreSQL document store for client records.

This module implements the ClientStore protocol using asyncpg. Each
client is stored as one JSONB document alongside the columns needed to
scope and guard writes:

    CREATE TABLE clients (
        id              TEXT PRIMARY KEY,
        organization_id TEXT NOT NULL,
        document        JSONB NOT NULL,
        version         INTEGER NOT NULL,
        created_at      TIMESTAMPTZ NOT NULL,
        updated_at      TIMESTAMPTZ NOT NULL
    );
    CREATE INDEX clients_organization_id_idx ON clients (organization_id);

It provides:
- Connection pooling for production use
- Whole-document writes, so stage and timeline change together
- Optimistic locking via the version column
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional

import asyncpg

from src.brokerage.clients.models import Client
from src.brokerage.errors import ConcurrentModificationError, StorageError


logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS clients (
    id              TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    document        JSONB NOT NULL,
    version         INTEGER NOT NULL,
    created_at      TIMESTAMPTZ NOT NULL,
    updated_at      TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS clients_organization_id_idx ON clients (organization_id);
"""


class PostgresClientStore:
    """PostgreSQL implementation of the ClientStore protocol.

    Attributes:
        connection_string: PostgreSQL connection URL.
        min_pool_size: Minimum connections in pool.
        max_pool_size: Maximum connections in pool.

    Example:
        >>> async with PostgresClientStore("postgresql://...") as store:
        ...     client = await store.get("client-1")
    """

    def __init__(
        self,
        connection_string: str,
        min_pool_size: int = 2,
        max_pool_size: int = 10,
    ):
        self.connection_string = connection_string
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool, raising if not connected.

        Raises:
            StorageError: If the pool is not initialized.
        """
        if self._pool is None:
            raise StorageError("Database pool not initialized. Call connect() first.")
        return self._pool

    async def connect(self) -> None:
        """Initialize the connection pool and ensure the schema exists.

        Raises:
            StorageError: If connection fails.
        """
        if self._pool is not None:
            logger.warning("Connection pool already initialized")
            return

        try:
            logger.info(
                "Connecting to PostgreSQL",
                extra={
                    "min_pool_size": self.min_pool_size,
                    "max_pool_size": self.max_pool_size,
                },
            )
            self._pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
            )
            async with self._pool.acquire() as conn:
                await conn.execute(SCHEMA_SQL)
            logger.info("PostgreSQL connection pool established")
        except Exception as e:
            logger.error(
                "Failed to connect to PostgreSQL",
                extra={"error": str(e)},
            )
            raise StorageError(
                f"Failed to connect to PostgreSQL: {e}",
                original_error=e,
            ) from e

    async def disconnect(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            logger.info("Closing PostgreSQL connection pool")
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> "PostgresClientStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[asyncpg.Connection]:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    @staticmethod
    def _to_document(client: Client) -> str:
        return client.model_dump_json()

    @staticmethod
    def _from_row(row: Any) -> Client:
        document = row["document"]
        if isinstance(document, str):
            return Client.model_validate_json(document)
        return Client.model_validate(document)

    async def get(self, client_id: str) -> Optional[Client]:
        """Get a client document by id.

        Raises:
            StorageError: If the query fails.
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT document FROM clients WHERE id = $1",
                    client_id,
                )
                if row is None:
                    return None
                return self._from_row(row)
        except StorageError:
            raise
        except Exception as e:
            logger.error(
                "Failed to get client",
                extra={"client_id": client_id, "error": str(e)},
            )
            raise StorageError(f"Failed to get client: {e}", original_error=e) from e

    async def create(self, client: Client) -> None:
        """Insert a new client document.

        Raises:
            StorageError: If the client exists or the insert fails.
        """
        try:
            async with self._transaction() as conn:
                await conn.execute(
                    """
                    INSERT INTO clients (
                        id,
                        organization_id,
                        document,
                        version,
                        created_at,
                        updated_at
                    ) VALUES ($1, $2, $3::jsonb, $4, $5, $6)
                    """,
                    client.id,
                    client.organization_id,
                    self._to_document(client),
                    client.version,
                    client.created_at,
                    client.updated_at,
                )
            logger.info(
                "Saved client",
                extra={
                    "client_id": client.id,
                    "organization_id": client.organization_id,
                    "stage": client.pipeline_stage,
                },
            )
        except asyncpg.UniqueViolationError as e:
            raise StorageError(
                f"Client already exists: {client.id}",
                original_error=e,
            ) from e
        except StorageError:
            raise
        except Exception as e:
            logger.error(
                "Failed to save client",
                extra={"client_id": client.id, "error": str(e)},
            )
            raise StorageError(f"Failed to save client: {e}", original_error=e) from e

    async def put(self, client: Client, expected_version: Optional[int] = None) -> None:
        """Replace a client document, optionally guarded by version.

        Raises:
            ConcurrentModificationError: If the stored version differs.
            StorageError: If the write fails.
        """
        try:
            async with self._transaction() as conn:
                if expected_version is None:
                    await conn.execute(
                        """
                        INSERT INTO clients (
                            id, organization_id, document, version, created_at, updated_at
                        ) VALUES ($1, $2, $3::jsonb, $4, $5, $6)
                        ON CONFLICT (id) DO UPDATE SET
                            organization_id = EXCLUDED.organization_id,
                            document = EXCLUDED.document,
                            version = EXCLUDED.version,
                            updated_at = EXCLUDED.updated_at
                        """,
                        client.id,
                        client.organization_id,
                        self._to_document(client),
                        client.version,
                        client.created_at,
                        client.updated_at,
                    )
                    return

                result = await conn.execute(
                    """
                    UPDATE clients
                    SET
                        organization_id = $2,
                        document = $3::jsonb,
                        version = $4,
                        updated_at = $5
                    WHERE id = $1 AND version = $6
                    """,
                    client.id,
                    client.organization_id,
                    self._to_document(client),
                    client.version,
                    client.updated_at,
                    expected_version,
                )

                rows_affected = int(result.split()[-1])
                if rows_affected == 0:
                    actual = await conn.fetchval(
                        "SELECT version FROM clients WHERE id = $1",
                        client.id,
                    )
                    logger.warning(
                        "Version conflict during client update",
                        extra={
                            "client_id": client.id,
                            "expected_version": expected_version,
                            "actual_version": actual,
                        },
                    )
                    raise ConcurrentModificationError(client.id, expected_version, actual)

            logger.info(
                "Updated client",
                extra={
                    "client_id": client.id,
                    "stage": client.pipeline_stage,
                    "version": client.version,
                },
            )
        except (ConcurrentModificationError, StorageError):
            raise
        except Exception as e:
            logger.error(
                "Failed to update client",
                extra={"client_id": client.id, "error": str(e)},
            )
            raise StorageError(f"Failed to update client: {e}", original_error=e) from e

    async def list_by_organization(self, organization_id: str) -> List[Client]:
        """List all client documents of an organization.

        Raises:
            StorageError: If the query fails.
        """
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT document
                    FROM clients
                    WHERE organization_id = $1
                    ORDER BY created_at ASC
                    """,
                    organization_id,
                )
                clients = [self._from_row(row) for row in rows]
                logger.debug(
                    "Listed clients by organization",
                    extra={"organization_id": organization_id, "count": len(clients)},
                )
                return clients
        except StorageError:
            raise
        except Exception as e:
            logger.error(
                "Failed to list clients",
                extra={"organization_id": organization_id, "error": str(e)},
            )
            raise StorageError(f"Failed to list clients: {e}", original_error=e) from e

    async def health_check(self) -> bool:
        """Check if the database connection is healthy."""
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception as e:
            logger.warning(
                "Database health check failed",
                extra={"error": str(e)},
            )
            return False
