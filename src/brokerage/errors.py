"""Exception types shared across the brokerage services.

The pipeline core raises precise, typed failures so that callers can
tell an unknown stage apart from a well-formed but disallowed move, and
both apart from storage trouble:

- ClientNotFoundError: client missing, archived, or owned by another organization
- InvalidStageError: a stage id that the stage graph does not know
- IllegalTransitionError: a known move that the stage graph does not allow
- StorageError: opaque failure of a storage collaborator
- ConcurrentModificationError: optimistic version check failed on write
"""

from typing import Optional


class BrokerageError(Exception):
    """Base class for all brokerage service errors."""


class ClientNotFoundError(BrokerageError):
    """Raised when a client cannot be used as the target of an operation.

    Archived clients and clients belonging to a different organization
    are reported the same way as missing ones.

    Attributes:
        client_id: The client id that was requested.
        reason: Short machine-readable reason (missing, archived, foreign).
    """

    def __init__(self, client_id: str, reason: str = "missing"):
        self.client_id = client_id
        self.reason = reason
        super().__init__(f"Client not found: {client_id} ({reason})")


class InvalidStageError(BrokerageError):
    """Raised when a stage id is not part of the stage graph.

    Attributes:
        stage_id: The unknown stage id.
    """

    def __init__(self, stage_id: str):
        self.stage_id = stage_id
        super().__init__(f"Unknown pipeline stage: {stage_id}")


class IllegalTransitionError(BrokerageError):
    """Raised when a stage move is rejected.

    Attributes:
        client_id: The client whose move was rejected.
        from_stage: The client's current stage.
        to_stage: The requested stage.
        message: Human-readable error message.
    """

    def __init__(
        self,
        client_id: str,
        from_stage: str,
        to_stage: str,
        message: Optional[str] = None,
    ):
        self.client_id = client_id
        self.from_stage = from_stage
        self.to_stage = to_stage
        self.message = message or (
            f"Cannot move client {client_id} from {from_stage} to {to_stage}"
        )
        super().__init__(self.message)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IllegalTransitionError):
            return NotImplemented
        return (
            self.client_id == other.client_id
            and self.from_stage == other.from_stage
            and self.to_stage == other.to_stage
            and self.message == other.message
        )

    def __hash__(self) -> int:
        return hash((self.client_id, self.from_stage, self.to_stage, self.message))


class StorageError(BrokerageError):
    """Raised when a storage collaborator fails.

    Wraps the underlying driver error so callers handle one type.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.original_error = original_error
        super().__init__(message)


class ConcurrentModificationError(BrokerageError):
    """Raised when optimistic locking detects a concurrent update.

    Attributes:
        client_id: The client with the conflict.
        expected_version: The version the writer read.
        actual_version: The version found in the store, if known.
    """

    def __init__(
        self,
        client_id: str,
        expected_version: int,
        actual_version: Optional[int] = None,
    ):
        self.client_id = client_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        message = (
            f"Version conflict for client {client_id}: expected {expected_version}"
        )
        if actual_version is not None:
            message += f", found {actual_version}"
        super().__init__(message)


class StageGraphError(BrokerageError):
    """Raised when a stage table violates the graph invariants."""


class PipelineNotFoundError(BrokerageError):
    """Raised when a pipeline id is not registered.

    Attributes:
        pipeline_id: The unknown pipeline id.
    """

    def __init__(self, pipeline_id: str):
        self.pipeline_id = pipeline_id
        super().__init__(f"Pipeline not found: {pipeline_id}")


class OrganizationNotFoundError(BrokerageError):
    """Raised when an organization id does not resolve."""

    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        super().__init__(f"Organization not found: {organization_id}")


class UserNotFoundError(BrokerageError):
    """Raised when a user profile id does not resolve."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class ActionDispatchError(BrokerageError):
    """Raised when an automated stage action cannot be delivered.

    Attributes:
        action: The action name.
        status_code: HTTP status code from the action endpoint, if any.
    """

    def __init__(
        self,
        action: str,
        message: str,
        status_code: Optional[int] = None,
    ):
        self.action = action
        self.status_code = status_code
        super().__init__(f"Action {action} failed: {message}")
