"""Automated stage action dispatch.

When a client enters a stage, each of the stage's automated actions
(e.g. "send-intake-form") is handed to an ActionDispatcher. Dispatch is
fire-and-forget from the point of view of the move: the pipeline service
runs it in a background task, and a failure is logged, never propagated.

Implementations:
- LoggingActionDispatcher: Logs the action (default when no endpoint is set)
- WebhookActionDispatcher: POSTs the action to an HTTP endpoint with retries
- CompositeActionDispatcher: Fans out to several dispatchers
- NullActionDispatcher: Discards actions
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from src.brokerage.clients.models import Client
from src.brokerage.errors import ActionDispatchError


logger = logging.getLogger(__name__)


class ActionDispatcher(ABC):
    """Abstract base class for automated action dispatchers."""

    @abstractmethod
    async def dispatch(self, action_name: str, client: Client) -> None:
        """Dispatch one automated action for a client.

        Args:
            action_name: The action to run.
            client: The client as committed by the move.

        Raises:
            ActionDispatchError: If the action could not be delivered.
        """
        pass

    async def close(self) -> None:
        """Close the dispatcher and release resources."""
        pass


class LoggingActionDispatcher(ActionDispatcher):
    """Dispatcher that records actions as structured log entries."""

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger

    async def dispatch(self, action_name: str, client: Client) -> None:
        self._logger.info(
            "Automated action: %s for %s",
            action_name,
            client.id,
            extra={
                "action": action_name,
                "client_id": client.id,
                "organization_id": client.organization_id,
                "stage": client.pipeline_stage,
            },
        )


class NullActionDispatcher(ActionDispatcher):
    """Dispatcher that discards all actions."""

    async def dispatch(self, action_name: str, client: Client) -> None:
        pass


class CompositeActionDispatcher(ActionDispatcher):
    """Dispatcher that delegates to multiple child dispatchers.

    Every child is attempted. If any of them fails, the first failure is
    re-raised after all children have run.
    """

    def __init__(self, dispatchers: Optional[List[ActionDispatcher]] = None):
        self._dispatchers: List[ActionDispatcher] = dispatchers or []

    @property
    def dispatchers(self) -> List[ActionDispatcher]:
        return list(self._dispatchers)

    async def dispatch(self, action_name: str, client: Client) -> None:
        first_error: Optional[Exception] = None
        for dispatcher in self._dispatchers:
            try:
                await dispatcher.dispatch(action_name, client)
            except Exception as e:
                logger.error(
                    "Action dispatcher %s failed: %s",
                    type(dispatcher).__name__,
                    str(e),
                    extra={
                        "dispatcher_type": type(dispatcher).__name__,
                        "action": action_name,
                        "client_id": client.id,
                    },
                )
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    async def close(self) -> None:
        for dispatcher in self._dispatchers:
            try:
                await dispatcher.close()
            except Exception as e:
                logger.error(
                    "Failed to close dispatcher %s: %s",
                    type(dispatcher).__name__,
                    str(e),
                )


class WebhookActionDispatcher(ActionDispatcher):
    """Dispatcher that POSTs actions to an HTTP endpoint.

    The request body is:

        {
            "action": "send-intake-form",
            "client_id": "...",
            "organization_id": "...",
            "pipeline_id": "...",
            "stage": "lead-intake"
        }

    Transient failures (timeouts, connection errors and the status codes
    in RETRYABLE_STATUS_CODES) are retried with exponential backoff and
    full jitter.

    Example:
        >>> async with WebhookActionDispatcher("https://hooks.example/actions") as d:
        ...     await d.dispatch("send-intake-form", client)
    """

    # HTTP status codes that should trigger a retry
    RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

    def __init__(
        self,
        url: str,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._client = http_client

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": "BrokeragePipeline/1.0"},
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "WebhookActionDispatcher":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with full jitter for the given 0-indexed attempt."""
        exponential_delay = self.base_delay * (2 ** attempt)
        capped_delay = min(exponential_delay, self.max_delay)
        return random.uniform(0, capped_delay)

    @staticmethod
    def _payload(action_name: str, client: Client) -> Dict[str, Any]:
        return {
            "action": action_name,
            "client_id": client.id,
            "organization_id": client.organization_id,
            "pipeline_id": client.pipeline_id,
            "stage": client.pipeline_stage,
        }

    async def dispatch(self, action_name: str, client: Client) -> None:
        payload = self._payload(action_name, client)
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.post(self.url, json=payload)

                if response.status_code in self.RETRYABLE_STATUS_CODES:
                    if attempt < self.max_retries:
                        delay = self._calculate_backoff(attempt)
                        logger.warning(
                            "Retryable error from action endpoint",
                            extra={
                                "status_code": response.status_code,
                                "action": action_name,
                                "attempt": attempt + 1,
                                "max_retries": self.max_retries,
                                "delay": delay,
                            },
                        )
                        await asyncio.sleep(delay)
                        continue

                if response.status_code >= 400:
                    logger.error(
                        "Action endpoint error",
                        extra={
                            "status_code": response.status_code,
                            "action": action_name,
                            "client_id": client.id,
                            "response_body": response.text[:500],
                        },
                    )
                    raise ActionDispatchError(
                        action_name,
                        f"endpoint returned {response.status_code}",
                        status_code=response.status_code,
                    )

                logger.debug(
                    "Dispatched action",
                    extra={"action": action_name, "client_id": client.id},
                )
                return

            except ActionDispatchError:
                raise
            except httpx.TimeoutException as e:
                last_exception = e
                if attempt < self.max_retries:
                    delay = self._calculate_backoff(attempt)
                    logger.warning(
                        "Action request timeout, retrying",
                        extra={
                            "action": action_name,
                            "attempt": attempt + 1,
                            "max_retries": self.max_retries,
                            "delay": delay,
                        },
                    )
                    await asyncio.sleep(delay)
                    continue
            except httpx.RequestError as e:
                last_exception = e
                if attempt < self.max_retries:
                    delay = self._calculate_backoff(attempt)
                    logger.warning(
                        "Action request error, retrying",
                        extra={
                            "action": action_name,
                            "error": str(e),
                            "attempt": attempt + 1,
                            "max_retries": self.max_retries,
                            "delay": delay,
                        },
                    )
                    await asyncio.sleep(delay)
                    continue

        logger.error(
            "Action request failed after all retries",
            extra={
                "action": action_name,
                "client_id": client.id,
                "max_retries": self.max_retries,
                "last_error": str(last_exception),
            },
        )
        raise ActionDispatchError(
            action_name,
            f"request failed after {self.max_retries} retries: {last_exception}",
        )


def create_action_dispatcher(
    webhook_url: Optional[str] = None,
    max_retries: int = 3,
    timeout: float = 30.0,
) -> ActionDispatcher:
    """Create the action dispatcher for the configured endpoint.

    Actions are always logged. When a webhook URL is configured they are
    also POSTed to it.
    """
    logging_dispatcher = LoggingActionDispatcher()
    if not webhook_url:
        return logging_dispatcher

    return CompositeActionDispatcher(
        [
            logging_dispatcher,
            WebhookActionDispatcher(
                webhook_url,
                max_retries=max_retries,
                timeout=timeout,
            ),
        ]
    )
