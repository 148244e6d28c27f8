"""Unit tests for automated action dispatchers."""

from __future__ import annotations

import asyncio
import json
from typing import List

import httpx
import pytest

from src.brokerage.actions import (
    ActionDispatcher,
    CompositeActionDispatcher,
    LoggingActionDispatcher,
    NullActionDispatcher,
    WebhookActionDispatcher,
    create_action_dispatcher,
)
from src.brokerage.clients.models import Client, ClientCase, PersonalInfo
from src.brokerage.errors import ActionDispatchError


WEBHOOK_URL = "https://hooks.example.com/actions"


def run_async(coro):
    return asyncio.run(coro)


def _make_client() -> Client:
    return Client(
        id="client-1",
        organization_id="org-1",
        personal_info=PersonalInfo(first_name="Quinn"),
        pipeline_stage="client-onboarding",
        case=ClientCase(id="case-1", client_id="client-1", title="Case"),
    )


def _dispatcher(handler, max_retries: int = 2) -> WebhookActionDispatcher:
    return WebhookActionDispatcher(
        WEBHOOK_URL,
        max_retries=max_retries,
        base_delay=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class ExplodingDispatcher(ActionDispatcher):
    def __init__(self):
        self.calls = 0

    async def dispatch(self, action_name: str, client: Client) -> None:
        self.calls += 1
        raise ActionDispatchError(action_name, "boom")


class CountingDispatcher(ActionDispatcher):
    def __init__(self):
        self.calls = 0
        self.closed = False

    async def dispatch(self, action_name: str, client: Client) -> None:
        self.calls += 1

    async def close(self) -> None:
        self.closed = True


class TestWebhookActionDispatcher:
    def test_posts_action_payload(self):
        requests: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(202)

        async def test():
            async with _dispatcher(handler) as dispatcher:
                await dispatcher.dispatch("send-broker-agreement", _make_client())

        run_async(test())

        (request,) = requests
        assert request.method == "POST"
        assert str(request.url) == WEBHOOK_URL
        assert json.loads(request.content) == {
            "action": "send-broker-agreement",
            "client_id": "client-1",
            "organization_id": "org-1",
            "pipeline_id": None,
            "stage": "client-onboarding",
        }

    def test_retries_retryable_status(self):
        statuses = iter([503, 429, 200])
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(next(statuses))

        async def test():
            async with _dispatcher(handler) as dispatcher:
                await dispatcher.dispatch("create-budget", _make_client())

        run_async(test())

        assert len(calls) == 3

    def test_gives_up_after_retries(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(502)

        async def test():
            async with _dispatcher(handler, max_retries=1) as dispatcher:
                with pytest.raises(ActionDispatchError) as exc_info:
                    await dispatcher.dispatch("create-budget", _make_client())
                return exc_info.value

        error = run_async(test())

        assert len(calls) == 2
        assert error.status_code == 502
        assert error.action == "create-budget"

    def test_client_error_is_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, text="bad payload")

        async def test():
            async with _dispatcher(handler) as dispatcher:
                with pytest.raises(ActionDispatchError) as exc_info:
                    await dispatcher.dispatch("create-budget", _make_client())
                return exc_info.value

        error = run_async(test())

        assert len(calls) == 1
        assert error.status_code == 400

    def test_connection_errors_are_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        async def test():
            async with _dispatcher(handler, max_retries=2) as dispatcher:
                with pytest.raises(ActionDispatchError) as exc_info:
                    await dispatcher.dispatch("create-budget", _make_client())
                return exc_info.value

        error = run_async(test())

        assert len(calls) == 3
        assert error.status_code is None
        assert "refused" in str(error)

    def test_backoff_is_capped(self):
        dispatcher = WebhookActionDispatcher(WEBHOOK_URL, base_delay=1.0, max_delay=5.0)

        for attempt in range(10):
            assert 0 <= dispatcher._calculate_backoff(attempt) <= 5.0


class TestCompositeActionDispatcher:
    def test_all_children_run_and_first_error_is_raised(self):
        exploding = ExplodingDispatcher()
        counting = CountingDispatcher()
        composite = CompositeActionDispatcher([exploding, counting])

        with pytest.raises(ActionDispatchError):
            run_async(composite.dispatch("archive-case", _make_client()))

        assert exploding.calls == 1
        assert counting.calls == 1

    def test_close_closes_children(self):
        counting = CountingDispatcher()

        run_async(CompositeActionDispatcher([counting]).close())

        assert counting.closed


class TestSimpleDispatchers:
    def test_logging_dispatcher_logs(self, caplog):
        caplog.set_level("INFO")

        run_async(LoggingActionDispatcher().dispatch("send-intake-form", _make_client()))

        record = next(r for r in caplog.records if "send-intake-form" in r.getMessage())
        assert record.action == "send-intake-form"
        assert record.client_id == "client-1"

    def test_null_dispatcher(self):
        run_async(NullActionDispatcher().dispatch("anything", _make_client()))


class TestCreateActionDispatcher:
    def test_without_webhook_logs_only(self):
        assert isinstance(create_action_dispatcher(), LoggingActionDispatcher)

    def test_with_webhook(self):
        dispatcher = create_action_dispatcher(WEBHOOK_URL, max_retries=1, timeout=5.0)

        assert isinstance(dispatcher, CompositeActionDispatcher)
        webhook = dispatcher.dispatchers[1]
        assert isinstance(webhook, WebhookActionDispatcher)
        assert webhook.url == WEBHOOK_URL
        assert webhook.max_retries == 1
        assert webhook.timeout == 5.0
