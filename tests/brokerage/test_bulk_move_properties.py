"""Property-based tests for bulk stage moves.

Properties:
- For N distinct ids of which M cannot move, the result holds N - M
  successes and M failures
- A failed move in a batch never blocks or alters the others
- Duplicate ids are moved once

Testing Configuration:
- Library: Hypothesis (Python)
- Minimum iterations: 100 per property test
"""

import asyncio
from datetime import datetime, timezone

from hypothesis import given, settings, strategies as st

from src.brokerage.clients.models import Client, ClientCase, PersonalInfo
from src.brokerage.clients.store import InMemoryClientStore
from src.brokerage.service import BulkMoveResult, PipelineService
from src.brokerage.stages import PipelineRegistry


ORG_ID = "org-1"
TARGET = "client-onboarding"


def run_async(coro):
    return asyncio.run(coro)


def make_client(client_id: str, stage: str, organization_id: str = ORG_ID) -> Client:
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return Client(
        id=client_id,
        organization_id=organization_id,
        personal_info=PersonalInfo(first_name="Client", last_name=client_id),
        pipeline_stage=stage,
        case=ClientCase(id=f"case-{client_id}", client_id=client_id, title="Case"),
        created_at=now,
        updated_at=now,
    )


# =============================================================================
# Hypothesis Strategies
# =============================================================================


# Each entry says how a client in the batch should behave:
#   movable: at lead-intake, may move to client-onboarding
#   illegal: at completed, may not move anywhere
#   missing: not in the store
#   foreign: owned by another organization
client_kinds = st.lists(
    st.sampled_from(["movable", "illegal", "missing", "foreign"]),
    min_size=1,
    max_size=15,
)


async def seed(kinds: list) -> tuple:
    store = InMemoryClientStore()
    ids = []
    for index, kind in enumerate(kinds):
        client_id = f"{kind}-{index}"
        ids.append(client_id)
        if kind == "movable":
            await store.create(make_client(client_id, "lead-intake"))
        elif kind == "illegal":
            await store.create(make_client(client_id, "completed"))
        elif kind == "foreign":
            await store.create(make_client(client_id, "lead-intake", organization_id="org-2"))
    return store, ids


# =============================================================================
# Property Tests
# =============================================================================


class TestBulkMoveCounts:
    """Successes and failures partition the requested ids."""

    @given(kinds=client_kinds, concurrency=st.integers(min_value=1, max_value=5))
    @settings(max_examples=100)
    def test_success_and_failure_counts(self, kinds: list, concurrency: int) -> None:
        async def test():
            store, ids = await seed(kinds)
            service = PipelineService(
                store, PipelineRegistry(), bulk_move_concurrency=concurrency
            )

            result = await service.bulk_move(ORG_ID, ids, TARGET)
            await service.drain_actions()

            blocked = sum(1 for kind in kinds if kind != "movable")
            assert isinstance(result, BulkMoveResult)
            assert result.target_stage == TARGET
            assert result.success_count == len(kinds) - blocked
            assert result.failure_count == blocked
            assert set(result.succeeded) | set(result.failed) == set(ids)
            assert not set(result.succeeded) & set(result.failed)

        run_async(test())

    @given(kinds=client_kinds)
    @settings(max_examples=100)
    def test_failures_do_not_affect_other_clients(self, kinds: list) -> None:
        async def test():
            store, ids = await seed(kinds)
            service = PipelineService(store, PipelineRegistry())

            result = await service.bulk_move(ORG_ID, ids, TARGET)
            await service.drain_actions()

            for client_id, kind in zip(ids, kinds):
                stored = await store.get(client_id)
                if kind == "movable":
                    assert client_id in result.succeeded
                    assert stored.pipeline_stage == TARGET
                    assert stored.version == 2
                elif kind == "illegal":
                    assert result.failed[client_id].error_type == "IllegalTransitionError"
                    assert stored.pipeline_stage == "completed"
                    assert stored.version == 1
                elif kind == "missing":
                    assert result.failed[client_id].error_type == "ClientNotFoundError"
                    assert stored is None
                else:
                    assert result.failed[client_id].error_type == "ClientNotFoundError"
                    assert stored.pipeline_stage == "lead-intake"

        run_async(test())

    @given(kinds=client_kinds)
    @settings(max_examples=100)
    def test_succeeded_ids_keep_request_order(self, kinds: list) -> None:
        async def test():
            store, ids = await seed(kinds)
            service = PipelineService(store, PipelineRegistry(), bulk_move_concurrency=2)

            result = await service.bulk_move(ORG_ID, ids, TARGET)
            await service.drain_actions()

            expected = [i for i, kind in zip(ids, kinds) if kind == "movable"]
            assert result.succeeded == expected

        run_async(test())


class TestBulkMoveDuplicates:
    @given(copies=st.integers(min_value=2, max_value=5))
    @settings(max_examples=100)
    def test_duplicate_ids_move_once(self, copies: int) -> None:
        async def test():
            store = InMemoryClientStore()
            await store.create(make_client("client-1", "lead-intake"))
            service = PipelineService(store, PipelineRegistry())

            result = await service.bulk_move(ORG_ID, ["client-1"] * copies, TARGET)
            await service.drain_actions()

            stored = await store.get("client-1")
            assert result.succeeded == ["client-1"]
            assert result.failed == {}
            assert stored.version == 2
            assert len(stored.timeline) == 1

        run_async(test())

    def test_empty_batch(self):
        async def test():
            service = PipelineService(InMemoryClientStore(), PipelineRegistry())

            result = await service.bulk_move(ORG_ID, [], TARGET)

            assert result.success_count == 0
            assert result.failure_count == 0

        run_async(test())
