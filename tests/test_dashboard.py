"""Dashboard index: concurrent, independently-failing id lookups."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from stellar_sdk import Keypair

from escrow_client.errors import NetworkError
from escrow_client.services.dashboard import DashboardIndex
from tests.conftest import FakeContract

IDENTITY = Keypair.random().public_key


@pytest.mark.asyncio
async def test_refresh_keeps_contract_order(fake_ledger: MagicMock, fake_contract: FakeContract) -> None:
    fake_contract.created[IDENTITY] = [5, 2, 9]
    fake_contract.received[IDENTITY] = [7]
    index = DashboardIndex(fake_ledger)
    index.track(IDENTITY)

    snapshot = await index.refresh(IDENTITY)

    assert snapshot.created_ids == [5, 2, 9]
    assert snapshot.received_ids == [7]
    assert index.snapshot is snapshot


@pytest.mark.asyncio
async def test_one_side_failing_does_not_hide_the_other(
    fake_ledger: MagicMock, fake_contract: FakeContract,
) -> None:
    fake_contract.created[IDENTITY] = [1]
    fake_contract.received[IDENTITY] = [4, 6]
    fake_contract.failing.add("get_created_ids")
    index = DashboardIndex(fake_ledger)

    snapshot = await index.refresh(IDENTITY)

    assert snapshot.created_ids == []
    assert snapshot.received_ids == [4, 6]


@pytest.mark.asyncio
async def test_both_sides_failing_yields_empty() -> None:
    ledger = MagicMock()
    ledger.query = AsyncMock(side_effect=NetworkError("rpc down"))
    index = DashboardIndex(ledger)

    snapshot = await index.refresh(IDENTITY)

    assert snapshot.created_ids == []
    assert snapshot.received_ids == []


@pytest.mark.asyncio
async def test_non_id_payload_is_treated_as_empty() -> None:
    async def query(method, args, source=None):
        return {"unexpected": 1} if method == "get_created_ids" else [3, True]

    ledger = MagicMock()
    ledger.query = AsyncMock(side_effect=query)

    snapshot = await DashboardIndex(ledger).refresh(IDENTITY)

    assert snapshot.created_ids == []
    assert snapshot.received_ids == []


@pytest.mark.asyncio
async def test_both_lookups_run_concurrently() -> None:
    started: list[str] = []
    both_started = asyncio.Event()

    async def query(method, args, source=None):
        started.append(method)
        if len(started) == 2:
            both_started.set()
        await asyncio.wait_for(both_started.wait(), timeout=1.0)
        return [1]

    ledger = MagicMock()
    ledger.query = AsyncMock(side_effect=query)

    snapshot = await DashboardIndex(ledger).refresh(IDENTITY)

    assert sorted(started) == ["get_created_ids", "get_received_ids"]
    assert snapshot.created_ids == [1]
    assert snapshot.received_ids == [1]


@pytest.mark.asyncio
async def test_clear_resets_snapshot(fake_ledger: MagicMock, fake_contract: FakeContract) -> None:
    fake_contract.created[IDENTITY] = [1]
    index = DashboardIndex(fake_ledger)
    index.track(IDENTITY)
    await index.refresh(IDENTITY)

    index.clear()

    assert index.snapshot.created_ids == []
    assert index.snapshot.received_ids == []


@pytest.mark.asyncio
async def test_untracked_identity_is_returned_but_not_committed(
    fake_ledger: MagicMock, fake_contract: FakeContract,
) -> None:
    other = Keypair.random().public_key
    fake_contract.created[IDENTITY] = [1]
    fake_contract.created[other] = [2]
    index = DashboardIndex(fake_ledger)
    index.track(IDENTITY)
    await index.refresh(IDENTITY)

    result = await index.refresh(other)

    assert result.created_ids == [2]
    assert index.snapshot.created_ids == [1]


@pytest.mark.asyncio
async def test_refresh_resolving_after_clear_is_dropped(
    fake_ledger: MagicMock, fake_contract: FakeContract,
) -> None:
    fake_contract.created[IDENTITY] = [4]
    release = asyncio.Event()
    answer = fake_ledger.query.side_effect

    async def slow_query(method, args, source=None):
        await release.wait()
        return await answer(method, args, source)

    fake_ledger.query.side_effect = slow_query
    index = DashboardIndex(fake_ledger)
    index.track(IDENTITY)
    in_flight = asyncio.create_task(index.refresh(IDENTITY))
    await asyncio.sleep(0)

    index.clear()
    release.set()
    await in_flight

    assert index.identity is None
    assert index.snapshot.created_ids == []
