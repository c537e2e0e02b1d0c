"""Horizon balance polling."""

import asyncio

import httpx
import pytest
from stellar_sdk import Keypair

from escrow_client.config import Settings
from escrow_client.errors import NetworkError
from escrow_client.services.balance import ZERO_BALANCE, BalanceTracker, find_balance
from tests.conftest import ASSET_ISSUER, horizon_handler, usdc_line

ALICE = Keypair.random().public_key
BOB = Keypair.random().public_key


def _tracker(handler, **overrides) -> tuple[BalanceTracker, list[tuple[str, str]]]:
    updates: list[tuple[str, str]] = []
    config = Settings(**{"balance_poll_interval_seconds": 3600.0, **overrides})
    tracker = BalanceTracker(
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        config=config,
        on_update=lambda identity, balance: updates.append((identity, balance)),
    )
    return tracker, updates


def test_find_balance_matches_code_and_issuer() -> None:
    balances = [
        {"asset_type": "native", "balance": "100.0000000"},
        usdc_line("3.0000000", issuer=Keypair.random().public_key),
        usdc_line("12.5000000"),
    ]
    assert find_balance(balances, "USDC", ASSET_ISSUER) == "12.5000000"


def test_find_balance_missing_line_is_zero() -> None:
    assert find_balance([{"asset_type": "native", "balance": "100.0000000"}], "USDC", ASSET_ISSUER) == ZERO_BALANCE
    assert find_balance([], "USDC", ASSET_ISSUER) == "0.00"


@pytest.mark.asyncio
async def test_poll_reads_horizon_account() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"balances": [usdc_line("7.0000000")]})

    tracker, _ = _tracker(handler)
    assert await tracker.poll(ALICE, "USDC", ASSET_ISSUER) == "7.0000000"
    assert seen == [f"https://horizon-testnet.stellar.org/accounts/{ALICE}"]


@pytest.mark.asyncio
async def test_poll_http_error_raises_network_error() -> None:
    tracker, _ = _tracker(horizon_handler({}))
    with pytest.raises(NetworkError):
        await tracker.poll(ALICE, "USDC", ASSET_ISSUER)


@pytest.mark.asyncio
async def test_poll_transport_error_raises_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    tracker, _ = _tracker(handler)
    with pytest.raises(NetworkError):
        await tracker.poll(ALICE, "USDC", ASSET_ISSUER)


@pytest.mark.asyncio
async def test_refresh_error_keeps_previous_balance() -> None:
    accounts = {ALICE: [usdc_line("5.0000000")]}
    tracker, updates = _tracker(horizon_handler(accounts))
    tracker.identity = ALICE

    assert await tracker.refresh(ALICE) == "5.0000000"
    del accounts[ALICE]
    assert await tracker.refresh(ALICE) == "5.0000000"
    assert tracker.balance == "5.0000000"
    assert updates == [(ALICE, "5.0000000")]


@pytest.mark.asyncio
async def test_stale_poll_is_dropped_after_identity_switch() -> None:
    release_alice = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        account = request.url.path.rsplit("/", 1)[-1]
        if account == ALICE:
            await release_alice.wait()
            return httpx.Response(200, json={"balances": [usdc_line("999.0000000")]})
        return httpx.Response(200, json={"balances": [usdc_line("25.0000000")]})

    tracker, updates = _tracker(handler)
    tracker.identity = ALICE
    in_flight = asyncio.create_task(tracker.refresh(ALICE))
    await asyncio.sleep(0)

    await tracker.start(BOB)
    release_alice.set()
    await in_flight
    await tracker.refresh(BOB)

    assert tracker.identity == BOB
    assert tracker.balance == "25.0000000"
    assert all(identity == BOB for identity, _ in updates)
    await tracker.close()


@pytest.mark.asyncio
async def test_start_polls_repeatedly_and_stop_cancels() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json={"balances": [usdc_line("1.0000000")]})

    tracker, _ = _tracker(handler, balance_poll_interval_seconds=0.01)
    await tracker.start(ALICE)

    async def wait_for_polls() -> None:
        while len(calls) < 2:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(wait_for_polls(), timeout=2.0)
    assert tracker.running
    assert tracker.balance == "1.0000000"

    await tracker.stop()
    assert not tracker.running
    assert tracker.identity is None
    assert tracker.balance is None

    polled = len(calls)
    await asyncio.sleep(0.05)
    assert len(calls) == polled
