"""Test configuration and fixtures.

No network is touched: the Soroban RPC gateway is replaced by a spec'd
MagicMock whose read-only queries are answered from an in-memory contract
state, and Horizon is served by an httpx.MockTransport.
"""

from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from stellar_sdk import Keypair

from escrow_client.client import EscrowClient, get_client
from escrow_client.config import Settings, settings
from escrow_client.errors import SignerRejected, SimulationError
from escrow_client.main import app
from escrow_client.services.ledger import (
    LedgerClient,
    SimulationResult,
    SubmitResult,
    SubmitStatus,
    scval_to_native,
)

ASSET_ISSUER = "GBBD47IF6LWK7P7MDEVSCWR7DPUWV3NY3DTQEVFL4NAT4AQH3ZLLFLA5"
ASSET_CONTRACT = "CBIELTK6YBZJU5UP2WWQEUCYKLPU6AUNZ2BQ4WWFEIE3USCIHMXQDAMA"
NOW = 1_700_000_000


@pytest.fixture(autouse=True)
def _isolate_settings() -> None:
    """Snapshot settings before each test and restore after to prevent mutation bleed."""
    original = settings.model_dump()
    object.__setattr__(settings, "settle_delay_seconds", 0.0)
    object.__setattr__(settings, "signer_secret_key", "")
    yield  # type: ignore[misc]
    for key, value in original.items():
        object.__setattr__(settings, key, value)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        stellar_network="testnet",
        settle_delay_seconds=0.0,
        balance_poll_interval_seconds=3600.0,
        notification_dismiss_seconds=10.0,
        signer_secret_key="",
    )


@pytest.fixture
def sender() -> Keypair:
    return Keypair.random()


@pytest.fixture
def recipient() -> Keypair:
    return Keypair.random()


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


def make_escrow_payload(
    sender: str,
    recipients: list[tuple[str, int]] | None = None,
    amount: int = 123400000,
    deadline: int = NOW + 86400,
    status: int = 0,
    **overrides: Any,
) -> dict[str, Any]:
    """Native form of the contract's EscrowData struct (symbol-keyed map)."""
    payload = {
        "sender": sender,
        "recipients": [list(r) for r in (recipients or [])],
        "amount": amount,
        "token": ASSET_CONTRACT,
        "created_at": NOW - 3600,
        "deadline": deadline,
        "approved": status == 1,
        "status": int(status),
    }
    payload.update(overrides)
    return payload


class FakeContract:
    """In-memory answers for the escrow contract's read-only methods."""

    def __init__(self) -> None:
        self.escrows: dict[int, dict[str, Any]] = {}
        self.created: dict[str, list[int]] = {}
        self.received: dict[str, list[int]] = {}
        self.failing: set[str] = set()

    async def query(self, method: str, args: list, source: str | None = None) -> Any:
        if method in self.failing:
            raise SimulationError(f"{method} simulation failed", diagnostic="HostError")
        native_args = [scval_to_native(a) for a in args]
        if method == "get_escrow":
            escrow_id = native_args[0]
            if escrow_id not in self.escrows:
                raise SimulationError("get_escrow simulation failed", diagnostic="UnreachableCodeReached")
            return self.escrows[escrow_id]
        if method == "get_created_ids":
            return list(self.created.get(native_args[0], []))
        if method == "get_received_ids":
            return list(self.received.get(native_args[0], []))
        raise AssertionError(f"unexpected query {method}")


def make_fake_ledger(fake_contract: FakeContract, config: Settings) -> MagicMock:
    ledger = MagicMock(spec=LedgerClient)
    ledger.config = config
    ledger.query = AsyncMock(side_effect=fake_contract.query)

    prepared = MagicMock()
    prepared.to_xdr.return_value = "AAAA-prepared"
    ledger.build_invocation = AsyncMock(return_value=MagicMock(name="unsigned_tx"))
    ledger.simulate = AsyncMock(return_value=SimulationResult(success=True))
    ledger.prepare = AsyncMock(return_value=prepared)
    ledger.submit = AsyncMock(return_value=SubmitResult(status=SubmitStatus.PENDING, hash="ab" * 32))
    ledger.wait_for_confirmation = AsyncMock()
    ledger.close = AsyncMock()
    ledger.explorer_url = MagicMock(side_effect=lambda h: f"https://stellar.expert/explorer/testnet/tx/{h}")
    return ledger


class FakeSigner:
    def __init__(self, public_key: str, reject: bool = False) -> None:
        self._public_key = public_key
        self.reject = reject
        self.calls: list[str] = []

    @property
    def public_key(self) -> str:
        return self._public_key

    async def sign_transaction(self, envelope_xdr: str) -> str:
        self.calls.append(envelope_xdr)
        if self.reject:
            raise SignerRejected("User declined")
        return envelope_xdr + "-signed"


def horizon_handler(balances_by_account: dict[str, list[dict]]):
    def handler(request: httpx.Request) -> httpx.Response:
        account = request.url.path.rsplit("/", 1)[-1]
        if account not in balances_by_account:
            return httpx.Response(404, json={"status": 404, "title": "Resource Missing"})
        return httpx.Response(200, json={"id": account, "balances": balances_by_account[account]})
    return handler


def usdc_line(balance: str, issuer: str = ASSET_ISSUER) -> dict:
    return {
        "balance": balance,
        "asset_type": "credit_alphanum4",
        "asset_code": "USDC",
        "asset_issuer": issuer,
    }


@pytest.fixture
def fake_contract() -> FakeContract:
    return FakeContract()


@pytest.fixture
def fake_ledger(fake_contract: FakeContract, test_settings: Settings) -> MagicMock:
    return make_fake_ledger(fake_contract, test_settings)


@pytest.fixture
def horizon_accounts() -> dict[str, list[dict]]:
    return {}


@pytest_asyncio.fixture
async def escrow_client(
    fake_ledger: MagicMock,
    test_settings: Settings,
    horizon_accounts: dict[str, list[dict]],
) -> AsyncGenerator[EscrowClient, None]:
    horizon = httpx.AsyncClient(transport=httpx.MockTransport(horizon_handler(horizon_accounts)))
    client = EscrowClient(config=test_settings, ledger=fake_ledger, horizon_client=horizon)
    yield client
    await client.close()
    await horizon.aclose()


@pytest_asyncio.fixture
async def client(escrow_client: EscrowClient) -> AsyncGenerator[AsyncClient, None]:
    """HTTP test client with the escrow client dependency overridden."""
    app.dependency_overrides[get_client] = lambda: escrow_client

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
