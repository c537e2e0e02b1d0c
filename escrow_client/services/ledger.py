"""Soroban RPC gateway: account lookup, simulation, preparation, submission.

Nothing here waits for finality. ``submit`` returns as soon as the node has
accepted (or refused) the envelope; callers either sleep a fixed settle delay
or use ``wait_for_confirmation`` to poll the hash.
"""

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from stellar_sdk import (
    Account,
    SorobanServerAsync,
    TransactionBuilder,
    TransactionEnvelope,
    scval,
    xdr,
)
from stellar_sdk.exceptions import BaseRequestError, PrepareTransactionException, SdkError

from escrow_client.config import Settings, settings
from escrow_client.errors import (
    ConfirmationTimeout,
    DecodeError,
    NetworkError,
    SimulationError,
    SubmitError,
)

logger = logging.getLogger(__name__)


class SubmitStatus(enum.Enum):
    PENDING = "PENDING"
    DUPLICATE = "DUPLICATE"
    TRY_AGAIN_LATER = "TRY_AGAIN_LATER"
    ERROR = "ERROR"


class TransactionStatus(enum.Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    NOT_FOUND = "NOT_FOUND"


@dataclass
class SimulationResult:
    success: bool
    return_value: xdr.SCVal | None = None
    error: str | None = None
    # Raw RPC response, handed back to prepare so it doesn't simulate twice
    response: Any = None


@dataclass
class SubmitResult:
    status: SubmitStatus
    hash: str
    error: str | None = None


def _enum_value(v: object) -> str:
    return v.value if hasattr(v, "value") else str(v)


# ---------------------------------------------------------------------------
# Contract value decoding
# ---------------------------------------------------------------------------

_SCALAR_DECODERS: dict[xdr.SCValType, Callable[[xdr.SCVal], Any]] = {
    xdr.SCValType.SCV_BOOL: scval.from_bool,
    xdr.SCValType.SCV_U32: scval.from_uint32,
    xdr.SCValType.SCV_I32: scval.from_int32,
    xdr.SCValType.SCV_U64: scval.from_uint64,
    xdr.SCValType.SCV_I64: scval.from_int64,
    xdr.SCValType.SCV_U128: scval.from_uint128,
    xdr.SCValType.SCV_I128: scval.from_int128,
    xdr.SCValType.SCV_SYMBOL: scval.from_symbol,
    xdr.SCValType.SCV_BYTES: scval.from_bytes,
}


def scval_to_native(value: xdr.SCVal) -> Any:
    """Convert a contract return value into plain Python data.

    Maps become dicts (struct fields are symbol-keyed maps), vecs and tuples
    become lists, addresses become their strkey string.
    """
    kind = value.type
    if kind == xdr.SCValType.SCV_VOID:
        return None
    if kind in _SCALAR_DECODERS:
        return _SCALAR_DECODERS[kind](value)
    if kind == xdr.SCValType.SCV_STRING:
        raw = scval.from_string(value)
        return raw.decode() if isinstance(raw, bytes) else raw
    if kind == xdr.SCValType.SCV_ADDRESS:
        return scval.from_address(value).address
    if kind == xdr.SCValType.SCV_VEC:
        items = value.vec.sc_vec if value.vec is not None else []
        return [scval_to_native(item) for item in items]
    if kind == xdr.SCValType.SCV_MAP:
        entries = value.map.sc_map if value.map is not None else []
        result = {}
        for entry in entries:
            key = scval_to_native(entry.key)
            if isinstance(key, (list, dict)):
                raise DecodeError("Contract map key is not a scalar")
            result[key] = scval_to_native(entry.val)
        return result
    raise DecodeError(f"Unsupported contract value type: {kind.name}")


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class LedgerClient:
    """Thin async wrapper around SorobanServerAsync bound to the escrow contract."""

    def __init__(
        self,
        server: SorobanServerAsync | None = None,
        config: Settings | None = None,
    ) -> None:
        self.config = config or settings
        self._server = server

    @property
    def server(self) -> SorobanServerAsync:
        if self._server is None:
            self._server = SorobanServerAsync(self.config.resolved_rpc_url)
        return self._server

    async def close(self) -> None:
        if self._server is not None:
            await self._server.close()

    def explorer_url(self, tx_hash: str) -> str:
        return f"{self.config.resolved_explorer_url}/tx/{tx_hash}"

    async def get_account(self, identity: str) -> Account:
        """Load the account (and its current sequence number) for identity."""
        try:
            return await self.server.load_account(identity)
        except SdkError as e:
            logger.error("Account lookup failed for %s: %s", identity, e)
            raise NetworkError(f"Failed to load account {identity}: {e}") from e

    async def build_invocation(
        self,
        source: str,
        method: str,
        args: list[xdr.SCVal],
        *,
        base_fee: int | None = None,
    ) -> TransactionEnvelope:
        """Assemble an unsigned transaction calling method on the escrow contract."""
        account = await self.get_account(source)
        return (
            TransactionBuilder(
                source_account=account,
                network_passphrase=self.config.network_passphrase,
                base_fee=base_fee or self.config.action_base_fee,
            )
            .append_invoke_contract_function_op(
                contract_id=self.config.escrow_contract_id,
                function_name=method,
                parameters=args,
            )
            .set_timeout(self.config.tx_timeout_seconds)
            .build()
        )

    async def simulate(self, tx: TransactionEnvelope) -> SimulationResult:
        """Dry-run tx against current ledger state. Never raises on a failed simulation."""
        try:
            resp = await self.server.simulate_transaction(tx)
        except BaseRequestError as e:
            logger.error("simulateTransaction request failed: %s", e)
            raise NetworkError(f"Simulation request failed: {e}") from e

        if resp.error:
            logger.info("Simulation failed: %s", resp.error)
            return SimulationResult(success=False, error=resp.error, response=resp)

        return_value = None
        if resp.results:
            return_value = xdr.SCVal.from_xdr(resp.results[0].xdr)
        return SimulationResult(success=True, return_value=return_value, response=resp)

    async def prepare(
        self,
        tx: TransactionEnvelope,
        simulation: SimulationResult | None = None,
    ) -> TransactionEnvelope:
        """Attach footprint, resource fee and auth entries from a successful simulation."""
        if simulation is None:
            simulation = await self.simulate(tx)
        if not simulation.success:
            raise SimulationError("Transaction simulation failed", diagnostic=simulation.error)

        try:
            return await self.server.prepare_transaction(tx, simulation.response)
        except PrepareTransactionException as e:
            raise SimulationError("Transaction simulation failed", diagnostic=str(e)) from e
        except BaseRequestError as e:
            raise NetworkError(f"Prepare request failed: {e}") from e

    async def submit(self, signed_envelope_xdr: str) -> SubmitResult:
        """Send a signed envelope. Returns the node's verdict without waiting for a ledger."""
        try:
            envelope = TransactionBuilder.from_xdr(signed_envelope_xdr, self.config.network_passphrase)
        except Exception as e:
            raise SubmitError(f"Signed envelope is not valid XDR: {e}") from e

        try:
            resp = await self.server.send_transaction(envelope)
        except BaseRequestError as e:
            logger.error("sendTransaction request failed: %s", e)
            raise NetworkError(f"Submit request failed: {e}") from e

        status = SubmitStatus(_enum_value(resp.status))
        logger.info("Submitted tx %s: %s", resp.hash, status.value)
        return SubmitResult(status=status, hash=resp.hash, error=resp.error_result_xdr)

    async def get_transaction_status(self, tx_hash: str) -> TransactionStatus:
        try:
            resp = await self.server.get_transaction(tx_hash)
        except BaseRequestError as e:
            raise NetworkError(f"getTransaction request failed: {e}") from e
        return TransactionStatus(_enum_value(resp.status))

    async def wait_for_confirmation(
        self,
        tx_hash: str,
        *,
        max_attempts: int | None = None,
        interval: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> TransactionStatus:
        """Poll getTransaction with exponential backoff until SUCCESS or FAILED.

        Raises SubmitError if the transaction failed on-chain and
        ConfirmationTimeout once max_attempts polls came back NOT_FOUND.
        """
        attempts = max_attempts or self.config.confirmation_max_attempts
        delay = interval or self.config.confirmation_initial_interval_seconds

        for attempt in range(1, attempts + 1):
            try:
                status = await self.get_transaction_status(tx_hash)
            except NetworkError as e:
                logger.warning("Confirmation poll %d/%d for %s failed: %s", attempt, attempts, tx_hash, e)
                status = TransactionStatus.NOT_FOUND

            if status is TransactionStatus.SUCCESS:
                return status
            if status is TransactionStatus.FAILED:
                raise SubmitError("Transaction failed on-chain", status=status.value, tx_hash=tx_hash)

            logger.debug("Tx %s not found yet (%d/%d)", tx_hash, attempt, attempts)
            if attempt < attempts:
                await sleep(delay)
                delay = min(delay * self.config.confirmation_backoff, self.config.confirmation_max_interval_seconds)

        raise ConfirmationTimeout(f"Transaction {tx_hash} not confirmed after {attempts} polls")

    async def query(self, method: str, args: list[xdr.SCVal], source: str | None = None) -> Any:
        """Read-only contract call: simulate and decode, never sign or submit."""
        tx = await self.build_invocation(
            source or self.config.read_only_source_account,
            method,
            args,
            base_fee=self.config.query_base_fee,
        )
        sim = await self.simulate(tx)
        if not sim.success:
            raise SimulationError(f"{method} simulation failed", diagnostic=sim.error)
        if sim.return_value is None:
            return None
        return scval_to_native(sim.return_value)
