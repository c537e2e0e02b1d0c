"""Action state machine: build → simulate → sign → submit → settle → refresh.

At most one action is in flight at a time. Every path out of ``execute`` ends
in a terminal state with the pending slot released; failures come back as a
typed error payload on the outcome rather than as exceptions, so re-invoking
the action is always the recovery path. Nothing is retried automatically.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from stellar_sdk import TransactionEnvelope

from escrow_client.config import Settings, settings
from escrow_client.errors import (
    ActionInProgressError,
    ConfirmationTimeout,
    EscrowClientError,
    SignerRejected,
    SimulationError,
    SubmitError,
)
from escrow_client.schemas.action import (
    ActionError,
    ActionMethod,
    ActionOutcome,
    ActionRequest,
    ActionState,
)
from escrow_client.schemas.escrow import DashboardIds, Escrow
from escrow_client.services import contract
from escrow_client.services.dashboard import DashboardIndex
from escrow_client.services.escrow_state import EscrowStateModel
from escrow_client.services.ledger import LedgerClient, SubmitStatus, scval_to_native
from escrow_client.services.notifications import NotificationChannel, NotificationKind
from escrow_client.session import SessionContext
from escrow_client.utils.amounts import to_minor_units

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400

SIMULATION_FAILED_MESSAGE = "Transaction simulation failed. Check your balance."
SENT_MESSAGE = "Transaction sent"

_CONFIRMED_MESSAGES = {
    ActionMethod.CREATE: "Escrow deployed successfully!",
    ActionMethod.APPROVE: "Escrow approved",
    ActionMethod.CLAIM: "Funds claimed",
    ActionMethod.REFUND: "Escrow refunded",
}


@dataclass
class PendingAction:
    """The one in-flight action. Lives only for the duration of execute()."""

    method: ActionMethod
    escrow_id: int | None
    identity: str
    action_id: uuid.UUID = field(default_factory=uuid.uuid4)
    state: ActionState = ActionState.IDLE
    tx_hash: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    history: list[ActionState] = field(default_factory=list)


def _error_payload(e: EscrowClientError) -> ActionError:
    return ActionError(kind=e.kind, message=e.message, diagnostic=getattr(e, "diagnostic", None))


class Orchestrator:
    def __init__(
        self,
        ledger: LedgerClient,
        dashboard: DashboardIndex,
        escrow_state: EscrowStateModel,
        notifications: NotificationChannel,
        config: Settings | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        current_identity: Callable[[], str | None] | None = None,
    ) -> None:
        self.ledger = ledger
        self.dashboard = dashboard
        self.escrow_state = escrow_state
        self.notifications = notifications
        self.config = config or settings
        self._clock = clock
        self._sleep = sleep
        # Who is connected right now; None means every action is current
        self._current_identity = current_identity
        self._lock = asyncio.Lock()
        self.pending: PendingAction | None = None
        self.last_outcome: ActionOutcome | None = None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def execute(self, ctx: SessionContext, request: ActionRequest) -> ActionOutcome:
        """Run one action to a terminal state.

        Raises ActionInProgressError if another action holds the slot.
        """
        if self._lock.locked():
            logger.warning(
                "Rejecting %s: %s already in flight",
                request.method.value, self.pending.method.value if self.pending else "action",
            )
            raise ActionInProgressError("Another action is already in progress")

        async with self._lock:
            action = PendingAction(method=request.method, escrow_id=request.escrow_id, identity=ctx.identity)
            self.pending = action
            try:
                return await self._run(ctx, request, action)
            except Exception:
                logger.exception("Action %s (%s) crashed", action.action_id, action.method.value)
                self._publish(action, NotificationKind.ERROR, "Action failed")
                raise
            finally:
                self.pending = None

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _run(
        self, ctx: SessionContext, request: ActionRequest, action: PendingAction,
    ) -> ActionOutcome:
        method = request.method
        if ctx.signer is None:
            return self._fail(action, ActionState.FAILED, ActionError(
                kind="signer_unavailable", message="No signer connected for this identity",
            ))

        self._publish(action, NotificationKind.PENDING, f"Broadcasting {method.value}...")

        self._transition(action, ActionState.BUILDING)
        try:
            args = self._build_args(ctx.identity, request)
            tx = await self.ledger.build_invocation(ctx.identity, method.value, args)
        except ValueError as e:
            return self._fail(action, ActionState.FAILED, ActionError(kind="invalid_request", message=str(e)))
        except EscrowClientError as e:
            return self._fail(action, ActionState.FAILED, _error_payload(e))

        self._transition(action, ActionState.SIMULATING)
        try:
            sim = await self.ledger.simulate(tx)
        except EscrowClientError as e:
            return self._fail(action, ActionState.FAILED, _error_payload(e))
        if not sim.success:
            return self._fail(action, ActionState.SIMULATION_FAILED, ActionError(
                kind=SimulationError.kind, message=SIMULATION_FAILED_MESSAGE, diagnostic=sim.error,
            ))

        if method is ActionMethod.CREATE and sim.return_value is not None:
            # create returns the new id; the simulated value is what the ledger will assign
            # unless another create lands first
            created_id = scval_to_native(sim.return_value)
            if isinstance(created_id, int):
                action.escrow_id = created_id

        try:
            prepared = await self.ledger.prepare(tx, sim)
        except SimulationError as e:
            return self._fail(action, ActionState.SIMULATION_FAILED, ActionError(
                kind=e.kind, message=SIMULATION_FAILED_MESSAGE, diagnostic=e.diagnostic,
            ))
        except EscrowClientError as e:
            return self._fail(action, ActionState.FAILED, _error_payload(e))
        self._transition(action, ActionState.PREPARED)

        try:
            signed_xdr = await self._request_signature(ctx, action, prepared)
        except Exception as e:
            return self._fail(action, ActionState.FAILED, ActionError(kind="signer", message=f"Signer error: {e}"))
        if signed_xdr is None:
            return self._finish(action, ActionState.SIGNATURE_REJECTED)

        self._transition(action, ActionState.SUBMITTING)
        try:
            result = await self.ledger.submit(signed_xdr)
        except EscrowClientError as e:
            return self._fail(action, ActionState.SUBMIT_FAILED, _error_payload(e))
        action.tx_hash = result.hash
        if result.status is not SubmitStatus.PENDING:
            return self._fail(action, ActionState.SUBMIT_FAILED, ActionError(
                kind=SubmitError.kind,
                message=f"Submission returned {result.status.value}",
                diagnostic=result.error,
            ))
        self._transition(action, ActionState.SUBMITTED)
        self._publish(action, NotificationKind.SUCCESS, SENT_MESSAGE, tx_hash=result.hash)

        self._transition(action, ActionState.SETTLING)
        try:
            await self._settle(result.hash)
        except ConfirmationTimeout as e:
            return self._fail(action, ActionState.TIMED_OUT, _error_payload(e))
        except SubmitError as e:
            return self._fail(action, ActionState.SUBMIT_FAILED, _error_payload(e))

        if not self._is_current(action):
            logger.info("Action %s confirmed after %s disconnected; skipping refresh", action.action_id, ctx.identity)
            return self._finish(action, ActionState.CONFIRMED)

        target_id = request.escrow_id if method is not ActionMethod.CREATE else None
        dashboard, escrow = await self._refresh(ctx, target_id)
        self._publish(action, NotificationKind.SUCCESS, _CONFIRMED_MESSAGES[method], tx_hash=result.hash)
        return self._finish(action, ActionState.CONFIRMED, dashboard=dashboard, escrow=escrow)

    def _build_args(self, identity: str, request: ActionRequest) -> list:
        method = request.method
        if method is ActionMethod.CREATE:
            params = request.create
            if params.deadline is not None:
                deadline = params.deadline
            else:
                days = params.deadline_days
                if days is None:
                    days = self.config.default_deadline_days
                deadline = int(self._clock()) + days * SECONDS_PER_DAY
            return contract.create_args(
                identity,
                params.recipient,
                to_minor_units(params.amount, self.config.asset_decimals),
                self.config.asset_contract_id,
                deadline,
            )
        if method is ActionMethod.CLAIM:
            return contract.claim_args(request.escrow_id, identity)
        return contract.id_args(request.escrow_id)

    async def _request_signature(
        self, ctx: SessionContext, action: PendingAction, prepared: TransactionEnvelope,
    ) -> str | None:
        """Returns the signed envelope, or None when the signer declined."""
        self._transition(action, ActionState.AWAITING_SIGNATURE)
        try:
            signed_xdr = await ctx.signer.sign_transaction(prepared.to_xdr())
        except SignerRejected as e:
            logger.info("Signer declined %s: %s", action.method.value, e)
            if self._is_current(action):
                self.notifications.clear()
            return None
        self._transition(action, ActionState.SIGNED)
        return signed_xdr

    async def _settle(self, tx_hash: str) -> None:
        if self.config.confirmation_mode == "poll":
            await self.ledger.wait_for_confirmation(tx_hash, sleep=self._sleep)
        else:
            await self._sleep(self.config.settle_delay_seconds)

    async def _refresh(
        self, ctx: SessionContext, escrow_id: int | None,
    ) -> tuple[DashboardIds, Escrow | None]:
        dashboard = await self.dashboard.refresh(ctx.identity)
        if escrow_id is None:
            return dashboard, None
        try:
            escrow = await self.escrow_state.fetch(escrow_id, ctx.identity)
        except EscrowClientError as e:
            logger.warning("Refetch of escrow %s after action failed: %s", escrow_id, e)
            escrow = self.escrow_state.snapshot if self.escrow_state.identity == ctx.identity else None
        return dashboard, escrow

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _is_current(self, action: PendingAction) -> bool:
        return self._current_identity is None or self._current_identity() == action.identity

    def _publish(
        self, action: PendingAction, kind: NotificationKind, message: str, tx_hash: str | None = None,
    ) -> None:
        # Only the connected identity's actions reach the channel
        if self._is_current(action):
            self.notifications.publish(kind, message, tx_hash=tx_hash)

    def _transition(self, action: PendingAction, state: ActionState) -> None:
        logger.debug("Action %s (%s): %s -> %s", action.action_id, action.method.value, action.state.value, state.value)
        action.state = state
        action.history.append(state)

    def _fail(self, action: PendingAction, state: ActionState, error: ActionError) -> ActionOutcome:
        logger.warning("Action %s (%s) ended %s: %s", action.action_id, action.method.value, state.value, error.message)
        self._publish(action, NotificationKind.ERROR, error.message, tx_hash=action.tx_hash)
        return self._finish(action, state, error=error)

    def _finish(
        self,
        action: PendingAction,
        state: ActionState,
        error: ActionError | None = None,
        dashboard: DashboardIds | None = None,
        escrow: Escrow | None = None,
    ) -> ActionOutcome:
        self._transition(action, state)
        outcome = ActionOutcome(
            action_id=action.action_id,
            method=action.method,
            state=state,
            escrow_id=action.escrow_id,
            tx_hash=action.tx_hash,
            explorer_url=self.ledger.explorer_url(action.tx_hash) if action.tx_hash else None,
            error=error,
            dashboard=dashboard,
            escrow=escrow,
            started_at=action.started_at,
            finished_at=datetime.now(UTC),
        )
        self.last_outcome = outcome
        return outcome
