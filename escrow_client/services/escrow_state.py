"""Escrow decoding and per-identity lifecycle permissions.

The permission rules mirror what the contract will accept, so a flag being
True means the action is worth simulating, not that it is guaranteed to pass:
the contract still re-checks every precondition.
"""

import logging
from typing import Any

from pydantic import ValidationError

from escrow_client.errors import DecodeError, EscrowNotFoundError, SimulationError
from escrow_client.schemas.escrow import (
    Escrow,
    EscrowDetailResponse,
    EscrowPermissions,
    EscrowStatus,
)
from escrow_client.services import contract
from escrow_client.services.ledger import LedgerClient
from escrow_client.utils.amounts import format_amount

logger = logging.getLogger(__name__)

UNKNOWN_STATUS_LABEL = "Unknown"

_STATUS_LABELS = {
    EscrowStatus.PENDING: "Pending",
    EscrowStatus.APPROVED: "Approved",
    EscrowStatus.COMPLETED: "Completed",
    EscrowStatus.REFUNDED: "Refunded",
}

HINT_TIME_LOCKED = "Waiting for time-lock to expire..."
HINT_AWAITING_APPROVAL = "Pending sender approval..."
HINT_CLAIMABLE = "Funds available for claim"


def decode_escrow(raw: Any, escrow_id: int) -> Escrow:
    """Validate a native get_escrow payload into a typed Escrow."""
    if not isinstance(raw, dict):
        raise DecodeError(f"Escrow {escrow_id}: expected a struct, got {type(raw).__name__}")
    try:
        return Escrow.model_validate({**raw, "id": escrow_id})
    except ValidationError as e:
        raise DecodeError(f"Escrow {escrow_id}: malformed payload: {e}") from e


def status_label(status: int) -> str:
    try:
        return _STATUS_LABELS[EscrowStatus(status)]
    except ValueError:
        return UNKNOWN_STATUS_LABEL


def can_claim(escrow: Escrow, identity: str | None, now: int) -> bool:
    return (
        identity is not None
        and escrow.status == EscrowStatus.APPROVED
        and identity in escrow.recipient_addresses
    )


def can_approve(escrow: Escrow, identity: str | None, now: int) -> bool:
    return (
        identity is not None
        and escrow.status == EscrowStatus.PENDING
        and identity == escrow.sender
        and now >= escrow.deadline
    )


def can_refund(escrow: Escrow, identity: str | None, now: int) -> bool:
    return (
        identity is not None
        and escrow.status in (EscrowStatus.PENDING, EscrowStatus.APPROVED)
        and identity == escrow.sender
    )


def lock_hint(escrow: Escrow, now: int) -> str:
    if escrow.status == EscrowStatus.PENDING and now < escrow.deadline:
        return HINT_TIME_LOCKED
    if escrow.status == EscrowStatus.PENDING:
        return HINT_AWAITING_APPROVAL
    return HINT_CLAIMABLE


def permissions(escrow: Escrow, identity: str | None, now: int) -> EscrowPermissions:
    return EscrowPermissions(
        status_label=status_label(escrow.status),
        lock_hint=lock_hint(escrow, now),
        can_approve=can_approve(escrow, identity, now),
        can_claim=can_claim(escrow, identity, now),
        can_refund=can_refund(escrow, identity, now),
    )


def format_address(address: str, head: int = 4, tail: int = 4) -> str:
    """Shorten a strkey for display: GABC...WXYZ."""
    if len(address) <= head + tail + 3:
        return address
    return f"{address[:head]}...{address[-tail:]}"


def to_detail(escrow: Escrow, identity: str | None, now: int, decimals: int) -> EscrowDetailResponse:
    return EscrowDetailResponse(
        id=escrow.id,
        sender=escrow.sender,
        sender_display=format_address(escrow.sender),
        recipients=escrow.recipients,
        amount=str(escrow.amount),
        amount_display=format_amount(escrow.amount, decimals),
        asset=escrow.asset,
        deadline=escrow.deadline,
        status=escrow.status,
        created_at=escrow.created_at,
        permissions=permissions(escrow, identity, now),
    )


class EscrowStateModel:
    """Holds the most recently fetched escrow. Replaced wholesale, never patched."""

    def __init__(self, ledger: LedgerClient) -> None:
        self.ledger = ledger
        self.snapshot: Escrow | None = None
        # Identity the snapshot belongs to; None while nobody is connected
        self.identity: str | None = None

    def track(self, identity: str | None) -> None:
        if identity != self.identity:
            self.snapshot = None
        self.identity = identity

    def clear(self) -> None:
        self.identity = None
        self.snapshot = None

    async def fetch(self, escrow_id: int, source: str | None = None) -> Escrow:
        """Load escrow_id via a read-only get_escrow call.

        A failed simulation means there is no such escrow and clears the
        snapshot. On DecodeError the previous snapshot is kept. Results
        looked up for any identity other than the tracked one are returned
        but never committed.
        """
        try:
            raw = await self.ledger.query(contract.GET_ESCROW, contract.id_args(escrow_id), source)
        except SimulationError as e:
            if source == self.identity:
                self.snapshot = None
            raise EscrowNotFoundError(f"Escrow {escrow_id} not found", diagnostic=e.diagnostic) from e

        try:
            escrow = decode_escrow(raw, escrow_id)
        except DecodeError:
            logger.error("Escrow %s payload failed to decode; keeping previous snapshot", escrow_id)
            raise

        if source != self.identity:
            logger.info("Dropping escrow %s fetched for %s (now tracking %s)", escrow_id, source, self.identity)
            return escrow
        self.snapshot = escrow
        return escrow
