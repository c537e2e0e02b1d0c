"""Escrow endpoints: detail lookup and the four contract actions."""

import time

from fastapi import APIRouter, Depends, HTTPException

from escrow_client.client import EscrowClient, get_client
from escrow_client.errors import (
    ActionInProgressError,
    DecodeError,
    EscrowNotFoundError,
    NetworkError,
)
from escrow_client.routers.session import require_session
from escrow_client.schemas.action import (
    ActionMethod,
    ActionOutcome,
    ActionRequest,
    CreateEscrowRequest,
)
from escrow_client.schemas.escrow import U64_MAX, EscrowDetailResponse
from escrow_client.services.escrow_state import to_detail
from escrow_client.session import SessionContext

router = APIRouter(prefix="/escrows", tags=["escrows"])


async def _run_action(
    client: EscrowClient, session: SessionContext, request: ActionRequest,
) -> ActionOutcome:
    if not session.can_sign:
        raise HTTPException(
            status_code=503,
            detail="Signing not configured (missing signer secret key)",
        )
    try:
        return await client.orchestrator.execute(session, request)
    except ActionInProgressError as e:
        raise HTTPException(status_code=409, detail=e.message)


def _check_id(escrow_id: int) -> None:
    if escrow_id < 0 or escrow_id > U64_MAX:
        raise HTTPException(status_code=422, detail="Escrow id must be a u64")


@router.get("/{escrow_id}", response_model=EscrowDetailResponse)
async def get_escrow(
    escrow_id: int,
    client: EscrowClient = Depends(get_client),
) -> EscrowDetailResponse:
    """Load one escrow with the connected identity's permissions on it."""
    _check_id(escrow_id)
    identity = client.session.identity if client.session else None
    try:
        escrow = await client.escrows.fetch(escrow_id, identity)
    except EscrowNotFoundError:
        raise HTTPException(status_code=404, detail="Escrow not found")
    except (NetworkError, DecodeError) as e:
        raise HTTPException(status_code=502, detail=e.message)
    return to_detail(escrow, identity, int(time.time()), client.config.asset_decimals)


@router.post("", response_model=ActionOutcome)
async def create_escrow(
    data: CreateEscrowRequest,
    client: EscrowClient = Depends(get_client),
    session: SessionContext = Depends(require_session),
) -> ActionOutcome:
    """Lock funds for a single recipient (100% share) until the deadline."""
    request = ActionRequest(method=ActionMethod.CREATE, create=data)
    return await _run_action(client, session, request)


@router.post("/{escrow_id}/approve", response_model=ActionOutcome)
async def approve_escrow(
    escrow_id: int,
    client: EscrowClient = Depends(get_client),
    session: SessionContext = Depends(require_session),
) -> ActionOutcome:
    _check_id(escrow_id)
    request = ActionRequest(method=ActionMethod.APPROVE, escrow_id=escrow_id)
    return await _run_action(client, session, request)


@router.post("/{escrow_id}/claim", response_model=ActionOutcome)
async def claim_escrow(
    escrow_id: int,
    client: EscrowClient = Depends(get_client),
    session: SessionContext = Depends(require_session),
) -> ActionOutcome:
    _check_id(escrow_id)
    request = ActionRequest(method=ActionMethod.CLAIM, escrow_id=escrow_id)
    return await _run_action(client, session, request)


@router.post("/{escrow_id}/refund", response_model=ActionOutcome)
async def refund_escrow(
    escrow_id: int,
    client: EscrowClient = Depends(get_client),
    session: SessionContext = Depends(require_session),
) -> ActionOutcome:
    _check_id(escrow_id)
    request = ActionRequest(method=ActionMethod.REFUND, escrow_id=escrow_id)
    return await _run_action(client, session, request)
