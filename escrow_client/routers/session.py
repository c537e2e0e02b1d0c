"""Session endpoints: connect, inspect, disconnect, dashboard."""

from fastapi import APIRouter, Depends, HTTPException, Response

from escrow_client.client import EscrowClient, configured_signer, get_client
from escrow_client.schemas.escrow import DashboardIds
from escrow_client.schemas.session import SessionConnectRequest, SessionResponse
from escrow_client.session import SessionContext

router = APIRouter(tags=["session"])


def require_session(client: EscrowClient = Depends(get_client)) -> SessionContext:
    if client.session is None:
        raise HTTPException(status_code=401, detail="No identity connected")
    return client.session


def _session_response(client: EscrowClient, session: SessionContext) -> SessionResponse:
    return SessionResponse(
        identity=session.identity,
        can_sign=session.can_sign,
        asset_code=client.config.asset_code,
        balance=client.balance.balance,
        dashboard=client.dashboard.snapshot,
        notification=client.notifications.current,
        action_in_progress=client.orchestrator.busy,
    )


@router.post("/session", response_model=SessionResponse)
async def connect(
    data: SessionConnectRequest,
    client: EscrowClient = Depends(get_client),
) -> SessionResponse:
    """Connect an identity. Signing is enabled only if the configured signer owns it."""
    signer = configured_signer(client.config)
    if signer is not None and signer.public_key != data.identity:
        raise HTTPException(
            status_code=422,
            detail="Identity does not match the configured signer",
        )
    session = await client.connect(data.identity, signer)
    return _session_response(client, session)


@router.get("/session", response_model=SessionResponse)
async def get_session(
    client: EscrowClient = Depends(get_client),
    session: SessionContext = Depends(require_session),
) -> SessionResponse:
    return _session_response(client, session)


@router.delete("/session", status_code=204)
async def disconnect(client: EscrowClient = Depends(get_client)) -> Response:
    await client.disconnect()
    return Response(status_code=204)


@router.get("/dashboard", response_model=DashboardIds)
async def get_dashboard(
    client: EscrowClient = Depends(get_client),
    session: SessionContext = Depends(require_session),
) -> DashboardIds:
    """Reload created/received escrow ids for the connected identity."""
    return await client.dashboard.refresh(session.identity)
