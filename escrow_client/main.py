"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from escrow_client.client import EscrowClient
from escrow_client.routers import escrows, session

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build the client on startup, stop polling on shutdown."""
    client = EscrowClient()
    app.state.client = client
    logger.info(
        "Escrow client ready: network=%s contract=%s",
        client.config.stellar_network, client.config.escrow_contract_id,
    )

    yield

    await client.close()


app = FastAPI(
    title="Soroban Escrow Client",
    description="Build, simulate, sign and submit escrow contract calls",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(session.router)
app.include_router(escrows.router)


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}
