"""Component wiring for one client session."""

import logging

import httpx
from fastapi import Request

from escrow_client.config import Settings, settings
from escrow_client.services.balance import BalanceTracker
from escrow_client.services.dashboard import DashboardIndex
from escrow_client.services.escrow_state import EscrowStateModel
from escrow_client.services.ledger import LedgerClient
from escrow_client.services.notifications import InMemoryNotificationChannel
from escrow_client.services.orchestrator import Orchestrator
from escrow_client.services.signer import KeypairSigner, Signer
from escrow_client.session import SessionContext

logger = logging.getLogger(__name__)


def configured_signer(config: Settings) -> Signer | None:
    """The local signer from signer_secret_key, if one is configured."""
    if not config.signer_secret_key:
        return None
    return KeypairSigner(config.signer_secret_key, config.network_passphrase)


class EscrowClient:
    def __init__(
        self,
        config: Settings | None = None,
        ledger: LedgerClient | None = None,
        horizon_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or settings
        self.ledger = ledger or LedgerClient(config=self.config)
        self.notifications = InMemoryNotificationChannel(
            dismiss_after=self.config.notification_dismiss_seconds,
            explorer_url=self.config.resolved_explorer_url,
        )
        self.dashboard = DashboardIndex(self.ledger)
        self.escrows = EscrowStateModel(self.ledger)
        self.balance = BalanceTracker(client=horizon_client, config=self.config)
        self.orchestrator = Orchestrator(
            self.ledger, self.dashboard, self.escrows, self.notifications, config=self.config,
            current_identity=self.current_identity,
        )
        self.session: SessionContext | None = None

    def current_identity(self) -> str | None:
        return self.session.identity if self.session else None

    async def connect(self, identity: str, signer: Signer | None = None) -> SessionContext:
        """Switch the session to identity: restart balance polling and reload the dashboard."""
        if self.session is not None and self.session.identity != identity:
            await self.disconnect()
        self.session = SessionContext(identity=identity, signer=signer)
        self.dashboard.track(identity)
        self.escrows.track(identity)
        await self.balance.start(identity)
        await self.dashboard.refresh(identity)
        logger.info("Connected %s (signer=%s)", identity, signer is not None)
        return self.session

    async def disconnect(self) -> None:
        previous = self.session
        self.session = None
        await self.balance.stop()
        self.dashboard.clear()
        self.escrows.clear()
        self.notifications.clear()
        if previous is not None:
            logger.info("Disconnected %s", previous.identity)

    async def close(self) -> None:
        await self.disconnect()
        await self.balance.close()
        await self.ledger.close()


def get_client(request: Request) -> EscrowClient:
    return request.app.state.client
