"""Per-identity escrow index: ids the identity created and ids it receives."""

import asyncio
import logging

from escrow_client.errors import EscrowClientError
from escrow_client.schemas.escrow import DashboardIds
from escrow_client.services import contract
from escrow_client.services.ledger import LedgerClient

logger = logging.getLogger(__name__)


class DashboardIndex:
    def __init__(self, ledger: LedgerClient) -> None:
        self.ledger = ledger
        self.snapshot = DashboardIds()
        self.identity: str | None = None

    def track(self, identity: str) -> None:
        """Bind the index to identity. Only its results are committed."""
        if identity != self.identity:
            self.snapshot = DashboardIds()
        self.identity = identity

    async def _fetch_ids(self, method: str, identity: str) -> list[int]:
        """One side of the index. Any failure degrades to an empty list."""
        try:
            ids = await self.ledger.query(method, contract.identity_args(identity), identity)
        except (EscrowClientError, ValueError) as e:
            logger.warning("%s failed for %s: %s", method, identity, e)
            return []

        if ids is None:
            return []
        if not isinstance(ids, list) or not all(
            isinstance(i, int) and not isinstance(i, bool) for i in ids
        ):
            logger.warning("%s for %s returned a non-id payload: %r", method, identity, ids)
            return []
        return ids

    async def refresh(self, identity: str) -> DashboardIds:
        """Fetch both sides concurrently; contract order is kept as-is.

        The snapshot is replaced only if identity is still the tracked one
        when both lookups resolve.
        """
        created, received = await asyncio.gather(
            self._fetch_ids(contract.GET_CREATED_IDS, identity),
            self._fetch_ids(contract.GET_RECEIVED_IDS, identity),
        )
        result = DashboardIds(created_ids=created, received_ids=received)
        if identity != self.identity:
            logger.info("Dropping dashboard for %s (now tracking %s)", identity, self.identity)
            return result
        self.snapshot = result
        logger.info(
            "Dashboard for %s: %d created, %d received",
            identity, len(created), len(received),
        )
        return self.snapshot

    def clear(self) -> None:
        self.identity = None
        self.snapshot = DashboardIds()
