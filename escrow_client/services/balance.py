"""Asset balance polling against the Horizon accounts endpoint.

The tracker owns one interval task per connected identity. A poll that was
already in flight when the identity changed may still resolve; its result is
dropped unless it belongs to the identity being tracked at commit time.
"""

import asyncio
import logging
from collections.abc import Callable

import httpx

from escrow_client.config import Settings, settings
from escrow_client.errors import NetworkError

logger = logging.getLogger(__name__)

ZERO_BALANCE = "0.00"


def find_balance(balances: list[dict], asset_code: str, asset_issuer: str) -> str:
    """Pick the (code, issuer) line out of an account's balances. Missing line is zero."""
    for line in balances:
        if line.get("asset_code") == asset_code and line.get("asset_issuer") == asset_issuer:
            return str(line.get("balance", ZERO_BALANCE))
    return ZERO_BALANCE


class BalanceTracker:
    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        config: Settings | None = None,
        on_update: Callable[[str, str], None] | None = None,
    ) -> None:
        self.config = config or settings
        self._client = client
        self._owns_client = client is None
        self._on_update = on_update
        self._task: asyncio.Task | None = None
        self.identity: str | None = None
        self.balance: str | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.http_timeout_seconds)
        return self._client

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll(self, identity: str, asset_code: str, asset_issuer: str) -> str:
        """Fetch the identity's balance for one asset as a decimal string."""
        url = f"{self.config.resolved_horizon_url}/accounts/{identity}"
        try:
            resp = await self.client.get(url)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Horizon timed out loading {identity}") from e
        except httpx.RequestError as e:
            raise NetworkError(f"Failed to reach Horizon: {e}") from e

        if resp.status_code != 200:
            raise NetworkError(f"Horizon returned {resp.status_code} for account {identity}")

        try:
            data = resp.json()
        except ValueError as e:
            raise NetworkError("Horizon account response is not valid JSON") from e

        balances = data.get("balances") if isinstance(data, dict) else None
        if not isinstance(balances, list):
            raise NetworkError(f"Horizon account response for {identity} has no balances")
        return find_balance(balances, asset_code, asset_issuer)

    async def refresh(self, identity: str) -> str | None:
        """Run one poll and commit it if identity is still the tracked one.

        Errors are logged and leave the previous balance untouched.
        """
        try:
            balance = await self.poll(identity, self.config.asset_code, self.config.asset_issuer)
        except NetworkError as e:
            logger.warning("Balance poll for %s failed: %s", identity, e)
            return self.balance

        if identity != self.identity:
            logger.debug("Dropping stale balance for %s (now tracking %s)", identity, self.identity)
            return self.balance

        self.balance = balance
        if self._on_update is not None:
            self._on_update(identity, balance)
        return balance

    async def _run(self, identity: str) -> None:
        while True:
            try:
                await self.refresh(identity)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Balance poll loop error for %s", identity)
            await asyncio.sleep(self.config.balance_poll_interval_seconds)

    async def start(self, identity: str) -> None:
        """Begin polling identity every balance_poll_interval_seconds."""
        if self.identity == identity and self.running:
            return
        await self.stop()
        self.identity = identity
        self.balance = None
        self._task = asyncio.create_task(self._run(identity))
        logger.info("Balance tracking started for %s", identity)

    async def stop(self) -> None:
        """Cancel the interval task and forget the identity."""
        previous = self.identity
        self.identity = None
        self.balance = None
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Balance tracking stopped for %s", previous)

    async def close(self) -> None:
        await self.stop()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
