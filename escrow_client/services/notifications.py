"""Transient user-facing messages about the current or last action."""

import asyncio
import enum
import logging
from datetime import UTC, datetime
from typing import Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class NotificationKind(enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class Notification(BaseModel):
    kind: NotificationKind
    message: str
    tx_hash: str | None = None
    explorer_url: str | None = None
    created_at: datetime


class NotificationChannel(Protocol):
    def publish(self, kind: NotificationKind, message: str, tx_hash: str | None = None) -> None: ...

    def clear(self) -> None: ...


class InMemoryNotificationChannel:
    """Single-slot channel. Non-pending messages dismiss themselves after a delay."""

    def __init__(self, dismiss_after: float = 10.0, explorer_url: str | None = None) -> None:
        self.dismiss_after = dismiss_after
        self.explorer_url = explorer_url
        self.current: Notification | None = None
        self._timer: asyncio.TimerHandle | None = None

    def publish(self, kind: NotificationKind, message: str, tx_hash: str | None = None) -> None:
        self._cancel_timer()
        self.current = Notification(
            kind=kind,
            message=message,
            tx_hash=tx_hash,
            explorer_url=f"{self.explorer_url}/tx/{tx_hash}" if tx_hash and self.explorer_url else None,
            created_at=datetime.now(UTC),
        )
        logger.info("Notification [%s]: %s", kind.value, message)

        # Pending messages stay up until replaced by the action's outcome
        if kind is not NotificationKind.PENDING:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self.dismiss_after, self._dismiss, self.current)

    def clear(self) -> None:
        self._cancel_timer()
        self.current = None

    def _dismiss(self, notification: Notification) -> None:
        # A newer message may have replaced the one this timer was armed for
        if self.current is notification:
            self.current = None
        self._timer = None

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
