"""Explicit connection context passed into every operation."""

from dataclasses import dataclass

from escrow_client.services.signer import Signer


@dataclass(frozen=True)
class SessionContext:
    """Who is acting and who signs for them. No signer means read-only."""

    identity: str
    signer: Signer | None = None

    @property
    def can_sign(self) -> bool:
        return self.signer is not None
