"""Pydantic v2 schemas for the connected session."""

from pydantic import BaseModel, Field, field_validator
from stellar_sdk import StrKey

from escrow_client.schemas.escrow import DashboardIds
from escrow_client.services.notifications import Notification


class SessionConnectRequest(BaseModel):
    identity: str = Field(..., min_length=56, max_length=56)

    @field_validator("identity")
    @classmethod
    def validate_identity(cls, v: str) -> str:
        if not StrKey.is_valid_ed25519_public_key(v):
            raise ValueError("Invalid Stellar public key (expected G... strkey)")
        return v


class SessionResponse(BaseModel):
    identity: str
    can_sign: bool
    asset_code: str
    balance: str | None
    dashboard: DashboardIds
    notification: Notification | None
    action_in_progress: bool
