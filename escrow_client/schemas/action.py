"""Pydantic v2 schemas for contract actions and their outcomes."""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator
from stellar_sdk import StrKey

from escrow_client.schemas.escrow import DashboardIds, Escrow, U64_MAX
from escrow_client.utils.amounts import to_minor_units


class ActionMethod(enum.Enum):
    CREATE = "create"
    APPROVE = "approve"
    CLAIM = "claim"
    REFUND = "refund"


class ActionState(enum.Enum):
    IDLE = "idle"
    BUILDING = "building"
    SIMULATING = "simulating"
    SIMULATION_FAILED = "simulation_failed"
    PREPARED = "prepared"
    AWAITING_SIGNATURE = "awaiting_signature"
    SIGNATURE_REJECTED = "signature_rejected"
    SIGNED = "signed"
    SUBMITTING = "submitting"
    SUBMIT_FAILED = "submit_failed"
    SUBMITTED = "submitted"
    SETTLING = "settling"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"  # build or transport failure before simulation finished


TERMINAL_STATES = frozenset({
    ActionState.SIMULATION_FAILED,
    ActionState.SIGNATURE_REJECTED,
    ActionState.SUBMIT_FAILED,
    ActionState.CONFIRMED,
    ActionState.TIMED_OUT,
    ActionState.FAILED,
})


class CreateEscrowRequest(BaseModel):
    recipient: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    deadline: int | None = Field(None, ge=0, le=U64_MAX)  # unix seconds, overrides deadline_days
    deadline_days: int | None = Field(None, ge=0)

    @field_validator("recipient")
    @classmethod
    def validate_recipient(cls, v: str) -> str:
        if not StrKey.is_valid_ed25519_public_key(v):
            raise ValueError("Invalid recipient public key (expected G... strkey)")
        return v

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if to_minor_units(v) <= 0:
            raise ValueError("Amount is below the smallest unit (0.0000001)")
        return v


class ActionRequest(BaseModel):
    """One of the four contract writes. escrow_id is required for all but create."""

    method: ActionMethod
    escrow_id: int | None = Field(None, ge=0, le=U64_MAX)
    create: CreateEscrowRequest | None = None

    @model_validator(mode="after")
    def check_target(self) -> "ActionRequest":
        if self.method is ActionMethod.CREATE:
            if self.create is None:
                raise ValueError("create action requires create parameters")
        elif self.escrow_id is None:
            raise ValueError(f"{self.method.value} action requires an escrow_id")
        return self


class ActionError(BaseModel):
    kind: str
    message: str
    diagnostic: str | None = None


class ActionOutcome(BaseModel):
    action_id: uuid.UUID
    method: ActionMethod
    state: ActionState
    escrow_id: int | None = None
    tx_hash: str | None = None
    explorer_url: str | None = None
    error: ActionError | None = None
    dashboard: DashboardIds | None = None
    escrow: Escrow | None = None
    started_at: datetime
    finished_at: datetime
