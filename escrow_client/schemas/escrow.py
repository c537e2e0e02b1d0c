"""Pydantic v2 schemas for on-chain escrow records."""

import enum

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    model_validator,
)

U32_MAX = 2**32 - 1
U64_MAX = 2**64 - 1
I128_MAX = 2**127 - 1


class EscrowStatus(enum.IntEnum):
    PENDING = 0
    APPROVED = 1
    COMPLETED = 2
    REFUNDED = 3


class Recipient(BaseModel):
    """One (address, percentage share) entry of an escrow's recipient list."""

    model_config = ConfigDict(frozen=True)

    address: StrictStr = Field(..., min_length=1)
    percentage: StrictInt = Field(..., ge=0, le=100)

    @model_validator(mode="before")
    @classmethod
    def from_pair(cls, v: object) -> object:
        # The contract encodes each recipient as a 2-tuple, not a struct
        if isinstance(v, (list, tuple)):
            if len(v) != 2:
                raise ValueError("recipient must be an (address, percentage) pair")
            return {"address": v[0], "percentage": v[1]}
        return v


class Escrow(BaseModel):
    """Typed snapshot of one escrow as returned by get_escrow."""

    model_config = ConfigDict(frozen=True)

    id: StrictInt = Field(..., ge=0, le=U64_MAX)
    sender: StrictStr = Field(..., min_length=1)
    recipients: list[Recipient] = Field(..., min_length=1)
    amount: StrictInt = Field(..., gt=0, le=I128_MAX)
    asset: StrictStr = Field(..., min_length=1, validation_alias=AliasChoices("asset", "token"))
    deadline: StrictInt = Field(..., ge=0, le=U64_MAX)
    # Kept as the raw code so unknown values survive decoding and label as "Unknown"
    status: StrictInt = Field(..., ge=0, le=U32_MAX)
    created_at: StrictInt | None = Field(None, ge=0, le=U64_MAX)
    approved: StrictBool | None = None

    @model_validator(mode="after")
    def shares_sum_to_100(self) -> "Escrow":
        total = sum(r.percentage for r in self.recipients)
        if total != 100:
            raise ValueError(f"recipient shares must sum to 100, got {total}")
        return self

    @property
    def recipient_addresses(self) -> list[str]:
        return [r.address for r in self.recipients]


class DashboardIds(BaseModel):
    """Escrow ids an identity created and received, in contract order."""

    model_config = ConfigDict(frozen=True)

    created_ids: list[int] = Field(default_factory=list)
    received_ids: list[int] = Field(default_factory=list)


class EscrowPermissions(BaseModel):
    status_label: str
    lock_hint: str
    can_approve: bool
    can_claim: bool
    can_refund: bool


class EscrowDetailResponse(BaseModel):
    id: int
    sender: str
    sender_display: str
    recipients: list[Recipient]
    amount: str  # minor units as a string, i128 does not fit JSON numbers safely
    amount_display: str
    asset: str
    deadline: int
    status: int
    created_at: int | None
    permissions: EscrowPermissions
