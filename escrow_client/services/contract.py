"""Escrow contract ABI: method names and positional argument encoding."""

from stellar_sdk import scval, xdr

GET_CREATED_IDS = "get_created_ids"
GET_RECEIVED_IDS = "get_received_ids"
GET_ESCROW = "get_escrow"
CREATE = "create"
APPROVE = "approve"
CLAIM = "claim"
REFUND = "refund"

# The create path always funds a single recipient with the whole amount
FULL_SHARE = 100


def id_args(escrow_id: int) -> list[xdr.SCVal]:
    """Arguments for get_escrow, approve and refund."""
    return [scval.to_uint64(escrow_id)]


def identity_args(identity: str) -> list[xdr.SCVal]:
    """Arguments for get_created_ids / get_received_ids."""
    return [scval.to_address(identity)]


def claim_args(escrow_id: int, claimant: str) -> list[xdr.SCVal]:
    return [scval.to_uint64(escrow_id), scval.to_address(claimant)]


def recipients_arg(recipients: list[tuple[str, int]]) -> xdr.SCVal:
    """Vec<(Address, u32)>, each pair encoded as a two-element vec."""
    return scval.to_vec([
        scval.to_vec([scval.to_address(address), scval.to_uint32(percentage)])
        for address, percentage in recipients
    ])


def create_args(
    sender: str,
    recipient: str,
    amount_minor: int,
    asset: str,
    deadline: int,
) -> list[xdr.SCVal]:
    return [
        scval.to_address(sender),
        recipients_arg([(recipient, FULL_SHARE)]),
        scval.to_int128(amount_minor),
        scval.to_address(asset),
        scval.to_uint64(deadline),
    ]
