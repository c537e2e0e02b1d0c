"""Error taxonomy shared by the ledger gateway, decoder and orchestrator.

Every error carries a stable ``kind`` that ends up in the typed error payload
of a failed action, so callers can branch without matching on messages.
"""


class EscrowClientError(Exception):
    """Base class for all escrow client errors."""

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NetworkError(EscrowClientError):
    """RPC node or account endpoint unreachable, or it answered with garbage."""

    kind = "network"


class SimulationError(EscrowClientError):
    """Dry-run of an invocation failed (bad precondition, insufficient funds...)."""

    kind = "simulation"

    def __init__(self, message: str, diagnostic: str | None = None) -> None:
        super().__init__(message)
        self.diagnostic = diagnostic


class EscrowNotFoundError(SimulationError):
    """get_escrow simulation failed: no escrow with that id."""

    kind = "not_found"


class SignerRejected(EscrowClientError):
    """The signer declined to sign. Not a failure from the user's point of view."""

    kind = "signer_rejected"


class SubmitError(EscrowClientError):
    """Submission answered with anything other than PENDING, or failed on-chain."""

    kind = "submit"

    def __init__(self, message: str, status: str | None = None, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.tx_hash = tx_hash


class ConfirmationTimeout(EscrowClientError):
    """Hash polling gave up before the transaction left NOT_FOUND."""

    kind = "timeout"


class DecodeError(EscrowClientError):
    """A contract return value did not match the expected schema."""

    kind = "decode"


class ActionInProgressError(EscrowClientError):
    """Another action already holds the pending-action slot."""

    kind = "busy"
