"""Signer boundary: turns an unsigned envelope into a signed one, or refuses."""

import logging
from typing import Protocol

from stellar_sdk import Keypair, TransactionEnvelope

from escrow_client.errors import SignerRejected

logger = logging.getLogger(__name__)


class Signer(Protocol):
    """Anything that can sign a base64 XDR envelope for the connected identity.

    Raises SignerRejected when the user (or policy) declines.
    """

    @property
    def public_key(self) -> str: ...

    async def sign_transaction(self, envelope_xdr: str) -> str: ...


class KeypairSigner:
    """Local signer backed by a Stellar secret seed."""

    def __init__(self, secret: str, network_passphrase: str) -> None:
        self._keypair = Keypair.from_secret(secret)
        self.network_passphrase = network_passphrase

    @property
    def public_key(self) -> str:
        return self._keypair.public_key

    async def sign_transaction(self, envelope_xdr: str) -> str:
        try:
            envelope = TransactionEnvelope.from_xdr(envelope_xdr, self.network_passphrase)
        except Exception as e:
            raise SignerRejected(f"Refusing to sign malformed envelope: {e}") from e

        source = envelope.transaction.source.account_id
        if source != self.public_key:
            raise SignerRejected(f"Envelope source {source} is not this signer's account")

        envelope.sign(self._keypair)
        logger.debug("Signed envelope for %s", self.public_key)
        return envelope.to_xdr()
