"""
Single-use HPKE session for one credential request.

The session owns the ephemeral P-256 key pair, the freshness nonce and the
requesting origin. `open()` consumes it: the private key is dropped whether
or not decryption succeeds, and any later call raises SessionConsumedError.
A failed request is retried with a new session, never with the old one.
"""

import logging
import os
from typing import Optional

from cryptography.hazmat.primitives.asymmetric import ec

from .envelope import EncryptedCredentialDocument
from .hpke import open_base
from .keys import generate_ephemeral_keypair, public_key_to_bytes
from .transcript import build_encryption_info, build_session_transcript
from .types import NONCE_SIZE, SessionConsumedError

logger = logging.getLogger(__name__)


class HPKESession:
    """
    Receiver-side HPKE context for a single encrypted DeviceResponse.

    Example usage:
        ```python
        session = HPKESession.create("https://verifier.example")
        send_to_wallet(session.encryption_info(), device_request)
        plaintext = session.open(decode_credential_document(response))
        ```
    """

    def __init__(
        self,
        private_key: ec.EllipticCurvePrivateKey,
        nonce: bytes,
        origin: str,
    ) -> None:
        if len(nonce) != NONCE_SIZE:
            raise ValueError(f"Nonce must be {NONCE_SIZE} bytes, got {len(nonce)}")

        self._private_key: Optional[ec.EllipticCurvePrivateKey] = private_key
        self.public_key_bytes = public_key_to_bytes(private_key.public_key())
        self.nonce = nonce
        self.origin = origin

    @classmethod
    def create(cls, origin: str) -> "HPKESession":
        """Create a session with a fresh ephemeral key pair and nonce."""
        private_key, _ = generate_ephemeral_keypair()
        session = cls(private_key, os.urandom(NONCE_SIZE), origin)
        logger.debug(f"Created HPKE session for origin {origin}")
        return session

    @property
    def consumed(self) -> bool:
        """Whether the session can no longer decrypt."""
        return self._private_key is None

    def encryption_info(self) -> bytes:
        """CBOR EncryptionInfo carrying the session public key and nonce."""
        return build_encryption_info(self.public_key_bytes, self.nonce)

    def session_transcript(self, encapsulated_key: bytes) -> bytes:
        """Associated data binding a response to this request."""
        return build_session_transcript(self.nonce, self.origin, encapsulated_key)

    def discard(self) -> None:
        """Drop the private key without decrypting anything."""
        if self._private_key is not None:
            logger.debug(f"Discarding unused HPKE session for origin {self.origin}")
        self._private_key = None

    def open(self, document: EncryptedCredentialDocument) -> bytes:
        """
        Decrypt the wallet's response and consume the session.

        Args:
            document: The encrypted credential document

        Returns:
            Decrypted DeviceResponse CBOR bytes

        Raises:
            SessionConsumedError: If the session was already opened or discarded
            DecryptionFailedError: If decapsulation or authentication fails
        """
        private_key = self._private_key
        if private_key is None:
            raise SessionConsumedError("HPKE session already used; start a new request")
        self._private_key = None

        aad = self.session_transcript(document.encapsulated_key)
        plaintext = open_base(
            document.encapsulated_key,
            private_key,
            self.public_key_bytes,
            aad,
            document.ciphertext,
        )

        logger.info(f"Decrypted credential response ({len(plaintext)} bytes)")
        return plaintext
