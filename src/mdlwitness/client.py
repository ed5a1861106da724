"""
Verifier-side client for mDL zero-knowledge presentations.

The CredentialVerifier ties the pipeline together: it opens a single-use
HPKE session for each request, decrypts and parses the wallet's response,
assembles the witness and hands it to an external proving engine.
"""

import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

from .envelope import decode_credential_document
from .parse import ParsedCredential, parse_decrypted_response
from .session import HPKESession
from .transcript import build_device_request
from .types import (
    AGE_OVER_18,
    AGE_OVER_21,
    ISSUING_JURISDICTION,
    CredentialError,
    UnsupportedError,
)
from .witness import (
    ProofOptions,
    PublicOutputs,
    Witness,
    WitnessConfig,
    build_witness,
    to_prover_credential,
)

logger = logging.getLogger(__name__)

MDOC_PROTOCOL = "org-iso-mdoc"


class ProvingEngine(Protocol):
    """External prover: consumes circuit inputs, returns proof bytes."""

    async def prove(self, inputs: Dict[str, Any]) -> bytes:
        ...


@dataclass
class VerifierConfig:
    """Configuration for a CredentialVerifier."""
    origin: str
    requested_claims: List[str] = field(
        default_factory=lambda: [AGE_OVER_21, AGE_OVER_18, ISSUING_JURISDICTION]
    )
    witness: WitnessConfig = field(default_factory=WitnessConfig)
    check_validity: bool = True


@dataclass
class CredentialRequest:
    """One outstanding request to the wallet."""
    session: HPKESession
    device_request: bytes
    encryption_info: bytes

    def to_transport(self) -> Dict[str, Any]:
        """Request entry for the Digital Credentials API (base64 fields)."""
        return {
            "protocol": MDOC_PROTOCOL,
            "data": {
                "deviceRequest": base64.b64encode(self.device_request).decode("ascii"),
                "encryptionInfo": base64.b64encode(self.encryption_info).decode("ascii"),
            },
        }


@dataclass
class GeneratedProof:
    """Proof bytes with the public outputs they commit to."""
    proof: bytes
    public_outputs: PublicOutputs


class CredentialVerifier:
    """
    High-level pipeline from wallet response to proof.

    Example usage:
        ```python
        verifier = CredentialVerifier(VerifierConfig(origin="https://app.example"), engine)
        request = verifier.begin_request()
        response = await wallet.get(request.to_transport())
        proof = await verifier.verify(request, response, ProofOptions(
            event_id="drop-2026",
            bound_address="0x...",
            prove_age_over_21=True,
        ))
        ```
    """

    def __init__(self, config: VerifierConfig, engine: Optional[ProvingEngine] = None) -> None:
        """
        Initialize the verifier.

        Args:
            config: Origin, requested claims and witness policy.
            engine: Proving engine; required only for prove()/verify().
        """
        self.config = config
        self.engine = engine

    def begin_request(self) -> CredentialRequest:
        """Create a fresh session and the request structures for the wallet."""
        session = HPKESession.create(self.config.origin)
        return CredentialRequest(
            session=session,
            device_request=build_device_request(self.config.requested_claims),
            encryption_info=session.encryption_info(),
        )

    def receive(
        self,
        request: CredentialRequest,
        payload: Union[bytes, Mapping[str, Any], None],
        now: Optional[datetime] = None,
    ) -> ParsedCredential:
        """
        Decrypt and parse the wallet's response.

        The request's session is consumed even on failure; retry with a new
        request.

        Raises:
            CredentialError: Kind identifies no data, decryption, parse or staleness
        """
        try:
            document = decode_credential_document(payload)
            plaintext = request.session.open(document)
            return parse_decrypted_response(
                plaintext, now=now, check_validity=self.config.check_validity
            )
        except CredentialError as e:
            logger.error(f"Credential response rejected ({e.kind.value}): {e}")
            raise
        finally:
            request.session.discard()

    def build_witness(self, credential: ParsedCredential, options: ProofOptions) -> Witness:
        """Assemble the circuit witness for a parsed credential."""
        prover_credential = to_prover_credential(credential, self.config.witness)
        return build_witness(prover_credential, options, self.config.witness)

    async def prove(self, credential: ParsedCredential, options: ProofOptions) -> GeneratedProof:
        """
        Generate a proof through the proving engine.

        Raises:
            UnsupportedError: If no proving engine is configured
        """
        if self.engine is None:
            raise UnsupportedError("No proving engine configured")

        witness = self.build_witness(credential, options)
        proof = await self.engine.prove(witness.to_inputs())
        logger.info(f"Generated proof ({len(proof)} bytes) for event {options.event_id}")
        return GeneratedProof(proof=proof, public_outputs=witness.public_outputs())

    async def verify(
        self,
        request: CredentialRequest,
        payload: Union[bytes, Mapping[str, Any], None],
        options: ProofOptions,
        now: Optional[datetime] = None,
    ) -> GeneratedProof:
        """Full pipeline: decrypt, parse, build witness, prove."""
        credential = self.receive(request, payload, now=now)
        return await self.prove(credential, options)
