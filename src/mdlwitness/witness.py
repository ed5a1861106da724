"""
Witness assembly for the mDL proving circuit.

Buffers are padded to the circuit's fixed widths and the derived values
(issuer root, nullifier, address binding) are computed exactly as the
circuit recomputes them: Poseidon2(x, y), Poseidon2(doc, event, root) and
Poseidon2(nullifier, address).
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from Crypto.Hash import keccak

from .parse import ParsedCredential
from .poseidon2 import bytes_to_field, field_to_bytes, poseidon2_hash
from .types import (
    AGE_CLAIM_SIZE,
    AGE_OVER_18,
    AGE_OVER_21,
    BN254_MODULUS,
    COORDINATE_SIZE,
    DOCUMENT_NUMBER_SIZE,
    ISSUING_JURISDICTION,
    JURISDICTION_CLAIM_SIZE,
    JURISDICTION_CODE_OFFSET,
    SIGNATURE_SIZE,
    SIGNED_DOCUMENT_SIZE,
    ParseError,
)

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


@dataclass
class WitnessConfig:
    """Policy knobs for witness assembly."""
    # Oversized buffers are rejected unless truncation is explicitly allowed
    allow_truncation: bool = False
    jurisdiction_offset: int = JURISDICTION_CODE_OFFSET


@dataclass
class ProofOptions:
    """What to prove and which application context to bind to."""
    event_id: str
    bound_address: str
    timestamp: Optional[int] = None
    prove_age_over_21: bool = False
    prove_age_over_18: bool = False
    prove_jurisdiction: bool = False


@dataclass
class ProverCredential:
    """Credential buffers at the circuit's fixed widths."""
    signed_document_bytes: bytes  # 512
    signature: bytes  # 64
    age_over_21_claim_bytes: bytes  # 96
    age_over_18_claim_bytes: bytes  # 96
    jurisdiction_claim_bytes: bytes  # 107
    document_number: bytes  # 32
    issuer_key_x: bytes  # 32
    issuer_key_y: bytes  # 32


@dataclass
class PublicOutputs:
    """Public inputs consumed by the on-chain verifier, in circuit order."""
    nullifier: int
    address_binding: int
    proof_timestamp: int
    event_id: int
    issuer_root: int
    bound_address: str
    prove_age_over_21: bool
    prove_age_over_18: bool
    prove_jurisdiction: bool
    revealed_jurisdiction: bytes  # 2 bytes

    def as_list(self) -> List[Any]:
        return [
            self.nullifier,
            self.address_binding,
            self.proof_timestamp,
            self.event_id,
            self.issuer_root,
            self.bound_address,
            self.prove_age_over_21,
            self.prove_age_over_18,
            self.prove_jurisdiction,
            self.revealed_jurisdiction,
        ]

    @property
    def jurisdiction_code(self) -> str:
        """Revealed jurisdiction as text ("" when not revealed)."""
        return self.revealed_jurisdiction.rstrip(b"\x00").decode("ascii", errors="replace")


@dataclass
class Witness:
    """Complete circuit input for one proof."""
    credential: ProverCredential
    issuer_root: int
    nullifier: int
    event_id: int
    bound_address: int
    address_binding: int
    proof_timestamp: int
    prove_age_over_21: bool = False
    prove_age_over_18: bool = False
    prove_jurisdiction: bool = False
    revealed_jurisdiction: bytes = field(default=b"\x00\x00")

    def public_outputs(self) -> PublicOutputs:
        return PublicOutputs(
            nullifier=self.nullifier,
            address_binding=self.address_binding,
            proof_timestamp=self.proof_timestamp,
            event_id=self.event_id,
            issuer_root=self.issuer_root,
            bound_address=f"0x{self.bound_address:040x}",
            prove_age_over_21=self.prove_age_over_21,
            prove_age_over_18=self.prove_age_over_18,
            prove_jurisdiction=self.prove_jurisdiction,
            revealed_jurisdiction=self.revealed_jurisdiction,
        )

    def to_inputs(self) -> Dict[str, Any]:
        """
        Render the circuit input map.

        Public inputs come first in circuit order; field elements are
        0x-prefixed 32-byte hex strings, buffers are lists of byte values.
        """
        c = self.credential
        return {
            "nullifier": field_to_hex(self.nullifier),
            "address_binding": field_to_hex(self.address_binding),
            "proof_timestamp": self.proof_timestamp,
            "event_id": field_to_hex(self.event_id),
            "iaca_root": field_to_hex(self.issuer_root),
            "bound_address": field_to_hex(self.bound_address),
            "prove_age_over_21": self.prove_age_over_21,
            "prove_age_over_18": self.prove_age_over_18,
            "prove_state": self.prove_jurisdiction,
            "proven_state": list(self.revealed_jurisdiction),
            "mso_bytes": list(c.signed_document_bytes),
            "mso_signature": list(c.signature),
            "age_over_21_claim_bytes": list(c.age_over_21_claim_bytes),
            "age_over_18_claim_bytes": list(c.age_over_18_claim_bytes),
            "state_claim_bytes": list(c.jurisdiction_claim_bytes),
            "document_number": list(c.document_number),
            "iaca_pubkey_x": list(c.issuer_key_x),
            "iaca_pubkey_y": list(c.issuer_key_y),
        }


def field_to_hex(value: int) -> str:
    return "0x" + field_to_bytes(value).hex()


def pad_to_size(data: bytes, size: int, allow_truncation: bool = False) -> bytes:
    """
    Pad a buffer with trailing zeros to exactly `size` bytes.

    Args:
        data: Input bytes
        size: Target width
        allow_truncation: Cut oversized input instead of rejecting it

    Returns:
        Buffer of exactly `size` bytes

    Raises:
        ParseError: If data is longer than size and truncation is not allowed
    """
    if len(data) == size:
        return data
    if len(data) > size:
        if not allow_truncation:
            raise ParseError(f"Buffer of {len(data)} bytes exceeds fixed width {size}")
        logger.warning(f"Truncating {len(data)}-byte buffer to {size} bytes")
        return data[:size]
    return data + bytes(size - len(data))


def to_prover_credential(parsed: ParsedCredential, config: Optional[WitnessConfig] = None) -> ProverCredential:
    """
    Convert a parsed credential to fixed-width prover buffers.

    Raises:
        InvalidClaimError: If a required claim is missing
        ParseError: If a buffer exceeds its width and truncation is disallowed
    """
    config = config or WitnessConfig()
    truncate = config.allow_truncation

    age_over_21 = parsed.require_claim(AGE_OVER_21)
    age_over_18 = parsed.require_claim(AGE_OVER_18)
    jurisdiction = parsed.require_claim(ISSUING_JURISDICTION)

    return ProverCredential(
        signed_document_bytes=pad_to_size(parsed.signed_document.bytes, SIGNED_DOCUMENT_SIZE, truncate),
        signature=pad_to_size(parsed.signed_document.signature, SIGNATURE_SIZE, truncate),
        age_over_21_claim_bytes=pad_to_size(age_over_21.raw_bytes, AGE_CLAIM_SIZE, truncate),
        age_over_18_claim_bytes=pad_to_size(age_over_18.raw_bytes, AGE_CLAIM_SIZE, truncate),
        jurisdiction_claim_bytes=pad_to_size(jurisdiction.raw_bytes, JURISDICTION_CLAIM_SIZE, truncate),
        document_number=pad_to_size(parsed.document_number, DOCUMENT_NUMBER_SIZE),
        issuer_key_x=pad_to_size(parsed.issuer_public_key.x, COORDINATE_SIZE),
        issuer_key_y=pad_to_size(parsed.issuer_public_key.y, COORDINATE_SIZE),
    )


def hash_event_id(event_id: str) -> int:
    """keccak256(event_id) reduced into the BN254 scalar field."""
    digest = keccak.new(digest_bits=256, data=event_id.encode("utf-8")).digest()
    return int.from_bytes(digest, "big") % BN254_MODULUS


def address_to_field(address: str) -> int:
    """
    Convert a 20-byte hex address to a field element.

    Raises:
        ValueError: If the address is not 0x followed by 40 hex digits
    """
    if not ADDRESS_PATTERN.match(address):
        raise ValueError(f"Invalid address: {address}")
    return int(address[2:], 16)


def _left_pad32(data: bytes) -> bytes:
    """Right-align into 32 bytes (big-endian field encoding)."""
    if len(data) >= 32:
        return data[:32]
    return data.rjust(32, b"\x00")


def compute_issuer_root(key_x: bytes, key_y: bytes) -> int:
    """Poseidon2(pubkey_x, pubkey_y)"""
    return poseidon2_hash([bytes_to_field(_left_pad32(key_x)), bytes_to_field(_left_pad32(key_y))])


def compute_nullifier(document_number: bytes, event_id: int, issuer_root: int) -> int:
    """Poseidon2(document_number, event_id, issuer_root)"""
    return poseidon2_hash([bytes_to_field(_left_pad32(document_number)), event_id, issuer_root])


def compute_address_binding(nullifier: int, bound_address: int) -> int:
    """Poseidon2(nullifier, bound_address)"""
    return poseidon2_hash([nullifier, bound_address])


def revealed_jurisdiction(credential: ProverCredential, options: ProofOptions, offset: int = JURISDICTION_CODE_OFFSET) -> bytes:
    """The 2-byte jurisdiction code, or zeros when it is not being proven."""
    if not options.prove_jurisdiction:
        return b"\x00\x00"
    return bytes(credential.jurisdiction_claim_bytes[offset : offset + 2]).ljust(2, b"\x00")


def build_witness(
    credential: ProverCredential,
    options: ProofOptions,
    config: Optional[WitnessConfig] = None,
) -> Witness:
    """
    Build the full circuit witness.

    Args:
        credential: Fixed-width credential buffers
        options: Event, bound address and reveal flags
        config: Witness policy

    Returns:
        Witness ready for the proving engine
    """
    config = config or WitnessConfig()
    timestamp = options.timestamp
    if timestamp is None:
        timestamp = int(datetime.now(timezone.utc).timestamp())

    issuer_root = compute_issuer_root(credential.issuer_key_x, credential.issuer_key_y)
    event_id = hash_event_id(options.event_id)
    nullifier = compute_nullifier(credential.document_number, event_id, issuer_root)
    bound_address = address_to_field(options.bound_address)

    witness = Witness(
        credential=credential,
        issuer_root=issuer_root,
        nullifier=nullifier,
        event_id=event_id,
        bound_address=bound_address,
        address_binding=compute_address_binding(nullifier, bound_address),
        proof_timestamp=timestamp,
        prove_age_over_21=options.prove_age_over_21,
        prove_age_over_18=options.prove_age_over_18,
        prove_jurisdiction=options.prove_jurisdiction,
        revealed_jurisdiction=revealed_jurisdiction(credential, options, config.jurisdiction_offset),
    )
    logger.debug(f"Built witness for event {options.event_id}")
    return witness
