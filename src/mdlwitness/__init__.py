"""
mdlwitness - mDL presentation decryption and witness assembly

Python implementation of the ISO 18013-7 verifier flow using HPKE
(DHKEM(P-256) + HKDF-SHA256 + AES-128-GCM) and Poseidon2 witness derivation.
"""

from .kdf import labeled_extract, labeled_expand, build_suite_id, build_kem_suite_id
from .hpke import decap, encap, key_schedule, aead_open, aead_seal, open_base, seal_base, KeySchedule
from .transcript import (
    build_session_transcript,
    build_encryption_info,
    build_device_request,
)
from .envelope import (
    EncryptedCredentialDocument,
    encode_credential_document,
    decode_credential_document,
)
from .session import HPKESession
from .certificate import IssuerPublicKey, extract_public_key_from_certificate
from .parse import (
    ParsedClaim,
    ParsedCredential,
    ParsedSignedDocument,
    RawCredentialResponse,
    parse_device_response,
    parse_credential,
    parse_decrypted_response,
)
from .poseidon2 import poseidon2_hash
from .witness import (
    WitnessConfig,
    ProofOptions,
    ProverCredential,
    PublicOutputs,
    Witness,
    pad_to_size,
    to_prover_credential,
    hash_event_id,
    address_to_field,
    compute_issuer_root,
    compute_nullifier,
    compute_address_binding,
    build_witness,
)
from .mock import create_mock_credential
from .client import (
    VerifierConfig,
    CredentialRequest,
    CredentialVerifier,
    GeneratedProof,
    ProvingEngine,
)
from .types import (
    ErrorKind,
    CredentialError,
    UnsupportedError,
    UserDeclinedError,
    NoDataError,
    DecryptionFailedError,
    DecapsulationError,
    ParseError,
    InvalidClaimError,
    StaleCredentialError,
    SessionConsumedError,
)

__version__ = "0.1.0"

__all__ = [
    # KDF
    "labeled_extract",
    "labeled_expand",
    "build_suite_id",
    "build_kem_suite_id",
    # HPKE
    "decap",
    "encap",
    "key_schedule",
    "aead_open",
    "aead_seal",
    "open_base",
    "seal_base",
    "KeySchedule",
    # Transcript
    "build_session_transcript",
    "build_encryption_info",
    "build_device_request",
    # Envelope
    "EncryptedCredentialDocument",
    "encode_credential_document",
    "decode_credential_document",
    # Session
    "HPKESession",
    # Parsing
    "IssuerPublicKey",
    "extract_public_key_from_certificate",
    "ParsedClaim",
    "ParsedCredential",
    "ParsedSignedDocument",
    "RawCredentialResponse",
    "parse_device_response",
    "parse_credential",
    "parse_decrypted_response",
    # Witness
    "poseidon2_hash",
    "WitnessConfig",
    "ProofOptions",
    "ProverCredential",
    "PublicOutputs",
    "Witness",
    "pad_to_size",
    "to_prover_credential",
    "hash_event_id",
    "address_to_field",
    "compute_issuer_root",
    "compute_nullifier",
    "compute_address_binding",
    "build_witness",
    "create_mock_credential",
    # Client
    "VerifierConfig",
    "CredentialRequest",
    "CredentialVerifier",
    "GeneratedProof",
    "ProvingEngine",
    # Errors
    "ErrorKind",
    "CredentialError",
    "UnsupportedError",
    "UserDeclinedError",
    "NoDataError",
    "DecryptionFailedError",
    "DecapsulationError",
    "ParseError",
    "InvalidClaimError",
    "StaleCredentialError",
    "SessionConsumedError",
]
