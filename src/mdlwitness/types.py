"""Type definitions and protocol constants for mdlwitness."""

from enum import Enum
from typing import Optional


# HPKE cipher suite: DHKEM(P-256, HKDF-SHA256), HKDF-SHA256, AES-128-GCM
HPKE_MODE_BASE = 0x00
KEM_ID = 0x0010
KDF_ID = 0x0001
AEAD_ID = 0x0001

N_SECRET = 32  # HKDF-SHA256 output size
N_ENC = 65  # P-256 uncompressed point
N_PK = 65
N_SK = 32
N_K = 16  # AES-128 key size
N_N = 12  # AES-GCM nonce size
N_T = 16  # AES-GCM tag size

HPKE_VERSION_LABEL = b"HPKE-v1"

# Request freshness nonce
NONCE_SIZE = 12

# ISO 18013-5 / 18013-7 identifiers
MDL_DOC_TYPE = "org.iso.18013.5.1.mDL"
MDL_NAMESPACE = "org.iso.18013.5.1"
BROWSER_HANDOVER_TAG = "BrowserHandoverv1"
DEVICE_REQUEST_VERSION = "1.0"
X5CHAIN_LABEL = 33

# Claim identifiers
AGE_OVER_21 = "age_over_21"
AGE_OVER_18 = "age_over_18"
ISSUING_JURISDICTION = "issuing_jurisdiction"
DOCUMENT_NUMBER = "document_number"
EXPIRY_DATE = "expiry_date"

CLAIM_TYPES = (
    AGE_OVER_21,
    AGE_OVER_18,
    ISSUING_JURISDICTION,
    DOCUMENT_NUMBER,
    EXPIRY_DATE,
)

# Fixed witness widths, shared with the proving circuit
SIGNED_DOCUMENT_SIZE = 512
SIGNATURE_SIZE = 64
AGE_CLAIM_SIZE = 96
JURISDICTION_CLAIM_SIZE = 107
DOCUMENT_NUMBER_SIZE = 32
COORDINATE_SIZE = 32

# Offset of the 2-byte jurisdiction code inside the jurisdiction claim bytes
JURISDICTION_CODE_OFFSET = 66

# BN254 scalar field modulus
BN254_MODULUS = 21888242871839275222246405745257275088548364400416034343698204186575808495617


class ErrorKind(Enum):
    """Failure categories surfaced to callers."""
    UNSUPPORTED = "unsupported"
    USER_DECLINED = "user_declined"
    NO_DATA = "no_data"
    DECRYPTION_FAILED = "decryption_failed"
    PARSE_FAILED = "parse_failed"
    STALE = "stale"


# Kinds where asking the user to present the credential again can help
_USER_RETRYABLE = frozenset(
    {
        ErrorKind.USER_DECLINED,
        ErrorKind.NO_DATA,
        ErrorKind.DECRYPTION_FAILED,
        ErrorKind.STALE,
    }
)


# Exception types
class CredentialError(Exception):
    """Base exception for credential pipeline errors."""

    kind = ErrorKind.PARSE_FAILED

    def __init__(self, message: str, kind: Optional[ErrorKind] = None) -> None:
        if kind is not None:
            self.kind = kind
        super().__init__(message)

    @property
    def is_retryable_by_user(self) -> bool:
        """Whether a fresh request (and a new session) may succeed."""
        return self.kind in _USER_RETRYABLE


class UnsupportedError(CredentialError):
    """The protocol cannot run in this environment."""
    kind = ErrorKind.UNSUPPORTED


class UserDeclinedError(CredentialError):
    """The user cancelled the request upstream."""
    kind = ErrorKind.USER_DECLINED


class NoDataError(CredentialError):
    """The wallet returned nothing to decrypt."""
    kind = ErrorKind.NO_DATA


class DecryptionFailedError(CredentialError):
    """AEAD authentication failed (tampering, wrong key or transcript mismatch)."""
    kind = ErrorKind.DECRYPTION_FAILED


class DecapsulationError(DecryptionFailedError):
    """The encapsulated key is malformed or not on the curve."""
    pass


class ParseError(CredentialError):
    """Decrypted data is malformed or incomplete."""
    kind = ErrorKind.PARSE_FAILED


class InvalidClaimError(ParseError):
    """A required claim is missing or unknown."""
    pass


class StaleCredentialError(CredentialError):
    """The signed document's validity window has ended."""
    kind = ErrorKind.STALE


class SessionConsumedError(CredentialError):
    """An HPKE session was used after it was opened or discarded."""
    kind = ErrorKind.UNSUPPORTED
