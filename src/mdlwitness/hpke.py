"""
HPKE base mode for ISO 18013-7 mDL responses.

DHKEM(P-256, HKDF-SHA256) + HKDF-SHA256 + AES-128-GCM (RFC 9180). Every
function here is stateless; session bookkeeping lives in `session.py`.
"""

from dataclasses import dataclass
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .kdf import HPKE_SUITE_ID, KEM_SUITE_ID, labeled_expand, labeled_extract
from .keys import generate_ephemeral_keypair, p256_ecdh, public_key_from_bytes, public_key_to_bytes
from .types import (
    HPKE_MODE_BASE,
    N_K,
    N_N,
    N_SECRET,
    DecapsulationError,
    DecryptionFailedError,
)


@dataclass(frozen=True)
class KeySchedule:
    """AEAD key material for one HPKE context."""
    key: bytes  # 16 bytes
    base_nonce: bytes  # 12 bytes


def _extract_and_expand(dh: bytes, kem_context: bytes) -> bytes:
    eae_prk = labeled_extract(b"", "eae_prk", dh, suite_id=KEM_SUITE_ID)
    return labeled_expand(eae_prk, "shared_secret", kem_context, N_SECRET, suite_id=KEM_SUITE_ID)


def decap(enc: bytes, sk_r: ec.EllipticCurvePrivateKey, pk_r: bytes) -> bytes:
    """
    Recover the KEM shared secret as the receiver.

    Args:
        enc: Sender's ephemeral public key (65-byte uncompressed point)
        sk_r: Receiver's private key
        pk_r: Receiver's public key bytes

    Returns:
        32-byte shared secret

    Raises:
        DecapsulationError: If enc is malformed or off-curve
    """
    try:
        pk_e = public_key_from_bytes(enc)
        dh = p256_ecdh(sk_r, pk_e)
    except ValueError as e:
        raise DecapsulationError(f"Invalid encapsulated key: {e}") from e

    return _extract_and_expand(dh, enc + pk_r)


def encap(pk_r: bytes) -> Tuple[bytes, bytes]:
    """
    Generate a shared secret for a receiver (sender side).

    Args:
        pk_r: Receiver's public key bytes

    Returns:
        Tuple of (shared_secret, enc)
    """
    receiver_public = public_key_from_bytes(pk_r)
    ephemeral_private, ephemeral_public = generate_ephemeral_keypair()

    dh = p256_ecdh(ephemeral_private, receiver_public)
    enc = public_key_to_bytes(ephemeral_public)

    return _extract_and_expand(dh, enc + pk_r), enc


def key_schedule(shared_secret: bytes, info: bytes = b"") -> KeySchedule:
    """
    KeySchedule in base mode (no PSK).

    Args:
        shared_secret: Output of decap/encap
        info: Application info (empty for ISO 18013-7)

    Returns:
        KeySchedule with the AEAD key and base nonce
    """
    psk_id_hash = labeled_extract(b"", "psk_id_hash", b"", suite_id=HPKE_SUITE_ID)
    info_hash = labeled_extract(b"", "info_hash", info, suite_id=HPKE_SUITE_ID)
    ks_context = bytes([HPKE_MODE_BASE]) + psk_id_hash + info_hash

    secret = labeled_extract(shared_secret, "secret", b"", suite_id=HPKE_SUITE_ID)

    key = labeled_expand(secret, "key", ks_context, N_K, suite_id=HPKE_SUITE_ID)
    base_nonce = labeled_expand(secret, "base_nonce", ks_context, N_N, suite_id=HPKE_SUITE_ID)
    return KeySchedule(key=key, base_nonce=base_nonce)


def compute_nonce(base_nonce: bytes, seq: int) -> bytes:
    """base_nonce XOR I2OSP(seq, Nn)"""
    seq_bytes = seq.to_bytes(len(base_nonce), byteorder="big")
    return bytes(a ^ b for a, b in zip(base_nonce, seq_bytes))


def aead_open(key: bytes, nonce: bytes, aad: bytes, ciphertext: bytes) -> bytes:
    """
    AES-128-GCM authenticated decryption.

    Raises:
        DecryptionFailedError: If the tag does not verify
    """
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, aad)
    except InvalidTag as e:
        raise DecryptionFailedError("AEAD authentication failed") from e


def aead_seal(key: bytes, nonce: bytes, aad: bytes, plaintext: bytes) -> bytes:
    """AES-128-GCM encryption; the 16-byte tag is appended."""
    return AESGCM(key).encrypt(nonce, plaintext, aad)


def open_base(
    enc: bytes,
    sk_r: ec.EllipticCurvePrivateKey,
    pk_r: bytes,
    aad: bytes,
    ciphertext: bytes,
    info: bytes = b"",
) -> bytes:
    """
    Single-shot base-mode open of the first message (sequence number 0).

    Returns:
        Decrypted plaintext

    Raises:
        DecapsulationError: If enc is unusable
        DecryptionFailedError: If authentication fails
    """
    shared_secret = decap(enc, sk_r, pk_r)
    schedule = key_schedule(shared_secret, info)
    return aead_open(schedule.key, compute_nonce(schedule.base_nonce, 0), aad, ciphertext)


def seal_base(pk_r: bytes, aad: bytes, plaintext: bytes, info: bytes = b"") -> Tuple[bytes, bytes]:
    """
    Single-shot base-mode seal (sequence number 0).

    Returns:
        Tuple of (enc, ciphertext)
    """
    shared_secret, enc = encap(pk_r)
    schedule = key_schedule(shared_secret, info)
    return enc, aead_seal(schedule.key, compute_nonce(schedule.base_nonce, 0), aad, plaintext)
