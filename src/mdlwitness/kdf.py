"""RFC 9180 labeled key derivation over HKDF-SHA256."""

import struct

from cryptography.hazmat.primitives import hmac
from cryptography.hazmat.primitives.hashes import SHA256
from cryptography.hazmat.primitives.kdf.hkdf import HKDFExpand

from .types import AEAD_ID, HPKE_VERSION_LABEL, KDF_ID, KEM_ID


def build_suite_id(kem_id: int = KEM_ID, kdf_id: int = KDF_ID, aead_id: int = AEAD_ID) -> bytes:
    """suite_id = "HPKE" || I2OSP(kem_id, 2) || I2OSP(kdf_id, 2) || I2OSP(aead_id, 2)"""
    return b"HPKE" + struct.pack(">HHH", kem_id, kdf_id, aead_id)


def build_kem_suite_id(kem_id: int = KEM_ID) -> bytes:
    """suite_id = "KEM" || I2OSP(kem_id, 2)"""
    return b"KEM" + struct.pack(">H", kem_id)


HPKE_SUITE_ID = build_suite_id()
KEM_SUITE_ID = build_kem_suite_id()


def _to_bytes(label) -> bytes:
    return label.encode("ascii") if isinstance(label, str) else label


def hkdf_extract(salt: bytes, ikm: bytes) -> bytes:
    """
    HKDF-Extract with SHA-256.

    An empty salt is replaced by a string of HashLen zeros (RFC 5869).
    """
    h = hmac.HMAC(salt or bytes(SHA256.digest_size), SHA256())
    h.update(ikm)
    return h.finalize()


def labeled_extract(salt: bytes, label, ikm: bytes, suite_id: bytes = HPKE_SUITE_ID) -> bytes:
    """
    LabeledExtract(salt, label, ikm).

    Args:
        salt: Extract salt (may be empty)
        label: Protocol label, e.g. "eae_prk"
        ikm: Input keying material
        suite_id: HPKE or KEM suite identifier

    Returns:
        32-byte pseudorandom key
    """
    labeled_ikm = HPKE_VERSION_LABEL + suite_id + _to_bytes(label) + ikm
    return hkdf_extract(salt, labeled_ikm)


def labeled_expand(prk: bytes, label, info: bytes, length: int, suite_id: bytes = HPKE_SUITE_ID) -> bytes:
    """
    LabeledExpand(prk, label, info, L).

    Args:
        prk: Pseudorandom key from labeled_extract
        label: Protocol label, e.g. "shared_secret"
        info: Context bytes
        length: Output length in bytes
        suite_id: HPKE or KEM suite identifier

    Returns:
        `length` bytes of output keying material
    """
    if length == 0:
        return b""
    if length > 0xFFFF:
        raise ValueError(f"Expand length too large: {length}")

    labeled_info = struct.pack(">H", length) + HPKE_VERSION_LABEL + suite_id + _to_bytes(label) + info
    return HKDFExpand(algorithm=SHA256(), length=length, info=labeled_info).derive(prk)
