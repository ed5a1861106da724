"""P-256 key management for HPKE sessions."""

from typing import Tuple

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from .types import N_PK, N_SK


CURVE = ec.SECP256R1()


def generate_ephemeral_keypair() -> Tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    """
    Generate a random ephemeral P-256 key pair for one credential request.

    Returns:
        Tuple of (private_key, public_key)
    """
    private_key = ec.generate_private_key(CURVE)
    return private_key, private_key.public_key()


def private_key_from_scalar(scalar: bytes) -> ec.EllipticCurvePrivateKey:
    """Create a P-256 private key from its 32-byte big-endian scalar."""
    if len(scalar) != N_SK:
        raise ValueError(f"Private key must be {N_SK} bytes, got {len(scalar)}")
    return ec.derive_private_key(int.from_bytes(scalar, "big"), CURVE)


def p256_ecdh(private_key: ec.EllipticCurvePrivateKey, public_key: ec.EllipticCurvePublicKey) -> bytes:
    """
    Perform P-256 ECDH.

    Returns:
        32-byte x-coordinate of the shared point
    """
    return private_key.exchange(ec.ECDH(), public_key)


def public_key_to_bytes(public_key: ec.EllipticCurvePublicKey) -> bytes:
    """Encode a P-256 public key as a 65-byte uncompressed point."""
    return public_key.public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)


def public_key_from_bytes(data: bytes) -> ec.EllipticCurvePublicKey:
    """
    Decode a 65-byte uncompressed P-256 point.

    Raises:
        ValueError: If the point is malformed or not on the curve
    """
    if len(data) != N_PK or data[0] != 0x04:
        raise ValueError(f"Expected {N_PK}-byte uncompressed point, got {len(data)} bytes")
    return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, data)
