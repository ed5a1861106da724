"""
Issuer public-key extraction from the signed document's x5chain certificate.

The key is located by structure: the certificate is loaded with
`cryptography.x509`, and when that loader refuses the encoding `asn1crypto`
reads TBSCertificate down to SubjectPublicKeyInfo (a bare SPKI is accepted
too). No chain-of-trust validation happens here.
"""

from dataclasses import dataclass

from asn1crypto import keys as asn1_keys
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec

from .types import COORDINATE_SIZE, ParseError


@dataclass(frozen=True)
class IssuerPublicKey:
    """P-256 issuer key as big-endian affine coordinates."""
    x: bytes  # 32 bytes
    y: bytes  # 32 bytes


def _point_to_key(point: bytes) -> IssuerPublicKey:
    if len(point) != 1 + 2 * COORDINATE_SIZE or point[0] != 0x04:
        raise ParseError("Issuer key is not an uncompressed P-256 point")

    x = point[1 : 1 + COORDINATE_SIZE]
    y = point[1 + COORDINATE_SIZE :]
    if not any(x) or not any(y):
        raise ParseError("Issuer key has a zero coordinate")
    return IssuerPublicKey(x=x, y=y)


def load_public_key_info(der: bytes) -> asn1_keys.PublicKeyInfo:
    """
    Locate SubjectPublicKeyInfo in a DER certificate, or load a bare SPKI.

    Raises:
        ParseError: If the input is neither structure
    """
    try:
        certificate = asn1_x509.Certificate.load(der, strict=True)
        return certificate["tbs_certificate"]["subject_public_key_info"]
    except (ValueError, TypeError, KeyError) as certificate_error:
        try:
            return asn1_keys.PublicKeyInfo.load(der, strict=True)
        except (ValueError, TypeError, KeyError) as e:
            raise ParseError(
                f"Not a DER certificate or SubjectPublicKeyInfo: {certificate_error}"
            ) from e


def parse_subject_public_key_info(info: asn1_keys.PublicKeyInfo) -> IssuerPublicKey:
    """
    Read a P-256 point from SubjectPublicKeyInfo.

        SubjectPublicKeyInfo ::= SEQUENCE {
            algorithm         AlgorithmIdentifier,
            subjectPublicKey  BIT STRING }

    Raises:
        ParseError: If the key is not an uncompressed P-256 point
    """
    try:
        if info.algorithm != "ec":
            raise ParseError(f"Issuer key is not an EC public key ({info.algorithm})")
        if info.curve != ("named", "secp256r1"):
            raise ParseError(f"Issuer key is not on P-256 ({info.curve[1]})")
        contents = info["public_key"].contents
    except (ValueError, TypeError, KeyError) as e:
        raise ParseError(f"Malformed SubjectPublicKeyInfo: {e}") from e

    if not contents or contents[0] != 0:
        raise ParseError("Issuer key BIT STRING has unused bits")
    return _point_to_key(bytes(contents[1:]))


def public_key_from_der(der: bytes) -> IssuerPublicKey:
    """Structural fallback: P-256 key from a DER certificate or bare SPKI."""
    return parse_subject_public_key_info(load_public_key_info(der))


def extract_public_key_from_certificate(cert_der: bytes) -> IssuerPublicKey:
    """
    Extract the P-256 public key from a DER X.509 certificate.

    Args:
        cert_der: DER-encoded certificate

    Returns:
        IssuerPublicKey with 32-byte coordinates

    Raises:
        ParseError: If no P-256 key can be located
    """
    try:
        certificate = x509.load_der_x509_certificate(cert_der)
    except ValueError:
        return public_key_from_der(cert_der)

    try:
        public_key = certificate.public_key()
    except (ValueError, UnsupportedAlgorithm) as e:
        raise ParseError(f"Unsupported issuer key: {e}") from e

    if not isinstance(public_key, ec.EllipticCurvePublicKey) or not isinstance(
        public_key.curve, ec.SECP256R1
    ):
        raise ParseError("Issuer certificate key is not P-256")

    numbers = public_key.public_numbers()
    return IssuerPublicKey(
        x=numbers.x.to_bytes(COORDINATE_SIZE, "big"),
        y=numbers.y.to_bytes(COORDINATE_SIZE, "big"),
    )
