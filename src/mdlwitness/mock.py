"""
Mock issuer and wallet for exercising the pipeline without a real mDL.

`MockIssuer` produces signed DeviceResponse bytes (deterministic CBOR
claims, SHA-256 digests, an ECDSA P-256 signature over the zero-padded MSO
and a self-signed issuer certificate). `encrypt_device_response` plays the
wallet's side of HPKE against a verifier session.
"""

import hashlib
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import cbor2
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.oid import NameOID

from .envelope import EncryptedCredentialDocument
from .hpke import aead_seal, compute_nonce, encap, key_schedule
from .parse import document_number_bytes
from .transcript import build_origin_info, build_session_transcript
from .types import (
    AGE_CLAIM_SIZE,
    AGE_OVER_18,
    AGE_OVER_21,
    COORDINATE_SIZE,
    DOCUMENT_NUMBER,
    ISSUING_JURISDICTION,
    JURISDICTION_CLAIM_SIZE,
    MDL_DOC_TYPE,
    MDL_NAMESPACE,
    SIGNATURE_SIZE,
    SIGNED_DOCUMENT_SIZE,
    X5CHAIN_LABEL,
)
from .witness import ProverCredential, pad_to_size

COSE_ALG_ES256 = -7


def encode_issuer_signed_item(
    digest_id: int,
    identifier: str,
    value: Any,
    random: Optional[bytes] = None,
) -> bytes:
    """Encode an IssuerSignedItem with deterministic (canonical) CBOR."""
    return cbor2.dumps(
        {
            "digestID": digest_id,
            "random": random if random is not None else os.urandom(32),
            "elementIdentifier": identifier,
            "elementValue": value,
        },
        canonical=True,
    )


def _iso(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class MockClaims:
    """Claim values for a generated credential."""
    age_over_21: bool = True
    age_over_18: bool = True
    jurisdiction: str = "CA"
    document_number: str = "D1234567"
    valid_until: datetime = field(default_factory=lambda: datetime(2030, 1, 1, tzinfo=timezone.utc))
    extra: Dict[str, Any] = field(default_factory=dict)


class MockIssuer:
    """Issuing authority with a P-256 key and self-signed certificate."""

    def __init__(self, private_key: Optional[ec.EllipticCurvePrivateKey] = None) -> None:
        self.private_key = private_key or ec.generate_private_key(ec.SECP256R1())
        self.certificate = self._self_signed_certificate()

    def _self_signed_certificate(self) -> bytes:
        name = x509.Name(
            [
                x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
                x509.NameAttribute(NameOID.COMMON_NAME, "Test IACA"),
            ]
        )
        now = datetime.now(timezone.utc)
        certificate = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(self.private_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(days=1))
            .not_valid_after(now + timedelta(days=3650))
            .sign(self.private_key, hashes.SHA256())
        )
        return certificate.public_bytes(Encoding.DER)

    @property
    def public_key_x(self) -> bytes:
        return self.private_key.public_key().public_numbers().x.to_bytes(COORDINATE_SIZE, "big")

    @property
    def public_key_y(self) -> bytes:
        return self.private_key.public_key().public_numbers().y.to_bytes(COORDINATE_SIZE, "big")

    def sign_mso(self, mso_bytes: bytes) -> bytes:
        """ECDSA P-256 over SHA-256 of the MSO padded to the circuit width; raw r || s."""
        padded = pad_to_size(mso_bytes, SIGNED_DOCUMENT_SIZE)
        der = self.private_key.sign(padded, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        return r.to_bytes(32, "big") + s.to_bytes(32, "big")

    def issue_items(self, claims: MockClaims) -> List[bytes]:
        values = {
            AGE_OVER_21: claims.age_over_21,
            ISSUING_JURISDICTION: claims.jurisdiction,
            AGE_OVER_18: claims.age_over_18,
            DOCUMENT_NUMBER: claims.document_number,
        }
        values.update(claims.extra)
        return [
            encode_issuer_signed_item(digest_id, identifier, value)
            for digest_id, (identifier, value) in enumerate(values.items())
        ]

    def build_mso(self, items: List[bytes], claims: MockClaims, digests: Optional[Dict[int, bytes]] = None) -> bytes:
        if digests is None:
            digests = {i: hashlib.sha256(item).digest() for i, item in enumerate(items)}
        signed = datetime(2026, 1, 1, tzinfo=timezone.utc)
        return cbor2.dumps(
            {
                "digestAlgorithm": "SHA-256",
                "docType": MDL_DOC_TYPE,
                "valueDigests": {MDL_NAMESPACE: digests},
                "validityInfo": {
                    "signed": _iso(signed),
                    "validFrom": _iso(signed),
                    "validUntil": _iso(claims.valid_until),
                },
            }
        )

    def issuer_auth(self, mso_bytes: bytes, x5chain_protected: bool = True) -> list:
        """COSE_Sign1 = [protected, unprotected, payload, signature]"""
        protected = {1: COSE_ALG_ES256}
        unprotected = {}
        if x5chain_protected:
            protected[X5CHAIN_LABEL] = [self.certificate]
        else:
            unprotected[X5CHAIN_LABEL] = [self.certificate]
        return [cbor2.dumps(protected), unprotected, mso_bytes, self.sign_mso(mso_bytes)]

    def device_response(
        self,
        claims: Optional[MockClaims] = None,
        x5chain_protected: bool = True,
        digests: Optional[Dict[int, bytes]] = None,
    ) -> bytes:
        """
        Build a DeviceResponse holding one signed mDL document.

        Args:
            claims: Claim values (defaults to a California credential)
            x5chain_protected: Put the certificate in the protected header
            digests: Override the MSO digests (for mismatch scenarios)

        Returns:
            DeviceResponse CBOR bytes
        """
        claims = claims or MockClaims()
        items = self.issue_items(claims)
        mso_bytes = self.build_mso(items, claims, digests)
        document = {
            "docType": MDL_DOC_TYPE,
            "issuerSigned": {
                "nameSpaces": {MDL_NAMESPACE: [cbor2.CBORTag(24, item) for item in items]},
                "issuerAuth": self.issuer_auth(mso_bytes, x5chain_protected),
            },
        }
        return cbor2.dumps({"version": "1.0", "documents": [document], "status": 0})


def encrypt_device_response(
    plaintext: bytes,
    public_key: bytes,
    nonce: bytes,
    origin: str,
    version: str = "1.0",
) -> EncryptedCredentialDocument:
    """
    Encrypt a DeviceResponse to a verifier session, as a wallet would.

    Args:
        plaintext: DeviceResponse bytes
        public_key: Verifier session public key (from EncryptionInfo)
        nonce: Verifier session nonce
        origin: Origin the wallet observed

    Returns:
        EncryptedCredentialDocument for the verifier
    """
    shared_secret, enc = encap(public_key)
    schedule = key_schedule(shared_secret)
    aad = build_session_transcript(nonce, origin, enc)
    ciphertext = aead_seal(schedule.key, compute_nonce(schedule.base_nonce, 0), aad, plaintext)

    return EncryptedCredentialDocument(
        protocol_version=version,
        encapsulated_key=enc,
        origin_info_bytes=build_origin_info(origin),
        ciphertext=ciphertext,
    )


def create_mock_credential(
    age_over_21: bool = True,
    age_over_18: bool = True,
    jurisdiction: str = "CA",
    document_number: str = "D1234567",
    valid_until: Optional[datetime] = None,
) -> ProverCredential:
    """
    Create fixed-width prover buffers with random keys and signature.

    For prover integration tests when no wallet is available; the
    signature does not verify.
    """
    claims = MockClaims(
        age_over_21=age_over_21,
        age_over_18=age_over_18,
        jurisdiction=jurisdiction,
        document_number=document_number,
    )
    if valid_until is not None:
        claims.valid_until = valid_until

    age_over_21_item = encode_issuer_signed_item(0, AGE_OVER_21, age_over_21)
    jurisdiction_item = encode_issuer_signed_item(1, ISSUING_JURISDICTION, jurisdiction)
    age_over_18_item = encode_issuer_signed_item(2, AGE_OVER_18, age_over_18)

    mso = cbor2.dumps(
        {
            "digestAlgorithm": "SHA-256",
            "docType": MDL_DOC_TYPE,
            "valueDigests": {MDL_NAMESPACE: {i: os.urandom(32) for i in range(3)}},
            "validityInfo": {
                "signed": _iso(datetime.now(timezone.utc)),
                "validFrom": _iso(datetime.now(timezone.utc)),
                "validUntil": _iso(claims.valid_until),
            },
        }
    )

    return ProverCredential(
        signed_document_bytes=pad_to_size(mso, SIGNED_DOCUMENT_SIZE),
        signature=os.urandom(SIGNATURE_SIZE),
        age_over_21_claim_bytes=pad_to_size(age_over_21_item, AGE_CLAIM_SIZE),
        age_over_18_claim_bytes=pad_to_size(age_over_18_item, AGE_CLAIM_SIZE),
        jurisdiction_claim_bytes=pad_to_size(jurisdiction_item, JURISDICTION_CLAIM_SIZE),
        document_number=document_number_bytes(document_number),
        issuer_key_x=os.urandom(COORDINATE_SIZE),
        issuer_key_y=os.urandom(COORDINATE_SIZE),
    )
