"""Encrypted credential document received from the wallet transport."""

import base64
from dataclasses import dataclass
from typing import Any, Mapping, Union

import cbor2

from .types import N_ENC, N_T, NoDataError, ParseError


@dataclass(frozen=True)
class EncryptedCredentialDocument:
    """HPKE-encrypted DeviceResponse."""
    protocol_version: str
    encapsulated_key: bytes  # 65 bytes (pkEm)
    origin_info_bytes: bytes
    ciphertext: bytes  # DeviceResponse + 16-byte tag

    @classmethod
    def from_payload(cls, payload: Union[bytes, Mapping[str, Any], None]) -> "EncryptedCredentialDocument":
        """Decode a wallet payload (CBOR bytes or mapping)."""
        return decode_credential_document(payload)

    def to_bytes(self) -> bytes:
        return encode_credential_document(self)


def _as_bytes(value: Any, field: str) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        # Browser transports hand over base64url strings
        try:
            return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))
        except ValueError as e:
            raise ParseError(f"Invalid base64 in {field}: {e}") from e
    raise ParseError(f"Expected bytes for {field}, got {type(value).__name__}")


def encode_credential_document(document: EncryptedCredentialDocument) -> bytes:
    """
    Encode a document in the wallet's response shape.

    Format:
        {
            "version": tstr,
            "encryptionParameters": {
                "version": tstr,
                "EDeviceKey": bstr,
                "originInfoBytes": bstr,
            },
            "data": bstr,
        }
    """
    return cbor2.dumps(
        {
            "version": document.protocol_version,
            "encryptionParameters": {
                "version": document.protocol_version,
                "EDeviceKey": document.encapsulated_key,
                "originInfoBytes": document.origin_info_bytes,
            },
            "data": document.ciphertext,
        }
    )


def decode_credential_document(payload: Union[bytes, Mapping[str, Any], None]) -> EncryptedCredentialDocument:
    """
    Decode the wallet's response into an EncryptedCredentialDocument.

    Args:
        payload: CBOR bytes or an already-decoded mapping

    Returns:
        Decoded EncryptedCredentialDocument

    Raises:
        NoDataError: If the wallet returned nothing
        ParseError: If the structure is malformed
    """
    if payload is None or (isinstance(payload, (bytes, bytearray)) and len(payload) == 0):
        raise NoDataError("No credential returned from wallet")

    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = cbor2.loads(bytes(payload))
        except cbor2.CBORDecodeError as e:
            raise ParseError(f"Invalid credential response encoding: {e}") from e

    if not isinstance(payload, Mapping):
        raise ParseError("Invalid credential response structure")

    params = payload.get("encryptionParameters")
    data = payload.get("data")
    if not isinstance(params, Mapping) or data is None:
        raise ParseError("Credential response is not encrypted")

    enc = params.get("EDeviceKey", params.get("pkEm"))
    if enc is None:
        raise ParseError("Missing encapsulated key in encryptionParameters")

    document = EncryptedCredentialDocument(
        protocol_version=str(payload.get("version", params.get("version", ""))),
        encapsulated_key=_as_bytes(enc, "EDeviceKey"),
        origin_info_bytes=_as_bytes(params.get("originInfoBytes", b""), "originInfoBytes"),
        ciphertext=_as_bytes(data, "data"),
    )

    if len(document.encapsulated_key) != N_ENC:
        raise ParseError(
            f"Encapsulated key must be {N_ENC} bytes, got {len(document.encapsulated_key)}"
        )
    if len(document.ciphertext) < N_T:
        raise ParseError(f"Ciphertext too short: {len(document.ciphertext)} bytes")

    return document
