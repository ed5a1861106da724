"""
Request-side CBOR structures for ISO 18013-7 browser presentation.

The session transcript produced here is the HPKE associated data. It must
match the wallet's copy byte for byte; a mismatch only shows up as an AEAD
failure when the response is opened.
"""

from typing import Iterable, List

import cbor2

from .types import (
    BROWSER_HANDOVER_TAG,
    CLAIM_TYPES,
    DEVICE_REQUEST_VERSION,
    DOCUMENT_NUMBER,
    EXPIRY_DATE,
    MDL_DOC_TYPE,
    MDL_NAMESPACE,
    InvalidClaimError,
)


def build_origin_info(origin: str) -> bytes:
    """OriginInfoBytes = cbor({"origin": origin})"""
    return cbor2.dumps({"origin": origin})


def build_requester_identity() -> bytes:
    """RequesterIdentity is an empty map for unauthenticated readers."""
    return cbor2.dumps({})


def build_browser_handover(nonce: bytes, origin: str, encapsulated_key: bytes) -> List:
    """BrowserHandover = [tag, Nonce, OriginInfoBytes, RequesterIdentity, pkEm]"""
    return [
        BROWSER_HANDOVER_TAG,
        nonce,
        build_origin_info(origin),
        build_requester_identity(),
        encapsulated_key,
    ]


def build_session_transcript(nonce: bytes, origin: str, encapsulated_key: bytes) -> bytes:
    """
    Build the CBOR SessionTranscript used as AEAD associated data.

    SessionTranscript = [DeviceEngagementBytes, EReaderKeyBytes, Handover],
    with both engagement fields null for browser presentation.

    Args:
        nonce: The request's freshness nonce
        origin: Origin of the requesting website
        encapsulated_key: Wallet's ephemeral public key (pkEm)

    Returns:
        Encoded transcript bytes
    """
    return cbor2.dumps([None, None, build_browser_handover(nonce, origin, encapsulated_key)])


def build_encryption_info(public_key: bytes, nonce: bytes) -> bytes:
    """EncryptionInfo sent to the wallet alongside the device request."""
    return cbor2.dumps({"publicKey": public_key, "nonce": nonce})


def build_name_spaces(claims: Iterable[str]) -> dict:
    """
    Map requested claims to data elements with intent-to-retain = False.

    document_number (nullifier input) and expiry_date (validity check) are
    always requested.

    Raises:
        InvalidClaimError: If a claim name is unknown
    """
    elements = {}
    for claim in claims:
        if claim not in CLAIM_TYPES:
            raise InvalidClaimError(f"Unknown claim type: {claim}")
        elements[claim] = False

    elements.setdefault(DOCUMENT_NUMBER, False)
    elements.setdefault(EXPIRY_DATE, False)
    return elements


def build_device_request(claims: Iterable[str]) -> bytes:
    """
    Build a CBOR DeviceRequest holding one ItemsRequest for the mDL namespace.

    Args:
        claims: Claim identifiers to request

    Returns:
        Encoded DeviceRequest
    """
    items_request = cbor2.dumps(
        {
            "docType": MDL_DOC_TYPE,
            "nameSpaces": {MDL_NAMESPACE: build_name_spaces(claims)},
        }
    )

    return cbor2.dumps(
        {
            "version": DEVICE_REQUEST_VERSION,
            "docRequests": [{"itemsRequest": cbor2.CBORTag(24, items_request)}],
        }
    )
