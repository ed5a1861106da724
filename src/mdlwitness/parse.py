"""
Fixed-schema parsing of decrypted mDL DeviceResponse data (ISO 18013-5).

This is not a general CBOR schema validator: it walks exactly the
structures the witness needs. Claim bytes are surfaced unaltered because
the prover hashes them and compares against the signed digests.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

import cbor2

from .certificate import IssuerPublicKey, extract_public_key_from_certificate
from .types import (
    DOCUMENT_NUMBER,
    DOCUMENT_NUMBER_SIZE,
    MDL_DOC_TYPE,
    MDL_NAMESPACE,
    X5CHAIN_LABEL,
    InvalidClaimError,
    ParseError,
    StaleCredentialError,
)

logger = logging.getLogger(__name__)

COSE_SIGN1_TAG = 18
ENCODED_CBOR_TAG = 24


@dataclass
class RawIssuerSignedItem:
    """One IssuerSignedItem together with the bytes the issuer hashed."""
    digest_id: int
    random: bytes
    element_identifier: str
    element_value: Any
    raw_bytes: bytes


@dataclass
class RawCredentialResponse:
    """The mDL document extracted from a DeviceResponse."""
    issuer_auth: Any  # COSE_Sign1, encoded or decoded
    items: List[RawIssuerSignedItem]
    status: int = 0


@dataclass
class ValidityInfo:
    """Validity window of the signed document."""
    signed: Optional[datetime] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.valid_until is not None and self.valid_until < now


@dataclass
class ParsedSignedDocument:
    """Mobile Security Object and its issuer signature."""
    bytes: bytes  # payload exactly as signed
    signature: bytes
    validity_info: ValidityInfo
    digest_algorithm: str = "SHA-256"
    doc_type: str = MDL_DOC_TYPE
    value_digests: Dict[str, Dict[int, bytes]] = field(default_factory=dict)


@dataclass
class ParsedClaim:
    """A claim ready for witness assembly."""
    identifier: str
    raw_bytes: bytes  # never re-encoded
    value: Any
    digest_index: int
    random: bytes = b""


@dataclass
class ParsedCredential:
    """Everything the witness builder needs from one credential."""
    signed_document: ParsedSignedDocument
    claims: Dict[str, ParsedClaim]
    issuer_public_key: IssuerPublicKey
    document_number: bytes  # 32 bytes, right-aligned

    def require_claim(self, identifier: str) -> ParsedClaim:
        claim = self.claims.get(identifier)
        if claim is None:
            raise InvalidClaimError(f"{identifier} claim is required but not present")
        return claim


def _loads(data: bytes, what: str) -> Any:
    try:
        return cbor2.loads(data)
    except (cbor2.CBORDecodeError, ValueError) as e:
        raise ParseError(f"Invalid CBOR in {what}: {e}") from e


def _untag(value: Any, tag: int) -> Any:
    if isinstance(value, cbor2.CBORTag) and value.tag == tag:
        return value.value
    return value


def _require_mapping(value: Any, what: str) -> Mapping:
    if not isinstance(value, Mapping):
        raise ParseError(f"No {what} in credential response")
    return value


def parse_issuer_signed_item(item: Any) -> RawIssuerSignedItem:
    """
    Decode one IssuerSignedItemBytes entry.

    The entry is a byte string, optionally wrapped in tag 24; those inner
    bytes are what the issuer digested.
    """
    raw = _untag(item, ENCODED_CBOR_TAG)
    if not isinstance(raw, bytes):
        raise ParseError("IssuerSignedItem is not a byte string")

    decoded = _loads(raw, "IssuerSignedItem")
    if not isinstance(decoded, Mapping):
        raise ParseError("IssuerSignedItem is not a map")

    try:
        digest_id = decoded["digestID"]
        identifier = decoded["elementIdentifier"]
        value = decoded["elementValue"]
    except KeyError as e:
        raise ParseError(f"IssuerSignedItem missing {e.args[0]}") from e

    if not isinstance(digest_id, int) or not isinstance(identifier, str):
        raise ParseError("IssuerSignedItem has invalid digestID or elementIdentifier")

    random = decoded.get("random", b"")
    if not isinstance(random, bytes):
        raise ParseError("IssuerSignedItem random is not a byte string")

    return RawIssuerSignedItem(
        digest_id=digest_id,
        random=random,
        element_identifier=identifier,
        element_value=value,
        raw_bytes=raw,
    )


def parse_device_response(data: bytes) -> RawCredentialResponse:
    """
    Extract the mDL document from decrypted DeviceResponse bytes.

    DeviceResponse = { "documents": [Document], "status": uint }
    Document = { "docType": tstr, "issuerSigned": IssuerSigned, ... }

    Raises:
        ParseError: If the response holds no usable mDL document
    """
    response = _require_mapping(_loads(data, "DeviceResponse"), "DeviceResponse")

    documents = response.get("documents")
    if not isinstance(documents, list) or not documents:
        raise ParseError("No documents in DeviceResponse")

    doc = next(
        (d for d in documents if isinstance(d, Mapping) and d.get("docType") == MDL_DOC_TYPE),
        None,
    )
    if doc is None:
        raise ParseError("No mDL document in DeviceResponse")

    issuer_signed = _require_mapping(doc.get("issuerSigned"), "issuerSigned")
    issuer_auth = issuer_signed.get("issuerAuth")
    if issuer_auth is None:
        raise ParseError("No issuerAuth in issuerSigned")

    name_spaces = _require_mapping(issuer_signed.get("nameSpaces"), "nameSpaces")
    namespace = name_spaces.get(MDL_NAMESPACE)
    if not isinstance(namespace, list):
        raise ParseError(f"No {MDL_NAMESPACE} namespace in response")

    items = [parse_issuer_signed_item(item) for item in namespace]
    logger.debug(f"DeviceResponse holds {len(items)} issuer-signed items")

    return RawCredentialResponse(
        issuer_auth=issuer_auth,
        items=items,
        status=response.get("status", 0),
    )


def _decode_sign1(issuer_auth: Any) -> list:
    if isinstance(issuer_auth, (bytes, bytearray)):
        issuer_auth = _loads(bytes(issuer_auth), "issuerAuth")
    sign1 = _untag(issuer_auth, COSE_SIGN1_TAG)
    if not isinstance(sign1, list) or len(sign1) < 4:
        raise ParseError("Invalid COSE_Sign1 structure")
    return sign1


def _parse_date(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    value = _untag(value, 0)
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            result = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise ParseError(f"Invalid date in validityInfo: {value!r}") from e
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ParseError(f"Epoch date out of range in validityInfo: {value!r}") from e
    else:
        raise ParseError(f"Unsupported date value in validityInfo: {type(value).__name__}")

    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result


def parse_signed_document(issuer_auth: Any) -> ParsedSignedDocument:
    """
    Parse the COSE_Sign1 envelope carrying the Mobile Security Object.

    COSE_Sign1 = [protected, unprotected, payload, signature]

    Args:
        issuer_auth: COSE_Sign1 as bytes or as a decoded array

    Returns:
        ParsedSignedDocument with the payload bytes kept verbatim
    """
    _, _, payload, signature = _decode_sign1(issuer_auth)[:4]

    if isinstance(payload, (bytes, bytearray)):
        mso_bytes = bytes(payload)
        mso = _untag(_loads(mso_bytes, "MSO"), ENCODED_CBOR_TAG)
        if isinstance(mso, bytes):
            mso = _loads(mso, "MSO")
    else:
        mso = payload
        mso_bytes = cbor2.dumps(payload)

    if not isinstance(mso, Mapping):
        raise ParseError("MSO is not a map")
    if not isinstance(signature, bytes):
        raise ParseError("COSE_Sign1 signature is not a byte string")

    validity = mso.get("validityInfo") or {}
    if not isinstance(validity, Mapping):
        raise ParseError("validityInfo is not a map")

    value_digests = mso.get("valueDigests") or {}
    if not isinstance(value_digests, Mapping) or not all(
        isinstance(digests, Mapping) for digests in value_digests.values()
    ):
        raise ParseError("valueDigests is not a map of digest maps")

    digest_algorithm = mso.get("digestAlgorithm", "SHA-256")
    doc_type = mso.get("docType", MDL_DOC_TYPE)
    if not isinstance(digest_algorithm, str) or not isinstance(doc_type, str):
        raise ParseError("MSO digestAlgorithm and docType must be text")

    return ParsedSignedDocument(
        bytes=mso_bytes,
        signature=signature,
        validity_info=ValidityInfo(
            signed=_parse_date(validity.get("signed")),
            valid_from=_parse_date(validity.get("validFrom")),
            valid_until=_parse_date(validity.get("validUntil")),
        ),
        digest_algorithm=digest_algorithm,
        doc_type=doc_type,
        value_digests={namespace: dict(digests) for namespace, digests in value_digests.items()},
    )


def _first_certificate(chain: Any) -> Optional[bytes]:
    if isinstance(chain, bytes):
        return chain
    if isinstance(chain, list) and chain and isinstance(chain[0], bytes):
        return chain[0]
    return None


def extract_issuer_public_key(issuer_auth: Any) -> IssuerPublicKey:
    """
    Extract the issuer key from the x5chain header of the signed document.

    The protected header is preferred; the unprotected header is the fallback.

    Raises:
        ParseError: If no certificate or no P-256 key is found
    """
    protected, unprotected = _decode_sign1(issuer_auth)[:2]

    if not isinstance(protected, (bytes, bytearray)):
        raise ParseError("COSE_Sign1 protected header is not a byte string")
    protected_header = _loads(bytes(protected), "protected header") if protected else {}
    certificate = None
    if isinstance(protected_header, Mapping):
        certificate = _first_certificate(protected_header.get(X5CHAIN_LABEL))
    if certificate is None and isinstance(unprotected, Mapping):
        certificate = _first_certificate(unprotected.get(X5CHAIN_LABEL))
    if certificate is None:
        raise ParseError("No certificate chain found in issuerAuth")

    return extract_public_key_from_certificate(certificate)


def document_number_bytes(value: Any) -> bytes:
    """Right-align a document number in a zero-filled 32-byte buffer."""
    raw = value.encode("utf-8") if isinstance(value, str) else value
    if not isinstance(raw, bytes):
        raise InvalidClaimError("document_number claim has an unsupported type")
    if len(raw) > DOCUMENT_NUMBER_SIZE:
        raise InvalidClaimError(f"document_number longer than {DOCUMENT_NUMBER_SIZE} bytes")
    return raw.rjust(DOCUMENT_NUMBER_SIZE, b"\x00")


def parse_credential(
    raw: RawCredentialResponse,
    now: Optional[datetime] = None,
    check_validity: bool = True,
) -> ParsedCredential:
    """
    Parse a raw credential response into a format ready for witness assembly.

    Args:
        raw: Output of parse_device_response
        now: Reference time for the validity check (defaults to current UTC)
        check_validity: Reject documents whose validity window has ended

    Returns:
        ParsedCredential with signed document, claims and issuer key

    Raises:
        ParseError: If the envelope, a claim or the issuer key is unusable
        StaleCredentialError: If the signed document has expired
    """
    signed_document = parse_signed_document(raw.issuer_auth)

    if check_validity:
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        if signed_document.validity_info.is_expired(now):
            raise StaleCredentialError(
                f"Credential expired at {signed_document.validity_info.valid_until.isoformat()}"
            )

    claims: Dict[str, ParsedClaim] = {}
    for item in raw.items:
        if item.element_identifier in claims:
            raise ParseError(f"Duplicate claim: {item.element_identifier}")
        claims[item.element_identifier] = ParsedClaim(
            identifier=item.element_identifier,
            raw_bytes=item.raw_bytes,
            value=item.element_value,
            digest_index=item.digest_id,
            random=item.random,
        )

    doc_number_claim = claims.get(DOCUMENT_NUMBER)
    if doc_number_claim is None:
        raise InvalidClaimError("document_number claim is required but not present")

    credential = ParsedCredential(
        signed_document=signed_document,
        claims=claims,
        issuer_public_key=extract_issuer_public_key(raw.issuer_auth),
        document_number=document_number_bytes(doc_number_claim.value),
    )
    logger.info(f"Parsed credential with claims: {sorted(claims)}")
    return credential


def parse_decrypted_response(
    data: bytes,
    now: Optional[datetime] = None,
    check_validity: bool = True,
) -> ParsedCredential:
    """Parse decrypted DeviceResponse bytes straight into a ParsedCredential."""
    return parse_credential(parse_device_response(data), now=now, check_validity=check_validity)
