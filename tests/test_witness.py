"""Tests for witness assembly."""

from datetime import datetime, timezone

import pytest
from Crypto.Hash import keccak
from mdlwitness.mock import MockIssuer, create_mock_credential
from mdlwitness.parse import parse_decrypted_response
from mdlwitness.poseidon2 import poseidon2_hash
from mdlwitness.types import (
    AGE_CLAIM_SIZE,
    BN254_MODULUS,
    JURISDICTION_CLAIM_SIZE,
    SIGNED_DOCUMENT_SIZE,
    ParseError,
)
from mdlwitness.witness import (
    ProofOptions,
    WitnessConfig,
    address_to_field,
    build_witness,
    compute_issuer_root,
    compute_nullifier,
    hash_event_id,
    pad_to_size,
    to_prover_credential,
)
from .test_vectors import (
    OTHER_DOCUMENT_NUMBER,
    OTHER_EVENT_ID,
    TEST_ADDRESS,
    TEST_EVENT_ID,
)

NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)


class TestPadding:
    """Test fixed-width buffers."""

    def test_zero_fill(self) -> None:
        """Short input is right-padded with zeros."""
        assert pad_to_size(b"\x01\x02", 5) == b"\x01\x02\x00\x00\x00"

    def test_exact_width(self) -> None:
        """Input at the exact width is unchanged."""
        assert pad_to_size(b"abc", 3) == b"abc"

    def test_idempotent(self) -> None:
        """Padding a padded buffer changes nothing."""
        once = pad_to_size(b"data", 16)
        assert pad_to_size(once, 16) == once

    def test_oversize_rejected(self) -> None:
        """Oversized input is rejected by default."""
        with pytest.raises(ParseError):
            pad_to_size(bytes(10), 8)

    def test_oversize_truncated_when_allowed(self) -> None:
        """Opt-in truncation keeps the leading bytes."""
        assert pad_to_size(bytes(range(10)), 8, allow_truncation=True) == bytes(range(8))


class TestFieldInputs:
    """Test event id and address conversion."""

    def test_event_id_is_keccak_mod_field(self) -> None:
        """Event id is keccak256 reduced into BN254."""
        digest = keccak.new(digest_bits=256, data=TEST_EVENT_ID.encode()).digest()
        assert hash_event_id(TEST_EVENT_ID) == int.from_bytes(digest, "big") % BN254_MODULUS

    def test_event_id_of_empty_string(self) -> None:
        """keccak256("") is the well-known constant."""
        expected = int("c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470", 16)
        assert hash_event_id("") == expected % BN254_MODULUS

    def test_address(self) -> None:
        """Addresses become integers."""
        assert address_to_field(TEST_ADDRESS) == int(TEST_ADDRESS[2:], 16)

    @pytest.mark.parametrize(
        "address",
        ["1234567890abcdef1234567890abcdef12345678", "0x1234", "0x" + "g" * 40, ""],
    )
    def test_invalid_address(self, address) -> None:
        """Malformed addresses are rejected."""
        with pytest.raises(ValueError):
            address_to_field(address)


class TestDerivedValues:
    """Test issuer root and nullifier derivation."""

    @pytest.fixture
    def credential(self):
        """Mock prover credential."""
        return create_mock_credential()

    def test_issuer_root(self, credential) -> None:
        """Issuer root hashes the two coordinates."""
        root = compute_issuer_root(credential.issuer_key_x, credential.issuer_key_y)
        expected = poseidon2_hash(
            [int.from_bytes(credential.issuer_key_x, "big"), int.from_bytes(credential.issuer_key_y, "big")]
        )
        assert root == expected

    def test_nullifier_deterministic(self, credential) -> None:
        """Same document, event and issuer give the same nullifier."""
        root = compute_issuer_root(credential.issuer_key_x, credential.issuer_key_y)
        event = hash_event_id(TEST_EVENT_ID)
        assert compute_nullifier(credential.document_number, event, root) == compute_nullifier(
            credential.document_number, event, root
        )

    def test_nullifier_varies_with_event(self, credential) -> None:
        """Different events give unlinkable nullifiers."""
        root = compute_issuer_root(credential.issuer_key_x, credential.issuer_key_y)
        first = compute_nullifier(credential.document_number, hash_event_id(TEST_EVENT_ID), root)
        second = compute_nullifier(credential.document_number, hash_event_id(OTHER_EVENT_ID), root)
        assert first != second

    def test_nullifier_varies_with_document(self, credential) -> None:
        """Different documents give different nullifiers."""
        other = create_mock_credential(document_number=OTHER_DOCUMENT_NUMBER)
        root = compute_issuer_root(credential.issuer_key_x, credential.issuer_key_y)
        event = hash_event_id(TEST_EVENT_ID)
        assert compute_nullifier(credential.document_number, event, root) != compute_nullifier(
            other.document_number, event, root
        )


class TestBuildWitness:
    """Test full witness assembly."""

    @pytest.fixture
    def credential(self):
        """Mock prover credential for California."""
        return create_mock_credential(jurisdiction="CA")

    @pytest.fixture
    def options(self):
        """Proof options revealing the jurisdiction."""
        return ProofOptions(
            event_id=TEST_EVENT_ID,
            bound_address=TEST_ADDRESS,
            timestamp=1780000000,
            prove_age_over_21=True,
            prove_jurisdiction=True,
        )

    def test_buffer_widths(self, credential) -> None:
        """Mock buffers are at the circuit widths."""
        assert len(credential.signed_document_bytes) == SIGNED_DOCUMENT_SIZE
        assert len(credential.age_over_21_claim_bytes) == AGE_CLAIM_SIZE
        assert len(credential.jurisdiction_claim_bytes) == JURISDICTION_CLAIM_SIZE

    def test_jurisdiction_code_offset(self, credential) -> None:
        """The two-letter code sits at offset 66 of the claim bytes."""
        assert list(credential.jurisdiction_claim_bytes[66:68]) == [0x43, 0x41]

    def test_revealed_jurisdiction(self, credential, options) -> None:
        """Revealing copies the code into the public outputs."""
        outputs = build_witness(credential, options).public_outputs()
        assert outputs.revealed_jurisdiction == b"CA"
        assert outputs.jurisdiction_code == "CA"

    def test_hidden_jurisdiction(self, credential, options) -> None:
        """Without the flag the code is zeroed."""
        options.prove_jurisdiction = False
        outputs = build_witness(credential, options).public_outputs()
        assert outputs.revealed_jurisdiction == b"\x00\x00"
        assert outputs.jurisdiction_code == ""

    def test_derived_values(self, credential, options) -> None:
        """Witness values match the standalone derivations."""
        witness = build_witness(credential, options)
        root = compute_issuer_root(credential.issuer_key_x, credential.issuer_key_y)
        event = hash_event_id(TEST_EVENT_ID)

        assert witness.issuer_root == root
        assert witness.event_id == event
        assert witness.nullifier == compute_nullifier(credential.document_number, event, root)
        assert witness.address_binding == poseidon2_hash([witness.nullifier, address_to_field(TEST_ADDRESS)])

    def test_public_output_order(self, credential, options) -> None:
        """Public outputs are listed in circuit order."""
        outputs = build_witness(credential, options).public_outputs()
        values = outputs.as_list()

        assert values[0] == outputs.nullifier
        assert values[1] == outputs.address_binding
        assert values[2] == 1780000000
        assert values[3] == outputs.event_id
        assert values[4] == outputs.issuer_root
        assert values[5] == TEST_ADDRESS
        assert values[6:9] == [True, False, True]
        assert values[9] == b"CA"

    def test_default_timestamp(self, credential, options) -> None:
        """Without a timestamp the current time is used."""
        options.timestamp = None
        before = int(datetime.now(timezone.utc).timestamp())
        witness = build_witness(credential, options)
        assert witness.proof_timestamp >= before

    def test_to_inputs(self, credential, options) -> None:
        """Circuit inputs use hex field elements and byte lists."""
        inputs = build_witness(credential, options).to_inputs()

        assert inputs["nullifier"].startswith("0x")
        assert len(inputs["nullifier"]) == 66
        assert inputs["proof_timestamp"] == 1780000000
        assert inputs["prove_state"] is True
        assert inputs["proven_state"] == [0x43, 0x41]
        assert len(inputs["mso_bytes"]) == SIGNED_DOCUMENT_SIZE
        assert len(inputs["state_claim_bytes"]) == JURISDICTION_CLAIM_SIZE
        assert len(inputs["document_number"]) == 32
        assert len(inputs["iaca_pubkey_x"]) == 32

    def test_invalid_address(self, credential, options) -> None:
        """A malformed bound address is rejected."""
        options.bound_address = "0xnothex"
        with pytest.raises(ValueError):
            build_witness(credential, options)


class TestFromParsedCredential:
    """Test conversion of parsed credentials."""

    @pytest.fixture(scope="class")
    def parsed(self):
        """Parsed credential from a mock issuer."""
        issuer = MockIssuer()
        return issuer, parse_decrypted_response(issuer.device_response(), now=NOW)

    def test_widths(self, parsed) -> None:
        """Parsed claims pad to the circuit widths."""
        issuer, credential = parsed
        prover = to_prover_credential(credential)

        assert len(prover.signed_document_bytes) == SIGNED_DOCUMENT_SIZE
        assert len(prover.signature) == 64
        assert len(prover.age_over_21_claim_bytes) == AGE_CLAIM_SIZE
        assert len(prover.age_over_18_claim_bytes) == AGE_CLAIM_SIZE
        assert len(prover.jurisdiction_claim_bytes) == JURISDICTION_CLAIM_SIZE
        assert prover.issuer_key_x == issuer.public_key_x

    def test_jurisdiction_offset(self, parsed) -> None:
        """Real claim encodings put the code at the configured offset."""
        _, credential = parsed
        prover = to_prover_credential(credential)
        assert prover.jurisdiction_claim_bytes[66:68] == b"CA"

    def test_missing_claim(self, parsed) -> None:
        """Age claims are required for the witness."""
        _, credential = parsed
        claims = dict(credential.claims)
        del claims["age_over_18"]
        trimmed = type(credential)(
            signed_document=credential.signed_document,
            claims=claims,
            issuer_public_key=credential.issuer_public_key,
            document_number=credential.document_number,
        )
        with pytest.raises(ParseError):
            to_prover_credential(trimmed)

    def test_oversized_claim(self) -> None:
        """Claims wider than the circuit slot are rejected unless truncation is on."""
        issuer = MockIssuer()
        credential = parse_decrypted_response(issuer.device_response(), now=NOW)
        claim = credential.claims["issuing_jurisdiction"]
        claim.raw_bytes = claim.raw_bytes + bytes(8)

        with pytest.raises(ParseError):
            to_prover_credential(credential)

        prover = to_prover_credential(credential, WitnessConfig(allow_truncation=True))
        assert len(prover.jurisdiction_claim_bytes) == JURISDICTION_CLAIM_SIZE
