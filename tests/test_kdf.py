"""Tests for labeled key derivation and the HPKE key schedule."""

import pytest
from mdlwitness.hpke import aead_open, compute_nonce, decap, key_schedule
from mdlwitness.kdf import (
    HPKE_SUITE_ID,
    KEM_SUITE_ID,
    build_kem_suite_id,
    build_suite_id,
    labeled_expand,
    labeled_extract,
)
from mdlwitness.keys import private_key_from_scalar, public_key_to_bytes
from .test_vectors import (
    RFC_AAD_HEX,
    RFC_BASE_NONCE_HEX,
    RFC_CT_HEX,
    RFC_ENC_HEX,
    RFC_INFO_HEX,
    RFC_KEY_HEX,
    RFC_PK_RM_HEX,
    RFC_PT_HEX,
    RFC_SHARED_SECRET_HEX,
    RFC_SK_RM_HEX,
)


class TestSuiteIds:
    """Test suite identifier encoding."""

    def test_hpke_suite_id(self) -> None:
        """HPKE suite id encodes KEM, KDF and AEAD ids big-endian."""
        assert HPKE_SUITE_ID == b"HPKE\x00\x10\x00\x01\x00\x01"
        assert build_suite_id(0x0020, 0x0001, 0x0003) == b"HPKE\x00\x20\x00\x01\x00\x03"

    def test_kem_suite_id(self) -> None:
        """KEM suite id is "KEM" plus the KEM id."""
        assert KEM_SUITE_ID == b"KEM\x00\x10"
        assert build_kem_suite_id(0x0011) == b"KEM\x00\x11"


class TestLabeledFunctions:
    """Test LabeledExtract and LabeledExpand."""

    def test_extract_is_deterministic(self) -> None:
        """Same inputs give the same PRK."""
        first = labeled_extract(b"", "psk_id_hash", b"")
        second = labeled_extract(b"", "psk_id_hash", b"")
        assert first == second
        assert len(first) == 32

    def test_extract_depends_on_label_and_suite(self) -> None:
        """Label and suite id are bound into the output."""
        base = labeled_extract(b"", "info_hash", b"x")
        assert labeled_extract(b"", "psk_id_hash", b"x") != base
        assert labeled_extract(b"", "info_hash", b"x", suite_id=KEM_SUITE_ID) != base

    def test_label_accepts_bytes(self) -> None:
        """str and bytes labels are equivalent."""
        assert labeled_extract(b"", "secret", b"k") == labeled_extract(b"", b"secret", b"k")

    def test_expand_lengths(self) -> None:
        """Expand returns exactly the requested length and binds it."""
        prk = labeled_extract(b"", "secret", b"ikm")
        assert labeled_expand(prk, "key", b"", 16) != labeled_expand(prk, "key", b"", 32)[:16]
        assert len(labeled_expand(prk, "key", b"", 16)) == 16
        assert len(labeled_expand(prk, "base_nonce", b"", 12)) == 12
        assert labeled_expand(prk, "key", b"", 0) == b""

    def test_expand_rejects_oversized_length(self) -> None:
        """L must fit in two bytes."""
        prk = labeled_extract(b"", "secret", b"ikm")
        with pytest.raises(ValueError):
            labeled_expand(prk, "key", b"", 0x10000)


class TestRfc9180Vectors:
    """RFC 9180 A.3.1 DHKEM(P-256, HKDF-SHA256), HKDF-SHA256, AES-128-GCM."""

    @pytest.fixture
    def receiver_key(self):
        """Receiver's static key from the test vector."""
        return private_key_from_scalar(bytes.fromhex(RFC_SK_RM_HEX))

    def test_receiver_public_key(self, receiver_key) -> None:
        """skRm derives pkRm."""
        assert public_key_to_bytes(receiver_key.public_key()).hex() == RFC_PK_RM_HEX

    def test_decap_shared_secret(self, receiver_key) -> None:
        """Decap reproduces the published shared secret."""
        shared_secret = decap(
            bytes.fromhex(RFC_ENC_HEX),
            receiver_key,
            bytes.fromhex(RFC_PK_RM_HEX),
        )
        assert shared_secret.hex() == RFC_SHARED_SECRET_HEX

    def test_key_schedule(self) -> None:
        """Key schedule reproduces key and base nonce."""
        schedule = key_schedule(
            bytes.fromhex(RFC_SHARED_SECRET_HEX),
            bytes.fromhex(RFC_INFO_HEX),
        )
        assert schedule.key.hex() == RFC_KEY_HEX
        assert schedule.base_nonce.hex() == RFC_BASE_NONCE_HEX

    def test_first_message_decrypts(self) -> None:
        """Sequence 0 uses the base nonce unmodified."""
        nonce = compute_nonce(bytes.fromhex(RFC_BASE_NONCE_HEX), 0)
        assert nonce.hex() == RFC_BASE_NONCE_HEX

        plaintext = aead_open(
            bytes.fromhex(RFC_KEY_HEX),
            nonce,
            bytes.fromhex(RFC_AAD_HEX),
            bytes.fromhex(RFC_CT_HEX),
        )
        assert plaintext.hex() == RFC_PT_HEX

    def test_compute_nonce_xors_sequence(self) -> None:
        """Later sequence numbers XOR into the low bytes."""
        base = bytes.fromhex(RFC_BASE_NONCE_HEX)
        assert compute_nonce(base, 1)[-1] == base[-1] ^ 0x01
        assert compute_nonce(base, 1)[:-1] == base[:-1]
