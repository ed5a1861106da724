"""Tests for the Poseidon2 permutation and sponge."""

import pytest
from mdlwitness.poseidon2 import (
    RATE,
    ROUNDS_F,
    ROUNDS_P,
    WIDTH,
    bytes_to_field,
    default_params,
    field_to_bytes,
    generate_params,
    permute,
    poseidon2_hash,
)
from mdlwitness.types import BN254_MODULUS
from mdlwitness.witness import compute_issuer_root, compute_nullifier
from .test_vectors import (
    POSEIDON2_FIRST_ROUND_CONSTANT,
    POSEIDON2_INTERNAL_DIAGONAL,
    POSEIDON2_PERMUTATION_INPUT,
    POSEIDON2_PERMUTATION_OUTPUT,
)


class TestParams:
    """Test parameter generation."""

    def test_shape(self) -> None:
        """One constant row per round, partial rows carry a single constant."""
        params = default_params()
        assert len(params.round_constants) == ROUNDS_F + ROUNDS_P
        assert all(len(row) == WIDTH for row in params.round_constants)

        half = ROUNDS_F // 2
        for row in params.round_constants[half : half + ROUNDS_P]:
            assert row[1:] == (0, 0, 0)

    def test_constants_in_field(self) -> None:
        """Every constant is a reduced field element."""
        params = default_params()
        for row in params.round_constants:
            assert all(0 <= c < BN254_MODULUS for c in row)
        assert all(1 < d < BN254_MODULUS for d in params.internal_diagonal)

    def test_generation_is_deterministic(self) -> None:
        """Regenerating gives the cached parameters."""
        assert generate_params() == default_params()


class TestPermutation:
    """Test the width-4 permutation."""

    def test_output_width(self) -> None:
        """Output has four reduced elements."""
        out = permute([0, 1, 2, 3])
        assert len(out) == WIDTH
        assert all(0 <= s < BN254_MODULUS for s in out)

    def test_not_identity(self) -> None:
        """The zero state is moved."""
        assert permute([0, 0, 0, 0]) != [0, 0, 0, 0]

    def test_wrong_width(self) -> None:
        """State must have exactly four elements."""
        with pytest.raises(ValueError):
            permute([1, 2, 3])


class TestSponge:
    """Test the hash interface."""

    def test_deterministic(self) -> None:
        """Same inputs hash equally."""
        assert poseidon2_hash([1, 2]) == poseidon2_hash([1, 2])

    def test_order_matters(self) -> None:
        """Inputs are not commutative."""
        assert poseidon2_hash([1, 2]) != poseidon2_hash([2, 1])

    def test_length_is_bound(self) -> None:
        """Trailing zeros change the digest via the capacity IV."""
        assert poseidon2_hash([1, 2]) != poseidon2_hash([1, 2, 0])

    def test_multiple_blocks(self) -> None:
        """Inputs longer than the rate are absorbed in blocks."""
        digest = poseidon2_hash([1, 2, 3, 4, 5])
        assert 0 <= digest < BN254_MODULUS
        assert digest != poseidon2_hash([1, 2, 3, 4])

    def test_inputs_reduced(self) -> None:
        """Inputs are taken modulo the field."""
        assert poseidon2_hash([BN254_MODULUS + 7]) == poseidon2_hash([7])

    def test_custom_params(self) -> None:
        """A different instance gives a different digest."""
        params = generate_params(rounds_p=57)
        assert poseidon2_hash([1, 2], params) != poseidon2_hash([1, 2])


class TestFieldEncoding:
    """Test byte and field conversions."""

    def test_round_trip(self) -> None:
        """32-byte big-endian encoding."""
        value = 0x1234
        assert field_to_bytes(value) == bytes(30) + b"\x12\x34"
        assert bytes_to_field(field_to_bytes(value)) == value

    def test_reduction(self) -> None:
        """Oversized byte strings are reduced."""
        assert bytes_to_field(b"\xff" * 32) < BN254_MODULUS


class TestKnownAnswers:
    """Test against the published BN254 instance."""

    def test_first_round_constant(self) -> None:
        """Grain LFSR output matches the published table."""
        assert default_params().round_constants[0][0] == POSEIDON2_FIRST_ROUND_CONSTANT

    def test_internal_diagonal(self) -> None:
        """The internal layer uses the fixed BN254 diagonal."""
        assert list(default_params().internal_diagonal) == POSEIDON2_INTERNAL_DIAGONAL

    def test_permutation_vector(self) -> None:
        """permute([0, 1, 2, 3]) equals the reference output."""
        assert permute(POSEIDON2_PERMUTATION_INPUT) == POSEIDON2_PERMUTATION_OUTPUT

    @pytest.mark.parametrize("inputs", [[], [7], [1, 2], [1, 2, 3]])
    def test_single_block_sponge(self, inputs) -> None:
        """Up to one block: absorb into the IV state, permute once, take state[0]."""
        state = list(inputs) + [0] * (RATE - len(inputs)) + [len(inputs) << 64]
        assert poseidon2_hash(inputs) == permute(state)[0]

    def test_two_block_sponge(self) -> None:
        """A fourth input triggers a second permutation."""
        first = permute([1, 2, 3, 4 << 64])
        second = permute([(first[0] + 4) % BN254_MODULUS, first[1], first[2], first[3]])
        assert poseidon2_hash([1, 2, 3, 4]) == second[0]

    def test_issuer_root_and_nullifier(self) -> None:
        """Witness derivations are two- and three-input sponge calls."""
        x, y = 0x1111, 0x2222
        root = compute_issuer_root(x.to_bytes(32, "big"), y.to_bytes(32, "big"))
        assert root == permute([x, y, 0, 2 << 64])[0]

        event = 0x3333
        document = b"D1234567".rjust(32, b"\x00")
        nullifier = compute_nullifier(document, event, root)
        assert nullifier == permute([int.from_bytes(document, "big"), event, root, 3 << 64])[0]
