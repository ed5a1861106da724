"""
Poseidon2 permutation and sponge over the BN254 scalar field.

Width t = 4 (rate 3, capacity 1), x^5 S-box, 8 full and 56 partial rounds.
Round constants are drawn from the Grain LFSR described in the Poseidon
paper (appendix F), seeded with the field size, width and round counts;
the internal-matrix diagonal is the fixed BN254 table. Together they give
the instance Barretenberg and Noir's `std::hash::poseidon2` use. Other
instances are built with `generate_params` and passed to `poseidon2_hash`.

The sponge follows the variable-length construction used by Noir's
standard library: the capacity element starts at `len(inputs) << 64`,
inputs are added three at a time with a permutation after each block, and
the first state element is the output.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Iterator, List, Optional, Sequence, Tuple

from .types import BN254_MODULUS


WIDTH = 4
RATE = 3
ROUNDS_F = 8
ROUNDS_P = 56
ALPHA = 5

# M4 from the Poseidon2 paper, used as the external linear layer for t = 4
EXTERNAL_MATRIX = (
    (5, 7, 1, 3),
    (4, 6, 1, 1),
    (1, 3, 5, 7),
    (1, 1, 4, 6),
)


# Internal-layer diagonal for BN254, t = 4 (state_i * d_i + sum(state)), fixed by
# the Poseidon2 reference instance and used by Barretenberg
BN254_INTERNAL_DIAGONAL = (
    0x10DC6E9C006EA38B04B1E03B4BD9490C0D03F98929CA1D7FB56821FD19D3B6E7,
    0x0C28145B6A44DF3E0149B3D0A30B3BB599DF9756D4DD9B84A86B38CFB45A740B,
    0x00544B8338791518B2C7645A50392798B21F75BB60E3596170067D00141CAC15,
    0x222C01175718386F2E2E82EB122789E352E105A3B8FA852613BC534433EE428B,
)


@dataclass(frozen=True)
class Poseidon2Params:
    """Instance parameters for a width-4 Poseidon2 permutation."""
    modulus: int
    rounds_f: int
    rounds_p: int
    alpha: int
    round_constants: Tuple[Tuple[int, ...], ...]  # one row per round
    internal_diagonal: Tuple[int, ...]


def _grain_bits(field_bits: int, width: int, rounds_f: int, rounds_p: int) -> Iterator[int]:
    """Self-shrinking Grain LFSR keyed by the instance description."""
    state: List[int] = []
    for value, size in ((1, 2), (0, 4), (field_bits, 12), (width, 12), (rounds_f, 10), (rounds_p, 10)):
        state.extend(int(b) for b in format(value, f"0{size}b"))
    state.extend([1] * 30)

    def step() -> int:
        bit = state[62] ^ state[51] ^ state[38] ^ state[23] ^ state[13] ^ state[0]
        state.pop(0)
        state.append(bit)
        return bit

    for _ in range(160):
        step()

    while True:
        first = step()
        while first == 0:
            step()
            first = step()
        yield step()


def _field_elements(bits: Iterator[int], modulus: int, count: int) -> List[int]:
    field_bits = modulus.bit_length()
    elements = []
    while len(elements) < count:
        value = 0
        for _ in range(field_bits):
            value = (value << 1) | next(bits)
        if value < modulus:
            elements.append(value)
    return elements


def generate_params(
    modulus: int = BN254_MODULUS,
    rounds_f: int = ROUNDS_F,
    rounds_p: int = ROUNDS_P,
    alpha: int = ALPHA,
    internal_diagonal: Sequence[int] = BN254_INTERNAL_DIAGONAL,
) -> Poseidon2Params:
    """
    Derive round constants from the Grain LFSR.

    Full rounds take WIDTH constants, partial rounds one (padded with zeros
    so every round row has WIDTH entries). The internal diagonal is not
    derived from the LFSR; it is passed in.
    """
    if len(internal_diagonal) != WIDTH:
        raise ValueError(f"Internal diagonal must have {WIDTH} elements, got {len(internal_diagonal)}")

    bits = _grain_bits(modulus.bit_length(), WIDTH, rounds_f, rounds_p)
    half = rounds_f // 2

    rows = []
    for r in range(rounds_f + rounds_p):
        if half <= r < half + rounds_p:
            rows.append(tuple(_field_elements(bits, modulus, 1)) + (0,) * (WIDTH - 1))
        else:
            rows.append(tuple(_field_elements(bits, modulus, WIDTH)))

    diagonal = tuple(d % modulus for d in internal_diagonal)

    return Poseidon2Params(
        modulus=modulus,
        rounds_f=rounds_f,
        rounds_p=rounds_p,
        alpha=alpha,
        round_constants=tuple(rows),
        internal_diagonal=diagonal,
    )


@lru_cache(maxsize=1)
def default_params() -> Poseidon2Params:
    """BN254, t = 4 parameters (computed once)."""
    return generate_params()


def _external_layer(state: List[int], p: int) -> List[int]:
    return [sum(m * s for m, s in zip(row, state)) % p for row in EXTERNAL_MATRIX]


def _internal_layer(state: List[int], diagonal: Sequence[int], p: int) -> List[int]:
    total = sum(state)
    return [(s * d + total) % p for s, d in zip(state, diagonal)]


def permute(state: Sequence[int], params: Optional[Poseidon2Params] = None) -> List[int]:
    """
    Apply the Poseidon2 permutation to a width-4 state.

    Args:
        state: Four field elements
        params: Instance parameters (defaults to BN254)

    Returns:
        The permuted state
    """
    params = params or default_params()
    p = params.modulus
    if len(state) != WIDTH:
        raise ValueError(f"State must have {WIDTH} elements, got {len(state)}")

    half = params.rounds_f // 2
    constants = params.round_constants

    current = _external_layer([s % p for s in state], p)

    for r in range(half):
        current = [pow((s + c) % p, params.alpha, p) for s, c in zip(current, constants[r])]
        current = _external_layer(current, p)

    for r in range(half, half + params.rounds_p):
        current[0] = pow((current[0] + constants[r][0]) % p, params.alpha, p)
        current = _internal_layer(current, params.internal_diagonal, p)

    for r in range(half + params.rounds_p, params.rounds_f + params.rounds_p):
        current = [pow((s + c) % p, params.alpha, p) for s, c in zip(current, constants[r])]
        current = _external_layer(current, p)

    return current


def poseidon2_hash(inputs: Sequence[int], params: Optional[Poseidon2Params] = None) -> int:
    """
    Hash field elements with the Poseidon2 sponge.

    Args:
        inputs: Field elements (reduced modulo the field on entry)
        params: Instance parameters (defaults to BN254)

    Returns:
        Field element digest
    """
    params = params or default_params()
    p = params.modulus

    state = [0] * WIDTH
    state[RATE] = (len(inputs) << 64) % p

    for start in range(0, max(len(inputs), 1), RATE):
        block = inputs[start : start + RATE]
        for i, value in enumerate(block):
            state[i] = (state[i] + value) % p
        state = permute(state, params)

    return state[0]


def bytes_to_field(data: bytes, modulus: int = BN254_MODULUS) -> int:
    """Interpret big-endian bytes as a field element (reduced)."""
    return int.from_bytes(data, "big") % modulus


def field_to_bytes(value: int) -> bytes:
    """Encode a field element as 32 big-endian bytes."""
    return value.to_bytes(32, "big")
