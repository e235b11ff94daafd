"""
Masked Poseidon hash over the BN254 scalar field.

The permutation and its parameters follow the Poseidon reference
(generate_parameters_grain.sage) as instantiated by circomlib:
x^5 S-box, 8 full rounds, partial rounds [56, 57, 56, 60] for widths 2..5,
state initialised to [0, inputs...], output state[0].

The raw BN254 output is masked to its low 251 bits so that every digest is a
valid Starknet felt. The proving circuit applies the same mask
(mask_to_stark_field); both sides must agree bit for bit.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, List, Sequence

from shieldnet.crypto_core.field import BN254_PRIME, check_field, mask_to_stark_field
from shieldnet.errors import InvalidFieldValue

FIELD_SIZE_BITS = 254
ALPHA = 5
ROUNDS_F = 8
ROUNDS_P = {2: 56, 3: 57, 4: 56, 5: 60}
SUPPORTED_ARITIES = (1, 2, 3, 4)


@dataclass(frozen=True)
class PoseidonParams:
    t: int
    rounds_f: int
    rounds_p: int
    round_constants: List[int]
    mds: List[List[int]]


class _Grain:
    """
    80-bit Grain LFSR in self-shrinking mode, seeded with the instance
    parameters. Bit i of `_s` is element i of the reference bit sequence.
    """

    def __init__(self, field: int, sbox: int, n: int, t: int, r_f: int, r_p: int):
        seq = (
            _bits(field, 2) + _bits(sbox, 4) + _bits(n, 12) + _bits(t, 12)
            + _bits(r_f, 10) + _bits(r_p, 10) + [1] * 30
        )
        self._s = 0
        for i, b in enumerate(seq):
            self._s |= b << i
        for _ in range(160):
            self._step()

    def _step(self) -> int:
        s = self._s
        bit = ((s >> 62) ^ (s >> 51) ^ (s >> 38) ^ (s >> 23) ^ (s >> 13) ^ s) & 1
        self._s = (s >> 1) | (bit << 79)
        return bit

    def next_bit(self) -> int:
        bit = self._step()
        while bit == 0:
            self._step()
            bit = self._step()
        return self._step()

    def next_int(self, n_bits: int) -> int:
        v = 0
        for _ in range(n_bits):
            v = (v << 1) | self.next_bit()
        return v


def _bits(value: int, width: int) -> List[int]:
    return [(value >> i) & 1 for i in range(width - 1, -1, -1)]


def _generate_params(t: int) -> PoseidonParams:
    p = BN254_PRIME
    r_p = ROUNDS_P[t]
    grain = _Grain(1, 0, FIELD_SIZE_BITS, t, ROUNDS_F, r_p)

    constants = []
    for _ in range((ROUNDS_F + r_p) * t):
        c = grain.next_int(FIELD_SIZE_BITS)
        while c >= p:
            c = grain.next_int(FIELD_SIZE_BITS)
        constants.append(c)

    # Cauchy matrix M[i][j] = 1 / (x_i + y_j) with 2t distinct samples
    while True:
        samples = [grain.next_int(FIELD_SIZE_BITS) % p for _ in range(2 * t)]
        while len(set(samples)) != len(samples):
            samples = [grain.next_int(FIELD_SIZE_BITS) % p for _ in range(2 * t)]
        xs, ys = samples[:t], samples[t:]
        if any((x + y) % p == 0 for x in xs for y in ys):
            continue
        mds = [[pow(x + y, -1, p) for y in ys] for x in xs]
        break

    return PoseidonParams(t=t, rounds_f=ROUNDS_F, rounds_p=r_p, round_constants=constants, mds=mds)


_params: Dict[int, PoseidonParams] = {}
_params_lock = threading.Lock()


def get_params(t: int) -> PoseidonParams:
    """Parameters for width t, generated on first use and cached."""
    params = _params.get(t)
    if params is None:
        if t not in ROUNDS_P:
            raise InvalidFieldValue(f"Unsupported Poseidon width t={t}")
        with _params_lock:
            params = _params.get(t)
            if params is None:
                params = _generate_params(t)
                _params[t] = params
    return params


def _pow5(x: int) -> int:
    x2 = (x * x) % BN254_PRIME
    x4 = (x2 * x2) % BN254_PRIME
    return (x4 * x) % BN254_PRIME


def permute(state: Sequence[int], params: PoseidonParams) -> List[int]:
    p = BN254_PRIME
    t = params.t
    if len(state) != t:
        raise InvalidFieldValue(f"state must have {t} elements, got {len(state)}")
    C, M = params.round_constants, params.mds
    half_f = params.rounds_f // 2
    s = [x % p for x in state]

    for r in range(params.rounds_f + params.rounds_p):
        s = [(x + C[r * t + i]) % p for i, x in enumerate(s)]
        if r < half_f or r >= half_f + params.rounds_p:
            s = [_pow5(x) for x in s]
        else:
            s[0] = _pow5(s[0])
        s = [sum(M[i][j] * s[j] for j in range(t)) % p for i in range(t)]
    return s


def poseidon_raw(inputs: Sequence[int]) -> int:
    """Unmasked BN254 Poseidon digest (circomlib `poseidon(inputs)`)."""
    if len(inputs) not in SUPPORTED_ARITIES:
        raise InvalidFieldValue(f"arity must be one of {SUPPORTED_ARITIES}, got {len(inputs)}")
    values = [check_field(x, BN254_PRIME, name="hash input") for x in inputs]
    params = get_params(len(values) + 1)
    return permute([0] + values, params)[0]


def field_hash(inputs: Sequence[int], arity: int | None = None) -> int:
    """
    Masked hash: low 251 bits of the BN254 Poseidon digest.

    Args:
        inputs: 1 to 4 field elements
        arity: Expected input count; checked against len(inputs) when given

    Returns:
        Digest strictly below the Starknet prime
    """
    if arity is not None and arity != len(inputs):
        raise InvalidFieldValue(f"arity={arity} but {len(inputs)} inputs given")
    return mask_to_stark_field(poseidon_raw(inputs))


def hash1(a: int) -> int:
    return field_hash([a], 1)


def hash2(a: int, b: int) -> int:
    return field_hash([a, b], 2)


def hash3(a: int, b: int, c: int) -> int:
    return field_hash([a, b, c], 3)


def hash4(a: int, b: int, c: int, d: int) -> int:
    return field_hash([a, b, c, d], 4)


__all__ = [
    "PoseidonParams",
    "get_params",
    "permute",
    "poseidon_raw",
    "field_hash",
    "hash1",
    "hash2",
    "hash3",
    "hash4",
]
