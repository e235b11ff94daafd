"""Masked Poseidon over BN254."""

import secrets

import pytest

from shieldnet.crypto_core.field import BN254_PRIME, MASK_251, STARK_PRIME
from shieldnet.crypto_core.poseidon import (
    field_hash,
    get_params,
    hash1,
    hash2,
    hash3,
    hash4,
    poseidon_raw,
)
from shieldnet.errors import InvalidFieldValue

# circomlibjs poseidon([1, 2])
POSEIDON_1_2 = 0x115CC0F5E7D690413DF64C6B9662E9CF2A3617F2743245519E19607A4417189A


class TestParameters:
    def test_round_counts(self) -> None:
        """Partial rounds follow circomlib's table for t = 2..5."""
        assert [get_params(t).rounds_p for t in (2, 3, 4, 5)] == [56, 57, 56, 60]
        assert all(get_params(t).rounds_f == 8 for t in (2, 3, 4, 5))

    def test_table_sizes(self) -> None:
        for t in (2, 3, 4, 5):
            p = get_params(t)
            assert len(p.round_constants) == (p.rounds_f + p.rounds_p) * t
            assert len(p.mds) == t and all(len(row) == t for row in p.mds)

    def test_constants_in_field(self) -> None:
        p = get_params(3)
        assert all(0 <= c < BN254_PRIME for c in p.round_constants)
        assert all(0 < m < BN254_PRIME for row in p.mds for m in row)

    def test_first_round_constant_t3(self) -> None:
        """First constant of circomlib's t=3 table."""
        assert get_params(3).round_constants[0] == 0x0EE9A592BA9A9518D05986D656F40C2114C4993C11BB29938D21D47304CD8E6E

    def test_params_are_cached(self) -> None:
        assert get_params(4) is get_params(4)

    def test_unsupported_width(self) -> None:
        with pytest.raises(InvalidFieldValue):
            get_params(6)


class TestHash:
    def test_known_answer(self) -> None:
        assert poseidon_raw([1, 2]) == POSEIDON_1_2

    def test_masked_known_answer(self) -> None:
        assert hash2(1, 2) == POSEIDON_1_2 & MASK_251
        assert hash2(1, 2) == 0x015CC0F5E7D690413DF64C6B9662E9CF2A3617F2743245519E19607A4417189A

    def test_deterministic(self) -> None:
        assert hash4(1, 2, 3, 4) == hash4(1, 2, 3, 4)
        assert hash3(1, 2, 3) == field_hash([1, 2, 3], 3)

    def test_arity_separates_inputs(self) -> None:
        assert hash1(0) != hash2(0, 0)
        assert hash2(1, 2) != hash2(2, 1)

    def test_mask_holds_for_random_inputs(self) -> None:
        for _ in range(500):
            a, b = secrets.randbelow(STARK_PRIME), secrets.randbelow(STARK_PRIME)
            h = hash2(a, b)
            assert 0 <= h < STARK_PRIME
            assert h >> 251 == 0

    def test_wrong_arity(self) -> None:
        with pytest.raises(InvalidFieldValue):
            field_hash([1, 2], 3)
        with pytest.raises(InvalidFieldValue):
            field_hash([1, 2, 3, 4, 5])
        with pytest.raises(InvalidFieldValue):
            field_hash([])

    def test_rejects_out_of_field(self) -> None:
        with pytest.raises(InvalidFieldValue):
            hash1(-1)
        with pytest.raises(InvalidFieldValue):
            hash1(BN254_PRIME)
