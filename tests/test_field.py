"""Field helpers: parsing, range checks, u256 halves."""

import pytest

from shieldnet.crypto_core.field import (
    MASK_251,
    STARK_PRIME,
    U256_MAX,
    check_field,
    check_u256,
    join_u256,
    mask_to_stark_field,
    split_u256,
    to_hex,
    to_int,
)
from shieldnet.errors import InvalidFieldValue


class TestParsing:
    def test_accepts_int_decimal_and_hex(self) -> None:
        assert to_int(42) == 42
        assert to_int("42") == 42
        assert to_int(" 0x2a ") == 42
        assert to_int("0X2A") == 42

    @pytest.mark.parametrize("bad", ["", "0xzz", "1.5", None, 1.0, True])
    def test_rejects_garbage(self, bad) -> None:
        with pytest.raises(InvalidFieldValue):
            to_int(bad)

    def test_to_hex_is_unpadded(self) -> None:
        assert to_hex(255) == "0xff"
        assert to_hex("10") == "0xa"


class TestRanges:
    def test_mask_keeps_low_bits(self) -> None:
        v = (1 << 253) | 5
        assert mask_to_stark_field(v) == 5
        assert mask_to_stark_field(MASK_251) == MASK_251 < STARK_PRIME

    def test_check_field_bounds(self) -> None:
        assert check_field(STARK_PRIME - 1) == STARK_PRIME - 1
        with pytest.raises(InvalidFieldValue):
            check_field(STARK_PRIME)
        with pytest.raises(InvalidFieldValue):
            check_field(-1)

    def test_check_field_custom_modulus(self) -> None:
        with pytest.raises(InvalidFieldValue, match="fee"):
            check_field(7, modulus=7, name="fee")

    def test_check_u256(self) -> None:
        assert check_u256(U256_MAX) == U256_MAX
        with pytest.raises(InvalidFieldValue):
            check_u256(U256_MAX + 1)


class TestU256:
    def test_split_low_first(self) -> None:
        assert split_u256(1000) == (1000, 0)
        assert split_u256((3 << 128) | 9) == (9, 3)

    def test_join_inverts_split(self) -> None:
        v = (12345 << 128) | 678
        assert join_u256(*split_u256(v)) == v

    def test_join_rejects_wide_halves(self) -> None:
        with pytest.raises(InvalidFieldValue):
            join_u256(1 << 128, 0)
