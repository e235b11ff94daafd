# shieldnet/crypto_core/field.py
from __future__ import annotations

from typing import Iterable, List, Tuple, Union

from shieldnet.errors import InvalidFieldValue

# Ledger (Starknet) scalar field: 2^251 + 17 * 2^192 + 1
STARK_PRIME = 0x800000000000011000000000000000000000000000000000000000000000001

# Hash field (BN254 scalar field)
BN254_PRIME = 0x30644E72E131A029B85045B68181585D2833E84879B9709143E1F593F0000001

MASK_BITS = 251
MASK_251 = (1 << MASK_BITS) - 1

U128_MASK = (1 << 128) - 1
U256_MAX = (1 << 256) - 1

FieldLike = Union[int, str]


def mask_to_stark_field(value: int) -> int:
    """Keep the low 251 bits; the result is always < STARK_PRIME."""
    return value & MASK_251


def to_int(value: FieldLike) -> int:
    """Accept ints, decimal strings and 0x-prefixed hex strings."""
    if isinstance(value, bool):
        raise InvalidFieldValue(f"Not a field value: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        s = value.strip()
        try:
            return int(s, 16) if s.lower().startswith("0x") else int(s, 10)
        except ValueError:
            raise InvalidFieldValue(f"Not a field value: {value!r}") from None
    raise InvalidFieldValue(f"Not a field value: {value!r}")


def check_field(value: FieldLike, modulus: int = STARK_PRIME, name: str = "value") -> int:
    """Return `value` as int, raising InvalidFieldValue unless 0 <= value < modulus."""
    v = to_int(value)
    if v < 0:
        raise InvalidFieldValue(f"{name} is negative: {v}")
    if v >= modulus:
        raise InvalidFieldValue(f"{name} does not fit the field: {hex(v)} >= {hex(modulus)}")
    return v


def check_u256(value: FieldLike, name: str = "amount") -> int:
    v = to_int(value)
    if v < 0 or v > U256_MAX:
        raise InvalidFieldValue(f"{name} is not a u256: {v}")
    return v


def split_u256(value: FieldLike) -> Tuple[int, int]:
    """u256 -> (low, high) 128-bit halves, low first."""
    v = check_u256(value)
    return v & U128_MASK, v >> 128


def join_u256(low: FieldLike, high: FieldLike) -> int:
    lo, hi = to_int(low), to_int(high)
    if not (0 <= lo <= U128_MASK and 0 <= hi <= U128_MASK):
        raise InvalidFieldValue(f"u256 halves out of range: low={lo} high={hi}")
    return (hi << 128) | lo


def to_hex(value: int) -> str:
    """Unpadded 0x-prefixed lowercase hex, the form the prover expects."""
    return hex(to_int(value))


def to_hex_list(values: Iterable[int]) -> List[str]:
    return [to_hex(v) for v in values]


__all__ = [
    "STARK_PRIME",
    "BN254_PRIME",
    "MASK_BITS",
    "MASK_251",
    "U128_MASK",
    "U256_MAX",
    "mask_to_stark_field",
    "to_int",
    "check_field",
    "check_u256",
    "split_u256",
    "join_u256",
    "to_hex",
    "to_hex_list",
]
