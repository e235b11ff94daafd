"""
Positional calldata for the shield pool entrypoints.

Every operation kind has one LAYOUT: an ordered list of (field, width)
pairs describing what follows the length-prefixed proof. The same LAYOUT
drives serialisation and the relayer patch-position arithmetic, so the two
cannot drift apart. Widths:

    1      one scalar
    U256   two scalars, (low 128 bits, high 128 bits)
    VAR    a length scalar followed by that many scalars

Any change to a LAYOUT must bump CALLDATA_LAYOUT_VERSION; the pool contract's
ABI is the source of truth.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Iterable, List, Sequence, Tuple, Union

from shieldnet.crypto_core.field import STARK_PRIME, check_field, split_u256, to_int
from shieldnet.errors import CalldataLayoutError, InvalidFieldValue

CALLDATA_LAYOUT_VERSION = 1

U256 = "u256"
VAR = "var"

RELAYER_FIELD = "relayer"


class ScalarField(int):
    """An int known to satisfy 0 <= v < STARK_PRIME."""

    def __new__(cls, value: Union[int, str]) -> "ScalarField":
        return super().__new__(cls, check_field(value, STARK_PRIME, name="calldata scalar"))

    def to_decimal(self) -> str:
        return str(int(self))

    def to_hex(self) -> str:
        return hex(int(self))


def _scalars(values: Iterable[Union[int, str]]) -> Tuple[ScalarField, ...]:
    return tuple(ScalarField(v) for v in values)


@dataclass(frozen=True)
class ProofCalldata:
    """Verifier calldata as produced by the proof transform, without its length prefix."""

    felts: Tuple[ScalarField, ...]

    @classmethod
    def from_prefixed(cls, values: Sequence[Union[int, str]]) -> "ProofCalldata":
        if not values:
            raise CalldataLayoutError("empty proof calldata")
        declared = to_int(values[0])
        if declared != len(values) - 1:
            raise CalldataLayoutError(
                f"proof calldata declares {declared} elements but carries {len(values) - 1}"
            )
        return cls(_scalars(values[1:]))

    def __len__(self) -> int:
        return len(self.felts)

    def prefixed(self) -> List[ScalarField]:
        return [ScalarField(len(self.felts)), *self.felts]


@dataclass(frozen=True)
class Calldata:
    """Serialised argument list for one pool entrypoint."""

    kind: str
    values: Tuple[ScalarField, ...]
    proof_length: int = 0

    def __len__(self) -> int:
        return len(self.values)

    def __getitem__(self, i):
        return self.values[i]

    def to_decimal_strings(self) -> List[str]:
        """Relayer wire format."""
        return [v.to_decimal() for v in self.values]

    def to_hex_strings(self) -> List[str]:
        """Direct account invoke format."""
        return [v.to_hex() for v in self.values]

    def relayer_patch_position(self) -> int:
        return relayer_patch_position_from_calldata(self.kind, self.values)

    def patched(self, relayer: int, fee: int) -> "Calldata":
        values = patch_relayer(self.values, self.relayer_patch_position(), relayer, fee)
        return Calldata(self.kind, _scalars(values), self.proof_length)


class Operation:
    KIND: ClassVar[str] = ""
    HAS_PROOF: ClassVar[bool] = True
    LAYOUT: ClassVar[Tuple[Tuple[str, Union[int, str]], ...]] = ()

    def _segment(self, name: str, width: Union[int, str]) -> List[ScalarField]:
        value = getattr(self, name)
        if width == U256:
            return list(_scalars(split_u256(value)))
        if width == VAR:
            items = list(_scalars(value))
            return [ScalarField(len(items)), *items]
        return [ScalarField(value)]

    def public_fields(self) -> List[ScalarField]:
        out: List[ScalarField] = []
        for name, width in self.LAYOUT:
            out.extend(self._segment(name, width))
        return out

    def serialize(self) -> Calldata:
        if self.HAS_PROOF:
            proof: ProofCalldata = getattr(self, "proof")
            return Calldata(self.KIND, tuple(proof.prefixed() + self.public_fields()), len(proof))
        return Calldata(self.KIND, tuple(self.public_fields()))

    def relayer_patch_position(self) -> int:
        return self.serialize().relayer_patch_position()


@dataclass(frozen=True)
class Deposit(Operation):
    KIND: ClassVar[str] = "deposit"
    HAS_PROOF: ClassVar[bool] = False
    LAYOUT: ClassVar[Tuple[Tuple[str, Union[int, str]], ...]] = (
        ("commitment", 1),
        ("amount", U256),
    )

    commitment: int
    amount: int


@dataclass(frozen=True)
class Withdraw(Operation):
    KIND: ClassVar[str] = "withdraw"
    LAYOUT: ClassVar[Tuple[Tuple[str, Union[int, str]], ...]] = (
        ("merkle_root", 1),
        ("nullifier", 1),
        ("change_commitment", 1),
        ("recipient", 1),
        ("amount", U256),
        (RELAYER_FIELD, 1),
        ("fee", U256),
    )

    proof: ProofCalldata
    merkle_root: int
    nullifier: int
    change_commitment: int
    recipient: int
    amount: int
    relayer: int = 0
    fee: int = 0


@dataclass(frozen=True)
class Transfer(Operation):
    KIND: ClassVar[str] = "transfer"
    LAYOUT: ClassVar[Tuple[Tuple[str, Union[int, str]], ...]] = (
        ("merkle_root", 1),
        ("nullifier_1", 1),
        ("nullifier_2", 1),
        ("commitment_1", 1),
        ("commitment_2", 1),
        (RELAYER_FIELD, 1),
        ("fee", U256),
        ("encrypted_note_1", VAR),
        ("encrypted_note_2", VAR),
    )

    proof: ProofCalldata
    merkle_root: int
    nullifier_1: int
    nullifier_2: int
    commitment_1: int
    commitment_2: int
    relayer: int = 0
    fee: int = 0
    encrypted_note_1: Tuple[int, ...] = field(default_factory=tuple)
    encrypted_note_2: Tuple[int, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Transact(Operation):
    KIND: ClassVar[str] = "transact"
    LAYOUT: ClassVar[Tuple[Tuple[str, Union[int, str]], ...]] = (
        ("merkle_root", 1),
        ("nullifier", 1),
        ("partial_commitment", 1),
        ("target_contract", 1),
        ("calldata", VAR),
        ("input_amount", U256),
        ("input_asset", 1),
        ("output_asset", 1),
        ("min_output", U256),
        (RELAYER_FIELD, 1),
        ("fee", U256),
        ("metadata", VAR),
    )

    proof: ProofCalldata
    merkle_root: int
    nullifier: int
    partial_commitment: int
    target_contract: int
    calldata: Tuple[int, ...]
    input_amount: int
    input_asset: int
    output_asset: int
    min_output: int
    relayer: int = 0
    fee: int = 0
    metadata: Tuple[int, ...] = field(default_factory=tuple)


OPERATIONS = {op.KIND: op for op in (Deposit, Withdraw, Transfer, Transact)}
RELAYABLE_KINDS = tuple(k for k, op in OPERATIONS.items() if op.HAS_PROOF)


def relayer_offset(kind: str, public_section: Sequence[Union[int, str]]) -> int:
    """
    Offset of the relayer slot counted from the first element after the proof.
    `public_section` is only read for VAR lengths that precede the slot.
    """
    op = OPERATIONS.get(kind)
    if op is None:
        raise CalldataLayoutError(f"Unknown transaction type: {kind}")
    pos = 0
    for name, width in op.LAYOUT:
        if name == RELAYER_FIELD:
            return pos
        if width == U256:
            pos += 2
        elif width == VAR:
            if pos >= len(public_section):
                raise CalldataLayoutError(f"{kind} calldata truncated before '{name}' length")
            pos += 1 + to_int(public_section[pos])
        else:
            pos += 1
    raise CalldataLayoutError(f"'{kind}' calldata has no relayer slot")


def relayer_patch_position(kind: str, proof_length: int, public_section: Sequence[Union[int, str]] = ()) -> int:
    """1 + proof_length + fixed offset of the relayer slot for `kind`."""
    return 1 + proof_length + relayer_offset(kind, public_section)


def relayer_patch_position_from_calldata(kind: str, calldata: Sequence[Union[int, str]]) -> int:
    """Locate the relayer slot in a full argument list (decimal strings or ints)."""
    if not calldata:
        raise CalldataLayoutError("empty calldata")
    if not OPERATIONS.get(kind, Operation).HAS_PROOF:
        raise CalldataLayoutError(f"'{kind}' calldata has no relayer slot")
    proof_length = to_int(calldata[0])
    pos = relayer_patch_position(kind, proof_length, calldata[1 + proof_length:])
    if pos + 2 >= len(calldata):
        raise CalldataLayoutError(
            f"relayer slot {pos} out of range for {kind} calldata of length {len(calldata)}"
        )
    return pos


def patch_relayer(
    calldata: Sequence[Union[int, str]],
    position: int,
    relayer: int,
    fee: int,
) -> List[Union[int, str]]:
    """
    Copy of `calldata` with [position] = relayer and [position+1, position+2]
    = fee (low, high). Every other slot is carried over untouched.
    """
    if position < 1 or position + 2 >= len(calldata):
        raise CalldataLayoutError(f"patch position {position} out of range for length {len(calldata)}")
    relayer = check_field(relayer, name="relayer")
    try:
        fee_low, fee_high = split_u256(fee)
    except InvalidFieldValue as e:
        raise CalldataLayoutError(f"bad relayer fee: {e}") from e
    out = list(calldata)
    as_str = isinstance(calldata[position], str)
    for i, v in zip(range(position, position + 3), (relayer, fee_low, fee_high)):
        out[i] = str(v) if as_str else v
    return out


__all__ = [
    "CALLDATA_LAYOUT_VERSION",
    "ScalarField",
    "ProofCalldata",
    "Calldata",
    "Operation",
    "Deposit",
    "Withdraw",
    "Transfer",
    "Transact",
    "OPERATIONS",
    "RELAYABLE_KINDS",
    "relayer_offset",
    "relayer_patch_position",
    "relayer_patch_position_from_calldata",
    "patch_relayer",
]
