"""Calldata layouts and relayer patch positions."""

import pytest

from shieldnet.errors import CalldataLayoutError, InvalidFieldValue
from shieldnet.wallet.calldata import (
    RELAYABLE_KINDS,
    Calldata,
    Deposit,
    ProofCalldata,
    ScalarField,
    Transact,
    Transfer,
    Withdraw,
    patch_relayer,
    relayer_offset,
    relayer_patch_position,
    relayer_patch_position_from_calldata,
)

PROOF = ProofCalldata.from_prefixed(["3", "111", "222", "333"])
RELAYER = 0x0123456789ABCDEF


def _withdraw(**kw) -> Withdraw:
    args = dict(
        proof=PROOF,
        merkle_root=11,
        nullifier=12,
        change_commitment=13,
        recipient=14,
        amount=(5 << 128) | 7,
    )
    args.update(kw)
    return Withdraw(**args)


def _transact(calldata=(1, 2, 3), **kw) -> Transact:
    args = dict(
        proof=PROOF,
        merkle_root=11,
        nullifier=12,
        partial_commitment=13,
        target_contract=14,
        calldata=calldata,
        input_amount=1000,
        input_asset=15,
        output_asset=16,
        min_output=900,
        metadata=(8, 9),
    )
    args.update(kw)
    return Transact(**args)


class TestProofCalldata:
    def test_prefix_round_trip(self) -> None:
        assert len(PROOF) == 3
        assert [int(x) for x in PROOF.prefixed()] == [3, 111, 222, 333]

    def test_length_mismatch(self) -> None:
        with pytest.raises(CalldataLayoutError):
            ProofCalldata.from_prefixed(["4", "1", "2"])
        with pytest.raises(CalldataLayoutError):
            ProofCalldata.from_prefixed([])

    def test_scalar_range(self) -> None:
        with pytest.raises(InvalidFieldValue):
            ScalarField(-1)
        assert ScalarField("0x10").to_decimal() == "16"


class TestLayouts:
    def test_deposit(self) -> None:
        cd = Deposit(commitment=99, amount=(1 << 128) + 2).serialize()
        assert [int(x) for x in cd] == [99, 2, 1]
        assert cd.proof_length == 0

    def test_withdraw_order(self) -> None:
        cd = _withdraw().serialize()
        assert [int(x) for x in cd] == [3, 111, 222, 333, 11, 12, 13, 14, 7, 5, 0, 0, 0]
        assert cd.proof_length == 3

    def test_transfer_with_encrypted_notes(self) -> None:
        cd = Transfer(
            proof=PROOF,
            merkle_root=1,
            nullifier_1=2,
            nullifier_2=3,
            commitment_1=4,
            commitment_2=5,
            fee=6,
            encrypted_note_1=(70, 71),
            encrypted_note_2=(),
        ).serialize()
        assert [int(x) for x in cd][4:] == [1, 2, 3, 4, 5, 0, 6, 0, 2, 70, 71, 0]

    def test_transact_var_sections(self) -> None:
        cd = _transact().serialize()
        public = [int(x) for x in cd][4:]
        assert public[:8] == [11, 12, 13, 14, 3, 1, 2, 3]
        assert public[-3:] == [2, 8, 9]

    def test_string_encodings(self) -> None:
        cd = Deposit(commitment=255, amount=1).serialize()
        assert cd.to_decimal_strings() == ["255", "1", "0"]
        assert cd.to_hex_strings() == ["0xff", "0x1", "0x0"]

    def test_only_proved_kinds_are_relayable(self) -> None:
        assert set(RELAYABLE_KINDS) == {"withdraw", "transfer", "transact"}


class TestRelayerPosition:
    def test_fixed_offsets(self) -> None:
        assert relayer_offset("withdraw", []) == 6
        assert relayer_offset("transfer", []) == 5

    def test_withdraw_position(self) -> None:
        assert relayer_patch_position("withdraw", 3) == 10
        assert _withdraw().relayer_patch_position() == 10

    def test_transfer_position(self) -> None:
        assert relayer_patch_position("transfer", 3) == 9

    @pytest.mark.parametrize("n", [0, 1, 5])
    def test_transact_position_tracks_calldata_length(self, n) -> None:
        op = _transact(calldata=tuple(range(n)))
        cd = op.serialize()
        pos = cd.relayer_patch_position()
        assert pos == 1 + 3 + 4 + 1 + n + 6
        assert int(cd[pos]) == 0 and int(cd[pos - 1]) == 0 and int(cd[pos - 3]) == 16

    def test_position_lands_on_relayer_slot(self) -> None:
        cd = _withdraw(relayer=RELAYER, fee=77).serialize()
        pos = cd.relayer_patch_position()
        assert int(cd[pos]) == RELAYER
        assert int(cd[pos + 1]) == 77

    def test_from_decimal_strings(self) -> None:
        wire = _withdraw().serialize().to_decimal_strings()
        assert relayer_patch_position_from_calldata("withdraw", wire) == 10

    def test_unknown_and_unrelayable_kinds(self) -> None:
        with pytest.raises(CalldataLayoutError):
            relayer_offset("mint", [])
        with pytest.raises(CalldataLayoutError):
            relayer_offset("deposit", [])
        with pytest.raises(CalldataLayoutError):
            relayer_patch_position_from_calldata("deposit", ["1", "2", "3"])

    def test_truncated_calldata(self) -> None:
        with pytest.raises(CalldataLayoutError):
            relayer_patch_position_from_calldata("withdraw", ["3", "1", "2", "3", "4"])
        with pytest.raises(CalldataLayoutError):
            relayer_patch_position_from_calldata("transact", ["0", "1", "2", "3"])


class TestPatch:
    def test_only_relayer_and_fee_change(self) -> None:
        wire = _withdraw().serialize().to_decimal_strings()
        out = patch_relayer(wire, 10, RELAYER, (1 << 128) + 3)
        assert out[:10] == wire[:10]
        assert out[10:] == [str(RELAYER), "3", "1"]
        assert wire[10] == "0"

    def test_keeps_int_type(self) -> None:
        out = patch_relayer([3, 1, 2, 3, 0, 0, 0], 4, 9, 5)
        assert out == [3, 1, 2, 3, 9, 5, 0]

    def test_patched_calldata(self) -> None:
        cd = _transact().serialize()
        patched = cd.patched(RELAYER, 42)
        pos = cd.relayer_patch_position()
        assert isinstance(patched, Calldata)
        assert int(patched[pos]) == RELAYER and int(patched[pos + 1]) == 42
        assert [int(x) for i, x in enumerate(patched) if i not in (pos, pos + 1, pos + 2)] == [
            int(x) for i, x in enumerate(cd) if i not in (pos, pos + 1, pos + 2)
        ]

    def test_out_of_range(self) -> None:
        with pytest.raises(CalldataLayoutError):
            patch_relayer(["1", "2", "3"], 1, RELAYER, 0)
        with pytest.raises(CalldataLayoutError):
            patch_relayer(["0", "0", "0", "0"], 1, RELAYER, -1)
