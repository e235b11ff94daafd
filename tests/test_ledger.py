"""Note ledger bookkeeping and input selection."""

import pytest

from shieldnet.crypto_core.notes import Note
from shieldnet.crypto_core.splits import greedy_coin_select, largest_first
from shieldnet.errors import (
    InsufficientBalance,
    InvalidFieldValue,
    NoteConsolidationRequired,
    NoteNotFound,
)
from shieldnet.wallet.ledger import NoteLedger, dummy_note, make_change_note

from conftest import ASSET

OTHER_ASSET = 0x53C91253BC9682C04929CA02ED00B3E423F6710D2EE7E0D5EBB06F3ECF368A8


def _ledger(keypair, amounts, asset=ASSET):
    ledger = NoteLedger()
    for i, a in enumerate(amounts):
        ledger.add_note(Note.create(a, asset, keypair, blinding=i + 1, leaf_index=i))
    return ledger


class TestBookkeeping:
    def test_add_is_keyed_by_commitment(self, keypair) -> None:
        ledger = NoteLedger()
        n = Note.create(10, ASSET, keypair, blinding=1)
        assert ledger.add_note(n) is True
        assert ledger.add_note(Note.create(10, ASSET, keypair, blinding=1)) is False
        assert len(ledger) == 1
        assert n.commitment in ledger
        assert ledger.get(n.commitment) is n

    def test_unknown_commitment(self) -> None:
        with pytest.raises(NoteNotFound):
            NoteLedger().get(123)
        with pytest.raises(KeyError):
            NoteLedger().mark_spent(123)

    def test_balance_excludes_spent_and_other_assets(self, keypair) -> None:
        ledger = _ledger(keypair, [100, 200, 300])
        ledger.add_note(Note.create(999, OTHER_ASSET, keypair, blinding=50))
        assert ledger.shielded_balance(ASSET) == 600
        first = ledger.notes()[0]
        ledger.mark_spent(first.commitment)
        assert ledger.shielded_balance(ASSET) == 500
        assert ledger.shielded_balance(OTHER_ASSET) == 999

    def test_mark_spent_is_idempotent(self, keypair) -> None:
        ledger = _ledger(keypair, [100, 200])
        c = ledger.notes()[1].commitment
        ledger.mark_spent(c)
        ledger.mark_spent(c)
        assert ledger.shielded_balance(ASSET) == 100
        assert len(ledger.unspent_notes()) == 1

    def test_iteration_keeps_insertion_order(self, keypair) -> None:
        ledger = _ledger(keypair, [3, 1, 2])
        assert [n.amount for n in ledger] == [3, 1, 2]


class TestSelection:
    def test_single_note_covers(self, keypair) -> None:
        ledger = _ledger(keypair, [500, 1000])
        sel = ledger.select_for_spend(400, 1, ASSET, keypair)
        assert [n.amount for n in sel.selected] == [500]
        assert sel.total == 500
        assert sel.change_amount == 100
        assert sel.dummies == []

    def test_falls_back_to_largest_first(self, keypair) -> None:
        ledger = _ledger(keypair, [10, 20, 1000])
        sel = ledger.select_for_spend(900, 1, ASSET, keypair)
        assert [n.amount for n in sel.selected] == [1000]

    def test_two_inputs(self, keypair) -> None:
        ledger = _ledger(keypair, [300, 300, 300])
        sel = ledger.select_for_spend(500, 2, ASSET, keypair)
        assert len(sel.selected) == 2
        assert sel.total == 600
        assert sel.change_amount == 100

    def test_padding_fills_remaining_slots(self, keypair) -> None:
        ledger = _ledger(keypair, [1000])
        sel = ledger.select_for_spend(100, 2, ASSET, keypair)
        assert len(sel.selected) == 1
        assert len(sel.inputs) == 2
        dummy = sel.inputs[1]
        assert dummy.amount == 0
        assert dummy.commitment == dummy_note(keypair, ASSET, 1, sel.selected[0].commitment).commitment

    def test_padding_differs_between_spends(self, keypair) -> None:
        ledger = _ledger(keypair, [1000, 2000])
        first = ledger.select_for_spend(100, 2, ASSET, keypair, arity=2)
        ledger.mark_spent(first.selected[0].commitment)
        second = ledger.select_for_spend(100, 2, ASSET, keypair, arity=2)
        assert first.selected[0].commitment != second.selected[0].commitment
        assert first.dummies[0].nullifier_for_slot(keypair.private_key, 1) != second.dummies[0].nullifier_for_slot(
            keypair.private_key, 1
        )

    def test_selection_properties(self, keypair) -> None:
        ledger = _ledger(keypair, [70, 5, 40, 90, 15])
        for target in (1, 50, 90, 130, 160):
            sel = ledger.select_for_spend(target, 2, ASSET, keypair)
            assert sel.total >= target
            assert sel.total == sum(n.amount for n in sel.selected)
            assert len({n.commitment for n in sel.selected}) == len(sel.selected) <= 2
            assert all(not n.spent and n.asset_id == ASSET for n in sel.selected)

    def test_skips_spent_notes(self, keypair) -> None:
        ledger = _ledger(keypair, [1000, 1000])
        first = ledger.notes()[0]
        ledger.mark_spent(first.commitment)
        sel = ledger.select_for_spend(100, 1, ASSET, keypair)
        assert sel.selected[0] is not first

    def test_insufficient_balance(self, keypair) -> None:
        ledger = _ledger(keypair, [100, 200])
        with pytest.raises(InsufficientBalance) as exc:
            ledger.select_for_spend(301, 2, ASSET, keypair)
        assert exc.value.available == 300
        assert exc.value.requested == 301

    def test_other_asset_does_not_count(self, keypair) -> None:
        ledger = _ledger(keypair, [1000], asset=OTHER_ASSET)
        with pytest.raises(InsufficientBalance):
            ledger.select_for_spend(1, 1, ASSET, keypair)

    def test_consolidation_required(self, keypair) -> None:
        ledger = _ledger(keypair, [100, 100, 100])
        with pytest.raises(NoteConsolidationRequired) as exc:
            ledger.select_for_spend(250, 2, ASSET, keypair)
        assert isinstance(exc.value, InsufficientBalance)
        assert exc.value.available == 300

    def test_rejects_zero_target_and_bad_window(self, keypair) -> None:
        ledger = _ledger(keypair, [100])
        with pytest.raises(InvalidFieldValue):
            ledger.select_for_spend(0, 1, ASSET, keypair)
        with pytest.raises(InvalidFieldValue):
            ledger.select_for_spend(10, 3, ASSET, keypair, arity=2)


class TestHelpers:
    def test_dummy_note_is_deterministic(self, keypair) -> None:
        a, b = dummy_note(keypair, ASSET, 1, 77), dummy_note(keypair, ASSET, 1, 77)
        assert a.commitment == b.commitment
        assert a.commitment != dummy_note(keypair, ASSET, 0, 77).commitment
        assert a.commitment != dummy_note(keypair, ASSET, 1, 78).commitment
        assert a.amount == 0 and a.leaf_index == 0

    def test_change_note(self, keypair) -> None:
        n = make_change_note(42, ASSET, keypair)
        assert n.amount == 42 and n.owner_key == keypair.public_key and n.leaf_index == -1

    def test_greedy_returns_empty_on_shortfall(self) -> None:
        assert greedy_coin_select([5, 5], 20, 2, amount=lambda x: x) == ([], 0)
        assert greedy_coin_select([5, 15, 1], 20, 2, amount=lambda x: x) == ([5, 15], 20)

    def test_largest_first_is_stable(self) -> None:
        items = [(1, "a"), (3, "b"), (1, "c"), (3, "d")]
        assert largest_first(items, amount=lambda x: x[0]) == [(3, "b"), (3, "d"), (1, "a"), (1, "c")]
