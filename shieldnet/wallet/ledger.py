# shieldnet/wallet/ledger.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from shieldnet.crypto_core.field import check_field
from shieldnet.crypto_core.notes import KeyPair, Note
from shieldnet.crypto_core.poseidon import hash3
from shieldnet.crypto_core.splits import greedy_coin_select, largest_first
from shieldnet.errors import (
    InsufficientBalance,
    InvalidFieldValue,
    NoteConsolidationRequired,
    NoteNotFound,
)

LOG = logging.getLogger("shieldnet.ledger")
LOG.addHandler(logging.NullHandler())


@dataclass
class Selection:
    selected: List[Note]
    dummies: List[Note] = field(default_factory=list)
    total: int = 0
    target: int = 0

    @property
    def change_amount(self) -> int:
        return self.total - self.target

    @property
    def inputs(self) -> List[Note]:
        """Real notes first, then padding; list position is the circuit slot."""
        return self.selected + self.dummies


def dummy_note(keypair: KeyPair, asset_id: int, slot: int, seed: int) -> Note:
    """
    Zero-amount padding input for `slot`.

    `seed` is the commitment of the spend's first real input. A retried spend
    rebuilds identical circuit inputs, while every distinct spend gets a fresh
    padding commitment and so never republishes a padding nullifier.
    """
    blinding = hash3(keypair.private_key, seed, slot)
    return Note.create(0, asset_id, keypair, blinding=blinding, leaf_index=0)


def make_change_note(amount: int, asset_id: int, keypair: KeyPair) -> Note:
    """Fresh change output to self. leaf_index stays -1 until the spend is confirmed."""
    return Note.create(amount, asset_id, keypair)


class NoteLedger:
    """The wallet's notes keyed by commitment, iterated in insertion order."""

    def __init__(self, notes: Optional[List[Note]] = None):
        self._notes: Dict[int, Note] = {}
        for n in notes or []:
            self.add_note(n)

    def __len__(self) -> int:
        return len(self._notes)

    def __iter__(self) -> Iterator[Note]:
        return iter(list(self._notes.values()))

    def __contains__(self, commitment: object) -> bool:
        return commitment in self._notes

    def add_note(self, note: Note) -> bool:
        """Returns False if a note with the same commitment is already tracked."""
        if note.commitment in self._notes:
            LOG.debug("note %s already tracked", hex(note.commitment))
            return False
        self._notes[note.commitment] = note
        return True

    def get(self, commitment: int) -> Note:
        try:
            return self._notes[commitment]
        except KeyError:
            raise NoteNotFound(f"unknown note commitment {hex(commitment)}") from None

    def mark_spent(self, commitment: int) -> None:
        note = self.get(commitment)
        if not note.spent:
            note.spent = True
            LOG.info("note %s marked spent", hex(commitment))

    def notes(self) -> List[Note]:
        return list(self._notes.values())

    def unspent_notes(self, asset_id: Optional[int] = None) -> List[Note]:
        return [
            n for n in self._notes.values()
            if not n.spent and (asset_id is None or n.asset_id == asset_id)
        ]

    def shielded_balance(self, asset_id: int) -> int:
        return sum(n.amount for n in self.unspent_notes(asset_id))

    def select_for_spend(
        self,
        target_amount: int,
        max_inputs: int,
        asset_id: int,
        keypair: KeyPair,
        arity: Optional[int] = None,
    ) -> Selection:
        """
        Pick unspent notes of `asset_id` covering `target_amount`.

        Insertion order first; if the first `max_inputs` notes cannot reach the
        target but the asset balance can, retry with the largest notes first.

        Raises:
            InsufficientBalance: the asset balance is below the target
            NoteConsolidationRequired: no `max_inputs`-sized subset found
        """
        target = check_field(target_amount, name="target_amount")
        if target == 0:
            raise InvalidFieldValue("target_amount must be positive")
        arity = max_inputs if arity is None else arity
        if max_inputs < 1 or max_inputs > arity:
            raise InvalidFieldValue(f"max_inputs={max_inputs} must be within 1..{arity}")

        candidates = self.unspent_notes(asset_id)
        available = sum(n.amount for n in candidates)
        if available < target:
            raise InsufficientBalance(
                f"Insufficient shielded balance: have {available}, need {target}",
                available=available,
                requested=target,
            )

        chosen, total = greedy_coin_select(candidates, target, max_inputs)
        if not chosen:
            chosen, total = greedy_coin_select(largest_first(candidates), target, max_inputs)
        if not chosen:
            raise NoteConsolidationRequired(
                f"Balance {available} covers {target} only with more than {max_inputs} input note(s); "
                "consolidate notes first",
                available=available,
                requested=target,
            )

        dummies = [dummy_note(keypair, asset_id, slot, chosen[0].commitment) for slot in range(len(chosen), arity)]
        LOG.debug("selected %d note(s) + %d dummy, total=%d target=%d", len(chosen), len(dummies), total, target)
        return Selection(selected=chosen, dummies=dummies, total=total, target=target)


__all__ = ["NoteLedger", "Selection", "dummy_note", "make_change_note"]
