# shieldnet/wallet/circuit_inputs.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

from shieldnet.crypto_core.field import to_hex, to_hex_list
from shieldnet.crypto_core.merkle import MerkleAccumulator, MerkleProof
from shieldnet.crypto_core.notes import KeyPair, Note, compute_commitment, random_field_element
from shieldnet.errors import InvalidFieldValue

CircuitInputs = Dict[str, Union[str, List[str], List[List[str]]]]

UNSHIELD_CIRCUIT = "unshield"
TRANSFER_CIRCUIT = "transfer"
TRANSACT_CIRCUIT = "transact"


@dataclass(frozen=True)
class OutputSpec:
    """A note to be created by a spend; owner_key may belong to someone else."""

    amount: int
    asset_id: int
    owner_key: int
    blinding: int
    commitment: int

    @classmethod
    def new(cls, amount: int, asset_id: int, owner_key: int, blinding: Optional[int] = None) -> "OutputSpec":
        blinding = random_field_element() if blinding is None else blinding
        return cls(amount, asset_id, owner_key, blinding, compute_commitment(amount, asset_id, blinding, owner_key))

    def to_note(self, keypair: KeyPair, leaf_index: int) -> Note:
        if self.owner_key != keypair.public_key:
            raise InvalidFieldValue("output is not owned by this key")
        return Note.create(self.amount, self.asset_id, keypair, blinding=self.blinding, leaf_index=leaf_index)


@dataclass(frozen=True)
class InputWitness:
    """A note in its circuit slot with the Merkle path the circuit checks."""

    note: Note
    slot: int
    nullifier: int
    siblings: List[int]
    path_bits: List[int]
    leaf_index: int


def input_witnesses(
    inputs: Sequence[Note],
    tree: MerkleAccumulator,
    keypair: KeyPair,
) -> List[InputWitness]:
    """
    Real notes get their inclusion proof; zero-amount padding notes get the
    all-zero path at index 0 (the circuit skips membership for amount 0).
    """
    out = []
    for slot, note in enumerate(inputs):
        if note.amount == 0:
            siblings = list(tree.zero_values[: tree.depth])
            bits = [0] * tree.depth
            index = 0
        else:
            proof: MerkleProof = tree.get_proof(note.leaf_index)
            if proof.leaf != note.commitment:
                raise InvalidFieldValue(
                    f"leaf {note.leaf_index} is {hex(proof.leaf)}, expected {hex(note.commitment)}"
                )
            siblings, bits, index = proof.siblings, proof.path_bits, note.leaf_index
        out.append(
            InputWitness(
                note=note,
                slot=slot,
                nullifier=note.nullifier_for_slot(keypair.private_key, slot),
                siblings=siblings,
                path_bits=bits,
                leaf_index=index,
            )
        )
    return out


def unshield_inputs(
    witness: InputWitness,
    keypair: KeyPair,
    change: OutputSpec,
    merkle_root: int,
    recipient: int,
    withdraw_amount: int,
    relayer_fee: int,
) -> CircuitInputs:
    n = witness.note
    return {
        "in_amount": to_hex(n.amount),
        "in_asset_id": to_hex(n.asset_id),
        "in_blinding": to_hex(n.blinding),
        "in_priv_key": to_hex(keypair.private_key),
        "in_path": to_hex_list(witness.path_bits),
        "in_siblings": to_hex_list(witness.siblings),
        "change_amount": to_hex(change.amount),
        "change_blinding": to_hex(change.blinding),
        "change_pub_key": to_hex(change.owner_key),
        "merkle_root": to_hex(merkle_root),
        "nullifier": to_hex(witness.nullifier),
        "change_commitment": to_hex(change.commitment),
        "recipient": to_hex(recipient),
        "withdraw_amount": to_hex(withdraw_amount),
        "relayer_fee": to_hex(relayer_fee),
    }


def transfer_inputs(
    witnesses: Sequence[InputWitness],
    keypair: KeyPair,
    outputs: Sequence[OutputSpec],
    merkle_root: int,
    relayer_fee: int,
) -> CircuitInputs:
    return {
        "priv_key": to_hex(keypair.private_key),
        "in_amounts": to_hex_list(w.note.amount for w in witnesses),
        "in_asset_ids": to_hex_list(w.note.asset_id for w in witnesses),
        "in_blindings": to_hex_list(w.note.blinding for w in witnesses),
        "in_owner_keys": to_hex_list(w.note.owner_key for w in witnesses),
        "in_indices": to_hex_list(w.leaf_index for w in witnesses),
        "in_merkle_paths": [to_hex_list(w.siblings) for w in witnesses],
        "nullifiers": to_hex_list(w.nullifier for w in witnesses),
        "out_amounts": to_hex_list(o.amount for o in outputs),
        "out_blindings": to_hex_list(o.blinding for o in outputs),
        "out_owner_keys": to_hex_list(o.owner_key for o in outputs),
        "out_commitments": to_hex_list(o.commitment for o in outputs),
        "merkle_root": to_hex(merkle_root),
        "relayer_fee": to_hex(relayer_fee),
    }


def transact_inputs(
    witness: InputWitness,
    keypair: KeyPair,
    out_blinding: int,
    partial_commitment: int,
    merkle_root: int,
    target_contract: int,
    calldata_hash: int,
    relayer_fee: int,
) -> CircuitInputs:
    n = witness.note
    return {
        "priv_key": to_hex(keypair.private_key),
        "in_amount": to_hex(n.amount),
        "in_asset_id": to_hex(n.asset_id),
        "in_blinding": to_hex(n.blinding),
        "in_owner_key": to_hex(n.owner_key),
        "in_index": to_hex(witness.leaf_index),
        "in_merkle_path": to_hex_list(witness.siblings),
        "out_blinding": to_hex(out_blinding),
        "out_owner_key": to_hex(keypair.public_key),
        "merkle_root": to_hex(merkle_root),
        "nullifier": to_hex(witness.nullifier),
        "partial_commitment": to_hex(partial_commitment),
        "target_contract": to_hex(target_contract),
        "calldata_hash": to_hex(calldata_hash),
        "relayer_fee": to_hex(relayer_fee),
    }


__all__ = [
    "CircuitInputs",
    "OutputSpec",
    "InputWitness",
    "input_witnesses",
    "unshield_inputs",
    "transfer_inputs",
    "transact_inputs",
    "UNSHIELD_CIRCUIT",
    "TRANSFER_CIRCUIT",
    "TRANSACT_CIRCUIT",
]
