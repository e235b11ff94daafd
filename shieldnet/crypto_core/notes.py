# shieldnet/crypto_core/notes.py
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

from shieldnet.crypto_core.field import MASK_BITS, check_field
from shieldnet.crypto_core.poseidon import hash1, hash2, hash3, hash4


def random_field_element() -> int:
    """Uniform 251-bit value from the OS CSPRNG (always < STARK_PRIME)."""
    return secrets.randbits(MASK_BITS)


@dataclass(frozen=True)
class KeyPair:
    private_key: int
    public_key: int = field(init=False)

    def __post_init__(self):
        check_field(self.private_key, name="private_key")
        object.__setattr__(self, "public_key", hash1(self.private_key))


def derive_keypair(seed: Optional[int] = None) -> KeyPair:
    """
    Create a KeyPair. With no seed a fresh 251-bit private key is drawn;
    a given seed is used as the private key itself.
    """
    private_key = random_field_element() if seed is None else check_field(seed, name="seed")
    return KeyPair(private_key)


def compute_commitment(amount: int, asset_id: int, blinding: int, owner_key: int) -> int:
    return hash4(amount, asset_id, blinding, owner_key)


def compute_nullifier(commitment: int, private_key: int, position_tag: int) -> int:
    """
    position_tag is the circuit input slot the note is spent from (0 or 1),
    not its Merkle leaf index.
    """
    return hash3(commitment, private_key, position_tag)


def compute_partial_commitment(blinding: int, owner_key: int) -> int:
    """Output binding for transact: amount and asset are fixed by the swap result on-chain."""
    return hash2(blinding, owner_key)


def hash_calldata(values: Iterable[int]) -> int:
    """Fold arbitrary-length calldata into one element: h = H2(h, x), starting at 0."""
    h = 0
    for v in values:
        h = hash2(h, check_field(v, name="calldata"))
    return h


@dataclass
class Note:
    amount: int
    asset_id: int
    blinding: int
    owner_key: int
    commitment: int
    nullifier: int
    leaf_index: int = -1
    spent: bool = False
    created_at: float = field(default_factory=time.time)

    @classmethod
    def create(
        cls,
        amount: int,
        asset_id: int,
        owner: KeyPair,
        blinding: Optional[int] = None,
        leaf_index: int = -1,
    ) -> "Note":
        """Build a note owned by `owner`; the stored nullifier is the slot-0 one."""
        amount = check_field(amount, name="amount")
        asset_id = check_field(asset_id, name="asset_id")
        blinding = random_field_element() if blinding is None else check_field(blinding, name="blinding")
        commitment = compute_commitment(amount, asset_id, blinding, owner.public_key)
        return cls(
            amount=amount,
            asset_id=asset_id,
            blinding=blinding,
            owner_key=owner.public_key,
            commitment=commitment,
            nullifier=compute_nullifier(commitment, owner.private_key, 0),
            leaf_index=leaf_index,
        )

    def nullifier_for_slot(self, private_key: int, slot: int) -> int:
        if slot == 0:
            return self.nullifier
        return compute_nullifier(self.commitment, private_key, slot)

    def verify(self) -> bool:
        return self.commitment == compute_commitment(self.amount, self.asset_id, self.blinding, self.owner_key)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": str(self.amount),
            "asset_id": str(self.asset_id),
            "blinding": str(self.blinding),
            "owner_key": str(self.owner_key),
            "commitment": str(self.commitment),
            "nullifier": str(self.nullifier),
            "leaf_index": self.leaf_index,
            "spent": self.spent,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Note":
        return cls(
            amount=check_field(d["amount"], name="amount"),
            asset_id=check_field(d["asset_id"], name="asset_id"),
            blinding=check_field(d["blinding"], name="blinding"),
            owner_key=check_field(d["owner_key"], name="owner_key"),
            commitment=check_field(d["commitment"], name="commitment"),
            nullifier=check_field(d["nullifier"], name="nullifier"),
            leaf_index=int(d.get("leaf_index", -1)),
            spent=bool(d.get("spent", False)),
            created_at=float(d.get("created_at", 0.0)),
        )


__all__ = [
    "KeyPair",
    "Note",
    "derive_keypair",
    "random_field_element",
    "compute_commitment",
    "compute_nullifier",
    "compute_partial_commitment",
    "hash_calldata",
]
