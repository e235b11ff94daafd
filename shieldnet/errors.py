# shieldnet/errors.py
from __future__ import annotations

from typing import Optional


class ShieldNetError(Exception):
    """Base class for every error raised by the client core."""


class InvalidFieldValue(ShieldNetError, ValueError):
    """A value is negative or does not fit the field it is destined for."""


class IndexOutOfRange(ShieldNetError, IndexError):
    """A Merkle leaf index is unknown (or the tree is full)."""


class InsufficientBalance(ShieldNetError):
    """Unspent notes of the asset cannot cover the requested amount."""

    def __init__(self, message: str, available: int = 0, requested: int = 0):
        super().__init__(message)
        self.available = available
        self.requested = requested


class NoteConsolidationRequired(InsufficientBalance):
    """The balance is there, but not within the circuit's input arity."""


class NoteNotFound(ShieldNetError, KeyError):
    """No note with the given commitment is tracked by the ledger."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "note not found"


class ProverFailure(ShieldNetError):
    """External proof generation threw or returned malformed output."""


class RelayRejected(ShieldNetError):
    """
    Relayer reported a simulation failure or an on-chain revert.

    `outcome_unknown` is set when the request may have been broadcast before
    the failure (e.g. a read timeout); the spend must be reconciled with the
    pool's leaves before it is retried.
    """

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        tx_hash: Optional[str] = None,
        outcome_unknown: bool = False,
    ):
        super().__init__(message)
        self.details = details
        self.tx_hash = tx_hash
        self.outcome_unknown = outcome_unknown


class StorageCorrupt(ShieldNetError):
    """Persisted wallet state failed to parse. Never auto-repaired."""


class SpendInProgress(ShieldNetError):
    """Another spend against the same key has not resolved yet."""


class CalldataLayoutError(ShieldNetError, ValueError):
    """Calldata does not match the layout expected for its operation kind."""


class TreeDivergence(ShieldNetError):
    """Leaves reported by the pool disagree with the locally mirrored tree."""


__all__ = [
    "ShieldNetError",
    "InvalidFieldValue",
    "IndexOutOfRange",
    "InsufficientBalance",
    "NoteConsolidationRequired",
    "NoteNotFound",
    "ProverFailure",
    "RelayRejected",
    "StorageCorrupt",
    "SpendInProgress",
    "CalldataLayoutError",
    "TreeDivergence",
]
