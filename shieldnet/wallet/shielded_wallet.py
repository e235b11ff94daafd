"""
Spend orchestration for one shielded key.

Every operation follows the same sequence: select notes, build witnesses,
prove, serialise calldata, submit, and only then touch local state. Any
exception before the submitter confirms leaves the ledger, the tree and the
wallet file exactly as they were.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

from shieldnet import config
from shieldnet.api.logging_config import get_logger
from shieldnet.crypto_core.field import check_field, check_u256, to_hex, to_int
from shieldnet.crypto_core.merkle import MerkleAccumulator, verify_proof
from shieldnet.crypto_core.messages import open_note, seal_note, viewing_public_key
from shieldnet.crypto_core.notes import (
    KeyPair,
    Note,
    compute_partial_commitment,
    derive_keypair,
    hash_calldata,
    random_field_element,
)
from shieldnet.database.store import WalletState, WalletStore
from shieldnet.errors import (
    IndexOutOfRange,
    InsufficientBalance,
    InvalidFieldValue,
    NoteConsolidationRequired,
    ProverFailure,
    RelayRejected,
    SpendInProgress,
    TreeDivergence,
)
from shieldnet.wallet.calldata import Calldata, Deposit, ProofCalldata, Transact, Transfer, Withdraw
from shieldnet.wallet.circuit_inputs import (
    TRANSACT_CIRCUIT,
    TRANSFER_CIRCUIT,
    UNSHIELD_CIRCUIT,
    CircuitInputs,
    OutputSpec,
    input_witnesses,
    transact_inputs,
    transfer_inputs,
    unshield_inputs,
)
from shieldnet.wallet.ledger import NoteLedger, Selection
from shieldnet.wallet.prover import ProverRuntime, get_prover_runtime, to_proof_calldata

logger = get_logger("wallet")


@dataclass(frozen=True)
class SubmitReceipt:
    tx_hash: str
    execution_status: str = "SUCCEEDED"


class Submitter(Protocol):
    """Submits calldata and returns only once the transaction is confirmed."""

    def submit(self, kind: str, calldata: Calldata, public_inputs: Dict[str, str]) -> SubmitReceipt: ...


@dataclass
class SpendResult:
    kind: str
    receipt: SubmitReceipt
    calldata: Calldata
    spent: List[Note] = field(default_factory=list)
    created: List[Note] = field(default_factory=list)


@dataclass
class TransactResult(SpendResult):
    out_blinding: int = 0
    partial_commitment: int = 0
    output_asset: int = 0


class ShieldedWallet:
    """
    Args:
        keypair: Spending key
        submitter: Deposit signer or relayer client
        store: Wallet file; state is persisted after every confirmed change
        runtime: Prover runtime (default: the process-wide one)
        tree: Mirrored commitment tree (default: empty, MERKLE_DEPTH)
        ledger: Known notes (default: empty)
        asset_id: Default asset for operations
    """

    def __init__(
        self,
        keypair: KeyPair,
        submitter: Optional[Submitter] = None,
        store: Optional[WalletStore] = None,
        runtime: Optional[ProverRuntime] = None,
        tree: Optional[MerkleAccumulator] = None,
        ledger: Optional[NoteLedger] = None,
        asset_id: Optional[int] = None,
    ):
        self.keypair = keypair
        self.submitter = submitter
        self.store = store
        self.runtime = runtime
        self.tree = tree if tree is not None else MerkleAccumulator(config.MERKLE_DEPTH)
        self.ledger = ledger if ledger is not None else NoteLedger()
        self.asset_id = to_int(asset_id if asset_id is not None else config.STRK_ADDRESS)
        self._spend_lock = threading.Lock()

    # ===== Construction / persistence =====
    @classmethod
    def open(
        cls,
        store: WalletStore,
        submitter: Optional[Submitter] = None,
        runtime: Optional[ProverRuntime] = None,
        depth: Optional[int] = None,
        create: bool = True,
    ) -> "ShieldedWallet":
        """Load the wallet for the store's version tag, creating a fresh key if none exists."""
        state = store.load()
        if state is None:
            if not create:
                raise FileNotFoundError(str(store.path))
            wallet = cls(derive_keypair(), submitter, store, runtime, MerkleAccumulator(depth or config.MERKLE_DEPTH))
            wallet._persist()
            logger.info(f"Created new wallet at {store.path}")
            return wallet
        tree = MerkleAccumulator.from_leaves(depth or config.MERKLE_DEPTH, state.leaves)
        return cls(KeyPair(state.private_key), submitter, store, runtime, tree, NoteLedger(state.notes))

    def _persist(self) -> None:
        if self.store is not None:
            self.store.save(WalletState(self.keypair.private_key, self.ledger.notes(), self.tree.leaves))

    @property
    def viewing_key(self) -> bytes:
        return viewing_public_key(self.keypair.private_key)

    def balance(self, asset_id: Optional[int] = None) -> int:
        return self.ledger.shielded_balance(self._asset(asset_id))

    def _asset(self, asset_id: Optional[int]) -> int:
        return self.asset_id if asset_id is None else check_field(asset_id, name="asset_id")

    @contextmanager
    def _spend_guard(self) -> Iterator[None]:
        if not self._spend_lock.acquire(blocking=False):
            raise SpendInProgress("another spend from this wallet has not resolved yet")
        try:
            yield
        finally:
            self._spend_lock.release()

    def _require_submitter(self) -> Submitter:
        if self.submitter is None:
            raise RuntimeError("no submitter configured")
        return self.submitter

    def _submit(self, kind: str, calldata: Calldata, public_inputs: Dict[str, str]) -> SubmitReceipt:
        try:
            return self._require_submitter().submit(kind, calldata, public_inputs)
        except RelayRejected as e:
            if e.outcome_unknown:
                logger.warning(
                    f"{kind} may have landed (tx={e.tx_hash}); local state left untouched, "
                    "run sync_leaves before retrying"
                )
            raise

    def _prove(self, circuit: str, inputs: CircuitInputs) -> Tuple[ProofCalldata, List[str]]:
        runtime = self.runtime or get_prover_runtime()
        logger.info(f"Generating {circuit} proof")
        try:
            result = runtime.prover.generate_proof(circuit, inputs)
        except ProverFailure:
            raise
        except Exception as e:
            raise ProverFailure(f"{circuit} proof generation failed: {e}") from e
        return to_proof_calldata(runtime.transform, result), list(result.public_inputs)

    def _check_witness_root(self, selection: Selection, root: int) -> None:
        for note in selection.selected:
            proof = self.tree.get_proof(note.leaf_index)
            if not verify_proof(note.commitment, proof, root):
                raise TreeDivergence(f"note {hex(note.commitment)} is not at leaf {note.leaf_index}")

    def _check_capacity(self, n_outputs: int) -> None:
        if len(self.tree) + n_outputs > self.tree.capacity:
            raise IndexOutOfRange(f"commitment tree is full ({len(self.tree)}/{self.tree.capacity} leaves)")

    def _commit(self, spent: Sequence[Note], outputs: Sequence[OutputSpec]) -> List[Note]:
        """Apply a confirmed spend: mark inputs spent, append outputs in calldata order."""
        created = []
        for note in spent:
            self.ledger.mark_spent(note.commitment)
        for out in outputs:
            index = self.tree.insert(out.commitment)
            if out.amount > 0 and out.owner_key == self.keypair.public_key:
                note = out.to_note(self.keypair, index)
                self.ledger.add_note(note)
                created.append(note)
        self._persist()
        return created

    # ===== Operations =====
    def deposit(self, amount: int, asset_id: Optional[int] = None) -> SpendResult:
        """Shield `amount` of the asset into a new note owned by this wallet."""
        amount = check_field(amount, name="amount")
        if amount == 0:
            raise InvalidFieldValue("deposit amount must be positive")
        asset = self._asset(asset_id)
        out = OutputSpec.new(amount, asset, self.keypair.public_key)
        calldata = Deposit(commitment=out.commitment, amount=amount).serialize()

        with self._spend_guard():
            self._check_capacity(1)
            receipt = self._submit(Deposit.KIND, calldata, {"commitment": to_hex(out.commitment)})
            created = self._commit([], [out])
        logger.info(f"Deposit confirmed: tx={receipt.tx_hash} leaf={created[0].leaf_index}")
        return SpendResult(Deposit.KIND, receipt, calldata, [], created)

    def withdraw(self, amount: int, recipient: int, fee: int = 0, asset_id: Optional[int] = None) -> SpendResult:
        """Unshield `amount` to a public `recipient`; the relayer fee comes out of the same note."""
        amount = check_field(amount, name="amount")
        fee = check_field(fee, name="fee")
        recipient = check_field(recipient, name="recipient")
        asset = self._asset(asset_id)

        with self._spend_guard():
            sel = self.ledger.select_for_spend(
                amount + fee, config.WITHDRAW_INPUTS, asset, self.keypair, arity=config.WITHDRAW_INPUTS
            )
            change = OutputSpec.new(sel.change_amount, asset, self.keypair.public_key)
            self._check_capacity(1)
            root = self.tree.get_root()
            self._check_witness_root(sel, root)
            (w,) = input_witnesses(sel.inputs, self.tree, self.keypair)

            proof, _ = self._prove(UNSHIELD_CIRCUIT, unshield_inputs(w, self.keypair, change, root, recipient, amount, fee))
            calldata = Withdraw(
                proof=proof,
                merkle_root=root,
                nullifier=w.nullifier,
                change_commitment=change.commitment,
                recipient=recipient,
                amount=amount,
                fee=fee,
            ).serialize()

            receipt = self._submit(
                Withdraw.KIND,
                calldata,
                {"merkle_root": to_hex(root), "nullifier": to_hex(w.nullifier), "relayer_fee": str(fee)},
            )
            created = self._commit(sel.selected, [change])
        logger.info(f"Withdraw confirmed: tx={receipt.tx_hash} amount={amount} fee={fee}")
        return SpendResult(Withdraw.KIND, receipt, calldata, sel.selected, created)

    def transfer(
        self,
        amount: int,
        recipient_key: int,
        recipient_viewing_key: Optional[bytes] = None,
        fee: int = 0,
        asset_id: Optional[int] = None,
    ) -> SpendResult:
        """
        Send `amount` to another shielded key. Output 1 goes to the recipient,
        output 2 is change to self; both ride in calldata encrypted when a
        viewing key is known.
        """
        amount = check_field(amount, name="amount")
        fee = check_field(fee, name="fee")
        recipient_key = check_field(recipient_key, name="recipient_key")
        asset = self._asset(asset_id)

        with self._spend_guard():
            sel = self.ledger.select_for_spend(
                amount + fee, config.TRANSFER_INPUTS, asset, self.keypair, arity=config.TRANSFER_INPUTS
            )
            outputs = [
                OutputSpec.new(amount, asset, recipient_key),
                OutputSpec.new(sel.change_amount, asset, self.keypair.public_key),
            ]
            self._check_capacity(len(outputs))
            root = self.tree.get_root()
            self._check_witness_root(sel, root)
            w1, w2 = input_witnesses(sel.inputs, self.tree, self.keypair)

            proof, _ = self._prove(TRANSFER_CIRCUIT, transfer_inputs([w1, w2], self.keypair, outputs, root, fee))
            enc1 = (
                seal_note(recipient_viewing_key, outputs[0].amount, asset, outputs[0].blinding)
                if recipient_viewing_key else []
            )
            enc2 = seal_note(self.viewing_key, outputs[1].amount, asset, outputs[1].blinding)
            calldata = Transfer(
                proof=proof,
                merkle_root=root,
                nullifier_1=w1.nullifier,
                nullifier_2=w2.nullifier,
                commitment_1=outputs[0].commitment,
                commitment_2=outputs[1].commitment,
                fee=fee,
                encrypted_note_1=tuple(enc1),
                encrypted_note_2=tuple(enc2),
            ).serialize()

            receipt = self._submit(
                Transfer.KIND,
                calldata,
                {
                    "merkle_root": to_hex(root),
                    "nullifier_1": to_hex(w1.nullifier),
                    "nullifier_2": to_hex(w2.nullifier),
                    "relayer_fee": str(fee),
                },
            )
            created = self._commit(sel.selected, outputs)
        logger.info(f"Transfer confirmed: tx={receipt.tx_hash} amount={amount} fee={fee}")
        return SpendResult(Transfer.KIND, receipt, calldata, sel.selected, created)

    def _select_exact(self, required: int, asset: int) -> Selection:
        candidates = self.ledger.unspent_notes(asset)
        available = sum(n.amount for n in candidates)
        if available < required:
            raise InsufficientBalance(
                f"Insufficient shielded balance: have {available}, need {required}",
                available=available,
                requested=required,
            )
        for note in candidates:
            if note.amount == required:
                return Selection(selected=[note], total=required, target=required)
        raise NoteConsolidationRequired(
            f"transact spends one whole note; no unspent note holds exactly {required}",
            available=available,
            requested=required,
        )

    def transact(
        self,
        input_amount: int,
        target_contract: int,
        calldata: Sequence[int],
        output_asset: int,
        min_output: int,
        fee: int = 0,
        asset_id: Optional[int] = None,
        metadata: Sequence[int] = (),
    ) -> TransactResult:
        """
        Spend one whole note into an external contract call (e.g. a swap).

        The output note's amount is only known after execution; this wallet
        keeps the blinding and claims the output later with import_note().
        """
        input_amount = check_field(input_amount, name="input_amount")
        min_output = check_u256(min_output, name="min_output")
        fee = check_field(fee, name="fee")
        target_contract = check_field(target_contract, name="target_contract")
        output_asset = check_field(output_asset, name="output_asset")
        asset = self._asset(asset_id)
        call = [check_field(x, name="calldata") for x in calldata]

        with self._spend_guard():
            sel = self._select_exact(input_amount + fee, asset)
            root = self.tree.get_root()
            self._check_witness_root(sel, root)
            (w,) = input_witnesses(sel.inputs, self.tree, self.keypair)

            out_blinding = random_field_element()
            partial = compute_partial_commitment(out_blinding, self.keypair.public_key)
            inputs = transact_inputs(
                w, self.keypair, out_blinding, partial, root, target_contract, hash_calldata(call), fee
            )
            proof, _ = self._prove(TRANSACT_CIRCUIT, inputs)
            cd = Transact(
                proof=proof,
                merkle_root=root,
                nullifier=w.nullifier,
                partial_commitment=partial,
                target_contract=target_contract,
                calldata=tuple(call),
                input_amount=input_amount,
                input_asset=asset,
                output_asset=output_asset,
                min_output=min_output,
                fee=fee,
                metadata=tuple(metadata),
            ).serialize()

            receipt = self._submit(
                Transact.KIND,
                cd,
                {"merkle_root": to_hex(root), "nullifier": to_hex(w.nullifier), "relayer_fee": str(fee)},
            )
            # the output leaf is appended by the pool after the call; it arrives via sync_leaves
            self._commit(sel.selected, [])
        logger.info(f"Transact confirmed: tx={receipt.tx_hash} input={input_amount}")
        return TransactResult(
            Transact.KIND, receipt, cd, sel.selected, [],
            out_blinding=out_blinding, partial_commitment=partial, output_asset=output_asset,
        )

    # ===== Incoming notes / tree sync =====
    def sync_leaves(self, leaves: Sequence[int]) -> int:
        """
        Catch the local tree up with the pool's full leaf list.
        Returns the number of leaves appended.
        """
        leaves = [check_field(x, name="leaf") for x in leaves]
        current = self.tree.leaves
        if leaves[: len(current)] != current:
            raise TreeDivergence("pool leaves do not extend the local tree")
        new = leaves[len(current):]
        for leaf in new:
            self.tree.insert(leaf)
        if new:
            self._persist()
            logger.info(f"Synced {len(new)} leaf/leaves, tree size {len(self.tree)}")
        return len(new)

    def import_note(self, amount: int, asset_id: int, blinding: int, leaf_index: int) -> Note:
        """Record a note owned by this key that is already in the tree at `leaf_index`."""
        note = Note.create(amount, asset_id, self.keypair, blinding=blinding, leaf_index=leaf_index)
        leaf = self.tree.get_proof(leaf_index).leaf
        if leaf != note.commitment:
            raise InvalidFieldValue(f"leaf {leaf_index} does not hold this note's commitment")
        if self.ledger.add_note(note):
            self._persist()
            logger.info(f"Imported note at leaf {leaf_index}")
        return self.ledger.get(note.commitment)

    def receive_note(self, encrypted: Sequence[int], leaf_index: int) -> Note:
        """Decrypt a transfer output addressed to this wallet and record it."""
        amount, asset_id, blinding = open_note(encrypted, self.keypair.private_key)
        return self.import_note(amount, asset_id, blinding, leaf_index)


__all__ = [
    "ShieldedWallet",
    "Submitter",
    "SubmitReceipt",
    "SpendResult",
    "TransactResult",
]
