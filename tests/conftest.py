"""Shared fixtures: deterministic keys, a fake prover and a fake submitter."""

from typing import Dict, List, Optional

import pytest

from shieldnet.crypto_core.merkle import MerkleAccumulator
from shieldnet.crypto_core.notes import KeyPair, derive_keypair
from shieldnet.database.store import WalletStore
from shieldnet.errors import RelayRejected
from shieldnet.wallet.calldata import Calldata
from shieldnet.wallet.prover import ProofResult, ProverRuntime
from shieldnet.wallet.shielded_wallet import ShieldedWallet, SubmitReceipt

TEST_DEPTH = 4
ASSET = 0x4718F5A0FC34CC1AF16A1CDEE98FFB20C31F5CD61D6AB07201858F4287C938D
PROOF_FELTS = ["3", "111", "222", "333"]


class FakeProver:
    def __init__(self, fail: Optional[Exception] = None):
        self.fail = fail
        self.calls: List[tuple] = []

    def generate_proof(self, circuit_name, named_inputs):
        self.calls.append((circuit_name, dict(named_inputs)))
        if self.fail is not None:
            raise self.fail
        return ProofResult(proof={"circuit": circuit_name}, public_inputs=["0x1", "0x2"])


class FakeTransform:
    def __init__(self, felts: Optional[List[str]] = None):
        self.felts = felts if felts is not None else list(PROOF_FELTS)

    def __call__(self, result):
        return list(self.felts)


class FakeSubmitter:
    def __init__(self, reject: bool = False, unknown: bool = False):
        self.reject = reject
        self.unknown = unknown
        self.calls: List[tuple] = []

    def submit(self, kind: str, calldata: Calldata, public_inputs: Dict[str, str]) -> SubmitReceipt:
        self.calls.append((kind, calldata, dict(public_inputs)))
        if self.unknown:
            raise RelayRejected("Relayer request failed; outcome unknown", details="read timed out", outcome_unknown=True)
        if self.reject:
            raise RelayRejected("Transaction reverted on-chain", details="nullifier already spent", tx_hash="0xdead")
        return SubmitReceipt(tx_hash=f"0x{len(self.calls):04x}")


@pytest.fixture
def keypair() -> KeyPair:
    return derive_keypair(seed=123456789)


@pytest.fixture
def other_keypair() -> KeyPair:
    return derive_keypair(seed=987654321)


@pytest.fixture
def prover() -> FakeProver:
    return FakeProver()


@pytest.fixture
def runtime(prover) -> ProverRuntime:
    return ProverRuntime(prover_factory=lambda: prover, transform_factory=FakeTransform)


@pytest.fixture
def submitter() -> FakeSubmitter:
    return FakeSubmitter()


@pytest.fixture
def store(tmp_path) -> WalletStore:
    return WalletStore(data_dir=str(tmp_path), version="v4")


@pytest.fixture
def wallet(keypair, submitter, store, runtime) -> ShieldedWallet:
    return ShieldedWallet(
        keypair,
        submitter=submitter,
        store=store,
        runtime=runtime,
        tree=MerkleAccumulator(TEST_DEPTH),
        asset_id=ASSET,
    )
