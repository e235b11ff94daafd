# shieldnet/wallet/prover.py
from __future__ import annotations

import logging
import shlex
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Protocol

from shieldnet import config
from shieldnet.api.subprocess_bridge import run_json_script
from shieldnet.wallet.calldata import ProofCalldata
from shieldnet.wallet.circuit_inputs import CircuitInputs
from shieldnet.errors import CalldataLayoutError, InvalidFieldValue, ProverFailure

LOG = logging.getLogger("shieldnet.prover")
LOG.addHandler(logging.NullHandler())


@dataclass(frozen=True)
class ProofResult:
    proof: Any
    public_inputs: List[str] = field(default_factory=list)


class Prover(Protocol):
    def generate_proof(self, circuit_name: str, named_inputs: CircuitInputs) -> ProofResult: ...


class CalldataTransform(Protocol):
    def __call__(self, result: ProofResult) -> List[str]: ...


class SubprocessProver:
    """`<cmd> <circuit>` reads named inputs on stdin, prints {"proof", "publicInputs"}."""

    def __init__(self, cmd: Optional[str] = None, timeout: Optional[float] = None):
        self.cmd = shlex.split(cmd or config.PROVER_CMD)
        self.timeout = timeout or config.PROVER_TIMEOUT_SEC

    def generate_proof(self, circuit_name: str, named_inputs: CircuitInputs) -> ProofResult:
        data = run_json_script(
            self.cmd + [circuit_name],
            dict(named_inputs),
            timeout=self.timeout,
            description=f"prove {circuit_name}",
            error_cls=ProverFailure,
        )
        if "proof" not in data:
            raise ProverFailure(f"prover output for {circuit_name} has no 'proof'")
        public_inputs = data.get("publicInputs", data.get("public_inputs", []))
        if not isinstance(public_inputs, list):
            raise ProverFailure("publicInputs must be a list")
        return ProofResult(proof=data["proof"], public_inputs=[str(x) for x in public_inputs])


class SubprocessCalldataTransform:
    """Turns (proof, public inputs) into the verifier's length-prefixed felt list."""

    def __init__(self, cmd: Optional[str] = None, timeout: Optional[float] = None):
        self.cmd = shlex.split(cmd or config.CALLDATA_CMD)
        self.timeout = timeout or config.PROVER_TIMEOUT_SEC

    def __call__(self, result: ProofResult) -> List[str]:
        data = run_json_script(
            self.cmd,
            {"proof": result.proof, "publicInputs": result.public_inputs},
            timeout=self.timeout,
            description="proof calldata",
            error_cls=ProverFailure,
        )
        calldata = data.get("calldata")
        if not isinstance(calldata, list):
            raise ProverFailure("calldata transform output has no 'calldata' list")
        return [str(x) for x in calldata]


def to_proof_calldata(transform: Callable[[ProofResult], List[str]], result: ProofResult) -> ProofCalldata:
    """Run the transform and validate its length prefix."""
    try:
        return ProofCalldata.from_prefixed(transform(result))
    except (CalldataLayoutError, InvalidFieldValue) as e:
        raise ProverFailure(f"malformed proof calldata: {e}") from e


# ===== Process-wide runtime =====
class ProverRuntime:
    """
    Lazily initialised prover resources shared by the whole process.
    initialize() runs the factory once; concurrent and repeated calls are no-ops.
    """

    def __init__(
        self,
        prover_factory: Callable[[], Prover] = SubprocessProver,
        transform_factory: Callable[[], Callable[[ProofResult], List[str]]] = SubprocessCalldataTransform,
    ):
        self._prover_factory = prover_factory
        self._transform_factory = transform_factory
        self._lock = threading.Lock()
        self._prover: Optional[Prover] = None
        self._transform: Optional[Callable[[ProofResult], List[str]]] = None
        self.init_count = 0

    @property
    def initialized(self) -> bool:
        return self._prover is not None

    def initialize(self) -> "ProverRuntime":
        if self._prover is not None:
            return self
        with self._lock:
            if self._prover is None:
                LOG.info("initializing prover runtime")
                transform = self._transform_factory()
                self._prover = self._prover_factory()
                self._transform = transform
                self.init_count += 1
        return self

    def teardown(self) -> None:
        with self._lock:
            if self._prover is not None:
                LOG.info("tearing down prover runtime")
            self._prover = None
            self._transform = None

    @property
    def prover(self) -> Prover:
        self.initialize()
        assert self._prover is not None
        return self._prover

    @property
    def transform(self) -> Callable[[ProofResult], List[str]]:
        self.initialize()
        assert self._transform is not None
        return self._transform


_runtime: Optional[ProverRuntime] = None
_runtime_lock = threading.Lock()


def get_prover_runtime() -> ProverRuntime:
    global _runtime
    if _runtime is None:
        with _runtime_lock:
            if _runtime is None:
                _runtime = ProverRuntime()
    return _runtime


def set_prover_runtime(runtime: Optional[ProverRuntime]) -> None:
    """Swap the process-wide runtime (tests, embedding)."""
    global _runtime
    with _runtime_lock:
        if _runtime is not None and _runtime is not runtime:
            _runtime.teardown()
        _runtime = runtime


__all__ = [
    "ProofResult",
    "Prover",
    "CalldataTransform",
    "SubprocessProver",
    "SubprocessCalldataTransform",
    "to_proof_calldata",
    "ProverRuntime",
    "get_prover_runtime",
    "set_prover_runtime",
]
