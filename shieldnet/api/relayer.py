# shieldnet/api/relayer.py
"""
Relayer service: patches its own address and fee into pre-proven pool
calldata, simulates, broadcasts, waits for the receipt.

    POST /relay   {type, calldata, public_inputs}
        200 {status: "success", txHash, executionStatus}
        400 / 500 {error, details[, txHash]}
    GET  /health  200 {status: "ok", relayer, pool, rpc} | 503
"""
from __future__ import annotations

import shlex
from dataclasses import asdict, dataclass, field
from typing import Awaitable, Callable, List, Optional, Protocol

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from shieldnet import config
from shieldnet.api.health_checks import comprehensive_health_check, readiness_check
from shieldnet.api.logging_config import get_logger, setup_logging
from shieldnet.api.schemas_api import ErrorRes, HealthRes, RelayReq, RelayRes
from shieldnet.api.subprocess_bridge import run_json_script
from shieldnet.crypto_core.field import to_int
from shieldnet.errors import CalldataLayoutError, InvalidFieldValue
from shieldnet.wallet.calldata import RELAYABLE_KINDS, patch_relayer, relayer_patch_position_from_calldata

logger = get_logger("relayer")

# Simulation errors that mean the call itself is bad. Anything else (fee
# estimation, flaky RPC) lets the broadcast go ahead unsimulated.
CONTRACT_LEVEL_ERRORS = ("Contract not found", "reverted", "REJECTED")

FRIENDLY_ERRORS = (
    ("Contract not found", "Relayer account not deployed or invalid address"),
    ("Insufficient", "Insufficient balance for gas fees"),
    ("REJECTED", "Transaction rejected by sequencer"),
)


class BroadcastError(RuntimeError):
    """The broadcasting backend failed to simulate, execute or confirm a call."""


@dataclass(frozen=True)
class PoolCall:
    contract_address: str
    entrypoint: str
    calldata: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TxReceipt:
    execution_status: str
    revert_reason: Optional[str] = None


class Broadcaster(Protocol):
    def simulate(self, call: PoolCall) -> None: ...

    def execute(self, call: PoolCall) -> str: ...

    def wait_for_transaction(self, tx_hash: str) -> TxReceipt: ...


class SubprocessBroadcaster:
    """Gas-paying account behind a node script: `<cmd> simulate|execute|wait`."""

    def __init__(self, cmd: Optional[str] = None, timeout: Optional[float] = None):
        self.cmd = shlex.split(cmd or config.BROADCAST_CMD)
        self.timeout = timeout or config.BROADCAST_TIMEOUT_SEC

    def _call(self, action: str, payload: dict) -> dict:
        return run_json_script(
            self.cmd + [action],
            payload,
            timeout=self.timeout,
            description=f"broadcast {action}",
            error_cls=BroadcastError,
        )

    def simulate(self, call: PoolCall) -> None:
        self._call("simulate", asdict(call))

    def execute(self, call: PoolCall) -> str:
        out = self._call("execute", asdict(call))
        if "transaction_hash" not in out:
            raise BroadcastError("execute returned no transaction_hash")
        return str(out["transaction_hash"])

    def wait_for_transaction(self, tx_hash: str) -> TxReceipt:
        out = self._call("wait", {"transaction_hash": tx_hash})
        return TxReceipt(
            execution_status=str(out.get("execution_status", "UNKNOWN")),
            revert_reason=out.get("revert_reason"),
        )


@dataclass(frozen=True)
class RelayerSettings:
    relayer_address: str = field(default_factory=lambda: config.RELAYER_ADDRESS)
    pool_address: str = field(default_factory=lambda: config.SHIELD_POOL_ADDRESS)
    rpc_url: str = field(default_factory=lambda: config.SEPOLIA_RPC)


def _error(status_code: int, error: str, details: Optional[str] = None, tx_hash: Optional[str] = None) -> JSONResponse:
    body = ErrorRes(error=error, details=details, txHash=tx_hash).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


def _friendly(message: str) -> str:
    for needle, friendly in FRIENDLY_ERRORS:
        if needle in message:
            return friendly
    return message


def _simulate(broadcaster: Broadcaster, call: PoolCall) -> Optional[str]:
    """Returns an error message only for contract-level failures."""
    try:
        broadcaster.simulate(call)
        return None
    except BroadcastError as e:
        msg = str(e)
        if any(m in msg for m in CONTRACT_LEVEL_ERRORS):
            return msg
        logger.warning(f"Simulation warning: {msg}; proceeding without simulation")
        return None


def create_app(
    broadcaster: Optional[Broadcaster] = None,
    settings: Optional[RelayerSettings] = None,
    rpc_probe: Optional[Callable[[], Awaitable[bool]]] = None,
) -> FastAPI:
    broadcaster = broadcaster or SubprocessBroadcaster()
    settings = settings or RelayerSettings()
    probe = rpc_probe or (lambda: readiness_check(settings.rpc_url))

    app = FastAPI(title="ShieldNet Relayer", version="0.1.0")

    @app.post("/relay", response_model=RelayRes, responses={400: {"model": ErrorRes}, 500: {"model": ErrorRes}})
    def relay(req: RelayReq):
        if not req.type or req.calldata is None or req.public_inputs is None:
            return _error(400, "Missing parameters: type, calldata, public_inputs required")
        if req.type not in RELAYABLE_KINDS:
            return _error(400, f"Unknown transaction type: {req.type}")
        if not settings.relayer_address:
            return _error(500, "Relayer account not configured")

        logger.info(f"Relay request: {req.type}, calldata length {len(req.calldata)}")
        try:
            fee = to_int(req.public_inputs.get("relayer_fee") or 0)
            position = relayer_patch_position_from_calldata(req.type, req.calldata)
            calldata = patch_relayer(req.calldata, position, to_int(settings.relayer_address), fee)
        except (CalldataLayoutError, InvalidFieldValue) as e:
            return _error(400, "Malformed calldata", str(e))
        logger.info(f"Relayer slot at position {position}, fee {fee}")

        call = PoolCall(settings.pool_address, req.type, [str(x) for x in calldata])
        sim_error = _simulate(broadcaster, call)
        if sim_error is not None:
            logger.warning(f"Simulation failed: {sim_error}")
            return _error(400, "Transaction simulation failed", sim_error)

        try:
            tx_hash = broadcaster.execute(call)
            logger.info(f"TX hash: {tx_hash}")
            receipt = broadcaster.wait_for_transaction(tx_hash)
        except BroadcastError as e:
            logger.error(f"Relay error: {e}")
            return _error(500, _friendly(str(e)), str(e))

        if receipt.execution_status == "REVERTED":
            logger.warning(f"Transaction reverted: {tx_hash}")
            return _error(400, "Transaction reverted on-chain", receipt.revert_reason or "Unknown reason", tx_hash)

        logger.info(f"Confirmed: {tx_hash} ({receipt.execution_status})")
        return RelayRes(txHash=tx_hash, executionStatus=receipt.execution_status)

    @app.get("/health", response_model=HealthRes, responses={503: {"model": ErrorRes}})
    async def health():
        if not await probe():
            return _error(503, "RPC unreachable", settings.rpc_url)
        return HealthRes(relayer=settings.relayer_address, pool=settings.pool_address, rpc=settings.rpc_url)

    @app.get("/health/detailed")
    async def health_detailed():
        return await comprehensive_health_check(bool(settings.relayer_address), settings.rpc_url)

    return app


def main() -> None:
    setup_logging()
    settings = RelayerSettings()
    logger.info(f"Relayer {settings.relayer_address or '(unset)'} for pool {settings.pool_address}")
    uvicorn.run(create_app(settings=settings), host=config.RELAYER_HOST, port=config.RELAYER_PORT)


if __name__ == "__main__":
    main()
