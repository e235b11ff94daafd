from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, conint, field_validator


class _Wire(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class RelayReq(_Wire):
    # optional so that a missing field yields the relayer's own 400 payload
    type: Optional[str] = Field(None, description="Pool entrypoint: withdraw | transfer | transact")
    calldata: Optional[List[Union[str, int]]] = Field(
        None, description="Positional calldata as decimal strings, relayer slots zeroed."
    )
    public_inputs: Optional[Dict[str, Any]] = Field(
        None, description="Public values of the proof; relayer_fee is read from here."
    )

    @field_validator("calldata")
    @classmethod
    def _as_strings(cls, v):
        return None if v is None else [str(x) for x in v]


class RelayRes(_Wire):
    status: str = Field("success", description="Fixed success marker.")
    txHash: str = Field(..., description="Transaction hash of the confirmed call.")
    executionStatus: str = Field(..., description="Execution status from the receipt.")


class ErrorRes(_Wire):
    error: str = Field(..., description="Short error message.")
    details: Optional[str] = Field(None, description="Underlying simulation, revert or RPC message.")
    txHash: Optional[str] = Field(None, description="Set when the transaction was broadcast and reverted.")


class HealthRes(_Wire):
    status: str = Field("ok", description="ok when the relayer can reach its RPC.")
    relayer: str = Field(..., description="Relayer account address.")
    pool: str = Field(..., description="Shield pool contract address.")
    rpc: str = Field(..., description="RPC endpoint in use.")


class SerializedNote(_Wire):
    """Persisted note: field elements as decimal strings."""

    amount: str
    asset_id: str
    blinding: str
    owner_key: str
    commitment: str
    nullifier: str
    leaf_index: conint(ge=-1) = -1
    spent: bool = False
    created_at: float = 0.0

    @field_validator("amount", "asset_id", "blinding", "owner_key", "commitment", "nullifier")
    @classmethod
    def _decimal(cls, v: str) -> str:
        if not v.isdigit():
            raise ValueError(f"expected a decimal string, got {v!r}")
        return v
