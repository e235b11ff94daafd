# shieldnet/config.py
from __future__ import annotations

import os
import pathlib

# =========================
# Paths
# =========================

REPO_ROOT = str(pathlib.Path(__file__).resolve().parents[1])
DATA_DIR = os.getenv("DATA_DIR", os.path.join(REPO_ROOT, "data"))

# Bump whenever the persisted format or the hash masking rule changes.
# Data written under another tag is never read back.
STORAGE_VERSION = os.getenv("SHIELDNET_STORAGE_VERSION", "v4")

# Hex-encoded 32-byte key; when set, the wallet file is encrypted at rest.
STORE_KEY_HEX = os.getenv("SHIELDNET_STORE_KEY", "")

# =========================
# Protocol
# =========================

MERKLE_DEPTH = int(os.getenv("SHIELDNET_MERKLE_DEPTH", "16"))

# Inputs consumed per circuit
WITHDRAW_INPUTS = 1
TRANSFER_INPUTS = 2

# Starknet Sepolia deployment
SHIELD_POOL_ADDRESS = os.getenv(
    "SHIELD_POOL_ADDRESS",
    "0x6582ba9fe8f7d2aa18298c3f1803cf3e8e4efde5282bba8abac3606f12559ad",
)
STRK_ADDRESS = os.getenv(
    "STRK_ADDRESS",
    "0x04718f5a0Fc34cC1AF16A1cdee98fFB20C31f5cD61D6Ab07201858f4287c938D",
)
TOKEN_DECIMALS = int(os.getenv("TOKEN_DECIMALS", "18"))

# =========================
# External collaborators
# =========================

RELAYER_URL = os.getenv("RELAYER_URL", "http://127.0.0.1:3001")
RELAY_TIMEOUT_SEC = float(os.getenv("RELAY_TIMEOUT_SEC", "600"))

# Prover bridge: "<cmd> <circuit>" reads JSON inputs on stdin, prints JSON on stdout.
PROVER_CMD = os.getenv("SHIELDNET_PROVER_CMD", "npx tsx scripts/prove.ts")
CALLDATA_CMD = os.getenv("SHIELDNET_CALLDATA_CMD", "npx tsx scripts/calldata.ts")
PROVER_TIMEOUT_SEC = float(os.getenv("SHIELDNET_PROVER_TIMEOUT_SEC", "300"))

# Relayer service
SEPOLIA_RPC = os.getenv("SEPOLIA_RPC", "https://starknet-sepolia.public.blastapi.io")
RELAYER_ADDRESS = os.getenv("ACCOUNT_ADDRESS", "")
RELAYER_PORT = int(os.getenv("PORT", "3001"))
RELAYER_HOST = os.getenv("HOST", "0.0.0.0")
# Broadcaster bridge: "<cmd> <simulate|execute|wait>" with the call as JSON on stdin.
BROADCAST_CMD = os.getenv("SHIELDNET_BROADCAST_CMD", "npx tsx scripts/broadcast.ts")
BROADCAST_TIMEOUT_SEC = float(os.getenv("SHIELDNET_BROADCAST_TIMEOUT_SEC", "300"))
