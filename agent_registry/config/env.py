"""
Environment variable loading and validation for agent_registry.

- SOLANA_NETWORK: devnet | localhost | mainnet (default: devnet)
- SOLANA_RPC_URL: RPC endpoint (read from .env)
- HELIUS_API_KEY: Helius API key (fallback for RPC URL on devnet/mainnet)
- <PROGRAM>_PROGRAM_ID: override for a registry program id, e.g. IDENTITY_PROGRAM_ID
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

# Project root: config is agent_registry/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

NETWORK_DEVNET = "devnet"
NETWORK_LOCALHOST = "localhost"
NETWORK_MAINNET = "mainnet"
NETWORKS = (NETWORK_DEVNET, NETWORK_LOCALHOST, NETWORK_MAINNET)

DEVNET_RPC_URL = "https://api.devnet.solana.com"
LOCALHOST_RPC_URL = "http://127.0.0.1:8899"
MAINNET_RPC_URL = "https://api.mainnet-beta.solana.com"
HELIUS_MAINNET_URL_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={key}"
HELIUS_DEVNET_URL_TEMPLATE = "https://devnet.helius-rpc.com/?api-key={key}"

COMMITMENTS = ("processed", "confirmed", "finalized")


def load_env() -> None:
    """Load .env from project root. Safe to call multiple times; never overrides the process env."""
    from dotenv import load_dotenv

    load_dotenv(_ENV_PATH, override=False)


def parse_bool_env(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    return default


def parse_float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def get_solana_network() -> str:
    """
    Return SOLANA_NETWORK from env: devnet | localhost | mainnet.
    Default: devnet. mainnet-beta is accepted as mainnet.
    """
    load_env()
    raw = (os.getenv("SOLANA_NETWORK") or os.getenv("SOLANA_CLUSTER") or NETWORK_DEVNET).strip().lower()
    if raw == "mainnet-beta":
        return NETWORK_MAINNET
    if raw in ("local", "localnet"):
        return NETWORK_LOCALHOST
    if raw not in NETWORKS:
        raise ValueError(f"Unsupported SOLANA_NETWORK {raw!r}; expected one of {', '.join(NETWORKS)}")
    return raw


def get_solana_rpc_url(network: str | None = None) -> str:
    """
    Resolve Solana RPC URL from env.
    Order: SOLANA_RPC_URL > HELIUS_API_KEY (network-specific) > per-network default.
    """
    load_env()
    url = (os.getenv("SOLANA_RPC_URL") or "").strip()
    if url:
        return url
    network = network or get_solana_network()
    key = (os.getenv("HELIUS_API_KEY") or "").strip()
    if key and network != NETWORK_LOCALHOST:
        if network == NETWORK_DEVNET:
            return HELIUS_DEVNET_URL_TEMPLATE.format(key=key)
        return HELIUS_MAINNET_URL_TEMPLATE.format(key=key)
    if network == NETWORK_LOCALHOST:
        return LOCALHOST_RPC_URL
    return DEVNET_RPC_URL if network == NETWORK_DEVNET else MAINNET_RPC_URL


def get_commitment() -> str:
    load_env()
    raw = (os.getenv("SOLANA_COMMITMENT") or "confirmed").strip().lower()
    if raw not in COMMITMENTS:
        raise ValueError(f"Unsupported SOLANA_COMMITMENT {raw!r}; expected one of {', '.join(COMMITMENTS)}")
    return raw


def program_id_env_var(program: str) -> str:
    """IDENTITY_PROGRAM_ID for "identity"."""
    return f"{program.upper()}_PROGRAM_ID"


def get_program_id(program: str, defaults: Mapping[str, str], network: str | None = None) -> str:
    """
    Return <PROGRAM>_PROGRAM_ID from env, or the registry default for the network.
    PDA derivation must use this program ID.
    """
    load_env()
    var = program_id_env_var(program)
    pid = (os.getenv(var) or "").strip()
    if pid:
        return pid
    network = network or get_solana_network()
    default = defaults.get(network)
    if not default:
        raise ValueError(f"No {program} program deployed on {network}; set {var}")
    return default


def mask_rpc_url(rpc: str) -> str:
    """Hide API keys in RPC URLs before logging."""
    if "api-key=" in rpc:
        return rpc.split("api-key=")[0] + "api-key=***"
    return rpc
