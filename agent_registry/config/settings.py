"""
Application settings.

Responsibilities:
- Load configuration from environment variables and .env files.
- Validate required settings and provide defaults for optional ones.
- Expose typed settings (network, RPC URL, commitment, confirmation polling)
  for the submitter, the reader and the CLI.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache

from agent_registry.config.env import (
    get_commitment,
    get_solana_network,
    get_solana_rpc_url,
    load_env,
    parse_bool_env,
    parse_float_env,
)

DEFAULT_CONFIRM_TIMEOUT_SEC = 30.0
DEFAULT_CONFIRM_POLL_INTERVAL_SEC = 1.0
MIN_CONFIRM_POLL_INTERVAL_SEC = 0.05


@dataclass
class Settings:
    """Config for program clients (env or explicit)."""

    network: str = field(default_factory=get_solana_network)
    rpc_url: str = ""
    commitment: str = field(default_factory=get_commitment)
    confirm_timeout_sec: float = field(
        default_factory=lambda: parse_float_env("CONFIRM_TIMEOUT_SEC", DEFAULT_CONFIRM_TIMEOUT_SEC)
    )
    confirm_poll_interval_sec: float = field(
        default_factory=lambda: parse_float_env("CONFIRM_POLL_INTERVAL_SEC", DEFAULT_CONFIRM_POLL_INTERVAL_SEC)
    )
    simulate_before_send: bool = field(default_factory=lambda: parse_bool_env("SIMULATE_BEFORE_SEND", True))
    skip_preflight: bool = field(default_factory=lambda: parse_bool_env("SKIP_PREFLIGHT", False))
    payer_private_key: str = field(
        default_factory=lambda: (os.getenv("PAYER_PRIVATE_KEY") or "").strip(),
        repr=False,
    )

    def __post_init__(self) -> None:
        if not self.rpc_url:
            self.rpc_url = get_solana_rpc_url(self.network)
        if self.confirm_timeout_sec <= 0:
            raise ValueError("CONFIRM_TIMEOUT_SEC must be positive")
        if self.confirm_poll_interval_sec < MIN_CONFIRM_POLL_INTERVAL_SEC:
            self.confirm_poll_interval_sec = MIN_CONFIRM_POLL_INTERVAL_SEC


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, built from the environment on first call."""
    load_env()
    return Settings()


def reset_settings() -> None:
    """Drop cached settings so the next get_settings() re-reads the environment."""
    get_settings.cache_clear()
