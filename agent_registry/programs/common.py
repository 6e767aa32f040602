"""Pieces shared by every program table."""

from solders.system_program import ID as SYSTEM_PROGRAM_ID

from agent_registry.codec.schema import AccountSpec, SeedTemplate

SYSTEM_PROGRAM = AccountSpec("system_program", address=SYSTEM_PROGRAM_ID)

CONFIG_SEEDS = SeedTemplate.of(b"config")


def config_account(writable: bool = True) -> AccountSpec:
    return AccountSpec("config", writable=writable, pda="config")


def layout_space(body: int) -> int:
    """Anchor allocation: 8-byte account tag + body length."""
    return 8 + body
