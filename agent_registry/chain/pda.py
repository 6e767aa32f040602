"""
Program-derived addresses.

Bumps are tried from 255 down to 0 with solders' Pubkey.create_program_address;
the first bump whose candidate is NOT an ed25519 curve point gives the address.
Seed bytes must match the program's own derivation byte for byte (e.g.
b"identity" then the raw UTF-8 agent id, not its hash), otherwise the address
silently resolves to an unrelated account.

Derivation is pure and memoized per process.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Mapping, Sequence

from solders.pubkey import Pubkey

from agent_registry.codec.fields import to_pubkey
from agent_registry.codec.schema import Literal, Pda, ProgramSpec, SeedTemplate, Value
from agent_registry.errors import DerivationError, ErrorKind, SchemaError
from agent_registry.registry_logging import get_logger

logger = get_logger(__name__)

MAX_SEEDS = 16  # including the bump seed
MAX_SEED_LEN = 32


@dataclass(frozen=True)
class DerivedAddress:
    address: Pubkey
    bump: int

    def __str__(self) -> str:
        return str(self.address)

    def __bytes__(self) -> bytes:
        return bytes(self.address)


def _program_address(seeds: list[bytes], program_id: Pubkey) -> Pubkey | None:
    # solders raises its PubkeyError (not exported to Python) when the
    # candidate lies on the curve; seed limits are checked before this call
    try:
        return Pubkey.create_program_address(seeds, program_id)
    except Exception:
        return None


def _check_seeds(seeds: Sequence[bytes], limit: int = MAX_SEEDS - 1) -> None:
    if len(seeds) > limit:
        raise DerivationError(
            f"Too many seeds: {len(seeds)} (max {limit}, bump included: {MAX_SEEDS})",
            kind=ErrorKind.TOO_MANY_SEEDS,
            seed_count=len(seeds),
        )
    for i, seed in enumerate(seeds):
        if len(seed) > MAX_SEED_LEN:
            raise DerivationError(
                f"Seed {i} is {len(seed)} bytes (max {MAX_SEED_LEN})",
                kind=ErrorKind.SEED_TOO_LONG,
                seed_index=i,
                seed_length=len(seed),
            )


def create_program_address(seeds: Sequence[bytes], program_id: Pubkey | str) -> Pubkey | None:
    """Address for seeds with the bump already appended; None when the result lies on the curve."""
    seeds = [bytes(s) for s in seeds]
    _check_seeds(seeds, limit=MAX_SEEDS)
    return _program_address(seeds, to_pubkey(program_id))


@lru_cache(maxsize=4096)
def _derive_cached(program_id: Pubkey, seeds: tuple[bytes, ...]) -> DerivedAddress:
    _check_seeds(seeds)
    for bump in range(255, -1, -1):
        address = _program_address([*seeds, bytes([bump])], program_id)
        if address is not None:
            return DerivedAddress(address=address, bump=bump)
    raise DerivationError(
        "No bump in [0, 255] produces an off-curve address",
        kind=ErrorKind.NO_VALID_BUMP,
        program_id=str(program_id),
        seeds=[s.hex() for s in seeds],
    )


def derive_address(program_id: Pubkey | str, seeds: Sequence[bytes]) -> DerivedAddress:
    """Derive (address, bump) from raw seed bytes. Seed order matters."""
    pid = to_pubkey(program_id)
    return _derive_cached(pid, tuple(bytes(s) for s in seeds))


def clear_cache() -> None:
    _derive_cached.cache_clear()


def seed_bytes(value: Any, param: str) -> bytes:
    """str -> UTF-8, bytes -> raw, Pubkey/DerivedAddress -> 32 bytes. Anything else is a schema error."""
    if isinstance(value, DerivedAddress):
        return bytes(value.address)
    if isinstance(value, Pubkey):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    raise SchemaError(
        f"Seed value {param!r} must be str, bytes or Pubkey, got {type(value).__name__}",
        kind=ErrorKind.INVALID_VALUE,
        seed=param,
    )


def resolve_seeds(
    program: ProgramSpec,
    template: SeedTemplate,
    context: Mapping[str, Any],
    bind: Mapping[str, str] | None = None,
    program_id: Pubkey | None = None,
    _depth: int = 0,
) -> list[bytes]:
    """
    Turn a seed template into seed bytes. Value(name) looks up bind.get(name, name)
    in the context; Pda(kind) contributes the derived address of another template.
    """
    if _depth > 8:
        raise SchemaError("Seed templates nest too deeply", kind=ErrorKind.INVALID_VALUE, program=program.name)
    bind = bind or {}
    seeds: list[bytes] = []
    for part in template.parts:
        if isinstance(part, Literal):
            seeds.append(part.value)
        elif isinstance(part, Value):
            key = bind.get(part.name, part.name)
            if key not in context or context[key] is None:
                raise SchemaError(
                    f"Missing seed value {key!r} for {program.name}",
                    kind=ErrorKind.MISSING_SEED_VALUE,
                    program=program.name,
                    seed=key,
                )
            seeds.append(seed_bytes(context[key], key))
        elif isinstance(part, Pda):
            if program_id is None:
                raise SchemaError(
                    f"Pda({part.kind!r}) seed needs a program id",
                    kind=ErrorKind.INVALID_VALUE,
                    program=program.name,
                )
            inner = resolve_seeds(program, program.seed_template(part.kind), context, bind, program_id, _depth + 1)
            seeds.append(bytes(derive_address(program_id, inner).address))
    return seeds


def derive_kind(
    program: ProgramSpec,
    program_id: Pubkey,
    kind: str,
    context: Mapping[str, Any],
    bind: Mapping[str, str] | None = None,
) -> DerivedAddress:
    """Derive the address of a named account kind from the program's seed templates."""
    seeds = resolve_seeds(program, program.seed_template(kind), context, bind, program_id)
    derived = derive_address(program_id, seeds)
    logger.debug(
        "pda_derived",
        program=program.name,
        account_kind=kind,
        address=str(derived.address),
        bump=derived.bump,
    )
    return derived
