"""Registry of program tables, keyed by program name."""

from agent_registry.codec.schema import ProgramSpec
from agent_registry.errors import ErrorKind, SchemaError
from agent_registry.programs.attestation import ATTESTATION
from agent_registry.programs.capability import CAPABILITY
from agent_registry.programs.consensus import CONSENSUS
from agent_registry.programs.identity import IDENTITY

REGISTRY: dict[str, ProgramSpec] = {p.name: p for p in (IDENTITY, ATTESTATION, CONSENSUS, CAPABILITY)}


def get_program(name: str) -> ProgramSpec:
    try:
        return REGISTRY[name]
    except KeyError:
        raise SchemaError(
            f"Unknown program {name!r}; known: {sorted(REGISTRY)}",
            kind=ErrorKind.UNKNOWN_INSTRUCTION,
            program=name,
        ) from None


__all__ = ["ATTESTATION", "CAPABILITY", "CONSENSUS", "IDENTITY", "REGISTRY", "get_program"]
