"""
Declarative program descriptions: instruction schemas, account roles, seed
templates and account layouts.

A ProgramSpec is pure data. Supporting another on-chain program means writing
another ProgramSpec table; the engine in agent_registry.client never changes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from solders.pubkey import Pubkey

from agent_registry.codec.fields import FieldType
from agent_registry.errors import ErrorKind, SchemaError

ANCHOR_ERROR_OFFSET = 6000


@dataclass(frozen=True)
class Literal:
    """Constant seed bytes, e.g. Literal(b"identity")."""

    value: bytes


@dataclass(frozen=True)
class Value:
    """Seed taken from the derivation context: str as UTF-8, bytes raw, Pubkey as its 32 bytes."""

    name: str


@dataclass(frozen=True)
class Pda:
    """Seed equal to the address of another template derived under the same bindings."""

    kind: str


SeedPart = Literal | Value | Pda


@dataclass(frozen=True)
class SeedTemplate:
    parts: tuple[SeedPart, ...]

    @classmethod
    def of(cls, *parts: SeedPart | bytes) -> SeedTemplate:
        return cls(tuple(Literal(p) if isinstance(p, bytes) else p for p in parts))

    @property
    def params(self) -> tuple[str, ...]:
        return tuple(p.name for p in self.parts if isinstance(p, Value))


@dataclass(frozen=True)
class AccountSpec:
    """
    One account slot of an instruction, in program order.

    pda: seed template kind to derive the address from; bind maps template
    parameter names to context keys (field values, extra seeds or other
    account names); address: fixed address (system program).
    """

    name: str
    signer: bool = False
    writable: bool = False
    pda: str | None = None
    bind: Mapping[str, str] = field(default_factory=dict)
    address: Pubkey | None = None


@dataclass(frozen=True)
class InstructionSchema:
    name: str
    fields: tuple[tuple[str, FieldType], ...] = ()
    accounts: tuple[AccountSpec, ...] = ()
    # explicit 8-byte tag when the program's interface publishes one
    discriminator: bytes | None = None
    doc: str = ""

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.fields)

    @property
    def account_names(self) -> tuple[str, ...]:
        return tuple(a.name for a in self.accounts)


@dataclass(frozen=True)
class AccountLayout:
    """Anchor account: 8-byte tag sha256("account:<name>")[:8] + Borsh fields."""

    name: str
    fields: tuple[tuple[str, FieldType], ...]
    # allocated size including the tag; longer data is rejected
    space: int | None = None


@dataclass(frozen=True)
class ProgramSpec:
    name: str
    program_ids: Mapping[str, str]
    instructions: Mapping[str, InstructionSchema]
    seeds: Mapping[str, SeedTemplate]
    layouts: Mapping[str, AccountLayout]
    # account kind (seed template) -> layout name stored at that address
    account_kinds: Mapping[str, str] = field(default_factory=dict)
    errors: tuple[tuple[str, str], ...] = ()
    limits: Mapping[str, int] = field(default_factory=dict)
    description: str = ""

    @property
    def error_table(self) -> dict[int, tuple[str, str]]:
        return {ANCHOR_ERROR_OFFSET + i: entry for i, entry in enumerate(self.errors)}

    def instruction(self, name: str) -> InstructionSchema:
        try:
            return self.instructions[name]
        except KeyError:
            raise SchemaError(
                f"{self.name} has no instruction {name!r}",
                kind=ErrorKind.UNKNOWN_INSTRUCTION,
                program=self.name,
                instruction=name,
                known=sorted(self.instructions),
            ) from None

    def seed_template(self, kind: str) -> SeedTemplate:
        try:
            return self.seeds[kind]
        except KeyError:
            raise SchemaError(
                f"{self.name} has no seed template {kind!r}",
                kind=ErrorKind.UNKNOWN_ACCOUNT_KIND,
                program=self.name,
                account_kind=kind,
            ) from None

    def layout_for(self, kind: str) -> AccountLayout:
        layout_name = self.account_kinds.get(kind, kind)
        try:
            return self.layouts[layout_name]
        except KeyError:
            raise SchemaError(
                f"{self.name} has no account layout for {kind!r}",
                kind=ErrorKind.UNKNOWN_ACCOUNT_KIND,
                program=self.name,
                account_kind=kind,
            ) from None


def fields(*pairs: tuple[str, FieldType]) -> tuple[tuple[str, FieldType], ...]:
    return tuple(pairs)


def describe(schema: InstructionSchema) -> dict[str, Any]:
    """JSON-friendly view of an instruction schema (CLI, debugging)."""
    return {
        "name": schema.name,
        "fields": [[n, t.name] for n, t in schema.fields],
        "accounts": [
            {"name": a.name, "signer": a.signer, "writable": a.writable, "pda": a.pda}
            for a in schema.accounts
        ],
    }
