"""
Instruction assembly.

build_instruction() is the low-level contract: schema + field values + an
ordered AccountRole list -> solders Instruction. Account order and the
signer/writable flags are taken exactly as given; the builder never infers or
reorders them, the program validates them.

resolve_accounts() fills an instruction's AccountRole list from the schema's
AccountSpecs: explicit overrides, fixed addresses, the payer for signer roles,
and PDA seed templates evaluated against field values and other accounts.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from agent_registry.chain.pda import DerivedAddress, derive_kind
from agent_registry.codec.encoder import encode_instruction
from agent_registry.codec.fields import to_pubkey
from agent_registry.codec.schema import AccountSpec, InstructionSchema, ProgramSpec
from agent_registry.errors import ErrorKind, SchemaError


@dataclass(frozen=True)
class AccountRole:
    address: Pubkey
    is_signer: bool = False
    is_writable: bool = False
    name: str = ""
    bump: int | None = None

    @classmethod
    def of(cls, address: Any, is_signer: bool = False, is_writable: bool = False, name: str = "") -> AccountRole:
        if isinstance(address, DerivedAddress):
            return cls(address.address, is_signer, is_writable, name, address.bump)
        return cls(to_pubkey(address), is_signer, is_writable, name)

    def to_meta(self) -> AccountMeta:
        return AccountMeta(pubkey=self.address, is_signer=self.is_signer, is_writable=self.is_writable)


def build_instruction(
    program_id: Pubkey,
    schema: InstructionSchema,
    values: Sequence[Any] | Mapping[str, Any],
    accounts: Sequence[AccountRole],
) -> Instruction:
    """Discriminator + encoded args, accounts in the order given. Raises SchemaError on arity mismatch."""
    data = encode_instruction(schema, values)
    return Instruction(
        program_id=program_id,
        data=data,
        accounts=[role.to_meta() for role in accounts],
    )


def _named_values(schema: InstructionSchema, values: Sequence[Any] | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(values, Mapping):
        return dict(values)
    values = list(values)
    if len(values) != len(schema.fields):
        raise SchemaError(
            f"{schema.name}: expected {len(schema.fields)} field values, got {len(values)}",
            kind=ErrorKind.ARITY_MISMATCH,
            schema=schema.name,
            expected=len(schema.fields),
            got=len(values),
        )
    return dict(zip(schema.field_names, values))


def resolve_accounts(
    program: ProgramSpec,
    program_id: Pubkey,
    schema: InstructionSchema,
    values: Sequence[Any] | Mapping[str, Any],
    *,
    payer: Pubkey | None = None,
    overrides: Mapping[str, Any] | None = None,
    seeds: Mapping[str, Any] | None = None,
) -> list[AccountRole]:
    """
    Resolve every AccountSpec of ``schema`` to an address, keeping schema order.

    PDA accounts may depend on other accounts (e.g. an issuer PDA seeded by the
    owner's key), so resolution loops until no more progress is made.
    """
    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
    unknown = [k for k in overrides if k not in schema.account_names]
    if unknown:
        raise SchemaError(
            f"{schema.name} has no accounts named {unknown}",
            kind=ErrorKind.MISSING_ACCOUNT,
            instruction=schema.name,
            unknown=unknown,
        )
    context: dict[str, Any] = {**_named_values(schema, values), **(seeds or {})}
    resolved: dict[str, AccountRole] = {}

    def _role(spec: AccountSpec, address: Any) -> AccountRole:
        return AccountRole.of(address, spec.signer, spec.writable, spec.name)

    for spec in schema.accounts:
        if spec.name in overrides:
            resolved[spec.name] = _role(spec, overrides[spec.name])
        elif spec.address is not None:
            resolved[spec.name] = _role(spec, spec.address)
        elif spec.signer and spec.pda is None and payer is not None:
            resolved[spec.name] = _role(spec, payer)

    pending = [s for s in schema.accounts if s.name not in resolved]
    last_error: SchemaError | None = None
    while pending:
        progressed = False
        for spec in list(pending):
            if spec.pda is None:
                continue
            ctx = {**context, **{name: role.address for name, role in resolved.items()}}
            try:
                derived = derive_kind(program, program_id, spec.pda, ctx, spec.bind)
            except SchemaError as e:
                if e.kind != ErrorKind.MISSING_SEED_VALUE:
                    raise
                last_error = e
                continue
            resolved[spec.name] = _role(spec, derived)
            pending.remove(spec)
            progressed = True
        if not progressed:
            break

    if pending:
        missing = [s.name for s in pending]
        raise SchemaError(
            f"{schema.name}: cannot resolve accounts {missing}",
            kind=ErrorKind.MISSING_ACCOUNT,
            instruction=schema.name,
            missing=missing,
            missing_seed=last_error.diagnostics.get("seed") if last_error else None,
        )
    return [resolved[spec.name] for spec in schema.accounts]
