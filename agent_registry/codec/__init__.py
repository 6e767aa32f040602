"""Binary codec: field types, schemas, discriminators, instruction and account encoding."""

from agent_registry.codec.encoder import (
    account_discriminator,
    account_filters,
    check_limits,
    decode_account,
    decode_fields,
    decode_instruction,
    encode_account,
    encode_field,
    encode_fields,
    encode_instruction,
    field_offsets,
    instruction_discriminator,
)
from agent_registry.codec.schema import (
    AccountLayout,
    AccountSpec,
    InstructionSchema,
    Literal,
    Pda,
    ProgramSpec,
    SeedTemplate,
    Value,
)

__all__ = [
    "AccountLayout",
    "AccountSpec",
    "InstructionSchema",
    "Literal",
    "Pda",
    "ProgramSpec",
    "SeedTemplate",
    "Value",
    "account_discriminator",
    "account_filters",
    "check_limits",
    "decode_account",
    "decode_fields",
    "decode_instruction",
    "encode_account",
    "encode_field",
    "encode_fields",
    "encode_instruction",
    "field_offsets",
    "instruction_discriminator",
]
