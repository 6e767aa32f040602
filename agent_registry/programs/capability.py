"""Capability discovery: agents declare versioned capabilities keyed by (agent_id, capability_type)."""

from agent_registry.codec.fields import BOOL, I64, PUBKEY, STRING, U8, U64
from agent_registry.codec.schema import (
    AccountLayout,
    AccountSpec,
    InstructionSchema,
    ProgramSpec,
    SeedTemplate,
    Value,
    fields,
)
from agent_registry.programs.common import CONFIG_SEEDS, SYSTEM_PROGRAM, config_account, layout_space

PROGRAM_IDS = {
    "devnet": "FAnRqmauRE5vtk7ft3FWHicrKKRw3XwbxvYVxuaeRcCK",
    "localhost": "52Ln3ibGw3saQ6QiERyW55dmo4SqmGX5CFSWBHqMjuMZ",
}

MAX_AGENT_ID_LEN = 32
MAX_CAPABILITY_TYPE_LEN = 64
MAX_VERSION_LEN = 16
MAX_URI_LEN = 200

SEEDS = {
    "config": CONFIG_SEEDS,
    "capability": SeedTemplate.of(b"capability", Value("agent_id"), Value("capability_type")),
}

INSTRUCTIONS = {
    s.name: s
    for s in (
        InstructionSchema(
            "initialize_config",
            fields(("authority", PUBKEY), ("registration_fee", U64)),
            (config_account(), AccountSpec("payer", signer=True, writable=True), SYSTEM_PROGRAM),
        ),
        InstructionSchema(
            "declare_capability",
            fields(("agent_id", STRING), ("capability_type", STRING), ("version", STRING), ("metadata_uri", STRING)),
            (
                AccountSpec("capability", writable=True, pda="capability"),
                config_account(),
                AccountSpec("owner", signer=True, writable=True),
                SYSTEM_PROGRAM,
            ),
        ),
        InstructionSchema(
            "update_capability",
            fields(("new_version", STRING), ("new_metadata_uri", STRING)),
            (AccountSpec("capability", writable=True, pda="capability"), AccountSpec("owner", signer=True)),
        ),
        InstructionSchema(
            "revoke_capability",
            (),
            (AccountSpec("capability", writable=True, pda="capability"), AccountSpec("owner", signer=True)),
        ),
    )
}

LAYOUTS = {
    layout.name: layout
    for layout in (
        AccountLayout(
            "GlobalConfig",
            fields(("authority", PUBKEY), ("registration_fee", U64), ("total_capabilities", U64), ("bump", U8)),
            space=layout_space(32 + 8 + 8 + 1),
        ),
        AccountLayout(
            "CapabilityRegistry",
            fields(
                ("agent_id", STRING),
                ("owner", PUBKEY),
                ("capability_type", STRING),
                ("version", STRING),
                ("metadata_uri", STRING),
                ("is_active", BOOL),
                ("declared_at", I64),
                ("updated_at", I64),
                ("bump", U8),
            ),
            space=layout_space(
                (4 + MAX_AGENT_ID_LEN) + 32 + (4 + MAX_CAPABILITY_TYPE_LEN) + (4 + MAX_VERSION_LEN)
                + (4 + MAX_URI_LEN) + 1 + 8 + 8 + 1
            ),
        ),
    )
}

CAPABILITY = ProgramSpec(
    name="capability",
    program_ids=PROGRAM_IDS,
    instructions=INSTRUCTIONS,
    seeds=SEEDS,
    layouts=LAYOUTS,
    account_kinds={"config": "GlobalConfig", "capability": "CapabilityRegistry"},
    errors=(
        ("AgentIdTooLong", "Agent ID too long (max 32 chars)"),
        ("CapabilityTypeTooLong", "Capability type too long (max 64 chars)"),
        ("VersionTooLong", "Version string too long (max 16 chars)"),
        ("MetadataUriTooLong", "Metadata URI too long (max 200 chars)"),
        ("CapabilityNotActive", "Capability is not active"),
    ),
    limits={
        "agent_id": MAX_AGENT_ID_LEN,
        "capability_type": MAX_CAPABILITY_TYPE_LEN,
        "version": MAX_VERSION_LEN,
        "new_version": MAX_VERSION_LEN,
        "metadata_uri": MAX_URI_LEN,
        "new_metadata_uri": MAX_URI_LEN,
    },
    description="Versioned agent capability declarations",
)
