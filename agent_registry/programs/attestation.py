"""
Attestation registry. Issuers register under their wallet, then issue typed
attestations (claims URI, expiry, detached ed25519 signature) about agents.
"""

from agent_registry.codec.fields import BOOL, I64, PUBKEY, STRING, U8, U64, FixedBytes
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
    "devnet": "DTtjXcvxsKHnukZiLtaQ2dHJXC5HtUAwUa9WgsMd3So4",
    "localhost": "4PXmkfGMdsKvjTmAwnTmyhxzNXCyHDXXLFcFZQjxobuT",
}

MAX_AGENT_ID_LEN = 32
MAX_ISSUER_NAME_LEN = 64
MAX_ATTESTATION_TYPE_LEN = 64
MAX_URI_LEN = 200
MAX_REASON_LEN = 200

SIGNATURE = FixedBytes(64)

SEEDS = {
    "config": CONFIG_SEEDS,
    "issuer": SeedTemplate.of(b"issuer", Value("owner")),
    "attestation": SeedTemplate.of(b"attestation", Value("agent_id"), Value("attestation_type"), Value("issuer")),
}

INSTRUCTIONS = {
    s.name: s
    for s in (
        InstructionSchema(
            "initialize_config",
            fields(("authority", PUBKEY), ("min_stake_for_issuer", U64)),
            (config_account(), AccountSpec("payer", signer=True, writable=True), SYSTEM_PROGRAM),
        ),
        InstructionSchema(
            "register_issuer",
            fields(("issuer_name", STRING), ("metadata_uri", STRING)),
            (
                AccountSpec("issuer", writable=True, pda="issuer"),
                config_account(),
                AccountSpec("owner", signer=True, writable=True),
                SYSTEM_PROGRAM,
            ),
        ),
        InstructionSchema(
            "issue_attestation",
            fields(
                ("agent_id", STRING),
                ("attestation_type", STRING),
                ("claims_uri", STRING),
                ("expires_at", I64),
                ("signature", SIGNATURE),
            ),
            (
                AccountSpec("attestation", writable=True, pda="attestation"),
                AccountSpec("issuer", writable=True, pda="issuer"),
                AccountSpec("owner", signer=True, writable=True),
                SYSTEM_PROGRAM,
            ),
            doc="Attestation address is seeded by agent id, type and the issuer account.",
        ),
        InstructionSchema(
            "revoke_attestation",
            fields(("reason", STRING)),
            (
                AccountSpec("attestation", writable=True, pda="attestation"),
                AccountSpec("issuer", pda="issuer"),
                AccountSpec("owner", signer=True),
            ),
        ),
        InstructionSchema(
            "verify_attestation",
            (),
            (AccountSpec("attestation", pda="attestation"),),
        ),
    )
}

LAYOUTS = {
    layout.name: layout
    for layout in (
        AccountLayout(
            "GlobalConfig",
            fields(
                ("authority", PUBKEY),
                ("min_stake_for_issuer", U64),
                ("total_issuers", U64),
                ("total_attestations", U64),
                ("bump", U8),
            ),
            space=layout_space(32 + 8 + 8 + 8 + 1),
        ),
        AccountLayout(
            "IssuerRegistry",
            fields(
                ("owner", PUBKEY),
                ("name", STRING),
                ("metadata_uri", STRING),
                ("stake_amount", U64),
                ("is_active", BOOL),
                ("total_attestations", U64),
                ("registered_at", I64),
                ("bump", U8),
            ),
            space=layout_space(32 + (4 + MAX_ISSUER_NAME_LEN) + (4 + MAX_URI_LEN) + 8 + 1 + 8 + 8 + 1),
        ),
        AccountLayout(
            "AttestationRegistry",
            fields(
                ("agent_id", STRING),
                ("issuer", PUBKEY),
                ("attestation_type", STRING),
                ("claims_uri", STRING),
                ("issued_at", I64),
                ("expires_at", I64),
                ("signature", SIGNATURE),
                ("is_revoked", BOOL),
                ("bump", U8),
            ),
            space=layout_space(
                (4 + MAX_AGENT_ID_LEN) + 32 + (4 + MAX_ATTESTATION_TYPE_LEN) + (4 + MAX_URI_LEN) + 8 + 8 + 64 + 1 + 1
            ),
        ),
    )
}

ERRORS = (
    ("AgentIdTooLong", "Agent ID too long (max 32 chars)"),
    ("IssuerNameTooLong", "Issuer name too long (max 64 chars)"),
    ("AttestationTypeTooLong", "Attestation type too long (max 64 chars)"),
    ("MetadataUriTooLong", "Metadata URI too long (max 200 chars)"),
    ("ReasonTooLong", "Reason too long (max 200 chars)"),
    ("IssuerNotActive", "Issuer is not active"),
    ("AttestationAlreadyRevoked", "Attestation already revoked"),
    ("UnauthorizedIssuer", "Unauthorized issuer"),
)

ATTESTATION = ProgramSpec(
    name="attestation",
    program_ids=PROGRAM_IDS,
    instructions=INSTRUCTIONS,
    seeds=SEEDS,
    layouts=LAYOUTS,
    account_kinds={"config": "GlobalConfig", "issuer": "IssuerRegistry", "attestation": "AttestationRegistry"},
    errors=ERRORS,
    limits={
        "agent_id": MAX_AGENT_ID_LEN,
        "issuer_name": MAX_ISSUER_NAME_LEN,
        "attestation_type": MAX_ATTESTATION_TYPE_LEN,
        "metadata_uri": MAX_URI_LEN,
        "claims_uri": MAX_URI_LEN,
        "reason": MAX_REASON_LEN,
    },
    description="Issuer registration and signed agent attestations",
)
