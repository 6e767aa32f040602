"""
Consensus program: a requester names up to ten validators and a threshold,
validators vote once each, and the request settles as Approved or Rejected
(or is finalized after the 24h timeout).
"""

from agent_registry.codec.fields import BOOL, I64, PUBKEY, STRING, U8, U64, Enum, FixedBytes, VecOf
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
    "devnet": "A4Ee2KoPz4y9XyEBta9DyXvKPnWy2GvprDzfVF1PnjtR",
    "localhost": "66rnQD9SGyEruS7pUemPBaakKZFGFWmQwrDU46dq5ACi",
}

MAX_AGENT_ID_LEN = 32
MAX_VALIDATOR_NAME_LEN = 64
MAX_ACTION_TYPE_LEN = 64
MAX_REQUEST_ID_LEN = 64
MAX_URI_LEN = 200
MAX_VALIDATORS = 10
CONSENSUS_TIMEOUT_SEC = 86400

CONSENSUS_STATUS = Enum("ConsensusStatus", ("Pending", "Approved", "Rejected"))
DATA_HASH = FixedBytes(32)

SEEDS = {
    "config": CONFIG_SEEDS,
    "validator": SeedTemplate.of(b"validator", Value("owner")),
    "consensus": SeedTemplate.of(b"consensus", Value("agent_id"), Value("action_type"), Value("requester")),
    "vote": SeedTemplate.of(b"vote", Value("consensus"), Value("validator")),
}

INSTRUCTIONS = {
    s.name: s
    for s in (
        InstructionSchema(
            "initialize_config",
            fields(("authority", PUBKEY), ("min_stake_for_validator", U64)),
            (config_account(), AccountSpec("payer", signer=True, writable=True), SYSTEM_PROGRAM),
        ),
        InstructionSchema(
            "register_validator",
            fields(("validator_name", STRING), ("metadata_uri", STRING)),
            (
                AccountSpec("validator", writable=True, pda="validator"),
                config_account(),
                AccountSpec("owner", signer=True, writable=True),
                SYSTEM_PROGRAM,
            ),
        ),
        InstructionSchema(
            "request_consensus",
            fields(
                ("agent_id", STRING),
                ("action_type", STRING),
                ("data_hash", DATA_HASH),
                ("threshold", U8),
                ("validator_keys", VecOf(PUBKEY)),
            ),
            (
                AccountSpec("consensus", writable=True, pda="consensus"),
                config_account(),
                AccountSpec("requester", signer=True, writable=True),
                SYSTEM_PROGRAM,
            ),
        ),
        InstructionSchema(
            "cast_vote",
            fields(("request_id", STRING), ("approve", BOOL), ("evidence_uri", STRING)),
            (
                AccountSpec("vote", writable=True, pda="vote"),
                AccountSpec("consensus", writable=True, pda="consensus"),
                AccountSpec("validator", writable=True, pda="validator"),
                AccountSpec("owner", signer=True, writable=True),
                SYSTEM_PROGRAM,
            ),
            doc="The consensus account is derived from agent_id/action_type/requester seeds or passed explicitly.",
        ),
        InstructionSchema(
            "finalize_consensus",
            (),
            (AccountSpec("consensus", writable=True, pda="consensus"),),
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
                ("min_stake_for_validator", U64),
                ("total_validators", U64),
                ("total_consensus_requests", U64),
                ("bump", U8),
            ),
            space=layout_space(32 + 8 + 8 + 8 + 1),
        ),
        AccountLayout(
            "ValidatorRegistry",
            fields(
                ("owner", PUBKEY),
                ("name", STRING),
                ("metadata_uri", STRING),
                ("stake_amount", U64),
                ("is_active", BOOL),
                ("total_votes", U64),
                ("registered_at", I64),
                ("bump", U8),
            ),
            space=layout_space(32 + (4 + MAX_VALIDATOR_NAME_LEN) + (4 + MAX_URI_LEN) + 8 + 1 + 8 + 8 + 1),
        ),
        AccountLayout(
            "ConsensusRequest",
            fields(
                ("agent_id", STRING),
                ("requester", PUBKEY),
                ("action_type", STRING),
                ("data_hash", DATA_HASH),
                ("threshold", U8),
                ("validator_keys", VecOf(PUBKEY)),
                ("approvals", U8),
                ("rejections", U8),
                ("status", CONSENSUS_STATUS),
                ("requested_at", I64),
                ("finalized_at", I64),
                ("bump", U8),
            ),
            space=layout_space(
                (4 + MAX_AGENT_ID_LEN) + 32 + (4 + MAX_ACTION_TYPE_LEN) + 32 + 1 + (4 + 32 * MAX_VALIDATORS)
                + 1 + 1 + 1 + 8 + 8 + 1
            ),
        ),
        AccountLayout(
            "VoteRecord",
            fields(
                ("consensus", PUBKEY),
                ("validator", PUBKEY),
                ("request_id", STRING),
                ("approve", BOOL),
                ("evidence_uri", STRING),
                ("voted_at", I64),
                ("bump", U8),
            ),
            space=layout_space(32 + 32 + (4 + MAX_REQUEST_ID_LEN) + 1 + (4 + MAX_URI_LEN) + 8 + 1),
        ),
    )
}

ERRORS = (
    ("AgentIdTooLong", "Agent ID too long (max 32 chars)"),
    ("ValidatorNameTooLong", "Validator name too long (max 64 chars)"),
    ("ActionTypeTooLong", "Action type too long (max 64 chars)"),
    ("RequestIdTooLong", "Request ID too long (max 64 chars)"),
    ("MetadataUriTooLong", "Metadata URI too long (max 200 chars)"),
    ("TooManyValidators", "Too many validators (max 10)"),
    ("InvalidThreshold", "Invalid threshold"),
    ("ValidatorNotActive", "Validator is not active"),
    ("ValidatorNotInList", "Validator not in consensus validator list"),
    ("ConsensusAlreadyFinalized", "Consensus already finalized"),
    ("ConsensusNotTimedOut", "Consensus not timed out yet (24h)"),
)

CONSENSUS = ProgramSpec(
    name="consensus",
    program_ids=PROGRAM_IDS,
    instructions=INSTRUCTIONS,
    seeds=SEEDS,
    layouts=LAYOUTS,
    account_kinds={
        "config": "GlobalConfig",
        "validator": "ValidatorRegistry",
        "consensus": "ConsensusRequest",
        "vote": "VoteRecord",
    },
    errors=ERRORS,
    limits={
        "agent_id": MAX_AGENT_ID_LEN,
        "validator_name": MAX_VALIDATOR_NAME_LEN,
        "action_type": MAX_ACTION_TYPE_LEN,
        "request_id": MAX_REQUEST_ID_LEN,
        "metadata_uri": MAX_URI_LEN,
        "evidence_uri": MAX_URI_LEN,
        "validator_keys": MAX_VALIDATORS,
    },
    description="Validator-quorum decisions over agent actions",
)
