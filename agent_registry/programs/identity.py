"""
Identity and reputation registry.

Agents register under a textual id; registration creates the identity,
reputation and reward pool accounts in one instruction. Validators stake,
then submit validations or assign reputation deltas. Publishers post tasks
that registered agents bid on.
"""

from agent_registry.codec.fields import BOOL, I64, PUBKEY, STRING, U8, U16, U64, Enum, FixedBytes, OptionOf
from agent_registry.codec.schema import (
    AccountLayout,
    AccountSpec,
    InstructionSchema,
    Pda,
    ProgramSpec,
    SeedTemplate,
    Value,
    fields,
)
from agent_registry.programs.common import CONFIG_SEEDS, SYSTEM_PROGRAM, config_account, layout_space

PROGRAM_IDS = {
    "devnet": "G8iYmvncvWsfHRrxZvKuPU6B2kcMj82Lpcf6og6SyMkW",
    "localhost": "Bb95aVcDasGfZ5HWE2aickWD86aCiUncZVKEJoBRZraG",
}

MAX_AGENT_ID_LEN = 64
MAX_METADATA_URI_LEN = 200
MAX_EVIDENCE_URI_LEN = 200
MAX_REASON_LEN = 200
MAX_TASK_ID_LEN = 32
MAX_TITLE_LEN = 64
MAX_DESCRIPTION_LEN = 256
MAX_CATEGORY_LEN = 32
MAX_BID_MESSAGE_LEN = 128

INITIAL_REPUTATION_SCORE = 5000
MIN_REPUTATION_SCORE = 0
MAX_REPUTATION_SCORE = 10000
MAX_SCORE_DELTA = 500

TASK_STATUS = Enum("TaskStatus", ("Open", "Assigned", "InProgress", "UnderReview", "Completed", "Cancelled"))
BID_STATUS = Enum("BidStatus", ("Pending", "Accepted", "Rejected"))
TASK_HASH = FixedBytes(32)

SEEDS = {
    "config": CONFIG_SEEDS,
    "identity": SeedTemplate.of(b"identity", Value("agent_id")),
    "reputation": SeedTemplate.of(b"reputation", Value("agent_id")),
    "reward_pool": SeedTemplate.of(b"reward_pool", Value("agent_id")),
    "validation": SeedTemplate.of(b"validation", Pda("identity"), Value("task_hash")),
    "validator": SeedTemplate.of(b"validator", Value("authority")),
    "task": SeedTemplate.of(b"task", Value("task_id")),
    "bid": SeedTemplate.of(b"bid", Value("task"), Value("bidder")),
    # identity looked up by the member's wallet (task publishers and bidders)
    "member_identity": SeedTemplate.of(b"identity", Value("member")),
}

INSTRUCTIONS = {
    s.name: s
    for s in (
        InstructionSchema(
            "initialize_config",
            fields(("commission_rate", U16), ("treasury", PUBKEY)),
            (
                config_account(),
                AccountSpec("authority", signer=True, writable=True),
                SYSTEM_PROGRAM,
            ),
        ),
        InstructionSchema(
            "register_agent",
            fields(("agent_id", STRING), ("metadata_uri", STRING)),
            (
                AccountSpec("identity", writable=True, pda="identity"),
                AccountSpec("reputation", writable=True, pda="reputation"),
                AccountSpec("reward_pool", writable=True, pda="reward_pool"),
                AccountSpec("owner", signer=True, writable=True),
                config_account(),
                SYSTEM_PROGRAM,
            ),
            doc="Create identity, reputation and reward pool accounts for agent_id.",
        ),
        InstructionSchema(
            "update_metadata",
            fields(("new_metadata_uri", STRING)),
            (
                AccountSpec("identity", writable=True, pda="identity"),
                AccountSpec("owner", signer=True),
            ),
        ),
        InstructionSchema(
            "submit_validation",
            fields(("task_hash", TASK_HASH), ("approved", BOOL), ("evidence_uri", STRING)),
            (
                AccountSpec("validation", writable=True, pda="validation"),
                AccountSpec("agent_reputation", pda="reputation"),
                AccountSpec("validator", signer=True, writable=True),
                SYSTEM_PROGRAM,
            ),
        ),
        InstructionSchema(
            "update_reputation",
            (),
            (
                AccountSpec("reputation", writable=True, pda="reputation"),
                AccountSpec("validation", pda="validation"),
                AccountSpec("authority", signer=True),
            ),
        ),
        InstructionSchema(
            "deactivate_agent",
            (),
            (
                AccountSpec("identity", writable=True, pda="identity"),
                AccountSpec("owner", signer=True),
            ),
        ),
        InstructionSchema(
            "claim_rewards",
            (),
            (
                AccountSpec("reward_pool", writable=True, pda="reward_pool"),
                AccountSpec("agent", signer=True, writable=True),
                SYSTEM_PROGRAM,
            ),
        ),
        InstructionSchema(
            "stake_validator",
            fields(("amount", U64)),
            (
                config_account(),
                AccountSpec("validator", writable=True, pda="validator", bind={"authority": "user"}),
                AccountSpec("user", signer=True, writable=True),
                SYSTEM_PROGRAM,
            ),
        ),
        InstructionSchema(
            "unstake_validator",
            fields(("amount", U64)),
            (
                AccountSpec("user", signer=True, writable=True),
                AccountSpec("validator", writable=True, pda="validator", bind={"authority": "user"}),
                SYSTEM_PROGRAM,
            ),
        ),
        InstructionSchema(
            "assign_reputation",
            fields(("score_delta", I64), ("reason", STRING)),
            (
                AccountSpec("reputation", writable=True, pda="reputation"),
                AccountSpec("agent", pda="identity"),
                AccountSpec("validator", pda="validator", bind={"authority": "validator_authority"}),
                AccountSpec("validator_authority", signer=True),
            ),
        ),
        InstructionSchema(
            "publish_task",
            fields(
                ("task_id", STRING),
                ("title", STRING),
                ("description", STRING),
                ("budget", U64),
                ("category", STRING),
                ("deadline", OptionOf(I64)),
            ),
            (
                AccountSpec("publisher", signer=True, writable=True),
                AccountSpec("task_registry", writable=True, pda="task"),
                AccountSpec("identity", pda="member_identity", bind={"member": "publisher"}),
                SYSTEM_PROGRAM,
            ),
        ),
        InstructionSchema(
            "submit_bid",
            fields(("bid_seed", STRING), ("amount", U64), ("estimated_duration", I64), ("message", STRING)),
            (
                AccountSpec("bidder", signer=True, writable=True),
                AccountSpec("bid", writable=True, pda="bid"),
                AccountSpec("task", writable=True, pda="task"),
                AccountSpec("bidder_identity", pda="member_identity", bind={"member": "bidder"}),
                SYSTEM_PROGRAM,
            ),
        ),
        InstructionSchema(
            "accept_bid",
            (),
            (
                AccountSpec("publisher", signer=True, writable=True),
                AccountSpec("task", writable=True, pda="task"),
                AccountSpec("bid", writable=True, pda="bid"),
                AccountSpec("agent_identity", pda="member_identity", bind={"member": "bidder"}),
            ),
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
                ("treasury", PUBKEY),
                ("commission_rate", U16),
                ("total_agents", U64),
                ("total_validations", U64),
                ("bump", U8),
            ),
            space=layout_space(8 + 32 + 32 + 2 + 8 + 8 + 1),
        ),
        AccountLayout(
            "IdentityRegistry",
            fields(
                ("owner", PUBKEY),
                ("agent_id", STRING),
                ("metadata_uri", STRING),
                ("created_at", I64),
                ("updated_at", I64),
                ("is_active", BOOL),
                ("bump", U8),
            ),
            space=layout_space(8 + 32 + (4 + MAX_AGENT_ID_LEN) + (4 + MAX_METADATA_URI_LEN) + 8 + 8 + 1 + 1),
        ),
        AccountLayout(
            "ReputationRegistry",
            fields(
                ("agent", PUBKEY),
                ("score", U64),
                ("total_tasks", U64),
                ("successful_tasks", U64),
                ("failed_tasks", U64),
                ("last_updated", I64),
                ("stake_amount", U64),
                ("bump", U8),
            ),
            space=layout_space(8 + 32 + 8 + 8 + 8 + 8 + 8 + 1),
        ),
        AccountLayout(
            "ValidationRegistry",
            fields(
                ("agent", PUBKEY),
                ("validator", PUBKEY),
                ("task_hash", TASK_HASH),
                ("approved", BOOL),
                ("timestamp", I64),
                ("evidence_uri", STRING),
                ("bump", U8),
            ),
            space=layout_space(8 + 32 + 32 + 32 + 1 + 8 + (4 + MAX_EVIDENCE_URI_LEN) + 1),
        ),
        AccountLayout(
            "RewardPool",
            fields(
                ("agent", PUBKEY),
                ("claimable_amount", U64),
                ("last_claim", I64),
                ("total_claimed", U64),
                ("bump", U8),
            ),
            space=layout_space(8 + 32 + 8 + 8 + 8 + 1),
        ),
        AccountLayout(
            "Validator",
            fields(
                ("authority", PUBKEY),
                ("staked_amount", U64),
                ("is_active", BOOL),
                ("last_stake_timestamp", I64),
                ("total_validations", U64),
                ("bump", U8),
            ),
            space=layout_space(8 + 32 + 8 + 1 + 8 + 8 + 1),
        ),
        AccountLayout(
            "TaskRegistry",
            fields(
                ("task_id", STRING),
                ("publisher", PUBKEY),
                ("title", STRING),
                ("description", STRING),
                ("budget", U64),
                ("category", STRING),
                ("status", TASK_STATUS),
                ("assigned_agent", OptionOf(PUBKEY)),
                ("created_at", I64),
                ("deadline", OptionOf(I64)),
                ("completed_at", OptionOf(I64)),
                ("bump", U8),
            ),
            # allocated without the extra tag bytes
            space=8 + (4 + 32) + 32 + (4 + 64) + (4 + 256) + 8 + (4 + 32) + 1 + (1 + 32) + 8 + (1 + 8) + (1 + 8) + 1,
        ),
        AccountLayout(
            "TaskBid",
            fields(
                ("task", PUBKEY),
                ("bidder", PUBKEY),
                ("amount", U64),
                ("estimated_duration", I64),
                ("message", STRING),
                ("created_at", I64),
                ("status", BID_STATUS),
                ("bump", U8),
            ),
            space=8 + 32 + 32 + 8 + 8 + (4 + MAX_BID_MESSAGE_LEN) + 8 + 1 + 1,
        ),
    )
}

ACCOUNT_KINDS = {
    "config": "GlobalConfig",
    "identity": "IdentityRegistry",
    "member_identity": "IdentityRegistry",
    "reputation": "ReputationRegistry",
    "reward_pool": "RewardPool",
    "validation": "ValidationRegistry",
    "validator": "Validator",
    "task": "TaskRegistry",
    "bid": "TaskBid",
}

ERRORS = (
    ("AgentIdTooLong", "Agent ID exceeds maximum length of 64 characters"),
    ("MetadataUriTooLong", "Metadata URI exceeds maximum length of 200 characters"),
    ("EvidenceUriTooLong", "Evidence URI exceeds maximum length of 200 characters"),
    ("AgentNotActive", "Agent is not active"),
    ("Unauthorized", "Unauthorized: caller is not the agent owner"),
    ("InvalidReputationScore", "Invalid reputation score"),
    ("ValidationAlreadyExists", "Validation already exists for this task hash"),
    ("InsufficientReputation", "Insufficient reputation score for this action"),
    ("InvalidCommissionRate", "Commission rate exceeds maximum allowed (10%)"),
    ("RewardClaimTooEarly", "Reward claim too early, must wait 24 hours"),
    ("NoRewardsAvailable", "No rewards available to claim"),
    ("ArithmeticOverflow", "Arithmetic overflow"),
    ("AgentAlreadyRegistered", "Agent already registered"),
    ("ValidatorNotActive", "Validator is not active or doesn't meet minimum stake"),
    ("InsufficientStake", "Insufficient stake amount"),
    ("ReasonTooLong", "Reason text exceeds maximum length of 200 characters"),
    ("InvalidScoreDelta", "Invalid score delta: must be between -500 and +500"),
    ("TaskIdTooLong", "Task ID is too long (max 32 chars)"),
    ("TitleTooLong", "Title is too long (max 64 chars)"),
    ("DescriptionTooLong", "Description is too long (max 256 chars)"),
    ("CategoryTooLong", "Category is too long (max 32 chars)"),
    ("InvalidBudget", "Budget must be greater than 0"),
    ("TaskNotOpen", "Task is not open for bidding"),
    ("InvalidBidAmount", "Bid amount must be > 0 and <= task budget"),
    ("MessageTooLong", "Message is too long (max 128 chars)"),
    ("NotTaskPublisher", "Only task publisher can accept bids"),
    ("BidTaskMismatch", "Bid does not match task"),
    ("BidNotPending", "Bid is not pending"),
)

LIMITS = {
    "agent_id": MAX_AGENT_ID_LEN,
    "metadata_uri": MAX_METADATA_URI_LEN,
    "new_metadata_uri": MAX_METADATA_URI_LEN,
    "evidence_uri": MAX_EVIDENCE_URI_LEN,
    "reason": MAX_REASON_LEN,
    "task_id": MAX_TASK_ID_LEN,
    "title": MAX_TITLE_LEN,
    "description": MAX_DESCRIPTION_LEN,
    "category": MAX_CATEGORY_LEN,
    "message": MAX_BID_MESSAGE_LEN,
}

IDENTITY = ProgramSpec(
    name="identity",
    program_ids=PROGRAM_IDS,
    instructions=INSTRUCTIONS,
    seeds=SEEDS,
    layouts=LAYOUTS,
    account_kinds=ACCOUNT_KINDS,
    errors=ERRORS,
    limits=LIMITS,
    description="Agent identity, reputation, validator staking and task marketplace",
)


def success_rate(successful_tasks: int, total_tasks: int) -> int:
    """Whole-percent success rate; 100 for an agent with no tasks yet."""
    if total_tasks == 0:
        return 100
    return (successful_tasks * 100) // total_tasks


def score_change(rate: int, approved: bool) -> int:
    """Reputation delta applied for one validation at the given success rate."""
    if approved:
        if rate >= 90:
            return 100
        if rate >= 80:
            return 75
        if rate >= 70:
            return 50
        return 25
    if rate <= 50:
        return -150
    if rate <= 70:
        return -100
    return -50


def reward_multiplier(score: int) -> int:
    if score >= 9000:
        return 5
    if score >= 8000:
        return 4
    if score >= 7000:
        return 3
    if score >= 6000:
        return 2
    return 1


def clamp_score(score: int) -> int:
    return max(MIN_REPUTATION_SCORE, min(MAX_REPUTATION_SCORE, score))
