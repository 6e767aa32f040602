"""
Pytest fixtures for agent_registry tests.

FakeRpc is an in-memory RPC boundary. It runs submitted transactions through a
small emulator of the identity program (register_agent writes real Anchor
account bytes, a wrong account order fails with the ConstraintSeeds log lines
the program emits) and accepts every other instruction as a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from agent_registry.chain.pda import derive_kind
from agent_registry.chain.rpc import AccountInfo, BlockhashInfo, KeyedAccount, SignatureStatus, SimulationResult
from agent_registry.chain.signer import KeypairSigner
from agent_registry.chain.submitter import SubmitterConfig, TransactionSubmitter
from agent_registry.codec.encoder import (
    DISCRIMINATOR_LEN,
    decode_instruction,
    encode_account,
    instruction_discriminator,
)
from agent_registry.errors import OnChainRejection
from agent_registry.programs.identity import IDENTITY, INITIAL_REPUTATION_SCORE, MAX_METADATA_URI_LEN

IDENTITY_PROGRAM_ID = Pubkey.from_string(IDENTITY.program_ids["devnet"])
NOW = 1_700_000_000
BLOCKHASH_VALIDITY = 150


def keypair_signer(n: int) -> KeypairSigner:
    """Deterministic signer seeded with 32 bytes of ``n``."""
    return KeypairSigner(Keypair.from_seed(bytes([n]) * 32))


def _camel(name: str) -> str:
    return "".join(part.capitalize() for part in name.split("_"))


@dataclass
class Outcome:
    err: Any = None
    logs: list[str] = field(default_factory=list)
    writes: dict[Pubkey, AccountInfo] = field(default_factory=dict)


class IdentityEmulator:
    """Just enough of the identity program to exercise the client end to end."""

    def __init__(self, program_id: Pubkey = IDENTITY_PROGRAM_ID) -> None:
        self.program_id = program_id
        self.by_tag = {instruction_discriminator(name): s for name, s in IDENTITY.instructions.items()}

    def _fail(self, logs: list[str], code: str, number: int, message: str, account: str | None = None) -> Outcome:
        cause = f" caused by account: {account}." if account else "."
        logs = logs + [
            f"Program log: AnchorError{cause} Error Code: {code}. Error Number: {number}. Error Message: {message}.",
            f"Program {self.program_id} consumed 6000 of 200000 compute units",
            f"Program {self.program_id} failed: custom program error: {hex(number)}",
        ]
        return Outcome(err=f"InstructionError(0, Custom({number}))", logs=logs)

    def run(self, data: bytes, keys: list[Pubkey], accounts: dict[Pubkey, AccountInfo]) -> Outcome:
        schema = self.by_tag.get(bytes(data[:DISCRIMINATOR_LEN]))
        logs = [f"Program {self.program_id} invoke [1]"]
        if schema is None:
            return self._fail(logs, "InstructionFallbackNotFound", 101, "Fallback functions are not supported")
        logs.append(f"Program log: Instruction: {_camel(schema.name)}")
        values = decode_instruction(schema, data)
        if schema.name != "register_agent":
            logs.append(f"Program {self.program_id} success")
            return Outcome(logs=logs)

        agent_id = values["agent_id"]
        context = {"agent_id": agent_id}
        expected = {
            name: derive_kind(IDENTITY, self.program_id, name, context).address
            for name in ("identity", "reputation", "reward_pool")
        }
        for index, name in enumerate(("identity", "reputation", "reward_pool")):
            if keys[index] != expected[name]:
                return self._fail(logs, "ConstraintSeeds", 2006, "A seeds constraint was violated", account=name)
        if len(values["metadata_uri"].encode("utf-8")) > MAX_METADATA_URI_LEN:
            return self._fail(logs, "MetadataUriTooLong", 6001, "Metadata URI exceeds maximum length of 200 characters")
        if expected["identity"] in accounts:
            logs.append(f"Allocate: account Address {{ address: {expected['identity']}, base: None }} already in use")
            logs.append(f"Program {self.program_id} failed: custom program error: 0x0")
            return Outcome(err="InstructionError(0, Custom(0))", logs=logs)

        owner = keys[3]
        identity_layout = IDENTITY.layouts["IdentityRegistry"]
        identity = encode_account(
            identity_layout,
            [owner, agent_id, values["metadata_uri"], NOW, NOW, True, 255],
        )
        reputation = encode_account(
            IDENTITY.layouts["ReputationRegistry"],
            [expected["identity"], INITIAL_REPUTATION_SCORE, 0, 0, 0, NOW, 0, 255],
        )
        reward_pool = encode_account(IDENTITY.layouts["RewardPool"], [expected["identity"], 0, NOW, 0, 255])
        logs.append(f"Program log: Agent registered successfully: {agent_id}")
        logs.append(f"Program {self.program_id} success")
        return Outcome(
            logs=logs,
            writes={
                expected["identity"]: self._account(identity, identity_layout.space),
                expected["reputation"]: self._account(reputation, IDENTITY.layouts["ReputationRegistry"].space),
                expected["reward_pool"]: self._account(reward_pool, IDENTITY.layouts["RewardPool"].space),
            },
        )

    def _account(self, data: bytes, space: int | None) -> AccountInfo:
        padded = data + bytes((space or len(data)) - len(data))
        return AccountInfo(data=padded, owner=self.program_id, lamports=1_000_000)


class FakeRpc:
    """In-memory RpcBoundary with knobs for the failure modes the submitter handles."""

    def __init__(self, emulator: IdentityEmulator | None = None) -> None:
        self.emulator = emulator or IdentityEmulator()
        self.accounts: dict[Pubkey, AccountInfo] = {}
        self.block_height = 1_000
        self.blockhash = Hash.new_unique()
        self.skip_preflight = False
        self.confirmation_status = "confirmed"
        # polls answered with None before the real status shows up
        self.pending_polls = 0
        self.never_land = False
        self.inline_logs = True
        self.poll_errors = 0
        self.statuses: dict[Signature, SignatureStatus] = {}
        self.tx_logs: dict[Signature, list[str]] = {}
        self.calls: dict[str, int] = {}
        self.program_account_filters: list[tuple[int, bytes]] = []

    def _count(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    def _execute(self, tx: Transaction) -> Outcome:
        message = tx.message
        keys = list(message.account_keys)
        logs: list[str] = []
        writes: dict[Pubkey, AccountInfo] = {}
        for ix in message.instructions:
            program_id = keys[ix.program_id_index]
            ix_keys = [keys[i] for i in bytes(ix.accounts)]
            if program_id != self.emulator.program_id:
                logs.append(f"Program {program_id} invoke [1]")
                logs.append(f"Program {program_id} success")
                continue
            outcome = self.emulator.run(bytes(ix.data), ix_keys, {**self.accounts, **writes})
            logs.extend(outcome.logs)
            if outcome.err is not None:
                return Outcome(err=outcome.err, logs=logs)
            writes.update(outcome.writes)
        return Outcome(logs=logs, writes=writes)

    async def get_account_info(self, address: Pubkey) -> AccountInfo | None:
        self._count("get_account_info")
        return self.accounts.get(address)

    async def get_program_accounts(self, program_id: Pubkey, filters=()) -> list[KeyedAccount]:
        self._count("get_program_accounts")
        self.program_account_filters = list(filters)
        return [
            KeyedAccount(address, info)
            for address, info in self.accounts.items()
            if info.owner == program_id
            and all(info.data[offset : offset + len(raw)] == raw for offset, raw in filters)
        ]

    async def get_latest_blockhash(self) -> BlockhashInfo:
        self._count("get_latest_blockhash")
        return BlockhashInfo(self.blockhash, self.block_height + BLOCKHASH_VALIDITY)

    async def get_block_height(self) -> int:
        self._count("get_block_height")
        return self.block_height

    async def simulate_transaction(self, tx: Transaction) -> SimulationResult:
        self._count("simulate_transaction")
        outcome = self._execute(tx)
        return SimulationResult(err=outcome.err, logs=outcome.logs, units_consumed=6000)

    async def send_transaction(self, tx: Transaction) -> Signature:
        self._count("send_transaction")
        signature = tx.signatures[0]
        outcome = self._execute(tx)
        if outcome.err is not None and not self.skip_preflight:
            raise OnChainRejection(
                "Transaction simulation failed",
                logs=outcome.logs,
                err=str(outcome.err),
            )
        if self.never_land:
            return signature
        if outcome.err is None:
            self.accounts.update(outcome.writes)
        self.statuses[signature] = SignatureStatus(self.confirmation_status, outcome.err, slot=42)
        self.tx_logs[signature] = outcome.logs
        return signature

    async def get_signature_status(self, signature: Signature) -> SignatureStatus | None:
        self._count("get_signature_status")
        if self.poll_errors > 0:
            from agent_registry.errors import RpcError

            self.poll_errors -= 1
            raise RpcError("connection reset", method="getSignatureStatuses")
        if self.pending_polls > 0:
            self.pending_polls -= 1
            return None
        return self.statuses.get(signature)

    async def get_transaction_logs(self, signature: Signature) -> list[str] | None:
        self._count("get_transaction_logs")
        if not self.inline_logs:
            return None
        return self.tx_logs.get(signature)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep tests independent of any local .env or shell configuration."""
    for var in (
        "SOLANA_NETWORK",
        "SOLANA_CLUSTER",
        "SOLANA_RPC_URL",
        "HELIUS_API_KEY",
        "SOLANA_COMMITMENT",
        "CONFIRM_TIMEOUT_SEC",
        "CONFIRM_POLL_INTERVAL_SEC",
        "SIMULATE_BEFORE_SEND",
        "SKIP_PREFLIGHT",
        "PAYER_PRIVATE_KEY",
        "IDENTITY_PROGRAM_ID",
        "ATTESTATION_PROGRAM_ID",
        "CONSENSUS_PROGRAM_ID",
        "CAPABILITY_PROGRAM_ID",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr("agent_registry.config.env.load_env", lambda: None)
    monkeypatch.setattr("agent_registry.config.settings.load_env", lambda: None)
    from agent_registry.config.settings import reset_settings

    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def rpc():
    return FakeRpc()


@pytest.fixture
def signer():
    return keypair_signer(1)


@pytest.fixture
def submitter(rpc):
    """Fast polling so confirmation and timeout tests finish quickly."""
    return TransactionSubmitter(rpc, SubmitterConfig(confirm_timeout_sec=0.5, poll_interval_sec=0.01))
