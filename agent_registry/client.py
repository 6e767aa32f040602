"""
Caller-facing API.

ProgramClient is the generic engine: registry lookup -> account resolution
(PDAs derived from the program's seed templates) -> instruction bytes ->
TransactionSubmitter, plus typed account reads through AccountReader. It knows
nothing about any particular program; everything program-specific lives in
the tables under agent_registry.programs.

AgentRegistryClient wires the four program tables to one RPC boundary and one
signer and exposes the task-level operations.
"""

from __future__ import annotations

import hashlib
from typing import Any, Mapping, Sequence

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from agent_registry.chain.instructions import AccountRole, build_instruction, resolve_accounts
from agent_registry.chain.pda import DerivedAddress, derive_kind
from agent_registry.chain.reader import AccountReader, AccountRecord
from agent_registry.chain.rpc import RpcBoundary
from agent_registry.chain.signer import Signer, sign_message
from agent_registry.chain.submitter import SubmitResult, SubmitterConfig, TransactionSubmitter
from agent_registry.codec.encoder import (
    account_filters,
    check_limits,
    encode_field,
    encode_fields,
    field_offsets,
)
from agent_registry.codec.fields import to_pubkey
from agent_registry.codec.schema import ProgramSpec
from agent_registry.config.env import get_program_id, get_solana_network
from agent_registry.config.settings import get_settings
from agent_registry.errors import ErrorKind, SchemaError
from agent_registry.programs import get_program
from agent_registry.programs.attestation import ATTESTATION
from agent_registry.programs.capability import CAPABILITY
from agent_registry.programs.consensus import CONSENSUS
from agent_registry.programs.identity import IDENTITY
from agent_registry.registry_logging import bind_program

Values = Sequence[Any] | Mapping[str, Any]


class ProgramClient:
    """One on-chain program behind one RPC boundary."""

    def __init__(
        self,
        program: ProgramSpec | str,
        rpc: RpcBoundary,
        *,
        network: str | None = None,
        program_id: Pubkey | str | None = None,
        submitter: TransactionSubmitter | None = None,
    ) -> None:
        self.program = get_program(program) if isinstance(program, str) else program
        self.rpc = rpc
        self.network = network or get_solana_network()
        if program_id is None:
            program_id = get_program_id(self.program.name, self.program.program_ids, self.network)
        self.program_id = to_pubkey(program_id)
        if submitter is None:
            submitter = TransactionSubmitter(rpc, SubmitterConfig.from_settings(get_settings()))
        self.submitter = submitter
        self.reader = AccountReader(rpc, self.program_id)
        self.logger = bind_program(self.program.name, self.program_id)

    def derive(self, kind: str, **params: Any) -> DerivedAddress:
        """Address of account ``kind`` from its seed template, e.g. derive("identity", agent_id="agent-001")."""
        return derive_kind(self.program, self.program_id, kind, params)

    def accounts(
        self,
        name: str,
        values: Values,
        *,
        payer: Pubkey | None = None,
        accounts: Mapping[str, Any] | None = None,
        seeds: Mapping[str, Any] | None = None,
    ) -> list[AccountRole]:
        return resolve_accounts(
            self.program,
            self.program_id,
            self.program.instruction(name),
            values,
            payer=payer,
            overrides=accounts,
            seeds=seeds,
        )

    def instruction(
        self,
        name: str,
        values: Values,
        *,
        payer: Pubkey | None = None,
        accounts: Mapping[str, Any] | None = None,
        seeds: Mapping[str, Any] | None = None,
        remaining_accounts: Sequence[AccountRole | Pubkey | str] | None = None,
        check: bool = True,
    ) -> Instruction:
        """
        Build one instruction. Program-side string limits are checked first
        unless ``check`` is False; the encoder itself never enforces them.
        """
        schema = self.program.instruction(name)
        if check:
            check_limits(schema, values, self.program.limits)
        roles = self.accounts(name, values, payer=payer, accounts=accounts, seeds=seeds)
        for extra in remaining_accounts or ():
            roles.append(extra if isinstance(extra, AccountRole) else AccountRole.of(extra))
        return build_instruction(self.program_id, schema, values, roles)

    async def execute(
        self,
        name: str,
        values: Values,
        *,
        signers: Sequence[Signer],
        payer: Pubkey | None = None,
        accounts: Mapping[str, Any] | None = None,
        seeds: Mapping[str, Any] | None = None,
        remaining_accounts: Sequence[AccountRole | Pubkey | str] | None = None,
        simulate: bool | None = None,
        check: bool = True,
    ) -> SubmitResult:
        """Build, sign, (simulate,) send and confirm a single-instruction transaction."""
        if not signers:
            raise SchemaError(f"{self.program.name}.{name} needs at least one signer", kind=ErrorKind.MISSING_ACCOUNT)
        payer = payer or signers[0].pubkey
        ix = self.instruction(
            name,
            values,
            payer=payer,
            accounts=accounts,
            seeds=seeds,
            remaining_accounts=remaining_accounts,
            check=check,
        )
        tx = self.submitter.build(
            [ix],
            payer,
            label=f"{self.program.name}.{name}",
            error_table=self.program.error_table,
        )
        result = await self.submitter.submit(tx, signers, simulate=simulate)
        self.logger.info("instruction_executed", instruction=name, signature=result.signature, slot=result.slot)
        return result

    async def fetch(self, kind: str, address: Pubkey | str | None = None, **params: Any) -> AccountRecord | None:
        """Read and decode account ``kind``; None when it does not exist."""
        layout = self.program.layout_for(kind)
        if address is None:
            address = self.derive(kind, **params).address
        return await self.reader.read(address, layout)

    async def list(self, kind: str, **where: Any) -> list[AccountRecord]:
        """
        All accounts of ``kind`` owned by the program whose fields equal
        ``where``, e.g. list("identity", owner=wallet) or
        list("consensus", status="Pending"). Fields at a fixed offset are
        matched by the node through memcmp; the rest are compared after decoding.
        """
        layout = self.program.layout_for(kind)
        offsets = field_offsets(layout)
        remote = {k: v for k, v in where.items() if k in offsets}
        local = {k: encode_field(layout, k, v) for k, v in where.items() if k not in offsets}
        records = await self.reader.scan(layout, account_filters(layout, **remote))
        return [
            r for r in records if all(encode_field(layout, k, r[k]) == raw for k, raw in local.items())
        ]


def task_hash_of(task: bytes | str) -> bytes:
    """32-byte task hash: raw 32 bytes pass through, anything else is SHA-256 hashed."""
    if isinstance(task, (bytes, bytearray)) and len(task) == 32:
        return bytes(task)
    if isinstance(task, str):
        task = task.encode("utf-8")
    return hashlib.sha256(bytes(task)).digest()


class AgentRegistryClient:
    """Identity, attestation, consensus and capability programs for one signer."""

    def __init__(
        self,
        rpc: RpcBoundary,
        signer: Signer,
        *,
        network: str | None = None,
        submitter: TransactionSubmitter | None = None,
        program_ids: Mapping[str, Pubkey | str] | None = None,
    ) -> None:
        self.rpc = rpc
        self.signer = signer
        self.network = network or get_solana_network()
        if submitter is None:
            submitter = TransactionSubmitter(rpc, SubmitterConfig.from_settings(get_settings()))
        ids = dict(program_ids or {})

        def _client(spec: ProgramSpec) -> ProgramClient:
            return ProgramClient(
                spec, rpc, network=self.network, program_id=ids.get(spec.name), submitter=submitter
            )

        self.identity = _client(IDENTITY)
        self.attestation = _client(ATTESTATION)
        self.consensus = _client(CONSENSUS)
        self.capability = _client(CAPABILITY)

    @property
    def signers(self) -> list[Signer]:
        return [self.signer]

    async def register_entity(self, agent_id: str, metadata_uri: str) -> SubmitResult:
        return await self.identity.execute(
            "register_agent",
            {"agent_id": agent_id, "metadata_uri": metadata_uri},
            signers=self.signers,
        )

    async def submit_attestation_or_validation(
        self,
        agent_id: str,
        *,
        attestation_type: str | None = None,
        claims_uri: str = "",
        expires_at: int = 0,
        signature: bytes | None = None,
        task: bytes | str | None = None,
        approved: bool = True,
        evidence_uri: str = "",
    ) -> SubmitResult:
        """
        With ``attestation_type``: issue an attestation about ``agent_id`` from
        the signer's issuer account. The detached signature defaults to the
        signer's signature over the Borsh-encoded claim fields.

        Without it: submit a validation of ``task`` (32-byte hash, or text that
        is SHA-256 hashed) against the agent's reputation.
        """
        if attestation_type is not None:
            if signature is None:
                signature = bytes(await self.sign_claims(agent_id, attestation_type, claims_uri, expires_at))
            return await self.attestation.execute(
                "issue_attestation",
                {
                    "agent_id": agent_id,
                    "attestation_type": attestation_type,
                    "claims_uri": claims_uri,
                    "expires_at": expires_at,
                    "signature": signature,
                },
                signers=self.signers,
            )
        if task is None:
            raise SchemaError("A validation needs a task hash", kind=ErrorKind.MISSING_SEED_VALUE, seed="task_hash")
        return await self.identity.execute(
            "submit_validation",
            {"task_hash": task_hash_of(task), "approved": approved, "evidence_uri": evidence_uri},
            signers=self.signers,
            seeds={"agent_id": agent_id},
        )

    async def sign_claims(self, agent_id: str, attestation_type: str, claims_uri: str, expires_at: int) -> Any:
        schema = ATTESTATION.instruction("issue_attestation")
        message = encode_fields(
            schema.fields[:4],
            [agent_id, attestation_type, claims_uri, expires_at],
            what="attestation claims",
        )
        return await sign_message(self.signer, message)

    async def read_record(self, agent_id: str, kind: str = "identity") -> AccountRecord | None:
        """Decoded identity (or reputation / reward_pool) account for ``agent_id``; None if not registered."""
        return await self.identity.fetch(kind, agent_id=agent_id)

    async def declare_capability(
        self, agent_id: str, capability_type: str, version: str, metadata_uri: str
    ) -> SubmitResult:
        return await self.capability.execute(
            "declare_capability",
            [agent_id, capability_type, version, metadata_uri],
            signers=self.signers,
        )

    async def request_consensus(
        self,
        agent_id: str,
        action_type: str,
        data_hash: bytes,
        threshold: int,
        validator_keys: Sequence[Pubkey | str],
    ) -> SubmitResult:
        return await self.consensus.execute(
            "request_consensus",
            [agent_id, action_type, data_hash, threshold, [to_pubkey(k) for k in validator_keys]],
            signers=self.signers,
        )

    async def cast_vote(
        self,
        *,
        agent_id: str,
        action_type: str,
        requester: Pubkey | str,
        request_id: str,
        approve: bool,
        evidence_uri: str = "",
    ) -> SubmitResult:
        """Vote on the request identified by (agent_id, action_type, requester) as the signer's validator."""
        return await self.consensus.execute(
            "cast_vote",
            [request_id, approve, evidence_uri],
            signers=self.signers,
            seeds={"agent_id": agent_id, "action_type": action_type, "requester": to_pubkey(requester)},
        )
