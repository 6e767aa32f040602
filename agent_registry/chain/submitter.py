"""
Transaction submitter.

Each transaction is a PendingTransaction value walking the state machine

    BUILT -> SIGNED -> SIMULATED (optional) -> SENT -> CONFIRMED | FAILED | TIMED_OUT

Every transition goes through PendingTransaction.advance(), which records it
in ``history`` and refuses anything outside the table below. A FAILED or
TIMED_OUT transaction is terminal and never goes back to SENT; any attempt to
resubmit a CONFIRMED one raises TransactionLifecycleError(ALREADY_FINALIZED).

The submitter itself holds no per-transaction state, so transactions built
concurrently never share anything but the RPC boundary. Confirmation is a
bounded poll. Cancelling confirm() stops watching, not the transaction: it
may still land, and the PendingTransaction stays SENT so confirm() can be
called again later.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from agent_registry.chain.rpc import RpcBoundary
from agent_registry.chain.signer import Signer, sign_message
from agent_registry.config.settings import Settings
from agent_registry.errors import (
    ErrorKind,
    OnChainRejection,
    RpcError,
    SigningError,
    TransactionLifecycleError,
    parse_program_error,
)
from agent_registry.registry_logging import get_logger

logger = get_logger(__name__)

COMMITMENT_ORDER = ("processed", "confirmed", "finalized")


class TxState(str, Enum):
    BUILT = "built"
    SIGNED = "signed"
    SIMULATED = "simulated"
    SENT = "sent"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = frozenset({TxState.CONFIRMED, TxState.FAILED, TxState.TIMED_OUT})

_TRANSITIONS: dict[TxState, frozenset[TxState]] = {
    TxState.BUILT: frozenset({TxState.SIGNED, TxState.FAILED}),
    TxState.SIGNED: frozenset({TxState.SIMULATED, TxState.SENT, TxState.FAILED}),
    TxState.SIMULATED: frozenset({TxState.SENT, TxState.FAILED}),
    TxState.SENT: frozenset({TxState.CONFIRMED, TxState.FAILED, TxState.TIMED_OUT}),
    TxState.CONFIRMED: frozenset(),
    TxState.FAILED: frozenset(),
    TxState.TIMED_OUT: frozenset(),
}


@dataclass
class PendingTransaction:
    """One transaction and everything learned about it so far."""

    instructions: list[Instruction]
    payer: Pubkey
    label: str = ""
    error_table: dict[int, tuple[str, str]] = field(default_factory=dict)
    state: TxState = TxState.BUILT
    history: list[TxState] = field(default_factory=lambda: [TxState.BUILT])
    transaction: Transaction | None = None
    blockhash: Hash | None = None
    last_valid_block_height: int | None = None
    signature: Signature | None = None
    slot: int | None = None
    simulation_logs: list[str] = field(default_factory=list)
    units_consumed: int | None = None
    logs: list[str] = field(default_factory=list)
    error: Exception | None = None

    def advance(self, new_state: TxState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise _lifecycle_error(self, f"cannot move from {self.state.value} to {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def fail(self, error: Exception, new_state: TxState = TxState.FAILED) -> Exception:
        self.error = error
        self.advance(new_state)
        return error

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def log_context(self) -> dict[str, Any]:
        ctx: dict[str, Any] = {"label": self.label, "payer": str(self.payer), "state": self.state.value}
        if self.signature is not None:
            ctx["signature"] = str(self.signature)
        return ctx


def _lifecycle_error(tx: PendingTransaction, message: str) -> TransactionLifecycleError:
    kind = ErrorKind.ALREADY_FINALIZED if tx.state == TxState.CONFIRMED else ErrorKind.INVALID_TRANSITION
    return TransactionLifecycleError(
        f"{tx.label or 'transaction'}: {message}",
        kind=kind,
        state=tx.state.value,
        signature=str(tx.signature) if tx.signature else None,
    )


@dataclass(frozen=True)
class SubmitResult:
    signature: str
    state: TxState
    slot: int | None = None
    logs: list[str] = field(default_factory=list)
    simulation_logs: list[str] = field(default_factory=list)
    units_consumed: int | None = None

    @classmethod
    def from_pending(cls, tx: PendingTransaction) -> SubmitResult:
        return cls(
            signature=str(tx.signature),
            state=tx.state,
            slot=tx.slot,
            logs=list(tx.logs),
            simulation_logs=list(tx.simulation_logs),
            units_consumed=tx.units_consumed,
        )


@dataclass
class SubmitterConfig:
    commitment: str = "confirmed"
    confirm_timeout_sec: float = 30.0
    poll_interval_sec: float = 1.0
    simulate_before_send: bool = True

    def __post_init__(self) -> None:
        if self.commitment not in COMMITMENT_ORDER:
            raise ValueError(f"commitment must be one of {COMMITMENT_ORDER}")
        if self.confirm_timeout_sec <= 0 or self.poll_interval_sec <= 0:
            raise ValueError("confirm timeout and poll interval must be positive")

    @classmethod
    def from_settings(cls, settings: Settings) -> SubmitterConfig:
        return cls(
            commitment=settings.commitment,
            confirm_timeout_sec=settings.confirm_timeout_sec,
            poll_interval_sec=settings.confirm_poll_interval_sec,
            simulate_before_send=settings.simulate_before_send,
        )


def _reached(status: str | None, target: str) -> bool:
    if status not in COMMITMENT_ORDER:
        return False
    return COMMITMENT_ORDER.index(status) >= COMMITMENT_ORDER.index(target)


def _is_blockhash_not_found(err: Any) -> bool:
    return "BlockhashNotFound" in str(err)


class TransactionSubmitter:
    """Drives PendingTransaction values through sign / simulate / send / confirm against one RPC boundary."""

    def __init__(self, rpc: RpcBoundary, config: SubmitterConfig | None = None) -> None:
        self.rpc = rpc
        self.config = config or SubmitterConfig()

    def build(
        self,
        instructions: Sequence[Instruction],
        payer: Pubkey,
        *,
        label: str = "",
        error_table: dict[int, tuple[str, str]] | None = None,
    ) -> PendingTransaction:
        if not instructions:
            raise TransactionLifecycleError("A transaction needs at least one instruction")
        return PendingTransaction(
            instructions=list(instructions),
            payer=payer,
            label=label,
            error_table=dict(error_table or {}),
        )

    async def sign(self, tx: PendingTransaction, signers: Sequence[Signer]) -> PendingTransaction:
        """Fetch a recent blockhash, compile the message and collect every required signature."""
        if tx.state != TxState.BUILT:
            raise _lifecycle_error(tx, "only a built transaction can be signed")
        latest = await self.rpc.get_latest_blockhash()
        message = Message.new_with_blockhash(tx.instructions, tx.payer, latest.blockhash)
        required = list(message.account_keys[: message.header.num_required_signatures])
        by_key = {s.pubkey: s for s in signers}
        missing = [str(k) for k in required if k not in by_key]
        if missing:
            raise SigningError(f"No signer for required keys {missing}", missing=missing, label=tx.label)
        payload = bytes(message)
        signatures = [await sign_message(by_key[key], payload) for key in required]
        tx.transaction = Transaction.populate(message, signatures)
        tx.blockhash = latest.blockhash
        tx.last_valid_block_height = latest.last_valid_block_height
        tx.signature = signatures[0]
        tx.advance(TxState.SIGNED)
        logger.info("tx_signed", last_valid_block_height=tx.last_valid_block_height, **tx.log_context())
        return tx

    async def simulate(self, tx: PendingTransaction) -> PendingTransaction:
        """Dry-run a signed transaction. A failing simulation moves it to FAILED with the node's logs attached."""
        if tx.state != TxState.SIGNED:
            raise _lifecycle_error(tx, "only a signed, unsent transaction can be simulated")
        result = await self.rpc.simulate_transaction(tx.transaction)
        tx.simulation_logs = list(result.logs)
        tx.units_consumed = result.units_consumed
        if result.ok:
            tx.advance(TxState.SIMULATED)
            logger.info("tx_simulated", units_consumed=result.units_consumed, **tx.log_context())
            return tx
        if _is_blockhash_not_found(result.err):
            raise tx.fail(self._expired(tx, "blockhash expired before simulation"))
        error = self._rejection(
            tx, result.err, result.logs, kind=ErrorKind.SIMULATION_FAILED, prefix="simulation failed"
        )
        logger.warning(
            "tx_simulation_failed",
            err=str(result.err),
            error_code=error.error_code,
            log_lines=len(result.logs),
            **tx.log_context(),
        )
        raise tx.fail(error)

    async def send(self, tx: PendingTransaction) -> PendingTransaction:
        """
        Send a signed (or simulated) transaction. An expired blockhash fails it
        with EXPIRED before anything is sent; a transport error leaves the state
        untouched so the caller may retry.
        """
        if tx.state not in (TxState.SIGNED, TxState.SIMULATED):
            raise _lifecycle_error(tx, "only a signed transaction can be sent")
        height = await self.rpc.get_block_height()
        if tx.last_valid_block_height is not None and height > tx.last_valid_block_height:
            raise tx.fail(self._expired(tx, "blockhash expired before send", block_height=height))
        try:
            signature = await self.rpc.send_transaction(tx.transaction)
        except OnChainRejection as e:
            if _is_blockhash_not_found(e.diagnostics.get("err")):
                raise tx.fail(self._expired(tx, "node reports blockhash not found")) from e
            error = self._rejection(
                tx, e.diagnostics.get("err"), e.logs, kind=e.kind, prefix="preflight failed"
            )
            logger.warning("tx_failed", err=e.diagnostics.get("err"), error_code=error.error_code, **tx.log_context())
            raise tx.fail(error) from e
        tx.signature = signature
        tx.advance(TxState.SENT)
        logger.info("tx_sent", **tx.log_context())
        return tx

    async def confirm(
        self,
        tx: PendingTransaction,
        *,
        timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> PendingTransaction:
        """
        Poll the signature until it reaches the configured commitment, reports a
        program error or the timeout elapses. Poll errors are logged and retried
        inside the window; nothing is retried after it.
        """
        if tx.state != TxState.SENT:
            raise _lifecycle_error(tx, "only a sent transaction can be confirmed")
        timeout = self.config.confirm_timeout_sec if timeout is None else timeout
        poll_interval = self.config.poll_interval_sec if poll_interval is None else poll_interval
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        attempts = 0
        try:
            while True:
                attempts += 1
                try:
                    status = await self.rpc.get_signature_status(tx.signature)
                    if status is not None and status.err is not None:
                        logs = await self._fetch_logs(tx)
                        error = self._rejection(tx, status.err, logs, kind=ErrorKind.ON_CHAIN_REJECTION)
                        tx.slot = status.slot
                        logger.warning(
                            "tx_failed", err=str(status.err), error_code=error.error_code, **tx.log_context()
                        )
                        raise tx.fail(error)
                    if status is not None and _reached(status.confirmation_status, self.config.commitment):
                        tx.slot = status.slot
                        tx.logs = await self._fetch_logs(tx)
                        tx.advance(TxState.CONFIRMED)
                        logger.info("tx_confirmed", slot=tx.slot, attempts=attempts, **tx.log_context())
                        return tx
                    if status is None and tx.last_valid_block_height is not None:
                        height = await self.rpc.get_block_height()
                        if height > tx.last_valid_block_height:
                            raise tx.fail(
                                self._expired(tx, "blockhash expired before the transaction landed", block_height=height)
                            )
                except RpcError as e:
                    logger.warning("tx_confirm_poll_error", attempt=attempts, error=str(e), **tx.log_context())
                if loop.time() >= deadline:
                    error = TransactionLifecycleError(
                        f"{tx.label or 'transaction'}: not confirmed within {timeout:g}s",
                        kind=ErrorKind.TIMED_OUT,
                        signature=str(tx.signature),
                        timeout_sec=timeout,
                        attempts=attempts,
                    )
                    logger.warning("tx_confirm_timeout", timeout_sec=timeout, attempts=attempts, **tx.log_context())
                    raise tx.fail(error, TxState.TIMED_OUT)
                await asyncio.sleep(min(poll_interval, max(deadline - loop.time(), 0.0)))
        except asyncio.CancelledError:
            logger.info("tx_confirm_cancelled", attempts=attempts, **tx.log_context())
            raise

    async def submit(
        self,
        tx: PendingTransaction,
        signers: Sequence[Signer],
        *,
        simulate: bool | None = None,
    ) -> SubmitResult:
        """Run the whole lifecycle from wherever ``tx`` currently is and return the confirmed result."""
        if tx.state == TxState.CONFIRMED:
            raise _lifecycle_error(tx, "already confirmed; build a new transaction instead")
        if tx.state in (TxState.FAILED, TxState.TIMED_OUT):
            raise _lifecycle_error(tx, "is terminal; rebuild with a fresh blockhash")
        simulate = self.config.simulate_before_send if simulate is None else simulate
        if tx.state == TxState.BUILT:
            await self.sign(tx, signers)
        if simulate and tx.state == TxState.SIGNED:
            await self.simulate(tx)
        if tx.state in (TxState.SIGNED, TxState.SIMULATED):
            await self.send(tx)
        await self.confirm(tx)
        return SubmitResult.from_pending(tx)

    async def _fetch_logs(self, tx: PendingTransaction) -> list[str]:
        try:
            logs = await self.rpc.get_transaction_logs(tx.signature)
        except RpcError as e:
            logger.warning("tx_logs_unavailable", error=str(e), **tx.log_context())
            return []
        return list(logs or [])

    def _rejection(
        self,
        tx: PendingTransaction,
        err: Any,
        logs: list[str],
        *,
        kind: ErrorKind,
        prefix: str = "rejected",
    ) -> OnChainRejection:
        code, number, msg = parse_program_error(list(logs), err, tx.error_table)
        if code:
            detail = f"{code} ({number}): {msg}"
        elif number is not None:
            detail = f"custom program error {number}"
        else:
            detail = str(err)
        return OnChainRejection(
            f"{tx.label or 'transaction'} {prefix}: {detail}",
            kind=kind,
            logs=list(logs),
            error_code=code,
            error_number=number,
            error_message=msg,
            err=str(err),
            signature=str(tx.signature) if tx.signature else None,
        )

    def _expired(self, tx: PendingTransaction, reason: str, **diagnostics: Any) -> TransactionLifecycleError:
        logger.warning("tx_expired", reason=reason, **tx.log_context())
        return TransactionLifecycleError(
            f"{tx.label or 'transaction'}: {reason}; rebuild with a fresh blockhash",
            kind=ErrorKind.EXPIRED,
            last_valid_block_height=tx.last_valid_block_height,
            signature=str(tx.signature) if tx.signature else None,
            **diagnostics,
        )
