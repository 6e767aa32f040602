"""
Error taxonomy for the program client layer.

Every error raised by the codec, the deriver, the submitter or the reader is a
ChainClientError. Node log lines are kept verbatim on ``logs`` and structured
context (instruction, field, address, signature) on ``diagnostics`` so callers
can inspect them without parsing the message.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Machine-readable error kind attached to every ChainClientError."""

    OVERFLOW = "overflow"
    INVALID_VALUE = "invalid_value"
    ARITY_MISMATCH = "arity_mismatch"
    UNKNOWN_INSTRUCTION = "unknown_instruction"
    UNKNOWN_ACCOUNT_KIND = "unknown_account_kind"
    MISSING_ACCOUNT = "missing_account"
    MISSING_SEED_VALUE = "missing_seed_value"
    SEED_TOO_LONG = "seed_too_long"
    TOO_MANY_SEEDS = "too_many_seeds"
    NO_VALID_BUMP = "no_valid_bump"
    UNEXPECTED_LAYOUT = "unexpected_layout"
    RPC_UNAVAILABLE = "rpc_unavailable"
    ON_CHAIN_REJECTION = "on_chain_rejection"
    SIMULATION_FAILED = "simulation_failed"
    SIGNER_REJECTED = "signer_rejected"
    EXPIRED = "expired"
    ALREADY_FINALIZED = "already_finalized"
    INVALID_TRANSITION = "invalid_transition"
    TIMED_OUT = "timed_out"


class ChainClientError(Exception):
    """Base error. ``logs`` holds node log lines verbatim, ``diagnostics`` structured context."""

    default_kind = ErrorKind.INVALID_VALUE

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        logs: list[str] | None = None,
        **diagnostics: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.logs: list[str] = list(logs or [])
        self.diagnostics: dict[str, Any] = diagnostics

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "logs": list(self.logs),
            "diagnostics": {k: _jsonable(v) for k, v in self.diagnostics.items()},
        }

    def __str__(self) -> str:
        if not self.logs:
            return self.message
        return f"{self.message} ({len(self.logs)} log lines)"


class EncodingError(ChainClientError):
    """A value does not fit its declared field type."""

    default_kind = ErrorKind.OVERFLOW


class SchemaError(ChainClientError):
    """Caller input does not match the registry (arity, names, accounts)."""

    default_kind = ErrorKind.ARITY_MISMATCH


class DerivationError(ChainClientError):
    """No program address could be derived from the given seeds."""

    default_kind = ErrorKind.NO_VALID_BUMP


class DecodeError(ChainClientError):
    """On-chain bytes do not match the expected layout."""

    default_kind = ErrorKind.UNEXPECTED_LAYOUT


class RpcError(ChainClientError):
    """The RPC boundary was unreachable, timed out or answered garbage."""

    default_kind = ErrorKind.RPC_UNAVAILABLE


class SigningError(ChainClientError):
    """The external signer refused, or returned an invalid signature."""

    default_kind = ErrorKind.SIGNER_REJECTED


class TransactionLifecycleError(ChainClientError):
    """Transaction misuse or terminal lifecycle outcome (expired, finalized, timed out)."""

    default_kind = ErrorKind.INVALID_TRANSITION


class OnChainRejection(ChainClientError):
    """
    The program executed and returned a failure. ``error_code`` / ``error_number`` /
    ``error_message`` are filled from Anchor log lines or the Custom(n) instruction
    error when they can be found; ``logs`` always holds the raw lines.
    """

    default_kind = ErrorKind.ON_CHAIN_REJECTION

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        logs: list[str] | None = None,
        error_code: str | None = None,
        error_number: int | None = None,
        error_message: str | None = None,
        **diagnostics: Any,
    ) -> None:
        super().__init__(message, kind=kind, logs=logs, **diagnostics)
        self.error_code = error_code
        self.error_number = error_number
        self.error_message = error_message

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out.update(
            error_code=self.error_code,
            error_number=self.error_number,
            error_message=self.error_message,
        )
        return out


# "Program log: AnchorError ... Error Code: AgentIdTooLong. Error Number: 6000. Error Message: ..."
_ANCHOR_ERROR_RE = re.compile(
    r"Error Code: (?P<code>\w+)\. Error Number: (?P<number>\d+)\. Error Message: (?P<msg>.*?)\.?$"
)
_CUSTOM_ERROR_RE = re.compile(r"Custom\W*(\d+)")


def parse_program_error(
    logs: list[str],
    err: Any = None,
    error_table: dict[int, tuple[str, str]] | None = None,
) -> tuple[str | None, int | None, str | None]:
    """
    Extract (code, number, message) from Anchor log lines, falling back to the
    Custom(n) number in the transaction error and the program's error table.
    """
    for line in reversed(logs):
        m = _ANCHOR_ERROR_RE.search(line)
        if m:
            return m.group("code"), int(m.group("number")), m.group("msg")
    number: int | None = None
    if err is not None:
        m = _CUSTOM_ERROR_RE.search(str(err))
        if m:
            number = int(m.group(1))
    if number is None:
        return None, None, None
    if error_table and number in error_table:
        code, msg = error_table[number]
        return code, number, msg
    return None, number, None


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return str(value)
