"""Chain side: address derivation, instruction assembly, RPC boundary, signing, submission, account reads."""

from agent_registry.chain.instructions import AccountRole, build_instruction, resolve_accounts
from agent_registry.chain.pda import DerivedAddress, derive_address, derive_kind
from agent_registry.chain.reader import AccountReader, AccountRecord
from agent_registry.chain.rpc import RpcBoundary, SolanaRpc
from agent_registry.chain.signer import KeypairSigner, Signer, load_keypair
from agent_registry.chain.submitter import (
    PendingTransaction,
    SubmitResult,
    SubmitterConfig,
    TransactionSubmitter,
    TxState,
)

__all__ = [
    "AccountReader",
    "AccountRecord",
    "AccountRole",
    "DerivedAddress",
    "KeypairSigner",
    "PendingTransaction",
    "RpcBoundary",
    "Signer",
    "SolanaRpc",
    "SubmitResult",
    "SubmitterConfig",
    "TransactionSubmitter",
    "TxState",
    "build_instruction",
    "derive_address",
    "derive_kind",
    "load_keypair",
    "resolve_accounts",
]
