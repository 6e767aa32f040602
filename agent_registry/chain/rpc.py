"""
RPC boundary.

RpcBoundary is the narrow interface the submitter and reader consume:
account reads, program account scans, latest blockhash, block height,
simulate, send, signature status and transaction logs. SolanaRpc implements it over solana-py's
AsyncClient. The node is treated as untrusted and possibly slow: transport
failures become RpcError, node-reported transaction failures are returned
as data (err + logs) so the submitter can attach them to OnChainRejection.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

import base58
import httpx
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction, VersionedTransaction

from agent_registry.config.env import mask_rpc_url
from agent_registry.errors import ErrorKind, OnChainRejection, RpcError
from agent_registry.registry_logging import get_logger

logger = get_logger(__name__)

DEFAULT_RPC_TIMEOUT_SEC = 15.0


@dataclass(frozen=True)
class AccountInfo:
    data: bytes
    owner: Pubkey
    lamports: int = 0
    executable: bool = False


@dataclass(frozen=True)
class KeyedAccount:
    address: Pubkey
    account: AccountInfo


@dataclass(frozen=True)
class BlockhashInfo:
    blockhash: Hash
    last_valid_block_height: int


@dataclass(frozen=True)
class SimulationResult:
    err: Any = None
    logs: list[str] = field(default_factory=list)
    units_consumed: int | None = None

    @property
    def ok(self) -> bool:
        return self.err is None


@dataclass(frozen=True)
class SignatureStatus:
    # processed | confirmed | finalized | None
    confirmation_status: str | None
    err: Any = None
    slot: int | None = None


class RpcBoundary(Protocol):
    async def get_account_info(self, address: Pubkey) -> AccountInfo | None: ...

    async def get_program_accounts(
        self, program_id: Pubkey, filters: Sequence[tuple[int, bytes]] = ()
    ) -> list[KeyedAccount]: ...

    async def get_latest_blockhash(self) -> BlockhashInfo: ...

    async def get_block_height(self) -> int: ...

    async def simulate_transaction(self, tx: Transaction) -> SimulationResult: ...

    async def send_transaction(self, tx: Transaction) -> Signature: ...

    async def get_signature_status(self, signature: Signature) -> SignatureStatus | None: ...

    async def get_transaction_logs(self, signature: Signature) -> list[str] | None: ...


def raw_bytes_from_account_data(data: object) -> bytes | None:
    """Normalize get_account_info() account.data to bytes (bytes, base64 str, [b64, "base64"], list of ints)."""
    if data is None:
        return None
    if isinstance(data, bytes):
        return data
    if isinstance(data, str):
        try:
            return base64.b64decode(data, validate=True)
        except ValueError:
            return None
    if isinstance(data, (list, tuple)) and data:
        first = data[0]
        if isinstance(first, str):
            return raw_bytes_from_account_data(first)
        if isinstance(first, int):
            return bytes(data)
        return None
    if hasattr(data, "data"):
        return raw_bytes_from_account_data(getattr(data, "data"))
    return None


def normalize_confirmation_status(value: Any) -> str | None:
    """TransactionConfirmationStatus.Confirmed -> "confirmed"."""
    if value is None:
        return None
    return str(value).rsplit(".", 1)[-1].strip().lower() or None


def _preflight_failure(exc: Exception) -> tuple[str, Any, list[str]] | None:
    """
    solana-py raises RPCException for a failed preflight simulation. Its first
    arg carries the node's message plus data.err / data.logs when the failure
    is a program error rather than a transport problem.
    """
    payload = exc.args[0] if exc.args else None
    data = getattr(payload, "data", None)
    logs = getattr(data, "logs", None)
    if data is None or logs is None:
        return None
    message = getattr(payload, "message", None) or str(payload)
    return str(message), getattr(data, "err", None), [str(line) for line in logs]


class SolanaRpc:
    """RpcBoundary over solana.rpc.async_api.AsyncClient. One instance may serve concurrent requests."""

    def __init__(
        self,
        rpc_url: str,
        *,
        commitment: str = "confirmed",
        skip_preflight: bool = False,
        timeout: float = DEFAULT_RPC_TIMEOUT_SEC,
        client: Any = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.commitment = commitment
        self.skip_preflight = skip_preflight
        if client is None:
            from solana.rpc.async_api import AsyncClient

            client = AsyncClient(rpc_url, commitment=commitment, timeout=timeout)
        self._client = client

    async def close(self) -> None:
        await self._client.close()

    async def __aenter__(self) -> SolanaRpc:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def _call(self, method: str, coro: Any) -> Any:
        from solana.exceptions import SolanaRpcException

        try:
            return await coro
        except (SolanaRpcException, httpx.HTTPError, OSError) as e:
            logger.warning("rpc_call_failed", method=method, rpc_url=mask_rpc_url(self.rpc_url), error=str(e))
            raise RpcError(f"{method} failed: {e}", method=method) from e

    def _account_info(self, value: Any, method: str, address: Pubkey) -> AccountInfo:
        raw = raw_bytes_from_account_data(getattr(value, "data", None))
        if raw is None:
            raise RpcError(f"{method} returned undecodable data", method=method, address=str(address))
        return AccountInfo(
            data=raw,
            owner=value.owner,
            lamports=int(getattr(value, "lamports", 0) or 0),
            executable=bool(getattr(value, "executable", False)),
        )

    async def get_account_info(self, address: Pubkey) -> AccountInfo | None:
        resp = await self._call(
            "getAccountInfo",
            self._client.get_account_info(address, commitment=self.commitment, encoding="base64"),
        )
        value = getattr(resp, "value", None)
        if value is None:
            return None
        return self._account_info(value, "getAccountInfo", address)

    async def get_program_accounts(
        self, program_id: Pubkey, filters: Sequence[tuple[int, bytes]] = ()
    ) -> list[KeyedAccount]:
        """Accounts owned by ``program_id`` matching every (offset, bytes) memcmp filter."""
        from solana.rpc.models import MemcmpOpts

        memcmp = [MemcmpOpts(offset=offset, bytes=base58.b58encode(raw).decode("ascii")) for offset, raw in filters]
        resp = await self._call(
            "getProgramAccounts",
            self._client.get_program_accounts(
                program_id, commitment=self.commitment, encoding="base64", filters=memcmp or None
            ),
        )
        return [
            KeyedAccount(keyed.pubkey, self._account_info(keyed.account, "getProgramAccounts", keyed.pubkey))
            for keyed in getattr(resp, "value", None) or []
        ]

    async def get_latest_blockhash(self) -> BlockhashInfo:
        resp = await self._call("getLatestBlockhash", self._client.get_latest_blockhash(self.commitment))
        value = getattr(resp, "value", None)
        if value is None or getattr(value, "blockhash", None) is None:
            raise RpcError("getLatestBlockhash returned no blockhash", method="getLatestBlockhash")
        return BlockhashInfo(blockhash=value.blockhash, last_valid_block_height=int(value.last_valid_block_height))

    async def get_block_height(self) -> int:
        resp = await self._call("getBlockHeight", self._client.get_block_height(self.commitment))
        return int(resp.value)

    async def simulate_transaction(self, tx: Transaction) -> SimulationResult:
        resp = await self._call(
            "simulateTransaction",
            self._client.simulate_transaction(
                VersionedTransaction.from_legacy(tx), sig_verify=False, commitment=self.commitment
            ),
        )
        value = resp.value
        return SimulationResult(
            err=value.err,
            logs=[str(line) for line in (value.logs or [])],
            units_consumed=getattr(value, "units_consumed", None),
        )

    async def send_transaction(self, tx: Transaction) -> Signature:
        from solana.rpc.core import RPCException
        from solana.rpc.models import TxOpts

        opts = TxOpts(skip_preflight=self.skip_preflight, preflight_commitment=self.commitment)
        try:
            resp = await self._call("sendTransaction", self._client.send_raw_transaction(bytes(tx), opts=opts))
        except RPCException as e:
            failure = _preflight_failure(e)
            if failure is None:
                raise RpcError(f"sendTransaction rejected: {e}", method="sendTransaction") from e
            message, err, logs = failure
            raise OnChainRejection(
                f"Preflight simulation failed: {message}",
                kind=ErrorKind.SIMULATION_FAILED,
                logs=logs,
                err=str(err),
            ) from e
        return resp.value

    async def get_signature_status(self, signature: Signature) -> SignatureStatus | None:
        resp = await self._call("getSignatureStatuses", self._client.get_signature_statuses([signature]))
        statuses = getattr(resp, "value", None) or []
        status = statuses[0] if statuses else None
        if status is None:
            return None
        return SignatureStatus(
            confirmation_status=normalize_confirmation_status(getattr(status, "confirmation_status", None)),
            err=getattr(status, "err", None),
            slot=getattr(status, "slot", None),
        )

    async def get_transaction_logs(self, signature: Signature) -> list[str] | None:
        resp = await self._call(
            "getTransaction",
            self._client.get_transaction(signature, commitment=self.commitment, max_supported_transaction_version=0),
        )
        value = getattr(resp, "value", None)
        meta = getattr(getattr(value, "transaction", None), "meta", None)
        logs = getattr(meta, "log_messages", None)
        if logs is None:
            return None
        return [str(line) for line in logs]
