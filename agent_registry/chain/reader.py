"""
Account reader: fetch raw account bytes over the RPC boundary and decode them
against a known layout. A missing account is None (the common "not yet
registered" case); a present account that does not match the layout, or that
belongs to another program, is a DecodeError. Partial decodes never escape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Sequence

from solders.pubkey import Pubkey

from agent_registry.chain.rpc import RpcBoundary
from agent_registry.codec.encoder import decode_account
from agent_registry.codec.fields import to_pubkey
from agent_registry.codec.schema import AccountLayout
from agent_registry.errors import DecodeError, ErrorKind
from agent_registry.registry_logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AccountRecord(Mapping[str, Any]):
    """Decoded snapshot of one account. May be stale as soon as it is returned."""

    kind: str
    address: Pubkey
    program_id: Pubkey | None
    fields: Mapping[str, Any] = field(default_factory=dict)
    lamports: int = 0

    def __getitem__(self, name: str) -> Any:
        return self.fields[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "address": str(self.address),
            "fields": {k: _plain(v) for k, v in self.fields.items()},
        }


def _plain(value: Any) -> Any:
    if isinstance(value, Pubkey):
        return str(value)
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


class AccountReader:
    def __init__(self, rpc: RpcBoundary, program_id: Pubkey | None = None) -> None:
        self.rpc = rpc
        self.program_id = program_id

    async def read(self, address: Any, layout: AccountLayout) -> AccountRecord | None:
        address = to_pubkey(address)
        info = await self.rpc.get_account_info(address)
        if info is None:
            logger.info("account_not_found", address=str(address), layout=layout.name)
            return None
        if self.program_id is not None and info.owner != self.program_id:
            raise DecodeError(
                f"{layout.name} at {address} is owned by {info.owner}, not {self.program_id}",
                kind=ErrorKind.UNEXPECTED_LAYOUT,
                address=str(address),
                owner=str(info.owner),
                expected_owner=str(self.program_id),
            )
        try:
            values = decode_account(layout, info.data)
        except DecodeError as e:
            e.diagnostics.setdefault("address", str(address))
            logger.warning("account_decode_failed", address=str(address), layout=layout.name, error=e.message)
            raise
        logger.info("account_decoded", address=str(address), layout=layout.name, size=len(info.data))
        return AccountRecord(
            kind=layout.name,
            address=address,
            program_id=self.program_id,
            fields=values,
            lamports=info.lamports,
        )

    async def scan(self, layout: AccountLayout, filters: Sequence[tuple[int, bytes]] = ()) -> list[AccountRecord]:
        """
        Every account of this program holding ``layout``, narrowed by the
        node-side memcmp ``filters`` (the first is normally the discriminator).
        An account that matches the filters but fails to decode is a DecodeError.
        """
        if self.program_id is None:
            raise DecodeError(f"Scanning {layout.name} accounts needs a program id", layout=layout.name)
        keyed = await self.rpc.get_program_accounts(self.program_id, filters)
        records: list[AccountRecord] = []
        for item in keyed:
            try:
                values = decode_account(layout, item.account.data)
            except DecodeError as e:
                e.diagnostics.setdefault("address", str(item.address))
                raise
            records.append(
                AccountRecord(
                    kind=layout.name,
                    address=item.address,
                    program_id=self.program_id,
                    fields=values,
                    lamports=item.account.lamports,
                )
            )
        logger.info("accounts_scanned", layout=layout.name, filters=len(filters), count=len(records))
        return records
