"""AccountReader against hand-built account bytes."""

from __future__ import annotations

import asyncio

import pytest

from agent_registry.chain.reader import AccountReader
from agent_registry.chain.rpc import AccountInfo
from agent_registry.codec.encoder import account_discriminator, encode_account
from agent_registry.errors import DecodeError, ErrorKind
from agent_registry.programs.identity import IDENTITY
from conftest import IDENTITY_PROGRAM_ID, NOW, keypair_signer

LAYOUT = IDENTITY.layouts["IdentityRegistry"]
OWNER = keypair_signer(1).pubkey
ADDRESS = keypair_signer(7).pubkey


def identity_bytes(agent_id="agent-001"):
    data = encode_account(LAYOUT, [OWNER, agent_id, "ipfs://meta", NOW, NOW, True, 254])
    return data + bytes(LAYOUT.space - len(data))


def put(rpc, data, owner=IDENTITY_PROGRAM_ID):
    rpc.accounts[ADDRESS] = AccountInfo(data=data, owner=owner, lamports=2_000_000)


def read(rpc):
    return asyncio.run(AccountReader(rpc, IDENTITY_PROGRAM_ID).read(ADDRESS, LAYOUT))


def test_missing_account_is_none(rpc):
    assert read(rpc) is None
    assert rpc.calls["get_account_info"] == 1


def test_decodes_padded_account(rpc):
    put(rpc, identity_bytes())
    record = read(rpc)

    assert record.kind == "IdentityRegistry"
    assert record.address == ADDRESS
    assert record.lamports == 2_000_000
    assert record["owner"] == OWNER
    assert record["agent_id"] == "agent-001"
    assert record["is_active"] is True
    assert record["bump"] == 254
    assert list(record) == [name for name, _ in LAYOUT.fields]
    plain = record.to_dict()
    assert plain["address"] == str(ADDRESS)
    assert plain["fields"]["owner"] == str(OWNER)


def test_stale_tail_bytes_are_ignored(rpc):
    """A metadata URI that shrank leaves its old bytes after the last field."""
    data = encode_account(LAYOUT, [OWNER, "agent-001", "ipfs://m", NOW, NOW, False, 253])
    tail = b"ipfs://much-longer-metadata"
    data += tail + bytes(LAYOUT.space - len(data) - len(tail))
    put(rpc, data)
    record = read(rpc)
    assert record["metadata_uri"] == "ipfs://m"
    assert record["is_active"] is False
    assert record["bump"] == 253


def test_wrong_discriminator(rpc):
    data = bytearray(identity_bytes())
    data[:8] = account_discriminator("ReputationRegistry")
    put(rpc, bytes(data))
    with pytest.raises(DecodeError) as exc:
        read(rpc)
    assert exc.value.kind == ErrorKind.UNEXPECTED_LAYOUT
    assert exc.value.diagnostics["address"] == str(ADDRESS)


def test_truncated_account(rpc):
    put(rpc, identity_bytes()[:60])
    with pytest.raises(DecodeError) as exc:
        read(rpc)
    assert exc.value.diagnostics["layout"] == "IdentityRegistry"


def test_foreign_owner(rpc):
    put(rpc, identity_bytes(), owner=keypair_signer(8).pubkey)
    with pytest.raises(DecodeError) as exc:
        read(rpc)
    assert exc.value.diagnostics["expected_owner"] == str(IDENTITY_PROGRAM_ID)


def test_owner_not_checked_without_program_id(rpc):
    put(rpc, identity_bytes(), owner=keypair_signer(8).pubkey)
    record = asyncio.run(AccountReader(rpc).read(str(ADDRESS), LAYOUT))
    assert record["agent_id"] == "agent-001"


def test_scan_decodes_matching_accounts(rpc):
    put(rpc, identity_bytes())
    rpc.accounts[keypair_signer(8).pubkey] = AccountInfo(data=identity_bytes("agent-002"), owner=IDENTITY_PROGRAM_ID)
    foreign = keypair_signer(3).pubkey
    rpc.accounts[keypair_signer(9).pubkey] = AccountInfo(data=identity_bytes("agent-003"), owner=foreign)

    reader = AccountReader(rpc, IDENTITY_PROGRAM_ID)
    records = asyncio.run(reader.scan(LAYOUT, [(0, account_discriminator(LAYOUT.name))]))
    assert sorted(r["agent_id"] for r in records) == ["agent-001", "agent-002"]
    assert all(r.program_id == IDENTITY_PROGRAM_ID for r in records)


def test_scan_reports_undecodable_account(rpc):
    put(rpc, account_discriminator(LAYOUT.name) + b"\x00" * 4)
    with pytest.raises(DecodeError) as exc:
        asyncio.run(AccountReader(rpc, IDENTITY_PROGRAM_ID).scan(LAYOUT))
    assert exc.value.diagnostics["address"] == str(ADDRESS)


def test_scan_needs_program_id(rpc):
    with pytest.raises(DecodeError):
        asyncio.run(AccountReader(rpc).scan(LAYOUT))
