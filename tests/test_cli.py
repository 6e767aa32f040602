"""CLI commands, with the network boundary replaced by the in-memory RPC."""

from __future__ import annotations

import json

import base58
import pytest

from agent_registry import cli
from conftest import FakeRpc, keypair_signer


class ScopedRpc(FakeRpc):
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None


@pytest.fixture
def cli_rpc(monkeypatch):
    rpc = ScopedRpc()
    monkeypatch.setattr(cli, "_rpc", lambda settings: rpc)
    return rpc


def run(capsys, *argv):
    code = cli.main(list(argv))
    out, err = capsys.readouterr()
    return code, out, err


def test_discriminator(capsys):
    code, out, _ = run(capsys, "discriminator", "register_agent")
    assert code == 0
    payload = json.loads(out)
    assert payload["kind"] == "instruction"
    assert len(bytes.fromhex(payload["hex"])) == 8


def test_account_discriminator(capsys):
    code, out, _ = run(capsys, "discriminator", "IdentityRegistry", "--account")
    assert code == 0
    assert json.loads(out)["kind"] == "account"


def test_derive(capsys):
    code, out, _ = run(capsys, "derive", "identity", "identity", "agent_id=agent-001")
    assert code == 0
    payload = json.loads(out)
    assert payload["address"] == "BTFUfZc991HyYpuBrqABKfkengGKMMZyVXtAmhtPM1hf"
    assert payload["bump"] == 255


def test_derive_hex_seed(capsys):
    code, out, _ = run(
        capsys,
        "derive",
        "identity",
        "validation",
        "agent_id=agent-001",
        "task_hash=hex:" + "07" * 32,
    )
    assert code == 0
    assert json.loads(out)["address"] == "CZTBSnm1gGyoDb7MNkNiWZVZQQR4WtiWnVS5553dFScA"


def test_derive_respects_network(capsys, monkeypatch):
    monkeypatch.setenv("SOLANA_NETWORK", "localhost")
    code, out, _ = run(capsys, "derive", "identity", "identity", "agent_id=agent-001")
    assert code == 0
    assert json.loads(out)["address"] == "4cDGyfKkr3JazMW7crM9ThQWjeKidaoQaUkNCV53uEAb"


def test_derive_missing_seed_exits_1(capsys):
    code, out, err = run(capsys, "derive", "capability", "capability", "agent_id=agent-001")
    assert code == 1
    assert out == ""
    assert '"missing_seed_value"' in err


def test_bad_param_syntax(capsys):
    code, _, err = run(capsys, "derive", "identity", "identity", "agent-001")
    assert code == 1
    assert "key=value" in err


def test_schema(capsys):
    code, out, _ = run(capsys, "schema", "identity")
    assert code == 0
    payload = json.loads(out)
    names = [ix["name"] for ix in payload["instructions"]]
    assert "register_agent" in names
    assert payload["seeds"]["identity"] == ["agent_id"]
    assert "IdentityRegistry" in payload["layouts"]


def test_register_needs_key(capsys, cli_rpc):
    code, _, err = run(capsys, "register", "agent-001", "ipfs://a")
    assert code == 1
    assert "PAYER_PRIVATE_KEY" in err
    assert cli_rpc.calls == {}


def test_register_then_read(capsys, monkeypatch, cli_rpc):
    payer = keypair_signer(1)
    monkeypatch.setenv("PAYER_PRIVATE_KEY", base58.b58encode(bytes(payer.keypair)).decode())

    code, out, _ = run(capsys, "register", "agent-001", "ipfs://a")
    assert code == 0
    registered = json.loads(out)
    assert registered["state"] == "confirmed"
    assert registered["identity"] == "BTFUfZc991HyYpuBrqABKfkengGKMMZyVXtAmhtPM1hf"

    code, out, _ = run(capsys, "read", "identity", "identity", "agent_id=agent-001")
    assert code == 0
    record = json.loads(out)
    assert record["found"] is True
    assert record["fields"]["owner"] == str(payer.pubkey)
    assert record["fields"]["metadata_uri"] == "ipfs://a"


def test_read_missing(capsys, cli_rpc):
    code, out, _ = run(capsys, "read", "identity", "identity", "agent_id=nonexistent")
    assert code == 0
    assert json.loads(out) == {"found": False}


def test_list_by_owner(capsys, monkeypatch, cli_rpc):
    payer = keypair_signer(1)
    monkeypatch.setenv("PAYER_PRIVATE_KEY", base58.b58encode(bytes(payer.keypair)).decode())
    run(capsys, "register", "agent-001", "ipfs://a")

    code, out, _ = run(capsys, "list", "identity", "identity", f"owner=pubkey:{payer.pubkey}")
    assert code == 0
    listed = json.loads(out)
    assert listed["count"] == 1
    assert listed["accounts"][0]["fields"]["agent_id"] == "agent-001"

    code, out, _ = run(capsys, "list", "identity", "identity", f"owner=pubkey:{keypair_signer(2).pubkey}")
    assert json.loads(out)["count"] == 0


def test_list_unknown_field_exits_1(capsys, cli_rpc):
    code, _, err = run(capsys, "list", "identity", "identity", "nickname=x")
    assert code == 1
    assert "nickname" in err
