"""
agent-registry command line.

    agent-registry discriminator register_agent
    agent-registry discriminator IdentityRegistry --account
    agent-registry derive identity identity agent_id=agent-001
    agent-registry read identity identity agent_id=agent-001
    agent-registry list identity identity owner=pubkey:<base58>
    agent-registry list consensus consensus status=Pending
    agent-registry register agent-001 https://example.com/agent-001.json
    agent-registry schema identity

Seed values are UTF-8 text unless prefixed: pubkey:<base58> or hex:<bytes>.
Results are printed as JSON on stdout; logs and errors go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Sequence

from solders.pubkey import Pubkey

from agent_registry.chain.pda import derive_kind
from agent_registry.chain.rpc import SolanaRpc
from agent_registry.chain.signer import KeypairSigner
from agent_registry.chain.submitter import SubmitterConfig, TransactionSubmitter
from agent_registry.client import AgentRegistryClient, ProgramClient
from agent_registry.codec.encoder import account_discriminator, instruction_discriminator
from agent_registry.codec.schema import describe
from agent_registry.config.env import get_program_id
from agent_registry.config.settings import Settings, get_settings
from agent_registry.errors import ChainClientError
from agent_registry.programs import get_program


def parse_seed_value(raw: str) -> Any:
    if raw.startswith("pubkey:"):
        return Pubkey.from_string(raw[len("pubkey:"):])
    if raw.startswith("hex:"):
        return bytes.fromhex(raw[len("hex:"):])
    return raw


def parse_params(pairs: Sequence[str]) -> dict[str, Any]:
    params: dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got {pair!r}")
        params[key] = parse_seed_value(value)
    return params


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _rpc(settings: Settings) -> SolanaRpc:
    return SolanaRpc(settings.rpc_url, commitment=settings.commitment, skip_preflight=settings.skip_preflight)


def _submitter(rpc: SolanaRpc, settings: Settings) -> TransactionSubmitter:
    return TransactionSubmitter(rpc, SubmitterConfig.from_settings(settings))


def cmd_discriminator(args: argparse.Namespace) -> int:
    tag = account_discriminator(args.name) if args.account else instruction_discriminator(args.name)
    _emit({"name": args.name, "kind": "account" if args.account else "instruction", "hex": tag.hex(), "bytes": list(tag)})
    return 0


def cmd_schema(args: argparse.Namespace) -> int:
    program = get_program(args.program)
    _emit(
        {
            "program": program.name,
            "program_ids": dict(program.program_ids),
            "instructions": [describe(s) for s in program.instructions.values()],
            "seeds": {kind: list(t.params) for kind, t in program.seeds.items()},
            "layouts": {name: [[n, t.name] for n, t in layout.fields] for name, layout in program.layouts.items()},
        }
    )
    return 0


def cmd_derive(args: argparse.Namespace) -> int:
    settings = get_settings()
    program = get_program(args.program)
    program_id = Pubkey.from_string(get_program_id(program.name, program.program_ids, settings.network))
    derived = derive_kind(program, program_id, args.kind, parse_params(args.params))
    _emit({"program": args.program, "kind": args.kind, "address": str(derived.address), "bump": derived.bump})
    return 0


async def _read(args: argparse.Namespace) -> int:
    settings = get_settings()
    async with _rpc(settings) as rpc:
        client = ProgramClient(args.program, rpc, network=settings.network, submitter=_submitter(rpc, settings))
        record = await client.fetch(args.kind, args.address, **parse_params(args.params))
    if record is None:
        _emit({"found": False})
        return 0
    _emit({"found": True, **record.to_dict()})
    return 0


async def _list(args: argparse.Namespace) -> int:
    settings = get_settings()
    async with _rpc(settings) as rpc:
        client = ProgramClient(args.program, rpc, network=settings.network, submitter=_submitter(rpc, settings))
        records = await client.list(args.kind, **parse_params(args.params))
    _emit({"count": len(records), "accounts": [r.to_dict() for r in records]})
    return 0


async def _register(args: argparse.Namespace) -> int:
    settings = get_settings()
    if not settings.payer_private_key:
        raise ValueError("PAYER_PRIVATE_KEY is not set")
    signer = KeypairSigner.from_secret(settings.payer_private_key)
    async with _rpc(settings) as rpc:
        client = AgentRegistryClient(rpc, signer, network=settings.network, submitter=_submitter(rpc, settings))
        result = await client.register_entity(args.agent_id, args.metadata_uri)
        identity = client.identity.derive("identity", agent_id=args.agent_id)
    _emit(
        {
            "signature": result.signature,
            "state": result.state.value,
            "slot": result.slot,
            "identity": str(identity.address),
            "logs": result.logs,
        }
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="agent-registry", description="Agent registry program client")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("discriminator", help="8-byte Anchor tag of an instruction (or account with --account)")
    p.add_argument("name")
    p.add_argument("--account", action="store_true")
    p.set_defaults(func=cmd_discriminator)

    p = sub.add_parser("schema", help="Instructions, seeds and layouts of a program")
    p.add_argument("program")
    p.set_defaults(func=cmd_schema)

    p = sub.add_parser("derive", help="Derive a program address")
    p.add_argument("program")
    p.add_argument("kind")
    p.add_argument("params", nargs="*", metavar="key=value")
    p.set_defaults(func=cmd_derive)

    p = sub.add_parser("read", help="Fetch and decode an account")
    p.add_argument("program")
    p.add_argument("kind")
    p.add_argument("params", nargs="*", metavar="key=value")
    p.add_argument("--address", default=None, help="Read this address instead of deriving it")
    p.set_defaults(func=lambda a: asyncio.run(_read(a)))

    p = sub.add_parser("list", help="List a program's accounts of one kind, filtered by field=value")
    p.add_argument("program")
    p.add_argument("kind")
    p.add_argument("params", nargs="*", metavar="field=value")
    p.set_defaults(func=lambda a: asyncio.run(_list(a)))

    p = sub.add_parser("register", help="Register an agent identity (needs PAYER_PRIVATE_KEY)")
    p.add_argument("agent_id")
    p.add_argument("metadata_uri")
    p.set_defaults(func=lambda a: asyncio.run(_register(a)))
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except ChainClientError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 1
    except ValueError as e:
        print(json.dumps({"error": type(e).__name__, "message": str(e)}), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
