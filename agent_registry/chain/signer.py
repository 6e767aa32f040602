"""
Signer capability.

The submitter never sees secret keys: it hands serialized message bytes to a
Signer and gets a signature back. KeypairSigner is the in-process
implementation used by the CLI and tests; wallets or remote signers only need
``pubkey`` and an awaitable ``sign``.
"""

from __future__ import annotations

import json
from typing import Protocol

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature

from agent_registry.errors import SigningError
from agent_registry.registry_logging import get_logger

logger = get_logger(__name__)

SECRET_KEY_LEN = 64


class Signer(Protocol):
    @property
    def pubkey(self) -> Pubkey: ...

    async def sign(self, message: bytes) -> Signature: ...


class KeypairSigner:
    """Signs with a local solders Keypair."""

    def __init__(self, keypair: Keypair) -> None:
        self._keypair = keypair

    @property
    def pubkey(self) -> Pubkey:
        return self._keypair.pubkey()

    @property
    def keypair(self) -> Keypair:
        return self._keypair

    async def sign(self, message: bytes) -> Signature:
        return self._keypair.sign_message(message)

    @classmethod
    def from_secret(cls, private_key: str) -> KeypairSigner:
        return cls(load_keypair(private_key))

    def __repr__(self) -> str:
        return f"KeypairSigner({self.pubkey})"


def load_keypair(private_key: str) -> Keypair:
    """Load a Keypair from a base58 secret key or a JSON array of 64 bytes (solana-keygen file format)."""
    raw = (private_key or "").strip()
    if not raw:
        raise SigningError("Empty private key")
    if raw.startswith("["):
        try:
            arr = json.loads(raw)
        except json.JSONDecodeError as e:
            raise SigningError("Private key JSON is malformed") from e
        if not isinstance(arr, list) or len(arr) < SECRET_KEY_LEN:
            raise SigningError(f"Private key JSON must hold {SECRET_KEY_LEN} bytes")
        try:
            return Keypair.from_bytes(bytes(arr[:SECRET_KEY_LEN]))
        except (TypeError, ValueError) as e:
            raise SigningError("Private key JSON is not a valid keypair") from e
    try:
        secret = base58.b58decode(raw)
        return Keypair.from_bytes(secret)
    except ValueError as e:
        logger.warning("keypair_load_failed", error=str(e))
        raise SigningError("Invalid base58 private key") from e


def load_keypair_file(path: str) -> Keypair:
    with open(path, encoding="utf-8") as f:
        return load_keypair(f.read())


async def sign_message(signer: Signer, message: bytes) -> Signature:
    """Ask ``signer`` for a signature over ``message`` and check it before use."""
    try:
        signature = await signer.sign(message)
    except SigningError:
        raise
    except Exception as e:
        raise SigningError(f"Signer {signer.pubkey} refused: {e}", signer=str(signer.pubkey)) from e
    if not isinstance(signature, Signature):
        try:
            signature = Signature.from_bytes(bytes(signature))
        except (TypeError, ValueError) as e:
            raise SigningError("Signer returned a malformed signature", signer=str(signer.pubkey)) from e
    if not signature.verify(signer.pubkey, message):
        raise SigningError("Signer returned a signature that does not verify", signer=str(signer.pubkey))
    return signature
