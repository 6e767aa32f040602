"""Keypair loading and signature checks."""

from __future__ import annotations

import asyncio
import json

import base58
import pytest
from solders.keypair import Keypair

from agent_registry.chain.signer import KeypairSigner, load_keypair, load_keypair_file, sign_message
from agent_registry.errors import SigningError

KEYPAIR = Keypair.from_seed(bytes([1]) * 32)


def test_load_base58():
    secret = base58.b58encode(bytes(KEYPAIR)).decode()
    assert load_keypair(secret).pubkey() == KEYPAIR.pubkey()


def test_load_json_array(tmp_path):
    path = tmp_path / "id.json"
    path.write_text(json.dumps(list(bytes(KEYPAIR))))
    assert load_keypair_file(str(path)).pubkey() == KEYPAIR.pubkey()


@pytest.mark.parametrize("raw", ["", "   ", "[1, 2, 3]", "[not json", "0OIl"])
def test_rejects_bad_keys(raw):
    with pytest.raises(SigningError):
        load_keypair(raw)


def test_signature_verifies():
    signer = KeypairSigner(KEYPAIR)
    signature = asyncio.run(sign_message(signer, b"message"))
    assert signature.verify(KEYPAIR.pubkey(), b"message")
    assert str(KEYPAIR.pubkey()) in repr(signer)


def test_raw_signature_bytes_accepted():
    class BytesSigner:
        pubkey = KEYPAIR.pubkey()

        async def sign(self, message):
            return bytes(KEYPAIR.sign_message(message))

    signature = asyncio.run(sign_message(BytesSigner(), b"message"))
    assert signature == KEYPAIR.sign_message(b"message")


def test_malformed_signature():
    class ShortSigner:
        pubkey = KEYPAIR.pubkey()

        async def sign(self, message):
            return b"\x00" * 10

    with pytest.raises(SigningError):
        asyncio.run(sign_message(ShortSigner(), b"message"))
