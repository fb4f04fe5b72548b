# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""Identity and signing utilities for the guarantee relay.

Provides:
- Base58 codec (the ledger's encoding for keys and signatures)
- Ed25519 identity (keypair generation, persistence, load-or-create)
- Deterministic detached signing and verification of canonical messages

Keys use the NaCl layout the ledger was built against: the 64-byte secret
key is the 32-byte seed followed by the 32-byte public key.

Dependencies: json, os, tempfile, cryptography
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from protocol import (
    PUBLIC_KEY_SIZE, SEED_SIZE, SECRET_KEY_SIZE, SIGNATURE_SIZE,
    CorruptKeyError, EmptyMessageError, StorageError,
)

log = logging.getLogger("relay.keys")

# Bitcoin base58 alphabet (no 0, O, I, l)
_B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_B58_INDEX = {c: i for i, c in enumerate(_B58_ALPHABET)}


# ---------------------------------------------------------------------------
# Base58
# ---------------------------------------------------------------------------

def b58encode(data: bytes) -> str:
    """Encode bytes as base58. Each leading zero byte becomes a '1'."""
    pad = len(data) - len(data.lstrip(b"\x00"))
    val = int.from_bytes(data, "big")
    chars = []
    while val:
        val, rem = divmod(val, 58)
        chars.append(_B58_ALPHABET[rem])
    chars.reverse()
    return "1" * pad + "".join(chars)


def b58decode(text: str) -> bytes:
    """Decode a base58 string. Raises ValueError on characters outside the alphabet."""
    pad = len(text) - len(text.lstrip("1"))
    val = 0
    for i, c in enumerate(text):
        if c not in _B58_INDEX:
            raise ValueError(f"Invalid base58 character '{c}' at position {i}")
        val = val * 58 + _B58_INDEX[c]
    body = val.to_bytes((val.bit_length() + 7) // 8, "big") if val else b""
    return b"\x00" * pad + body


# ---------------------------------------------------------------------------
# Ed25519 identity
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class KeyPair:
    """A relay-held signing identity.

    public_key is base58 text (what the ledger is told at initialize);
    secret_key is the raw 64-byte NaCl secret and never leaves the process.
    """
    public_key: str
    secret_key: bytes

    def __repr__(self) -> str:
        return f"KeyPair(public_key={self.public_key!r})"


def _public_bytes(privkey: Ed25519PrivateKey) -> bytes:
    return privkey.public_key().public_bytes(
        serialization.Encoding.Raw,
        serialization.PublicFormat.Raw,
    )


def generate_keypair() -> KeyPair:
    """Generate a fresh Ed25519 identity."""
    privkey = Ed25519PrivateKey.generate()
    seed = privkey.private_bytes(
        serialization.Encoding.Raw,
        serialization.PrivateFormat.Raw,
        serialization.NoEncryption(),
    )
    pub = _public_bytes(privkey)
    return KeyPair(public_key=b58encode(pub), secret_key=seed + pub)


def _parse_keypair(path: str, text: str) -> KeyPair:
    """Parse a persisted identity. Raises CorruptKeyError on anything unusable."""
    try:
        raw = json.loads(text)
    except ValueError as e:
        raise CorruptKeyError(f"{path}: not valid JSON ({e})") from e
    if not isinstance(raw, dict):
        raise CorruptKeyError(f"{path}: expected a JSON object")

    public_key = raw.get("publicKey")
    secret_text = raw.get("secretKey")
    if not isinstance(public_key, str) or not public_key:
        raise CorruptKeyError(f"{path}: missing or malformed publicKey")
    if not isinstance(secret_text, str) or not secret_text:
        raise CorruptKeyError(f"{path}: missing or malformed secretKey")

    try:
        secret_key = b58decode(secret_text)
        pub = b58decode(public_key)
    except ValueError as e:
        raise CorruptKeyError(f"{path}: {e}") from e
    if len(secret_key) != SECRET_KEY_SIZE:
        raise CorruptKeyError(
            f"{path}: expected {SECRET_KEY_SIZE}-byte secret key, got {len(secret_key)} bytes"
        )
    if len(pub) != PUBLIC_KEY_SIZE:
        raise CorruptKeyError(
            f"{path}: expected {PUBLIC_KEY_SIZE}-byte public key, got {len(pub)} bytes"
        )

    derived = _public_bytes(Ed25519PrivateKey.from_private_bytes(secret_key[:SEED_SIZE]))
    if derived != pub or secret_key[SEED_SIZE:] != pub:
        raise CorruptKeyError(f"{path}: publicKey does not match secretKey")

    return KeyPair(public_key=public_key, secret_key=secret_key)


def save_keypair(path: str, keypair: KeyPair) -> None:
    """Persist an identity atomically (temp file + rename).

    mkstemp creates the file with mode 0600, which survives the rename.
    """
    payload = json.dumps({
        "publicKey": keypair.public_key,
        "secretKey": b58encode(keypair.secret_key),
    })
    directory = os.path.dirname(os.path.abspath(path))
    tmp_path = None
    try:
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".keypair-", suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        tmp_path = None
    except OSError as e:
        raise StorageError(f"Cannot write keypair to {path}: {e}") from e
    finally:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.unlink(tmp_path)


def load_keypair(path: str) -> KeyPair:
    """Load a persisted identity."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise StorageError(f"Cannot read keypair from {path}: {e}") from e
    return _parse_keypair(path, text)


def load_or_create(path: str) -> KeyPair:
    """Return the identity stored at *path*, generating and persisting one if absent.

    Idempotent: once the file exists every call returns the same bytes.
    """
    if os.path.exists(path):
        keypair = load_keypair(path)
        log.info("Loaded keypair %s from %s", keypair.public_key, path)
        return keypair

    keypair = generate_keypair()
    save_keypair(path, keypair)
    log.info("Generated keypair %s at %s", keypair.public_key, path)
    return keypair


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------

def sign_message(message: str, keypair: KeyPair) -> str:
    """Detached Ed25519 signature over the UTF-8 message. Returns base58.

    Ed25519 is deterministic: same message + same key -> same signature.
    """
    if not message:
        raise EmptyMessageError("Refusing to sign an empty message")
    privkey = Ed25519PrivateKey.from_private_bytes(keypair.secret_key[:SEED_SIZE])
    return b58encode(privkey.sign(message.encode("utf-8")))


def verify_message(message: str, signature: str, public_key: str) -> bool:
    """Verify a base58 signature against a base58 public key.

    Diagnostics only; the ledger does the authoritative check.
    """
    try:
        sig = b58decode(signature)
        pub = b58decode(public_key)
        if len(sig) != SIGNATURE_SIZE or len(pub) != PUBLIC_KEY_SIZE:
            return False
        Ed25519PublicKey.from_public_bytes(pub).verify(sig, message.encode("utf-8"))
        return True
    except (InvalidSignature, ValueError):
        return False
