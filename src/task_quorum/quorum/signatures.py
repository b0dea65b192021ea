"""Ed25519 signing of task responses.

Operators sign the canonical JSON ``{"task": <id>, "response": <text>}``;
signatures and public keys travel as base64 of the raw key/signature bytes.
"""

from __future__ import annotations

import base64
import binascii
import json
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519


def canonical_message(task_id: int, response: str) -> bytes:
    """Bytes an operator signs for one answer."""

    return json.dumps(
        {"task": task_id, "response": response},
        ensure_ascii=False,
        separators=(",", ":"),
    ).encode("utf-8")


def generate_operator_keypair() -> ed25519.Ed25519PrivateKey:
    return ed25519.Ed25519PrivateKey.generate()


def encode_public_key(public_key: ed25519.Ed25519PublicKey) -> str:
    raw = public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return base64.b64encode(raw).decode()


def decode_public_key(value: str) -> ed25519.Ed25519PublicKey:
    """Parse a base64 raw key. Raises ValueError on malformed input."""

    try:
        raw = base64.b64decode(value, validate=True)
    except binascii.Error as error:
        raise ValueError(f"Public key is not valid base64: {error}") from error
    return ed25519.Ed25519PublicKey.from_public_bytes(raw)


def sign_response(private_key: ed25519.Ed25519PrivateKey, task_id: int, response: str) -> str:
    """Return base64 Ed25519 signature over the canonical message."""

    return base64.b64encode(private_key.sign(canonical_message(task_id, response))).decode()


def verify_response_signature(
    public_key: ed25519.Ed25519PublicKey,
    task_id: int,
    response: str,
    signature_b64: str,
) -> bool:
    """True if ``signature_b64`` is valid for ``(task_id, response)``."""

    try:
        signature = base64.b64decode(signature_b64, validate=True)
    except (binascii.Error, ValueError):
        return False
    try:
        public_key.verify(signature, canonical_message(task_id, response))
    except InvalidSignature:
        return False
    return True


def write_keypair(
    private_key: ed25519.Ed25519PrivateKey,
    private_key_path: Path,
    public_key_path: Path,
) -> None:
    """Persist the private key as unencrypted PKCS8 PEM and the public key as base64."""

    private_key_path.parent.mkdir(parents=True, exist_ok=True)
    public_key_path.parent.mkdir(parents=True, exist_ok=True)
    private_key_path.write_bytes(
        private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ),
    )
    public_key_path.write_text(encode_public_key(private_key.public_key()) + "\n", encoding="utf-8")


def load_private_key(path: Path) -> ed25519.Ed25519PrivateKey:
    key = serialization.load_pem_private_key(path.read_bytes(), password=None)
    if not isinstance(key, ed25519.Ed25519PrivateKey):
        raise ValueError(f"Not an Ed25519 private key: {path}")
    return key
