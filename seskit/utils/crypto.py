"""Utilities for random secrets and binary encoding."""

from __future__ import annotations

import base64
import secrets

PASSWORD_CHARSET = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789!@#$%^&*"
)


def generate_secure_password(length: int = 16) -> str:
    """Return a random password drawn from :data:`PASSWORD_CHARSET`."""
    if length < 1:
        raise ValueError("Password length must be positive")
    return "".join(secrets.choice(PASSWORD_CHARSET) for _ in range(length))


def generate_nonce(num_bytes: int = 16) -> str:
    """Return a random hex nonce."""
    return secrets.token_hex(num_bytes)


def encode_bytes(data: bytes) -> str:
    """Encode binary data for JSON persistence."""
    return base64.b64encode(data).decode("utf-8")


def decode_bytes(encoded: str) -> bytes:
    """Decode data produced by :func:`encode_bytes`."""
    return base64.b64decode(encoded.encode("utf-8"), validate=True)
