"""Hashing utilities for deterministic document and record hashing."""

import hashlib
import json
from typing import Any

EMPTY_SHA256 = hashlib.sha256(b"").hexdigest()


def compute_sha256(content: bytes) -> str:
    """Compute SHA-256 hash of content.

    Args:
        content: Bytes to hash

    Returns:
        Hexadecimal hash string
    """
    return hashlib.sha256(content).hexdigest()


def compute_sha256_text(content: str | bytes) -> str:
    """Compute SHA-256 of text encoded as UTF-8 (bytes are hashed as-is)."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return compute_sha256(content)


def canonical_json(data: Any) -> str:
    """Serialize ``data`` with a fixed key order and no insignificant whitespace.

    Key order never depends on construction or insertion order, so the output
    (and any hash over it) is reproducible across processes and languages.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def compute_canonical_hash(data: Any) -> str:
    """SHA-256 over the canonical JSON serialization of ``data``."""
    return compute_sha256(canonical_json(data).encode("utf-8"))


def fold_hashes(hashes: list[str]) -> str:
    """Fold an ordered list of hex digests into a single root hash.

    ``h0 = hashes[0]``; ``h_i = sha256(h_{i-1} + hashes[i])``. Digests are
    fixed-width hex, so plain concatenation is unambiguous. An empty list
    yields the digest of the empty string.
    """
    if not hashes:
        return EMPTY_SHA256

    current = hashes[0]
    for digest in hashes[1:]:
        current = compute_sha256((current + digest).encode("utf-8"))
    return current
