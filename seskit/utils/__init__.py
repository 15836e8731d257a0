"""Utility modules for common operations."""

from seskit.utils.hashing import (
    EMPTY_SHA256,
    canonical_json,
    compute_canonical_hash,
    compute_sha256,
    compute_sha256_text,
    fold_hashes,
)

__all__ = [
    "EMPTY_SHA256",
    "canonical_json",
    "compute_canonical_hash",
    "compute_sha256",
    "compute_sha256_text",
    "fold_hashes",
]
