"""Base64 JSON timestamp tokens binding a time to a document hash.

A placeholder for RFC 3161 tokens until a real TSA client is wired in.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from seskit.models import HASH_ALGORITHM
from seskit.utils.crypto import decode_bytes, encode_bytes


class TimestampTokenError(ValueError):
    """Raised when a timestamp token cannot be decoded."""


def build_timestamp_token(
    document_hash: str,
    timestamp: datetime,
    nonce: str,
    tsa_url: str,
) -> str:
    """Encode a timestamp token as base64 JSON."""
    payload = {
        "documentHash": document_hash,
        "timestamp": timestamp.astimezone(UTC).isoformat(),
        "nonce": nonce,
        "tsaUrl": tsa_url,
        "algorithm": HASH_ALGORITHM,
    }
    return encode_bytes(json.dumps(payload, separators=(",", ":")).encode("utf-8"))


def decode_timestamp_token(token: str) -> dict[str, Any]:
    """Decode a token produced by :func:`build_timestamp_token`.

    Raises:
        TimestampTokenError: If the token is not base64 JSON with the expected keys
    """
    try:
        payload = json.loads(decode_bytes(token).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as exc:
        raise TimestampTokenError("Invalid token format") from exc

    if not isinstance(payload, dict) or "documentHash" not in payload or "timestamp" not in payload:
        raise TimestampTokenError("Invalid token format")
    return payload
