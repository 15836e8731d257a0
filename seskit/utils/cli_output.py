"""Schema-stamped JSON envelopes for CLI output."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from seskit import __version__


def json_response(
    schema_id: str,
    schema_version: int,
    **data: Any,
) -> str:
    """Create schema-wrapped JSON response for CLI output.

    Example:
        >>> json_response("verification_result", 1, valid=True)
        {
          "schema_id": "verification_result",
          "schema_version": 1,
          "producer": "seskit-0.1.0",
          "produced_at": "2026-01-12T10:30:00+00:00",
          "valid": true
        }
    """
    wrapped = {
        "schema_id": schema_id,
        "schema_version": schema_version,
        "producer": f"seskit-{__version__}",
        "produced_at": datetime.now(UTC).isoformat(),
        **data,
    }
    return json.dumps(wrapped, indent=2, default=str, ensure_ascii=False)
