"""Timestamp authority port interface."""

from __future__ import annotations

from typing import Protocol

from seskit.models import TimestampRecord


class TimestampAuthorityPort(Protocol):
    """Port interface for a single timestamp authority (TSA).

    Implementations raise on any failure; fallback policy belongs to
    :class:`seskit.app.timestamp_service.TimestampSource`.

    Side effects: Network request to the authority (online).
    """

    url: str

    def request_timestamp(self, document_hash: str, nonce: str) -> TimestampRecord:
        """Obtain a verified timestamp bound to ``document_hash``.

        Args:
            document_hash: Hex SHA-256 digest of the document
            nonce: Random hex nonce included in the token

        Returns:
            Timestamp record with ``verified=True``
        """
        ...
