"""HTTP timestamp authority adapter.

This is a placeholder for a real RFC 3161 client: the authority's HTTP
``Date`` header supplies the trusted time, and the token is a base64 JSON
document binding that time to the document hash.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

import requests

from seskit.models import TimestampRecord
from seskit.utils.timestamp_token import build_timestamp_token

logger = logging.getLogger(__name__)


class TimestampAuthorityError(RuntimeError):
    """Raised when a timestamp authority cannot provide a timestamp."""


class HttpDateTimestampAuthority:
    """Timestamp authority that trusts the server's HTTP ``Date`` header."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def request_timestamp(self, document_hash: str, nonce: str) -> TimestampRecord:
        try:
            response = self.session.head(self.url, timeout=self.timeout, allow_redirects=False)
        except requests.RequestException as exc:
            raise TimestampAuthorityError(f"{self.url}: {exc}") from exc

        server_date = response.headers.get("Date")
        if not server_date:
            raise TimestampAuthorityError(f"{self.url}: No date header received")

        try:
            value = parsedate_to_datetime(server_date)
        except (TypeError, ValueError) as exc:
            raise TimestampAuthorityError(
                f"{self.url}: Unparseable date header {server_date!r}"
            ) from exc
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        value = value.astimezone(UTC)

        logger.debug("Timestamp authority %s answered with %s", self.url, value.isoformat())
        return TimestampRecord(
            value=value,
            source=self.url,
            token=build_timestamp_token(document_hash, value, nonce, self.url),
            verified=True,
            serial_number=nonce,
        )
