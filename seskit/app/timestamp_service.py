"""Trusted timestamps with ordered authority fallback."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

from pydantic import BaseModel, Field

from seskit.app.ports.timestamp import TimestampAuthorityPort
from seskit.models import LOCAL_FALLBACK_SOURCE, TimestampRecord, utc_now
from seskit.utils.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from seskit.utils.crypto import generate_nonce
from seskit.utils.timestamp_token import TimestampTokenError, decode_timestamp_token

logger = logging.getLogger(__name__)


class TimestampAttempt(BaseModel):
    """Outcome of asking one authority for a timestamp."""

    source: str
    verified: bool
    record: TimestampRecord | None = None
    error: str | None = None


class RedundantTimestamps(BaseModel):
    """Every authority's answer plus the record to use as primary."""

    primary: TimestampRecord
    results: list[TimestampAttempt] = Field(default_factory=list)
    verified_sources: list[str] = Field(default_factory=list)
    verified: bool = False


class TokenVerification(BaseModel):
    valid: bool
    timestamp: datetime | None = None
    error: str | None = None


class TimestampSource:
    """Obtain a timestamp bound to a document hash.

    Authorities are tried in order and the first verified answer wins. When
    every authority fails (or online mode is off) a local timestamp flagged
    ``verified=False`` with ``source="local_fallback"`` is returned instead;
    :meth:`get_timestamp` never raises.

    Each authority sits behind its own circuit breaker so one that keeps
    failing is skipped until its cool-down expires.
    """

    def __init__(
        self,
        authorities: Sequence[TimestampAuthorityPort] = (),
        *,
        online: bool = True,
        failure_threshold: int = 3,
        reset_seconds: float = 60.0,
        clock: Callable[[], datetime] = utc_now,
        nonce_factory: Callable[[], str] = generate_nonce,
    ) -> None:
        self.authorities = list(authorities)
        self.online = online
        self._clock = clock
        self._nonce_factory = nonce_factory
        self._breakers = {
            authority.url: CircuitBreaker(
                failure_threshold=failure_threshold,
                timeout_seconds=reset_seconds,
            )
            for authority in self.authorities
        }

    def local_fallback(self) -> TimestampRecord:
        """Locally generated, explicitly unverified timestamp."""
        return TimestampRecord(
            value=self._clock(),
            source=LOCAL_FALLBACK_SOURCE,
            verified=False,
        )

    def _attempt(self, authority: TimestampAuthorityPort, document_hash: str) -> TimestampAttempt:
        breaker = self._breakers[authority.url]
        nonce = self._nonce_factory()
        try:
            record = breaker.call(lambda: authority.request_timestamp(document_hash, nonce))
        except CircuitBreakerOpen as exc:
            logger.warning("Skipping timestamp authority %s: %s", authority.url, exc)
            return TimestampAttempt(source=authority.url, verified=False, error=str(exc))
        except Exception as exc:  # noqa: BLE001 - every authority failure degrades to fallback
            logger.warning("Timestamp authority %s failed: %s", authority.url, exc)
            return TimestampAttempt(source=authority.url, verified=False, error=str(exc))

        if not record.verified:
            return TimestampAttempt(
                source=authority.url,
                verified=False,
                record=record,
                error="Authority returned an unverified timestamp",
            )
        return TimestampAttempt(source=authority.url, verified=True, record=record)

    def get_timestamp(self, document_hash: str) -> TimestampRecord:
        """Return the first verified authority timestamp, else the local fallback."""
        if not self.online or not self.authorities:
            logger.debug("Timestamp authorities disabled; using local timestamp")
            return self.local_fallback()

        for authority in self.authorities:
            attempt = self._attempt(authority, document_hash)
            if attempt.verified and attempt.record is not None:
                logger.debug("Timestamp obtained from %s", authority.url)
                return attempt.record

        logger.warning("All timestamp authorities failed, using local timestamp")
        return self.local_fallback()

    def get_redundant_timestamps(self, document_hash: str) -> RedundantTimestamps:
        """Query every authority concurrently and collect all answers.

        The overall result is verified when at least one authority verified.
        """
        if not self.online or not self.authorities:
            return RedundantTimestamps(primary=self.local_fallback())

        with ThreadPoolExecutor(max_workers=len(self.authorities)) as pool:
            results = list(
                pool.map(lambda authority: self._attempt(authority, document_hash), self.authorities)
            )

        verified = [attempt for attempt in results if attempt.verified and attempt.record]
        if verified:
            primary = verified[0].record
            assert primary is not None
        else:
            logger.warning("No timestamp authority verified; using local timestamp")
            primary = self.local_fallback()

        return RedundantTimestamps(
            primary=primary,
            results=results,
            verified_sources=[attempt.source for attempt in verified],
            verified=bool(verified),
        )

    def verify_timestamp(self, token: str, original_hash: str) -> TokenVerification:
        """Check that ``token`` binds ``original_hash``.

        The authority is not contacted again.
        """
        try:
            payload = decode_timestamp_token(token)
            timestamp = datetime.fromisoformat(str(payload["timestamp"]))
        except (TimestampTokenError, ValueError):
            return TokenVerification(valid=False, error="Invalid token format")

        if payload["documentHash"] != original_hash:
            return TokenVerification(valid=False, error="Document hash mismatch")

        return TokenVerification(valid=True, timestamp=timestamp)
