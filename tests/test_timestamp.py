"""Tests for timestamp acquisition, fallback and token verification."""

from datetime import UTC, datetime

import pytest
import requests

from seskit.app.adapters.tsa import HttpDateTimestampAuthority, TimestampAuthorityError
from seskit.app.timestamp_service import TimestampSource
from seskit.models import LOCAL_FALLBACK_SOURCE, TimestampRecord
from seskit.utils.hashing import compute_sha256_text
from seskit.utils.timestamp_token import (
    TimestampTokenError,
    build_timestamp_token,
    decode_timestamp_token,
)

DOC_HASH = compute_sha256_text("contract body")
TSA_TIME = datetime(2026, 3, 1, 9, 15, tzinfo=UTC)


class FakeAuthority:
    def __init__(self, url: str, *, fail: bool = False, verified: bool = True) -> None:
        self.url = url
        self.fail = fail
        self.verified = verified
        self.calls = 0

    def request_timestamp(self, document_hash: str, nonce: str) -> TimestampRecord:
        self.calls += 1
        if self.fail:
            raise TimestampAuthorityError(f"{self.url}: connection refused")
        return TimestampRecord(
            value=TSA_TIME,
            source=self.url,
            token=build_timestamp_token(document_hash, TSA_TIME, nonce, self.url),
            verified=self.verified,
            serial_number=nonce,
        )


class FakeResponse:
    def __init__(self, headers: dict[str, str]) -> None:
        self.headers = headers


class FakeSession:
    def __init__(self, response: FakeResponse | None = None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.requested: list[tuple[str, float]] = []

    def head(self, url: str, *, timeout: float, allow_redirects: bool) -> FakeResponse:
        self.requested.append((url, timeout))
        if self.error is not None:
            raise self.error
        assert self.response is not None
        return self.response


def test_offline_source_returns_local_fallback():
    authority = FakeAuthority("http://tsa.example")
    source = TimestampSource([authority], online=False)

    record = source.get_timestamp(DOC_HASH)

    assert record.source == LOCAL_FALLBACK_SOURCE
    assert record.is_local_fallback
    assert record.verified is False
    assert record.token is None
    assert authority.calls == 0


def test_first_verified_authority_wins():
    failing = FakeAuthority("http://down.example", fail=True)
    good = FakeAuthority("http://tsa.example")
    spare = FakeAuthority("http://spare.example")
    source = TimestampSource([failing, good, spare], nonce_factory=lambda: "nonce-1")

    record = source.get_timestamp(DOC_HASH)

    assert record.source == "http://tsa.example"
    assert record.verified is True
    assert record.serial_number == "nonce-1"
    assert (failing.calls, good.calls, spare.calls) == (1, 1, 0)


def test_all_authorities_failing_falls_back_without_raising():
    source = TimestampSource(
        [FakeAuthority("http://a.example", fail=True), FakeAuthority("http://b.example", verified=False)]
    )

    record = source.get_timestamp(DOC_HASH)

    assert record.source == LOCAL_FALLBACK_SOURCE
    assert record.verified is False


def test_circuit_breaker_skips_failing_authority():
    failing = FakeAuthority("http://down.example", fail=True)
    source = TimestampSource([failing], failure_threshold=1, reset_seconds=3600)

    source.get_timestamp(DOC_HASH)
    source.get_timestamp(DOC_HASH)

    assert failing.calls == 1


def test_redundant_timestamps_collect_every_answer():
    source = TimestampSource(
        [
            FakeAuthority("http://a.example", fail=True),
            FakeAuthority("http://b.example"),
            FakeAuthority("http://c.example"),
        ]
    )

    result = source.get_redundant_timestamps(DOC_HASH)

    assert result.verified is True
    assert [attempt.source for attempt in result.results] == [
        "http://a.example",
        "http://b.example",
        "http://c.example",
    ]
    assert result.verified_sources == ["http://b.example", "http://c.example"]
    assert result.primary.source == "http://b.example"
    assert result.results[0].error is not None


def test_redundant_timestamps_without_verification_use_fallback():
    source = TimestampSource([FakeAuthority("http://a.example", fail=True)])

    result = source.get_redundant_timestamps(DOC_HASH)

    assert result.verified is False
    assert result.verified_sources == []
    assert result.primary.source == LOCAL_FALLBACK_SOURCE


def test_verify_timestamp_token():
    token = build_timestamp_token(DOC_HASH, TSA_TIME, "nonce", "http://tsa.example")
    source = TimestampSource(online=False)

    ok = source.verify_timestamp(token, DOC_HASH)
    assert ok.valid
    assert ok.timestamp == TSA_TIME

    mismatch = source.verify_timestamp(token, compute_sha256_text("other"))
    assert not mismatch.valid
    assert mismatch.error == "Document hash mismatch"

    garbage = source.verify_timestamp("%%%not-a-token%%%", DOC_HASH)
    assert not garbage.valid
    assert garbage.error == "Invalid token format"


def test_decode_timestamp_token_round_trip_fields():
    token = build_timestamp_token(DOC_HASH, TSA_TIME, "n-1", "http://tsa.example")
    payload = decode_timestamp_token(token)

    assert payload["documentHash"] == DOC_HASH
    assert payload["nonce"] == "n-1"
    assert payload["tsaUrl"] == "http://tsa.example"
    assert payload["algorithm"] == "SHA-256"

    with pytest.raises(TimestampTokenError):
        decode_timestamp_token("e30=")  # "{}"


def test_http_date_authority_parses_date_header():
    session = FakeSession(FakeResponse({"Date": "Sun, 01 Mar 2026 09:15:00 GMT"}))
    authority = HttpDateTimestampAuthority("http://tsa.example", timeout=2.5, session=session)

    record = authority.request_timestamp(DOC_HASH, "nonce-9")

    assert session.requested == [("http://tsa.example", 2.5)]
    assert record.value == TSA_TIME
    assert record.verified is True
    assert record.serial_number == "nonce-9"
    assert decode_timestamp_token(record.token or "")["documentHash"] == DOC_HASH


def test_http_date_authority_errors():
    missing_date = HttpDateTimestampAuthority(
        "http://tsa.example", session=FakeSession(FakeResponse({}))
    )
    with pytest.raises(TimestampAuthorityError, match="No date header"):
        missing_date.request_timestamp(DOC_HASH, "n")

    unreachable = HttpDateTimestampAuthority(
        "http://tsa.example", session=FakeSession(error=requests.ConnectionError("refused"))
    )
    with pytest.raises(TimestampAuthorityError):
        unreachable.request_timestamp(DOC_HASH, "n")
