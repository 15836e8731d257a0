"""Pytest configuration and fixtures."""

import gc
import shutil
import tempfile
import time
from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from seskit.app.device import DeviceFingerprinter
from seskit.app.signature_service import SESSignatureBuilder, SignatureRequest
from seskit.app.timestamp_service import TimestampSource
from seskit.config import Settings
from seskit.models import SignatureEvidence

CHROME_WINDOWS_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.6099.109 Safari/537.36"
)
CONTRACT_HTML = (
    "<h1>Contrato de Servicios</h1>"
    "<p>El cliente acepta las <strong>condiciones</strong> del servicio.</p>"
    "<ul><li>Duración: 12 meses</li><li>Precio: 30&nbsp;EUR</li></ul>"
)


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 12, 10, 30, tzinfo=UTC)

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    try:
        yield Path(tmpdir)
    finally:
        gc.collect()
        time.sleep(0.05)
        shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def override_settings(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Settings, None, None]:
    """Provide isolated seskit settings scoped to tests."""

    import seskit.config as config_module

    monkeypatch.delenv("SESKIT_ONLINE", raising=False)
    original_settings = getattr(config_module, "_settings", None)

    data_dir = temp_dir / "appdata"
    config_dir = temp_dir / "appconfig"
    data_dir.mkdir(parents=True, exist_ok=True)
    config_dir.mkdir(parents=True, exist_ok=True)

    settings = config_module.Settings(
        data_dir=data_dir,
        config_dir=config_dir,
        online=False,
        trail_store="jsonl",
    )

    config_module._settings = settings

    try:
        yield settings
    finally:
        config_module._settings = original_settings


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def offline_timestamps(clock: StepClock) -> TimestampSource:
    """Timestamp source that never contacts an authority."""
    return TimestampSource(online=False, clock=clock)


@pytest.fixture
def builder(offline_timestamps: TimestampSource, clock: StepClock) -> SESSignatureBuilder:
    counter = iter(range(1, 10_000))
    return SESSignatureBuilder(
        offline_timestamps,
        DeviceFingerprinter(),
        clock=clock,
        id_factory=lambda: f"sig-{next(counter):04d}",
    )


@pytest.fixture
def make_request() -> Callable[..., SignatureRequest]:
    """Factory for a complete, valid signature request."""

    def _make(**overrides: Any) -> SignatureRequest:
        values: dict[str, Any] = {
            "signer_method": "SMS",
            "signer_identifier": "+34600111222",
            "document_content": CONTRACT_HTML,
            "document_name": "contrato-servicios.html",
            "signature_value": "data:image/png;base64,iVBORw0KGgo=",
            "signature_method": "handwritten",
            "ip_address": "203.0.113.7",
            "user_agent": CHROME_WINDOWS_UA,
            "location": "Madrid, ES",
            "dynamic_fields": {
                "clientName": "Ana García",
                "clientTaxId": "12345678Z",
                "clientEmail": "ana@example.com",
                "acceptMarketing": False,
            },
            "signature_duration": 1830.0,
            "signature_points": 214,
            "signature_device_type": "mouse",
        }
        values.update(overrides)
        return SignatureRequest(**values)

    return _make


@pytest.fixture
def evidence(builder: SESSignatureBuilder, make_request) -> SignatureEvidence:
    return builder.create_signature(make_request())
