"""Application bootstrap wiring ports, adapters, and services."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from seskit.app import (
    AuditService,
    EvidenceExporter,
    SESSignatureBuilder,
    SignatureVerifier,
    SigningService,
    TimestampSource,
)
from seskit.app.adapters import (
    FileSystemContractStore,
    HttpDateTimestampAuthority,
    PDFEvidenceRenderer,
)
from seskit.app.device import DeviceFingerprinter
from seskit.app.ports import (
    ContractStorePort,
    EvidenceRendererPort,
    LedgerPort,
    TimestampAuthorityPort,
    TrailStorePort,
)
from seskit.audit.ledger import AuditTrailLedger
from seskit.audit.store import InMemoryTrailStore, JsonlTrailStore
from seskit.config import Settings, get_settings
from seskit.utils.offline import OfflineModeGate

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ApplicationContainer:
    """Aggregates wired services and adapters for the CLI layer."""

    settings: Settings
    offline_gate: OfflineModeGate
    trail_store: TrailStorePort
    ledger_port: LedgerPort
    audit_service: AuditService
    timestamp_source: TimestampSource
    fingerprinter: DeviceFingerprinter
    signature_builder: SESSignatureBuilder
    verifier: SignatureVerifier
    renderer: EvidenceRendererPort
    exporter: EvidenceExporter
    contract_store: ContractStorePort
    signing_service: SigningService


def bootstrap_application(settings: Settings | None = None) -> ApplicationContainer:
    """Instantiate adapters and services for CLI consumption."""

    active_settings = settings or get_settings()
    offline_gate = OfflineModeGate.from_settings(active_settings)

    trail_store = _create_trail_store(active_settings)
    ledger = AuditTrailLedger(trail_store)

    timestamp_source = TimestampSource(
        _create_timestamp_authorities(active_settings),
        online=offline_gate.is_online_enabled(),
        failure_threshold=active_settings.tsa_circuit_breaker_threshold,
        reset_seconds=active_settings.tsa_circuit_breaker_reset_seconds,
    )

    fingerprinter = DeviceFingerprinter()
    builder = SESSignatureBuilder(timestamp_source, fingerprinter)
    verifier = SignatureVerifier(timestamp_source, ledger)

    renderer = PDFEvidenceRenderer()
    exporter = EvidenceExporter(
        renderer,
        ledger,
        base_url=active_settings.verification_base_url,
        company_name=active_settings.company_name,
        protect=active_settings.pdf_protect,
        password_length=active_settings.pdf_owner_password_length,
    )

    contract_store = FileSystemContractStore(active_settings.get_contracts_dir())
    signing_service = SigningService(builder, ledger, exporter, contract_store)

    return ApplicationContainer(
        settings=active_settings,
        offline_gate=offline_gate,
        trail_store=trail_store,
        ledger_port=ledger,
        audit_service=AuditService(ledger=ledger),
        timestamp_source=timestamp_source,
        fingerprinter=fingerprinter,
        signature_builder=builder,
        verifier=verifier,
        renderer=renderer,
        exporter=exporter,
        contract_store=contract_store,
        signing_service=signing_service,
    )


# ---------------------------------------------------------------------#
# Internal helpers
# ---------------------------------------------------------------------#


def _create_trail_store(settings: Settings) -> TrailStorePort:
    if settings.trail_store == "memory":
        logger.debug("Using in-memory audit trail store")
        return InMemoryTrailStore()
    return JsonlTrailStore(settings.get_trails_dir())


def _create_timestamp_authorities(settings: Settings) -> list[TimestampAuthorityPort]:
    return [
        HttpDateTimestampAuthority(url, timeout=settings.tsa_timeout_seconds)
        for url in settings.tsa_servers
    ]
