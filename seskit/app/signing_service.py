"""End-to-end SES signing: evidence, lifecycle audit trail, sealing, package."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from seskit.app.export_service import EvidenceExporter, EvidencePackage
from seskit.app.ports.contract import ContractStorePort
from seskit.app.ports.ledger import LedgerPort
from seskit.app.signature_service import SESSignatureBuilder, SignatureRequest
from seskit.audit.ledger import SealedTrailError
from seskit.models import (
    ClientSignals,
    DeviceMetadata,
    InteractionEvent,
    SignatureEvidence,
    SignatureMethod,
    SignerMethod,
)

logger = logging.getLogger(__name__)


class SigningRequest(BaseModel):
    """Signer input as received from an HTTP entry point or the CLI."""

    model_config = ConfigDict(frozen=True)

    contract_id: str
    signature: str = Field(..., description="Signature image data URL or one-time code")
    signer_method: SignerMethod
    signer_identifier: str
    signature_method: SignatureMethod
    ip_address: str
    user_agent: str
    consent_given: bool = True
    intent_to_bind: bool = True
    location: str | None = None

    document_content: str | None = Field(
        default=None, description="Contract content; fetched from the contract store when omitted"
    )
    document_name: str | None = None
    dynamic_fields: Mapping[str, str | bool] | None = None

    device_metadata: DeviceMetadata | None = None
    client_signals: ClientSignals | None = None
    session_start_time: datetime | None = None
    page_access_time: datetime | None = None
    document_view_duration: float | None = None
    interaction_events: Sequence[InteractionEvent] = ()
    signature_duration: float | None = None
    signature_points: int | None = None
    signature_device_type: str | None = None

    seal: bool = True
    include_device_metadata: bool = False


class SigningResponse(BaseModel):
    id: str
    status: Literal["completed", "failed"]
    compliance_level: Literal["SES"] = "SES"
    legal_validity: bool
    evidence: SignatureEvidence | None = None
    evidence_package: EvidencePackage | None = None
    trail_id: str | None = None
    error: str | None = None


class SigningService:
    """Run one signing event through evidence building and the audit ledger.

    Missing or malformed input raises ``ValidationError`` to the caller.
    Operational failures (unknown contract, sealed trail, storage errors)
    are reported as ``status="failed"`` with ``legal_validity=False``.
    """

    def __init__(
        self,
        builder: SESSignatureBuilder,
        ledger: LedgerPort,
        exporter: EvidenceExporter,
        contracts: ContractStorePort | None = None,
    ) -> None:
        self.builder = builder
        self.ledger = ledger
        self.exporter = exporter
        self.contracts = contracts

    def _resolve_document(self, request: SigningRequest) -> tuple[str | None, str | None]:
        if request.document_content is not None or self.contracts is None:
            return request.document_content, request.document_name or request.contract_id

        contract = self.contracts.get_contract(request.contract_id)
        return contract.content, request.document_name or contract.name

    def sign(self, request: SigningRequest) -> SigningResponse:
        try:
            content, name = self._resolve_document(request)
        except KeyError as exc:
            logger.warning("Signing failed for contract %s: %s", request.contract_id, exc)
            return SigningResponse(
                id="", status="failed", legal_validity=False, error=f"Contract not found: {exc}"
            )

        evidence = self.builder.create_signature(
            SignatureRequest(
                signer_method=request.signer_method,
                signer_identifier=request.signer_identifier,
                document_content=content,
                document_name=name,
                signature_value=request.signature,
                signature_method=request.signature_method,
                ip_address=request.ip_address,
                user_agent=request.user_agent,
                location=request.location,
                dynamic_fields=request.dynamic_fields,
                device_metadata=request.device_metadata,
                client_signals=request.client_signals,
                session_start_time=request.session_start_time,
                page_access_time=request.page_access_time,
                document_view_duration=request.document_view_duration,
                interaction_events=request.interaction_events,
                signature_duration=request.signature_duration,
                signature_points=request.signature_points,
                signature_device_type=request.signature_device_type,
                consent_given=request.consent_given,
                intent_to_bind=request.intent_to_bind,
            )
        )
        fingerprint = self.builder.fingerprinter.fingerprint(evidence.device_metadata)

        try:
            self.ledger.create_trail(request.contract_id, name)
            self.ledger.add_signature_audit_trail(
                request.contract_id,
                evidence,
                device_fingerprint=fingerprint,
                include_device_metadata=request.include_device_metadata,
            )
            if request.seal:
                self.ledger.seal_trail(request.contract_id)
        except (SealedTrailError, OSError) as exc:
            logger.error("Recording audit trail for contract %s failed: %s", request.contract_id, exc)
            return SigningResponse(
                id=evidence.id,
                status="failed",
                legal_validity=False,
                trail_id=request.contract_id,
                error=str(exc),
            )

        package = self.exporter.export_evidence_package(evidence)
        return SigningResponse(
            id=evidence.id,
            status="completed",
            legal_validity=evidence.evidence.consent_given and evidence.evidence.intent_to_bind,
            evidence=evidence,
            evidence_package=package,
            trail_id=request.contract_id,
        )
