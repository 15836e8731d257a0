"""Tests for the end-to-end signing flow."""

from pathlib import Path

import pytest

from seskit.app.adapters import FileSystemContractStore
from seskit.app.export_service import EvidenceExporter
from seskit.app.signature_service import ValidationError
from seskit.app.signing_service import SigningRequest, SigningService
from seskit.audit import AuditTrailLedger

from conftest import CHROME_WINDOWS_UA, CONTRACT_HTML


def _request(**overrides) -> SigningRequest:
    values = {
        "contract_id": "contract-1",
        "signature": "data:image/png;base64,iVBORw0KGgo=",
        "signer_method": "SMS",
        "signer_identifier": "+34600111222",
        "signature_method": "sms_code",
        "ip_address": "203.0.113.7",
        "user_agent": CHROME_WINDOWS_UA,
        "document_content": CONTRACT_HTML,
        "document_name": "contrato.html",
        "dynamic_fields": {"clientName": "Ana García"},
    }
    values.update(overrides)
    return SigningRequest(**values)


@pytest.fixture
def ledger() -> AuditTrailLedger:
    return AuditTrailLedger()


@pytest.fixture
def service(builder, ledger) -> SigningService:
    return SigningService(builder, ledger, EvidenceExporter(ledger=ledger))


def test_sign_records_and_seals_trail(service, ledger):
    response = service.sign(_request())

    assert response.status == "completed"
    assert response.compliance_level == "SES"
    assert response.legal_validity is True
    assert response.evidence is not None
    assert response.evidence_package is not None
    assert response.evidence_package.signature == response.evidence
    assert response.trail_id == "contract-1"

    trail = ledger.get_trail("contract-1")
    assert trail is not None
    assert trail.is_sealed
    assert [r.action for r in trail.records] == [
        "audit_trail_created",
        "document_accessed",
        "signer_identified",
        "consent_verified",
        "signature_created",
        "document_integrity_verified",
        "audit_trail_sealed",
    ]
    assert trail.resource_name == "contrato.html"
    assert ledger.verify_integrity("contract-1").is_valid

    fingerprint = service.builder.fingerprinter.fingerprint(response.evidence.device_metadata)
    assert trail.records[4].details["device_fingerprint"] == fingerprint
    assert trail.records[4].resource.id == response.id


def test_second_signature_on_sealed_contract_fails(service, ledger):
    service.sign(_request())

    response = service.sign(_request())

    assert response.status == "failed"
    assert response.legal_validity is False
    assert "sealed" in (response.error or "")
    assert ledger.verify_integrity("contract-1").is_valid


def test_unsealed_signing_allows_multiple_signers(service, ledger):
    service.sign(_request(seal=False))
    service.sign(_request(seal=False, signer_identifier="+34600999888"))

    trail = ledger.get_trail("contract-1")
    assert trail is not None
    assert not trail.is_sealed
    assert len(trail.records) == 11


def test_missing_input_raises_validation_error(service, ledger):
    with pytest.raises(ValidationError):
        service.sign(_request(signer_identifier=""))

    assert ledger.get_trail("contract-1") is None


def test_no_consent_is_recorded_without_legal_validity(service):
    response = service.sign(_request(consent_given=False))

    assert response.status == "completed"
    assert response.legal_validity is False
    assert response.evidence is not None
    assert response.evidence.evidence.consent_given is False


def test_content_is_loaded_from_contract_store(builder, ledger, temp_dir: Path):
    (temp_dir / "contract-9.html").write_text(CONTRACT_HTML, encoding="utf-8")
    (temp_dir / "contract-9.json").write_text('{"name": "Contrato de Servicios"}', encoding="utf-8")
    service = SigningService(
        builder, ledger, EvidenceExporter(ledger=ledger), FileSystemContractStore(temp_dir)
    )

    response = service.sign(
        _request(contract_id="contract-9", document_content=None, document_name=None)
    )

    assert response.status == "completed"
    assert response.evidence is not None
    assert response.evidence.document.content == CONTRACT_HTML
    assert response.evidence.document.original_name == "Contrato de Servicios"


def test_unknown_contract_fails(builder, ledger, temp_dir: Path):
    service = SigningService(
        builder, ledger, EvidenceExporter(ledger=ledger), FileSystemContractStore(temp_dir)
    )

    response = service.sign(_request(contract_id="nope", document_content=None))

    assert response.status == "failed"
    assert "Contract not found" in (response.error or "")
    assert ledger.get_trail("nope") is None
